"""Operational CLI for the local Verdaccio registry container.

The command surface is implemented with Typer and Rich; every command shells out
to the container runtime or the package manager and reports what it did.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
