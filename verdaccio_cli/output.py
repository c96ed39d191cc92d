from __future__ import annotations

import shlex
from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape

_ERROR_CONSOLE = Console(stderr=True, soft_wrap=True)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {escape(msg)}")


class Reporter:
    """Human-facing progress and result lines.

    Progress (``info``/``ok``) is silenced by ``--quiet``; results, failures and
    headings always print. ``--verbose`` echoes external commands to stderr.
    """

    def __init__(self, *, quiet: bool = False, verbose: bool = False) -> None:
        self.quiet = quiet
        self.verbose = verbose
        self._out = Console(soft_wrap=True, highlight=False)
        self._err = Console(stderr=True, soft_wrap=True, highlight=False)

    def heading(self, title: str) -> None:
        self._out.print(f"=== {title} ===", style="bold", markup=False)

    def blank(self) -> None:
        if not self.quiet:
            self._out.print("")

    def info(self, msg: str) -> None:
        if not self.quiet:
            self._out.print(msg, markup=False)

    def ok(self, msg: str, *, indent: int = 0) -> None:
        if not self.quiet:
            self._out.print(f"{' ' * indent}✓ {msg}", style="green", markup=False)

    def result(self, msg: str) -> None:
        self._out.print(msg, markup=False)

    def fail(self, msg: str, *, indent: int = 0) -> None:
        self._out.print(f"{' ' * indent}✗ {msg}", style="red", markup=False)

    def raw(self, text: str) -> None:
        text = (text or "").rstrip("\n")
        if text:
            self._out.print(text, markup=False)

    def command(self, argv: Sequence[str]) -> None:
        if self.verbose:
            self._err.print(f"$ {shlex.join(list(argv))}", style="dim", markup=False)
