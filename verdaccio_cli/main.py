from __future__ import annotations

import argparse
import contextlib
import io
import sys
from typing import Any

import click
import typer

from . import __version__
from .cli_shared import (
    CommandError,
    GlobalOpts,
    OpError,
    UsageError,
    VERDACCIO_CONTAINER,
    VERDACCIO_PORT,
    _bootstrap_env,
    _eprint,
    _global_opts_from_env,
)
from .commands import (
    cmd_build,
    cmd_cache_status,
    cmd_clean,
    cmd_clean_test,
    cmd_clear_cache,
    cmd_logs,
    cmd_npm_config,
    cmd_purge,
    cmd_restart,
    cmd_run,
    cmd_shell,
    cmd_status,
    cmd_stop,
    cmd_test,
    cmd_test_cycle,
    cmd_test_install,
    cmd_test_with_monitor,
    cmd_up,
)
from .output import _rich_error

PROG_NAME = "verdaccio-ctl"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{PROG_NAME} {__version__}")
        raise typer.Exit(code=0)


app = typer.Typer(
    name=PROG_NAME,
    help=(
        "Build, run and inspect the local Verdaccio registry container, "
        "and drive clean-cache install tests against it. "
        f"Names and port come from env ({VERDACCIO_CONTAINER}, {VERDACCIO_PORT}, ...) or .env."
    ),
    no_args_is_help=True,
    add_completion=False,
)


def _root_help_text() -> str:
    buf = io.StringIO()
    try:
        with contextlib.redirect_stdout(buf):
            try:
                app(args=["--help"], prog_name=PROG_NAME, standalone_mode=False)
            except (typer.Exit, click.ClickException):
                pass
    except Exception:
        return ""
    return str(buf.getvalue() or "").strip()


def _render_usage_error_with_help(
    *,
    message: str,
    ctx: click.Context | None = None,
    fallback_help: str = "",
) -> None:
    _rich_error(message)
    help_text = ""
    if isinstance(ctx, click.Context):
        try:
            help_text = str(ctx.get_help() or "").strip()
        except Exception:
            help_text = ""
    if not help_text:
        help_text = str(fallback_help or "").strip()
    if help_text:
        _eprint("")
        _eprint(help_text)


@app.callback()
def app_callback(
    ctx: typer.Context,
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print results and failures"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Echo external commands to stderr"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    ctx.obj = {"g": _global_opts_from_env(quiet=quiet, verbose=verbose)}


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    return ctx.obj["g"]


def _exit_status(returncode: int) -> int:
    # A child killed by signal N reports -N; shells expect 128+N.
    if returncode < 0:
        return 128 - returncode
    return returncode or 1


def _invoke(ctx: typer.Context, func: Any, **kwargs: Any) -> None:
    g = _ctx_global(ctx)
    args = argparse.Namespace(**kwargs)
    try:
        code = int(func(args, g))
    except UsageError as e:
        _render_usage_error_with_help(message=str(e), ctx=ctx)
        raise typer.Exit(code=2)
    except CommandError as e:
        _rich_error(str(e))
        raise typer.Exit(code=_exit_status(e.returncode))
    except OpError as e:
        _rich_error(str(e))
        raise typer.Exit(code=1)

    if code:
        raise typer.Exit(code=_exit_status(code))


@app.command("build", help="Build the registry image.")
def build(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_build)


@app.command("run", help="Run the container detached, replacing any existing one.")
def run(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_run)


@app.command("up", help="Build the image, then run the container.")
def up(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_up)


@app.command("stop", help="Stop the container if it is running.")
def stop(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_stop)


@app.command("restart", help="Stop, then run the container.")
def restart(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_restart)


@app.command("logs", help="Follow container logs (Ctrl-C to detach).")
def logs(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_logs)


@app.command("shell", help="Open a shell inside the container.")
def shell(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_shell)


@app.command("clean", help="Stop and remove the container.")
def clean(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_clean)


@app.command("purge", help="Clean, then remove the image and storage volume.")
def purge(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_purge)


@app.command("status", help="Show container and image status.")
def status(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Emit a JSON status document"),
) -> None:
    _invoke(ctx, cmd_status, json_output=json_output)


@app.command("test", help="Probe the registry health endpoint.")
def test(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_test)


@app.command("npm-config", help="Print npm/yarn commands to point at this registry.")
def npm_config(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_npm_config)


@app.command("clear-cache", help="Clear Yarn, registry storage and project caches.")
def clear_cache(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_clear_cache)


@app.command("clean-test", help="Clear all caches, then restart the registry.")
def clean_test(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_clean_test)


@app.command("test-install", help="Install the workdir project against the registry.")
def test_install(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_test_install)


@app.command("test-cycle", help="Clear caches, install, then show recent registry requests.")
def test_cycle(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_test_cycle)


@app.command("test-with-monitor", help="Install while streaming registry traffic lines.")
def test_with_monitor(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_test_with_monitor)


@app.command("cache-status", help="Show existence and size of each cache.")
def cache_status(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Emit a JSON cache document"),
) -> None:
    _invoke(ctx, cmd_cache_status, json_output=json_output)


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        _bootstrap_env()
        result = app(args=argv, prog_name=PROG_NAME, standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:
        if isinstance(e, click.UsageError):
            _render_usage_error_with_help(message=e.format_message(), ctx=getattr(e, "ctx", None))
            return int(e.exit_code)
        _rich_error(e.format_message())
        return int(e.exit_code)
    except click.exceptions.Abort:
        return 130
    except UsageError as e:
        _render_usage_error_with_help(message=str(e), fallback_help=_root_help_text())
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
