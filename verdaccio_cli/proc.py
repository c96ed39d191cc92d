from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from .cli_shared import CommandError, OpError
from .output import Reporter

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


def run_command(
    argv: Sequence[str],
    *,
    reporter: Reporter | None = None,
    runner: Runner | None = None,
    capture: bool = False,
    check: bool = True,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run an external command.

    With ``capture`` the output is collected as text instead of streamed to the
    terminal. With ``check`` a non-zero exit raises ``CommandError`` carrying the
    command's exit status. A missing executable is always an ``OpError``.
    """
    argv = [str(a) for a in argv]
    if reporter is not None:
        reporter.command(argv)
    run = runner or subprocess.run
    kwargs: dict[str, Any] = {"check": False, "text": True, "encoding": "utf-8", "errors": "replace"}
    if capture:
        kwargs["capture_output"] = True
    if cwd is not None:
        if not Path(cwd).is_dir():
            raise OpError(f"working directory does not exist: {cwd}")
        kwargs["cwd"] = str(cwd)
    try:
        result = run(argv, **kwargs)
    except FileNotFoundError as e:
        raise OpError(f"executable not found: {argv[0]} ({e})") from e
    if check and result.returncode != 0:
        raise CommandError(argv, result.returncode, stderr=(result.stderr or "") if capture else "")
    return result


def attach_command(
    argv: Sequence[str],
    *,
    reporter: Reporter | None = None,
    runner: Runner | None = None,
) -> int:
    """Run a long-lived command wired to the terminal until it exits or Ctrl-C."""
    argv = [str(a) for a in argv]
    if reporter is not None:
        reporter.command(argv)
    run = runner or subprocess.run
    try:
        return int(run(argv, check=False, encoding="utf-8", errors="replace").returncode)
    except FileNotFoundError as e:
        raise OpError(f"executable not found: {argv[0]} ({e})") from e
    except KeyboardInterrupt:
        return 130
