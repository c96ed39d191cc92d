from __future__ import annotations

from pathlib import Path

from .cli_shared import GlobalOpts
from .output import Reporter
from .proc import Runner, run_command

PACKAGE_JSON = "package.json"


class YarnProject:
    """The scratch project under ``workdir`` used for install tests."""

    def __init__(
        self,
        g: GlobalOpts,
        *,
        reporter: Reporter | None = None,
        runner: Runner | None = None,
    ) -> None:
        self.g = g
        self.reporter = reporter
        self.runner = runner

    @property
    def root(self) -> Path:
        return self.g.workdir_path

    @property
    def descriptor(self) -> Path:
        return self.root / PACKAGE_JSON

    def _yarn(self, *args: str) -> None:
        run_command(
            [self.g.yarn, *args],
            reporter=self.reporter,
            runner=self.runner,
            cwd=self.root,
        )

    def ensure_descriptor(self) -> bool:
        """Run ``yarn init -y`` when package.json is missing. Returns True if created."""
        if self.descriptor.is_file():
            return False
        self.root.mkdir(parents=True, exist_ok=True)
        if self.reporter is not None:
            self.reporter.info(f"Initializing test project in {self.root}...")
        self._yarn("init", "-y")
        return True

    def install(self, *, verbose: bool = False) -> None:
        if verbose:
            self._yarn("install", "--verbose")
        else:
            self._yarn("install")
