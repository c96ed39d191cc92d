"""Container runtime wrapper for the registry's container, image and volume.

Queries are pure reads against the runtime and are repeated on every call; the
mutating helpers never check state themselves, so commands read a handle's state
first and then decide what to invoke.
"""

from __future__ import annotations

import enum
import re
import subprocess
from dataclasses import dataclass

from .cli_shared import (
    CONTAINER_PORT,
    CONTAINER_STORAGE,
    CONTAINER_WORKDIR,
    GlobalOpts,
)
from .output import Reporter
from .proc import Runner, attach_command, run_command


class HandleState(str, enum.Enum):
    ABSENT = "absent"
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class RuntimeSnapshot:
    container: HandleState
    image_present: bool
    volume_present: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "container": self.container.value,
            "imagePresent": self.image_present,
            "volumePresent": self.volume_present,
        }


def _exact_name_filter(name: str) -> str:
    return f"name=^/?{re.escape(name)}$"


class DockerRuntime:
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

    def _argv(self, *args: str) -> list[str]:
        return [self.g.docker, *args]

    def _run(
        self, *args: str, capture: bool = False, check: bool = True
    ) -> subprocess.CompletedProcess[str]:
        return run_command(
            self._argv(*args),
            reporter=self.reporter,
            runner=self.runner,
            capture=capture,
            check=check,
        )

    def _query_ids(self, *args: str) -> list[str]:
        # A failed query reads as "nothing there", matching how the status
        # targets branch on empty output.
        result = self._run(*args, capture=True, check=False)
        if result.returncode != 0:
            return []
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    # -- queries -----------------------------------------------------------

    def container_state(self) -> HandleState:
        name_filter = _exact_name_filter(self.g.container)
        if self._query_ids("ps", "-q", "-f", name_filter):
            return HandleState.RUNNING
        if self._query_ids("ps", "-aq", "-f", name_filter):
            return HandleState.STOPPED
        return HandleState.ABSENT

    def image_present(self) -> bool:
        return bool(self._query_ids("images", "-q", self.g.image))

    def volume_present(self) -> bool:
        return bool(self._query_ids("volume", "ls", "-q", "-f", _exact_name_filter(self.g.volume)))

    def snapshot(self) -> RuntimeSnapshot:
        return RuntimeSnapshot(
            container=self.container_state(),
            image_present=self.image_present(),
            volume_present=self.volume_present(),
        )

    def container_row(self) -> str:
        result = self._run("ps", "-f", _exact_name_filter(self.g.container), capture=True, check=False)
        return result.stdout or ""

    def image_row(self) -> str:
        result = self._run("images", self.g.image, capture=True, check=False)
        return result.stdout or ""

    # -- mutations ---------------------------------------------------------

    def build(self) -> None:
        self._run("build", "-t", self.g.image, self.g.build_context)

    def start_new_container(self) -> None:
        workdir = self.g.workdir_path.resolve()
        self._run(
            "run",
            "-d",
            "--name",
            self.g.container,
            "-p",
            f"{self.g.port}:{CONTAINER_PORT}",
            "-v",
            f"{self.g.volume}:{CONTAINER_STORAGE}",
            "-v",
            f"{workdir}:{CONTAINER_WORKDIR}",
            "--restart",
            "unless-stopped",
            self.g.image,
        )

    def stop_container(self) -> None:
        self._run("stop", self.g.container)

    def remove_container(self, *, force: bool = False) -> None:
        if force:
            self._run("rm", "-f", self.g.container)
        else:
            self._run("rm", self.g.container)

    def remove_image(self) -> None:
        self._run("rmi", self.g.image)

    def remove_volume(self) -> None:
        self._run("volume", "rm", self.g.volume)

    def exec(self, *args: str, capture: bool = True, check: bool = True) -> subprocess.CompletedProcess[str]:
        return self._run("exec", self.g.container, *args, capture=capture, check=check)

    def tail_logs(self, lines: int) -> str:
        result = self._run("logs", self.g.container, "--tail", str(lines), capture=True, check=False)
        if result.returncode != 0:
            return ""
        # The registry writes its request log to both streams.
        return (result.stdout or "") + (result.stderr or "")

    def follow_logs_argv(self) -> list[str]:
        return self._argv("logs", "-f", self.g.container)

    # -- interactive -------------------------------------------------------

    def attach_logs(self) -> int:
        return attach_command(self.follow_logs_argv(), reporter=self.reporter, runner=self.runner)

    def attach_shell(self) -> int:
        return attach_command(
            self._argv("exec", "-it", self.g.container, "/bin/sh"),
            reporter=self.reporter,
            runner=self.runner,
        )
