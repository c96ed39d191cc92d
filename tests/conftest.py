from __future__ import annotations

import re
import subprocess
import threading
from pathlib import Path
from typing import Any, Iterator

import pytest

from verdaccio_cli.commands import CommandContext
from verdaccio_cli.docker_runtime import DockerRuntime
from verdaccio_cli.output import Reporter
from verdaccio_cli.yarn import YarnProject

MUTATING_DOCKER_SUBCOMMANDS = {"build", "run", "stop", "rm", "rmi", "volume rm"}


def _filter_name(raw: str) -> str:
    assert raw.startswith("name=")
    pattern = raw[len("name="):].removeprefix("^/?").removesuffix("$")
    return re.sub(r"\\(.)", r"\1", pattern)


def _first_positional(args: list[str]) -> str:
    return next(a for a in args if not a.startswith("-"))


class _FakeFollowProc:
    """Stands in for ``docker logs -f``: yields lines, then blocks until terminated."""

    def __init__(self, lines: list[str], drained: threading.Event) -> None:
        self._lines = lines
        self._drained = drained
        self._terminated = threading.Event()
        self.returncode: int | None = None
        self.stdout = self._stream()

    def _stream(self) -> Iterator[str]:
        for line in self._lines:
            yield line + "\n"
        self._drained.set()
        self._terminated.wait(5)

    def poll(self) -> int | None:
        return self.returncode

    def terminate(self) -> None:
        self.returncode = -15
        self._terminated.set()

    def kill(self) -> None:
        self.terminate()

    def wait(self, timeout: float | None = None) -> int:
        return int(self.returncode or 0)


class FakeDocker:
    """In-memory container runtime plus yarn, driven by argv like the real tools."""

    def __init__(self) -> None:
        self.containers: dict[str, bool] = {}
        self.images: set[str] = set()
        self.volumes: set[str] = set()
        self.calls: list[list[str]] = []
        self.cwds: list[str | None] = []
        self.fail: dict[str, int] = {}
        self.storage_size = "1.5M"
        self.storage_cleared = 0
        self.log_text: str | bytes = ""
        self.last_kwargs: dict[str, Any] = {}
        self.follow_lines: list[str] = []
        self.follow_procs: list[_FakeFollowProc] = []
        self.follow_drained = threading.Event()

    # -- helpers -----------------------------------------------------------

    def docker_calls(self) -> list[list[str]]:
        return [c[1:] for c in self.calls if c[0] == "docker"]

    def yarn_calls(self) -> list[list[str]]:
        return [c[1:] for c in self.calls if c[0] == "yarn"]

    def mutating_calls(self) -> list[list[str]]:
        out = []
        for args in self.docker_calls():
            key = " ".join(args[:2]) if args[0] == "volume" else args[0]
            if key in MUTATING_DOCKER_SUBCOMMANDS:
                out.append(args)
        return out

    @staticmethod
    def _done(argv: list[str], rc: int = 0, out: str = "", err: str = "") -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(argv, rc, stdout=out, stderr=err)

    # -- runner protocol ---------------------------------------------------

    def __call__(self, argv: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        self.calls.append(list(argv))
        self.cwds.append(kwargs.get("cwd"))
        self.last_kwargs = kwargs
        tool, args = argv[0], argv[1:]
        if tool == "yarn":
            return self._yarn(argv, args, kwargs.get("cwd"))
        if tool != "docker":
            raise FileNotFoundError(2, "No such file or directory", tool)
        sub = args[0]
        key = " ".join(args[:2]) if sub == "volume" else sub
        if key in self.fail:
            return self._done(argv, self.fail[key], err=f"{key} failed")
        handler = getattr(self, f"_docker_{key.replace(' ', '_')}")
        return handler(argv, args)

    def popen(self, argv: list[str], **kwargs: Any) -> _FakeFollowProc:
        del kwargs
        self.calls.append(list(argv))
        self.cwds.append(None)
        proc = _FakeFollowProc(list(self.follow_lines), self.follow_drained)
        self.follow_procs.append(proc)
        return proc

    # -- docker ------------------------------------------------------------

    def _docker_ps(self, argv, args):
        name = _filter_name(args[args.index("-f") + 1])
        if "-q" in args:
            return self._done(argv, out="abc123\n" if self.containers.get(name) else "")
        if "-aq" in args:
            return self._done(argv, out="abc123\n" if name in self.containers else "")
        row = "CONTAINER ID   IMAGE   NAMES\n"
        if self.containers.get(name):
            row += f"abc123   verdaccio-local   {name}\n"
        return self._done(argv, out=row)

    def _docker_images(self, argv, args):
        if args[1] == "-q":
            return self._done(argv, out="img999\n" if args[2] in self.images else "")
        row = "REPOSITORY   TAG   IMAGE ID\n"
        if args[1] in self.images:
            row += f"{args[1]}   latest   img999\n"
        return self._done(argv, out=row)

    def _docker_volume_ls(self, argv, args):
        name = _filter_name(args[args.index("-f") + 1])
        return self._done(argv, out=f"{name}\n" if name in self.volumes else "")

    def _docker_build(self, argv, args):
        self.images.add(args[args.index("-t") + 1])
        return self._done(argv)

    def _docker_run(self, argv, args):
        name = args[args.index("--name") + 1]
        image = args[-1]
        if name in self.containers:
            return self._done(argv, 125, err=f"Conflict. The container name {name!r} is already in use")
        if image not in self.images:
            return self._done(argv, 125, err=f"Unable to find image {image!r}")
        volume_spec = args[args.index("-v") + 1]
        self.volumes.add(volume_spec.split(":", 1)[0])
        self.containers[name] = True
        return self._done(argv, out="abc123\n")

    def _docker_stop(self, argv, args):
        if args[1] not in self.containers:
            return self._done(argv, 1, err="No such container")
        self.containers[args[1]] = False
        return self._done(argv)

    def _docker_rm(self, argv, args):
        force = "-f" in args
        name = args[-1]
        if name not in self.containers:
            return self._done(argv, 1, err="No such container")
        if self.containers[name] and not force:
            return self._done(argv, 1, err="cannot remove a running container")
        del self.containers[name]
        return self._done(argv)

    def _docker_rmi(self, argv, args):
        if self.containers:
            return self._done(argv, 1, err="image is being used by a container")
        self.images.discard(args[1])
        return self._done(argv)

    def _docker_volume_rm(self, argv, args):
        self.volumes.discard(args[2])
        return self._done(argv)

    def _docker_exec(self, argv, args):
        name = _first_positional(args[1:])
        if not self.containers.get(name):
            return self._done(argv, 1, err=f"container {name} is not running")
        script = args[-1]
        if script.startswith("du "):
            return self._done(argv, out=f"{self.storage_size}\n")
        if script.startswith("rm "):
            self.storage_cleared += 1
        return self._done(argv)

    def _docker_logs(self, argv, args):
        if _first_positional(args[1:]) not in self.containers:
            return self._done(argv, 1, err="No such container")
        out = self.log_text
        if isinstance(out, bytes):
            # subprocess decodes captured output with the caller's encoding settings
            out = out.decode(self.last_kwargs.get("encoding") or "utf-8", self.last_kwargs.get("errors") or "strict")
        return self._done(argv, out=out)

    # -- yarn --------------------------------------------------------------

    def _yarn(self, argv, args, cwd):
        if "yarn" in self.fail:
            return self._done(argv, self.fail["yarn"])
        if args[:1] == ["init"]:
            Path(cwd, "package.json").write_text('{"name": "workdir"}\n', encoding="utf-8")
        elif args[:1] == ["install"]:
            if self.follow_lines:
                self.follow_drained.wait(5)
            Path(cwd, "node_modules").mkdir(exist_ok=True)
            Path(cwd, "yarn.lock").write_text("# lock\n", encoding="utf-8")
        return self._done(argv)


@pytest.fixture
def fake_docker(tmp_path: Path, monkeypatch) -> FakeDocker:
    for name in (
        "VERDACCIO_IMAGE",
        "VERDACCIO_CONTAINER",
        "VERDACCIO_PORT",
        "VERDACCIO_VOLUME",
        "VERDACCIO_DOCKER",
        "VERDACCIO_YARN",
        "VERDACCIO_WORKDIR",
        "VERDACCIO_BUILD_CONTEXT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VERDACCIO_YARN_CACHE", str(tmp_path / "yarn-berry-cache"))

    fake = FakeDocker()

    def _build_context(g):
        reporter = Reporter(quiet=g.quiet, verbose=g.verbose)
        return CommandContext(
            g=g,
            reporter=reporter,
            runtime=DockerRuntime(g, reporter=reporter, runner=fake),
            project=YarnProject(g, reporter=reporter, runner=fake),
            popen=fake.popen,
        )

    monkeypatch.setattr("verdaccio_cli.commands.build_context", _build_context)
    return fake
