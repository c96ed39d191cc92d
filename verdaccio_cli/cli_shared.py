from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

try:
    from dotenv import find_dotenv, load_dotenv  # type: ignore
except Exception:  # pragma: no cover - exercised only when deps are missing
    find_dotenv = None
    load_dotenv = None


class RegistryOpsError(Exception):
    pass


class UsageError(RegistryOpsError):
    pass


class OpError(RegistryOpsError):
    pass


class CommandError(OpError):
    """An external command exited non-zero; its status becomes ours."""

    def __init__(self, argv: list[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = int(returncode)
        self.stderr = stderr
        msg = f"command failed with exit status {self.returncode}: {' '.join(self.argv)}"
        detail = (stderr or "").strip()
        if detail:
            msg = f"{msg}\n{detail}"
        super().__init__(msg)


VERDACCIO_IMAGE = "VERDACCIO_IMAGE"
VERDACCIO_CONTAINER = "VERDACCIO_CONTAINER"
VERDACCIO_PORT = "VERDACCIO_PORT"
VERDACCIO_VOLUME = "VERDACCIO_VOLUME"
VERDACCIO_DOCKER = "VERDACCIO_DOCKER"
VERDACCIO_YARN = "VERDACCIO_YARN"
VERDACCIO_WORKDIR = "VERDACCIO_WORKDIR"
VERDACCIO_BUILD_CONTEXT = "VERDACCIO_BUILD_CONTEXT"
VERDACCIO_YARN_CACHE = "VERDACCIO_YARN_CACHE"

DEFAULT_IMAGE = "verdaccio-local"
DEFAULT_CONTAINER = "verdaccio-server"
DEFAULT_PORT = 4873
DEFAULT_VOLUME = "verdaccio-storage"
DEFAULT_WORKDIR = "workdir"
DEFAULT_YARN_CACHE = "~/.yarn/berry/cache"

# Ports and paths inside the registry image.
CONTAINER_PORT = 4873
CONTAINER_STORAGE = "/verdaccio/storage"
CONTAINER_STORAGE_DATA = "/verdaccio/storage/data"
CONTAINER_WORKDIR = "/workdir"


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


@dataclass(frozen=True)
class GlobalOpts:
    image: str = DEFAULT_IMAGE
    container: str = DEFAULT_CONTAINER
    port: int = DEFAULT_PORT
    volume: str = DEFAULT_VOLUME
    docker: str = "docker"
    yarn: str = "yarn"
    workdir: str = DEFAULT_WORKDIR
    build_context: str = "."
    yarn_cache: str = DEFAULT_YARN_CACHE
    quiet: bool = False
    verbose: bool = False

    @property
    def registry_url(self) -> str:
        return f"http://localhost:{self.port}"

    @property
    def workdir_path(self) -> Path:
        return Path(self.workdir).expanduser()

    @property
    def yarn_cache_path(self) -> Path:
        return Path(self.yarn_cache).expanduser()


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _parse_port(raw: str | int | None, *, name: str = VERDACCIO_PORT) -> int:
    if raw is None or str(raw).strip() == "":
        return DEFAULT_PORT
    try:
        port = int(str(raw).strip())
    except ValueError as e:
        raise UsageError(f"invalid {name}: {raw!r} is not an integer") from e
    if not 1 <= port <= 65535:
        raise UsageError(f"invalid {name}: {port} is outside 1-65535")
    return port


def _bootstrap_env() -> None:
    if load_dotenv is None or find_dotenv is None:
        raise UsageError("missing dependency: python-dotenv (pip install -e .)")
    # .env is looked up from the invocation directory, next to workdir/ and the
    # Dockerfile; already-exported values win.
    load_dotenv(find_dotenv(usecwd=True))


def _global_opts_from_env(*, quiet: bool = False, verbose: bool = False) -> GlobalOpts:
    return GlobalOpts(
        image=_env_or_none(VERDACCIO_IMAGE) or DEFAULT_IMAGE,
        container=_env_or_none(VERDACCIO_CONTAINER) or DEFAULT_CONTAINER,
        port=_parse_port(_env_or_none(VERDACCIO_PORT)),
        volume=_env_or_none(VERDACCIO_VOLUME) or DEFAULT_VOLUME,
        docker=_env_or_none(VERDACCIO_DOCKER) or "docker",
        yarn=_env_or_none(VERDACCIO_YARN) or "yarn",
        workdir=_env_or_none(VERDACCIO_WORKDIR) or DEFAULT_WORKDIR,
        build_context=_env_or_none(VERDACCIO_BUILD_CONTEXT) or ".",
        yarn_cache=_env_or_none(VERDACCIO_YARN_CACHE) or DEFAULT_YARN_CACHE,
        quiet=quiet,
        verbose=verbose,
    )


def _print_json(obj: Any) -> None:
    sys.stdout.write(json.dumps(obj, indent=2, sort_keys=True) + "\n")


def _human_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes}B"
    size = float(num_bytes)
    for unit in ("K", "M", "G"):
        size /= 1024
        if size < 1024:
            return f"{size:.1f}{unit}"
    return f"{size / 1024:.1f}T"
