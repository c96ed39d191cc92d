"""Cache locations that can make a registry install test non-fresh.

Three independent places hold downloaded packages: Yarn Berry's global cache,
the registry's storage inside its container, and the scratch project's own
``.yarn``/``node_modules``/lockfile/PnP artifacts. Clearing is best-effort per
location and reporting tolerates any of them being missing or unreachable.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from .cli_shared import CONTAINER_STORAGE_DATA, GlobalOpts, OpError, _human_size
from .docker_runtime import DockerRuntime

PROJECT_CACHE_DIRS = (".yarn", "node_modules")
PROJECT_CACHE_FILES = ("yarn.lock",)
PROJECT_PNP_GLOB = ".pnp.*"


@dataclass(frozen=True)
class CacheReport:
    name: str
    location: str
    exists: bool
    size_bytes: int | None = None
    size_text: str | None = None
    files: int | None = None

    @property
    def size(self) -> str | None:
        if self.size_text:
            return self.size_text
        if self.size_bytes is None:
            return None
        return _human_size(self.size_bytes)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "location": self.location,
            "exists": self.exists,
            "size": self.size,
            "sizeBytes": self.size_bytes,
            "files": self.files,
        }


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
        return
    try:
        path.unlink()
    except OSError:
        pass


def _dir_usage(path: Path) -> tuple[int, int]:
    """Total bytes and regular-file count under ``path``; unreadable entries are skipped."""
    total = 0
    files = 0
    for dirpath, _dirnames, filenames in os.walk(path, onerror=lambda _e: None):
        for fname in filenames:
            fp = os.path.join(dirpath, fname)
            try:
                st = os.lstat(fp)
            except OSError:
                continue
            total += st.st_size
            files += 1
    return total, files


def clear_yarn_cache(g: GlobalOpts) -> None:
    _remove_path(g.yarn_cache_path)


def clear_registry_storage(runtime: DockerRuntime) -> bool:
    """Empty the registry's package storage; False when the container was unreachable."""
    try:
        result = runtime.exec("sh", "-c", f"rm -rf {CONTAINER_STORAGE_DATA}/*", check=False)
    except OpError:
        return False
    return result.returncode == 0


def clear_project_cache(g: GlobalOpts) -> None:
    root = g.workdir_path
    for name in PROJECT_CACHE_DIRS + PROJECT_CACHE_FILES:
        _remove_path(root / name)
    if root.is_dir():
        for p in root.glob(PROJECT_PNP_GLOB):
            _remove_path(p)


def yarn_cache_report(g: GlobalOpts) -> CacheReport:
    path = g.yarn_cache_path
    if not path.is_dir():
        return CacheReport(name="yarn", location=str(path), exists=False)
    size, files = _dir_usage(path)
    return CacheReport(name="yarn", location=str(path), exists=True, size_bytes=size, files=files)


def registry_storage_report(runtime: DockerRuntime) -> CacheReport:
    script = f"du -sh {CONTAINER_STORAGE_DATA} 2>/dev/null | cut -f1"
    try:
        result = runtime.exec("sh", "-c", script, check=False)
    except OpError:
        return CacheReport(name="registry", location=CONTAINER_STORAGE_DATA, exists=False)
    text = (result.stdout or "").strip()
    if result.returncode != 0 or not text:
        return CacheReport(name="registry", location=CONTAINER_STORAGE_DATA, exists=False)
    return CacheReport(name="registry", location=CONTAINER_STORAGE_DATA, exists=True, size_text=text)


def project_cache_reports(g: GlobalOpts) -> list[CacheReport]:
    out: list[CacheReport] = []
    for name in PROJECT_CACHE_DIRS:
        path = g.workdir_path / name
        if not path.is_dir():
            out.append(CacheReport(name=name, location=str(path), exists=False))
            continue
        size, files = _dir_usage(path)
        out.append(CacheReport(name=name, location=str(path), exists=True, size_bytes=size, files=files))
    return out
