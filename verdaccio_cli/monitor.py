from __future__ import annotations

import re
import subprocess
import threading
from collections.abc import Callable, Sequence
from typing import Any

from .cli_shared import OpError

TRAFFIC_PATTERN = r"(requested|making request)"
REQUEST_METHOD_PATTERN = r"(GET|POST|PUT)"


def filter_lines(text: str, pattern: str) -> list[str]:
    rx = re.compile(pattern)
    return [line for line in (text or "").splitlines() if rx.search(line)]


class LogMonitor:
    """Follow a log stream in a background thread and emit matching lines.

    ``start`` returns once the follower process has been spawned (or failed to);
    ``stop`` terminates the follower and joins the thread. Usable as a context
    manager so the follower never outlives the foreground step.
    """

    def __init__(
        self,
        argv: Sequence[str],
        pattern: str,
        *,
        emit: Callable[[str], None],
        popen: Callable[..., Any] | None = None,
    ) -> None:
        self.argv = [str(a) for a in argv]
        self._rx = re.compile(pattern)
        self._emit = emit
        self._popen = popen or subprocess.Popen
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._stopping = threading.Event()
        self._proc: Any = None
        self._thread: threading.Thread | None = None
        self.error: Exception | None = None
        self.matches: list[str] = []

    def _spawn(self) -> Any:
        try:
            proc = self._popen(
                self.argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            self.error = OpError(f"log monitor failed to start {self.argv[0]}: {e}")
            return None
        finally:
            self._ready.set()
        return proc

    def _loop(self) -> None:
        proc = self._spawn()
        if proc is None:
            return
        with self._lock:
            self._proc = proc
            stopping = self._stopping.is_set()
        if stopping:
            self._terminate(proc)
        for line in proc.stdout:
            if self._stopping.is_set():
                break
            line = line.rstrip("\n")
            if self._rx.search(line):
                self.matches.append(line)
                self._emit(line)

    def start(self, *, ready_timeout: float = 5.0) -> bool:
        if self._thread is not None:
            raise OpError("log monitor already started")
        self._thread = threading.Thread(target=self._loop, name="log-monitor", daemon=True)
        self._thread.start()
        ready = self._ready.wait(ready_timeout)
        return ready and self.error is None

    @staticmethod
    def _terminate(proc: Any, timeout: float = 5.0) -> None:
        if proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()

    def stop(self, *, timeout: float = 5.0) -> None:
        self._stopping.set()
        with self._lock:
            proc = self._proc
        if proc is not None:
            self._terminate(proc, timeout=timeout)
        if self._thread is not None:
            self._thread.join(timeout)

    def __enter__(self) -> LogMonitor:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.stop()
