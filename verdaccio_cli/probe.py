from __future__ import annotations

from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

PING_PATH = "/-/ping"


def _http_get(*, url: str, timeout_seconds: float = 5) -> tuple[int, bytes]:
    req = Request(url, method="GET")
    try:
        with urlopen(req, timeout=timeout_seconds) as resp:
            return int(getattr(resp, "status", 200)), resp.read()
    except HTTPError as e:
        data = e.read() if hasattr(e, "read") else b""
        return int(getattr(e, "code", 0) or 0), data


def ping(base_url: str, *, timeout_seconds: float = 5) -> bool:
    """True when the registry answers its health endpoint with a 2xx."""
    url = base_url.rstrip("/") + PING_PATH
    try:
        status, _body = _http_get(url=url, timeout_seconds=timeout_seconds)
    except (URLError, OSError, ValueError):
        return False
    return 200 <= status < 300
