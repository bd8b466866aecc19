"""Round-robin upstream proxy rotation with a cool-down list."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from urllib.parse import urlsplit

import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProxyEndpoint:
    server: str
    username: str | None = None
    password: str | None = None

    def to_playwright(self) -> dict[str, str]:
        """``proxy=`` argument for ``browser.new_context``."""
        out = {"server": self.server}
        if self.username:
            out["username"] = self.username
        if self.password:
            out["password"] = self.password
        return out


def parse_proxy(url: str) -> ProxyEndpoint:
    """Parse ``scheme://[user:pass@]host:port`` (http, https, socks5)."""
    parts = urlsplit(url.strip())
    if parts.scheme not in ("http", "https", "socks5") or not parts.hostname:
        raise ValueError(f"invalid proxy URL: {url!r}")
    server = f"{parts.scheme}://{parts.hostname}"
    if parts.port:
        server += f":{parts.port}"
    return ProxyEndpoint(server=server, username=parts.username, password=parts.password)


class ProxyRotator:
    """Hands out proxies round-robin, skipping ones marked bad.

    Bad proxies sit out ``cooldown_seconds``.  ``next()`` contains no await,
    so the index update is atomic on the event loop.
    """

    def __init__(
        self,
        proxies: Sequence[str],
        *,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._endpoints = [parse_proxy(p) for p in proxies]
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._index = 0
        self._benched: dict[ProxyEndpoint, float] = {}

    def __len__(self) -> int:
        return len(self._endpoints)

    def next(self) -> ProxyEndpoint | None:
        """Next usable proxy, or ``None`` when none is configured or all are benched."""
        now = self._clock()
        for _ in range(len(self._endpoints)):
            endpoint = self._endpoints[self._index]
            self._index = (self._index + 1) % len(self._endpoints)
            until = self._benched.get(endpoint)
            if until is not None and until > now:
                continue
            self._benched.pop(endpoint, None)
            return endpoint
        if self._endpoints:
            log.warning("proxy_pool_exhausted", benched=len(self._benched))
        return None

    def mark_bad(self, endpoint: ProxyEndpoint) -> None:
        self._benched[endpoint] = self._clock() + self._cooldown
        log.info("proxy_benched", server=endpoint.server, cooldown_s=self._cooldown)
