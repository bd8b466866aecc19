"""Per-host token-bucket throttle for outgoing hop requests.

Hop hosts rate-limit aggressively and score request cadence, so requests to
the same host are spaced by a token bucket plus an optional random jitter.
"""

from __future__ import annotations

import asyncio
import random
import time
from urllib.parse import urlsplit

import structlog

log = structlog.get_logger(__name__)


class TokenBucket:
    """Token bucket: *rate* tokens per second, at most *burst* banked."""

    def __init__(self, rate: float, burst: int = 3) -> None:
        self._rate = rate
        self._burst = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        if self._rate <= 0:
            return

        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                await asyncio.sleep((1.0 - self._tokens) / self._rate)
                self._refill()
            self._tokens -= 1.0

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self._burst, self._tokens + (now - self._last_refill) * self._rate)
        self._last_refill = now


class HostThrottle:
    """One bucket per hostname, plus a random pre-request jitter.

    Args:
        rate: Requests per second per host.  0 disables throttling.
        burst: Requests allowed back-to-back before spacing kicks in.
        jitter_ms: ``(low, high)`` random delay added before each request.
    """

    def __init__(
        self,
        rate: float = 2.0,
        burst: int = 3,
        *,
        jitter_ms: tuple[int, int] = (0, 0),
    ) -> None:
        self._rate = rate
        self._burst = burst
        self._jitter_ms = jitter_ms
        self._buckets: dict[str, TokenBucket] = {}

    @staticmethod
    def _host(url: str) -> str:
        return (urlsplit(url).hostname or "").lower()

    def _bucket(self, host: str) -> TokenBucket:
        bucket = self._buckets.get(host)
        if bucket is None:
            bucket = TokenBucket(rate=self._rate, burst=self._burst)
            self._buckets[host] = bucket
        return bucket

    async def acquire(self, url: str) -> None:
        """Wait for clearance to send a request to *url*'s host."""
        if self._rate <= 0:
            return
        host = self._host(url)
        if not host:
            return

        await self._bucket(host).acquire()

        low, high = self._jitter_ms
        if high > 0:
            delay = random.uniform(low, high) / 1000  # noqa: S311
            log.debug("host_throttle_jitter", host=host, delay_ms=round(delay * 1000))
            await asyncio.sleep(delay)
