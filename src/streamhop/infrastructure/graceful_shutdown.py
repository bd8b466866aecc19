"""In-flight request tracking for readiness and drain on stop."""

from __future__ import annotations

import asyncio

import structlog

log = structlog.get_logger(__name__)


class GracefulShutdown:
    """Counts active requests; the lifespan waits for them before teardown.

    A resolution can hold a render slot for tens of seconds, so the drain
    must finish before the render pool closes the browser underneath it.

    Usage::

        gs = GracefulShutdown()
        gs.request_started()
        try:
            ...
        finally:
            gs.request_finished()

        await gs.wait_for_drain(timeout=30.0)
    """

    def __init__(self) -> None:
        self._active = 0
        self._ready = False
        self._stopping = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def active_requests(self) -> int:
        return self._active

    @property
    def is_shutting_down(self) -> bool:
        return self._stopping

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._stopping

    def mark_ready(self) -> None:
        self._ready = True

    def request_started(self) -> None:
        self._active += 1
        self._idle.clear()

    def request_finished(self) -> None:
        self._active = max(0, self._active - 1)
        if self._active == 0:
            self._idle.set()

    async def wait_for_drain(self, *, timeout: float = 30.0) -> bool:
        """Stop accepting work and wait for active requests.

        Returns ``True`` when everything drained within *timeout*.
        """
        self._stopping = True
        if self._active == 0:
            return True
        log.info("shutdown_draining", active_requests=self._active)
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except TimeoutError:
            log.warning(
                "shutdown_drain_timeout",
                remaining_requests=self._active,
                timeout=timeout,
            )
            return False
        log.info("shutdown_drained")
        return True
