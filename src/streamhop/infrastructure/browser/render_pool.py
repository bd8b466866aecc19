"""Bounded render capacity on top of one shared Chromium process.

Chromium is launched lazily and shared; each render attempt takes one slot
from a counting semaphore and opens its own isolated context.  When no slot
frees up within ``queue_timeout`` the attempt is rejected with
:class:`RenderBusyError` instead of degrading every in-flight render.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

import structlog
from playwright.async_api import Browser, Playwright, async_playwright

from streamhop.domain.exceptions import RenderBusyError
from streamhop.infrastructure.stealth.injections import LAUNCH_ARGS

log = structlog.get_logger(__name__)


class RenderPool:
    """Counting pool of render slots sharing one browser.

    Usage::

        pool = RenderPool(max_concurrent=2, queue_timeout=10.0)
        async with pool.slot() as browser:
            context = await browser.new_context()
            ...
        await pool.cleanup()

    ``queue_timeout=0`` rejects immediately when all slots are taken.
    """

    def __init__(
        self,
        *,
        max_concurrent: int = 2,
        queue_timeout: float = 10.0,
        headless: bool = True,
        launch_args: Sequence[str] = LAUNCH_ARGS,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._max_concurrent = max_concurrent
        self._queue_timeout = queue_timeout
        self._headless = headless
        self._launch_args = list(launch_args)
        self._sem = asyncio.Semaphore(max_concurrent)
        self._pw: Playwright | None = None
        self._browser: Browser | None = None
        self._launch_lock = asyncio.Lock()
        self._in_use = 0
        self._waiting = 0
        self._rejected = 0

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @property
    def in_use(self) -> int:
        return self._in_use

    # ------------------------------------------------------------------
    # Browser lifecycle
    # ------------------------------------------------------------------

    async def warmup(self) -> Browser:
        """Ensure Chromium is running (double-checked lock, relaunch on crash)."""
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        async with self._launch_lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._pw is not None:
                try:
                    await self._pw.stop()
                except Exception:  # noqa: BLE001
                    log.debug("render_pool_stale_pw_stop_error", exc_info=True)
                self._pw = None
                self._browser = None

            self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(
                headless=self._headless,
                args=self._launch_args,
            )
            log.info("render_browser_launched", headless=self._headless)
            return self._browser

    async def cleanup(self) -> None:
        """Close the browser and Playwright; idempotent."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception:  # noqa: BLE001
                log.warning("render_browser_close_error", exc_info=True)
            self._browser = None
        if self._pw is not None:
            try:
                await self._pw.stop()
            except Exception:  # noqa: BLE001
                log.warning("render_pw_stop_error", exc_info=True)
            self._pw = None
        log.info("render_pool_cleaned_up")

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    async def _acquire(self) -> None:
        if self._queue_timeout <= 0:
            if self._sem.locked():
                self._rejected += 1
                raise RenderBusyError("all render slots are busy")
            await self._sem.acquire()
            return

        self._waiting += 1
        try:
            await asyncio.wait_for(self._sem.acquire(), timeout=self._queue_timeout)
        except TimeoutError as exc:
            self._rejected += 1
            log.warning(
                "render_pool_busy",
                max_concurrent=self._max_concurrent,
                queue_timeout=self._queue_timeout,
            )
            raise RenderBusyError(
                f"no render slot freed up within {self._queue_timeout:.1f}s"
            ) from exc
        finally:
            self._waiting -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[Browser]:
        """Hold one render slot; released on every exit path."""
        await self._acquire()
        self._in_use += 1
        try:
            yield await self.warmup()
        finally:
            self._in_use -= 1
            self._sem.release()

    def snapshot(self) -> dict[str, int]:
        return {
            "max_concurrent": self._max_concurrent,
            "in_use": self._in_use,
            "waiting": self._waiting,
            "rejected": self._rejected,
        }
