"""Rendering-engine hop chain resolution (Playwright + stealth).

One attempt = one render slot, one fresh fingerprint, one isolated browser
context.  Per hop: navigate, wait for the hop's characteristic element,
wait out challenges, behave like a reader, press play if there is a play
affordance, then extract through two channels:

1. DOM content (main document + child frames) through the pattern matcher
2. URLs of network responses captured passively while the hop was open

The context and page are closed and the slot is released on every exit
path, including cancellation.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import structlog
from playwright.async_api import BrowserContext, Page, Response, Route
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright_stealth import Stealth

from streamhop.domain.entities.resolution import (
    ChainDefinition,
    Deadline,
    ErrorKind,
    ExtractionResult,
    Fingerprint,
    HopResult,
    HopSpec,
    HopTrace,
    ProgressCallback,
    StrategyName,
)
from streamhop.domain.entities.rules import Candidate, NetworkCaptureRule, NotFound
from streamhop.domain.exceptions import HopError, RenderBusyError
from streamhop.domain.ports.render_pool import RenderPoolPort
from streamhop.infrastructure.browser.proxy import ProxyEndpoint, ProxyRotator
from streamhop.infrastructure.chain.matcher import (
    find_candidate,
    match_network,
    stream_type_for,
)
from streamhop.infrastructure.stealth.behavior import BehaviorSimulator
from streamhop.infrastructure.stealth.challenge import ChallengeDetector
from streamhop.infrastructure.stealth.fingerprint import (
    FingerprintGenerator,
    context_options,
    viewport_for,
)
from streamhop.infrastructure.stealth.injections import build_init_script
from streamhop.infrastructure.strategies._common import (
    elapsed_ms,
    emit_progress,
    referer_for,
    stream_headers,
)

log = structlog.get_logger(__name__)

_PROGRESS_SPAN = (50, 95)

_BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "stylesheet", "texttrack"})

_CAPTURE_URL_TOKENS = (".m3u8", "/master", ".mp4")
_CAPTURE_CONTENT_TYPES = ("mpegurl", "m3u8", "video/mp4")

_PROXY_ERROR_TOKENS = ("ERR_PROXY", "ERR_TUNNEL", "ERR_SOCKS")

# Part of the hop budget kept back from the challenge wait for extraction.
_CHALLENGE_RESERVE_SECONDS = 2.0


async def _block_resources(route: Route) -> None:
    """Abort requests for heavy resource types (media stays: players request it)."""
    if route.request.resource_type in _BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


def _is_stream_response(url: str, content_type: str) -> bool:
    lowered = url.lower()
    if any(token in lowered for token in _CAPTURE_URL_TOKENS):
        return True
    ct = content_type.lower()
    return any(token in ct for token in _CAPTURE_CONTENT_TYPES)


@dataclass
class _HopStage:
    """Which part of a rendered hop is running (names a hop timeout)."""

    name: str = "navigate"


@dataclass(frozen=True)
class RenderSettings:
    """Timing knobs of the render strategy (seconds)."""

    hop_timeout: float = 50.0
    navigation_timeout: float = 15.0
    selector_timeout: float = 8.0
    reading_seconds: float = 2.0
    network_wait: float = 4.0
    block_resources: bool = True
    tab_switch: bool = False


class RenderStrategy:
    """Resolves a chain by driving a real browser.

    Usage::

        strategy = RenderStrategy(pool=render_pool, detector=ChallengeDetector())
        result = await strategy.resolve(url, EMBED_SU_CHAIN)
    """

    def __init__(
        self,
        *,
        pool: RenderPoolPort,
        fingerprints: FingerprintGenerator | None = None,
        detector: ChallengeDetector | None = None,
        proxies: ProxyRotator | None = None,
        settings: RenderSettings | None = None,
    ) -> None:
        self._pool = pool
        self._fingerprints = fingerprints or FingerprintGenerator()
        self._detector = detector or ChallengeDetector()
        self._proxies = proxies
        self._settings = settings or RenderSettings()

    @property
    def name(self) -> StrategyName:
        return "render"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(
        self,
        initial_url: str,
        chain: ChainDefinition,
        *,
        trace: HopTrace | None = None,
        deadline: Deadline | None = None,
        progress: ProgressCallback | None = None,
    ) -> ExtractionResult:
        trace = trace if trace is not None else HopTrace()
        start = time.perf_counter()
        proxy: ProxyEndpoint | None = None

        try:
            async with self._pool.slot() as browser:
                fingerprint = self._fingerprints.generate()
                proxy = self._proxies.next() if self._proxies else None
                log.info(
                    "render_attempt_started",
                    chain=chain.name,
                    platform=fingerprint.platform_family,
                    chrome=fingerprint.browser_version,
                    proxy=proxy.server if proxy else None,
                )
                context = await self._open_context(browser, fingerprint, proxy)
                try:
                    return await self._walk(
                        context,
                        fingerprint,
                        proxy,
                        initial_url,
                        chain,
                        trace=trace,
                        deadline=deadline,
                        progress=progress,
                        start=start,
                    )
                finally:
                    await self._close_context(context)
        except RenderBusyError as exc:
            return ExtractionResult.failed(
                "render",
                ErrorKind.BUSY,
                str(exc),
                total_elapsed_ms=elapsed_ms(start),
            )
        except PlaywrightError as exc:
            # Browser launch, context or page creation failed (no hop ran).
            self._bench_if_proxy_error(proxy, exc.message)
            kind = (
                ErrorKind.TIMEOUT
                if isinstance(exc, PlaywrightTimeoutError)
                else ErrorKind.UPSTREAM_HTTP_ERROR
            )
            log.warning(
                "render_session_failed",
                chain=chain.name,
                kind=kind.value,
                proxy=proxy.server if proxy else None,
                error=exc.message,
            )
            return ExtractionResult.failed(
                "render",
                kind,
                f"render session failed: {exc.message}",
                total_elapsed_ms=elapsed_ms(start),
            )

    def _bench_if_proxy_error(self, proxy: ProxyEndpoint | None, message: str) -> None:
        if proxy is None or self._proxies is None:
            return
        if any(token in message for token in _PROXY_ERROR_TOKENS):
            self._proxies.mark_bad(proxy)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def _open_context(
        self,
        browser: Any,
        fingerprint: Fingerprint,
        proxy: ProxyEndpoint | None,
    ) -> BrowserContext:
        options = context_options(fingerprint)
        if proxy is not None:
            options["proxy"] = proxy.to_playwright()
        context = await browser.new_context(**options)
        try:
            await Stealth().apply_stealth_async(context)
            await context.add_init_script(build_init_script(fingerprint))
            if self._settings.block_resources:
                await context.route("**/*", _block_resources)
        except BaseException:
            await self._close_context(context)
            raise
        return context

    async def _close_context(self, context: BrowserContext) -> None:
        try:
            await context.close()
        except PlaywrightError:
            log.debug("render_context_close_error", exc_info=True)

    async def _walk(
        self,
        context: BrowserContext,
        fingerprint: Fingerprint,
        proxy: ProxyEndpoint | None,
        initial_url: str,
        chain: ChainDefinition,
        *,
        trace: HopTrace,
        deadline: Deadline | None,
        progress: ProgressCallback | None,
        start: float,
    ) -> ExtractionResult:
        attempt: list[HopResult] = []
        captured: list[str] = []

        def _on_response(response: Response) -> None:
            content_type = response.headers.get("content-type", "")
            if _is_stream_response(response.url, content_type):
                captured.append(response.url)

        page = await context.new_page()
        page.on("response", _on_response)
        url = initial_url
        previous: str | None = None
        try:
            for index, hop in enumerate(chain.hops):
                await emit_progress(
                    progress,
                    phase="render",
                    span=_PROGRESS_SPAN,
                    index=index,
                    total=len(chain),
                    message=f"Rendering {hop.name}",
                )
                hop_start = time.perf_counter()
                try:
                    candidate, size = await self._run_hop(
                        context, page, fingerprint, hop, url, previous, captured, deadline
                    )
                except HopError as exc:
                    self._bench_if_proxy_error(proxy, str(exc))
                    result = HopResult(
                        hop=hop,
                        strategy="render",
                        source_url=url,
                        raw_content_size=exc.content_size,
                        elapsed_ms=elapsed_ms(hop_start),
                        error=exc.to_error(),
                    )
                    attempt.append(result)
                    trace.append(result)
                    log.info(
                        "render_hop_failed",
                        chain=chain.name,
                        hop=hop.name,
                        kind=exc.kind.value,
                        error=str(exc),
                    )
                    return ExtractionResult.failed(
                        "render",
                        exc.kind,
                        f"{hop.name}: {exc}",
                        hop_trace=tuple(attempt),
                        total_elapsed_ms=elapsed_ms(start),
                    )

                result = HopResult(
                    hop=hop,
                    strategy="render",
                    source_url=url,
                    raw_content_size=size,
                    matched_url=candidate.url,
                    match_method=candidate.method,
                    elapsed_ms=elapsed_ms(hop_start),
                )
                attempt.append(result)
                trace.append(result)
                log.debug(
                    "render_hop_matched",
                    hop=hop.name,
                    rule=candidate.rule,
                    method=candidate.method,
                    matched=candidate.url,
                )

                if hop.terminal:
                    return ExtractionResult(
                        success=True,
                        strategy_used="render",
                        stream_url=candidate.url,
                        stream_type=stream_type_for(candidate.url),  # type: ignore[arg-type]
                        hop_trace=tuple(attempt),
                        total_elapsed_ms=elapsed_ms(start),
                        headers=stream_headers(previous, fingerprint.user_agent),
                    )
                previous, url = url, candidate.url

            raise AssertionError("chain ended without a terminal hop")  # pragma: no cover
        finally:
            if not page.is_closed():
                try:
                    await page.close()
                except PlaywrightError:
                    log.debug("render_page_close_error", exc_info=True)

    # ------------------------------------------------------------------
    # Hops
    # ------------------------------------------------------------------

    async def _run_hop(
        self,
        context: BrowserContext,
        page: Page,
        fingerprint: Fingerprint,
        hop: HopSpec,
        url: str,
        previous: str | None,
        captured: list[str],
        deadline: Deadline | None,
    ) -> tuple[Candidate, int]:
        timeout = (
            self._settings.hop_timeout
            if deadline is None
            else deadline.bound(self._settings.hop_timeout)
        )
        if timeout <= 0:
            raise HopError(ErrorKind.TIMEOUT, "overall time budget exhausted")

        stage = _HopStage()
        if hop.terminal:
            body = self._verify_manifest(context, hop, url, previous, timeout)
        else:
            body = self._render_hop(
                page, fingerprint, hop, url, previous, captured, timeout, stage
            )

        try:
            return await asyncio.wait_for(body, timeout=timeout)
        except (TimeoutError, PlaywrightTimeoutError) as exc:
            if stage.name == "challenge":
                raise HopError(
                    ErrorKind.CHALLENGE_UNRESOLVED,
                    f"challenge still up when the {timeout:.1f}s hop budget ran out",
                ) from exc
            raise HopError(ErrorKind.TIMEOUT, f"timed out after {timeout:.1f}s") from exc
        except PlaywrightError as exc:
            raise HopError(ErrorKind.UPSTREAM_HTTP_ERROR, exc.message) from exc

    async def _verify_manifest(
        self,
        context: BrowserContext,
        hop: HopSpec,
        url: str,
        previous: str | None,
        timeout: float,
    ) -> tuple[Candidate, int]:
        """Fetch the terminal URL with the session's cookies and referer."""
        headers: dict[str, str] = {}
        referer = referer_for(hop, previous)
        if referer:
            headers["Referer"] = referer
        response = await context.request.get(url, headers=headers, timeout=timeout * 1000)
        body = await response.text()
        if not response.ok:
            raise HopError(
                ErrorKind.UPSTREAM_HTTP_ERROR,
                f"HTTP {response.status}",
                content_size=len(body),
            )
        outcome = find_candidate(body, hop.rules, source_url=url)
        if isinstance(outcome, NotFound):
            raise HopError(
                ErrorKind.PATTERN_NOT_FOUND,
                "terminal URL did not serve a manifest",
                content_size=len(body),
            )
        return outcome, len(body)

    async def _render_hop(
        self,
        page: Page,
        fingerprint: Fingerprint,
        hop: HopSpec,
        url: str,
        previous: str | None,
        captured: list[str],
        timeout: float,
        stage: _HopStage,
    ) -> tuple[Candidate, int]:
        hop_started = time.monotonic()

        def _remaining() -> float:
            return max(0.0, timeout - (time.monotonic() - hop_started))

        captured.clear()
        response = await page.goto(
            url,
            referer=referer_for(hop, previous),
            wait_until="domcontentloaded",
            timeout=min(self._settings.navigation_timeout, timeout) * 1000,
        )

        if hop.wait_selector:
            try:
                await page.wait_for_selector(
                    hop.wait_selector,
                    state="attached",
                    timeout=min(self._settings.selector_timeout, _remaining()) * 1000,
                )
            except PlaywrightTimeoutError:
                log.debug("render_wait_selector_missing", hop=hop.name, selector=hop.wait_selector)

        # The wait ends before the hop budget so an unsolved challenge is reported as such.
        stage.name = "challenge"
        remaining = _remaining()
        challenge = await self._detector.check(
            page, timeout=remaining - min(_CHALLENGE_RESERVE_SECONDS, remaining / 4)
        )
        stage.name = "extract"
        if challenge.detected and not challenge.resolved:
            raise HopError(
                ErrorKind.CHALLENGE_UNRESOLVED,
                f"{challenge.kind} challenge did not clear after {challenge.polls} polls",
            )
        if not challenge.detected and response is not None and response.status >= 400:
            raise HopError(ErrorKind.UPSTREAM_HTTP_ERROR, f"HTTP {response.status}")

        behavior = BehaviorSimulator(page, viewport=viewport_for(fingerprint))
        if self._settings.reading_seconds > 0:
            await behavior.simulate_reading(
                min(self._settings.reading_seconds, _remaining() / 4)
            )
        if self._settings.tab_switch:
            await behavior.simulate_tab_switch()
        await self._press_play(page, hop, behavior)

        # Channel 1: DOM
        content = await self._page_content(page)
        dom = find_candidate(content, hop.rules, source_url=page.url or url)
        if isinstance(dom, Candidate) and dom.method != "constructed":
            return dom, len(content)

        # Channel 2: captured network responses
        network = await self._await_network(hop, captured, _remaining)
        if isinstance(network, Candidate):
            return network, len(content)

        if isinstance(dom, Candidate):
            log.info("render_constructed_fallback", hop=hop.name, url=dom.url)
            return dom, len(content)

        raise HopError(
            ErrorKind.PATTERN_NOT_FOUND,
            f"no DOM or network match ({len(captured)} stream responses captured)",
            content_size=len(content),
        )

    async def _press_play(self, page: Page, hop: HopSpec, behavior: BehaviorSimulator) -> bool:
        """Hover-then-click the first visible play affordance; absence is fine."""
        for selector in hop.play_selectors:
            locator = page.locator(selector).first
            try:
                if not await locator.is_visible():
                    continue
            except PlaywrightError:
                continue
            if await behavior.hover_and_click(locator):
                log.debug("render_play_clicked", hop=hop.name, selector=selector)
                return True
        return False

    async def _page_content(self, page: Page) -> str:
        """Main document plus every readable child frame."""
        parts = [await page.content()]
        for frame in page.frames:
            if frame is page.main_frame:
                continue
            parts.append(f'<iframe src="{frame.url}"></iframe>')
            try:
                parts.append(await frame.content())
            except PlaywrightError:
                log.debug("render_frame_unreadable", frame_url=frame.url)
        return "\n".join(parts)

    async def _await_network(
        self,
        hop: HopSpec,
        captured: list[str],
        remaining: Any,
    ) -> Candidate | NotFound:
        """Give late player requests up to ``network_wait`` seconds to show up."""
        outcome = match_network(captured, hop.rules)
        if isinstance(outcome, Candidate):
            return outcome
        if not any(isinstance(r, NetworkCaptureRule) for r in hop.rules):
            return outcome

        waited = 0.0
        budget = min(self._settings.network_wait, remaining())
        while waited < budget:
            await asyncio.sleep(0.25)
            waited += 0.25
            outcome = match_network(captured, hop.rules)
            if isinstance(outcome, Candidate):
                return outcome
        return outcome
