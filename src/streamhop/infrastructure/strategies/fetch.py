"""HTTP-only hop chain resolution.

Walks the chain with plain GET requests and the pattern matcher.  No script
execution: a hop flagged ``requires_render`` or a body showing challenge
markers ends the attempt with ``RenderRequired`` so the orchestrator can
escalate.
"""

from __future__ import annotations

import asyncio
import time

import httpx
import structlog

from streamhop.domain.entities.resolution import (
    ChainDefinition,
    Deadline,
    ErrorKind,
    ExtractionResult,
    HopResult,
    HopSpec,
    HopTrace,
    ProgressCallback,
    StrategyName,
)
from streamhop.domain.entities.rules import Candidate, NotFound
from streamhop.domain.exceptions import HopError
from streamhop.infrastructure.chain.matcher import find_candidate, stream_type_for
from streamhop.infrastructure.stealth.challenge import is_challenge_html
from streamhop.infrastructure.strategies._common import (
    DEFAULT_USER_AGENT,
    elapsed_ms,
    emit_progress,
    referer_for,
    stream_headers,
)

log = structlog.get_logger(__name__)

_PROGRESS_SPAN = (10, 45)

_BROWSER_HEADERS: dict[str, str] = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}


class FetchStrategy:
    """Resolves a chain using only HTTP requests.

    Usage::

        strategy = FetchStrategy(http_client=client, hop_timeout=10.0)
        result = await strategy.resolve(url, VIDSRC_XYZ_CHAIN)
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        user_agent: str = DEFAULT_USER_AGENT,
        hop_timeout: float = 10.0,
        max_body_bytes: int = 2_000_000,
    ) -> None:
        self._client = http_client
        self._user_agent = user_agent
        self._hop_timeout = hop_timeout
        self._max_body_bytes = max_body_bytes

    @property
    def name(self) -> StrategyName:
        return "fetch"

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
        attempt: list[HopResult] = []
        start = time.perf_counter()
        url = initial_url
        previous: str | None = None

        def _record(result: HopResult) -> None:
            attempt.append(result)
            trace.append(result)

        for index, hop in enumerate(chain.hops):
            if hop.requires_render:
                log.info("fetch_render_required", chain=chain.name, hop=hop.name, url=url)
                return ExtractionResult.failed(
                    "fetch",
                    ErrorKind.RENDER_REQUIRED,
                    f"hop {hop.name!r} requires script execution",
                    hop_trace=tuple(attempt),
                    total_elapsed_ms=elapsed_ms(start),
                )

            await emit_progress(
                progress,
                phase="fetch",
                span=_PROGRESS_SPAN,
                index=index,
                total=len(chain),
                message=f"Fetching {hop.name}",
            )

            hop_start = time.perf_counter()
            try:
                candidate, size = await self._run_hop(hop, url, previous, deadline)
            except HopError as exc:
                _record(
                    HopResult(
                        hop=hop,
                        strategy="fetch",
                        source_url=url,
                        raw_content_size=exc.content_size,
                        elapsed_ms=elapsed_ms(hop_start),
                        error=exc.to_error(),
                    )
                )
                log.info(
                    "fetch_hop_failed",
                    chain=chain.name,
                    hop=hop.name,
                    kind=exc.kind.value,
                    error=str(exc),
                )
                return ExtractionResult.failed(
                    "fetch",
                    exc.kind,
                    f"{hop.name}: {exc}",
                    hop_trace=tuple(attempt),
                    total_elapsed_ms=elapsed_ms(start),
                )

            _record(
                HopResult(
                    hop=hop,
                    strategy="fetch",
                    source_url=url,
                    raw_content_size=size,
                    matched_url=candidate.url,
                    match_method=candidate.method,
                    elapsed_ms=elapsed_ms(hop_start),
                )
            )
            log.debug(
                "fetch_hop_matched",
                hop=hop.name,
                rule=candidate.rule,
                method=candidate.method,
                matched=candidate.url,
            )

            if hop.terminal:
                return ExtractionResult(
                    success=True,
                    strategy_used="fetch",
                    stream_url=candidate.url,
                    stream_type=stream_type_for(candidate.url),  # type: ignore[arg-type]
                    hop_trace=tuple(attempt),
                    total_elapsed_ms=elapsed_ms(start),
                    headers=stream_headers(previous, self._user_agent),
                )

            previous, url = url, candidate.url

        # ChainDefinition guarantees a terminal last hop.
        raise AssertionError("chain ended without a terminal hop")  # pragma: no cover

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _headers_for(self, hop: HopSpec, previous: str | None) -> dict[str, str]:
        headers = {"User-Agent": self._user_agent, **_BROWSER_HEADERS}
        referer = referer_for(hop, previous)
        if referer:
            headers["Referer"] = referer
            headers["Sec-Fetch-Dest"] = "iframe"
            headers["Sec-Fetch-Site"] = "cross-site"
        else:
            headers["Sec-Fetch-Dest"] = "document"
            headers["Sec-Fetch-Site"] = "none"
        headers["Sec-Fetch-Mode"] = "navigate"
        return headers

    async def _get(
        self, url: str, headers: dict[str, str], timeout: float
    ) -> tuple[int, str, str]:
        """GET *url*, reading at most ``max_body_bytes``.

        Returns ``(status, text, final_url)``.
        """
        async with self._client.stream(
            "GET", url, headers=headers, timeout=timeout
        ) as response:
            chunks: list[bytes] = []
            total = 0
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                total += len(chunk)
                if total >= self._max_body_bytes:
                    break
            text = b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")
            return response.status_code, text, str(response.url)

    async def _run_hop(
        self,
        hop: HopSpec,
        url: str,
        previous: str | None,
        deadline: Deadline | None,
    ) -> tuple[Candidate, int]:
        timeout = self._hop_timeout if deadline is None else deadline.bound(self._hop_timeout)
        if timeout <= 0:
            raise HopError(ErrorKind.TIMEOUT, "overall time budget exhausted")

        try:
            status, body, final_url = await asyncio.wait_for(
                self._get(url, self._headers_for(hop, previous), timeout),
                timeout=timeout,
            )
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise HopError(ErrorKind.TIMEOUT, f"timed out after {timeout:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise HopError(
                ErrorKind.UPSTREAM_HTTP_ERROR, f"{type(exc).__name__}: {exc}"
            ) from exc

        if is_challenge_html(status, body):
            raise HopError(
                ErrorKind.RENDER_REQUIRED,
                f"challenge page served (HTTP {status})",
                content_size=len(body),
            )
        if not 200 <= status < 300:
            raise HopError(
                ErrorKind.UPSTREAM_HTTP_ERROR,
                f"HTTP {status}",
                content_size=len(body),
            )

        outcome = find_candidate(body, hop.rules, source_url=final_url)
        if isinstance(outcome, NotFound):
            raise HopError(
                ErrorKind.PATTERN_NOT_FOUND,
                f"{outcome.reason} ({outcome.rules_tried} rules)",
                content_size=len(body),
            )
        return outcome, len(body)
