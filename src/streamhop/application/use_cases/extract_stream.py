"""Stream extraction use case (resolution orchestrator).

Request -> initial URL + chain -> Fetch -> (escalate) Render -> result.

Escalation is an explicit state machine::

    START -> FETCH_ATTEMPTED -> RENDER_ATTEMPTED -> DONE

``fetch`` runs only the HTTP strategy, ``render`` only the browser one and
``auto`` escalates to the browser when (and only when) fetch fails.  One
wall-clock budget bounds the whole call.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Protocol
from urllib.parse import urlsplit
from uuid import uuid4

import structlog

from streamhop.domain.entities.resolution import (
    ChainDefinition,
    Deadline,
    ErrorKind,
    ExtractionResult,
    HopTrace,
    ProgressCallback,
    ProgressEvent,
    ResolutionError,
    ResolutionRequest,
    ServerSpec,
    StrategyName,
)
from streamhop.domain.exceptions import InvalidRequestError
from streamhop.domain.ports.strategy import ResolutionStrategyPort

log = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Protocols: what this use case needs from its collaborators.
# ---------------------------------------------------------------------------


class _ResolutionConfig(Protocol):
    overall_timeout_seconds: float


class _ServerCatalog(Protocol):
    def get(self, name: str) -> ServerSpec: ...

    def chain_for_url(self, url: str) -> tuple[ServerSpec, ChainDefinition]: ...


class _MetricsRecorder(Protocol):
    def record_attempt(self, result: ExtractionResult, duration_ns: int) -> None: ...

    def record_escalation(self) -> None: ...

    def record_resolution(self, result: ExtractionResult) -> None: ...


class Stage(str, Enum):
    START = "start"
    FETCH_ATTEMPTED = "fetch_attempted"
    RENDER_ATTEMPTED = "render_attempted"
    DONE = "done"


@dataclass
class _Run:
    """Mutable bookkeeping of one execute() call (survives cancellation)."""

    server: ServerSpec
    chain: ChainDefinition
    initial_url: str
    trace: HopTrace = field(default_factory=HopTrace)
    stage: Stage = Stage.START
    current: StrategyName = "none"
    attempts: list[ExtractionResult] = field(default_factory=list)

    def advance(self, stage: Stage) -> None:
        log.debug("resolution_stage", from_stage=self.stage.value, to_stage=stage.value)
        self.stage = stage


def validate_request(
    request: ResolutionRequest, servers: _ServerCatalog
) -> tuple[ServerSpec, ChainDefinition, str]:
    """Check identifiers and pick ``(server, chain, initial_url)``.

    Raises:
        InvalidRequestError: Missing/malformed identifiers or unknown server.
    """
    if request.url is not None:
        parts = urlsplit(request.url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidRequestError(f"url must be absolute http(s): {request.url!r}")
        server, chain = servers.chain_for_url(request.url)
        return server, chain, request.url

    if not request.provider_id.strip():
        raise InvalidRequestError("a provider id is required")
    if request.media_kind == "episode":
        if not request.season or request.season < 1:
            raise InvalidRequestError("episode requests need a positive season")
        if not request.episode or request.episode < 1:
            raise InvalidRequestError("episode requests need a positive episode")

    server = servers.get(request.preferred_server)
    return server, server.chain, server.build_url(request)


class ExtractStreamUseCase:
    """Resolve a watch request into a playable manifest URL.

    Strategies know nothing about each other; the fallback policy lives
    here only.
    """

    def __init__(
        self,
        *,
        fetch: ResolutionStrategyPort,
        render: ResolutionStrategyPort,
        servers: _ServerCatalog,
        config: _ResolutionConfig,
        metrics: _MetricsRecorder | None = None,
    ) -> None:
        self._fetch = fetch
        self._render = render
        self._servers = servers
        self._overall_timeout = config.overall_timeout_seconds
        self._metrics = metrics

    async def execute(
        self,
        request: ResolutionRequest,
        *,
        progress: ProgressCallback | None = None,
    ) -> ExtractionResult:
        with structlog.contextvars.bound_contextvars(request_id=uuid4().hex[:12]):
            result = await self._execute(request, progress)
        if self._metrics is not None:
            self._metrics.record_resolution(result)
        return result

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _execute(
        self,
        request: ResolutionRequest,
        progress: ProgressCallback | None,
    ) -> ExtractionResult:
        start = time.perf_counter()
        try:
            server, chain, initial_url = validate_request(request, self._servers)
        except InvalidRequestError as exc:
            log.info("resolution_rejected", reason=str(exc))
            return ExtractionResult.failed("none", ErrorKind.INVALID_REQUEST, str(exc))

        run = _Run(server=server, chain=chain, initial_url=initial_url)
        log.info(
            "resolution_started",
            server=server.name,
            chain=f"{chain.name}@v{chain.version}",
            hint=request.strategy_hint,
            url=initial_url,
        )
        await self._notify(progress, "init", 5, f"Resolving via {server.name}")

        deadline = Deadline(self._overall_timeout)
        try:
            result = await asyncio.wait_for(
                self._run(run, request, deadline, progress),
                timeout=self._overall_timeout,
            )
        except TimeoutError:
            result = ExtractionResult(
                success=False,
                strategy_used=run.current,
                hop_trace=run.trace.snapshot(run.current),
                error=ResolutionError(
                    kind=ErrorKind.TIMEOUT,
                    message=f"resolution exceeded {self._overall_timeout:g}s budget",
                ),
                attempts=tuple(run.attempts),
            )
            log.warning(
                "resolution_timeout",
                strategy=run.current,
                stage=run.stage.value,
                hops_done=len(run.trace),
                budget_s=self._overall_timeout,
            )

        run.advance(Stage.DONE)
        result = replace(
            result,
            server=server.name,
            total_elapsed_ms=(time.perf_counter() - start) * 1000.0,
        )
        log.info(
            "resolution_finished",
            success=result.success,
            strategy=result.strategy_used,
            error_kind=result.error_kind.value if result.error_kind else None,
            hops=len(result.hop_trace),
            elapsed_ms=round(result.total_elapsed_ms, 1),
        )
        return result

    async def _run(
        self,
        run: _Run,
        request: ResolutionRequest,
        deadline: Deadline,
        progress: ProgressCallback | None,
    ) -> ExtractionResult:
        hint = request.strategy_hint

        if hint in ("auto", "fetch"):
            fetched = await self._attempt(self._fetch, run, deadline, progress)
            run.advance(Stage.FETCH_ATTEMPTED)
            if fetched.success or hint == "fetch":
                return fetched
            run.attempts.append(fetched)
            if self._metrics is not None:
                self._metrics.record_escalation()
            reason = fetched.error_kind.value if fetched.error_kind else "unknown"
            log.info("resolution_escalating", reason=reason)
            await self._notify(
                progress,
                "render",
                50,
                f"HTTP-only resolution failed ({reason}), switching to browser",
            )

        rendered = await self._attempt(self._render, run, deadline, progress)
        run.advance(Stage.RENDER_ATTEMPTED)
        return replace(rendered, attempts=tuple(run.attempts))

    async def _attempt(
        self,
        strategy: ResolutionStrategyPort,
        run: _Run,
        deadline: Deadline,
        progress: ProgressCallback | None,
    ) -> ExtractionResult:
        run.current = strategy.name
        started_ns = time.perf_counter_ns()
        result = await strategy.resolve(
            run.initial_url,
            run.chain,
            trace=run.trace,
            deadline=deadline,
            progress=progress,
        )
        if self._metrics is not None:
            self._metrics.record_attempt(result, time.perf_counter_ns() - started_ns)
        return result

    async def _notify(
        self,
        progress: ProgressCallback | None,
        phase: str,
        percentage: int,
        message: str,
    ) -> None:
        if progress is None:
            return
        try:
            await progress(ProgressEvent(phase=phase, percentage=percentage, message=message))
        except Exception:  # noqa: BLE001
            log.debug("progress_callback_failed", phase=phase, exc_info=True)
