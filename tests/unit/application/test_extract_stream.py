"""Tests for ExtractStreamUseCase (fetch -> render escalation)."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from streamhop.application.use_cases import ExtractStreamUseCase, validate_request
from streamhop.domain.entities import (
    ErrorKind,
    ExtractionResult,
    HopResult,
    ProgressEvent,
    ResolutionRequest,
)
from streamhop.domain.exceptions import InvalidRequestError, UnknownServerError
from streamhop.infrastructure.chain.definitions import VIDSRC_XYZ_CHAIN, ServerRegistry
from streamhop.infrastructure.metrics import MetricsCollector


def _strategy(name: str, result: ExtractionResult | None = None) -> MagicMock:
    strategy = MagicMock()
    strategy.name = name
    strategy.resolve = AsyncMock(return_value=result)
    return strategy


def _failed(name: str, kind: ErrorKind) -> ExtractionResult:
    return ExtractionResult.failed(name, kind, f"{name} failed")  # type: ignore[arg-type]


def _use_case(
    fetch: MagicMock,
    render: MagicMock,
    *,
    timeout: float = 60.0,
    metrics: Any = None,
) -> ExtractStreamUseCase:
    return ExtractStreamUseCase(
        fetch=fetch,
        render=render,
        servers=ServerRegistry(),
        config=SimpleNamespace(overall_timeout_seconds=timeout),
        metrics=metrics,
    )


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------


class TestValidateRequest:
    def test_movie(self, movie_request) -> None:
        server, chain, url = validate_request(movie_request, ServerRegistry())
        assert server.name == "vidsrc.xyz"
        assert chain is VIDSRC_XYZ_CHAIN
        assert url == "https://vidsrc.xyz/embed/movie?tmdb=550"

    def test_direct_url(self) -> None:
        request = ResolutionRequest(media_kind="movie", url="https://embed.su/embed/movie/550")
        server, _, url = validate_request(request, ServerRegistry())
        assert server.name == "embed.su"
        assert url == "https://embed.su/embed/movie/550"

    @pytest.mark.parametrize(
        "request_",
        [
            ResolutionRequest(media_kind="movie", provider_id=""),
            ResolutionRequest(media_kind="movie", provider_id="   "),
            ResolutionRequest(media_kind="episode", provider_id="1399", season=1),
            ResolutionRequest(media_kind="episode", provider_id="1399", season=0, episode=1),
            ResolutionRequest(media_kind="episode", provider_id="1399", season=1, episode=-2),
            ResolutionRequest(media_kind="movie", url="javascript:alert(1)"),
            ResolutionRequest(media_kind="movie", url="/embed/movie/550"),
        ],
    )
    def test_rejected(self, request_: ResolutionRequest) -> None:
        with pytest.raises(InvalidRequestError):
            validate_request(request_, ServerRegistry())

    def test_unknown_server(self) -> None:
        request = ResolutionRequest(
            media_kind="movie", provider_id="550", preferred_server="nope.example"
        )
        with pytest.raises(UnknownServerError):
            validate_request(request, ServerRegistry())

    def test_direct_url_without_chain(self) -> None:
        request = ResolutionRequest(media_kind="movie", url="https://example.com/embed/550")
        with pytest.raises(UnknownServerError):
            validate_request(request, ServerRegistry())


# ---------------------------------------------------------------------------
# Escalation policy
# ---------------------------------------------------------------------------


class TestEscalation:
    @pytest.mark.asyncio()
    async def test_fetch_success_never_renders(self, movie_request, make_success) -> None:
        fetch = _strategy("fetch", make_success("fetch"))
        render = _strategy("render")

        result = await _use_case(fetch, render).execute(movie_request)

        assert result.success is True
        assert result.strategy_used == "fetch"
        assert result.server == "vidsrc.xyz"
        assert result.attempts == ()
        render.resolve.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_escalates_on_fetch_failure(self, movie_request, make_success) -> None:
        fetch = _strategy("fetch", _failed("fetch", ErrorKind.RENDER_REQUIRED))
        render = _strategy("render", make_success("render"))

        result = await _use_case(fetch, render).execute(movie_request)

        assert result.success is True
        assert result.strategy_used == "render"
        assert len(result.attempts) == 1
        assert result.attempts[0].error_kind is ErrorKind.RENDER_REQUIRED
        assert result.total_elapsed_ms > 0

    @pytest.mark.asyncio()
    async def test_both_fail(self, movie_request) -> None:
        fetch = _strategy("fetch", _failed("fetch", ErrorKind.PATTERN_NOT_FOUND))
        render = _strategy("render", _failed("render", ErrorKind.CHALLENGE_UNRESOLVED))

        result = await _use_case(fetch, render).execute(movie_request)

        assert result.success is False
        assert result.strategy_used == "render"
        assert result.error_kind is ErrorKind.CHALLENGE_UNRESOLVED
        assert result.attempts[0].strategy_used == "fetch"

    @pytest.mark.asyncio()
    async def test_fetch_hint_does_not_escalate(self) -> None:
        fetch = _strategy("fetch", _failed("fetch", ErrorKind.RENDER_REQUIRED))
        render = _strategy("render")
        request = ResolutionRequest(media_kind="movie", provider_id="550", strategy_hint="fetch")

        result = await _use_case(fetch, render).execute(request)

        assert result.error_kind is ErrorKind.RENDER_REQUIRED
        render.resolve.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_render_hint_skips_fetch(self, make_success) -> None:
        fetch = _strategy("fetch")
        render = _strategy("render", make_success("render"))
        request = ResolutionRequest(
            media_kind="movie", provider_id="550", strategy_hint="render"
        )

        result = await _use_case(fetch, render).execute(request)

        assert result.strategy_used == "render"
        fetch.resolve.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_strategies_share_one_trace(self, movie_request, make_success) -> None:
        fetch = _strategy("fetch", _failed("fetch", ErrorKind.RENDER_REQUIRED))
        render = _strategy("render", make_success("render"))

        await _use_case(fetch, render).execute(movie_request)

        fetch_trace = fetch.resolve.await_args.kwargs["trace"]
        render_trace = render.resolve.await_args.kwargs["trace"]
        assert fetch_trace is render_trace
        assert fetch.resolve.await_args.args == (
            "https://vidsrc.xyz/embed/movie?tmdb=550",
            VIDSRC_XYZ_CHAIN,
        )

    @pytest.mark.asyncio()
    async def test_invalid_request_short_circuits(self) -> None:
        fetch = _strategy("fetch")
        render = _strategy("render")
        request = ResolutionRequest(media_kind="movie", provider_id="")

        result = await _use_case(fetch, render).execute(request)

        assert result.error_kind is ErrorKind.INVALID_REQUEST
        assert result.strategy_used == "none"
        fetch.resolve.assert_not_awaited()
        render.resolve.assert_not_awaited()


# ---------------------------------------------------------------------------
# Time budget
# ---------------------------------------------------------------------------


class TestOverallTimeout:
    @pytest.mark.asyncio()
    async def test_timeout_keeps_partial_render_trace(self, movie_request) -> None:
        fetch = _strategy("fetch", _failed("fetch", ErrorKind.RENDER_REQUIRED))
        render = _strategy("render")

        async def slow_render(url, chain, *, trace, deadline, progress):
            trace.append(
                HopResult(hop=chain.hops[0], strategy="render", source_url=url, matched_url=url)
            )
            await asyncio.sleep(10)

        render.resolve = AsyncMock(side_effect=slow_render)

        result = await _use_case(fetch, render, timeout=0.1).execute(movie_request)

        assert result.success is False
        assert result.error_kind is ErrorKind.TIMEOUT
        assert result.strategy_used == "render"
        assert [h.hop.name for h in result.hop_trace] == ["embed"]
        assert len(result.attempts) == 1
        assert result.server == "vidsrc.xyz"

    @pytest.mark.asyncio()
    async def test_deadline_passed_to_strategies(self, movie_request, make_success) -> None:
        fetch = _strategy("fetch", make_success("fetch"))
        render = _strategy("render")

        await _use_case(fetch, render, timeout=30.0).execute(movie_request)

        deadline = fetch.resolve.await_args.kwargs["deadline"]
        assert 0 < deadline.remaining() <= 30.0


# ---------------------------------------------------------------------------
# Progress and metrics
# ---------------------------------------------------------------------------


class TestProgressAndMetrics:
    @pytest.mark.asyncio()
    async def test_progress_events(self, movie_request, make_success) -> None:
        fetch = _strategy("fetch", _failed("fetch", ErrorKind.RENDER_REQUIRED))
        render = _strategy("render", make_success("render"))
        events: list[ProgressEvent] = []

        async def on_progress(event: ProgressEvent) -> None:
            events.append(event)

        await _use_case(fetch, render).execute(movie_request, progress=on_progress)

        assert [(e.phase, e.percentage) for e in events] == [("init", 5), ("render", 50)]
        assert "RenderRequired" in events[1].message
        assert render.resolve.await_args.kwargs["progress"] is on_progress

    @pytest.mark.asyncio()
    async def test_failing_progress_callback_is_ignored(
        self, movie_request, make_success
    ) -> None:
        fetch = _strategy("fetch", make_success("fetch"))
        render = _strategy("render")

        result = await _use_case(fetch, render).execute(
            movie_request, progress=AsyncMock(side_effect=RuntimeError("client gone"))
        )

        assert result.success is True

    @pytest.mark.asyncio()
    async def test_metrics_recorded(self, movie_request, make_success) -> None:
        fetch = _strategy("fetch", _failed("fetch", ErrorKind.RENDER_REQUIRED))
        render = _strategy("render", make_success("render"))
        metrics = MetricsCollector()

        await _use_case(fetch, render, metrics=metrics).execute(movie_request)

        snap = metrics.snapshot()
        assert snap["requests"] == 1
        assert snap["resolved"] == 1
        assert snap["escalations"] == 1
        assert snap["strategies"]["fetch"]["failures"] == 1
        assert snap["strategies"]["render"]["successes"] == 1
