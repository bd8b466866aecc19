"""Stream extraction endpoints (JSON, SSE progress, server list)."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import suppress
from typing import Any, cast

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from streamhop.application.use_cases.extract_stream import ExtractStreamUseCase
from streamhop.domain.entities.resolution import (
    ErrorKind,
    ExtractionResult,
    ProgressEvent,
    ResolutionRequest,
)
from streamhop.domain.exceptions import InvalidRequestError
from streamhop.infrastructure.config import AppConfig
from streamhop.infrastructure.graceful_shutdown import GracefulShutdown
from streamhop.interfaces.api.extract.presenter import (
    present_result,
    present_server,
    status_for,
)
from streamhop.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["extract"])

_MEDIA_KINDS = {"movie": "movie", "tv": "episode", "series": "episode", "episode": "episode"}
_METHODS = ("auto", "fetch", "render")
_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def _optional_int(params: Mapping[str, Any], name: str) -> int | None:
    raw = params.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"{name} must be an integer, got {raw!r}") from exc


def parse_request(params: Mapping[str, Any], config: AppConfig) -> ResolutionRequest:
    """Map public parameters onto a ResolutionRequest.

    Accepts ``url`` or ``mediaType`` + ``movieId``/``providerId`` (+
    ``seasonId``/``episodeId`` for tv), optional ``server`` and ``method``.
    """
    media_type = str(params.get("mediaType") or "movie").lower()
    media_kind = _MEDIA_KINDS.get(media_type)
    if media_kind is None:
        raise InvalidRequestError(f"mediaType must be movie or tv, got {media_type!r}")

    method = str(params.get("method") or config.resolution.default_method).lower()
    if method not in _METHODS:
        raise InvalidRequestError(f"method must be one of {', '.join(_METHODS)}")

    provider_id = params.get("providerId") or params.get("movieId") or params.get("tmdbId") or ""
    url = params.get("url") or None

    return ResolutionRequest(
        media_kind=media_kind,  # type: ignore[arg-type]
        provider_id=str(provider_id).strip(),
        season=_optional_int(params, "seasonId"),
        episode=_optional_int(params, "episodeId"),
        preferred_server=str(params.get("server") or config.resolution.default_server),
        strategy_hint=method,  # type: ignore[arg-type]
        url=str(url) if url else None,
    )


def _invalid(message: str) -> JSONResponse:
    result = ExtractionResult.failed("none", ErrorKind.INVALID_REQUEST, message)
    return JSONResponse(status_code=400, content=present_result(result))


async def _params_of(request: Request) -> dict[str, Any]:
    params: dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidRequestError("request body must be JSON") from exc
        if not isinstance(body, dict):
            raise InvalidRequestError("request body must be a JSON object")
        params.update(body)
    return params


@router.api_route("/extract", methods=["GET", "POST"])
async def extract(request: Request) -> JSONResponse:
    """Resolve a title (or an explicit embed URL) into a playable stream URL."""
    state = cast(AppState, request.app.state)
    try:
        resolution_request = parse_request(await _params_of(request), state.config)
    except InvalidRequestError as exc:
        return _invalid(str(exc))

    result = await state.extract_uc.execute(resolution_request)
    payload = present_result(result, state.servers.names)
    return JSONResponse(status_code=status_for(result), content=payload)


def _sse(data: Mapping[str, Any]) -> str:
    return f"data: {json.dumps(data, separators=(',', ':'))}\n\n"


async def progress_frames(
    use_case: ExtractStreamUseCase,
    resolution_request: ResolutionRequest,
    shutdown: GracefulShutdown | None = None,
    servers: Sequence[str] = (),
) -> AsyncIterator[str]:
    """Yield SSE frames while a resolution runs, then one final frame.

    The final frame's phase is ``complete`` or ``error`` and carries the
    result payload.  Closing the stream cancels the resolution.
    """
    events: asyncio.Queue[ProgressEvent] = asyncio.Queue()

    async def _on_progress(event: ProgressEvent) -> None:
        events.put_nowait(event)

    if shutdown is not None:
        shutdown.request_started()
    task = asyncio.create_task(use_case.execute(resolution_request, progress=_on_progress))
    getter: asyncio.Future[ProgressEvent] | None = None
    try:
        while True:
            getter = asyncio.ensure_future(events.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield _sse(getter.result().to_dict())
                continue
            getter.cancel()
            break

        while not events.empty():
            yield _sse(events.get_nowait().to_dict())

        result = task.result()
        payload = present_result(result, servers)
        if result.success:
            final = ProgressEvent(phase="complete", percentage=100, message="Stream resolved")
        else:
            final = ProgressEvent(
                phase="error",
                percentage=100,
                message=result.error.message if result.error else "resolution failed",
            )
        yield _sse({**final.to_dict(), "result": payload})
    finally:
        if getter is not None and not getter.done():
            getter.cancel()
        if not task.done():
            log.info("progress_stream_closed_early")
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if shutdown is not None:
            shutdown.request_finished()


@router.api_route("/extract/progress", methods=["GET", "POST"], response_model=None)
async def extract_progress(request: Request) -> StreamingResponse | JSONResponse:
    """Same as /extract, streamed as server-sent progress events."""
    state = cast(AppState, request.app.state)
    try:
        resolution_request = parse_request(await _params_of(request), state.config)
    except InvalidRequestError as exc:
        return _invalid(str(exc))

    return StreamingResponse(
        progress_frames(
            state.extract_uc,
            resolution_request,
            state.graceful_shutdown,
            state.servers.names,
        ),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.get("/servers")
async def servers(request: Request) -> JSONResponse:
    """Supported servers and the shape of their hop chains."""
    state = cast(AppState, request.app.state)
    registry = state.servers
    return JSONResponse(
        content={"servers": [present_server(registry.get(name)) for name in registry.names]}
    )
