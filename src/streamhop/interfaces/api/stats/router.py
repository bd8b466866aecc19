"""Runtime metrics endpoint."""

from __future__ import annotations

from typing import Any, cast

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from streamhop.interfaces.app_state import AppState

router = APIRouter(tags=["stats"])


@router.get("/stats")
async def stats(request: Request) -> JSONResponse:
    """Return in-memory runtime metrics.

    Strategy and error counters, render pool utilisation and
    graceful-shutdown status.
    """
    state = cast(AppState, request.app.state)

    data: dict[str, Any] = {}

    m = getattr(state, "metrics", None)
    if m is not None:
        data.update(m.snapshot())

    pool = getattr(state, "render_pool", None)
    if pool is not None:
        data["render_pool"] = pool.snapshot()

    gs = getattr(state, "graceful_shutdown", None)
    if gs is not None:
        data["shutdown"] = {
            "is_ready": gs.is_ready,
            "is_shutting_down": gs.is_shutting_down,
            "active_requests": gs.active_requests,
        }

    return JSONResponse(content=data)
