"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from streamhop.infrastructure.config import AppConfig
from streamhop.infrastructure.graceful_shutdown import GracefulShutdown
from streamhop.interfaces.app_state import AppState
from streamhop.interfaces.composition import lifespan

log = structlog.get_logger(__name__)


def create_app(config: AppConfig) -> FastAPI:
    """Create FastAPI app: configuration only, no resource initialization.

    Resources (HTTP client, render pool, strategies) are created in lifespan().
    """
    app = FastAPI(
        title="streamhop",
        description="Resolves embedded video players into playable stream URLs",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config
    app.state.graceful_shutdown = GracefulShutdown()

    from streamhop.interfaces.api.extract.router import router as extract_router
    from streamhop.interfaces.api.stats.router import router as stats_router

    app.include_router(extract_router, prefix="/api/v1")
    app.include_router(stats_router, prefix="/api/v1")

    @app.get("/api/v1/healthz")
    async def healthz() -> dict[str, str | list[str]]:
        """Liveness probe: 200 as long as the process is running."""
        servers = getattr(app.state, "servers", None)
        return {
            "status": "ok",
            "servers": servers.names if servers else [],
        }

    @app.get("/api/v1/readyz")
    async def readyz() -> Response:
        """Readiness probe: 200 after startup, 503 while starting or draining."""
        gs: GracefulShutdown = app.state.graceful_shutdown
        if gs.is_ready:
            return JSONResponse({"status": "ready"}, status_code=200)
        return JSONResponse({"status": "not_ready"}, status_code=503)

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ):
        gs: GracefulShutdown = app.state.graceful_shutdown
        gs.request_started()
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            gs.request_finished()
            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                query=str(request.url.query),
                status_code=status_code,
                duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
