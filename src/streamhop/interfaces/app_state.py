"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from streamhop.infrastructure.config import AppConfig
from streamhop.infrastructure.graceful_shutdown import GracefulShutdown

if TYPE_CHECKING:
    from streamhop.application.use_cases.extract_stream import ExtractStreamUseCase
    from streamhop.infrastructure.browser.render_pool import RenderPool
    from streamhop.infrastructure.chain.definitions import ServerRegistry
    from streamhop.infrastructure.metrics import MetricsCollector


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    config: AppConfig
    graceful_shutdown: GracefulShutdown

    http_client: httpx.AsyncClient
    render_pool: RenderPool
    servers: ServerRegistry
    metrics: MetricsCollector

    extract_uc: ExtractStreamUseCase
