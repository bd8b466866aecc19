"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI

from streamhop.application.use_cases.extract_stream import ExtractStreamUseCase
from streamhop.infrastructure.browser.proxy import ProxyRotator
from streamhop.infrastructure.browser.render_pool import RenderPool
from streamhop.infrastructure.chain.definitions import ServerRegistry
from streamhop.infrastructure.common.rate_limiter import HostThrottle
from streamhop.infrastructure.common.retry_transport import RetryTransport
from streamhop.infrastructure.config.schema import AppConfig
from streamhop.infrastructure.metrics import MetricsCollector
from streamhop.infrastructure.stealth.challenge import ChallengeDetector
from streamhop.infrastructure.strategies._common import DEFAULT_USER_AGENT
from streamhop.infrastructure.strategies.fetch import FetchStrategy
from streamhop.infrastructure.strategies.render import RenderSettings, RenderStrategy
from streamhop.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

# Drain budget on shutdown; a render hop can legitimately take this long.
_DRAIN_TIMEOUT_SECONDS = 30.0


@dataclass
class Resources:
    """Everything one process needs to resolve streams."""

    http_client: httpx.AsyncClient
    render_pool: RenderPool
    servers: ServerRegistry
    metrics: MetricsCollector
    extract_uc: ExtractStreamUseCase


def build_resources(config: AppConfig, *, metrics: MetricsCollector | None = None) -> Resources:
    """Wire strategies, pools and the use case.  Nothing is started here.

    Chromium is launched lazily on the first render.
    """
    metrics = metrics or MetricsCollector()

    # 1) HTTP client: per-host throttle + retry on 429/502/504
    throttle = HostThrottle(
        rate=config.http_rate_per_host,
        burst=config.http_burst_per_host,
        jitter_ms=(50, 250),
    )
    transport = RetryTransport(
        wrapped=httpx.AsyncHTTPTransport(),
        throttle=throttle,
        max_retries=config.http_max_retries,
    )
    http_client = httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.http_timeout_seconds),
        follow_redirects=True,
    )
    log.info(
        "http_client_initialized",
        rate_per_host=config.http_rate_per_host,
        max_retries=config.http_max_retries,
    )

    # 2) Server templates and chains
    servers = ServerRegistry.with_overrides(
        {
            name: override.model_dump(exclude_none=True)
            for name, override in config.servers.items()
        }
    )
    log.info("server_registry_initialized", servers=servers.names)

    # 3) Render capacity
    render_pool = RenderPool(
        max_concurrent=config.render.max_concurrent,
        queue_timeout=config.render.queue_timeout_seconds,
        headless=config.render.headless,
    )
    proxies = (
        ProxyRotator(
            config.render.proxies,
            cooldown_seconds=config.render.proxy_cooldown_seconds,
        )
        if config.render.proxies
        else None
    )
    log.info(
        "render_pool_configured",
        max_concurrent=config.render.max_concurrent,
        queue_timeout_s=config.render.queue_timeout_seconds,
        proxies=len(proxies) if proxies else 0,
    )

    # 4) Strategies
    fetch = FetchStrategy(
        http_client=http_client,
        user_agent=config.http_user_agent or DEFAULT_USER_AGENT,
        hop_timeout=config.resolution.fetch_hop_timeout_seconds,
        max_body_bytes=config.http_max_body_bytes,
    )
    render = RenderStrategy(
        pool=render_pool,
        detector=ChallengeDetector(
            poll_interval=config.challenge.poll_interval_seconds,
            timeout=config.challenge.timeout_seconds,
            min_content_chars=config.challenge.min_content_chars,
        ),
        proxies=proxies,
        settings=RenderSettings(
            hop_timeout=config.resolution.render_hop_timeout_seconds,
            navigation_timeout=config.render.navigation_timeout_seconds,
            selector_timeout=config.render.selector_timeout_seconds,
            reading_seconds=config.render.reading_seconds,
            network_wait=config.render.network_wait_seconds,
            block_resources=config.render.block_resources,
            tab_switch=config.render.tab_switch,
        ),
    )

    # 5) Use case
    extract_uc = ExtractStreamUseCase(
        fetch=fetch,
        render=render,
        servers=servers,
        config=config.resolution,
        metrics=metrics,
    )

    return Resources(
        http_client=http_client,
        render_pool=render_pool,
        servers=servers,
        metrics=metrics,
        extract_uc=extract_uc,
    )


async def close_resources(resources: Resources) -> None:
    await resources.render_pool.cleanup()
    await resources.http_client.aclose()
    log.info("http_client_closed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize and tear down all resources (DI composition root).

    Teardown order: drain in-flight requests, then the browser, then HTTP.
    """
    state = cast(AppState, app.state)
    config = state.config

    state.metrics = MetricsCollector()
    resources = build_resources(config, metrics=state.metrics)
    state.http_client = resources.http_client
    state.render_pool = resources.render_pool
    state.servers = resources.servers
    state.extract_uc = resources.extract_uc

    state.graceful_shutdown.mark_ready()
    log.info("app_startup_complete")

    try:
        yield
    finally:
        await state.graceful_shutdown.wait_for_drain(timeout=_DRAIN_TIMEOUT_SECONDS)
        await close_resources(resources)
        log.info("app_shutdown_complete")
