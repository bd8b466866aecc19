"""Tests for the /stats endpoint."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamhop.domain.entities import ErrorKind, ExtractionResult
from streamhop.infrastructure.browser.render_pool import RenderPool
from streamhop.infrastructure.graceful_shutdown import GracefulShutdown
from streamhop.infrastructure.metrics import MetricsCollector
from streamhop.interfaces.api.stats.router import router


def _make_app(**state: object) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    for name, value in state.items():
        setattr(app.state, name, value)
    return app


class TestStatsEndpoint:
    def test_empty_state(self) -> None:
        client = TestClient(_make_app())
        resp = client.get("/stats")
        assert resp.status_code == 200
        assert resp.json() == {}

    def test_metrics_snapshot(self) -> None:
        metrics = MetricsCollector()
        metrics.record_resolution(
            ExtractionResult.failed("render", ErrorKind.BUSY, "no render slot")
        )
        client = TestClient(_make_app(metrics=metrics))

        data = client.get("/stats").json()

        assert data["requests"] == 1
        assert data["resolved"] == 0
        assert data["errors"] == {"Busy": 1}

    def test_pool_and_shutdown(self) -> None:
        gs = GracefulShutdown()
        gs.mark_ready()
        gs.request_started()
        client = TestClient(
            _make_app(render_pool=RenderPool(max_concurrent=3), graceful_shutdown=gs)
        )

        data = client.get("/stats").json()

        assert data["render_pool"] == {
            "max_concurrent": 3,
            "in_use": 0,
            "waiting": 0,
            "rejected": 0,
        }
        assert data["shutdown"] == {
            "is_ready": True,
            "is_shutting_down": False,
            "active_requests": 1,
        }
