"""Tests for MetricsCollector."""

from __future__ import annotations

from streamhop.domain.entities import ErrorKind, ExtractionResult, HopResult, ResolutionError
from streamhop.infrastructure.chain.definitions import VIDSRC_XYZ_CHAIN
from streamhop.infrastructure.metrics import MetricsCollector, StrategyStats


def _failed(strategy: str, hop_index: int, kind: ErrorKind) -> ExtractionResult:
    hop = VIDSRC_XYZ_CHAIN.hops[hop_index]
    trace = (
        HopResult(
            hop=hop,
            strategy=strategy,  # type: ignore[arg-type]
            source_url="https://vidsrc.xyz/embed/movie?tmdb=1",
            error=ResolutionError(kind, "x"),
        ),
    )
    return ExtractionResult.failed(strategy, kind, "x", hop_trace=trace)  # type: ignore[arg-type]


class TestStrategyStats:
    def test_empty_snapshot(self) -> None:
        assert StrategyStats().snapshot() == {
            "attempts": 0,
            "successes": 0,
            "failures": 0,
            "avg_duration_ms": 0.0,
        }

    def test_average(self) -> None:
        stats = StrategyStats(attempts=2, total_duration_ns=30_000_000)
        assert stats.snapshot()["avg_duration_ms"] == 15.0


class TestMetricsCollector:
    def test_attempts_per_strategy(self, make_success) -> None:
        metrics = MetricsCollector()
        metrics.record_attempt(make_success("fetch"), 10_000_000)
        metrics.record_attempt(_failed("fetch", 1, ErrorKind.RENDER_REQUIRED), 20_000_000)
        metrics.record_attempt(make_success("render"), 5_000_000_000)

        snap = metrics.snapshot()
        assert snap["strategies"]["fetch"] == {
            "attempts": 2,
            "successes": 1,
            "failures": 1,
            "avg_duration_ms": 15.0,
        }
        assert snap["strategies"]["render"]["successes"] == 1

    def test_hop_failures_keyed_by_strategy_and_hop(self) -> None:
        metrics = MetricsCollector()
        metrics.record_attempt(_failed("fetch", 1, ErrorKind.RENDER_REQUIRED), 1)
        metrics.record_attempt(_failed("fetch", 1, ErrorKind.RENDER_REQUIRED), 1)
        metrics.record_attempt(_failed("render", 2, ErrorKind.PATTERN_NOT_FOUND), 1)

        assert metrics.snapshot()["hop_failures"] == {
            "fetch:relay": 2,
            "render:secondary_relay": 1,
        }

    def test_resolutions_and_escalations(self, make_success) -> None:
        metrics = MetricsCollector()
        metrics.record_resolution(make_success("render"))
        metrics.record_resolution(_failed("render", 0, ErrorKind.TIMEOUT))
        metrics.record_resolution(_failed("render", 0, ErrorKind.TIMEOUT))
        metrics.record_resolution(ExtractionResult.failed("none", ErrorKind.INVALID_REQUEST, "x"))
        metrics.record_escalation()

        snap = metrics.snapshot()
        assert snap["requests"] == 4
        assert snap["resolved"] == 1
        assert snap["escalations"] == 1
        assert snap["errors"] == {"InvalidRequest": 1, "Timeout": 2}

    def test_uptime(self) -> None:
        snap = MetricsCollector().snapshot()
        assert snap["uptime_seconds"] >= 0.0
