"""In-memory resolution metrics.

Plain integer counters mutated from the event loop only.  Timings use
``time.perf_counter_ns()``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from streamhop.domain.entities.resolution import ExtractionResult


@dataclass
class StrategyStats:
    """Accumulated statistics for one strategy (fetch or render)."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        avg_ms = (
            round(self.total_duration_ns / self.attempts / 1_000_000, 1)
            if self.attempts
            else 0.0
        )
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "avg_duration_ms": avg_ms,
        }


@dataclass
class MetricsCollector:
    """Central in-memory metrics collector."""

    _strategies: dict[str, StrategyStats] = field(default_factory=dict)
    _hop_failures: dict[str, int] = field(default_factory=dict)
    _error_kinds: dict[str, int] = field(default_factory=dict)
    _requests: int = 0
    _resolved: int = 0
    _escalations: int = 0
    _start_ns: int = field(default_factory=time.perf_counter_ns)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_attempt(self, result: ExtractionResult, duration_ns: int) -> None:
        """Record one strategy attempt and its failing hop, if any."""
        stats = self._strategies.get(result.strategy_used)
        if stats is None:
            stats = StrategyStats()
            self._strategies[result.strategy_used] = stats

        stats.attempts += 1
        stats.total_duration_ns += duration_ns
        if result.success:
            stats.successes += 1
            return

        stats.failures += 1
        for hop in result.hop_trace:
            if hop.error is not None:
                key = f"{result.strategy_used}:{hop.hop.name}"
                self._hop_failures[key] = self._hop_failures.get(key, 0) + 1

    def record_escalation(self) -> None:
        self._escalations += 1

    def record_resolution(self, result: ExtractionResult) -> None:
        """Record the final outcome of one request."""
        self._requests += 1
        if result.success:
            self._resolved += 1
        elif result.error is not None:
            kind = result.error.kind.value
            self._error_kinds[kind] = self._error_kinds.get(kind, 0) + 1

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable snapshot of all metrics."""
        uptime_ns = time.perf_counter_ns() - self._start_ns
        return {
            "uptime_seconds": round(uptime_ns / 1_000_000_000, 1),
            "requests": self._requests,
            "resolved": self._resolved,
            "escalations": self._escalations,
            "strategies": {
                name: stats.snapshot()
                for name, stats in sorted(self._strategies.items())
            },
            "hop_failures": dict(sorted(self._hop_failures.items())),
            "errors": dict(sorted(self._error_kinds.items())),
        }
