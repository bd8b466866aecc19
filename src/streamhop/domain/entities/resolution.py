"""Domain entities for stream resolution.

Pure value objects: no framework dependencies, no I/O.
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Literal

from streamhop.domain.entities.rules import MatchMethod, Rule

MediaKind = Literal["movie", "episode"]
StrategyHint = Literal["auto", "fetch", "render"]
StrategyName = Literal["fetch", "render", "none"]
StreamType = Literal["hls", "mp4"]
RefererRule = Literal["previous", "origin", "none"]


class ErrorKind(str, Enum):
    """Coarse, user-visible failure categories."""

    PATTERN_NOT_FOUND = "PatternNotFound"
    RENDER_REQUIRED = "RenderRequired"
    CHALLENGE_UNRESOLVED = "ChallengeUnresolved"
    UPSTREAM_HTTP_ERROR = "UpstreamHttpError"
    TIMEOUT = "Timeout"
    BUSY = "Busy"
    INVALID_REQUEST = "InvalidRequest"


@dataclass(frozen=True)
class ResolutionError:
    kind: ErrorKind
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolutionRequest:
    """One "watch this title" request.

    ``url`` bypasses server templates and starts the chain at the given hop.
    """

    media_kind: MediaKind
    provider_id: str = ""
    season: int | None = None
    episode: int | None = None
    preferred_server: str = "vidsrc.xyz"
    strategy_hint: StrategyHint = "auto"
    url: str | None = None


@dataclass(frozen=True)
class ProgressEvent:
    phase: str
    percentage: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "percentage": self.percentage,
            "message": self.message,
        }


ProgressCallback = Callable[[ProgressEvent], Awaitable[None]]


# ---------------------------------------------------------------------------
# Chain definition
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HopSpec:
    """Static description of one stage in a hop chain."""

    name: str
    rules: tuple[Rule, ...]
    requires_render: bool = False
    referer_rule: RefererRule = "previous"
    wait_selector: str | None = None
    play_selectors: tuple[str, ...] = ()
    terminal: bool = False


@dataclass(frozen=True)
class ChainDefinition:
    """Ordered, versioned hop list.  The only source of hop count and order."""

    name: str
    version: int
    hops: tuple[HopSpec, ...]

    def __post_init__(self) -> None:
        if not self.hops:
            raise ValueError(f"chain {self.name!r} has no hops")
        if not self.hops[-1].terminal:
            raise ValueError(f"chain {self.name!r} must end with a terminal hop")
        if any(h.terminal for h in self.hops[:-1]):
            raise ValueError(f"chain {self.name!r} has a terminal hop before the end")

    def __len__(self) -> int:
        return len(self.hops)

    def shape(self) -> list[dict[str, Any]]:
        """Human-readable chain shape (for /servers and diagnostics)."""
        return [
            {
                "name": h.name,
                "requiresRender": h.requires_render,
                "terminal": h.terminal,
            }
            for h in self.hops
        ]


@dataclass(frozen=True)
class ServerSpec:
    """A supported embed server: URL templates plus the chain behind them.

    Templates use ``str.format`` fields ``{id}``, ``{season}``, ``{episode}``.
    """

    name: str
    movie_template: str
    episode_template: str
    chain: ChainDefinition

    def build_url(self, request: ResolutionRequest) -> str:
        if request.media_kind == "episode":
            return self.episode_template.format(
                id=request.provider_id,
                season=request.season,
                episode=request.episode,
            )
        return self.movie_template.format(id=request.provider_id)


# ---------------------------------------------------------------------------
# Trace
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HopResult:
    """One hop attempt.  Appended to a trace, never mutated."""

    hop: HopSpec
    strategy: StrategyName
    source_url: str
    raw_content_size: int = 0
    matched_url: str | None = None
    match_method: MatchMethod | None = None
    elapsed_ms: float = 0.0
    error: ResolutionError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hop": self.hop.name,
            "strategy": self.strategy,
            "sourceUrl": self.source_url,
            "rawContentSize": self.raw_content_size,
            "matchedUrl": self.matched_url,
            "matchMethod": self.match_method,
            "elapsedMs": round(self.elapsed_ms, 1),
            "error": self.error.to_dict() if self.error else None,
        }


class HopTrace:
    """Append-only hop log owned by one resolution.

    The orchestrator hands the same trace to each strategy so that a
    cancelled attempt still leaves its completed hops behind.
    """

    def __init__(self) -> None:
        self._entries: list[HopResult] = []

    def append(self, result: HopResult) -> None:
        self._entries.append(result)

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self, strategy: StrategyName | None = None) -> tuple[HopResult, ...]:
        if strategy is None:
            return tuple(self._entries)
        return tuple(r for r in self._entries if r.strategy == strategy)


# ---------------------------------------------------------------------------
# Browser identity / challenge
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScreenSpec:
    width: int
    height: int
    avail_width: int
    avail_height: int
    color_depth: int = 24


@dataclass(frozen=True)
class Fingerprint:
    """Simulated browser identity for one render attempt.

    All fields are drawn for the same platform family; never mix fields from
    two different fingerprints.
    """

    user_agent: str
    platform: str
    platform_family: str
    browser_version: str
    screen: ScreenSpec
    languages: tuple[str, ...]
    timezone: str
    webgl_vendor: str
    webgl_renderer: str
    hardware_concurrency: int
    device_memory: int

    @property
    def locale(self) -> str:
        return self.languages[0]

    def to_json(self) -> str:
        """Canonical serialization (stable key order, no whitespace)."""
        return json.dumps(asdict(self), sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class ChallengeState:
    """Outcome of an interactive-challenge check on one page."""

    detected: bool
    kind: str | None = None
    first_seen_at: float | None = None
    resolved_at: float | None = None
    polls: int = 0

    @property
    def resolved(self) -> bool:
        return not self.detected or self.resolved_at is not None


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtractionResult:
    """Terminal artifact of a resolution (or of one strategy attempt).

    Exactly one of ``success`` + ``stream_url`` or ``error`` is populated.
    """

    success: bool
    strategy_used: StrategyName
    stream_url: str | None = None
    stream_type: StreamType = "hls"
    hop_trace: tuple[HopResult, ...] = ()
    total_elapsed_ms: float = 0.0
    error: ResolutionError | None = None
    server: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    attempts: tuple[ExtractionResult, ...] = ()

    def __post_init__(self) -> None:
        if self.success:
            if not self.stream_url:
                raise ValueError("successful result requires a stream_url")
            if self.error is not None:
                raise ValueError("successful result must not carry an error")
        elif self.error is None:
            raise ValueError("failed result requires an error")

    @classmethod
    def failed(
        cls,
        strategy: StrategyName,
        kind: ErrorKind,
        message: str,
        *,
        hop_trace: tuple[HopResult, ...] = (),
        total_elapsed_ms: float = 0.0,
        server: str = "",
    ) -> ExtractionResult:
        return cls(
            success=False,
            strategy_used=strategy,
            hop_trace=hop_trace,
            total_elapsed_ms=total_elapsed_ms,
            error=ResolutionError(kind=kind, message=message),
            server=server,
        )

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None


# ---------------------------------------------------------------------------
# Time budget
# ---------------------------------------------------------------------------


class Deadline:
    """Wall-clock budget shared by every stage of one resolution.

    ``bound(t)`` caps a stage timeout by what is left, so nested timeouts
    never outlive the overall budget.
    """

    def __init__(
        self,
        budget_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = clock() + budget_seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def bound(self, timeout: float) -> float:
        return min(timeout, self.remaining())
