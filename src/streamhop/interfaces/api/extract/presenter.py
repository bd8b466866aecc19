"""JSON shape of extraction results (shared by the API and the CLI)."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from streamhop.domain.entities.resolution import ErrorKind, ExtractionResult, ServerSpec

_NO_SWITCH_KINDS = frozenset({ErrorKind.INVALID_REQUEST, ErrorKind.BUSY})

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.BUSY: 503,
    ErrorKind.TIMEOUT: 504,
}


def status_for(result: ExtractionResult) -> int:
    if result.success:
        return 200
    kind = result.error_kind
    return _STATUS_BY_KIND.get(kind, 502) if kind is not None else 502


def _debug(result: ExtractionResult) -> dict[str, Any]:
    return {
        "hopTrace": [hop.to_dict() for hop in result.hop_trace],
        "attempts": [
            {
                "strategy": attempt.strategy_used,
                "errorKind": attempt.error_kind.value if attempt.error_kind else None,
                "error": attempt.error.message if attempt.error else None,
                "hopTrace": [hop.to_dict() for hop in attempt.hop_trace],
                "elapsedMs": round(attempt.total_elapsed_ms, 1),
            }
            for attempt in result.attempts
        ],
        "extractionTimeMs": round(result.total_elapsed_ms, 1),
    }


def _suggest_switch(result: ExtractionResult, servers: Sequence[str]) -> list[str]:
    # Another server cannot fix a malformed request or a full render queue.
    if result.error_kind in _NO_SWITCH_KINDS:
        return []
    return [name for name in servers if name != result.server]


def present_result(result: ExtractionResult, servers: Sequence[str] = ()) -> dict[str, Any]:
    """Render an ExtractionResult as the public JSON payload.

    *servers* are the registry's server names; failures list the ones other
    than the failed server under ``suggestSwitch``.
    """
    if not result.success:
        assert result.error is not None
        return {
            "success": False,
            "error": result.error.message,
            "errorKind": result.error.kind.value,
            "server": result.server or None,
            "extractionMethod": result.strategy_used,
            "suggestSwitch": _suggest_switch(result, servers),
            "debug": _debug(result),
        }
    return {
        "success": True,
        "streamUrl": result.stream_url,
        "streamType": result.stream_type,
        "server": result.server,
        "extractionMethod": result.strategy_used,
        # CDN hosts check Referer/Origin; plain players cannot set them.
        "requiresProxy": "Referer" in result.headers,
        "headers": dict(result.headers),
        "debug": _debug(result),
    }


def present_server(spec: ServerSpec) -> dict[str, Any]:
    return {
        "name": spec.name,
        "movieTemplate": spec.movie_template,
        "episodeTemplate": spec.episode_template,
        "chain": {
            "name": spec.chain.name,
            "version": spec.chain.version,
            "hops": spec.chain.shape(),
        },
    }
