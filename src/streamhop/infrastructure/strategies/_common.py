"""Helpers shared by the fetch and render strategies."""

from __future__ import annotations

import time
from urllib.parse import urlsplit

import structlog

from streamhop.domain.entities.resolution import HopSpec, ProgressCallback, ProgressEvent

log = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


def origin_of(url: str | None) -> str | None:
    if not url:
        return None
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def referer_for(hop: HopSpec, previous_url: str | None) -> str | None:
    """Referer a hop request must carry, per the hop's referer rule."""
    if previous_url is None or hop.referer_rule == "none":
        return None
    if hop.referer_rule == "origin":
        origin = origin_of(previous_url)
        return f"{origin}/" if origin else None
    return previous_url


def stream_headers(previous_url: str | None, user_agent: str) -> dict[str, str]:
    """Headers a player/proxy needs to fetch the manifest and its segments."""
    headers = {"User-Agent": user_agent}
    origin = origin_of(previous_url)
    if origin:
        headers["Referer"] = f"{origin}/"
        headers["Origin"] = origin
    return headers


def elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


async def emit_progress(
    progress: ProgressCallback | None,
    *,
    phase: str,
    span: tuple[int, int],
    index: int,
    total: int,
    message: str,
) -> None:
    """Report hop *index* of *total*, mapped linearly into *span* percent."""
    if progress is None:
        return
    low, high = span
    pct = low + int((high - low) * index / max(total, 1))
    try:
        await progress(ProgressEvent(phase=phase, percentage=pct, message=message))
    except Exception:  # noqa: BLE001
        log.debug("progress_callback_failed", phase=phase, exc_info=True)
