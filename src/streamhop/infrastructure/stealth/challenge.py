"""Interactive challenge detection (Cloudflare interstitial / Turnstile).

``is_challenge_html`` is the static check used on fetched bodies.
``ChallengeDetector.check`` probes a live page and, when a challenge is up,
polls until it clears or the wait budget runs out.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError

from streamhop.domain.entities.resolution import ChallengeState

log = structlog.get_logger(__name__)

CHALLENGE_MARKERS: tuple[str, ...] = (
    "Just a moment",
    "challenge-platform",
    "cf-error-details",
    "Attention Required",
    "cf-turnstile",
    "challenges.cloudflare.com",
    "Checking your browser",
    "cf-chl-",
)

_TITLE_TOKENS: tuple[str, ...] = ("Just a moment", "Attention Required", "Checking your browser")
_BODY_TOKENS: tuple[str, ...] = ("Checking your browser", "Verify you are human", "Just a moment")

# Pages smaller than this that carry a Ray ID are block/challenge stubs.
SMALL_PAGE_CHARS = 3000


def is_challenge_html(status_code: int, html: str) -> bool:
    """Return *True* when a fetched body is a challenge/block page.

    Status is informational only; Turnstile pages are frequently served
    with 200.
    """
    if any(marker in html for marker in CHALLENGE_MARKERS):
        return True
    return status_code in (403, 503) and len(html) < SMALL_PAGE_CHARS and "Ray ID" in html


_PROBE_JS = """() => {
  const q = (s) => { try { return !!document.querySelector(s); } catch (e) { return false; } };
  const body = document.body ? (document.body.innerText || '') : '';
  const html = document.documentElement ? document.documentElement.outerHTML.length : 0;
  return {
    title: document.title || '',
    bodyText: body.slice(0, 4000),
    htmlLength: html,
    turnstile: q('.cf-turnstile') || q('[data-sitekey]')
      || q('iframe[src*="challenges.cloudflare.com"]')
      || q('script[src*="challenges.cloudflare.com"]'),
    challengeForm: q('#challenge-form') || q('#challenge-running') || q('#cf-challenge-running'),
    rayId: q('[data-ray]') || body.includes('Ray ID'),
  };
}"""


@dataclass(frozen=True)
class PageProbe:
    title: str = ""
    body_text: str = ""
    html_length: int = 0
    turnstile: bool = False
    challenge_form: bool = False
    ray_id: bool = False

    @classmethod
    def from_js(cls, raw: dict[str, Any]) -> PageProbe:
        return cls(
            title=str(raw.get("title") or ""),
            body_text=str(raw.get("bodyText") or ""),
            html_length=int(raw.get("htmlLength") or 0),
            turnstile=bool(raw.get("turnstile")),
            challenge_form=bool(raw.get("challengeForm")),
            ray_id=bool(raw.get("rayId")),
        )


def classify(probe: PageProbe) -> str | None:
    """Return the challenge kind shown by *probe*, or ``None``."""
    if probe.turnstile:
        return "turnstile"
    if probe.challenge_form:
        return "interstitial"
    if any(token in probe.title for token in _TITLE_TOKENS):
        return "interstitial"
    if any(token in probe.body_text for token in _BODY_TOKENS):
        return "interstitial"
    if probe.ray_id and probe.html_length < SMALL_PAGE_CHARS:
        return "ray_id"
    return None


class ChallengeDetector:
    """Detects a challenge on a page and waits (bounded) for it to clear.

    A challenge counts as cleared once no marker is left **and** the document
    has grown past ``min_content_chars``.
    """

    def __init__(
        self,
        *,
        poll_interval: float = 1.0,
        timeout: float = 30.0,
        min_content_chars: int = SMALL_PAGE_CHARS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._min_content_chars = min_content_chars
        self._sleep = sleep
        self._clock = clock

    async def _probe(self, page: Any) -> PageProbe:
        return PageProbe.from_js(await page.evaluate(_PROBE_JS))

    async def check(self, page: Any, *, timeout: float | None = None) -> ChallengeState:
        """Inspect *page*; block until a detected challenge clears or times out.

        *timeout* caps the wait below the configured one (remaining budget).
        """
        kind = classify(await self._probe(page))
        if kind is None:
            return ChallengeState(detected=False)

        budget = self._timeout if timeout is None else min(timeout, self._timeout)
        first_seen = self._clock()
        log.info("challenge_detected", kind=kind, url=getattr(page, "url", None))

        polls = 0
        while True:
            remaining = budget - (self._clock() - first_seen)
            if remaining <= 0:
                break
            await self._sleep(min(self._poll_interval, remaining))
            polls += 1
            try:
                probe = await self._probe(page)
            except PlaywrightError:
                # Clearing a challenge reloads the document mid-evaluate.
                log.debug("challenge_probe_navigating", polls=polls)
                continue
            if classify(probe) is None and probe.html_length >= self._min_content_chars:
                resolved_at = self._clock()
                log.info(
                    "challenge_resolved",
                    kind=kind,
                    polls=polls,
                    waited_s=round(resolved_at - first_seen, 2),
                )
                return ChallengeState(
                    detected=True,
                    kind=kind,
                    first_seen_at=first_seen,
                    resolved_at=resolved_at,
                    polls=polls,
                )

        log.warning("challenge_unresolved", kind=kind, polls=polls, budget_s=budget)
        return ChallengeState(
            detected=True,
            kind=kind,
            first_seen_at=first_seen,
            resolved_at=None,
            polls=polls,
        )
