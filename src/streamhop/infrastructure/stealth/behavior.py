"""Human-like interaction against a rendered page.

Pointer paths follow cubic Bézier curves with slight jitter, scrolling is
split into uneven wheel steps, typing has per-key cadence with the occasional
corrected typo.  Every delay is drawn from a bounded range (constants below),
so no single call can stall longer than its documented maximum.

Interaction is best-effort: Playwright errors (detached frame, closed page)
are logged at debug and do not abort the hop.
"""

from __future__ import annotations

import asyncio
import math
import random
import string
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError

log = structlog.get_logger(__name__)

Point = tuple[float, float]

MOVE_POINTS = (15, 40)
MOVE_STEP_DELAY_MS = (10, 30)
HOVER_PAUSE_MS = (120, 400)
CLICK_HOLD_MS = (40, 120)
SCROLL_STEP_PX = (40, 120)
SCROLL_STEP_DELAY_MS = (20, 50)
SCROLL_MAX_STEPS = 60
TYPE_DELAY_MS = (50, 150)
TYPO_RATE = 0.03
TAB_HIDDEN_SECONDS = (2.0, 5.0)
READING_PAUSE_MS = (300, 900)
READING_MAX_SECONDS = 10.0

_DEFAULT_VIEWPORT = {"width": 1280, "height": 720}

_HIDE_JS = """() => {
  Object.defineProperty(document, 'visibilityState', { value: 'hidden', configurable: true });
  Object.defineProperty(document, 'hidden', { value: true, configurable: true });
  document.dispatchEvent(new Event('visibilitychange'));
  window.dispatchEvent(new Event('blur'));
}"""

_SHOW_JS = """() => {
  Object.defineProperty(document, 'visibilityState', { value: 'visible', configurable: true });
  Object.defineProperty(document, 'hidden', { value: false, configurable: true });
  document.dispatchEvent(new Event('visibilitychange'));
  window.dispatchEvent(new Event('focus'));
}"""


# ------------------------------------------------------------------
# Curve geometry
# ------------------------------------------------------------------


def bezier_point(t: float, p0: Point, p1: Point, p2: Point, p3: Point) -> Point:
    """Point on a cubic Bézier curve at parameter *t* in [0, 1]."""
    u = 1 - t
    x = u**3 * p0[0] + 3 * u**2 * t * p1[0] + 3 * u * t**2 * p2[0] + t**3 * p3[0]
    y = u**3 * p0[1] + 3 * u**2 * t * p1[1] + 3 * u * t**2 * p2[1] + t**3 * p3[1]
    return (x, y)


def bezier_path(
    start: Point,
    end: Point,
    num_points: int,
    rng: random.Random,
    *,
    curve_variance: float = 0.3,
) -> list[Point]:
    """Sample *num_points* points from *start* to *end* along a random curve.

    Control points sit at 25% / 75% of the segment, pushed sideways by up to
    ``curve_variance`` of the distance.  Interior points get sub-pixel jitter.
    """
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    variance = math.hypot(dx, dy) * curve_variance

    cp1 = (
        start[0] + dx * 0.25 + rng.uniform(-variance, variance) * 0.5,
        start[1] + dy * 0.25 + rng.uniform(-variance, variance) * 0.5,
    )
    cp2 = (
        start[0] + dx * 0.75 + rng.uniform(-variance, variance) * 0.5,
        start[1] + dy * 0.75 + rng.uniform(-variance, variance) * 0.5,
    )

    path: list[Point] = []
    for i in range(num_points):
        t = i / (num_points - 1) if num_points > 1 else 1.0
        x, y = bezier_point(t, start, cp1, cp2, end)
        if 0.1 < t < 0.9:
            x += rng.uniform(-0.5, 0.5)
            y += rng.uniform(-0.5, 0.5)
        path.append((x, y))
    return path


# ------------------------------------------------------------------
# Simulator
# ------------------------------------------------------------------


class BehaviorSimulator:
    """Issues randomized interaction events against one page.

    *rng* and *sleep* are injectable so tests run instantly and
    deterministically.
    """

    def __init__(
        self,
        page: Any,
        *,
        viewport: dict[str, int] | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._page = page
        self._rng = rng or random.Random()  # noqa: S311
        self._sleep = sleep
        if viewport is None:
            size = getattr(page, "viewport_size", None)
            viewport = size if isinstance(size, dict) else dict(_DEFAULT_VIEWPORT)
        self._width = max(2, int(viewport["width"]))
        self._height = max(2, int(viewport["height"]))
        self._pos: Point = (
            self._rng.uniform(0, self._width),
            self._rng.uniform(0, self._height),
        )
        self._spent = 0.0

    @property
    def position(self) -> Point:
        return self._pos

    @property
    def spent_seconds(self) -> float:
        """Total simulated delay issued so far."""
        return self._spent

    async def _pause(self, low_ms: float, high_ms: float) -> None:
        delay = self._rng.uniform(low_ms, high_ms) / 1000
        self._spent += delay
        await self._sleep(delay)

    def _random_point(self) -> Point:
        margin_x = self._width * 0.05
        margin_y = self._height * 0.05
        return (
            self._rng.uniform(margin_x, self._width - margin_x),
            self._rng.uniform(margin_y, self._height - margin_y),
        )

    # -- pointer --------------------------------------------------------

    async def move_naturally(self, target: Point | None = None) -> list[Point]:
        """Move the pointer along a curved path to *target* (random if omitted)."""
        end = target or self._random_point()
        steps = self._rng.randint(*MOVE_POINTS)
        path = bezier_path(self._pos, end, steps, self._rng)
        try:
            for x, y in path:
                await self._page.mouse.move(x, y)
                await self._pause(*MOVE_STEP_DELAY_MS)
        except PlaywrightError:
            log.debug("behavior_move_failed", exc_info=True)
            return path
        self._pos = end
        return path

    async def hover_and_click(self, locator: Any) -> bool:
        """Curve to the element, linger, then click it.

        Returns ``False`` when the element has no box (hidden / detached).
        """
        try:
            box = await locator.bounding_box()
            if not box:
                return False
            target = (
                box["x"] + box["width"] * self._rng.uniform(0.3, 0.7),
                box["y"] + box["height"] * self._rng.uniform(0.3, 0.7),
            )
            await self.move_naturally(target)
            await self._pause(*HOVER_PAUSE_MS)
            hold = self._rng.uniform(*CLICK_HOLD_MS)
            await self._page.mouse.click(target[0], target[1], delay=hold)
            self._spent += hold / 1000
            return True
        except PlaywrightError:
            log.debug("behavior_click_failed", exc_info=True)
            return False

    # -- scrolling / keyboard ------------------------------------------

    async def scroll(self, distance: int) -> None:
        """Scroll by *distance* pixels (negative scrolls up) in uneven steps."""
        direction = 1 if distance >= 0 else -1
        remaining = abs(distance)
        steps = 0
        try:
            while remaining > 0 and steps < SCROLL_MAX_STEPS:
                step = min(remaining, self._rng.randint(*SCROLL_STEP_PX))
                await self._page.mouse.wheel(0, direction * step)
                remaining -= step
                steps += 1
                await self._pause(*SCROLL_STEP_DELAY_MS)
        except PlaywrightError:
            log.debug("behavior_scroll_failed", exc_info=True)

    async def type_human(self, text: str) -> None:
        """Type *text* with per-key cadence; ~3% of keys are typo + Backspace."""
        keyboard = self._page.keyboard
        try:
            for ch in text:
                if ch.isalpha() and self._rng.random() < TYPO_RATE:
                    wrong = self._rng.choice(string.ascii_lowercase.replace(ch.lower(), ""))
                    await keyboard.type(wrong)
                    await self._pause(*TYPE_DELAY_MS)
                    await keyboard.press("Backspace")
                    await self._pause(*TYPE_DELAY_MS)
                await keyboard.type(ch)
                await self._pause(*TYPE_DELAY_MS)
        except PlaywrightError:
            log.debug("behavior_type_failed", exc_info=True)

    # -- focus ------------------------------------------------------------

    async def simulate_tab_switch(self) -> None:
        """Hide the document for 2-5 s, then bring it back with a focus event."""
        try:
            await self._page.evaluate(_HIDE_JS)
            await self._pause(TAB_HIDDEN_SECONDS[0] * 1000, TAB_HIDDEN_SECONDS[1] * 1000)
            await self._page.evaluate(_SHOW_JS)
        except PlaywrightError:
            log.debug("behavior_tab_switch_failed", exc_info=True)

    async def simulate_reading(self, seconds: float) -> None:
        """Mix scrolls, pointer drift and pauses for about *seconds* (max 10 s)."""
        budget = min(max(seconds, 0.0), READING_MAX_SECONDS)
        start = self._spent
        while self._spent - start < budget:
            roll = self._rng.random()
            if roll < 0.4:
                await self.scroll(self._rng.randint(80, 400) * self._rng.choice((1, 1, -1)))
            elif roll < 0.8:
                await self.move_naturally()
            await self._pause(*READING_PAUSE_MS)
