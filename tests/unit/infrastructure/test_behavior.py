"""Tests for BehaviorSimulator (human-like page interaction)."""

from __future__ import annotations

import random
from unittest.mock import AsyncMock

import pytest
from playwright.async_api import Error as PlaywrightError

from streamhop.infrastructure.stealth.behavior import (
    CLICK_HOLD_MS,
    READING_MAX_SECONDS,
    BehaviorSimulator,
    bezier_path,
)

_VIEWPORT = {"width": 1280, "height": 720}


def _simulator(page, seed: int = 7) -> tuple[BehaviorSimulator, AsyncMock]:
    sleep = AsyncMock()
    sim = BehaviorSimulator(page, viewport=_VIEWPORT, rng=random.Random(seed), sleep=sleep)
    return sim, sleep


class TestBezierPath:
    def test_endpoints(self) -> None:
        path = bezier_path((0, 0), (300, 200), 20, random.Random(1))
        assert len(path) == 20
        assert path[0] == pytest.approx((0, 0))
        assert path[-1] == pytest.approx((300, 200))

    def test_curves_off_the_straight_line(self) -> None:
        path = bezier_path((0, 0), (400, 0), 30, random.Random(3))
        assert any(abs(y) > 1 for _, y in path[1:-1])


class TestPointer:
    @pytest.mark.asyncio()
    async def test_move_ends_at_target(self, mock_page_factory) -> None:
        page = mock_page_factory()
        sim, sleep = _simulator(page)

        path = await sim.move_naturally((640, 360))

        assert page.mouse.move.await_count == len(path)
        assert sim.position == (640, 360)
        assert sleep.await_count == len(path)

    @pytest.mark.asyncio()
    async def test_hover_and_click_inside_box(self, mock_page_factory) -> None:
        page = mock_page_factory()
        sim, _ = _simulator(page)
        locator = AsyncMock()
        locator.bounding_box = AsyncMock(
            return_value={"x": 100, "y": 100, "width": 50, "height": 20}
        )

        assert await sim.hover_and_click(locator) is True

        x, y = page.mouse.click.await_args.args
        assert 115 <= x <= 135
        assert 106 <= y <= 114
        hold = page.mouse.click.await_args.kwargs["delay"]
        assert CLICK_HOLD_MS[0] <= hold <= CLICK_HOLD_MS[1]

    @pytest.mark.asyncio()
    async def test_click_without_box(self, mock_page_factory) -> None:
        page = mock_page_factory()
        sim, _ = _simulator(page)
        locator = AsyncMock()
        locator.bounding_box = AsyncMock(return_value=None)

        assert await sim.hover_and_click(locator) is False
        page.mouse.click.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_detached_page_does_not_raise(self, mock_page_factory) -> None:
        page = mock_page_factory()
        page.mouse.move = AsyncMock(side_effect=PlaywrightError("Target closed"))
        sim, _ = _simulator(page)
        start = sim.position

        await sim.move_naturally((10, 10))

        assert sim.position == start


class TestScrollAndKeyboard:
    @pytest.mark.asyncio()
    @pytest.mark.parametrize("distance", [300, -200, 45])
    async def test_scroll_total(self, mock_page_factory, distance: int) -> None:
        page = mock_page_factory()
        sim, _ = _simulator(page)

        await sim.scroll(distance)

        deltas = [c.args[1] for c in page.mouse.wheel.await_args_list]
        assert sum(deltas) == distance
        assert all(abs(d) <= 120 for d in deltas)

    @pytest.mark.asyncio()
    async def test_typing_result_matches_text(self, mock_page_factory) -> None:
        page = mock_page_factory()
        typed: list[str] = []
        page.keyboard.type = AsyncMock(side_effect=typed.append)
        page.keyboard.press = AsyncMock(side_effect=lambda key: typed.pop())
        sim, _ = _simulator(page, seed=11)

        text = "the quick brown fox jumps over the lazy dog " * 4
        await sim.type_human(text)

        assert "".join(typed) == text


class TestFocusAndReading:
    @pytest.mark.asyncio()
    async def test_tab_switch_hides_then_shows(self, mock_page_factory) -> None:
        page = mock_page_factory()
        sim, sleep = _simulator(page)

        await sim.simulate_tab_switch()

        assert page.evaluate.await_count == 2
        hidden_for = sleep.await_args.args[0]
        assert 2.0 <= hidden_for <= 5.0

    @pytest.mark.asyncio()
    async def test_reading_spends_requested_time(self, mock_page_factory) -> None:
        page = mock_page_factory()
        sim, sleep = _simulator(page)

        await sim.simulate_reading(1.5)

        slept = sum(c.args[0] for c in sleep.await_args_list)
        assert sim.spent_seconds >= 1.5
        assert slept == pytest.approx(sim.spent_seconds)

    @pytest.mark.asyncio()
    async def test_reading_is_capped(self, mock_page_factory) -> None:
        page = mock_page_factory()
        sim, _ = _simulator(page)

        await sim.simulate_reading(120)

        assert sim.spent_seconds < READING_MAX_SECONDS + 3
