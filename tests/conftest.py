"""Shared test fixtures for the streamhop test suite."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from streamhop.domain.entities import (
    ExtractionResult,
    Fingerprint,
    HopResult,
    ResolutionRequest,
    ScreenSpec,
)
from streamhop.infrastructure.chain.definitions import VIDSRC_XYZ_CHAIN

# ---------------------------------------------------------------------------
# vidsrc.xyz chain pages
# ---------------------------------------------------------------------------

EMBED_URL = "https://vidsrc.xyz/embed/movie?tmdb=550"
RELAY_URL = "https://cloudnestra.com/rcp/NjU0ZmE2YjQ"
SECONDARY_URL = "https://cloudnestra.com/prorcp/ZDk3YTlkOTk"
MANIFEST_URL = "https://tmstr3.shadowlandschronicles.com/pl/H4sIAAAA/master.m3u8"

EMBED_HTML = """<!DOCTYPE html>
<html><head><title>Fight Club</title></head>
<body>
  <div id="player">
    <iframe id="player_iframe" src="//cloudnestra.com/rcp/NjU0ZmE2YjQ"
            frameborder="0" allowfullscreen></iframe>
  </div>
</body></html>"""

RELAY_HTML = """<html><body>
<div id="pl_but" class="fas fa-play"></div>
<script>
  $('#pl_but').click(function(){
    $('#the_frame').html($('<iframe>', { id: 'player_iframe', src: '/prorcp/ZDk3YTlkOTk',
      frameborder: 0, scrolling: 'no', allowfullscreen: 'yes' }));
  });
</script>
</body></html>"""

SECONDARY_HTML = f"""<html><body><div id="player"></div>
<script>
  var player = new Playerjs({{id: "player", file: "{MANIFEST_URL}", poster: ""}});
</script>
</body></html>"""

MANIFEST_BODY = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=2500000,RESOLUTION=1280x720
720/index.m3u8
"""

CHALLENGE_HTML = """<!DOCTYPE html><html><head><title>Just a moment...</title></head>
<body><div id="challenge-running"></div>
<script src="https://challenges.cloudflare.com/turnstile/v0/api.js"></script>
</body></html>"""


@pytest.fixture()
def http_client() -> httpx.AsyncClient:
    """Real httpx.AsyncClient for use with respx mocking."""
    return httpx.AsyncClient()


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def movie_request() -> ResolutionRequest:
    return ResolutionRequest(media_kind="movie", provider_id="550")


@pytest.fixture()
def fingerprint() -> Fingerprint:
    """A fixed Windows/Chrome identity."""
    return Fingerprint(
        user_agent=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
        ),
        platform="Win32",
        platform_family="windows",
        browser_version="131",
        screen=ScreenSpec(width=1920, height=1080, avail_width=1920, avail_height=1040),
        languages=("en-US", "en"),
        timezone="America/New_York",
        webgl_vendor="Google Inc. (NVIDIA)",
        webgl_renderer="ANGLE (NVIDIA, NVIDIA GeForce GTX 1660 Direct3D11 vs_5_0 ps_5_0, D3D11)",
        hardware_concurrency=8,
        device_memory=8,
    )


def success_result(strategy: str = "fetch") -> ExtractionResult:
    hop = VIDSRC_XYZ_CHAIN.hops[-1]
    return ExtractionResult(
        success=True,
        strategy_used=strategy,  # type: ignore[arg-type]
        stream_url=MANIFEST_URL,
        hop_trace=(
            HopResult(
                hop=hop,
                strategy=strategy,  # type: ignore[arg-type]
                source_url=MANIFEST_URL,
                raw_content_size=len(MANIFEST_BODY),
                matched_url=MANIFEST_URL,
                match_method="manifest",
            ),
        ),
        headers={
            "User-Agent": "UA",
            "Referer": "https://cloudnestra.com/",
            "Origin": "https://cloudnestra.com",
        },
    )


# ---------------------------------------------------------------------------
# Playwright mocks
# ---------------------------------------------------------------------------


def make_mock_page(*, html: str = "<html><body>Player</body></html>", url: str = "") -> MagicMock:
    """Mock Page with the async surface the render strategy touches."""
    page = MagicMock()
    page.url = url
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.content = AsyncMock(return_value=html)
    page.wait_for_selector = AsyncMock()
    page.evaluate = AsyncMock(return_value={"title": "Player", "htmlLength": 50_000})
    page.is_closed = MagicMock(return_value=False)
    page.close = AsyncMock()
    page.frames = []
    page.main_frame = MagicMock()
    page.mouse = MagicMock()
    page.mouse.move = AsyncMock()
    page.mouse.click = AsyncMock()
    page.mouse.wheel = AsyncMock()
    page.keyboard = MagicMock()
    page.keyboard.type = AsyncMock()
    page.keyboard.press = AsyncMock()

    locator = MagicMock()
    locator.is_visible = AsyncMock(return_value=False)
    locator.bounding_box = AsyncMock(return_value=None)
    page.locator = MagicMock(return_value=MagicMock(first=locator))
    return page


@dataclass(frozen=True)
class VidsrcPages:
    embed_url: str = EMBED_URL
    relay_url: str = RELAY_URL
    secondary_url: str = SECONDARY_URL
    manifest_url: str = MANIFEST_URL
    embed_html: str = EMBED_HTML
    relay_html: str = RELAY_HTML
    secondary_html: str = SECONDARY_HTML
    manifest_body: str = MANIFEST_BODY
    challenge_html: str = CHALLENGE_HTML


@pytest.fixture()
def pages() -> VidsrcPages:
    """Canned bodies of every hop of the vidsrc.xyz chain."""
    return VidsrcPages()


@pytest.fixture()
def make_success() -> Callable[..., ExtractionResult]:
    return success_result


@pytest.fixture()
def mock_page_factory() -> Callable[..., MagicMock]:
    return make_mock_page
