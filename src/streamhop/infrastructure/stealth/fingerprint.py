"""Self-consistent browser fingerprints drawn from weighted pools.

A platform family is drawn first; every other field (UA platform token,
``navigator.platform``, screen, GPU strings, core counts) comes from pools
belonging to that family, so no generated identity mixes e.g. a macOS user
agent with a Direct3D renderer.  Locale and timezone are drawn together from
one regional profile for the same reason.

Deterministic for a given seed.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Sequence, TypeVar

from streamhop.domain.entities.resolution import Fingerprint, ScreenSpec

T = TypeVar("T")

# Desktop-class screens are drawn with this probability, laptop-class otherwise.
DESKTOP_SCREEN_SHARE = 0.8

_CHROME_VERSIONS: tuple[tuple[int, float], ...] = (
    (132, 0.22),
    (131, 0.24),
    (130, 0.16),
    (129, 0.10),
    (128, 0.08),
    (127, 0.05),
    (126, 0.04),
    (125, 0.03),
    (124, 0.03),
    (123, 0.02),
    (122, 0.01),
    (121, 0.01),
    (120, 0.01),
)


@dataclass(frozen=True)
class _PlatformProfile:
    family: str
    weight: float
    ua_token: str
    navigator_platform: str
    ch_platform: str
    taskbar_px: int
    desktop_screens: tuple[tuple[int, int, float], ...]
    laptop_screens: tuple[tuple[int, int, float], ...]
    gpus: tuple[tuple[str, str, float], ...]
    cores: tuple[tuple[int, float], ...]
    memory: tuple[tuple[int, float], ...]


_PLATFORMS: tuple[_PlatformProfile, ...] = (
    _PlatformProfile(
        family="windows",
        weight=0.75,
        ua_token="Windows NT 10.0; Win64; x64",
        navigator_platform="Win32",
        ch_platform="Windows",
        taskbar_px=40,
        desktop_screens=(
            (1920, 1080, 0.62),
            (2560, 1440, 0.18),
            (1680, 1050, 0.06),
            (1600, 900, 0.08),
            (3840, 2160, 0.06),
        ),
        laptop_screens=(
            (1366, 768, 0.40),
            (1536, 864, 0.45),
            (1440, 900, 0.15),
        ),
        gpus=(
            (
                "Google Inc. (NVIDIA)",
                "ANGLE (NVIDIA, NVIDIA GeForce GTX 1660 SUPER Direct3D11 vs_5_0 ps_5_0, D3D11)",
                0.25,
            ),
            (
                "Google Inc. (NVIDIA)",
                "ANGLE (NVIDIA, NVIDIA GeForce RTX 3060 Direct3D11 vs_5_0 ps_5_0, D3D11)",
                0.20,
            ),
            (
                "Google Inc. (Intel)",
                "ANGLE (Intel, Intel(R) UHD Graphics 630 Direct3D11 vs_5_0 ps_5_0, D3D11)",
                0.35,
            ),
            (
                "Google Inc. (AMD)",
                "ANGLE (AMD, AMD Radeon RX 580 Series Direct3D11 vs_5_0 ps_5_0, D3D11)",
                0.20,
            ),
        ),
        cores=((4, 0.30), (8, 0.40), (12, 0.15), (16, 0.10), (6, 0.05)),
        memory=((8, 0.70), (4, 0.25), (2, 0.05)),
    ),
    _PlatformProfile(
        family="macos",
        weight=0.17,
        ua_token="Macintosh; Intel Mac OS X 10_15_7",
        navigator_platform="MacIntel",
        ch_platform="macOS",
        taskbar_px=25,
        desktop_screens=(
            (2560, 1440, 0.55),
            (1920, 1080, 0.35),
            (1680, 1050, 0.10),
        ),
        laptop_screens=(
            (1440, 900, 0.45),
            (1512, 982, 0.30),
            (1280, 800, 0.25),
        ),
        gpus=(
            (
                "Google Inc. (Apple)",
                "ANGLE (Apple, ANGLE Metal Renderer: Apple M1, Unspecified Version)",
                0.45,
            ),
            (
                "Google Inc. (Apple)",
                "ANGLE (Apple, ANGLE Metal Renderer: Apple M2, Unspecified Version)",
                0.35,
            ),
            (
                "Google Inc. (Intel Inc.)",
                "ANGLE (Intel Inc., Intel(R) Iris(TM) Plus Graphics 655, OpenGL 4.1)",
                0.20,
            ),
        ),
        cores=((8, 0.60), (10, 0.25), (12, 0.15)),
        memory=((8, 1.0),),
    ),
    _PlatformProfile(
        family="linux",
        weight=0.08,
        ua_token="X11; Linux x86_64",
        navigator_platform="Linux x86_64",
        ch_platform="Linux",
        taskbar_px=27,
        desktop_screens=(
            (1920, 1080, 0.75),
            (2560, 1440, 0.25),
        ),
        laptop_screens=(
            (1366, 768, 0.50),
            (1600, 900, 0.50),
        ),
        gpus=(
            (
                "Google Inc. (Intel)",
                "ANGLE (Intel, Mesa Intel(R) UHD Graphics 620 (KBL GT2), OpenGL 4.6)",
                0.60,
            ),
            (
                "Google Inc. (NVIDIA Corporation)",
                "ANGLE (NVIDIA Corporation, NVIDIA GeForce GTX 1080/PCIe/SSE2, OpenGL 4.5.0)",
                0.40,
            ),
        ),
        cores=((4, 0.35), (8, 0.45), (16, 0.20)),
        memory=((8, 0.80), (4, 0.20)),
    ),
)

# (languages, timezones, weight): language and timezone always agree on region.
_LOCALE_PROFILES: tuple[tuple[tuple[str, ...], tuple[str, ...], float], ...] = (
    (
        ("en-US", "en"),
        (
            "America/New_York",
            "America/Chicago",
            "America/Denver",
            "America/Los_Angeles",
            "America/Phoenix",
            "America/Detroit",
        ),
        0.62,
    ),
    (("en-US", "en", "es"), ("America/Los_Angeles", "America/Chicago"), 0.06),
    (("en-GB", "en"), ("Europe/London",), 0.14),
    (("en-CA", "en"), ("America/Toronto", "America/Vancouver"), 0.08),
    (("en-AU", "en"), ("Australia/Sydney", "Australia/Melbourne"), 0.05),
    (("de-DE", "de", "en-US", "en"), ("Europe/Berlin",), 0.03),
    (("fr-FR", "fr", "en-US", "en"), ("Europe/Paris",), 0.02),
)


def _weighted(rng: random.Random, items: Sequence[T], weights: Sequence[float]) -> T:
    return rng.choices(items, weights=weights, k=1)[0]


class FingerprintGenerator:
    """Produces :class:`Fingerprint` objects.

    Pass *seed* (or a pre-seeded *rng*) for reproducible output.
    """

    def __init__(
        self,
        *,
        seed: int | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._rng = rng or random.Random(seed)  # noqa: S311

    def generate(self) -> Fingerprint:
        rng = self._rng

        profile = _weighted(rng, _PLATFORMS, [p.weight for p in _PLATFORMS])
        version = _weighted(
            rng,
            [v for v, _ in _CHROME_VERSIONS],
            [w for _, w in _CHROME_VERSIONS],
        )
        user_agent = (
            f"Mozilla/5.0 ({profile.ua_token}) AppleWebKit/537.36 "
            f"(KHTML, like Gecko) Chrome/{version}.0.0.0 Safari/537.36"
        )

        pool = (
            profile.desktop_screens
            if rng.random() < DESKTOP_SCREEN_SHARE
            else profile.laptop_screens
        )
        width, height, _ = _weighted(rng, pool, [s[2] for s in pool])
        screen = ScreenSpec(
            width=width,
            height=height,
            avail_width=width,
            avail_height=height - profile.taskbar_px,
            color_depth=24 if profile.family != "macos" else 30,
        )

        languages, timezones, _ = _weighted(
            rng, _LOCALE_PROFILES, [p[2] for p in _LOCALE_PROFILES]
        )
        timezone = rng.choice(timezones)

        vendor, renderer, _ = _weighted(rng, profile.gpus, [g[2] for g in profile.gpus])
        cores = _weighted(rng, [c for c, _ in profile.cores], [w for _, w in profile.cores])
        memory = _weighted(rng, [m for m, _ in profile.memory], [w for _, w in profile.memory])

        return Fingerprint(
            user_agent=user_agent,
            platform=profile.navigator_platform,
            platform_family=profile.family,
            browser_version=str(version),
            screen=screen,
            languages=languages,
            timezone=timezone,
            webgl_vendor=vendor,
            webgl_renderer=renderer,
            hardware_concurrency=cores,
            device_memory=memory,
        )


# ------------------------------------------------------------------
# Applying a fingerprint
# ------------------------------------------------------------------

_CH_PLATFORM = {p.family: p.ch_platform for p in _PLATFORMS}

# Browser chrome (tabs, address bar) eats into the available screen height.
_BROWSER_CHROME_PX = 85


def accept_language(fp: Fingerprint) -> str:
    """``Accept-Language`` header value consistent with ``navigator.languages``."""
    parts: list[str] = []
    for i, lang in enumerate(fp.languages):
        parts.append(lang if i == 0 else f"{lang};q={max(0.1, 1 - i * 0.1):.1f}")
    return ",".join(parts)


def client_hints(fp: Fingerprint) -> dict[str, str]:
    """Low-entropy UA client hints matching the fingerprint's user agent."""
    v = fp.browser_version
    return {
        "sec-ch-ua": f'"Google Chrome";v="{v}", "Chromium";v="{v}", "Not_A Brand";v="24"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": f'"{_CH_PLATFORM.get(fp.platform_family, "Windows")}"',
    }


def viewport_for(fp: Fingerprint) -> dict[str, int]:
    return {
        "width": fp.screen.avail_width,
        "height": max(600, fp.screen.avail_height - _BROWSER_CHROME_PX),
    }


def context_options(fp: Fingerprint) -> dict[str, Any]:
    """Keyword arguments for ``browser.new_context()``."""
    return {
        "user_agent": fp.user_agent,
        "viewport": viewport_for(fp),
        "screen": {"width": fp.screen.width, "height": fp.screen.height},
        "locale": fp.locale,
        "timezone_id": fp.timezone,
        "device_scale_factor": 2 if fp.platform_family == "macos" else 1,
        "color_scheme": "light",
        "java_script_enabled": True,
        "extra_http_headers": {
            "Accept-Language": accept_language(fp),
            **client_hints(fp),
        },
    }
