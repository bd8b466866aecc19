"""Tests for fingerprint generation and the derived context options."""

from __future__ import annotations

import json
from dataclasses import replace

import pytest

from streamhop.infrastructure.stealth.fingerprint import (
    FingerprintGenerator,
    accept_language,
    client_hints,
    context_options,
    viewport_for,
)
from streamhop.infrastructure.stealth.injections import build_init_script

_FAMILY_MARKERS = {
    "windows": ("Windows NT", "Win32"),
    "macos": ("Macintosh", "MacIntel"),
    "linux": ("X11; Linux", "Linux x86_64"),
}


class TestGenerator:
    def test_same_seed_same_identity(self) -> None:
        a = FingerprintGenerator(seed=42).generate()
        b = FingerprintGenerator(seed=42).generate()
        assert a.to_json() == b.to_json()

    def test_different_seeds_vary(self) -> None:
        identities = {FingerprintGenerator(seed=s).generate().to_json() for s in range(20)}
        assert len(identities) > 1

    @pytest.mark.parametrize("seed", range(40))
    def test_fields_agree_on_platform(self, seed: int) -> None:
        fp = FingerprintGenerator(seed=seed).generate()
        ua_token, platform = _FAMILY_MARKERS[fp.platform_family]
        assert ua_token in fp.user_agent
        assert fp.platform == platform
        assert f"Chrome/{fp.browser_version}.0.0.0" in fp.user_agent

    @pytest.mark.parametrize("seed", range(40))
    def test_gpu_matches_family(self, seed: int) -> None:
        fp = FingerprintGenerator(seed=seed).generate()
        if fp.platform_family == "macos":
            assert "Direct3D" not in fp.webgl_renderer
            assert fp.device_memory == 8
        if fp.platform_family == "windows":
            assert "Direct3D11" in fp.webgl_renderer

    @pytest.mark.parametrize("seed", range(40))
    def test_screen_and_memory_bounds(self, seed: int) -> None:
        fp = FingerprintGenerator(seed=seed).generate()
        assert fp.screen.avail_height < fp.screen.height
        assert fp.screen.avail_width == fp.screen.width
        assert fp.device_memory <= 8
        assert fp.hardware_concurrency >= 4

    @pytest.mark.parametrize("seed", range(40))
    def test_timezone_matches_locale(self, seed: int) -> None:
        fp = FingerprintGenerator(seed=seed).generate()
        if fp.locale == "en-GB":
            assert fp.timezone == "Europe/London"
        if fp.locale == "de-DE":
            assert fp.timezone == "Europe/Berlin"
        if fp.locale == "en-US":
            assert fp.timezone.startswith("America/")


class TestContextOptions:
    def test_accept_language_weights(self, fingerprint) -> None:
        assert accept_language(fingerprint) == "en-US,en;q=0.9"

    def test_client_hints_platform(self, fingerprint) -> None:
        hints = client_hints(fingerprint)
        assert hints["sec-ch-ua-platform"] == '"Windows"'
        assert 'v="131"' in hints["sec-ch-ua"]
        assert hints["sec-ch-ua-mobile"] == "?0"

    def test_viewport_leaves_room_for_browser_chrome(self, fingerprint) -> None:
        assert viewport_for(fingerprint) == {"width": 1920, "height": 955}

    def test_options(self, fingerprint) -> None:
        options = context_options(fingerprint)
        assert options["user_agent"] == fingerprint.user_agent
        assert options["locale"] == "en-US"
        assert options["timezone_id"] == "America/New_York"
        assert options["screen"] == {"width": 1920, "height": 1080}
        assert options["device_scale_factor"] == 1
        assert options["extra_http_headers"]["Accept-Language"] == "en-US,en;q=0.9"


class TestInitScript:
    def test_values_embedded_as_json(self, fingerprint) -> None:
        script = build_init_script(fingerprint)
        assert "__FP__" not in script
        assert "__VENDOR__" not in script
        assert "37445" in script
        payload = script.split("const fp = ", 1)[1].split(";\n", 1)[0]
        data = json.loads(payload)
        assert data["platform"] == "Win32"
        assert data["hardwareConcurrency"] == 8
        assert data["screen"]["availHeight"] == 1040
        assert data["webglRenderer"] == fingerprint.webgl_renderer

    def test_hostile_strings_stay_quoted(self, fingerprint) -> None:
        fp = replace(fingerprint, webgl_vendor="x'); alert(1); ('")
        script = build_init_script(fp)
        payload = script.split("const fp = ", 1)[1].split(";\n", 1)[0]
        assert json.loads(payload)["webglVendor"] == "x'); alert(1); ('"
