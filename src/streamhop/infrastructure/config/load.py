from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

_SECTION_KEYS: set[str] = {
    "http",
    "resolution",
    "render",
    "challenge",
    "logging",
    "servers",
}

# Flat keys (ENV/CLI) -> (section, key)
_FLAT_MAP: dict[str, tuple[str, str]] = {
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_user_agent": ("http", "user_agent"),
    "http_max_retries": ("http", "max_retries"),
    "http_rate_per_host": ("http", "rate_per_host"),
    "http_burst_per_host": ("http", "burst_per_host"),
    "http_max_body_bytes": ("http", "max_body_bytes"),
    "resolution_overall_timeout_seconds": ("resolution", "overall_timeout_seconds"),
    "resolution_fetch_hop_timeout_seconds": ("resolution", "fetch_hop_timeout_seconds"),
    "resolution_render_hop_timeout_seconds": ("resolution", "render_hop_timeout_seconds"),
    "resolution_default_server": ("resolution", "default_server"),
    "resolution_default_method": ("resolution", "default_method"),
    "render_headless": ("render", "headless"),
    "render_max_concurrent": ("render", "max_concurrent"),
    "render_queue_timeout_seconds": ("render", "queue_timeout_seconds"),
    "render_reading_seconds": ("render", "reading_seconds"),
    "render_proxies": ("render", "proxies"),
    "challenge_timeout_seconds": ("challenge", "timeout_seconds"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """
    Recursively merge `override` into `base` and return `base`.

    dict + dict merges deeply; otherwise the override wins.
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, Mapping):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _normalize_layer(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize a layer (defaults/YAML/ENV/CLI) into the canonical sectioned shape.

    Sectioned blocks pass through; flat keys such as ``render_max_concurrent``
    are moved to ``render.max_concurrent``.
    """
    out: dict[str, Any] = {}

    for section in _SECTION_KEYS:
        if section in data and isinstance(data[section], Mapping):
            out[section] = deepcopy(dict(data[section]))

    for key in ("app_name", "environment"):
        if key in data:
            out[key] = data[key]

    for flat_key, (section, section_key) in _FLAT_MAP.items():
        if flat_key in data:
            out.setdefault(section, {})
            out[section][section_key] = data[flat_key]

    return out


def _read_yaml_config(config_path: Path) -> dict[str, Any]:
    parsed = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """
    Load configuration with strict precedence:
    defaults < YAML file < env vars < cli overrides

    No filesystem side effects: nothing is created or written.
    """
    cli_overrides = cli_overrides or {}

    # .env participates as part of the env layer.
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    base = _normalize_layer(deepcopy(DEFAULT_CONFIG))

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(config_path)
        _deep_merge(base, _normalize_layer(_read_yaml_config(config_path)))

    _deep_merge(base, _normalize_layer(EnvOverrides().to_update_dict()))
    _deep_merge(base, _normalize_layer(cli_overrides))

    return AppConfig.model_validate(base)
