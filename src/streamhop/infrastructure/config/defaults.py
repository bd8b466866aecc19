"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "streamhop",
    "environment": "dev",
    "http": {
        "timeout_seconds": 15.0,
        "user_agent": None,  # Falls back to a current desktop Chrome UA
        "max_retries": 2,
        "rate_per_host": 4.0,
        "burst_per_host": 4,
        "max_body_bytes": 2_000_000,
    },
    "resolution": {
        "overall_timeout_seconds": 90.0,
        "fetch_hop_timeout_seconds": 10.0,
        "render_hop_timeout_seconds": 50.0,
        "default_server": "vidsrc.xyz",
        "default_method": "auto",
    },
    "render": {
        "headless": True,
        "max_concurrent": 2,
        "queue_timeout_seconds": 10.0,
        "navigation_timeout_seconds": 15.0,
        "selector_timeout_seconds": 8.0,
        "reading_seconds": 2.0,
        "network_wait_seconds": 4.0,
        "block_resources": True,
        "tab_switch": False,
        "proxies": [],
        "proxy_cooldown_seconds": 300.0,
    },
    "challenge": {
        "poll_interval_seconds": 1.0,
        "timeout_seconds": 30.0,
        "min_content_chars": 3000,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "servers": {},
}
