from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
import uvicorn

from streamhop.domain.entities.resolution import ExtractionResult, ResolutionRequest
from streamhop.infrastructure.config import AppConfig, load_config
from streamhop.infrastructure.logging.setup import configure_logging
from streamhop.interfaces.api.extract.presenter import present_result
from streamhop.interfaces.app import create_app
from streamhop.interfaces.composition import build_resources, close_resources

log = structlog.get_logger(__name__)


def _add_config_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="Path to YAML config file.")
    parser.add_argument("--dotenv", default=None, help="Path to .env file.")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window (debugging).",
    )


def _parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="streamhop")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API (default).")
    serve.add_argument("--host", default=None, help="Bind host (overrides HOST env).")
    serve.add_argument(
        "--port", default=None, type=int, help="Bind port (overrides PORT env)."
    )
    _add_config_flags(serve)

    resolve = sub.add_parser("resolve", help="Resolve one title and print the JSON result.")
    target = resolve.add_mutually_exclusive_group(required=True)
    target.add_argument("--id", dest="provider_id", help="Provider (TMDB) id.")
    target.add_argument("--url", help="Explicit embed URL.")
    resolve.add_argument("--season", type=int, default=None)
    resolve.add_argument("--episode", type=int, default=None)
    resolve.add_argument("--server", default=None)
    resolve.add_argument("--method", choices=["auto", "fetch", "render"], default=None)
    _add_config_flags(resolve)

    argv = list(argv)
    if not argv or argv[0].startswith("-"):
        argv = ["serve", *argv]
    return parser.parse_args(argv)


def _load(args: argparse.Namespace) -> AppConfig:
    cli_overrides: dict[str, Any] = {}
    if args.log_level:
        cli_overrides["log_level"] = args.log_level
    if args.log_format:
        cli_overrides["log_format"] = args.log_format
    if args.headful:
        cli_overrides["render_headless"] = False

    return load_config(
        config_path=Path(args.config) if args.config else None,
        dotenv_path=Path(args.dotenv) if args.dotenv else None,
        cli_overrides=cli_overrides,
    )


async def _resolve_once(
    config: AppConfig, request: ResolutionRequest
) -> tuple[ExtractionResult, dict[str, Any]]:
    resources = build_resources(config)
    try:
        result = await resources.extract_uc.execute(request)
        return result, present_result(result, resources.servers.names)
    finally:
        await close_resources(resources)


def _resolve(args: argparse.Namespace, config: AppConfig) -> int:
    is_episode = args.season is not None or args.episode is not None
    request = ResolutionRequest(
        media_kind="episode" if is_episode else "movie",
        provider_id=args.provider_id or "",
        season=args.season,
        episode=args.episode,
        preferred_server=args.server or config.resolution.default_server,
        strategy_hint=args.method or config.resolution.default_method,
        url=args.url,
    )
    result, payload = asyncio.run(_resolve_once(config, request))
    json.dump(payload, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0 if result.success else 1


def start(argv: Iterable[str] | None = None) -> int:
    """Process entrypoint: load config once, then serve or resolve."""
    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)
    config = _load(args)

    if args.command == "resolve":
        configure_logging(config, stderr_only=True)
        return _resolve(args, config)

    log_config = configure_logging(config)
    uvicorn.run(
        create_app(config),
        host=args.host or os.getenv("HOST", "0.0.0.0"),
        port=int(args.port or os.getenv("PORT", "7980")),
        log_config=log_config,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(start())
