"""
Tiles - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line access to the tile pipeline.

- fetch: cached-or-fresh tile data
- refresh: invalidate, then fetch fresh
- analyze: LLM synthesis over a tile
- sentiment: blended multi-source sentiment

============================================================
USAGE
============================================================
idea-signals fetch pmf_score "AI-powered personal assistant"
idea-signals refresh news_analysis "meal kits" --industry food --geography US
idea-signals sentiment "AI-powered personal assistant" --demo

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from core.config import AppConfig
from core.exceptions import ErrorResponse, IdeaSignalException
from market_signals.models import QueryContext, TimeWindow

from .routing import TILE_TYPES
from .service import TileService, build_service


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def _add_query_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("tile_type", choices=TILE_TYPES, help="Tile to load")
    parser.add_argument("idea", help="Business idea text")
    parser.add_argument("--industry", help="Industry filter")
    parser.add_argument("--geography", help="Geography filter")
    parser.add_argument(
        "--time-window",
        choices=[w.value for w in TimeWindow],
        help="Time window filter",
    )
    parser.add_argument("--user-id", help="Persist to the durable tier for this user")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="idea-signals",
        description="Market signal tiles for startup ideas",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Use randomized demo data instead of hosted functions",
    )
    parser.add_argument("--seed", type=int, help="Seed for demo data")
    parser.add_argument("--env-file", help="Path to a .env file")

    commands = parser.add_subparsers(dest="command", required=True)

    _add_query_arguments(commands.add_parser("fetch", help="Cached or fresh tile data"))
    _add_query_arguments(commands.add_parser("refresh", help="Invalidate and re-fetch a tile"))
    _add_query_arguments(commands.add_parser("analyze", help="LLM analysis of a tile"))

    sentiment = commands.add_parser("sentiment", help="Blended multi-source sentiment")
    sentiment.add_argument("idea", help="Business idea text")

    return parser


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def build_config(args: argparse.Namespace) -> AppConfig:
    config = AppConfig.from_env(args.env_file)
    if args.demo:
        config.sources.demo_mode = True
    if args.seed is not None:
        config.sources.demo_seed = args.seed
    if args.log_level:
        config.log_level = args.log_level
    return config


async def run_command(service: TileService, args: argparse.Namespace) -> Any:
    if args.command == "sentiment":
        return (await service.unified_sentiment(args.idea)).to_dict()

    context = QueryContext(
        idea_text=args.idea,
        tile_type=args.tile_type,
        industry=args.industry,
        geography=args.geography,
        time_window=args.time_window,
    )
    if args.command == "fetch":
        return (await service.fetch(context, user_id=args.user_id)).to_dict()
    if args.command == "refresh":
        return (await service.refresh(context, user_id=args.user_id)).to_dict()
    return await service.analyze(context, user_id=args.user_id)


async def async_main(args: argparse.Namespace, config: AppConfig) -> int:
    service = build_service(config)
    try:
        result = await run_command(service, args)
    except IdeaSignalException as e:
        logger.error(f"{args.command} failed: {e}")
        print(json.dumps(ErrorResponse.from_exception(e).to_dict(), indent=2), file=sys.stderr)
        return 1
    finally:
        await service.close()

    print(json.dumps(result, indent=2, default=str))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except IdeaSignalException as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    return asyncio.run(async_main(args, config))


if __name__ == "__main__":
    sys.exit(main())
