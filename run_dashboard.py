#!/usr/bin/env python
"""
Idea Signal Hub API runner.

Usage:
    python run_dashboard.py
    python run_dashboard.py --port 8080 --reload
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

import uvicorn

from core.config import AppConfig
from core.exceptions import IdeaSignalException

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Idea Signal Hub API")
    parser.add_argument("--host", default=os.getenv("DASHBOARD_HOST", "0.0.0.0"))
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("DASHBOARD_PORT", os.getenv("PORT", "8000"))),
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("ENVIRONMENT", "production") == "development",
        help="Reload on code changes",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Validate configuration, then serve the API."""
    args = create_parser().parse_args(argv)

    try:
        config = AppConfig.from_env()
    except IdeaSignalException as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    mode = "demo" if config.sources.demo_mode or not config.sources.functions_base_url else "hosted"
    logger.info(f"Starting Idea Signal Hub API on {args.host}:{args.port} ({mode} sources)")

    uvicorn.run(
        "dashboard.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
