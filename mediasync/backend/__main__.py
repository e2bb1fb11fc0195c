"""
CLI entry point for the ingestion HTTP service.

Usage:
    python -m mediasync.backend --port 8000
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from uvicorn import run

from ..ingest.config.settings import load_settings
from ..ingest.utils.logging import setup_ingest_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="mediasync ingestion service")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    parser.add_argument("--environment", default=None, help="Environment name (overrides APP_ENV)")
    parser.add_argument("--log-level", default=None, help="Log level (overrides LOG_LEVEL)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    # The server process reads settings from the environment on startup
    if args.environment:
        os.environ["APP_ENV"] = args.environment
    if args.log_level:
        os.environ["LOG_LEVEL"] = args.log_level

    try:
        settings = load_settings()
    except Exception as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_ingest_logger("mediasync", level=settings.log_level, json_logs=settings.json_logs)
    logging.getLogger(__name__).info(f"Starting mediasync on {args.host}:{args.port} ({settings.app_env})")

    run(
        "mediasync.backend.server:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
