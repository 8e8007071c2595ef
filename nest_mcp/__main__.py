"""
Command line entry point.

Run with: python -m nest_mcp serve [--host HOST] [--port PORT] [--db-path PATH]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import uvicorn

from .config import load_settings
from .server import create_app

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nest-mcp", description="Company dataset SQL tools over SSE")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Start the SSE server")
    serve.add_argument("--host", help="Bind address (env NEST_HOST)")
    serve.add_argument("--port", type=int, help="Port (env PORT)")
    serve.add_argument("--db-path", type=Path, help="DuckDB database file (env NEST_DB_PATH)")
    serve.add_argument("--log-level", help="Logging level (env LOG_LEVEL)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings().override(
        host=args.host,
        port=args.port,
        db_path=args.db_path,
        log_level=args.log_level.upper() if args.log_level else None,
    )
    configure_logging(settings.log_level)

    if args.command == "serve":
        logger.info("Attempting to bind to: %s:%d", settings.host, settings.port)
        app = create_app(settings)
        uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
