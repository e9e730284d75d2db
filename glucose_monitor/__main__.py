"""
Run the glucose monitor HTTP service.

Usage:
    python -m glucose_monitor
    python -m glucose_monitor --host 0.0.0.0 --port 8080 --verbose
"""

import argparse
import logging
import sys

import uvicorn

from .config import get_settings


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="glucose_monitor",
        description="Serve a Nightscout glucose dashboard view-model",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Bind address (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Listen port (default: {settings.port})",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success)
    """
    args = create_parser().parse_args()
    settings = get_settings()
    log_level = "DEBUG" if args.verbose or settings.debug else settings.log_level

    logging.getLogger().setLevel(log_level)
    uvicorn.run(
        "glucose_monitor.main:app",
        host=args.host,
        port=args.port,
        log_level=log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
