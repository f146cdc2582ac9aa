"""Command-line entry for wallcal.

Starts the HTTP server by default; ``--month`` prints a text agenda for one
month instead and exits.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import Optional

import yaml

from .aggregator import CalendarAggregator
from .config import Config, load_config
from .display import render_agenda
from .logging_config import configure_logging, init_logging
from .server import parse_month, run_server
from .stores import JsonEventStore, JsonProjectStore

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the wallcal CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="wallcal",
        description="wallcal - merged month calendar for a wall display",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m wallcal                          # Start server on default port (8080)
  python -m wallcal --port 3000              # Start server on port 3000
  python -m wallcal --month 2024-07          # Print the July 2024 agenda
  python -m wallcal --config my.yaml --debug # Custom config, verbose logging
        """,
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to YAML config file (default: ./config/config.yaml)",
    )
    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from WALLCAL_PORT env var)",
    )
    parser.add_argument(
        "--month",
        metavar="YYYY-MM",
        nargs="?",
        const="",
        help="Print the agenda for a month (current month when no value is given) and exit",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser


async def _print_month(config: Config, month: Optional[str]) -> None:
    aggregator = CalendarAggregator(
        config,
        event_store=JsonEventStore(config.events_path),
        project_store=JsonProjectStore(config.projects_path),
    )
    try:
        today = datetime.now(aggregator.tz).date()
        year, month_number = parse_month(month, today)
        calendar = await aggregator.build_month(year, month_number)
        print(render_agenda(calendar, today, aggregator.tz, now=datetime.now(aggregator.tz)))
    finally:
        await aggregator.aclose()


def main(argv: Optional[list[str]] = None) -> int:
    """Run the wallcal CLI.

    Returns:
        Process exit code
    """
    args = _create_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Could not load configuration: {exc}", file=sys.stderr)
        return 2

    init_logging(config.log_level)
    configure_logging(debug_mode=args.debug or config.log_level == "DEBUG")

    if args.port is not None:
        config.server_port = args.port

    if args.month is not None:
        try:
            asyncio.run(_print_month(config, args.month))
        except ValueError as exc:
            print(str(exc), file=sys.stderr)
            return 2
        return 0

    run_server(config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
