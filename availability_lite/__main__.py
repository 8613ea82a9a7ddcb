"""Command-line entry for availability_lite.

A tiny, import-light CLI that invokes the package's run_server() entrypoint.
"""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from . import run_server
from .exceptions import UnknownTopicError


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for availability_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="availability_lite",
        description="availability_lite - personal availability calendar server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m availability_lite                         # Start server on default port (8080)
  python -m availability_lite --port 3000             # Start server on port 3000
  python -m availability_lite --print --topic lunch   # Print lunch availability once
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from AVAILABILITY_WEB_PORT env var)",
    )
    parser.add_argument(
        "--print",
        dest="print_schedule",
        action="store_true",
        help="Fetch calendars once, print the schedule and exit",
    )
    parser.add_argument(
        "--topic",
        dest="topics",
        action="append",
        metavar="TOPIC",
        help="Topic filter for --print (repeatable)",
    )

    return parser


def main() -> NoReturn:
    """Run the availability_lite CLI."""
    parser = _create_parser()
    args = parser.parse_args()

    try:
        run_server(args)
    except UnknownTopicError as exc:
        parser.error(str(exc))
    sys.exit(0)


if __name__ == "__main__":
    main()
