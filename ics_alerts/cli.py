"""
Command-line interface for ICS Alerts.

This module lets you add reminder alarms to a local iCal file, or fetch a
published calendar from the provider and rewrite it, without deploying the
Lambda function.
"""

import argparse
import sys
from typing import List, Optional

from .core import (
    IcsAlertsError,
    LogLevel,
    Logger,
    Settings,
    add_alarms,
    fetch_calendar,
    parse_minutes,
)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Args:
        argv: Arguments to parse, defaults to sys.argv

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Add reminder alarms to an iCal calendar"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use -v for warnings, -vv for debug)"
    )
    parser.add_argument(
        "-m",
        "--min",
        dest="minutes",
        action="append",
        required=True,
        help="Reminder offset in minutes, repeat for several alarms"
    )
    parser.add_argument(
        "--input",
        help="Path to a local .ics file to rewrite instead of fetching one"
    )
    parser.add_argument("--user", help="Calendar owner at the provider")
    parser.add_argument("--token", help="Published calendar token")
    parser.add_argument(
        "--host",
        default=None,
        help="Calendar provider host (default: ICS_PROVIDER_HOST or "
             "outlook.office365.com)"
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Where to write the calendar (default: stdout)"
    )
    args = parser.parse_args(argv)

    if not args.input and not (args.user and args.token):
        parser.error("either --input or both --user and --token are required")
    return args


def get_log_level(verbose_count: int) -> LogLevel:
    """
    Convert verbose count to log level.

    Args:
        verbose_count: Number of -v flags

    Returns:
        Appropriate log level
    """
    if verbose_count >= 2:
        return LogLevel.DEBUG
    elif verbose_count == 1:
        return LogLevel.WARN
    return LogLevel.NORMAL


def load_calendar(args: argparse.Namespace, logger: Logger) -> Optional[str]:
    """Read the calendar from disk or from the provider."""
    if args.input:
        with open(args.input, newline="") as f:
            return f.read()

    settings = Settings.from_env()
    if args.host:
        settings.provider_host = args.host

    upstream = fetch_calendar(args.user, args.token, {}, settings, logger)
    if upstream.status_code != 200:
        logger.normal(f"Provider returned {upstream.status_code}")
        return None
    return upstream.body


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Process exit status
    """
    args = parse_args(argv)
    # Diagnostics go to stderr so the calendar can be piped
    logger = Logger(get_log_level(args.verbose), stream=sys.stderr)

    try:
        minutes = parse_minutes(args.minutes)
        ics = load_calendar(args, logger)
    except FileNotFoundError as e:
        logger.normal(str(e))
        return 1
    except IcsAlertsError as e:
        logger.normal(f"Error: {e}")
        return 1

    if ics is None:
        return 1

    result = add_alarms(ics, minutes)
    if args.output:
        with open(args.output, "w") as f:
            f.write(result)
        logger.normal(f"Wrote {args.output}")
    else:
        sys.stdout.write(result)
        sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
