#!/usr/bin/env python3
"""
Debug Runner for the ICS Alerts Lambda Function

This script invokes the Lambda handler locally with a function URL event so
you can check a calendar end to end before deploying.

Usage:
    python debug_runner.py --user USER --token TOKEN [--min 5 --min 15]
    [--header NAME=VALUE] [--summary] [--verbose]

Examples:
    python debug_runner.py --user me@example.com --token abc123 --min 10
    python debug_runner.py --user me@example.com --token abc123 \\
        --min 5 --min 30 --summary --verbose

--summary parses the returned calendar with icalendar (pip install -e .[test])
and reports how many events and alarms it contains.
"""

import argparse
import json
import os
import sys
import traceback
from typing import Any, Dict, List
from urllib.parse import urlencode

from ics_alerts.lambda_handler import lambda_handler


class MockLambdaContext:
    """Mock Lambda context object for local testing."""

    def __init__(self, timeout_seconds: int = 30):
        self.function_name = "ics-alerts-debug"
        self.function_version = "$LATEST"
        self.memory_limit_in_mb = 256
        self.aws_request_id = "test-request-id"
        self.invoked_function_arn = (
            "arn:aws:lambda:us-east-1:123456789012:"
            "function:ics-alerts-debug"
        )
        self.log_group_name = "/aws/lambda/ics-alerts-debug"
        self.log_stream_name = "2024/01/01/[$LATEST]test-stream"
        self._timeout_seconds = timeout_seconds

    def get_remaining_time_in_millis(self):
        """Return remaining time in milliseconds."""
        return self._timeout_seconds * 1000


def create_test_event(
    user: str,
    token: str,
    minutes: List[str],
    extra_headers: Dict[str, str],
) -> Dict[str, Any]:
    """Create a function URL (payload 2.0) GET event."""
    query = [("user", user), ("token", token)]
    query.extend(("min", value) for value in minutes)
    raw_query = urlencode(query)

    headers = {
        "accept": "text/calendar",
        "user-agent": "ics-alerts-debug",
        "x-amzn-trace-id": "Root=1-00000000-000000000000000000000000",
        "x-forwarded-for": "127.0.0.1",
        "x-forwarded-proto": "https",
    }
    headers.update(extra_headers)

    return {
        "version": "2.0",
        "routeKey": "$default",
        "rawPath": "/",
        "rawQueryString": raw_query,
        "headers": headers,
        "queryStringParameters": {
            "user": user,
            "token": token,
            "min": ",".join(minutes),
        },
        "requestContext": {
            "http": {
                "method": "GET",
                "path": "/",
                "protocol": "HTTP/1.1",
                "sourceIp": "127.0.0.1",
                "userAgent": "ics-alerts-debug",
            },
            "requestId": "test-request-id",
        },
        "isBase64Encoded": False,
    }


def parse_header_args(values: List[str]) -> Dict[str, str]:
    headers = {}
    for value in values:
        name, sep, header_value = value.partition("=")
        if not sep:
            raise ValueError(f"Header must look like NAME=VALUE: {value}")
        headers[name.strip()] = header_value.strip()
    return headers


def summarize_calendar(body: str) -> None:
    """Print event and alarm counts of a calendar."""
    from icalendar import Calendar

    cal = Calendar.from_ical(body)
    events = list(cal.walk("VEVENT"))
    alarms = list(cal.walk("VALARM"))
    print(f"📅 Events: {len(events)}")
    print(f"⏰ Alarms: {len(alarms)}")
    for i, event in enumerate(events[:5]):
        triggers = [a.get("trigger").to_ical().decode() for a in event.walk("VALARM")]
        print(f"   {i+1}. {event.get('summary', '(no summary)')} "
              f"triggers: {', '.join(triggers) or 'none'}")
    if len(events) > 5:
        print(f"   ... and {len(events) - 5} more events")


def run_test(args: argparse.Namespace) -> bool:
    """Run the Lambda function test."""

    print("🚀 Starting Lambda function test...")
    print(f"   User: {args.user}")
    print(f"   Minutes: {args.minutes}")
    print()

    os.environ["LOG_LEVEL"] = "DEBUG" if args.verbose else "NORMAL"

    try:
        test_event = create_test_event(
            args.user, args.token, args.minutes, parse_header_args(args.header)
        )
    except ValueError as e:
        print(f"❌ Failed to create test event: {e}")
        return False

    if args.verbose:
        print(json.dumps(test_event, indent=2))

    test_context = MockLambdaContext()

    try:
        print("=" * 60)
        print("🔄 EXECUTING LAMBDA FUNCTION")
        print("=" * 60)

        result = lambda_handler(test_event, test_context)

        print("=" * 60)
        print(f"📊 Status Code: {result.get('statusCode', 'N/A')}")
        print(f"📊 Headers: {result.get('headers', {})}")

        body = result.get("body", "")
        if args.summary and result.get("statusCode") == 200:
            summarize_calendar(body)
        else:
            print(f"📊 Body: {body}")

        return result.get("statusCode") == 200

    except Exception as e:
        print("=" * 60)
        print("❌ LAMBDA FUNCTION EXECUTION FAILED")
        print("=" * 60)
        print(f"Exception Type: {type(e).__name__}")
        print(f"Exception Message: {e}")

        if args.verbose:
            print("\n📚 Full Traceback:")
            traceback.print_exc()

        return False


def main():
    """Main function to parse arguments and run tests."""

    parser = argparse.ArgumentParser(
        description="Debug runner for the ICS Alerts Lambda function",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--user", required=True, help="Calendar owner")
    parser.add_argument("--token", required=True, help="Published calendar token")
    parser.add_argument(
        "--min",
        dest="minutes",
        action="append",
        default=None,
        help="Reminder offset in minutes, repeatable (default: 5)"
    )
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        help="Extra request header as NAME=VALUE, repeatable"
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Parse the returned calendar and print event and alarm counts"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging and full tracebacks"
    )

    args = parser.parse_args()
    if args.minutes is None:
        args.minutes = ["5"]

    print("⏰ ICS Alerts - Lambda Function Debug Runner")
    print("=" * 60)

    success = run_test(args)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
