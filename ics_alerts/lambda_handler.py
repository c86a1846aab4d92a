"""
AWS Lambda handler for ICS Alerts.

This module provides the Lambda entry point behind the function URL: it
validates the query, fetches the published calendar and returns it with
reminder alarms added.
"""

import json
from typing import Any, Callable, Dict, List

from .core import (
    AlertRequest,
    Logger,
    Settings,
    UpstreamResponse,
    UpstreamTimeout,
    UpstreamTransportError,
    ValidationError,
    add_alarms,
    fetch_calendar,
    filter_headers,
    parse_request,
)

CALENDAR_CONTENT_TYPE = "text/calendar"


def json_error(status_code: int, message: str) -> Dict[str, Any]:
    """Build a JSON error response."""
    return {
        "statusCode": status_code,
        "headers": {},
        "body": json.dumps({"error": message}),
        "isBase64Encoded": False,
    }


def build_response(
    upstream: UpstreamResponse,
    minutes: List[int],
) -> Dict[str, Any]:
    """
    Turn the provider response into the function response.

    Args:
        upstream: Response received from the provider
        minutes: Reminder offsets to inject on success

    Returns:
        Lambda proxy response dictionary
    """
    if upstream.status_code != 200:
        # Pass the provider's answer through untouched
        return {
            "statusCode": upstream.status_code,
            "headers": {},
            "body": upstream.body,
            "isBase64Encoded": False,
        }

    return {
        "statusCode": 200,
        "headers": {"Content-Type": CALENDAR_CONTENT_TYPE},
        "body": add_alarms(upstream.body, minutes),
        "isBase64Encoded": False,
    }


def handle_request(
    event: Dict[str, Any],
    settings: Settings,
    logger: Logger,
    fetch: Callable[..., UpstreamResponse] = fetch_calendar,
) -> Dict[str, Any]:
    """
    Run the validate, fetch, transform and respond pipeline.

    Args:
        event: Lambda event data
        settings: Runtime configuration
        logger: Logger instance for output
        fetch: Function used to reach the provider

    Returns:
        Lambda proxy response dictionary
    """
    try:
        request: AlertRequest = parse_request(event)
    except ValidationError as e:
        logger.warn(f"Rejected request: {e.message}")
        return json_error(400, e.message)

    logger.normal(f"Serving {request!r}")

    headers = filter_headers(event.get("headers"))
    logger.debug(f"Forwarding headers: {headers}")

    try:
        upstream = fetch(request.user, request.token, headers, settings, logger)
    except UpstreamTimeout as e:
        logger.normal(f"Upstream timed out: {e}")
        return json_error(504, "Calendar provider timed out")
    except UpstreamTransportError as e:
        logger.normal(f"Upstream unreachable: {e}")
        return json_error(502, "Calendar provider unreachable")

    return build_response(upstream, request.minutes)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda handler function.

    This function:
    1. Loads configuration from environment variables
    2. Sets up logging
    3. Validates the query parameters
    4. Fetches the calendar with the caller's headers
    5. Adds the requested alarms

    Args:
        event: Lambda event data
        context: Lambda context

    Returns:
        Response dictionary with status, headers and body
    """
    settings = Settings.from_env()
    logger = Logger(settings.log_level)

    try:
        return handle_request(event, settings, logger)
    except Exception as e:
        error_msg = f"An error occurred: {e}"
        logger.normal(error_msg)
        return json_error(500, error_msg)
