"""
Core functionality for ICS Alerts.

This module contains the classes and functions for validating a calendar
request, fetching the published calendar from the provider and injecting
reminder alarms into the returned iCal feed.
"""

import os
import re
import time
from enum import Enum, auto
from typing import Dict, List, Mapping, Optional, TextIO
from urllib.parse import parse_qs, quote

import requests

# Published Outlook calendars live under this host
DEFAULT_PROVIDER_HOST = "outlook.office365.com"

# Seconds to wait for the provider before giving up on an attempt
DEFAULT_TIMEOUT = 10.0

# Extra attempts after a transport failure
DEFAULT_RETRIES = 1

# Initial delay between attempts, doubled after each failure
RETRY_DELAY = 0.5

CALENDAR_PATH = "/owa/calendar/{user}/{token}/calendar.ics"

EVENT_END_MARKER = "END:VEVENT"

# Headers added by the Lambda / API Gateway edge start with this prefix
PLATFORM_HEADER_PREFIX = "x-"

DIGITS_PATTERN = re.compile(r"^\d+$")

# Line endings the way iCal feeds use them; a bare \r is part of the line
LINE_BREAK = re.compile(r"\r?\n")


class LogLevel(Enum):
    """Logging levels for the service."""
    NORMAL = auto()
    WARN = auto()
    DEBUG = auto()


class Logger:
    """Simple logger with configurable levels."""

    def __init__(
        self,
        level: LogLevel = LogLevel.NORMAL,
        stream: Optional[TextIO] = None,
    ):
        self.level = level
        # None means stdout, which Lambda ships to CloudWatch
        self.stream = stream

    def log(self, message: str, level: LogLevel = LogLevel.NORMAL) -> None:
        """
        Log a message if the current level is sufficient.

        Args:
            message: Message to log
            level: Level of the message
        """
        if level.value <= self.level.value:
            print(message, file=self.stream)

    def normal(self, message: str) -> None:
        """Log a normal priority message."""
        self.log(message, LogLevel.NORMAL)

    def warn(self, message: str) -> None:
        """Log a warning priority message."""
        self.log(message, LogLevel.WARN)

    def debug(self, message: str) -> None:
        """Log a debug priority message."""
        self.log(message, LogLevel.DEBUG)


class IcsAlertsError(Exception):
    """Base class for errors raised while serving a calendar request."""


class ValidationError(IcsAlertsError):
    """The incoming request is missing or has a malformed parameter."""

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name
        self.message = message


class MissingParameter(ValidationError):
    def __init__(self, name: str):
        super().__init__(name, f"Missing required parameter: '{name}'")


class InvalidParameterFormat(ValidationError):
    def __init__(self, name: str, value: str):
        super().__init__(name, f"Invalid value for parameter '{name}': '{value}'")
        self.value = value


class UpstreamTransportError(IcsAlertsError):
    """The calendar provider could not be reached."""


class UpstreamTimeout(UpstreamTransportError):
    """The calendar provider did not answer in time."""


class AlertRequest:
    """
    A validated request for an alarm-injected calendar.

    Attributes:
        user: Calendar owner identifier at the provider
        token: Opaque credential for the published calendar
        minutes: Reminder offsets in minutes, in caller order
    """

    def __init__(self, user: str, token: str, minutes: List[int]):
        self.user = user
        self.token = token
        self.minutes = minutes

    def __repr__(self) -> str:
        # The token is a credential, keep it out of logs
        return f"AlertRequest(user={self.user!r}, minutes={self.minutes!r})"


class UpstreamResponse:
    """
    Response received from the calendar provider.

    Attributes:
        status_code: HTTP status returned by the provider
        headers: Response headers
        body: Response body as text
        elapsed_ms: Wall-clock latency of the call in milliseconds
    """

    def __init__(
        self,
        status_code: int,
        headers: Dict[str, str],
        body: str,
        elapsed_ms: float = 0.0,
    ):
        self.status_code = status_code
        self.headers = headers
        self.body = body
        self.elapsed_ms = elapsed_ms


class Settings:
    """
    Runtime configuration for the service.

    Attributes:
        log_level: Level for the invocation logger
        provider_host: Host serving the published calendars
        timeout: Per-attempt upstream timeout in seconds
        retries: Extra attempts after a transport failure
    """

    def __init__(
        self,
        log_level: LogLevel = LogLevel.NORMAL,
        provider_host: str = DEFAULT_PROVIDER_HOST,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
    ):
        self.log_level = log_level
        self.provider_host = provider_host
        self.timeout = timeout
        self.retries = retries

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Invalid values fall back to their defaults with a warning.

        Args:
            environ: Mapping to read from, defaults to os.environ

        Returns:
            Settings instance
        """
        if environ is None:
            environ = os.environ

        log_level_str = environ.get("LOG_LEVEL", "NORMAL").upper()
        try:
            log_level = LogLevel[log_level_str]
        except KeyError:
            log_level = LogLevel.NORMAL
            print(f"WARN: Invalid LOG_LEVEL '{log_level_str}'. "
                  f"Defaulting to NORMAL.")

        timeout = DEFAULT_TIMEOUT
        timeout_str = environ.get("UPSTREAM_TIMEOUT")
        if timeout_str:
            try:
                timeout = float(timeout_str)
            except ValueError:
                print(f"WARN: Invalid UPSTREAM_TIMEOUT '{timeout_str}'. "
                      f"Defaulting to {DEFAULT_TIMEOUT}.")
            else:
                if timeout <= 0:
                    print(f"WARN: Invalid UPSTREAM_TIMEOUT '{timeout_str}'. "
                          f"Defaulting to {DEFAULT_TIMEOUT}.")
                    timeout = DEFAULT_TIMEOUT

        retries = DEFAULT_RETRIES
        retries_str = environ.get("UPSTREAM_RETRIES")
        if retries_str:
            if DIGITS_PATTERN.match(retries_str):
                retries = int(retries_str)
            else:
                print(f"WARN: Invalid UPSTREAM_RETRIES '{retries_str}'. "
                      f"Defaulting to {DEFAULT_RETRIES}.")

        return cls(
            log_level=log_level,
            provider_host=environ.get("ICS_PROVIDER_HOST") or DEFAULT_PROVIDER_HOST,
            timeout=timeout,
            retries=retries,
        )


def get_query_params(event: Mapping) -> Dict[str, List[str]]:
    """
    Collect every query parameter value from a Lambda HTTP event.

    Function URL and HTTP API (payload 2.0) events carry the untouched query
    in ``rawQueryString``, which is the only place repeated keys keep their
    order. REST API (payload 1.0) events carry
    ``multiValueQueryStringParameters``. As a last resort the values of
    ``queryStringParameters`` are used, where API Gateway joins repeated keys
    with commas.

    Args:
        event: Lambda event data

    Returns:
        Dictionary mapping parameter names to all of their values
    """
    raw_query = event.get("rawQueryString")
    if raw_query:
        return parse_qs(raw_query, keep_blank_values=True)

    multi_value = event.get("multiValueQueryStringParameters")
    if multi_value:
        return {name: list(values) for name, values in multi_value.items()}

    params = event.get("queryStringParameters") or {}
    return {name: value.split(",") for name, value in params.items()}


def parse_minutes(values: List[str]) -> List[int]:
    """
    Parse reminder offsets.

    Args:
        values: Raw values of the ``min`` parameter

    Returns:
        Offsets in minutes, in the order supplied

    Raises:
        InvalidParameterFormat: If a value is not a non-negative integer
    """
    minutes = []
    for value in values:
        if not DIGITS_PATTERN.match(value.strip()):
            raise InvalidParameterFormat("min", value)
        try:
            minutes.append(int(value))
        except ValueError:
            # Past the interpreter's integer string conversion limit
            raise InvalidParameterFormat("min", value)
    return minutes


def parse_request(event: Mapping) -> AlertRequest:
    """
    Extract and validate the calendar request from a Lambda HTTP event.

    Args:
        event: Lambda event data

    Returns:
        Validated AlertRequest

    Raises:
        MissingParameter: If user, token or min is absent
        InvalidParameterFormat: If a min value is not a non-negative integer
    """
    params = get_query_params(event)

    # Only the first value counts for user and token
    found = {}
    for name in ("user", "token"):
        values = params.get(name) or [""]
        if not values[0]:
            raise MissingParameter(name)
        found[name] = values[0]

    min_values = params.get("min")
    if not min_values:
        raise MissingParameter("min")

    return AlertRequest(found["user"], found["token"], parse_minutes(min_values))


def is_platform_header(name: str) -> bool:
    """Tell whether a header was injected by the invoking platform."""
    return name.lower().startswith(PLATFORM_HEADER_PREFIX)


def filter_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """
    Drop platform-injected headers before forwarding a request upstream.

    Args:
        headers: Headers of the incoming request

    Returns:
        The remaining headers with their original names and values
    """
    if not headers:
        return {}
    return {
        name: value
        for name, value in headers.items()
        if not is_platform_header(name)
    }


def build_calendar_url(provider_host: str, user: str, token: str) -> str:
    """Build the published calendar URL for a user."""
    path = CALENDAR_PATH.format(
        user=quote(user, safe="@"),
        token=quote(token, safe="@"),
    )
    return f"https://{provider_host}{path}"


def redact_url(text: str, token: str) -> str:
    """Replace the credential, raw or escaped, in a URL or error message."""
    if not token:
        return text
    return text.replace(quote(token, safe="@"), "***").replace(token, "***")


def fetch_calendar(
    user: str,
    token: str,
    headers: Dict[str, str],
    settings: Optional[Settings] = None,
    logger: Optional[Logger] = None,
) -> UpstreamResponse:
    """
    Fetch a published calendar from the provider.

    Transport failures are retried up to ``settings.retries`` times with
    exponential backoff. HTTP error statuses are returned, never retried.

    Args:
        user: Calendar owner identifier
        token: Opaque calendar credential
        headers: Headers to forward to the provider
        settings: Runtime configuration
        logger: Optional logger instance for output

    Returns:
        UpstreamResponse for whatever status the provider returned

    Raises:
        UpstreamTimeout: If every attempt timed out
        UpstreamTransportError: If the provider could not be reached
    """
    if settings is None:
        settings = Settings()
    if logger is None:
        logger = Logger()

    url = build_calendar_url(settings.provider_host, user, token)
    safe_url = redact_url(url, token)
    delay = RETRY_DELAY

    for attempt in range(settings.retries + 1):
        logger.debug(f"GET {safe_url} (attempt {attempt + 1})")
        start = time.perf_counter()
        try:
            response = requests.get(url, headers=headers, timeout=settings.timeout)
        except requests.exceptions.RequestException as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            # requests puts the full request path in its messages
            reason = redact_url(str(e), token)
            if attempt < settings.retries:
                logger.warn(
                    f"Upstream attempt {attempt + 1}/{settings.retries + 1} "
                    f"failed after {elapsed_ms:.0f} ms: {reason}, "
                    f"retrying in {delay:.1f}s"
                )
                time.sleep(delay)
                delay *= 2
                continue

            logger.normal(
                f"Giving up on {safe_url} after {settings.retries + 1} "
                f"attempt(s): {reason}"
            )
            if isinstance(e, requests.exceptions.Timeout):
                raise UpstreamTimeout(reason) from e
            raise UpstreamTransportError(reason) from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.normal(
            f"Upstream responded {response.status_code} in {elapsed_ms:.0f} ms"
        )

        upstream = UpstreamResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.text,
            elapsed_ms=elapsed_ms,
        )
        if upstream.status_code != 200:
            logger.normal(f"Upstream error status: {upstream.status_code}")
            logger.normal(f"Upstream error body: {upstream.body}")
            logger.normal(f"Upstream error headers: {upstream.headers}")
        return upstream


def render_alarm(minutes: int) -> List[str]:
    """Render one display alarm firing ``minutes`` before the event."""
    return [
        "BEGIN:VALARM",
        f"TRIGGER:-PT{minutes}M",
        "ACTION:DISPLAY",
        "END:VALARM",
    ]


def add_alarms(ics: str, minutes: List[int]) -> str:
    """
    Insert display alarms into every event of an iCal document.

    Each line exactly equal to ``END:VEVENT`` is preceded by one VALARM block
    per offset, in the order given. All other lines are kept as they are. The
    document is not parsed, so every event gets the same alarms.

    Args:
        ics: iCal document text
        minutes: Reminder offsets in minutes

    Returns:
        The rewritten document, lines joined by ``\\n``
    """
    alarm_lines = []
    for offset in minutes:
        alarm_lines.extend(render_alarm(offset))

    segments = LINE_BREAK.split(ics)
    # A final line break does not open another line
    if segments[-1] == "":
        segments.pop()

    lines = []
    for line in segments:
        # Alarms have to sit just before the end of the event
        if line == EVENT_END_MARKER:
            lines.extend(alarm_lines)
        lines.append(line)
    return "\n".join(lines)
