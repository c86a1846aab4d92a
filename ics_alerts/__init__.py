"""
ICS Alerts Package

This package provides a Lambda function that proxies a published Outlook
calendar and adds reminder alarms at the offsets requested by the caller.
"""

from .core import (
    AlertRequest,
    InvalidParameterFormat,
    LogLevel,
    Logger,
    MissingParameter,
    Settings,
    UpstreamResponse,
    UpstreamTimeout,
    UpstreamTransportError,
    ValidationError,
    add_alarms,
    fetch_calendar,
    filter_headers,
    is_platform_header,
    parse_request,
)

__version__ = "0.1.0"
