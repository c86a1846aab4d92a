import pytest
from unittest.mock import MagicMock


SAMPLE_ICS = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//Microsoft Corporation//Outlook 16.0 MIMEDIR//EN",
    "BEGIN:VEVENT",
    "UID:event-1@example.com",
    "DTSTAMP:20240101T000000Z",
    "DTSTART:20240110T090000Z",
    "DTEND:20240110T100000Z",
    "SUMMARY:Standup",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:event-2@example.com",
    "DTSTAMP:20240101T000000Z",
    "DTSTART:20240111T140000Z",
    "DTEND:20240111T150000Z",
    "SUMMARY:Planning",
    "END:VEVENT",
    "END:VCALENDAR",
]) + "\r\n"


@pytest.fixture
def sample_ics():
    return SAMPLE_ICS


def make_http_response(status_code=200, text="", headers=None):
    """Build a stand-in for a requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.headers = headers or {}
    return response
