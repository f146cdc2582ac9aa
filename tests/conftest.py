from collections.abc import Callable
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, Mock
from zoneinfo import ZoneInfo

import pytest


@pytest.fixture
def tz() -> ZoneInfo:
    """Deterministic display timezone.

    Using a fixed zone avoids host-local timezone differences which can make
    day-grouping assertions flaky.
    """
    return ZoneInfo("America/Los_Angeles")


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object for the fetcher and aggregator.

    Fields:
      - ical_url: remote feed URL
      - proxy_base_url: same-origin proxy origin
      - proxy_templates: public relay templates
      - request_timeout: HTTP read timeout in seconds
      - cache_ttl_seconds: feed cache lifetime
    """
    return SimpleNamespace(
        ical_url="https://calendar.example.com/basic.ics",
        proxy_base_url="https://dash.example.com",
        proxy_templates=["https://relay-one.example/raw?url={url}", "https://relay-two.example/?{url}"],
        request_timeout=5,
        cache_ttl_seconds=300,
        timezone="America/Los_Angeles",
        google_access_token=None,
        outlook_access_token=None,
    )


@pytest.fixture
def make_ics() -> Callable[..., str]:
    """Factory wrapping VEVENT bodies in a VCALENDAR envelope with CRLF endings.

    Body lines are stripped, so folded lines must be built by hand.
    """

    def _make(*vevents: str) -> str:
        lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//wallcal tests//EN"]
        for body in vevents:
            lines.append("BEGIN:VEVENT")
            lines.extend(line.strip() for line in body.strip().splitlines())
            lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")
        return "\r\n".join(lines) + "\r\n"

    return _make


@pytest.fixture
def sample_ics(make_ics: Callable[..., str]) -> str:
    """Three events: timed UTC, all-day yearly birthday, floating local."""
    return make_ics(
        """
        UID:standup-1
        SUMMARY:Team standup
        DTSTART:20240715T160000Z
        DTEND:20240715T161500Z
        LOCATION:Room 4\\, East wing
        """,
        """
        UID:birthday-ada
        SUMMARY:Ada's birthday
        DTSTART;VALUE=DATE:19900710
        DTEND;VALUE=DATE:19900711
        RRULE:FREQ=YEARLY
        """,
        """
        UID:dentist-1
        SUMMARY:Dentist
        DTSTART:20240722T090000
        DTEND:20240722T100000
        """,
    )


@pytest.fixture
def make_response() -> Callable[..., Mock]:
    """Factory for minimal httpx.Response stand-ins."""

    def _make(status_code: int = 200, text: str = "", json_data: Any = None) -> Mock:
        response = Mock()
        response.status_code = status_code
        response.is_success = 200 <= status_code < 300
        response.text = text
        if json_data is None:
            response.json = Mock(side_effect=ValueError("no json"))
        else:
            response.json = Mock(return_value=json_data)
        return response

    return _make


@pytest.fixture
def mock_client() -> Callable[..., Mock]:
    """Factory for a mocked httpx.AsyncClient whose ``get`` returns the given outcomes in order."""

    def _make(*outcomes: Any) -> Mock:
        client = Mock()
        client.is_closed = False
        client.get = AsyncMock(side_effect=list(outcomes))
        client.aclose = AsyncMock()
        return client

    return _make

