"""Google Calendar and Outlook (Microsoft Graph) event sources.

Both providers are read-only remote sources. Their items are normalized to
ParsedEvent so they flow through the same expansion and merge path as the iCal
feed. Errors are raised as RemoteSourceError; the aggregator absorbs them per
source so one expired token never hides the rest of the calendar.
"""

import logging
from datetime import timedelta, tzinfo
from typing import Any, Optional

import httpx

from .datetime_utils import local_midnight, parse_stored_datetime
from .exceptions import RemoteSourceAuthError, RemoteSourceError
from .models import DateWindow, ParsedEvent

logger = logging.getLogger(__name__)

GOOGLE_API_BASE = "https://www.googleapis.com/calendar/v3"
GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"
NO_TITLE = "(No title)"


def _trim_fraction(value: str) -> str:
    """Cut fractional seconds to microseconds (Graph sends seven digits)."""
    head, dot, tail = value.partition(".")
    if not dot:
        return value
    digits = ""
    for char in tail:
        if not char.isdigit():
            break
        digits += char
    return f"{head}.{digits[:6]}{tail[len(digits):]}"


def google_event_to_parsed(item: dict[str, Any], tz: tzinfo) -> Optional[ParsedEvent]:
    """Normalize a Google Calendar v3 event resource.

    All-day events carry ``start.date`` instead of ``start.dateTime``.
    Returns None for items without a usable start.
    """
    start_info = item.get("start") or {}
    end_info = item.get("end") or {}
    raw_start = start_info.get("dateTime") or start_info.get("date")
    if not raw_start:
        return None

    try:
        start, _ = parse_stored_datetime(raw_start, tz)
        raw_end = end_info.get("dateTime") or end_info.get("date")
        end = parse_stored_datetime(raw_end, tz)[0] if raw_end else start
    except ValueError:
        logger.warning("Skipping Google event %s with invalid dates", item.get("id"))
        return None

    return ParsedEvent(
        id=str(item.get("id") or f"google-{raw_start}"),
        title=item.get("summary") or NO_TITLE,
        start=start,
        end=end,
        location=item.get("location") or None,
        all_day=not start_info.get("dateTime"),
        provider="google",
    )


def outlook_event_to_parsed(item: dict[str, Any], tz: tzinfo) -> Optional[ParsedEvent]:
    """Normalize a Microsoft Graph calendarView event.

    Requests are made with ``Prefer: outlook.timezone="UTC"`` so ``dateTime``
    values are UTC without an offset suffix.
    """
    start_info = item.get("start") or {}
    end_info = item.get("end") or {}
    raw_start = start_info.get("dateTime")
    if not raw_start:
        return None

    try:
        start, _ = parse_stored_datetime(_trim_fraction(raw_start) + "Z", tz)
        raw_end = end_info.get("dateTime")
        end = parse_stored_datetime(_trim_fraction(raw_end) + "Z", tz)[0] if raw_end else start
    except ValueError:
        logger.warning("Skipping Outlook event %s with invalid dates", item.get("id"))
        return None

    location = (item.get("location") or {}).get("displayName")
    return ParsedEvent(
        id=str(item.get("id") or f"outlook-{raw_start}"),
        title=item.get("subject") or NO_TITLE,
        start=start,
        end=end,
        location=location or None,
        all_day=bool(item.get("isAllDay", False)),
        provider="outlook",
    )


class _BearerSource:
    """Shared request/response handling for token-authenticated providers."""

    name = "provider"

    def __init__(
        self, access_token: str, client: httpx.AsyncClient, tz: tzinfo, max_results: int = 250
    ) -> None:
        self.access_token = access_token
        self.client = client
        self.tz = tz
        self.max_results = max_results

    def _bounds(self, window: DateWindow) -> tuple[str, str]:
        lower = local_midnight(window.start - timedelta(days=1), self.tz)
        upper = local_midnight(window.end + timedelta(days=1), self.tz)
        return lower.isoformat(), upper.isoformat()

    async def _get_json(
        self, url: str, params: dict[str, str], headers: Optional[dict[str, str]] = None
    ) -> dict[str, Any]:
        request_headers = {"Authorization": f"Bearer {self.access_token}"}
        request_headers.update(headers or {})
        try:
            response = await self.client.get(url, params=params, headers=request_headers)
        except httpx.HTTPError as e:
            raise RemoteSourceError(f"{self.name} request failed: {e}") from e

        if response.status_code == 401:
            raise RemoteSourceAuthError(f"{self.name} authentication expired", 401)
        if not response.is_success:
            raise RemoteSourceError(
                f"{self.name} API error: {response.status_code}", response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise RemoteSourceError(f"{self.name} returned invalid JSON") from e


class GoogleCalendarSource(_BearerSource):
    """Primary Google calendar over the Calendar v3 REST API."""

    name = "Google Calendar"

    async def fetch_events(self, window: DateWindow) -> list[ParsedEvent]:
        time_min, time_max = self._bounds(window)
        data = await self._get_json(
            f"{GOOGLE_API_BASE}/calendars/primary/events",
            params={
                "maxResults": str(self.max_results),
                "timeMin": time_min,
                "timeMax": time_max,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        items = data.get("items") or []
        events = [e for e in (google_event_to_parsed(item, self.tz) for item in items) if e]
        logger.debug("Google Calendar returned %d events", len(events))
        return events


class OutlookCalendarSource(_BearerSource):
    """Default Outlook calendar over Microsoft Graph calendarView."""

    name = "Outlook Calendar"

    async def fetch_events(self, window: DateWindow) -> list[ParsedEvent]:
        start_time, end_time = self._bounds(window)
        data = await self._get_json(
            f"{GRAPH_API_BASE}/me/calendarView",
            params={
                "$top": str(self.max_results),
                "$select": "id,subject,start,end,isAllDay,location",
                "$orderby": "start/dateTime",
                "startDateTime": start_time,
                "endDateTime": end_time,
            },
            headers={"Prefer": 'outlook.timezone="UTC"'},
        )
        items = data.get("value") or []
        events = [e for e in (outlook_event_to_parsed(item, self.tz) for item in items) if e]
        logger.debug("Outlook Calendar returned %d events", len(events))
        return events
