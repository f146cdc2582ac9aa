"""Data models for calendar aggregation."""

import calendar
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from .datetime_utils import parse_stored_datetime


class EventOrigin(str, Enum):
    """Where a merged event came from; decides editing rights in the grid."""

    REMOTE = "remote"
    CUSTOM = "custom"
    PROJECT = "project"


class ParsedEvent(BaseModel):
    """A single VEVENT (or provider event) normalized to wallcal's shape."""

    id: str = Field(..., description="UID or generated fallback")
    title: str = Field(..., description="Unescaped SUMMARY")
    start: datetime = Field(..., description="Timezone-aware start")
    end: datetime = Field(..., description="Timezone-aware end, defaults to start")
    location: Optional[str] = Field(default=None, description="Unescaped LOCATION")
    all_day: bool = Field(default=False, description="Date-only DTSTART")
    recurrence_rule: Optional[str] = Field(default=None, description="Raw RRULE value")
    provider: Optional[str] = Field(default=None, description="ical, google or outlook")

    @field_serializer("start", "end", when_used="json")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to ISO format."""
        return dt.isoformat()


class ExpandedEvent(ParsedEvent):
    """A ParsedEvent bound to one occurrence, or passed through unchanged."""

    recurrence_master_id: Optional[str] = Field(
        default=None, description="Id of the yearly master this occurrence came from"
    )
    occurrence_year: Optional[int] = Field(default=None, description="Year of the occurrence")


class StoredEvent(BaseModel):
    """Custom event record as kept by the event store."""

    id: str
    title: str
    start_date: str = Field(..., description="YYYY-MM-DD or ISO date-time")
    end_date: Optional[str] = None
    location: Optional[str] = None
    all_day: bool = False

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_stored_date(cls, value: Optional[str]) -> Optional[str]:
        """Accept only values the calendar can place: ``YYYY-MM-DD`` or ISO date-time."""
        if value is None:
            return value
        try:
            parse_stored_datetime(value, timezone.utc)
        except ValueError as e:
            raise ValueError(f"expected YYYY-MM-DD or ISO date-time, got {value!r}") from e
        return value


class Project(BaseModel):
    """Project record; only the fields the calendar needs."""

    id: str
    title: str
    target_date: Optional[str] = Field(default=None, description="YYYY-MM-DD due date")
    status: str = "active"

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"


class DateWindow(BaseModel):
    """Inclusive range of calendar days currently displayed."""

    start: date
    end: date

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_order(self) -> "DateWindow":
        if self.end < self.start:
            raise ValueError("window end precedes window start")
        return self

    @classmethod
    def for_month(cls, year: int, month: int) -> "DateWindow":
        """Window spanning the first through the last day of a month."""
        last_day = calendar.monthrange(year, month)[1]
        return cls(start=date(year, month, 1), end=date(year, month, last_day))


class MergedCalendarEvent(BaseModel):
    """UI-facing event tagged with its origin."""

    id: str
    title: str
    start: datetime
    end: datetime
    location: Optional[str] = None
    all_day: bool = False
    recurrence_rule: Optional[str] = None
    origin: EventOrigin
    source_id: str = Field(..., description="Id of the input record this event came from")
    provider: Optional[str] = None
    date_key: str = Field(..., description="YYYY-MM-DD local day of start")

    model_config = ConfigDict(use_enum_values=True)

    @property
    def editable(self) -> bool:
        """Only locally stored custom events can be dragged or edited."""
        return self.origin == EventOrigin.CUSTOM.value

    @field_serializer("start", "end", when_used="json")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to ISO format."""
        return dt.isoformat()


class MergedCalendar(BaseModel):
    """Merge result: a flat chronological list and the same events grouped per day."""

    window: Optional[DateWindow] = None
    events: list[MergedCalendarEvent] = Field(default_factory=list)
    days: dict[str, list[MergedCalendarEvent]] = Field(default_factory=dict)

    def to_api(self) -> dict:
        """JSON-ready payload for the calendar grid."""
        payload = self.model_dump(mode="json")
        for item, event in zip(payload["events"], self.events):
            item["editable"] = event.editable
        for key, day_events in self.days.items():
            for item, event in zip(payload["days"][key], day_events):
                item["editable"] = event.editable
        return payload


class ProxyAttempt(BaseModel):
    """Outcome of one proxy candidate."""

    url: str
    status_code: Optional[int] = None
    error: Optional[str] = None
    accepted: bool = False


class ProxyFetchResult(BaseModel):
    """Result of walking the proxy fallback chain.

    ``text`` is empty when every candidate failed; callers cannot and should not
    distinguish that from a feed with no events.
    """

    text: str = ""
    proxy_url: Optional[str] = None
    attempts: list[ProxyAttempt] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.text)
