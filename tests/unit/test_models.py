"""Unit tests for wallcal.models and wallcal.exceptions."""

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from wallcal.exceptions import (
    EventNotFoundError,
    RemoteSourceAuthError,
    RemoteSourceError,
    WallcalError,
)
from wallcal.models import DateWindow, ParsedEvent, Project, ProxyFetchResult, StoredEvent

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("year", "month", "last"),
    [(2024, 2, date(2024, 2, 29)), (2023, 2, date(2023, 2, 28)), (2024, 12, date(2024, 12, 31))],
)
def test_date_window_for_month_spans_whole_month(year, month, last) -> None:
    window = DateWindow.for_month(year, month)

    assert window.start == date(year, month, 1)
    assert window.end == last


def test_date_window_when_end_before_start_then_validation_error() -> None:
    with pytest.raises(ValidationError):
        DateWindow(start=date(2024, 7, 31), end=date(2024, 7, 1))


def test_parsed_event_json_dump_uses_iso_strings() -> None:
    start = datetime(2024, 7, 15, 16, 0, tzinfo=timezone.utc)
    event = ParsedEvent(id="e", title="T", start=start, end=start)

    assert event.model_dump(mode="json")["start"] == "2024-07-15T16:00:00+00:00"
    assert event.model_dump()["start"] == start


def test_project_is_completed() -> None:
    assert Project(id="p", title="Done", status="completed").is_completed
    assert not Project(id="p", title="Open").is_completed


def test_proxy_fetch_result_success_follows_text() -> None:
    assert not ProxyFetchResult().success
    assert ProxyFetchResult(text="BEGIN:VCALENDAR").success


def test_exception_hierarchy() -> None:
    """Test every wallcal error can be caught as WallcalError."""
    error = EventNotFoundError("abc")

    assert isinstance(error, WallcalError)
    assert str(error) == "Event not found: abc"
    assert issubclass(RemoteSourceAuthError, RemoteSourceError)
    assert RemoteSourceError("down").status_code is None


@pytest.mark.parametrize(
    "value", ["2024-07-15", "2024-07-15T19:00:00", "2024-07-16T02:00:00Z", "2024-07-16T08:00:00+09:00"]
)
def test_stored_event_accepts_iso_dates(value) -> None:
    assert StoredEvent(id="e", title="T", start_date=value, end_date=value).start_date == value


@pytest.mark.parametrize("field", ["start_date", "end_date"])
@pytest.mark.parametrize("value", ["next tuesday", "2024-13-01", "15/07/2024"])
def test_stored_event_when_date_not_iso_then_validation_error(field, value) -> None:
    record = {"id": "e", "title": "T", "start_date": "2024-07-15", field: value}

    with pytest.raises(ValidationError, match="expected YYYY-MM-DD or ISO date-time"):
        StoredEvent.model_validate(record)
