"""Unit tests for wallcal.stores JSON-backed stores and move_event_to_day."""

import json
from datetime import date
from unittest.mock import Mock

import pytest
from pydantic import ValidationError

from wallcal.exceptions import EventNotFoundError
from wallcal.models import StoredEvent
from wallcal.stores import JsonEventStore, JsonProjectStore, move_event_to_day

pytestmark = pytest.mark.unit


@pytest.fixture
def event_store(tmp_path) -> JsonEventStore:
    return JsonEventStore(tmp_path / "data" / "events.json")


def test_store_when_file_missing_then_empty(event_store) -> None:
    assert event_store.list() == []


def test_create_when_id_missing_then_generated_and_persisted(event_store) -> None:
    """Test create assigns an id and writes a JSON array to disk."""
    created = event_store.create({"title": "Dinner", "start_date": "2024-07-15T19:00:00"})

    assert created.id
    on_disk = json.loads(event_store.path.read_text(encoding="utf-8"))
    assert on_disk == [created.model_dump(mode="json")]


def test_create_when_record_incomplete_then_validation_error(event_store) -> None:
    with pytest.raises(ValidationError):
        event_store.create({"title": "No date"})
    assert event_store.list() == []


def test_store_when_reopened_then_records_loaded(tmp_path) -> None:
    path = tmp_path / "events.json"
    JsonEventStore(path).create(StoredEvent(id="e1", title="Gym", start_date="2024-07-02"))

    reopened = JsonEventStore(path)

    assert [e.id for e in reopened.list()] == ["e1"]


def test_store_when_file_malformed_then_starts_empty(tmp_path, caplog) -> None:
    path = tmp_path / "events.json"
    path.write_text("{not json", encoding="utf-8")

    with caplog.at_level("WARNING", logger="wallcal.stores"):
        store = JsonEventStore(path)

    assert store.list() == []
    assert "Failed to read store" in caplog.text


def test_store_when_one_record_malformed_then_others_kept(tmp_path) -> None:
    path = tmp_path / "events.json"
    path.write_text(
        json.dumps([{"id": "ok", "title": "Ok", "start_date": "2024-07-01"}, {"id": "broken"}]),
        encoding="utf-8",
    )

    assert [e.id for e in JsonEventStore(path).list()] == ["ok"]


def test_update_when_known_id_then_patch_applied(event_store) -> None:
    event_store.create({"id": "e1", "title": "Gym", "start_date": "2024-07-02"})

    updated = event_store.update("e1", {"title": "Swim", "location": "Pool"})

    assert updated.title == "Swim"
    assert event_store.get("e1").location == "Pool"


def test_update_when_patch_tries_to_change_id_then_id_kept(event_store) -> None:
    event_store.create({"id": "e1", "title": "Gym", "start_date": "2024-07-02"})

    updated = event_store.update("e1", {"id": "other"})

    assert updated.id == "e1"


@pytest.mark.parametrize("operation", ["update", "delete", "get"])
def test_operations_when_unknown_id_then_event_not_found(event_store, operation) -> None:
    """Test update, delete and get raise EventNotFoundError for unknown ids."""
    args = ("missing", {"title": "x"}) if operation == "update" else ("missing",)

    with pytest.raises(EventNotFoundError) as excinfo:
        getattr(event_store, operation)(*args)

    assert excinfo.value.event_id == "missing"


def test_delete_when_known_id_then_removed(event_store) -> None:
    event_store.create({"id": "e1", "title": "Gym", "start_date": "2024-07-02"})

    event_store.delete("e1")

    assert event_store.list() == []


def test_list_returns_copies(event_store) -> None:
    event_store.create({"id": "e1", "title": "Gym", "start_date": "2024-07-02"})

    event_store.list()[0].title = "Mutated"

    assert event_store.get("e1").title == "Gym"


def test_subscribe_when_store_changes_then_listener_called(event_store) -> None:
    listener = Mock()
    unsubscribe = event_store.subscribe(listener)

    event_store.create({"id": "e1", "title": "Gym", "start_date": "2024-07-02"})
    event_store.update("e1", {"title": "Swim"})
    unsubscribe()
    event_store.delete("e1")

    assert listener.call_count == 2


def test_subscribe_when_listener_raises_then_others_still_notified(event_store, caplog) -> None:
    failing = Mock(side_effect=RuntimeError("boom"))
    healthy = Mock()
    event_store.subscribe(failing)
    event_store.subscribe(healthy)

    event_store.create({"id": "e1", "title": "Gym", "start_date": "2024-07-02"})

    healthy.assert_called_once()
    assert "Store change listener failed" in caplog.text


def test_project_store_reload_when_file_changes_then_notifies(tmp_path) -> None:
    path = tmp_path / "projects.json"
    path.write_text(json.dumps([{"id": "p1", "title": "Launch"}]), encoding="utf-8")
    store = JsonProjectStore(path)
    listener = Mock()
    store.subscribe(listener)

    assert store.reload() is False
    path.write_text(
        json.dumps([{"id": "p1", "title": "Launch", "target_date": "2024-07-18"}]),
        encoding="utf-8",
    )
    assert store.reload() is True

    listener.assert_called_once()
    assert store.list()[0].target_date == "2024-07-18"


def test_move_event_when_date_only_then_start_and_end_shift(event_store, tz) -> None:
    event_store.create(
        {"id": "trip", "title": "Trip", "start_date": "2024-07-20", "end_date": "2024-07-27", "all_day": True}
    )

    moved = move_event_to_day(event_store, "trip", date(2024, 7, 22), tz)

    assert moved.start_date == "2024-07-22"
    assert moved.end_date == "2024-07-29"


def test_move_event_when_timed_then_time_of_day_kept(event_store, tz) -> None:
    event_store.create(
        {
            "id": "call",
            "title": "Call",
            "start_date": "2024-07-15T14:00:00Z",
            "end_date": "2024-07-15T15:30:00Z",
        }
    )

    moved = move_event_to_day(event_store, "call", date(2024, 7, 12), tz)

    assert moved.start_date == "2024-07-12T14:00:00Z"
    assert moved.end_date == "2024-07-12T15:30:00Z"


def test_move_event_when_same_day_then_unchanged_and_no_write(event_store, tz) -> None:
    event_store.create({"id": "e1", "title": "Gym", "start_date": "2024-07-02T07:00:00"})
    listener = Mock()
    event_store.subscribe(listener)

    moved = move_event_to_day(event_store, "e1", date(2024, 7, 2), tz)

    assert moved.start_date == "2024-07-02T07:00:00"
    listener.assert_not_called()


def test_move_event_when_unknown_id_then_event_not_found(event_store, tz) -> None:
    with pytest.raises(EventNotFoundError):
        move_event_to_day(event_store, "missing", date(2024, 7, 2), tz)


def test_move_event_when_utc_start_falls_on_previous_local_day_then_shifted_from_that_day(
    event_store, tz
) -> None:
    """Test the move is measured from the day the grid shows, not the stored UTC date."""
    event_store.create(
        {
            "id": "late",
            "title": "Late call",
            "start_date": "2024-07-16T02:00:00Z",
            "end_date": "2024-07-16T03:00:00Z",
        }
    )

    moved = move_event_to_day(event_store, "late", date(2024, 7, 16), tz)

    assert moved.start_date == "2024-07-17T02:00:00Z"
    assert moved.end_date == "2024-07-17T03:00:00Z"


def test_move_event_when_offset_start_then_day_taken_in_display_zone(event_store, tz) -> None:
    event_store.create(
        {"id": "tokyo", "title": "Sync", "start_date": "2024-07-16T08:00:00+09:00"}
    )

    moved = move_event_to_day(event_store, "tokyo", date(2024, 7, 20), tz)

    assert moved.start_date == "2024-07-21T08:00:00+09:00"
