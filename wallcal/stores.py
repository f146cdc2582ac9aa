"""Custom-event and project stores consumed by the calendar.

The protocols describe what the aggregator needs from whatever actually owns
the records (a hosted database in the dashboard deployment). The JSON-backed
implementations keep everything in one file per store with atomic writes, which
is enough for a single wall display.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
import uuid
from collections.abc import Callable
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from .datetime_utils import parse_stored_datetime
from .exceptions import EventNotFoundError
from .models import Project, StoredEvent

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]
Unsubscribe = Callable[[], None]

RecordT = TypeVar("RecordT", bound=BaseModel)


class StoredEventStore(Protocol):
    """Protocol for the custom event store."""

    def list(self) -> list[StoredEvent]: ...

    def create(self, event: StoredEvent | dict[str, Any]) -> StoredEvent: ...

    def update(self, event_id: str, patch: dict[str, Any]) -> StoredEvent: ...

    def delete(self, event_id: str) -> None: ...

    def subscribe(self, on_change: ChangeListener) -> Unsubscribe: ...


class ProjectStore(Protocol):
    """Protocol for the project store."""

    def list(self) -> list[Project]: ...

    def subscribe(self, on_change: ChangeListener) -> Unsubscribe: ...


class _JsonListStore(Generic[RecordT]):
    """JSON file holding a list of records keyed by ``id``.

    The on-disk format is a JSON array of objects. Writes go to a temporary
    file in the same directory and are moved into place with ``Path.replace``.
    """

    model: type[RecordT]

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._records: dict[str, RecordT] = {}
        self._listeners: list[ChangeListener] = []

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.debug("Could not ensure directory for store: %s", self._path.parent)

        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Load records from disk; a missing or unreadable file means empty."""
        with self._lock:
            self._records = self._read_locked()

    def _read_locked(self) -> dict[str, RecordT]:
        if not self._path.exists():
            logger.debug("Store file not found; starting empty: %s", self._path)
            return {}

        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            if not isinstance(data, list):
                raise ValueError("store JSON root must be an array")  # noqa: TRY004
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read store %s: %s", self._path, exc)
            return {}

        records: dict[str, RecordT] = {}
        for raw in data:
            try:
                record = self.model.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Skipping malformed record in %s: %s", self._path, exc)
                continue
            records[record.id] = record  # type: ignore[attr-defined]

        logger.debug("Loaded %d records from %s", len(records), self._path)
        return records

    def _persist_locked(self, records: dict[str, RecordT]) -> None:
        """Write ``records`` atomically. Raises OSError on failure."""
        data = [record.model_dump(mode="json") for record in records.values()]
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8", suffix=".tmp"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(data, tf, ensure_ascii=False, indent=2)
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except OSError:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise

    def _commit_locked(self, records: dict[str, RecordT]) -> None:
        self._persist_locked(records)
        self._records = records

    def list(self) -> list[RecordT]:
        with self._lock:
            return [record.model_copy() for record in self._records.values()]

    def subscribe(self, on_change: ChangeListener) -> Unsubscribe:
        """Register ``on_change``; the returned callable removes it again."""
        with self._lock:
            self._listeners.append(on_change)

        def unsubscribe() -> None:
            with self._lock, contextlib.suppress(ValueError):
                self._listeners.remove(on_change)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Store change listener failed")


class JsonEventStore(_JsonListStore[StoredEvent]):
    """Custom events, the only user-editable calendar records."""

    model = StoredEvent

    def get(self, event_id: str) -> StoredEvent:
        with self._lock:
            record = self._records.get(event_id)
        if record is None:
            raise EventNotFoundError(event_id)
        return record.model_copy()

    def create(self, event: StoredEvent | dict[str, Any]) -> StoredEvent:
        """Add an event; a missing id is generated.

        Raises:
            pydantic.ValidationError: If the record is incomplete.
        """
        raw = event.model_dump() if isinstance(event, StoredEvent) else dict(event)
        if not raw.get("id"):
            raw["id"] = uuid.uuid4().hex
        record = StoredEvent.model_validate(raw)

        with self._lock:
            records = dict(self._records)
            records[record.id] = record
            self._commit_locked(records)

        logger.info("Created custom event %s (%s)", record.id, record.start_date)
        self._notify()
        return record.model_copy()

    def update(self, event_id: str, patch: dict[str, Any]) -> StoredEvent:
        """Apply ``patch`` to an existing event.

        Raises:
            EventNotFoundError: If ``event_id`` is unknown.
            pydantic.ValidationError: If the patched record is invalid.
        """
        with self._lock:
            existing = self._records.get(event_id)
            if existing is None:
                raise EventNotFoundError(event_id)
            merged = {**existing.model_dump(), **patch, "id": event_id}
            record = StoredEvent.model_validate(merged)
            records = dict(self._records)
            records[event_id] = record
            self._commit_locked(records)

        logger.info("Updated custom event %s", event_id)
        self._notify()
        return record.model_copy()

    def delete(self, event_id: str) -> None:
        """Remove an event.

        Raises:
            EventNotFoundError: If ``event_id`` is unknown.
        """
        with self._lock:
            if event_id not in self._records:
                raise EventNotFoundError(event_id)
            records = dict(self._records)
            del records[event_id]
            self._commit_locked(records)

        logger.info("Deleted custom event %s", event_id)
        self._notify()


class JsonProjectStore(_JsonListStore[Project]):
    """Projects, read by the calendar for their target dates.

    The file is owned by whatever manages projects; ``reload()`` picks up
    external edits and notifies subscribers when the content changed.
    """

    model = Project

    def reload(self) -> bool:
        """Re-read the file. Returns True (and notifies) if anything changed."""
        with self._lock:
            records = self._read_locked()
            changed = records != self._records
            self._records = records
        if changed:
            logger.info("Project store changed on disk (%d projects)", len(records))
            self._notify()
        return changed


def _shift_stored_value(value: str, days: int) -> str:
    """Shift a stored date or date-time string by whole days, keeping its format."""
    value = value.strip()
    if len(value) == 10:
        return (date.fromisoformat(value) + timedelta(days=days)).isoformat()

    utc_suffix = value.endswith("Z")
    parsed = datetime.fromisoformat(value[:-1] + "+00:00" if utc_suffix else value)
    shifted = (parsed + timedelta(days=days)).isoformat()
    return shifted.replace("+00:00", "Z") if utc_suffix else shifted


def move_event_to_day(
    store: StoredEventStore, event_id: str, new_day: date, tz: tzinfo
) -> StoredEvent:
    """Reschedule a custom event onto ``new_day`` (drag and drop in the grid).

    The current day is the one the grid shows the event on, i.e. its start in
    the display timezone ``tz``. Time of day and duration are kept; the start
    and end both move by the same number of days.

    Raises:
        EventNotFoundError: If ``event_id`` is unknown.
        ValueError: If the stored dates cannot be decoded.
    """
    current = next((event for event in store.list() if event.id == event_id), None)
    if current is None:
        raise EventNotFoundError(event_id)

    start, _ = parse_stored_datetime(current.start_date, tz)
    current_day = start.astimezone(tz).date()
    delta_days = (new_day - current_day).days
    if delta_days == 0:
        return current

    patch: dict[str, Any] = {"start_date": _shift_stored_value(current.start_date, delta_days)}
    if current.end_date:
        patch["end_date"] = _shift_stored_value(current.end_date, delta_days)

    logger.debug("Moving custom event %s by %d days to %s", event_id, delta_days, new_day)
    return store.update(event_id, patch)
