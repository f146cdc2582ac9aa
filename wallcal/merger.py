"""Merge remote, custom and project events into one calendar.

Three independently owned sources feed the grid:

- remote: iCal feed and provider events, read-only
- custom: locally stored events, the only draggable/editable kind
- project: project target dates, read-only all-day markers

The merge is a pure function of its inputs. Remote events are clipped to the
displayed window; custom and project records are always included (the stores
already hold only what the user cares about).
"""

import logging
from collections.abc import Iterable
from datetime import date, tzinfo
from typing import Optional

from .datetime_utils import date_key, local_midnight, parse_stored_datetime, within_padded_window
from .models import (
    DateWindow,
    EventOrigin,
    MergedCalendar,
    MergedCalendarEvent,
    ParsedEvent,
    Project,
    StoredEvent,
)

logger = logging.getLogger(__name__)


class CalendarMerger:
    """Combine heterogeneous event sources into a day-grouped calendar."""

    def __init__(self, tz: tzinfo) -> None:
        """Initialize merger.

        Args:
            tz: Display timezone used for day grouping and date-only records.
        """
        self.tz = tz

    def merge(
        self,
        remote: Iterable[ParsedEvent],
        custom: Iterable[StoredEvent],
        projects: Iterable[Project],
        window: Optional[DateWindow] = None,
    ) -> MergedCalendar:
        """Merge the three sources.

        Args:
            remote: Expanded remote events (iCal feed, Google, Outlook)
            custom: Custom events from the event store
            projects: Projects from the project store
            window: Displayed window; remote events outside it are dropped.
                None disables remote filtering.

        Returns:
            MergedCalendar whose ``events`` are sorted by start and whose
            ``days`` group those same events by local date. Events with equal
            start keep the remote, custom, project concatenation order.
        """
        combined: list[MergedCalendarEvent] = []
        combined.extend(self._convert_remote(remote, window))
        combined.extend(self._convert_custom(custom))
        combined.extend(self._convert_projects(projects))

        # sorted() is stable; ties keep concatenation order
        ordered = sorted(combined, key=lambda event: event.start)

        days: dict[str, list[MergedCalendarEvent]] = {}
        for event in ordered:
            days.setdefault(event.date_key, []).append(event)

        logger.debug(
            "Merged %d events across %d days (window=%s)",
            len(ordered),
            len(days),
            f"{window.start}..{window.end}" if window else "none",
        )
        return MergedCalendar(window=window, events=ordered, days=days)

    def _convert_remote(
        self, events: Iterable[ParsedEvent], window: Optional[DateWindow]
    ) -> list[MergedCalendarEvent]:
        converted = []
        skipped = 0
        for event in events:
            if window is not None and not within_padded_window(
                event.start, window.start, window.end, self.tz
            ):
                skipped += 1
                continue
            converted.append(
                MergedCalendarEvent(
                    id=event.id,
                    title=event.title,
                    start=event.start,
                    end=event.end,
                    location=event.location,
                    all_day=event.all_day,
                    recurrence_rule=event.recurrence_rule,
                    origin=EventOrigin.REMOTE,
                    source_id=event.id,
                    provider=event.provider,
                    date_key=date_key(event.start, self.tz),
                )
            )
        if skipped:
            logger.debug("Skipped %d remote events outside the window", skipped)
        return converted

    def _convert_custom(self, records: Iterable[StoredEvent]) -> list[MergedCalendarEvent]:
        converted = []
        for record in records:
            try:
                start, _ = parse_stored_datetime(record.start_date, self.tz)
                end = start
                if record.end_date:
                    end, _ = parse_stored_datetime(record.end_date, self.tz)
            except ValueError:
                logger.warning(
                    "Skipping custom event %s with invalid dates (%r, %r)",
                    record.id,
                    record.start_date,
                    record.end_date,
                )
                continue

            converted.append(
                MergedCalendarEvent(
                    id=f"custom-{record.id}",
                    title=record.title,
                    start=start,
                    end=end,
                    location=record.location,
                    all_day=record.all_day,
                    origin=EventOrigin.CUSTOM,
                    source_id=record.id,
                    date_key=date_key(start, self.tz),
                )
            )
        return converted

    def _convert_projects(self, projects: Iterable[Project]) -> list[MergedCalendarEvent]:
        converted = []
        for project in projects:
            if not project.target_date or project.is_completed:
                continue
            try:
                due = date.fromisoformat(project.target_date[:10])
            except ValueError:
                logger.warning(
                    "Skipping project %s with invalid target date %r",
                    project.id,
                    project.target_date,
                )
                continue

            start = local_midnight(due, self.tz)
            converted.append(
                MergedCalendarEvent(
                    id=f"project-{project.id}",
                    title=project.title,
                    start=start,
                    end=start,
                    all_day=True,
                    origin=EventOrigin.PROJECT,
                    source_id=project.id,
                    date_key=due.isoformat(),
                )
            )
        return converted
