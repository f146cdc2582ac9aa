"""Yearly recurrence expansion for parsed calendar events.

Only ``FREQ=YEARLY`` is expanded (birthdays, anniversaries, holidays). Every
other rule is a known limitation: the event is shown once at its original date
rather than expanded or rejected.
"""

import logging
from datetime import date, tzinfo
from typing import Optional

from dateutil.relativedelta import relativedelta

from .datetime_utils import within_padded_window
from .models import ExpandedEvent, ParsedEvent

logger = logging.getLogger(__name__)


def rrule_frequency(rrule_string: Optional[str]) -> Optional[str]:
    """Return the upper-cased FREQ value of a raw RRULE, or None."""
    if not rrule_string:
        return None
    for part in rrule_string.split(";"):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        if key.strip().upper() == "FREQ":
            return value.strip().upper() or None
    return None


def is_yearly(rrule_string: Optional[str]) -> bool:
    return rrule_frequency(rrule_string) == "YEARLY"


class RecurrenceExpander:
    """Expand yearly events into one occurrence per year of a date window."""

    def __init__(self, tz: tzinfo) -> None:
        """Initialize expander.

        Args:
            tz: Display timezone; window bounds are local midnights in this zone.
        """
        self.tz = tz
        self._reported_rules: set[str] = set()

    def expand(
        self, events: list[ParsedEvent], window_start: date, window_end: date
    ) -> list[ExpandedEvent]:
        """Expand ``events`` for the inclusive window.

        Non-yearly events pass through unchanged regardless of the window.
        Yearly events produce at most one occurrence per year from
        ``window_start.year`` to ``window_end.year``; occurrences outside the
        one-day-padded window are dropped.
        """
        expanded: list[ExpandedEvent] = []
        for event in events:
            if is_yearly(event.recurrence_rule):
                expanded.extend(self._expand_yearly(event, window_start, window_end))
                continue

            if event.recurrence_rule:
                self._report_unsupported(event.recurrence_rule)
            expanded.append(ExpandedEvent(**event.model_dump()))

        logger.debug(
            "Expanded %d events into %d for window %s..%s",
            len(events),
            len(expanded),
            window_start,
            window_end,
        )
        return expanded

    def _expand_yearly(
        self, event: ParsedEvent, window_start: date, window_end: date
    ) -> list[ExpandedEvent]:
        duration = event.end - event.start
        occurrences: list[ExpandedEvent] = []

        for year in range(window_start.year, window_end.year + 1):
            # relativedelta clamps Feb 29 to Feb 28 in non-leap years
            start = event.start + relativedelta(year=year)
            if not within_padded_window(start, window_start, window_end, self.tz):
                continue
            occurrences.append(
                ExpandedEvent(
                    **event.model_dump(exclude={"id", "start", "end"}),
                    id=f"{event.id}-{year}",
                    start=start,
                    end=start + duration,
                    recurrence_master_id=event.id,
                    occurrence_year=year,
                )
            )

        return occurrences

    def _report_unsupported(self, rrule_string: str) -> None:
        if rrule_string in self._reported_rules:
            return
        self._reported_rules.add(rrule_string)
        logger.debug("Unsupported RRULE %r; showing event once at its original date", rrule_string)
