"""Line-oriented iCalendar parser for remote calendar feeds.

Only the handful of VEVENT properties the calendar grid shows are extracted.
Everything else in the document (VTIMEZONE blocks, alarms, attendees, unknown
X- properties) is ignored rather than validated.
"""

import hashlib
import logging
import re
from collections.abc import Iterator
from datetime import tzinfo
from typing import Optional

from icalendar.parser import unescape_backslash

from .datetime_utils import decode_ical_datetime
from .models import ParsedEvent

logger = logging.getLogger(__name__)

RECOGNIZED_KEYS = frozenset({"SUMMARY", "UID", "LOCATION", "DTSTART", "DTEND", "RRULE"})

_LINE_SPLIT = re.compile(r"\r?\n")


def unescape_text(value: str) -> str:
    """Undo RFC 5545 TEXT escaping (``\\,`` ``\\;`` ``\\n`` ``\\\\``)."""
    return unescape_backslash(value)


def unfold_lines(ical_text: str) -> Iterator[str]:
    """Yield logical lines, joining RFC 5545 folded continuations.

    A physical line starting with a single space or tab continues the previous
    logical line; that one whitespace character is dropped and the rest is
    appended with no separator.
    """
    pending: Optional[str] = None
    for raw_line in _LINE_SPLIT.split(ical_text):
        if raw_line[:1] in (" ", "\t"):
            if pending is not None:
                pending += raw_line[1:]
            # Orphaned continuation before any property line is ignored
            continue
        if pending is not None:
            yield pending
        pending = raw_line
    if pending is not None:
        yield pending


class _EventBuilder:
    """Accumulates properties of one VEVENT until END:VEVENT."""

    __slots__ = ("props", "dtstart_params")

    def __init__(self) -> None:
        self.props: dict[str, str] = {}
        self.dtstart_params = ""


class ICalParser:
    """Parse raw VCALENDAR text into ParsedEvent records."""

    def __init__(self, tz: tzinfo) -> None:
        """Initialize parser.

        Args:
            tz: Display timezone used for floating (non-UTC) date-times and
                bare dates.
        """
        self.tz = tz

    def parse(self, ical_text: str) -> list[ParsedEvent]:
        """Extract every complete VEVENT from ``ical_text``.

        Events missing SUMMARY or DTSTART are dropped; malformed lines are
        skipped. Never raises for bad input.
        """
        if not ical_text:
            return []

        events: list[ParsedEvent] = []
        dropped = 0
        current: Optional[_EventBuilder] = None

        for line in unfold_lines(ical_text):
            marker = line.strip().upper()
            if marker == "BEGIN:VEVENT":
                if current is not None:
                    dropped += 1
                    logger.debug("BEGIN:VEVENT inside unfinished event; restarting record")
                current = _EventBuilder()
            elif marker == "END:VEVENT":
                if current is None:
                    continue
                event = self._build_event(current)
                if event is None:
                    dropped += 1
                else:
                    events.append(event)
                current = None
            elif current is not None:
                self._apply_property(current, line)

        logger.debug("Parsed %d events (%d dropped)", len(events), dropped)
        return events

    def _apply_property(self, builder: _EventBuilder, line: str) -> None:
        if ":" not in line:
            if line.strip():
                logger.debug("Skipping malformed iCal line: %r", line[:80])
            return

        name_part, value = line.split(":", 1)
        key, _, params = name_part.partition(";")
        key = key.strip().upper()
        if key not in RECOGNIZED_KEYS:
            return

        builder.props[key] = value
        if key == "DTSTART":
            builder.dtstart_params = params

    def _build_event(self, builder: _EventBuilder) -> Optional[ParsedEvent]:
        props = builder.props
        title = unescape_text(props.get("SUMMARY", "")).strip()
        dtstart = props.get("DTSTART", "").strip()
        if not title or not dtstart:
            logger.debug("Dropping VEVENT without SUMMARY or DTSTART (uid=%s)", props.get("UID"))
            return None

        try:
            start, date_only = decode_ical_datetime(dtstart, self.tz)
        except ValueError:
            logger.debug("Dropping VEVENT with undecodable DTSTART %r", dtstart)
            return None

        end = start
        dtend = props.get("DTEND", "").strip()
        if dtend:
            try:
                end, _ = decode_ical_datetime(dtend, self.tz)
            except ValueError:
                logger.debug("Undecodable DTEND %r; using DTSTART", dtend)

        params = {p.strip().upper() for p in builder.dtstart_params.split(";")}
        all_day = date_only or "VALUE=DATE" in params
        location = unescape_text(props.get("LOCATION", "")).strip()
        uid = props.get("UID", "").strip()
        rrule = props.get("RRULE", "").strip()

        return ParsedEvent(
            id=uid or self._fallback_id(title, dtstart),
            title=title,
            start=start,
            end=end,
            location=location or None,
            all_day=all_day,
            recurrence_rule=rrule or None,
            provider="ical",
        )

    @staticmethod
    def _fallback_id(title: str, dtstart: str) -> str:
        """Stable id for events without UID so re-fetches keep the same key."""
        digest = hashlib.sha1(f"{title}|{dtstart}".encode(), usedforsecurity=False).hexdigest()
        return f"ical-{digest[:12]}"
