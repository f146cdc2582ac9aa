"""Plain-text agenda rendering for merged calendars."""

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

from .models import EventOrigin, MergedCalendar, MergedCalendarEvent

logger = logging.getLogger(__name__)

ALL_DAY_LABEL = "All day"

PROVIDER_BADGES = {"google": "G", "outlook": "O", "ical": "I"}
ORIGIN_BADGES = {EventOrigin.CUSTOM.value: "C", EventOrigin.PROJECT.value: "P"}


def format_time(dt: datetime, tz: tzinfo) -> str:
    """Format as ``2:00 PM`` in the display timezone."""
    local = dt.astimezone(tz)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def format_event_time(event: MergedCalendarEvent, tz: tzinfo) -> str:
    """Return ``All day`` or the local start time of ``event``."""
    if event.all_day:
        return ALL_DAY_LABEL
    return format_time(event.start, tz)


def day_label(day: date, today: date) -> str:
    """Return ``Today``, ``Tomorrow`` or e.g. ``Monday, Jan 15``."""
    if day == today:
        return "Today"
    if day == today + timedelta(days=1):
        return "Tomorrow"
    return f"{day.strftime('%A, %b')} {day.day}"


def badge(event: MergedCalendarEvent) -> str:
    """Single-letter source marker shown next to each event."""
    if event.origin == EventOrigin.REMOTE.value:
        return PROVIDER_BADGES.get(event.provider or "ical", "I")
    return ORIGIN_BADGES.get(event.origin, "?")


def is_happening(event: MergedCalendarEvent, now: datetime) -> bool:
    """True while ``now`` lies between start and end of a timed event."""
    if event.all_day:
        return False
    return event.start <= now <= event.end


def render_agenda(
    calendar: MergedCalendar,
    today: date,
    tz: tzinfo,
    now: Optional[datetime] = None,
    width: int = 60,
) -> str:
    """Render ``calendar`` as a day-by-day text agenda.

    Args:
        calendar: Merged calendar to render
        today: Local date used for the Today/Tomorrow labels
        tz: Display timezone
        now: Current time; events in progress get a ``>`` marker
        width: Width of the header rule

    Returns:
        Multi-line string, ending with a newline.
    """
    lines = ["=" * width]
    if calendar.window is not None:
        lines.append(f"CALENDAR {calendar.window.start:%B %Y}")
    else:
        lines.append("CALENDAR")
    lines.append("=" * width)

    if not calendar.days:
        lines.append("")
        lines.append("No events")
        return "\n".join(lines) + "\n"

    for key, events in calendar.days.items():
        lines.append("")
        lines.append(day_label(date.fromisoformat(key), today))
        lines.append("-" * width)
        for event in events:
            marker = ">" if now is not None and is_happening(event, now) else " "
            lines.append(
                f"{marker}[{badge(event)}] {format_event_time(event, tz):>8}  {event.title}"
            )
            if event.location:
                lines.append(f"{'':15}{event.location}")

    logger.debug("Rendered agenda with %d events", len(calendar.events))
    return "\n".join(lines) + "\n"
