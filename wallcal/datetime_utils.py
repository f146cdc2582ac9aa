"""Date and time helpers shared by the parser, expander and merger.

All timestamps handled by wallcal are timezone-aware. "Local" always means the
configured display timezone passed in by the caller.
"""

import logging
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

_ICAL_DATE = re.compile(r"\d{8}")
_ICAL_DATETIME = re.compile(r"\d{8}T\d{6}")


def resolve_timezone(name: Optional[str] = None) -> tzinfo:
    """Return the display timezone.

    Args:
        name: IANA timezone identifier (e.g. "Europe/Berlin"). When empty the
            host's local zone is used.

    Returns:
        tzinfo for local-time interpretation. Unknown names fall back to the
        host zone with a warning.
    """
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r; falling back to host local zone", name)
    local = datetime.now().astimezone().tzinfo
    return local if local is not None else timezone.utc


def local_midnight(day: date, tz: tzinfo) -> datetime:
    """Return midnight at the start of ``day`` in ``tz``."""
    return datetime.combine(day, time.min, tzinfo=tz)


def decode_ical_datetime(value: str, tz: tzinfo) -> tuple[datetime, bool]:
    """Decode an iCal DATE or DATE-TIME value.

    ``YYYYMMDDTHHMMSS[Z]`` is a date-time (UTC when suffixed with Z, local
    otherwise). ``YYYYMMDD`` is a bare date at local midnight.

    Returns:
        (timestamp, is_date_only)

    Raises:
        ValueError: If the value is not in either form.
    """
    value = value.strip()
    if "T" in value:
        is_utc = value.endswith("Z")
        raw = value[:-1] if is_utc else value
        if not _ICAL_DATETIME.fullmatch(raw):
            raise ValueError(f"Invalid iCal date-time: {value!r}")
        parsed = datetime.strptime(raw, "%Y%m%dT%H%M%S")
        return parsed.replace(tzinfo=timezone.utc if is_utc else tz), False

    if not _ICAL_DATE.fullmatch(value):
        raise ValueError(f"Invalid iCal date: {value!r}")
    parsed_date = datetime.strptime(value, "%Y%m%d").date()
    return local_midnight(parsed_date, tz), True


def parse_stored_datetime(value: str, tz: tzinfo) -> tuple[datetime, bool]:
    """Decode a stored ``YYYY-MM-DD`` or ISO-8601 date-time string.

    Naive date-times are interpreted in ``tz``; a trailing ``Z`` or explicit
    offset is preserved.

    Returns:
        (timestamp, is_date_only)

    Raises:
        ValueError: If the value is not ISO formatted.
    """
    value = value.strip()
    if len(value) == 10:
        return local_midnight(date.fromisoformat(value), tz), True

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed, False


def date_key(dt: datetime, tz: tzinfo) -> str:
    """Return the ``YYYY-MM-DD`` local calendar day of ``dt``."""
    return dt.astimezone(tz).date().isoformat()


def within_padded_window(start: datetime, window_start: date, window_end: date, tz: tzinfo) -> bool:
    """Check the inclusive, one-day-padded window rule.

    True when ``start`` falls strictly after local midnight of the day before
    ``window_start`` and strictly before local midnight of the day after
    ``window_end``.
    """
    lower = local_midnight(window_start - timedelta(days=1), tz)
    upper = local_midnight(window_end + timedelta(days=1), tz)
    return lower < start < upper
