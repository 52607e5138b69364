"""
Clock and duration helpers shared by the planning components.

Internally the engine works in minutes since midnight; models carry
datetime.time values. Minute values past midnight wrap around the clock.
"""
import logging
import math
import re
import datetime as dt
from typing import Optional, Union

from itinerary_engine.domain.errors import InvalidTimeFormat

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
DEFAULT_DURATION_MINUTES = 60

_CLOCK_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")
_COMPACT_HOURS_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*h(?:\s*(\d+))?$")
_HOURS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*h(?:r|rs|ours?)?")
_MINUTES_RE = re.compile(r"(\d+)\s*m(?:in(?:ute)?s?)?")
_ANY_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


def time_to_minutes(t: dt.time) -> int:
    """Convert a time of day to minutes since midnight."""
    return t.hour * 60 + t.minute


def minutes_to_time(minutes: int) -> dt.time:
    """Convert minutes since midnight to a time of day (wraps past midnight)."""
    minutes = int(minutes) % MINUTES_PER_DAY
    return dt.time(minutes // 60, minutes % 60)


def add_minutes(t: dt.time, minutes: int) -> dt.time:
    """Shift a time of day by a number of minutes."""
    return minutes_to_time(time_to_minutes(t) + minutes)


def format_clock(t: Optional[dt.time]) -> str:
    """Format a time as HH:MM (empty string for None)."""
    if t is None:
        return ""
    return f"{t.hour:02d}:{t.minute:02d}"


def parse_clock(value: Union[str, dt.time]) -> dt.time:
    """
    Strictly parse an HH:MM string.

    Raises:
        InvalidTimeFormat: If the value is not a valid 24h clock string
    """
    if isinstance(value, dt.time):
        return value
    if not isinstance(value, str):
        raise InvalidTimeFormat(value)
    match = _CLOCK_RE.match(value.strip())
    if not match:
        raise InvalidTimeFormat(value)
    return dt.time(int(match.group(1)), int(match.group(2)))


def resolve_start_time(value: Union[str, dt.time, None], default: str = "09:00") -> dt.time:
    """Parse a day-start anchor, falling back to the default on bad input."""
    if value is None:
        return parse_clock(default)
    try:
        return parse_clock(value)
    except InvalidTimeFormat:
        logger.warning(f"Invalid start time {value!r}, using {default}")
        return parse_clock(default)


def parse_duration_strict(duration: Union[str, int, float]) -> int:
    """
    Parse a free-form duration into minutes.

    Accepts bare numbers ("90", 90), compact hours ("2h", "2h15", "1.5h")
    and spelled-out forms ("1 hr 20 mins", "1.5 hours", "90 min").

    Raises:
        InvalidTimeFormat: If no duration can be recovered
    """
    if isinstance(duration, bool):
        raise InvalidTimeFormat(duration)
    if isinstance(duration, (int, float)):
        if not math.isfinite(duration):
            raise InvalidTimeFormat(duration)
        return max(1, int(duration))
    if not isinstance(duration, str):
        raise InvalidTimeFormat(duration)

    raw = duration.lower().strip()

    if _NUMBER_RE.match(raw):
        return max(1, int(float(raw)))

    compact = _COMPACT_HOURS_RE.match(raw)
    if compact:
        hours = float(compact.group(1))
        extra = int(compact.group(2)) if compact.group(2) else 0
        return max(1, int(hours * 60 + extra))

    total = 0
    hours_match = _HOURS_RE.search(raw)
    minutes_match = _MINUTES_RE.search(raw)
    if hours_match:
        total += round(float(hours_match.group(1)) * 60)
    if minutes_match:
        total += int(minutes_match.group(1))
    if total > 0:
        return total

    # Last resort: first number is read as minutes
    number = _ANY_NUMBER_RE.search(raw)
    if number:
        return max(1, int(float(number.group(1))))

    raise InvalidTimeFormat(duration)


def parse_duration_minutes(
    duration: Union[str, int, float, None],
    default: int = DEFAULT_DURATION_MINUTES,
) -> int:
    """Tolerant duration parse: unparsable input is logged and defaults."""
    if duration is None:
        return default
    try:
        return parse_duration_strict(duration)
    except InvalidTimeFormat:
        logger.warning(f"Unparsable duration {duration!r}, defaulting to {default} min")
        return default


def intervals_overlap(start: int, end: int, window_start: int, window_end: int) -> bool:
    """Check whether [start, end] touches [window_start, window_end]."""
    return (
        window_start <= start <= window_end
        or window_start <= end <= window_end
        or (start < window_start and end > window_end)
    )


def minutes_between(earlier: dt.datetime, later: dt.datetime) -> int:
    """Whole minutes from earlier to later (negative if later precedes earlier)."""
    return math.floor((later - earlier).total_seconds() / 60)


def at_time_on(day: dt.datetime, t: dt.time) -> dt.datetime:
    """Place a time of day on the calendar date of a reference datetime."""
    return day.replace(hour=t.hour, minute=t.minute, second=0, microsecond=0)
