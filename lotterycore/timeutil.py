"""Civil-time helpers for the operating calendar.

The operating calendar is a fixed UTC offset (see
:data:`lotterycore.config.OPERATING_TZ`), never the caller's local clock.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, tzinfo
from typing import Optional, Union

from .config import OPERATING_TZ

TimeOfDay = Union[str, time]


def parse_time_of_day(value: TimeOfDay) -> time:
    """Parse an ``"HH:MM"`` string (or pass through a :class:`time`)."""
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if not isinstance(value, str):
        raise TypeError("time of day must be a 'HH:MM' string or datetime.time")
    text = value.strip()
    try:
        hours_text, minutes_text = text.split(":")
        hours, minutes = int(hours_text), int(minutes_text)
    except ValueError as exc:
        raise ValueError(f"invalid time of day {value!r}, expected 'HH:MM'") from exc
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"invalid time of day {value!r}, expected 'HH:MM'")
    return time(hours, minutes)


def to_operating(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Express ``dt`` in the operating offset.

    Naive values are read as wall-clock time in the operating calendar.
    """
    zone = tz or OPERATING_TZ
    if dt.tzinfo is None:
        return dt.replace(tzinfo=zone)
    return dt.astimezone(zone)


def civil_midnight(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    local = to_operating(dt, tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def at_time_of_day(midnight: datetime, value: TimeOfDay) -> datetime:
    parsed = parse_time_of_day(value)
    return midnight + timedelta(
        hours=parsed.hour,
        minutes=parsed.minute,
        seconds=parsed.second,
        microseconds=parsed.microsecond,
    )


__all__ = [
    "TimeOfDay",
    "at_time_of_day",
    "civil_midnight",
    "parse_time_of_day",
    "to_operating",
]
