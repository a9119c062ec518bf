"""Resolve which draw a newly sold ticket attaches to."""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Optional, Sequence

from ..errors import ConfigurationError
from ..timeutil import (
    TimeOfDay,
    at_time_of_day,
    civil_midnight,
    parse_time_of_day,
    to_operating,
)


def sales_cutoff(draw_instant: datetime, cutoff_minutes: int) -> datetime:
    """Return the first instant at which sales for ``draw_instant`` are closed.

    The window is ``cutoff_minutes - 1`` minutes wide; the boundary instant
    itself already belongs to the next draw.
    """

    return draw_instant - timedelta(minutes=cutoff_minutes - 1)


def resolve_next_draw(
    extraction_times: Sequence[TimeOfDay],
    cutoff_minutes: int,
    now: datetime,
    *,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """Return the draw instant a ticket sold at ``now`` belongs to.

    Parameters
    ----------
    extraction_times : Sequence[str | datetime.time]
        Daily draw times (``"HH:MM"``) in the operating calendar, any order.
    cutoff_minutes : int
        Sales for a slot stop ``cutoff_minutes - 1`` minutes before it.
    now : datetime
        Sale instant. Naive values are read as operating wall-clock time.
    tz : Optional[tzinfo], default: None
        Override of the operating offset, mainly for tests.

    Returns
    -------
    datetime
        Aware datetime in the operating offset, always later than ``now``.

    Raises
    ------
    ConfigurationError
        If ``extraction_times`` is empty or malformed, or ``cutoff_minutes < 1``.
    """

    if not extraction_times:
        raise ConfigurationError("extraction_times must not be empty")
    if cutoff_minutes < 1:
        raise ConfigurationError("cutoff_minutes must be at least 1")
    try:
        slots = sorted(parse_time_of_day(value) for value in extraction_times)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(str(exc)) from exc

    local_now = to_operating(now, tz)
    midnight = civil_midnight(local_now, tz)

    for slot in slots:
        draw = at_time_of_day(midnight, slot)
        if local_now < sales_cutoff(draw, cutoff_minutes):
            return draw

    # Next civil day: every slot is in the future, no cutoff check needed.
    return at_time_of_day(midnight + timedelta(days=1), slots[0])


def resolve_next_weekly_draw(
    weekday: int,
    draw_time: TimeOfDay,
    now: datetime,
    *,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """Return the next weekly draw (``weekday`` with Monday as 0).

    A draw later today is kept; once its time is reached the draw moves a
    week ahead, so the result is always after ``now``.
    """

    if not 0 <= weekday <= 6:
        raise ConfigurationError("weekday must be within 0..6")
    local_now = to_operating(now, tz)
    midnight = civil_midnight(local_now, tz)
    days_until = (weekday - local_now.weekday()) % 7
    candidate = at_time_of_day(midnight + timedelta(days=days_until), draw_time)
    if days_until == 0 and local_now >= candidate:
        candidate += timedelta(days=7)
    return candidate


__all__ = ["resolve_next_draw", "resolve_next_weekly_draw", "sales_cutoff"]
