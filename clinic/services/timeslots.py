"""
Pure helpers for slot arithmetic.

Times are handled as minutes since midnight so that interval checks are
plain integer comparisons.  Every interval is half-open, ``[start, end)``,
which lets back-to-back appointments touch without colliding.
"""
from __future__ import annotations

import datetime
import re
from typing import Iterable, NamedTuple, Optional

from clinic.exceptions import BookingValidationError

HHMM_RE = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])$')


class ScheduleWindow(NamedTuple):
    start: datetime.time
    end: datetime.time


class BookedInterval(NamedTuple):
    time: datetime.time
    duration: int
    status: str


def parse_hhmm(value) -> datetime.time:
    """Accept ``datetime.time`` or an ``H:MM``/``HH:MM`` string."""
    if isinstance(value, datetime.time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    m = HHMM_RE.match(str(value or '').strip())
    if not m:
        raise BookingValidationError(f'Invalid time "{value}", expected HH:MM.')
    return datetime.time(int(m.group(1)), int(m.group(2)))


def parse_day(value) -> datetime.date:
    """Accept ``datetime.date`` or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value or '').strip())
    except ValueError:
        raise BookingValidationError(f'Invalid date "{value}", expected YYYY-MM-DD.') from None


def to_minutes(t: datetime.time) -> int:
    return t.hour * 60 + t.minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_time(t: Optional[datetime.time]) -> Optional[str]:
    return t.strftime('%H:%M') if t else None


def day_of_week(day: datetime.date) -> int:
    """Map a date to 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and start_b < end_a


def is_free(start: int, duration: int, booked: Iterable[BookedInterval]) -> bool:
    end = start + duration
    for interval in booked:
        b_start = to_minutes(interval.time)
        if overlaps(start, end, b_start, b_start + interval.duration):
            return False
    return True


def fits_window(start: int, duration: int, windows: Iterable[ScheduleWindow]) -> bool:
    end = start + duration
    return any(to_minutes(w.start) <= start and end <= to_minutes(w.end) for w in windows)


def compute_available_slots(windows: Iterable[ScheduleWindow], booked: Iterable[BookedInterval],
                            slot_minutes: int) -> list[str]:
    """Return ascending ``HH:MM`` start times of free slots.

    Each window is cut into ``slot_minutes`` increments from its start;
    an increment is offered only when it fits entirely inside the window
    and does not overlap any booked interval.
    """
    if slot_minutes <= 0:
        raise ValueError('slot_minutes must be positive')
    booked = list(booked)
    starts: set[int] = set()
    for window in windows:
        start, end = to_minutes(window.start), to_minutes(window.end)
        t = start
        while t + slot_minutes <= end:
            if is_free(t, slot_minutes, booked):
                starts.add(t)
            t += slot_minutes
    return [format_minutes(t) for t in sorted(starts)]
