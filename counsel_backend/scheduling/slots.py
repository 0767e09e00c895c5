"""Slot generation from recurring weekly availability windows.

Windows are wall-clock templates: a day of the week plus a start and end
expressed in minutes after midnight. Walking a window on a concrete date
yields fixed-length slots separated by the window's break time.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, Protocol

from counsel_backend.core.errors import ValidationError

MINUTES_PER_DAY = 24 * 60
MIN_SESSION_DURATION = 15
MAX_SESSION_DURATION = 180
MAX_BREAK_TIME = 60
MAX_SESSIONS_PER_SLOT = 10

_TIME_OF_DAY_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$')


class WindowLike(Protocol):
    day_of_week: int
    start_minute: int
    end_minute: int
    session_duration: int
    break_time: int
    max_sessions_per_slot: int
    is_available: bool


@dataclass(frozen=True)
class WindowSpec:
    """An availability window before it is stored."""

    day_of_week: int
    start_minute: int
    end_minute: int
    session_duration: int = 60
    break_time: int = 15
    max_sessions_per_slot: int = 1
    is_available: bool = True


@dataclass(frozen=True, order=True)
class Slot:
    start: datetime
    end: datetime
    counsellor_id: int | None = None
    capacity: int = 1


def parse_time_of_day(value: str, field: str = 'time') -> int:
    """Convert ``"HH:MM"`` (24-hour) to minutes after midnight."""
    match = _TIME_OF_DAY_PATTERN.match((value or '').strip())
    if not match:
        raise ValidationError(field, f'Invalid time of day {value!r}; expected HH:MM.')
    return int(match.group(1)) * 60 + int(match.group(2))


def format_time_of_day(minutes: int) -> str:
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def validate_window(window: WindowLike) -> None:
    if not 0 <= window.day_of_week <= 6:
        raise ValidationError('day_of_week', 'Day of week must be between 0 (Monday) and 6 (Sunday).')
    if not 0 <= window.start_minute < MINUTES_PER_DAY:
        raise ValidationError('start_time', 'Start time must fall within the day.')
    if not 0 <= window.end_minute < MINUTES_PER_DAY:
        raise ValidationError('end_time', 'End time must fall within the day.')
    if window.start_minute >= window.end_minute:
        raise ValidationError('end_time', 'End time must be after start time.')
    if not MIN_SESSION_DURATION <= window.session_duration <= MAX_SESSION_DURATION:
        raise ValidationError(
            'session_duration',
            f'Session duration must be between {MIN_SESSION_DURATION} and {MAX_SESSION_DURATION} minutes.',
        )
    if window.session_duration > window.end_minute - window.start_minute:
        raise ValidationError('session_duration', 'Session duration does not fit inside the window.')
    if not 0 <= window.break_time <= MAX_BREAK_TIME:
        raise ValidationError('break_time', f'Break time must be between 0 and {MAX_BREAK_TIME} minutes.')
    if not 1 <= window.max_sessions_per_slot <= MAX_SESSIONS_PER_SLOT:
        raise ValidationError(
            'max_sessions_per_slot',
            f'Max sessions per slot must be between 1 and {MAX_SESSIONS_PER_SLOT}.',
        )


def window_bounds(window: WindowLike, on_date: date) -> tuple[datetime, datetime]:
    midnight = datetime.combine(on_date, time.min)
    return (
        midnight + timedelta(minutes=window.start_minute),
        midnight + timedelta(minutes=window.end_minute),
    )


def iter_window_slots(window: WindowLike, on_date: date, counsellor_id: int | None = None) -> Iterator[Slot]:
    window_start, window_end = window_bounds(window, on_date)
    duration = timedelta(minutes=window.session_duration)
    step = timedelta(minutes=window.session_duration + window.break_time)

    cursor = window_start
    while cursor + duration <= window_end:
        yield Slot(
            start=cursor,
            end=cursor + duration,
            counsellor_id=counsellor_id,
            capacity=window.max_sessions_per_slot,
        )
        cursor += step


def generate_slots(
    windows: Iterable[WindowLike],
    on_date: date,
    counsellor_id: int | None = None,
) -> list[Slot]:
    """Candidate slots for ``on_date``, ordered by start.

    Past slots are not filtered here; callers apply the same "must be in
    the future" rule that booking creation enforces.
    """
    weekday = on_date.weekday()
    slots: list[Slot] = []
    for window in windows:
        if window.day_of_week != weekday or not window.is_available:
            continue
        slots.extend(iter_window_slots(window, on_date, counsellor_id))

    return sorted(slots, key=lambda slot: (slot.start, slot.end))


def capacity_for_interval(windows: Iterable[WindowLike], start: datetime, end: datetime) -> int:
    """Concurrent sessions allowed for ``[start, end)``.

    Taken from the widest-capacity available window on that weekday that
    contains the interval; intervals outside every window allow one.
    """
    capacity = 1
    if start.date() != end.date():
        return capacity

    for window in windows:
        if window.day_of_week != start.weekday() or not window.is_available:
            continue
        window_start, window_end = window_bounds(window, start.date())
        if window_start <= start and end <= window_end:
            capacity = max(capacity, window.max_sessions_per_slot)
    return capacity
