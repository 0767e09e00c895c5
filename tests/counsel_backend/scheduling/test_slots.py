from datetime import date, datetime, timedelta

import pytest

from counsel_backend.core.errors import ValidationError
from counsel_backend.scheduling.slots import (
    WindowSpec,
    capacity_for_interval,
    format_time_of_day,
    generate_slots,
    parse_time_of_day,
    validate_window,
)

MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)


def window(day: int = 0, start: str = '09:00', end: str = '17:00', **kwargs) -> WindowSpec:
    return WindowSpec(
        day_of_week=day,
        start_minute=parse_time_of_day(start),
        end_minute=parse_time_of_day(end),
        **kwargs,
    )


def test_monday_window_with_hour_sessions_and_quarter_hour_breaks() -> None:
    slots = generate_slots([window(session_duration=60, break_time=15)], MONDAY)

    # 09:00, 10:15, 11:30, 12:45, 14:00, 15:15; a 16:30 start would run past 17:00.
    assert len(slots) == 6
    assert (slots[0].start, slots[0].end) == (datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 10, 0))
    assert (slots[1].start, slots[1].end) == (datetime(2026, 1, 5, 10, 15), datetime(2026, 1, 5, 11, 15))
    assert (slots[-1].start, slots[-1].end) == (datetime(2026, 1, 5, 15, 15), datetime(2026, 1, 5, 16, 15))
    assert not [slot for slot in slots if slot.start > datetime(2026, 1, 5, 16, 0)]


def test_window_without_breaks_ends_on_the_window_boundary() -> None:
    slots = generate_slots([window(session_duration=60, break_time=0)], MONDAY)

    assert len(slots) == 8
    assert (slots[-1].start, slots[-1].end) == (datetime(2026, 1, 5, 16, 0), datetime(2026, 1, 5, 17, 0))


def test_slots_stay_inside_window_and_respect_gap() -> None:
    spec = window(start='08:30', end='12:10', session_duration=50, break_time=10)
    slots = generate_slots([spec], MONDAY)

    window_start = datetime(2026, 1, 5, 8, 30)
    window_end = datetime(2026, 1, 5, 12, 10)
    assert slots
    for slot in slots:
        assert window_start <= slot.start
        assert slot.end <= window_end
    for previous, current in zip(slots, slots[1:]):
        assert current.start >= previous.end + timedelta(minutes=10)


def test_slot_is_only_emitted_when_full_duration_fits() -> None:
    slots = generate_slots([window(start='09:00', end='10:59', session_duration=60, break_time=0)], MONDAY)

    assert [slot.start for slot in slots] == [datetime(2026, 1, 5, 9, 0)]


def test_no_windows_for_weekday_yields_empty_sequence() -> None:
    assert generate_slots([window(day=0)], TUESDAY) == []
    assert generate_slots([], MONDAY) == []


def test_unavailable_windows_produce_no_slots() -> None:
    assert generate_slots([window(is_available=False)], MONDAY) == []


def test_out_of_order_windows_are_sorted_by_start() -> None:
    afternoon = window(start='14:00', end='16:00', session_duration=60, break_time=0)
    morning = window(start='09:00', end='11:00', session_duration=60, break_time=0)

    slots = generate_slots([afternoon, morning], MONDAY, counsellor_id=7)

    assert [slot.start.hour for slot in slots] == [9, 10, 14, 15]
    assert {slot.counsellor_id for slot in slots} == {7}


def test_generation_is_restartable() -> None:
    windows = [window(session_duration=45, break_time=5)]

    assert generate_slots(windows, MONDAY) == generate_slots(windows, MONDAY)


def test_past_windows_still_generate_slots() -> None:
    slots = generate_slots([window()], date(2020, 1, 6))

    assert len(slots) == 6


def test_slots_carry_window_capacity() -> None:
    slots = generate_slots([window(max_sessions_per_slot=3)], MONDAY)

    assert {slot.capacity for slot in slots} == {3}


@pytest.mark.parametrize(
    ('value', 'minutes'),
    [('00:00', 0), ('9:05', 545), ('17:00', 1020), ('23:59', 1439)],
)
def test_parse_time_of_day(value: str, minutes: int) -> None:
    assert parse_time_of_day(value) == minutes


@pytest.mark.parametrize('value', ['24:00', '9:5', 'nine', '', '12:60'])
def test_parse_time_of_day_rejects_malformed_values(value: str) -> None:
    with pytest.raises(ValidationError) as exception_info:
        parse_time_of_day(value, 'start_time')

    assert exception_info.value.field == 'start_time'


def test_format_time_of_day_pads_hours_and_minutes() -> None:
    assert format_time_of_day(545) == '09:05'


@pytest.mark.parametrize(
    ('spec', 'field'),
    [
        (WindowSpec(day_of_week=7, start_minute=540, end_minute=1020), 'day_of_week'),
        (WindowSpec(day_of_week=0, start_minute=1020, end_minute=540), 'end_time'),
        (WindowSpec(day_of_week=0, start_minute=540, end_minute=1440), 'end_time'),
        (WindowSpec(day_of_week=0, start_minute=540, end_minute=1020, session_duration=10), 'session_duration'),
        (WindowSpec(day_of_week=0, start_minute=540, end_minute=570, session_duration=60), 'session_duration'),
        (WindowSpec(day_of_week=0, start_minute=540, end_minute=1020, break_time=61), 'break_time'),
        (WindowSpec(day_of_week=0, start_minute=540, end_minute=1020, max_sessions_per_slot=11), 'max_sessions_per_slot'),
    ],
)
def test_validate_window_reports_offending_field(spec: WindowSpec, field: str) -> None:
    with pytest.raises(ValidationError) as exception_info:
        validate_window(spec)

    assert exception_info.value.field == field


def test_capacity_for_interval_uses_containing_window() -> None:
    windows = [
        window(start='09:00', end='12:00', max_sessions_per_slot=3),
        window(start='13:00', end='17:00'),
    ]

    assert capacity_for_interval(windows, datetime(2026, 1, 5, 10, 0), datetime(2026, 1, 5, 11, 0)) == 3
    assert capacity_for_interval(windows, datetime(2026, 1, 5, 14, 0), datetime(2026, 1, 5, 15, 0)) == 1
    assert capacity_for_interval(windows, datetime(2026, 1, 5, 11, 30), datetime(2026, 1, 5, 12, 30)) == 1
    assert capacity_for_interval(windows, datetime(2026, 1, 6, 10, 0), datetime(2026, 1, 6, 11, 0)) == 1
