"""Utility functions for cycle date arithmetic and hour inputs."""

from __future__ import annotations

from datetime import date, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Iterator

from models import CYCLE_LENGTH, LEAVE_HOURS, REGULAR_SHIFT_HOURS, EntryType


def date_to_cycle(d: date, anchor: date) -> tuple[int, int]:
    """Map a date to (cycle_index, day_in_cycle) relative to the anchor date.

    Python's floor division and modulo keep day_in_cycle in 1..18 for dates
    before the anchor as well.
    """
    diff_days = (d - anchor).days
    return diff_days // CYCLE_LENGTH, diff_days % CYCLE_LENGTH + 1


def cycle_index_for(d: date, anchor: date) -> int:
    return date_to_cycle(d, anchor)[0]


def cycle_start_date(cycle_index: int, anchor: date) -> date:
    return anchor + timedelta(days=cycle_index * CYCLE_LENGTH)


def cycle_end_date(cycle_index: int, anchor: date) -> date:
    return cycle_start_date(cycle_index, anchor) + timedelta(days=CYCLE_LENGTH - 1)


def date_for_day(cycle_index: int, day_id: int, anchor: date) -> date:
    """Calendar date of a day slot within a cycle."""
    return cycle_start_date(cycle_index, anchor) + timedelta(days=day_id - 1)


def date_range(start: date, end: date) -> Iterator[date]:
    """Yield each date from start to end (inclusive)."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def parse_hours(val: str | int | float | Decimal | None) -> Decimal:
    """Parse an hours value, degrading anything non-numeric to 0."""
    if val is None or val == "":
        return Decimal("0")
    try:
        hours = Decimal(str(val).strip())
    except InvalidOperation:
        return Decimal("0")
    if not hours.is_finite():
        return Decimal("0")
    return hours


def parse_time(val: str | None) -> time | None:
    """Parse 'HH:MM' into a time, or None if blank or malformed."""
    if not isinstance(val, str) or not val:
        return None
    parts = val.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        return time(int(parts[0]), int(parts[1]))
    except ValueError:
        return None


def format_time(t: time | None) -> str | None:
    if not t:
        return None
    return t.strftime("%H:%M")


def hours_from_times(start: time | None, end: time | None, break_minutes: int | None = None) -> Decimal:
    """Net hours between two wall-clock times, less the break.

    An end time earlier than the start is treated as an overnight shift.
    """
    if start is None or end is None:
        return Decimal("0")

    start_mins = start.hour * 60 + start.minute
    end_mins = end.hour * 60 + end.minute
    total = end_mins - start_mins
    if total < 0:
        total += 24 * 60

    net = max(0, total - (break_minutes or 0))
    return (Decimal(net) / 60).quantize(Decimal("0.01"))


def default_hours_for(entry_type: EntryType) -> Decimal:
    """Hours a day gets when its type is picked without further input."""
    if entry_type == EntryType.REGULAR_SHIFT:
        return REGULAR_SHIFT_HOURS
    if entry_type in (EntryType.LEAVE_PAID_VL, EntryType.LEAVE_HOLIDAY):
        return LEAVE_HOURS
    return Decimal("0")


ENTRY_TYPES = [
    (EntryType.REGULAR_SHIFT, "Shift"),
    (EntryType.OFF_DAY, "Off"),
    (EntryType.LEAVE_PAID_VL, "Leave"),
    (EntryType.LEAVE_HOLIDAY, "Holiday Leave"),
    (EntryType.COURSE_TRAINING, "Course"),
    (EntryType.TRANSFERRED_OUT, "Transferred"),
    (EntryType.TIME_OFF_DEDUCTION, "T/O"),
    (EntryType.CUSTOM, "Custom"),
]


def entry_type_label(entry_type: EntryType) -> str:
    return dict(ENTRY_TYPES)[entry_type]


def parse_entry_type(val: str) -> EntryType:
    """Accept an enum name ('TIME_OFF_DEDUCTION') or stored value ('TIME_OFF')."""
    key = val.strip().upper().replace("-", "_")
    if key in EntryType.__members__:
        return EntryType[key]
    return EntryType(key)
