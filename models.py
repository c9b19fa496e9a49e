from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from enum import Enum

CYCLE_LENGTH = 18

REGULAR_SHIFT_HOURS = Decimal("24.72")
LEAVE_HOURS = Decimal("8.24")
TARGET_HOURS = Decimal("123.6")
AVERAGE_DAILY_HOURS = TARGET_HOURS / CYCLE_LENGTH

DEFAULT_ANCHOR_DATE = date(2024, 6, 15)


class EntryType(str, Enum):
    REGULAR_SHIFT = "REGULAR_SHIFT"
    OFF_DAY = "OFF_DAY"
    LEAVE_PAID_VL = "LEAVE_VL"
    LEAVE_HOLIDAY = "LEAVE_HOLIDAY"
    COURSE_TRAINING = "COURSE_TRAINING"
    TRANSFERRED_OUT = "TRANSFERRED_OUT"
    TIME_OFF_DEDUCTION = "TIME_OFF"
    CUSTOM = "CUSTOM"


@dataclass(frozen=True)
class DayEntry:
    day_id: int
    type: EntryType = EntryType.OFF_DAY
    custom_hours: Decimal = Decimal("0")
    note: str = ""
    course_name: str | None = None
    course_location: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    break_minutes: int | None = None

    @property
    def has_times(self) -> bool:
        """Whether wall-clock inputs were given for this day."""
        return self.start_time is not None and self.end_time is not None


def empty_cycle() -> list[DayEntry]:
    """18 OFF_DAY entries, day 1 to 18."""
    return [DayEntry(day_id=i + 1) for i in range(CYCLE_LENGTH)]


def is_valid_cycle(days: list[DayEntry]) -> bool:
    """Check a cycle holds exactly day_id 1..18 in ascending order."""
    if len(days) != CYCLE_LENGTH:
        return False
    return [d.day_id for d in days] == list(range(1, CYCLE_LENGTH + 1))


@dataclass
class CycleRecord:
    cycle_index: int
    days: list[DayEntry] = field(default_factory=empty_cycle)
    previous_balance: Decimal = Decimal("0")


@dataclass(frozen=True)
class CycleStats:
    total_worked: Decimal
    training_days: int
    transferred_days: int
    adjusted_target: Decimal
    net_balance: Decimal


@dataclass
class UserPrefs:
    start_date: date = DEFAULT_ANCHOR_DATE
    staff_number: str = ""
    language: str = "en"
    holiday_country: str = "GB"
