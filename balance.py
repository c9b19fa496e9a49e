"""Cycle hour balance calculations and cross-cycle balance linking."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

from models import (
    AVERAGE_DAILY_HOURS,
    LEAVE_HOURS,
    REGULAR_SHIFT_HOURS,
    TARGET_HOURS,
    CycleRecord,
    CycleStats,
    DayEntry,
    EntryType,
)

# Backward search for a predecessor never goes below this index or further
# than SCAN_LIMIT cycles.
SCAN_FLOOR = -10
SCAN_LIMIT = 100
ANCHOR_INDEX = 0


class CycleStore(Protocol):
    """Storage capability used by the core. The storage module satisfies it."""

    def load_cycle(self, cycle_index: int) -> CycleRecord: ...

    def save_cycle(self, cycle_index: int, days: list[DayEntry], previous_balance: Decimal) -> bool: ...

    def cycle_exists(self, cycle_index: int) -> bool: ...


@dataclass(frozen=True)
class LinkResult:
    balance: Decimal
    is_linked: bool


NOT_LINKED = LinkResult(Decimal("0"), False)


def _target_reduction(entry: DayEntry) -> Decimal:
    if entry.custom_hours > 0:
        return entry.custom_hours
    return AVERAGE_DAILY_HOURS


def _contribution(entry: DayEntry) -> tuple[Decimal, Decimal]:
    """(worked hours, target reduction) for one day."""
    t = entry.type
    if t == EntryType.REGULAR_SHIFT:
        return REGULAR_SHIFT_HOURS, Decimal("0")
    if t == EntryType.OFF_DAY:
        return Decimal("0"), Decimal("0")
    if t in (EntryType.LEAVE_PAID_VL, EntryType.LEAVE_HOLIDAY):
        return LEAVE_HOURS, Decimal("0")
    if t == EntryType.CUSTOM:
        return entry.custom_hours, Decimal("0")
    if t == EntryType.TIME_OFF_DEDUCTION:
        # custom_hours is the time taken off the shift
        return max(Decimal("0"), REGULAR_SHIFT_HOURS - entry.custom_hours), Decimal("0")
    if t in (EntryType.COURSE_TRAINING, EntryType.TRANSFERRED_OUT):
        return Decimal("0"), _target_reduction(entry)
    raise ValueError(f"Unknown entry type: {t!r}")


def compute_stats(days: Iterable[DayEntry], start_balance: Decimal) -> CycleStats:
    """Calculate worked hours, adjusted target and net balance for a cycle."""
    worked = Decimal("0")
    reduction = Decimal("0")
    training_days = 0
    transferred_days = 0

    for entry in days:
        hours, cut = _contribution(entry)
        worked += hours
        reduction += cut
        if entry.type == EntryType.COURSE_TRAINING:
            training_days += 1
        elif entry.type == EntryType.TRANSFERRED_OUT:
            transferred_days += 1

    adjusted_target = max(Decimal("0"), TARGET_HOURS - reduction)
    return CycleStats(
        total_worked=worked,
        training_days=training_days,
        transferred_days=transferred_days,
        adjusted_target=adjusted_target,
        net_balance=(worked + start_balance) - adjusted_target,
    )


def closing_balance(record: CycleRecord) -> Decimal:
    """Net balance a stored cycle hands on to the next one."""
    return compute_stats(record.days, record.previous_balance).net_balance


def _linked_from(store: CycleStore, cycle_index: int) -> LinkResult:
    return LinkResult(closing_balance(store.load_cycle(cycle_index)), True)


def resolve_incoming_balance(target_index: int, store: CycleStore) -> LinkResult:
    """Work out the balance a cycle should carry in when none has been saved.

    Cycles at or before the anchor only look at their immediate predecessor.
    Later cycles take the nearest stored cycle within the search window, and
    fall back to the anchor cycle.
    """
    if target_index <= ANCHOR_INDEX:
        if store.cycle_exists(target_index - 1):
            return _linked_from(store, target_index - 1)
        return NOT_LINKED

    floor = max(SCAN_FLOOR, target_index - SCAN_LIMIT)
    for index in range(target_index - 1, floor - 1, -1):
        if store.cycle_exists(index):
            return _linked_from(store, index)

    if store.cycle_exists(ANCHOR_INDEX):
        return _linked_from(store, ANCHOR_INDEX)

    return NOT_LINKED
