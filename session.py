"""Active cycle state: navigation, dirty-checked saving and range application.

Every function takes a CycleSession and returns a new one. Store side effects
happen only through the CycleStore passed in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, time
from decimal import Decimal
from typing import Iterable

from balance import CycleStore, compute_stats, resolve_incoming_balance
from models import CYCLE_LENGTH, CycleStats, DayEntry, EntryType, empty_cycle
from utils import cycle_index_for, date_range, date_to_cycle, default_hours_for

logger = logging.getLogger(__name__)

# Stored and linked balances closer than this count as the same value.
LINK_TOLERANCE = Decimal("0.01")

TRANSFER_NOTE = "Transferred out"
JOIN_NOTE = "Not yet joined"


@dataclass
class CycleSession:
    cycle_index: int
    days: list[DayEntry] = field(default_factory=empty_cycle)
    previous_balance: Decimal = Decimal("0")
    is_linked: bool = False
    # What was last loaded or saved, for dirty checking
    saved_days: list[DayEntry] = field(default_factory=list)
    saved_balance: Decimal = Decimal("0")

    @property
    def is_dirty(self) -> bool:
        return self.days != self.saved_days or self.previous_balance != self.saved_balance

    @property
    def stats(self) -> CycleStats:
        return compute_stats(self.days, self.previous_balance)

    def day(self, day_id: int) -> DayEntry:
        _check_day_id(day_id)
        return self.days[day_id - 1]


@dataclass(frozen=True)
class RangeFields:
    """Values written to every day a range touches. Unset hours become 0."""

    note: str = ""
    course_name: str | None = None
    course_location: str | None = None
    custom_hours: Decimal | None = None
    start_time: time | None = None
    end_time: time | None = None
    break_minutes: int | None = None

    def entry_for(self, day_id: int, entry_type: EntryType) -> DayEntry:
        return DayEntry(
            day_id=day_id,
            type=entry_type,
            custom_hours=self.custom_hours if self.custom_hours is not None else Decimal("0"),
            note=self.note,
            course_name=self.course_name,
            course_location=self.course_location,
            start_time=self.start_time,
            end_time=self.end_time,
            break_minutes=self.break_minutes,
        )


def _check_day_id(day_id: int) -> None:
    if not 1 <= day_id <= CYCLE_LENGTH:
        raise ValueError(f"day_id must be between 1 and {CYCLE_LENGTH}, got {day_id}")


def _with_day(days: list[DayEntry], entry: DayEntry) -> list[DayEntry]:
    _check_day_id(entry.day_id)
    updated = list(days)
    updated[entry.day_id - 1] = entry
    return updated


# --- Navigation ---


def open_cycle(cycle_index: int, store: CycleStore) -> CycleSession:
    """Load a cycle and decide which previous balance to show for it.

    A cycle with no stored record takes the linked balance. A stored cycle
    always keeps its own balance and is only flagged as linked when that
    balance matches what linking would give.
    """
    existed = store.cycle_exists(cycle_index)
    record = store.load_cycle(cycle_index)
    link = resolve_incoming_balance(cycle_index, store)

    if not existed:
        balance = link.balance
        is_linked = link.is_linked
    else:
        balance = record.previous_balance
        is_linked = link.is_linked and abs(link.balance - balance) < LINK_TOLERANCE

    return CycleSession(
        cycle_index=cycle_index,
        days=list(record.days),
        previous_balance=balance,
        is_linked=is_linked,
        saved_days=list(record.days),
        saved_balance=balance,
    )


def open_today(store: CycleStore, anchor: date, today: date | None = None) -> CycleSession:
    """Open the cycle containing today's date."""
    return open_cycle(cycle_index_for(today or date.today(), anchor), store)


def flush(session: CycleSession, store: CycleStore) -> CycleSession:
    """Save the session if it changed since it was loaded or last saved."""
    if not session.is_dirty:
        return session

    if not store.save_cycle(session.cycle_index, session.days, session.previous_balance):
        logger.warning("Cycle %d not saved; changes kept in memory only", session.cycle_index)
        return session

    logger.debug("Saved cycle %d", session.cycle_index)
    return replace(session, saved_days=list(session.days), saved_balance=session.previous_balance)


def switch_cycle(session: CycleSession, new_index: int, store: CycleStore) -> CycleSession:
    """Save pending edits to the current cycle, then open another one."""
    flush(session, store)
    return open_cycle(new_index, store)


# --- Edits ---


def update_day(session: CycleSession, entry: DayEntry) -> CycleSession:
    return replace(session, days=_with_day(session.days, entry))


def set_previous_balance(session: CycleSession, balance: Decimal) -> CycleSession:
    """Manual balance edit; unlinks the cycle from its predecessor."""
    return replace(session, previous_balance=balance, is_linked=False)


def relink_balance(session: CycleSession, store: CycleStore) -> CycleSession:
    link = resolve_incoming_balance(session.cycle_index, store)
    return replace(session, previous_balance=link.balance, is_linked=link.is_linked)


def apply_paint(session: CycleSession, day_id: int, entry_type: EntryType) -> CycleSession:
    """Set a day's type with that type's default hours, clearing clock times."""
    entry = replace(
        session.day(day_id),
        type=entry_type,
        custom_hours=default_hours_for(entry_type),
        start_time=None,
        end_time=None,
        break_minutes=None,
    )
    return update_day(session, entry)


def _transfer_days(session: CycleSession, day_ids: Iterable[int], note: str) -> CycleSession:
    days = list(session.days)
    for day_id in day_ids:
        days[day_id - 1] = replace(
            days[day_id - 1],
            type=EntryType.TRANSFERRED_OUT,
            custom_hours=Decimal("0"),
            note=note,
        )
    return replace(session, days=days)


def apply_redeployment(session: CycleSession, last_day_id: int) -> CycleSession:
    """Mark every day after the last working day as transferred out."""
    _check_day_id(last_day_id)
    return _transfer_days(session, range(last_day_id + 1, CYCLE_LENGTH + 1), TRANSFER_NOTE)


def apply_join(session: CycleSession, first_day_id: int) -> CycleSession:
    """Mark every day before the first working day as transferred out."""
    _check_day_id(first_day_id)
    return _transfer_days(session, range(1, first_day_id), JOIN_NOTE)


def mark_holidays(session: CycleSession, holidays: dict[date, str], anchor: date) -> tuple[CycleSession, int]:
    """Turn off days that fall on public holidays into holiday leave.

    Returns the updated session and how many days changed.
    """
    days = list(session.days)
    count = 0
    for holiday_date, name in holidays.items():
        cycle_index, day_id = date_to_cycle(holiday_date, anchor)
        if cycle_index != session.cycle_index:
            continue
        existing = days[day_id - 1]
        # Only fill days nothing has been entered for
        if existing.type != EntryType.OFF_DAY:
            continue
        days[day_id - 1] = DayEntry(
            day_id=day_id,
            type=EntryType.LEAVE_HOLIDAY,
            custom_hours=default_hours_for(EntryType.LEAVE_HOLIDAY),
            note=name,
        )
        count += 1
    return replace(session, days=days), count


# --- Range application ---


def apply_type_to_dates(
    session: CycleSession,
    dates: Iterable[date],
    entry_type: EntryType,
    fields: RangeFields,
    anchor: date,
    store: CycleStore,
) -> CycleSession:
    """Apply one entry type to a set of dates, across as many cycles as they touch.

    Cycles are processed in ascending order. A cycle directly after another
    touched cycle starts from that cycle's new net balance; any other cycle
    keeps its own previous balance. Touched cycles other than the active one
    are saved straight away.
    """
    touched: dict[int, list[DayEntry]] = {}
    stored_balances: dict[int, Decimal] = {}

    for d in dates:
        cycle_index, day_id = date_to_cycle(d, anchor)
        if cycle_index not in touched:
            if cycle_index == session.cycle_index:
                touched[cycle_index] = list(session.days)
                stored_balances[cycle_index] = session.previous_balance
            else:
                record = store.load_cycle(cycle_index)
                touched[cycle_index] = list(record.days)
                stored_balances[cycle_index] = record.previous_balance
        touched[cycle_index][day_id - 1] = fields.entry_for(day_id, entry_type)

    result = session
    running_balance = Decimal("0")
    last_index: int | None = None

    for cycle_index in sorted(touched):
        days = touched[cycle_index]
        chained = last_index is not None and cycle_index == last_index + 1
        start_balance = running_balance if chained else stored_balances[cycle_index]
        running_balance = compute_stats(days, start_balance).net_balance

        if cycle_index == session.cycle_index:
            result = replace(result, days=days)
            if chained:
                result = replace(result, previous_balance=start_balance, is_linked=True)
        else:
            store.save_cycle(cycle_index, days, start_balance)
        logger.debug(
            "Applied %s to cycle %d (start balance %s, chained=%s)",
            entry_type.name, cycle_index, start_balance, chained,
        )
        last_index = cycle_index

    return result


def apply_type_over_range(
    session: CycleSession,
    start: date,
    end: date,
    entry_type: EntryType,
    fields: RangeFields,
    anchor: date,
    store: CycleStore,
) -> CycleSession:
    """Apply one entry type to every date from start to end (inclusive)."""
    return apply_type_to_dates(session, date_range(start, end), entry_type, fields, anchor, store)
