"""Tests for session.py - cycle navigation and range application."""

from __future__ import annotations

from datetime import date, time, timedelta
from decimal import Decimal

import pytest

from balance import compute_stats
from models import DayEntry, EntryType, empty_cycle
from session import (
    JOIN_NOTE,
    TRANSFER_NOTE,
    CycleSession,
    RangeFields,
    apply_join,
    apply_paint,
    apply_redeployment,
    apply_type_over_range,
    apply_type_to_dates,
    flush,
    mark_holidays,
    open_cycle,
    open_today,
    relink_balance,
    set_previous_balance,
    switch_cycle,
    update_day,
)


def day_of(anchor: date, cycle_index: int, day_id: int) -> date:
    return anchor + timedelta(days=cycle_index * 18 + day_id - 1)


class TestOpenCycle:
    """Tests for open_cycle."""

    def test_new_cycle_takes_linked_balance(self, memory_store, all_shifts):
        memory_store.add(0, all_shifts)
        session = open_cycle(1, memory_store)

        assert session.cycle_index == 1
        assert session.days == empty_cycle()
        assert session.previous_balance == Decimal("321.36")
        assert session.is_linked

    def test_new_cycle_with_no_history(self, memory_store):
        session = open_cycle(4, memory_store)
        assert session.previous_balance == Decimal("0")
        assert not session.is_linked

    def test_opening_does_not_save(self, memory_store, all_shifts):
        """Just opening a cycle is not an edit."""
        memory_store.add(0, all_shifts)
        session = open_cycle(1, memory_store)

        assert not session.is_dirty
        assert not memory_store.cycle_exists(1)

    def test_stored_balance_wins(self, memory_store, all_shifts):
        """A manually saved balance is never replaced by the linked one."""
        memory_store.add(0, all_shifts)
        memory_store.add(1, previous_balance=Decimal("5"))
        session = open_cycle(1, memory_store)

        assert session.previous_balance == Decimal("5")
        assert not session.is_linked

    def test_stored_balance_matching_link_shows_linked(self, memory_store, all_shifts):
        memory_store.add(0, all_shifts)
        memory_store.add(1, previous_balance=Decimal("321.365"))
        session = open_cycle(1, memory_store)

        assert session.previous_balance == Decimal("321.365")
        assert session.is_linked

    def test_stored_days_loaded(self, memory_store, all_shifts):
        memory_store.add(-3, all_shifts, Decimal("-7"))
        session = open_cycle(-3, memory_store)

        assert session.days == all_shifts
        assert session.previous_balance == Decimal("-7")

    def test_open_today(self, memory_store, anchor):
        session = open_today(memory_store, anchor, today=anchor + timedelta(days=40))
        assert session.cycle_index == 2


class TestFlush:
    """Tests for flush and dirty checking."""

    def test_clean_session_not_written(self, memory_store):
        session = open_cycle(0, memory_store)
        flush(session, memory_store)
        assert memory_store.saved == []

    def test_day_edit_is_written(self, memory_store):
        session = open_cycle(0, memory_store)
        session = update_day(session, DayEntry(day_id=2, type=EntryType.REGULAR_SHIFT))
        assert session.is_dirty

        session = flush(session, memory_store)

        assert not session.is_dirty
        assert memory_store.saved == [0]
        assert memory_store.load_cycle(0).days[1].type == EntryType.REGULAR_SHIFT

    def test_second_flush_is_noop(self, memory_store):
        session = set_previous_balance(open_cycle(0, memory_store), Decimal("3"))
        session = flush(session, memory_store)
        flush(session, memory_store)
        assert memory_store.saved == [0]

    def test_balance_edit_is_written(self, memory_store):
        session = set_previous_balance(open_cycle(0, memory_store), Decimal("12.5"))
        flush(session, memory_store)
        assert memory_store.load_cycle(0).previous_balance == Decimal("12.5")

    def test_write_failure_keeps_changes(self, memory_store):
        """A failed write leaves the session dirty so it can be retried."""
        memory_store.fail_writes = True
        session = set_previous_balance(open_cycle(0, memory_store), Decimal("1"))
        session = flush(session, memory_store)

        assert session.is_dirty
        assert session.previous_balance == Decimal("1")

        memory_store.fail_writes = False
        assert not flush(session, memory_store).is_dirty

    def test_edit_then_revert_is_clean(self, memory_store):
        session = open_cycle(0, memory_store)
        original = session.day(4)
        session = update_day(session, DayEntry(day_id=4, type=EntryType.CUSTOM))
        session = update_day(session, original)
        assert not session.is_dirty


class TestSwitchCycle:
    """Tests for switch_cycle."""

    def test_saves_edits_before_leaving(self, memory_store):
        session = open_cycle(0, memory_store)
        session = update_day(session, DayEntry(day_id=1, type=EntryType.REGULAR_SHIFT))

        session = switch_cycle(session, 1, memory_store)

        assert memory_store.saved == [0]
        assert session.cycle_index == 1
        # Cycle 0 is now stored, so cycle 1 links to it
        assert session.is_linked
        assert session.previous_balance == Decimal("24.72") - Decimal("123.6")

    def test_navigation_alone_writes_nothing(self, memory_store, all_shifts):
        memory_store.add(0, all_shifts)
        session = open_cycle(0, memory_store)
        for index in (1, 2, 1, 0, -1):
            session = switch_cycle(session, index, memory_store)
        assert memory_store.saved == []

    def test_round_trip_keeps_manual_balance(self, memory_store, all_shifts):
        memory_store.add(0, all_shifts)
        session = set_previous_balance(open_cycle(1, memory_store), Decimal("2"))
        session = switch_cycle(session, 2, memory_store)
        session = switch_cycle(session, 1, memory_store)

        assert session.previous_balance == Decimal("2")
        assert not session.is_linked


class TestBalanceEdits:
    """Tests for set_previous_balance and relink_balance."""

    def test_manual_balance_unlinks(self, memory_store, all_shifts):
        memory_store.add(0, all_shifts)
        session = open_cycle(1, memory_store)
        session = set_previous_balance(session, Decimal("0"))
        assert not session.is_linked

    def test_relink(self, memory_store, all_shifts):
        memory_store.add(0, all_shifts)
        session = set_previous_balance(open_cycle(1, memory_store), Decimal("9"))
        session = relink_balance(session, memory_store)

        assert session.previous_balance == Decimal("321.36")
        assert session.is_linked

    def test_relink_without_history(self, memory_store):
        session = set_previous_balance(open_cycle(1, memory_store), Decimal("9"))
        session = relink_balance(session, memory_store)
        assert session.previous_balance == Decimal("0")
        assert not session.is_linked


class TestDayEdits:
    """Tests for update_day and the single-cycle helpers."""

    def test_update_day_rejects_bad_day(self):
        with pytest.raises(ValueError):
            update_day(CycleSession(cycle_index=0), DayEntry(day_id=19))

    def test_paint_sets_default_hours(self):
        session = CycleSession(cycle_index=0)
        session = update_day(session, DayEntry(day_id=3, type=EntryType.CUSTOM, custom_hours=Decimal("6"),
                                               start_time=time(8, 0), end_time=time(14, 0), break_minutes=0))
        session = apply_paint(session, 3, EntryType.REGULAR_SHIFT)

        entry = session.day(3)
        assert entry.type == EntryType.REGULAR_SHIFT
        assert entry.custom_hours == Decimal("24.72")
        assert entry.start_time is None
        assert entry.break_minutes is None

    def test_redeployment(self):
        session = apply_redeployment(CycleSession(cycle_index=0), 12)

        assert all(d.type == EntryType.OFF_DAY for d in session.days[:12])
        assert all(d.type == EntryType.TRANSFERRED_OUT for d in session.days[12:])
        assert session.day(13).note == TRANSFER_NOTE
        assert session.stats.transferred_days == 6

    def test_join(self):
        session = apply_join(CycleSession(cycle_index=0), 4)

        assert [d.type for d in session.days[:3]] == [EntryType.TRANSFERRED_OUT] * 3
        assert session.day(4).type == EntryType.OFF_DAY
        assert session.day(1).note == JOIN_NOTE

    def test_join_on_first_day_changes_nothing(self):
        session = CycleSession(cycle_index=0)
        assert apply_join(session, 1).days == session.days


class TestMarkHolidays:
    """Tests for mark_holidays."""

    def test_fills_off_days(self, anchor):
        session = CycleSession(cycle_index=0)
        holidays = {
            day_of(anchor, 0, 5): "Summer Bank Holiday",
            day_of(anchor, 1, 2): "Next cycle",
        }
        session, count = mark_holidays(session, holidays, anchor)

        assert count == 1
        assert session.day(5).type == EntryType.LEAVE_HOLIDAY
        assert session.day(5).custom_hours == Decimal("8.24")
        assert session.day(5).note == "Summer Bank Holiday"

    def test_keeps_entered_days(self, anchor):
        session = update_day(CycleSession(cycle_index=0), DayEntry(day_id=5, type=EntryType.REGULAR_SHIFT))
        session, count = mark_holidays(session, {day_of(anchor, 0, 5): "Holiday"}, anchor)

        assert count == 0
        assert session.day(5).type == EntryType.REGULAR_SHIFT


class TestApplyTypeOverRange:
    """Tests for range application and balance chaining."""

    def test_within_active_cycle(self, memory_store, anchor):
        session = open_cycle(0, memory_store)
        session = apply_type_over_range(
            session, day_of(anchor, 0, 3), day_of(anchor, 0, 5),
            EntryType.LEAVE_PAID_VL, RangeFields(note="Holiday"), anchor, memory_store,
        )

        assert [d.type for d in session.days[2:5]] == [EntryType.LEAVE_PAID_VL] * 3
        assert session.day(2).type == EntryType.OFF_DAY
        assert session.day(6).type == EntryType.OFF_DAY
        assert session.day(4).note == "Holiday"
        # Active cycle is only changed in memory
        assert memory_store.saved == []
        assert session.is_dirty

    def test_full_field_replacement(self, memory_store, anchor):
        """Fields not given are reset, not merged."""
        session = update_day(open_cycle(0, memory_store), DayEntry(
            day_id=1, type=EntryType.COURSE_TRAINING, custom_hours=Decimal("7"), note="old",
            course_name="First Aid", course_location="HQ",
            start_time=time(9, 0), end_time=time(16, 0), break_minutes=0,
        ))
        session = apply_type_over_range(
            session, anchor, anchor, EntryType.REGULAR_SHIFT, RangeFields(), anchor, memory_store,
        )

        assert session.day(1) == DayEntry(day_id=1, type=EntryType.REGULAR_SHIFT)

    def test_fields_written(self, memory_store, anchor):
        fields = RangeFields(
            note="Course", course_name="Navigation", course_location="Academy",
            custom_hours=Decimal("7.5"), start_time=time(8, 0), end_time=time(16, 0), break_minutes=30,
        )
        session = apply_type_over_range(
            open_cycle(0, memory_store), anchor, anchor, EntryType.COURSE_TRAINING, fields, anchor, memory_store,
        )
        entry = session.day(1)
        assert entry.course_name == "Navigation"
        assert entry.course_location == "Academy"
        assert entry.custom_hours == Decimal("7.5")
        assert entry.break_minutes == 30

    def test_adjacent_cycles_chain(self, memory_store, anchor):
        """The later of two adjacent cycles starts from the earlier one's net balance."""
        memory_store.add(3, previous_balance=Decimal("10"))
        memory_store.add(4, previous_balance=Decimal("-50"))
        session = open_cycle(0, memory_store)

        apply_type_over_range(
            session, day_of(anchor, 3, 17), day_of(anchor, 4, 2),
            EntryType.COURSE_TRAINING, RangeFields(), anchor, memory_store,
        )

        cycle3 = memory_store.load_cycle(3)
        cycle4 = memory_store.load_cycle(4)
        assert cycle3.previous_balance == Decimal("10")
        assert cycle3.days[16].type == EntryType.COURSE_TRAINING
        assert cycle3.days[17].type == EntryType.COURSE_TRAINING
        assert cycle4.days[0].type == EntryType.COURSE_TRAINING
        assert cycle4.days[2].type == EntryType.OFF_DAY
        assert cycle4.previous_balance == compute_stats(cycle3.days, Decimal("10")).net_balance

    def test_gap_does_not_chain(self, memory_store, anchor):
        """A touched cycle after a gap keeps its own stored balance."""
        memory_store.add(3, previous_balance=Decimal("10"))
        memory_store.add(6, previous_balance=Decimal("42"))
        session = open_cycle(0, memory_store)

        apply_type_to_dates(
            session, [day_of(anchor, 3, 17), day_of(anchor, 6, 3)],
            EntryType.COURSE_TRAINING, RangeFields(), anchor, memory_store,
        )

        assert memory_store.load_cycle(6).previous_balance == Decimal("42")
        assert memory_store.load_cycle(6).days[2].type == EntryType.COURSE_TRAINING
        assert not memory_store.cycle_exists(4)
        assert not memory_store.cycle_exists(5)

    def test_chain_runs_through_three_cycles(self, memory_store, anchor):
        session = open_cycle(0, memory_store)
        apply_type_over_range(
            session, day_of(anchor, 1, 18), day_of(anchor, 3, 1),
            EntryType.REGULAR_SHIFT, RangeFields(), anchor, memory_store,
        )

        c1, c2, c3 = (memory_store.load_cycle(i) for i in (1, 2, 3))
        assert c1.previous_balance == Decimal("0")
        assert c2.previous_balance == compute_stats(c1.days, c1.previous_balance).net_balance
        assert c3.previous_balance == compute_stats(c2.days, c2.previous_balance).net_balance
        assert memory_store.saved == [1, 2, 3]

    def test_active_cycle_chained_from_previous(self, memory_store, anchor):
        """An active cycle reached by the chain takes the chained balance in memory."""
        memory_store.add(3, previous_balance=Decimal("10"))
        session = set_previous_balance(open_cycle(4, memory_store), Decimal("99"))

        session = apply_type_over_range(
            session, day_of(anchor, 3, 17), day_of(anchor, 4, 2),
            EntryType.COURSE_TRAINING, RangeFields(), anchor, memory_store,
        )

        expected = compute_stats(memory_store.load_cycle(3).days, Decimal("10")).net_balance
        assert session.previous_balance == expected
        assert session.is_linked
        assert session.day(1).type == EntryType.COURSE_TRAINING
        assert memory_store.saved == [3]

    def test_active_cycle_starts_chain(self, memory_store, anchor):
        """The first touched cycle uses the active session's own balance."""
        memory_store.add(4, previous_balance=Decimal("-50"))
        session = set_previous_balance(open_cycle(3, memory_store), Decimal("5"))

        session = apply_type_over_range(
            session, day_of(anchor, 3, 18), day_of(anchor, 4, 1),
            EntryType.REGULAR_SHIFT, RangeFields(), anchor, memory_store,
        )

        assert session.previous_balance == Decimal("5")
        assert not session.is_linked
        assert memory_store.load_cycle(4).previous_balance == compute_stats(session.days, Decimal("5")).net_balance

    def test_range_before_anchor(self, memory_store, anchor):
        """Dates before the anchor land in negative cycles."""
        session = open_cycle(5, memory_store)
        apply_type_over_range(
            session, anchor - timedelta(days=2), anchor + timedelta(days=1),
            EntryType.LEAVE_HOLIDAY, RangeFields(), anchor, memory_store,
        )

        before = memory_store.load_cycle(-1)
        after = memory_store.load_cycle(0)
        assert [d.type for d in before.days[16:]] == [EntryType.LEAVE_HOLIDAY] * 2
        assert [d.type for d in after.days[:2]] == [EntryType.LEAVE_HOLIDAY] * 2
        assert after.previous_balance == compute_stats(before.days, Decimal("0")).net_balance

    def test_empty_range(self, memory_store, anchor):
        session = open_cycle(0, memory_store)
        result = apply_type_over_range(
            session, anchor + timedelta(days=3), anchor, EntryType.REGULAR_SHIFT,
            RangeFields(), anchor, memory_store,
        )
        assert result == session
        assert memory_store.saved == []
