"""Shared fixtures for tests."""

from __future__ import annotations

import os
import tempfile
from datetime import date
from decimal import Decimal
from typing import Generator

import pytest

# Point the store at a throwaway database before anything imports storage
_test_db_fd, _test_db_path = tempfile.mkstemp(suffix=".db")
os.close(_test_db_fd)
os.environ["SHIFTCYCLE_DB"] = _test_db_path


class MemoryStore:
    """In-memory stand-in for the storage module."""

    def __init__(self):
        from models import CycleRecord

        self.records: dict[int, CycleRecord] = {}
        self.saved: list[int] = []
        self.fail_writes = False

    def add(self, cycle_index: int, days=None, previous_balance=Decimal("0")):
        from models import CycleRecord, empty_cycle

        self.records[cycle_index] = CycleRecord(
            cycle_index=cycle_index,
            days=list(days) if days is not None else empty_cycle(),
            previous_balance=Decimal(previous_balance),
        )
        return self.records[cycle_index]

    def load_cycle(self, cycle_index: int):
        from models import CycleRecord, empty_cycle

        record = self.records.get(cycle_index)
        if record is None:
            return CycleRecord(cycle_index=cycle_index, days=empty_cycle())
        return CycleRecord(cycle_index, list(record.days), record.previous_balance)

    def save_cycle(self, cycle_index: int, days, previous_balance) -> bool:
        if self.fail_writes:
            return False
        self.add(cycle_index, days, previous_balance)
        self.saved.append(cycle_index)
        return True

    def cycle_exists(self, cycle_index: int) -> bool:
        return cycle_index in self.records


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def anchor() -> date:
    """Anchor date: day 1 of cycle 0."""
    return date(2024, 6, 15)


@pytest.fixture
def all_shifts():
    """A cycle with every day worked as a regular shift."""
    from models import CYCLE_LENGTH, DayEntry, EntryType, REGULAR_SHIFT_HOURS

    return [
        DayEntry(day_id=i, type=EntryType.REGULAR_SHIFT, custom_hours=REGULAR_SHIFT_HOURS)
        for i in range(1, CYCLE_LENGTH + 1)
    ]


@pytest.fixture
def temp_database(tmp_path, monkeypatch) -> Generator:
    """Use a fresh temporary database for a test."""
    db_path = tmp_path / "test_shiftcycle.db"
    monkeypatch.setenv("SHIFTCYCLE_DB", str(db_path))

    # Re-import storage to pick up new DB_PATH
    import importlib
    import storage
    importlib.reload(storage)

    storage.init_db()

    yield storage

    if db_path.exists():
        db_path.unlink()


def pytest_sessionfinish(session, exitstatus):
    if os.path.exists(_test_db_path):
        os.unlink(_test_db_path)
