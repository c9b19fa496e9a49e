from __future__ import annotations

import json
import logging
import os
import sqlite3
from datetime import date
from pathlib import Path
from typing import Any

from models import CycleRecord, DayEntry, EntryType, UserPrefs, empty_cycle, is_valid_cycle
from utils import format_time, parse_hours, parse_time

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1


def _get_db_path() -> Path:
    """Get database path from environment variable or default location."""
    if env_path := os.environ.get("SHIFTCYCLE_DB"):
        return Path(env_path)
    return Path(__file__).parent / "data" / "shiftcycle.db"


DB_PATH = _get_db_path()


def get_connection() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Create tables if they don't exist."""
    conn = get_connection()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS cycles (
            cycle_index INTEGER PRIMARY KEY,
            days TEXT NOT NULL,
            previous_balance TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS prefs (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
    """)
    conn.commit()
    conn.close()


# --- Serialisation ---


def _entry_to_dict(entry: DayEntry) -> dict[str, Any]:
    return {
        "day_id": entry.day_id,
        "type": entry.type.value,
        "custom_hours": str(entry.custom_hours),
        "note": entry.note,
        "course_name": entry.course_name,
        "course_location": entry.course_location,
        "start_time": format_time(entry.start_time),
        "end_time": format_time(entry.end_time),
        "break_minutes": entry.break_minutes,
    }


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"Bad {key}: {value!r}")
    return value


def _entry_from_dict(data: dict[str, Any]) -> DayEntry:
    """Build a DayEntry from stored data. Raises on structural problems."""
    day_id = data["day_id"]
    if not isinstance(day_id, int) or isinstance(day_id, bool):
        raise ValueError(f"Bad day_id: {day_id!r}")
    break_minutes = data.get("break_minutes")
    return DayEntry(
        day_id=day_id,
        type=EntryType(data["type"]),
        custom_hours=parse_hours(data.get("custom_hours")),
        note=_optional_str(data, "note") or "",
        course_name=_optional_str(data, "course_name"),
        course_location=_optional_str(data, "course_location"),
        start_time=parse_time(data.get("start_time")),
        end_time=parse_time(data.get("end_time")),
        break_minutes=int(break_minutes) if break_minutes is not None else None,
    )


def _record_from_data(cycle_index: int, days: Any, previous_balance: Any) -> CycleRecord | None:
    """Parse a stored cycle, or None if it is malformed."""
    try:
        entries = [_entry_from_dict(d) for d in days]
    except (KeyError, OverflowError, TypeError, ValueError):
        return None
    if not is_valid_cycle(entries):
        return None
    return CycleRecord(
        cycle_index=cycle_index,
        days=entries,
        previous_balance=parse_hours(previous_balance),
    )


def _row_to_record(row: sqlite3.Row) -> CycleRecord | None:
    try:
        days = json.loads(row["days"])
    except json.JSONDecodeError:
        return None
    return _record_from_data(row["cycle_index"], days, row["previous_balance"])


# --- Cycle Functions ---


def _read_record(cycle_index: int) -> CycleRecord | None:
    """Read a valid stored cycle. Read failures and malformed rows count as absent."""
    try:
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM cycles WHERE cycle_index = ?", (cycle_index,)
            ).fetchone()
        finally:
            conn.close()
    except (sqlite3.Error, OSError):
        logger.exception("Failed to read cycle %d", cycle_index)
        return None

    if not row:
        return None
    record = _row_to_record(row)
    if record is None:
        logger.warning("Ignoring malformed record for cycle %d", cycle_index)
    return record


def cycle_exists(cycle_index: int) -> bool:
    """Check whether a valid record is stored for a cycle."""
    return _read_record(cycle_index) is not None


def load_cycle(cycle_index: int) -> CycleRecord:
    """Get a stored cycle, or an empty default cycle if there is none."""
    record = _read_record(cycle_index)
    if record:
        return record
    return CycleRecord(cycle_index=cycle_index, days=empty_cycle())


def save_cycle(cycle_index: int, days: list[DayEntry], previous_balance) -> bool:
    """Insert or update a cycle. Returns False if the write failed."""
    payload = json.dumps([_entry_to_dict(d) for d in days])
    try:
        conn = get_connection()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO cycles (cycle_index, days, previous_balance)
                VALUES (?, ?, ?)
                """,
                (cycle_index, payload, str(previous_balance)),
            )
            conn.commit()
        finally:
            conn.close()
    except (sqlite3.Error, OSError):
        logger.exception("Failed to save cycle %d", cycle_index)
        return False
    return True


def get_all_cycles() -> list[CycleRecord]:
    """Get every valid stored cycle, ordered by index."""
    conn = get_connection()
    rows = conn.execute("SELECT * FROM cycles ORDER BY cycle_index").fetchall()
    conn.close()

    records = []
    for row in rows:
        record = _row_to_record(row)
        if record is None:
            logger.warning("Skipping malformed record for cycle %d", row["cycle_index"])
            continue
        records.append(record)
    return records


def erase_all() -> None:
    """Delete all cycles and preferences."""
    conn = get_connection()
    conn.execute("DELETE FROM cycles")
    conn.execute("DELETE FROM prefs")
    conn.commit()
    conn.close()


# --- Preference Functions ---


def _prefs_to_dict(prefs: UserPrefs) -> dict[str, str]:
    return {
        "start_date": prefs.start_date.isoformat(),
        "staff_number": prefs.staff_number,
        "language": prefs.language,
        "holiday_country": prefs.holiday_country,
    }


def _prefs_from_dict(values: dict[str, Any]) -> UserPrefs:
    prefs = UserPrefs()
    if values.get("start_date"):
        prefs.start_date = date.fromisoformat(values["start_date"])
    if "staff_number" in values:
        prefs.staff_number = str(values["staff_number"])
    if values.get("language"):
        prefs.language = str(values["language"])
    if values.get("holiday_country"):
        prefs.holiday_country = str(values["holiday_country"])
    return prefs


def get_prefs() -> UserPrefs:
    """Load user preferences from database."""
    conn = get_connection()
    rows = conn.execute("SELECT key, value FROM prefs").fetchall()
    conn.close()

    values = {row["key"]: row["value"] for row in rows}
    try:
        return _prefs_from_dict(values)
    except ValueError:
        logger.warning("Stored start date %r is invalid, using defaults", values.get("start_date"))
        return UserPrefs()


def save_prefs(prefs: UserPrefs):
    """Save user preferences to database."""
    conn = get_connection()
    for key, value in _prefs_to_dict(prefs).items():
        conn.execute("INSERT OR REPLACE INTO prefs (key, value) VALUES (?, ?)", (key, value))
    conn.commit()
    conn.close()


# --- Backup Functions ---


def export_backup() -> str:
    """Serialise every cycle plus the preferences as one JSON document."""
    cycles = {
        str(record.cycle_index): {
            "days": [_entry_to_dict(d) for d in record.days],
            "previous_balance": str(record.previous_balance),
        }
        for record in get_all_cycles()
    }
    backup = {
        "version": BACKUP_VERSION,
        "cycles": cycles,
        "prefs": _prefs_to_dict(get_prefs()),
    }
    return json.dumps(backup, indent=2, sort_keys=True)


def _parse_backup(text: str) -> tuple[list[CycleRecord], UserPrefs] | None:
    """Validate a whole backup before anything is touched."""
    try:
        backup = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(backup, dict):
        return None

    cycles = backup.get("cycles")
    prefs = backup.get("prefs")
    if not isinstance(cycles, dict) or not isinstance(prefs, dict):
        return None

    records = []
    for key, value in cycles.items():
        try:
            cycle_index = int(key)
        except ValueError:
            return None
        if not isinstance(value, dict) or not isinstance(value.get("days"), list):
            return None
        record = _record_from_data(cycle_index, value["days"], value.get("previous_balance"))
        if record is None:
            return None
        records.append(record)

    try:
        return records, _prefs_from_dict(prefs)
    except (TypeError, ValueError):
        return None


def import_backup(text: str) -> bool:
    """Replace all cycles and preferences with a backup's contents.

    Returns False, leaving stored data untouched, if the backup is invalid.
    """
    parsed = _parse_backup(text)
    if parsed is None:
        logger.warning("Rejected backup: invalid or unreadable data")
        return False
    records, prefs = parsed

    conn = get_connection()
    try:
        conn.execute("DELETE FROM cycles")
        conn.execute("DELETE FROM prefs")
        for record in records:
            conn.execute(
                "INSERT INTO cycles (cycle_index, days, previous_balance) VALUES (?, ?, ?)",
                (
                    record.cycle_index,
                    json.dumps([_entry_to_dict(d) for d in record.days]),
                    str(record.previous_balance),
                ),
            )
        for key, value in _prefs_to_dict(prefs).items():
            conn.execute("INSERT INTO prefs (key, value) VALUES (?, ?)", (key, value))
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.exception("Failed to restore backup")
        return False
    finally:
        conn.close()
    return True


# --- Holidays ---


def get_public_holidays(start: date, end: date, country: str = "GB") -> dict[date, str]:
    """Get public holidays for a country that fall in a date range."""
    import holidays

    try:
        country_holidays = holidays.country_holidays(country, years=range(start.year, end.year + 1))
    except NotImplementedError:
        logger.warning("No holiday calendar for country %r", country)
        return {}
    return {d: name for d, name in sorted(country_holidays.items()) if start <= d <= end}
