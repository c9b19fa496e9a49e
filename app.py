#!/usr/bin/env python3
"""Shift cycle tracker command line."""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from datetime import date, time
from decimal import Decimal

from rich.console import Console
from rich.table import Table
from rich.text import Text

import storage
from logging_config import setup_logging
from models import CYCLE_LENGTH, DayEntry, EntryType, UserPrefs
from session import (
    CycleSession,
    RangeFields,
    apply_join,
    apply_paint,
    apply_redeployment,
    apply_type_over_range,
    flush,
    mark_holidays,
    open_cycle,
    open_today,
    relink_balance,
    set_previous_balance,
    update_day,
)
from utils import (
    cycle_end_date,
    cycle_start_date,
    date_for_day,
    entry_type_label,
    format_time,
    hours_from_times,
    parse_entry_type,
    parse_hours,
    parse_time,
)

console = Console()
def _fmt(hours: Decimal) -> str:
    return f"{hours:.2f}"


def _balance_text(label: str, value: Decimal, suffix: str = "") -> Text:
    text = Text(f"{label:>18}  ")
    text.append(f"{_fmt(value):>8}h", style="bold red" if value < 0 else "bold green")
    if suffix:
        text.append(f"  {suffix}", style="dim")
    return text


def render_cycle(session: CycleSession, prefs: UserPrefs) -> tuple[Table, Text]:
    """Build the day table and the stats summary for a cycle."""
    start = cycle_start_date(session.cycle_index, prefs.start_date)
    end = cycle_end_date(session.cycle_index, prefs.start_date)

    title = f"Cycle {session.cycle_index}: {start:%d/%m/%Y} - {end:%d/%m/%Y}"
    if prefs.staff_number:
        title += f"  (Staff {prefs.staff_number})"
    table = Table(title=title)
    table.add_column("Day", justify="right")
    table.add_column("Date")
    table.add_column("Type")
    table.add_column("Hours", justify="right")
    table.add_column("Times")
    table.add_column("Note")

    for entry in session.days:
        d = date_for_day(session.cycle_index, entry.day_id, prefs.start_date)
        style = "dim" if entry.type == EntryType.OFF_DAY else ""
        note = entry.note
        if entry.course_name:
            note = f"{entry.course_name} @ {entry.course_location}" if entry.course_location else entry.course_name
        times = f"{format_time(entry.start_time)}-{format_time(entry.end_time)}" if entry.has_times else ""
        table.add_row(
            str(entry.day_id),
            d.strftime("%a %d %b"),
            entry_type_label(entry.type),
            _fmt(entry.custom_hours) if entry.custom_hours else "",
            times,
            note,
            style=style,
        )

    stats = session.stats
    summary = Text()
    summary.append_text(_balance_text(
        "Previous balance", session.previous_balance, "linked" if session.is_linked else "manual"
    ))
    summary.append(f"\n{'Worked':>18}  {_fmt(stats.total_worked):>8}h")
    summary.append(f"\n{'Target':>18}  {_fmt(stats.adjusted_target):>8}h")
    summary.append(f"\n{'Training days':>18}  {stats.training_days:>8}", style="dim" if not stats.training_days else "")
    summary.append(f"\n{'Transferred days':>18}  {stats.transferred_days:>8}", style="dim" if not stats.transferred_days else "")
    summary.append("\n")
    summary.append_text(_balance_text("Net balance", stats.net_balance))
    return table, summary


def _open(args: argparse.Namespace, prefs: UserPrefs) -> CycleSession:
    if args.cycle is not None:
        return open_cycle(args.cycle, storage)
    return open_today(storage, prefs.start_date)


def _resolve_hours(
    hours: str | None, start_time: time | None, end_time: time | None, break_minutes: int | None
) -> Decimal | None:
    """Hours from clock times when both are given, else from --hours, else None."""
    if start_time and end_time:
        return hours_from_times(start_time, end_time, break_minutes)
    if hours is not None:
        return parse_hours(hours)
    return None


def _show(session: CycleSession, prefs: UserPrefs) -> None:
    table, summary = render_cycle(session, prefs)
    console.print(table)
    console.print(summary)


def _save(session: CycleSession) -> CycleSession:
    saved = flush(session, storage)
    if saved.is_dirty:
        console.print("[yellow]Warning: changes could not be saved[/yellow]")
    return saved


# --- Commands ---


def cmd_show(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Print a cycle without changing it."""
    _show(_open(args, prefs), prefs)
    return 0


def cmd_set_day(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Set one day; without hours or times the type's default hours apply."""
    session = _open(args, prefs)
    start_time = parse_time(args.start)
    end_time = parse_time(args.end)
    hours = _resolve_hours(args.hours, start_time, end_time, args.break_minutes)

    if hours is None:
        session = apply_paint(session, args.day, args.type)
        entry = replace(
            session.day(args.day),
            note=args.note,
            course_name=args.course,
            course_location=args.location,
        )
    else:
        entry = DayEntry(
            day_id=args.day,
            type=args.type,
            custom_hours=hours,
            note=args.note,
            course_name=args.course,
            course_location=args.location,
            start_time=start_time,
            end_time=end_time,
            break_minutes=args.break_minutes,
        )
    session = _save(update_day(session, entry))
    _show(session, prefs)
    return 0


def cmd_balance(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Set the previous balance by hand, unlinking the cycle."""
    session = _save(set_previous_balance(_open(args, prefs), parse_hours(args.value)))
    _show(session, prefs)
    return 0


def cmd_link(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Recompute the previous balance from earlier cycles."""
    session = _save(relink_balance(_open(args, prefs), storage))
    if not session.is_linked:
        console.print("No earlier cycle to link from; balance reset to 0")
    _show(session, prefs)
    return 0


def cmd_apply(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Apply one entry type to every date in a range, across cycles."""
    if args.end < args.start:
        console.print("[red]End date is before start date[/red]")
        return 1

    start_time = parse_time(args.start_time)
    end_time = parse_time(args.end_time)
    hours = _resolve_hours(args.hours, start_time, end_time, args.break_minutes)

    fields = RangeFields(
        note=args.note,
        course_name=args.course,
        course_location=args.location,
        custom_hours=hours,
        start_time=start_time,
        end_time=end_time,
        break_minutes=args.break_minutes,
    )
    session = _open(args, prefs)
    session = apply_type_over_range(
        session, args.start, args.end, args.type, fields, prefs.start_date, storage
    )
    session = _save(session)
    days = (args.end - args.start).days + 1
    console.print(f"Applied {entry_type_label(args.type)} to {days} day(s)")
    _show(session, prefs)
    return 0


def cmd_redeploy(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Transfer out every day after the given day."""
    session = _save(apply_redeployment(_open(args, prefs), args.day))
    _show(session, prefs)
    return 0


def cmd_join(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Mark every day before the given day as not yet joined."""
    session = _save(apply_join(_open(args, prefs), args.day))
    _show(session, prefs)
    return 0


def cmd_holidays(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Fill public holidays on off days of the cycle."""
    session = _open(args, prefs)
    start = cycle_start_date(session.cycle_index, prefs.start_date)
    end = cycle_end_date(session.cycle_index, prefs.start_date)
    holidays = storage.get_public_holidays(start, end, prefs.holiday_country)
    session, count = mark_holidays(session, holidays, prefs.start_date)
    session = _save(session)
    console.print(f"Added {count} holiday entries" if count else "No new holidays to add")
    _show(session, prefs)
    return 0


def cmd_prefs(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Show preferences, saving any that were given."""
    changed = False
    if args.start_date is not None:
        prefs.start_date = args.start_date
        changed = True
    if args.staff is not None:
        prefs.staff_number = args.staff
        changed = True
    if args.language is not None:
        prefs.language = args.language
        changed = True
    if args.country is not None:
        prefs.holiday_country = args.country.upper()
        changed = True
    if changed:
        storage.save_prefs(prefs)

    console.print(f"Anchor date:     {prefs.start_date.isoformat()}")
    console.print(f"Staff number:    {prefs.staff_number or '-'}")
    console.print(f"Language:        {prefs.language}")
    console.print(f"Holiday country: {prefs.holiday_country}")
    return 0


def cmd_backup(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Write every cycle and the preferences to a JSON file."""
    try:
        with open(args.file, "w", encoding="utf-8") as f:
            f.write(storage.export_backup())
    except OSError as e:
        console.print(f"[red]Could not write backup: {e}[/red]")
        return 1
    console.print(f"Backup written to {args.file}")
    return 0


def cmd_restore(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Replace all data from a backup file, if it is valid."""
    try:
        with open(args.file, encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        console.print(f"[red]Could not read backup: {e}[/red]")
        return 1
    if not storage.import_backup(text):
        console.print("[red]Invalid backup file. Nothing was changed.[/red]")
        return 1
    console.print("Data restored successfully")
    return 0


def cmd_reset(args: argparse.Namespace, prefs: UserPrefs) -> int:
    """Erase all data once confirmed with --yes."""
    if not args.yes:
        console.print("Reset deletes every cycle and preference. Re-run with --yes to confirm.")
        return 1
    storage.erase_all()
    console.print("All data erased")
    return 0


# --- Argument parsing ---


def _date_arg(val: str) -> date:
    return date.fromisoformat(val)


def _add_cycle_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--cycle", type=int, help="cycle index (default: today's cycle)")


def _add_entry_args(parser: argparse.ArgumentParser, start_flag: str, end_flag: str) -> None:
    parser.add_argument("--hours", help="custom hours, or hours deducted for T/O")
    parser.add_argument("--note", default="")
    parser.add_argument("--course", help="course name")
    parser.add_argument("--location", help="course location")
    parser.add_argument(start_flag, dest=start_flag.lstrip("-").replace("-", "_"), help="start time HH:MM")
    parser.add_argument(end_flag, dest=end_flag.lstrip("-").replace("-", "_"), help="end time HH:MM")
    parser.add_argument("--break", dest="break_minutes", type=int, help="break in minutes")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shiftcycle", description="Track hours across 18-day shift cycles.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("show", help="show a cycle")
    _add_cycle_arg(p)
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("set-day", help="set one day of a cycle")
    p.add_argument("day", type=int)
    p.add_argument("type", type=parse_entry_type)
    _add_entry_args(p, "--start", "--end")
    _add_cycle_arg(p)
    p.set_defaults(func=cmd_set_day)

    p = sub.add_parser("balance", help="set the previous balance by hand")
    p.add_argument("value")
    _add_cycle_arg(p)
    p.set_defaults(func=cmd_balance)

    p = sub.add_parser("link", help="carry the balance over from earlier cycles")
    _add_cycle_arg(p)
    p.set_defaults(func=cmd_link)

    p = sub.add_parser("apply", help="apply one type over a date range")
    p.add_argument("start", type=_date_arg)
    p.add_argument("end", type=_date_arg)
    p.add_argument("type", type=parse_entry_type)
    _add_entry_args(p, "--start-time", "--end-time")
    _add_cycle_arg(p)
    p.set_defaults(func=cmd_apply)

    p = sub.add_parser("redeploy", help="transfer out every day after DAY")
    p.add_argument("day", type=int)
    _add_cycle_arg(p)
    p.set_defaults(func=cmd_redeploy)

    p = sub.add_parser("join", help="mark every day before DAY as not yet joined")
    p.add_argument("day", type=int)
    _add_cycle_arg(p)
    p.set_defaults(func=cmd_join)

    p = sub.add_parser("holidays", help="fill public holidays as holiday leave")
    _add_cycle_arg(p)
    p.set_defaults(func=cmd_holidays)

    p = sub.add_parser("prefs", help="show or change preferences")
    p.add_argument("--start-date", type=_date_arg, help="anchor date YYYY-MM-DD")
    p.add_argument("--staff", help="staff number")
    p.add_argument("--language")
    p.add_argument("--country", help="holiday country code, e.g. GB")
    p.set_defaults(func=cmd_prefs)

    p = sub.add_parser("backup", help="export all data to a file")
    p.add_argument("file")
    p.set_defaults(func=cmd_backup)

    p = sub.add_parser("restore", help="replace all data from a backup file")
    p.add_argument("file")
    p.set_defaults(func=cmd_restore)

    p = sub.add_parser("reset", help="erase all data")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=cmd_reset)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    storage.init_db()
    prefs = storage.get_prefs()
    if args.command in ("set-day", "redeploy", "join") and not 1 <= args.day <= CYCLE_LENGTH:
        console.print(f"[red]Day must be between 1 and {CYCLE_LENGTH}[/red]")
        return 2
    return args.func(args, prefs)


if __name__ == "__main__":
    sys.exit(main())
