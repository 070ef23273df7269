# MaruLog/cli.py

import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from MaruLog.clock import from_local_datetime, resolve_timezone, to_local_datetime
from MaruLog.config import Settings
from MaruLog.errors import ActivityLogError, NotFoundError
from MaruLog.models import CATEGORIES, CATEGORY_IDS, ActivityLogEntry, get_category
from MaruLog.storage import JsonFileAdapter
from MaruLog.store import ActivityLogStore
from MaruLog.summary import category_totals, format_duration

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(funcName)-25s | %(message)s"

log = logging.getLogger("MaruLog.cli")


def _parse_time(value: str, store: ActivityLogStore) -> int:
    """
    Accepts an ISO-8601 datetime (local unless it carries an offset) or a
    bare ``HH:MM`` meaning that time today.
    """
    try:
        if len(value) <= 5 and ":" in value:
            hour, minute = (int(part) for part in value.split(":"))
            today = to_local_datetime(store.today_window()[0], store.tz)
            parsed = today.replace(hour=hour, minute=minute)
        else:
            parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid time '{value}'. Use YYYY-MM-DDTHH:MM or HH:MM.") from None
    return from_local_datetime(parsed, store.tz)


def _format_entry(entry: ActivityLogEntry, store: ActivityLogStore, now_ms: int) -> str:
    label = get_category(entry.category_id).label
    start = to_local_datetime(entry.start_time, store.tz).strftime("%Y-%m-%d %H:%M")
    end = "now" if entry.is_open else to_local_datetime(entry.end_time, store.tz).strftime("%H:%M")
    return f"{entry.id}  {entry.category_id:<11} {label:<8} {start} - {end:<5}  {format_duration(entry.duration_ms(now_ms))}"


def handle_categories(args_ns, store: ActivityLogStore) -> None:
    for category in CATEGORIES:
        print(f"{category.id:<11} {category.label}")


def handle_start(args_ns, store: ActivityLogStore) -> None:
    entry = store.start(args_ns.category)
    print(f"Started {entry.category_id} ({entry.id}).")


def handle_stop(args_ns, store: ActivityLogStore) -> None:
    entry = store.stop()
    if entry is None:
        print("Nothing is running.")
    else:
        print(f"Stopped {entry.category_id} after {format_duration(entry.duration_ms(entry.end_time))}.")


def handle_status(args_ns, store: ActivityLogStore) -> None:
    entry = store.current_open_entry()
    if entry is None:
        print("Nothing is running.")
    else:
        print(_format_entry(entry, store, store.now_ms()))


def handle_today(args_ns, store: ActivityLogStore) -> None:
    entries = store.today_entries()
    if not entries:
        print("No activities today.")
        return
    now_ms = store.now_ms()
    for entry in entries:
        print(_format_entry(entry, store, now_ms))


def handle_add(args_ns, store: ActivityLogStore) -> None:
    start_time = _parse_time(args_ns.start, store)
    end_time = _parse_time(args_ns.end, store)
    entry = store.add_backfilled(args_ns.category, start_time, end_time)
    print(f"Added {entry.category_id} ({entry.id}).")


def handle_edit(args_ns, store: ActivityLogStore) -> None:
    current = store.get(args_ns.id)
    if current is None:
        raise NotFoundError(args_ns.id)
    changes = {}
    if args_ns.category:
        changes["category_id"] = args_ns.category
    if args_ns.start:
        changes["start_time"] = _parse_time(args_ns.start, store)
    if args_ns.reopen:
        changes["end_time"] = None
    elif args_ns.end:
        changes["end_time"] = _parse_time(args_ns.end, store)
    entry = store.update(current.model_copy(update=changes))
    print(f"Updated {entry.id}.")


def handle_rm(args_ns, store: ActivityLogStore) -> None:
    if store.remove(args_ns.id):
        print(f"Removed {args_ns.id}.")
    else:
        print(f"No entry {args_ns.id}; nothing removed.")


def handle_summary(args_ns, store: ActivityLogStore) -> None:
    window_start, window_end = store.today_window()
    totals = category_totals(store.today_entries(), window_start, window_end, store.now_ms())
    if not totals:
        print("No activities today.")
        return
    for category, total_ms in totals:
        print(f"{category.label:<8} {format_duration(total_ms)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marulog",
        description="MaruLog: personal activity time log"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging for all MaruLog modules.")
    parser.add_argument("--file", default=None, help="Activity log JSON file (overrides MARULOG_DATA_FILE).")
    subparsers = parser.add_subparsers(dest="command", title="Available Commands", required=True)

    subparsers.add_parser("categories", help="List activity categories.").set_defaults(func=handle_categories)

    parser_start = subparsers.add_parser("start", help="Start an activity, stopping the running one.")
    parser_start.add_argument("category", choices=CATEGORY_IDS)
    parser_start.set_defaults(func=handle_start)

    subparsers.add_parser("stop", help="Stop the running activity.").set_defaults(func=handle_stop)
    subparsers.add_parser("status", help="Show the running activity.").set_defaults(func=handle_status)
    subparsers.add_parser("today", help="List today's activities.").set_defaults(func=handle_today)
    subparsers.add_parser("summary", help="Time per category today.").set_defaults(func=handle_summary)

    parser_add = subparsers.add_parser("add", help="Record a finished activity after the fact.")
    parser_add.add_argument("category", choices=CATEGORY_IDS)
    parser_add.add_argument("start", help="Start, YYYY-MM-DDTHH:MM or HH:MM (today).")
    parser_add.add_argument("end", help="End, YYYY-MM-DDTHH:MM or HH:MM (today).")
    parser_add.set_defaults(func=handle_add)

    parser_edit = subparsers.add_parser("edit", help="Change an existing entry.")
    parser_edit.add_argument("id")
    parser_edit.add_argument("--category", choices=CATEGORY_IDS, default=None)
    parser_edit.add_argument("--start", default=None)
    end_group = parser_edit.add_mutually_exclusive_group()
    end_group.add_argument("--end", default=None)
    end_group.add_argument("--reopen", action="store_true", help="Clear the end time, making the entry running again.")
    parser_edit.set_defaults(func=handle_edit)

    parser_rm = subparsers.add_parser("rm", help="Delete an entry.")
    parser_rm.add_argument("id")
    parser_rm.set_defaults(func=handle_rm)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    settings = Settings()

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(format=LOG_FORMAT, level=getattr(logging, settings.log_level.upper(), logging.INFO))
    if args.debug:
        logging.getLogger("MaruLog").setLevel(logging.DEBUG)
        log.debug("Debug logging enabled via CLI.")

    data_file = args.file or settings.data_file
    store = ActivityLogStore(JsonFileAdapter(data_file), tz=resolve_timezone(settings.local_tz))

    try:
        args.func(args, store)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except ActivityLogError as e:
        log.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
