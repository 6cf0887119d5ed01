#!/usr/bin/env python3
"""Edit the stored reminder settings.

Usage:
    python scripts/configure_reminders.py show
    python scripts/configure_reminders.py staff "Alice=alice@example.com" "Bob=bob@example.com"
    python scripts/configure_reminders.py general-emails alice@example.com bob@example.com
    python scripts/configure_reminders.py designated Alice Bob
    python scripts/configure_reminders.py urls --today URL --week URL \\
        --staff "Alice=TODAY_URL,WEEK_URL"
    python scripts/configure_reminders.py enable broadcast today
    python scripts/configure_reminders.py disable individual week
    python scripts/configure_reminders.py delete staff
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import settings
from src.docs_client import GoogleDocsWriter
from src.exceptions import InvalidDocumentUrlError, TaskminderError
from src.models import ReminderKey, StaffMember
from src.reminder_config import (
    SETTING_KEYS,
    delete_setting,
    disable_reminder,
    enable_reminder,
    load_enabled_keys,
    load_reminder_config,
    store_broadcast_recipients,
    store_designated_staff,
    store_document_urls,
    store_staff,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def parse_staff_entry(entry: str) -> StaffMember:
    """Parse "Name=email"."""
    name, sep, email = entry.partition("=")
    if not sep or not email.strip():
        raise argparse.ArgumentTypeError(f"Expected Name=email, got {entry!r}")
    return StaffMember(name=name.strip(), email=email.strip())


def parse_staff_urls(entries: list[str]) -> dict[str, tuple[str | None, str | None]]:
    """Parse "Name=TODAY_URL,WEEK_URL" entries (either URL may be empty)."""
    result = {}
    for entry in entries:
        name, _, urls = entry.partition("=")
        today_url, _, week_url = urls.partition(",")
        result[name.strip()] = (today_url.strip() or None, week_url.strip() or None)
    return result


def main():
    parser = argparse.ArgumentParser(description="Configure reminder recipients and documents")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("show", help="Print the stored settings")
    staff = sub.add_parser("staff", help="Replace the staff roster")
    staff.add_argument("members", nargs="+", type=parse_staff_entry)
    general = sub.add_parser("general-emails", help="Set the general reminder recipients")
    general.add_argument("emails", nargs="+")
    designated = sub.add_parser("designated", help="Pick staff who get their own reminders")
    designated.add_argument("names", nargs="+")
    urls = sub.add_parser("urls", help="Set destination Google Docs")
    urls.add_argument("--today", default=None)
    urls.add_argument("--week", default=None)
    urls.add_argument("--staff", nargs="*", default=None, metavar="NAME=TODAY,WEEK")
    for action in ("enable", "disable"):
        toggle = sub.add_parser(action, help=f"{action.capitalize()} a scheduled reminder")
        toggle.add_argument("audience", choices=["broadcast", "individual"])
        toggle.add_argument("horizon", choices=["today", "week"])
    delete = sub.add_parser("delete", help="Reset one setting")
    delete.add_argument("name", choices=sorted(SETTING_KEYS))
    args = parser.parse_args()

    db_path = settings.db_path
    try:
        if args.command == "show":
            config = load_reminder_config(db_path)
            print(json.dumps({
                "staff": [asdict(s) for s in config.staff],
                "broadcast_recipients": [r.email for r in config.broadcast_recipients],
                "broadcast_today_doc_url": config.broadcast_today_doc_url,
                "broadcast_week_doc_url": config.broadcast_week_doc_url,
                "individuals": [asdict(i) for i in config.individuals],
                "enabled_reminders": [k.slug for k in load_enabled_keys(db_path)],
            }, indent=2, ensure_ascii=False))
        elif args.command == "staff":
            store_staff(args.members, db_path=db_path)
        elif args.command == "general-emails":
            store_broadcast_recipients(args.emails, db_path=db_path)
        elif args.command == "designated":
            roster = {m.name: m for m in load_reminder_config(db_path).staff}
            missing = [n for n in args.names if n not in roster]
            if missing:
                logger.error("Not in the staff roster: %s", ", ".join(missing))
                sys.exit(1)
            store_designated_staff([roster[n] for n in args.names], db_path=db_path)
        elif args.command == "urls":
            staff_urls = parse_staff_urls(args.staff) if args.staff is not None else None
            store_document_urls(
                args.today, args.week, staff_urls,
                mime_type_of=GoogleDocsWriter().mime_type, db_path=db_path,
            )
        elif args.command == "enable":
            enable_reminder(ReminderKey.parse(args.audience, args.horizon), db_path=db_path)
        elif args.command == "disable":
            disable_reminder(ReminderKey.parse(args.audience, args.horizon), db_path=db_path)
        elif args.command == "delete":
            if delete_setting(args.name, db_path=db_path):
                logger.info("Setting %s deleted.", args.name)
            else:
                logger.info("Setting %s was not set.", args.name)
    except InvalidDocumentUrlError as e:
        for problem in e.problems:
            logger.error(problem)
        sys.exit(1)
    except TaskminderError as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
