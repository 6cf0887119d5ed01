"""Stored reminder settings: staff roster, recipients and destination documents.

The settings live in the properties table as JSON, one property per
setting. `load_reminder_config` turns them into an immutable
ReminderConfig snapshot that is handed to the scan and dispatch stages.
"""

import json
import logging
from collections.abc import Callable
from pathlib import Path

from src import database
from src.docs_client import GOOGLE_DOC_MIME_TYPE, extract_doc_id
from src.exceptions import InvalidDocumentUrlError, ReminderConfigError
from src.models import ALL_KEYS, IndividualTarget, ReminderConfig, ReminderKey, StaffMember

logger = logging.getLogger(__name__)

STAFF_KEY = "STAFF_DATA"
GENERAL_REMINDER_EMAILS_KEY = "GENERAL_REMINDER_EMAILS"
DESIGNATED_STAFF_KEY = "DESIG_STAFF"
GENERAL_DOC_URLS_KEY = "GENERAL_REM_DOC_URL"
STAFF_BASED_DATA_KEY = "STAFFBASED_REM_DATA"
ENABLED_REMINDERS_KEY = "ENABLED_REMINDERS"

SETTING_KEYS = {
    "staff": STAFF_KEY,
    "general_reminder_emails": GENERAL_REMINDER_EMAILS_KEY,
    "designated_staff": DESIGNATED_STAFF_KEY,
    "general_doc_urls": GENERAL_DOC_URLS_KEY,
    "staff_based_data": STAFF_BASED_DATA_KEY,
    "enabled_reminders": ENABLED_REMINDERS_KEY,
}


def _load_json(key: str, default, db_path: Path | None):
    raw = database.get_property(key, db_path=db_path)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Setting %s is not valid JSON — treated as unset", key)
        return default


def _members(raw) -> list[StaffMember]:
    members = []
    for entry in raw if isinstance(raw, list) else []:
        if isinstance(entry, dict) and entry.get("email"):
            members.append(StaffMember(name=str(entry.get("name", "")), email=str(entry["email"])))
    return members


def load_reminder_config(db_path: Path | None = None) -> ReminderConfig:
    """Read every reminder setting into one snapshot. Malformed parts are skipped."""
    staff = _members(_load_json(STAFF_KEY, [], db_path))
    names_by_email = {m.email: m.name for m in staff}

    emails = _load_json(GENERAL_REMINDER_EMAILS_KEY, [], db_path)
    broadcast = [
        StaffMember(name=names_by_email.get(e, ""), email=e)
        for e in (emails if isinstance(emails, list) else [])
        if isinstance(e, str) and e
    ]

    urls = _load_json(GENERAL_DOC_URLS_KEY, {}, db_path)
    if not isinstance(urls, dict):
        urls = {}

    individuals = []
    staff_based = _load_json(STAFF_BASED_DATA_KEY, None, db_path)
    if isinstance(staff_based, list):
        for entry in staff_based:
            if not isinstance(entry, dict) or len(entry) != 1:
                continue
            name, info = next(iter(entry.items()))
            if not isinstance(info, dict) or not info.get("email"):
                continue
            individuals.append(IndividualTarget(
                name=name,
                email=info["email"],
                today_doc_url=info.get("todayReminderUrl") or None,
                week_doc_url=info.get("nextWeekReminderUrl") or None,
            ))
    else:
        # Designated but no documents set yet: each one gets a "not set" notice
        for member in _members(_load_json(DESIGNATED_STAFF_KEY, [], db_path)):
            individuals.append(IndividualTarget(name=member.name, email=member.email))

    return ReminderConfig(
        staff=tuple(staff),
        broadcast_recipients=tuple(broadcast),
        broadcast_today_doc_url=urls.get("generalTodayReminderDocUrl") or None,
        broadcast_week_doc_url=urls.get("generalWeekReminderDocUrl") or None,
        individuals=tuple(individuals),
    )


def store_staff(members: list[StaffMember], db_path: Path | None = None) -> None:
    """Replace the staff roster. Names must be non-empty and unique (case-insensitive)."""
    seen: set[str] = set()
    for member in members:
        name = member.name.strip()
        if not name:
            raise ReminderConfigError(f"Missing name for {member.email}")
        if name.lower() in seen:
            raise ReminderConfigError(f'The name "{name}" is already in use.')
        seen.add(name.lower())
    payload = [{"name": m.name.strip(), "email": m.email} for m in members]
    database.set_property(STAFF_KEY, json.dumps(payload, ensure_ascii=False), db_path=db_path)
    logger.info("Stored %d staff member(s)", len(payload))


def store_broadcast_recipients(emails: list[str], db_path: Path | None = None) -> None:
    unique = list(dict.fromkeys(e.strip() for e in emails if e.strip()))
    database.set_property(GENERAL_REMINDER_EMAILS_KEY, json.dumps(unique), db_path=db_path)
    logger.info("Stored %d general reminder recipient(s)", len(unique))


def store_designated_staff(members: list[StaffMember], db_path: Path | None = None) -> None:
    payload = [{"name": m.name, "email": m.email} for m in members]
    database.set_property(DESIGNATED_STAFF_KEY, json.dumps(payload, ensure_ascii=False), db_path=db_path)
    logger.info("Stored %d designated staff member(s)", len(payload))


class _UrlValidator:
    """Collects problems across every URL of one save request."""

    def __init__(self, mime_type_of: Callable[[str], str | None]):
        self.mime_type_of = mime_type_of
        self.problems: list[str] = []
        self.seen: set[str] = set()

    def check(self, url: str | None, label: str) -> str | None:
        if not url or not url.strip():
            return None
        url = url.strip()
        doc_id = extract_doc_id(url)
        if not doc_id or self.mime_type_of(doc_id) != GOOGLE_DOC_MIME_TYPE:
            self.problems.append(f"URL for {label} is not for Google Doc")
            return None
        if url in self.seen:
            self.problems.append(f"Duplicate URL found for {label}")
            return None
        self.seen.add(url)
        return url


def store_document_urls(
    general_today: str | None,
    general_week: str | None,
    staff_urls: dict[str, tuple[str | None, str | None]] | None,
    mime_type_of: Callable[[str], str | None],
    db_path: Path | None = None,
) -> None:
    """Validate and store the destination documents.

    staff_urls maps a designated staff name to (today URL, next-week URL).
    Every URL must point to an existing Google Doc and no URL may be used
    twice; otherwise nothing is stored and InvalidDocumentUrlError lists
    the problems.
    """
    validator = _UrlValidator(mime_type_of)
    general = {
        "generalTodayReminderDocUrl": validator.check(general_today, "Today's General Reminder"),
        "generalWeekReminderDocUrl": validator.check(general_week, "Next Week's General Reminder"),
    }

    staff_based = None
    if staff_urls is not None:
        emails = {
            m.name: m.email
            for m in _members(_load_json(DESIGNATED_STAFF_KEY, [], db_path))
        }
        staff_based = []
        for name, (today_url, week_url) in staff_urls.items():
            staff_based.append({name: {
                "email": emails.get(name, ""),
                "todayReminderUrl": validator.check(today_url, f"Today's Reminder for {name}"),
                "nextWeekReminderUrl": validator.check(week_url, f"Next Week's Reminder for {name}"),
            }})

    if validator.problems:
        raise InvalidDocumentUrlError(validator.problems)

    database.set_property(GENERAL_DOC_URLS_KEY, json.dumps(general), db_path=db_path)
    if staff_based is not None:
        database.set_property(
            STAFF_BASED_DATA_KEY, json.dumps(staff_based, ensure_ascii=False), db_path=db_path,
        )
    logger.info("URLs of Google Docs for reminders were successfully set.")


def delete_setting(name: str, db_path: Path | None = None) -> bool:
    """Reset one setting by its short name. Returns False if it was not set."""
    try:
        key = SETTING_KEYS[name]
    except KeyError:
        raise ReminderConfigError(f"Unknown setting: {name}") from None
    return database.delete_property(key, db_path=db_path)


def load_enabled_keys(db_path: Path | None = None) -> list[ReminderKey]:
    """Reminder keys the recurring schedule runs, in ALL_KEYS order.

    Nothing runs on schedule until a reminder is enabled.
    """
    raw = _load_json(ENABLED_REMINDERS_KEY, [], db_path)
    slugs = {s for s in raw if isinstance(s, str)} if isinstance(raw, list) else set()
    unknown = slugs - {key.slug for key in ALL_KEYS}
    if unknown:
        logger.warning("Ignoring unknown enabled reminders: %s", ", ".join(sorted(unknown)))
    return [key for key in ALL_KEYS if key.slug in slugs]


def _store_enabled_keys(keys: list[ReminderKey], db_path: Path | None) -> None:
    database.set_property(
        ENABLED_REMINDERS_KEY, json.dumps([key.slug for key in keys]), db_path=db_path,
    )


def enable_reminder(key: ReminderKey, db_path: Path | None = None) -> bool:
    """Put a reminder on the recurring schedule. Returns False if it already was."""
    enabled = load_enabled_keys(db_path)
    if key in enabled:
        logger.info("Reminder %s is already enabled.", key.slug)
        return False
    _store_enabled_keys(enabled + [key], db_path)
    logger.info("Reminder %s was successfully enabled.", key.slug)
    return True


def disable_reminder(key: ReminderKey, db_path: Path | None = None) -> bool:
    """Take a reminder off the recurring schedule. Returns False if it was not on it."""
    enabled = load_enabled_keys(db_path)
    if key not in enabled:
        logger.info("Reminder %s was not enabled.", key.slug)
        return False
    _store_enabled_keys([k for k in enabled if k != key], db_path)
    logger.info("Reminder %s was successfully disabled.", key.slug)
    return True
