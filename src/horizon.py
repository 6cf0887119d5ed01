"""Due-date rules for the TODAY and WEEK reminder horizons."""

import logging
import re
from datetime import date, datetime, timedelta

from src.models import Horizon

logger = logging.getLogger(__name__)

BUSINESS_DAYS_AHEAD = 5

# Google Sheets serial dates count days from this epoch
SHEETS_EPOCH = date(1899, 12, 30)

_SLASH_DATE = re.compile(r"^\s*(\d{2,4})/(\d{1,2})/(\d{1,2})")


def next_business_days(today: date, count: int = BUSINESS_DAYS_AHEAD) -> list[date]:
    """Return the next `count` weekdays after today, skipping Saturday and Sunday."""
    days: list[date] = []
    current = today
    while len(days) < count:
        current += timedelta(days=1)
        while current.weekday() >= 5:
            current += timedelta(days=1)
        days.append(current)
    return days


def is_reminder_due(due: date, today: date, horizon: Horizon, complete: bool) -> bool:
    """Decide whether a task row belongs in a reminder for the given horizon.

    TODAY: not complete and due on or before today.
    WEEK: not complete and either overdue/due today or due on exactly one
    of the next five business days.
    """
    if complete:
        return False
    if due <= today:
        return True
    if horizon == Horizon.WEEK:
        return due in next_business_days(today)
    return False


def format_english_date(d: date) -> str:
    """Format a date like "Friday, May 5, 2023"."""
    return f"{d.strftime('%A')}, {d.strftime('%B')} {d.day}, {d.year}"


def parse_cell_date(value) -> date | None:
    """Convert a Sheets cell value to a calendar date.

    Accepts serial numbers (UNFORMATTED_VALUE rendering), ISO strings and
    "yy/m/d" or "yyyy/m/d" strings. Time-of-day is dropped. Returns None for
    empty cells and for values that cannot be read as a date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return SHEETS_EPOCH + timedelta(days=int(value))

    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    match = _SLASH_DATE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        if year < 100:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            pass
    logger.warning("Unreadable date cell %r — row skipped", value)
    return None


def is_checked(value) -> bool:
    """Interpret a checkbox cell (bool, or its TRUE/FALSE string rendering)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().upper() == "TRUE"
    return False
