"""Schedule and cancel the one-time trigger that resumes a suspended scan."""

import json
import logging
from pathlib import Path

from src import database
from src.models import ReminderKey

logger = logging.getLogger(__name__)

TAG_PREFIX = "remind:"
SIDE_RECORD_PREFIX = "trigger:"


def function_tag_for(key: ReminderKey) -> str:
    return f"{TAG_PREFIX}{key.audience.value}:{key.horizon.value}"


def key_from_tag(function_tag: str) -> ReminderKey | None:
    """Inverse of function_tag_for; None for tags this module does not own."""
    if not function_tag.startswith(TAG_PREFIX):
        return None
    try:
        audience, horizon = function_tag[len(TAG_PREFIX):].split(":", 1)
        return ReminderKey.parse(audience, horizon)
    except ValueError:
        return None


def side_record_key(trigger_id: str) -> str:
    return f"{SIDE_RECORD_PREFIX}{trigger_id}"


def read_owner(trigger_id: str, db_path: Path | None = None) -> ReminderKey | None:
    """Return the key recorded as owner of a trigger, if any."""
    raw = database.get_property(side_record_key(trigger_id), db_path=db_path)
    if raw is None:
        return None
    try:
        info = json.loads(raw)
        return ReminderKey.parse(info["audience"], info["horizon"])
    except (ValueError, KeyError, TypeError):
        logger.warning("Malformed side record for trigger %s", trigger_id)
        return None


def forget_trigger(trigger_id: str, db_path: Path | None = None) -> None:
    """Delete a trigger together with its side record."""
    database.cancel_trigger(trigger_id, db_path=db_path)
    database.delete_property(side_record_key(trigger_id), db_path=db_path)


class ContinuationScheduler:
    """Arranges one future re-invocation per reminder key.

    Each trigger is tagged with its owning key through a side record so
    cleanup removes exactly the triggers it owns and leaves unrelated
    scheduled work alone.
    """

    def __init__(self, delay_seconds: float, db_path: Path | None = None):
        self.delay_seconds = delay_seconds
        self.db_path = db_path

    def schedule(self, key: ReminderKey) -> str:
        """Replace any pending continuation of key with a fresh one."""
        self.cancel_owned(key)
        tag = function_tag_for(key)
        trigger_id = database.schedule_trigger(tag, self.delay_seconds, db_path=self.db_path)
        database.set_property(
            side_record_key(trigger_id),
            json.dumps({"audience": key.audience.value, "horizon": key.horizon.value}),
            db_path=self.db_path,
        )
        logger.info("Continuation %s set for %s in %ss", trigger_id, key.slug, self.delay_seconds)
        return trigger_id

    def cancel_owned(self, key: ReminderKey) -> int:
        """Delete every active trigger owned by key. Returns how many."""
        removed = 0
        for trigger in database.list_triggers(db_path=self.db_path):
            trigger_id = trigger["trigger_id"]
            if read_owner(trigger_id, db_path=self.db_path) == key:
                forget_trigger(trigger_id, db_path=self.db_path)
                removed += 1
                logger.info("Deleted continuation %s for %s", trigger_id, key.slug)
        return removed

    def pending_for(self, key: ReminderKey) -> list[str]:
        return [
            t["trigger_id"] for t in database.list_triggers(db_path=self.db_path)
            if read_owner(t["trigger_id"], db_path=self.db_path) == key
        ]
