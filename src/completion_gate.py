"""Per-key PENDING / DONE flag read by dispatch before it proceeds."""

import logging
from pathlib import Path

from src import database
from src.models import CompletionStatus, ReminderKey

logger = logging.getLogger(__name__)

KEY_PREFIX = "completion:"


def gate_property_key(key: ReminderKey) -> str:
    return f"{KEY_PREFIX}{key.slug}"


class CompletionGate:
    """Tri-state gate: PENDING, DONE, or absent (None)."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    def set_pending(self, key: ReminderKey) -> None:
        self._set(key, CompletionStatus.PENDING)

    def set_done(self, key: ReminderKey) -> None:
        self._set(key, CompletionStatus.DONE)

    def read(self, key: ReminderKey) -> CompletionStatus | None:
        raw = database.get_property(gate_property_key(key), db_path=self.db_path)
        if raw is None:
            return None
        try:
            return CompletionStatus(raw)
        except ValueError:
            logger.warning("Unknown completion status %r for %s — treated as absent", raw, key.slug)
            return None

    def clear(self, key: ReminderKey) -> None:
        database.delete_property(gate_property_key(key), db_path=self.db_path)
        logger.info("Completion gate cleared for %s", key.slug)

    def _set(self, key: ReminderKey, status: CompletionStatus) -> None:
        database.set_property(gate_property_key(key), status.value, db_path=self.db_path)
        logger.info("Completion gate for %s -> %s", key.slug, status.value)
