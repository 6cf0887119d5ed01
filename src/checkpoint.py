"""Persist partial scan results and the resume cursor per reminder key."""

import json
import logging
from pathlib import Path

from src import database
from src.models import AggregationState, ReminderKey

logger = logging.getLogger(__name__)

KEY_PREFIX = "checkpoint:"


def checkpoint_property_key(key: ReminderKey) -> str:
    return f"{KEY_PREFIX}{key.slug}"


class CheckpointStore:
    """Key-value persistence of AggregationState.

    A payload that cannot be decoded is reported as absent so the scan
    restarts from the first sheet instead of failing.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    def load(self, key: ReminderKey) -> AggregationState | None:
        raw = database.get_property(checkpoint_property_key(key), db_path=self.db_path)
        if raw is None:
            return None
        try:
            return AggregationState.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring corrupt checkpoint for %s: %s", key.slug, e)
            return None

    def save(self, key: ReminderKey, state: AggregationState) -> None:
        database.set_property(
            checkpoint_property_key(key),
            json.dumps(state.to_dict(), ensure_ascii=False),
            db_path=self.db_path,
        )
        logger.info(
            "Saved checkpoint for %s: %d sheet report(s), resume at %d",
            key.slug, len(state.accumulated), state.resume_cursor,
        )

    def clear(self, key: ReminderKey) -> None:
        if database.delete_property(checkpoint_property_key(key), db_path=self.db_path):
            logger.info("Cleared checkpoint for %s", key.slug)
