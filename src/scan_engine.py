"""Resumable scan of the task sheets for reminder-worthy rows."""

import logging
import time
from collections.abc import Callable, Iterable
from datetime import date

from src.checkpoint import CheckpointStore
from src.completion_gate import CompletionGate
from src.continuation import ContinuationScheduler
from src.horizon import is_checked, is_reminder_due, parse_cell_date
from src.models import (
    AggregationState,
    Horizon,
    ReminderKey,
    ScanResult,
    ScanStatus,
    SheetInfo,
    SourceReport,
    WorkItem,
)

logger = logging.getLogger(__name__)

# Zero-based column positions within a task sheet row
COL_ITEM = 1
COL_SUMMARY = 2
COL_DATE = 3
COL_STAFF = 4
COL_COMPLETE = 5
ROW_WIDTH = 6


def cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def last_populated_row(rows: list[list], column: int = COL_ITEM) -> int:
    """Return the 1-based number of the last row with a value in column (0 if none)."""
    for index in range(len(rows) - 1, -1, -1):
        row = rows[index]
        if len(row) > column and cell_text(row[column]).strip():
            return index + 1
    return 0


def extract_work_items(rows: list[list], horizon: Horizon, today: date) -> list[WorkItem]:
    """Pick the qualifying rows of one sheet, in row order. Row 1 is the header."""
    items: list[WorkItem] = []
    last_row = last_populated_row(rows)
    for raw in rows[1:last_row]:
        row = list(raw) + [""] * (ROW_WIDTH - len(raw))
        due = parse_cell_date(row[COL_DATE])
        if due is None:
            continue
        if not is_reminder_due(due, today, horizon, is_checked(row[COL_COMPLETE])):
            continue
        items.append(WorkItem(
            label=cell_text(row[COL_ITEM]),
            note=cell_text(row[COL_SUMMARY]),
            due_date=due,
            assignee=cell_text(row[COL_STAFF]),
        ))
    return items


class ScanEngine:
    """Walks the workbook tabs in order, checkpointing when the time budget runs out.

    `source` needs `list_sheets()`, `read_rows(title)` and `sheet_url(sheet_id)`
    (see SpreadsheetSource). `clock` returns seconds and only differences
    between two readings are used.
    """

    def __init__(
        self,
        source,
        checkpoints: CheckpointStore,
        gate: CompletionGate,
        continuations: ContinuationScheduler,
        reserved_names: Iterable[str] = (),
        time_budget_seconds: float = 270.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.checkpoints = checkpoints
        self.gate = gate
        self.continuations = continuations
        self.reserved_names = frozenset(reserved_names)
        self.time_budget_seconds = time_budget_seconds
        self.clock = clock

    def scan(self, key: ReminderKey, today: date) -> ScanResult:
        """Scan from the stored cursor (or from the first sheet) for key.

        Returns SUSPENDED after saving a checkpoint and scheduling a
        continuation when the budget is exceeded; otherwise clears the
        checkpoint, cancels owned continuations, marks the gate DONE and
        returns the collected reports.
        """
        started = self.clock()
        state = self.checkpoints.load(key)
        if state is not None:
            logger.info(
                "Resuming scan for %s at sheet %d with %d stored report(s)",
                key.slug, state.resume_cursor, len(state.accumulated),
            )
        else:
            logger.info("Starting scan for %s", key.slug)
            state = AggregationState()

        # Set on every call so a stale DONE from an earlier cycle is never observed
        self.gate.set_pending(key)

        sheets = self.source.list_sheets()
        accumulated = list(state.accumulated)
        seen = {report.source_name for report in accumulated}

        for index in range(state.resume_cursor, len(sheets)):
            elapsed = self.clock() - started
            if elapsed > self.time_budget_seconds:
                self.checkpoints.save(key, AggregationState(accumulated, index))
                self.continuations.schedule(key)
                logger.info(
                    "Time budget exceeded for %s after %.1fs — suspended before sheet %d/%d",
                    key.slug, elapsed, index + 1, len(sheets),
                )
                return ScanResult(ScanStatus.SUSPENDED)

            sheet = sheets[index]
            if sheet.title in self.reserved_names:
                continue
            report = self._scan_sheet(sheet, key.horizon, today)
            if report is None:
                continue
            if report.source_name in seen:
                logger.warning("Sheet %r already collected for %s — skipped", sheet.title, key.slug)
                continue
            accumulated.append(report)
            seen.add(report.source_name)

        self.checkpoints.clear(key)
        self.continuations.cancel_owned(key)
        self.gate.set_done(key)
        logger.info(
            "Completed scan for %s: %d sheet(s) with reminders, %d item(s)",
            key.slug, len(accumulated), sum(len(r.items) for r in accumulated),
        )
        return ScanResult(ScanStatus.COMPLETED, accumulated)

    def _scan_sheet(self, sheet: SheetInfo, horizon: Horizon, today: date) -> SourceReport | None:
        logger.debug("Reading %s", sheet.title)
        rows = self.source.read_rows(sheet.title)
        if len(rows) <= 1:
            return None
        items = extract_work_items(rows, horizon, today)
        if not items:
            return None
        return SourceReport(
            source_name=sheet.title,
            source_url=self.source.sheet_url(sheet.sheet_id),
            items=items,
        )
