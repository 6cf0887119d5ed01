"""Orchestrator for reminder scan/dispatch runs, continuations and maintenance jobs."""

import argparse
import logging
import sys
import time
import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime
from pathlib import Path

from config import LOCAL_TZ, settings
from src import continuation, database, gcs_storage
from src.checkpoint import CheckpointStore
from src.completion_gate import CompletionGate
from src.completion_sync import sync_completion_status
from src.continuation import ContinuationScheduler
from src.dispatch import DispatchFanout
from src.docs_client import GoogleDocsWriter
from src.exceptions import TaskminderError
from src.index_builder import update_index_sheets
from src.models import ALL_KEYS, DispatchOutcome, ReminderKey
from src.notifier import GmailNotifier
from src.reminder_config import load_reminder_config
from src.scan_engine import ScanEngine
from src.sheets_client import SpreadsheetSource

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def _local_today() -> date:
    return datetime.now(LOCAL_TZ).date()


def build_scan_engine(source, db_path: Path,
                      clock: Callable[[], float] = time.monotonic) -> ScanEngine:
    return ScanEngine(
        source=source,
        checkpoints=CheckpointStore(db_path),
        gate=CompletionGate(db_path),
        continuations=ContinuationScheduler(settings.continuation_delay_seconds, db_path),
        reserved_names=(settings.ongoing_index_sheet_name, settings.completed_index_sheet_name),
        time_budget_seconds=settings.scan_time_budget_seconds,
        clock=clock,
    )


def run_reminder(
    key: ReminderKey,
    db_path: Path | None = None,
    today: date | None = None,
    source=None,
    writer=None,
    mailer=None,
    clock: Callable[[], float] = time.monotonic,
) -> DispatchOutcome:
    """Run one reminder invocation: scan (or resume), then dispatch.

    Steps:
        1. Scan task sheets, which may suspend and schedule its own continuation
        2. Dispatch, which renders and mails only once the gate reads DONE
    """
    db_path = db_path or settings.db_path
    today = today or _local_today()
    source = source or SpreadsheetSource()
    run_id = uuid.uuid4().hex[:12]
    database.start_run(run_id, f"remind:{key.slug}", db_path=db_path)

    try:
        # 1. Scan
        logger.info("Step 1/2: Scanning task sheets for %s...", key.slug)
        database.log_step(run_id, "1. Scan sheets", "running", db_path=db_path)
        try:
            result = build_scan_engine(source, db_path, clock).scan(key, today)
        except TaskminderError as e:
            logger.error("Scan failed: %s", e)
            database.log_step(run_id, "1. Scan sheets", "failed", str(e), db_path=db_path)
            raise
        if result.suspended:
            database.log_step(
                run_id, "1. Scan sheets", "suspended",
                "Time budget reached; continuation scheduled", db_path=db_path,
            )
        else:
            msg = f"Collected {len(result.reports)} sheet(s) with reminders"
            logger.info(msg)
            database.log_step(run_id, "1. Scan sheets", "success", msg, db_path=db_path)

        # 2. Dispatch
        logger.info("Step 2/2: Dispatching %s...", key.slug)
        database.log_step(run_id, "2. Dispatch", "running", db_path=db_path)
        fanout = DispatchFanout(
            gate=CompletionGate(db_path),
            writer=writer or GoogleDocsWriter(),
            mailer=mailer or GmailNotifier(),
            config=load_reminder_config(db_path),
            spreadsheet_url=source.url,
            today=today,
            admin_email=settings.admin_email,
        )
        outcome = fanout.dispatch(key, result.reports)
        if outcome.skipped:
            database.log_step(run_id, "2. Dispatch", "skipped", "Gate not DONE", db_path=db_path)
        else:
            sent = sum(1 for d in outcome.deliveries if d.success)
            msg = f"{sent} delivered, {len(outcome.deliveries) - sent} failed"
            database.log_step(run_id, "2. Dispatch", "success", msg, db_path=db_path)

        database.finish_run(run_id, "success", db_path=db_path)
        return outcome

    except Exception as e:
        if not isinstance(e, TaskminderError):
            database.log_step(run_id, "Unexpected error", "failed", str(e), db_path=db_path)
        database.finish_run(run_id, "failed", str(e), db_path=db_path)
        raise
    finally:
        gcs_storage.upload_db(db_path)


def run_due_continuations(now: datetime | None = None, db_path: Path | None = None,
                          **collaborators) -> list[ReminderKey]:
    """Fire every due continuation trigger once. Returns the keys re-invoked.

    A trigger is deleted before its run, so a failing run is not retried in
    a loop. Reminder triggers without a matching owner record are dropped;
    triggers with other tags are left alone.
    """
    db_path = db_path or settings.db_path
    now = now or datetime.now(UTC)
    resumed = []
    for trigger in database.due_triggers(now, db_path=db_path):
        tagged = continuation.key_from_tag(trigger["function_tag"])
        if tagged is None:
            continue
        trigger_id = trigger["trigger_id"]
        owner = continuation.read_owner(trigger_id, db_path=db_path)
        continuation.forget_trigger(trigger_id, db_path=db_path)
        if owner != tagged:
            logger.warning("Dropping stray trigger %s (%s)", trigger_id, trigger["function_tag"])
            continue

        logger.info("Continuation %s: resuming %s", trigger_id, owner.slug)
        try:
            run_reminder(owner, db_path=db_path, **collaborators)
        except TaskminderError as e:
            logger.error("Continuation for %s failed: %s", owner.slug, e)
        resumed.append(owner)
    return resumed


def run_completion_sync(db_path: Path | None = None, source=None, reader=None) -> int:
    """Copy "C" marks from today's documents into the sheets."""
    db_path = db_path or settings.db_path
    run_id = uuid.uuid4().hex[:12]
    database.start_run(run_id, "sync-completion", db_path=db_path)
    try:
        updated = sync_completion_status(
            reader or GoogleDocsWriter(),
            source or SpreadsheetSource(),
            load_reminder_config(db_path),
        )
        database.log_step(run_id, "Sync completion", "success",
                          f"{updated} row(s) marked complete", db_path=db_path)
        database.finish_run(run_id, "success", db_path=db_path)
        return updated
    except Exception as e:
        database.log_step(run_id, "Sync completion", "failed", str(e), db_path=db_path)
        database.finish_run(run_id, "failed", str(e), db_path=db_path)
        raise


def run_index_update(source=None) -> None:
    update_index_sheets(
        source or SpreadsheetSource(),
        settings.ongoing_index_sheet_name,
        settings.completed_index_sheet_name,
        settings.completion_flag,
    )


def reset_all_state(db_path: Path | None = None) -> tuple[int, int]:
    """Wipe every stored property and trigger.

    This is the manual recovery for a gate stuck in PENDING with no
    checkpoint and no continuation. Reminder settings are wiped too.
    Returns (properties deleted, triggers deleted).
    """
    db_path = db_path or settings.db_path
    props = database.delete_all_properties(db_path=db_path)
    triggers = database.delete_all_triggers(db_path=db_path)
    logger.info("All stored settings, checkpoints and triggers have been reset.")
    return props, triggers


def key_status(key: ReminderKey, db_path: Path | None = None) -> dict:
    """Snapshot of the persisted state of one key."""
    db_path = db_path or settings.db_path
    gate = CompletionGate(db_path).read(key)
    checkpoint = CheckpointStore(db_path).load(key)
    return {
        "key": key.slug,
        "gate": gate.value if gate else None,
        "checkpoint": (
            {"resume_cursor": checkpoint.resume_cursor,
             "reports": len(checkpoint.accumulated)}
            if checkpoint else None
        ),
        "continuations": ContinuationScheduler(0, db_path).pending_for(key),
    }


def main() -> None:
    """Entry point for the reminder CLI."""
    parser = argparse.ArgumentParser(description="Task sheet reminders")
    sub = parser.add_subparsers(dest="command", required=True)
    run = sub.add_parser("run", help="Scan and dispatch one reminder")
    run.add_argument("audience", choices=["broadcast", "individual"])
    run.add_argument("horizon", choices=["today", "week"])
    sub.add_parser("continuations", help="Run due continuation triggers")
    sub.add_parser("sync-completion", help="Copy completion marks back to the sheets")
    sub.add_parser("update-index", help="Rebuild the index sheets")
    sub.add_parser("status", help="Show checkpoint and gate state")
    sub.add_parser("reset", help="Delete all stored state and triggers")
    args = parser.parse_args()

    try:
        if args.command == "run":
            run_reminder(ReminderKey.parse(args.audience, args.horizon))
        elif args.command == "continuations":
            run_due_continuations()
        elif args.command == "sync-completion":
            run_completion_sync()
        elif args.command == "update-index":
            run_index_update()
        elif args.command == "status":
            for key in ALL_KEYS:
                print(key_status(key))
        elif args.command == "reset":
            reset_all_state()
    except TaskminderError as e:
        logger.error("Run failed: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Run interrupted.")
        sys.exit(0)


if __name__ == "__main__":
    main()
