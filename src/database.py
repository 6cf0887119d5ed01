"""SQLite database for the key-value properties, continuation triggers and run logs."""

import json
import logging
import sqlite3
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("output/taskminder.db")


def _get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    """Get a database connection, creating the DB and tables if needed."""
    path = db_path or DEFAULT_DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    _create_tables(conn)
    return conn


def _create_tables(conn: sqlite3.Connection) -> None:
    """Create tables if they don't exist."""
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS properties (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS triggers (
            trigger_id TEXT PRIMARY KEY,
            function_tag TEXT NOT NULL,
            run_at TEXT NOT NULL,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS pipeline_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_id TEXT NOT NULL,
            kind TEXT NOT NULL DEFAULT '',
            started_at TEXT NOT NULL,
            finished_at TEXT,
            status TEXT NOT NULL DEFAULT 'running',
            current_step TEXT,
            error_message TEXT,
            steps_log TEXT NOT NULL DEFAULT '[]'
        );

        CREATE INDEX IF NOT EXISTS idx_triggers_run_at ON triggers(run_at);
        CREATE INDEX IF NOT EXISTS idx_runs_started ON pipeline_runs(started_at);
    """)
    conn.commit()


# --- Properties (key-value store) ---

def get_property(key: str, db_path: Path | None = None) -> str | None:
    """Return the stored string for key, or None."""
    conn = _get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT value FROM properties WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None
    finally:
        conn.close()


def set_property(key: str, value: str, db_path: Path | None = None) -> None:
    """Insert or overwrite a property."""
    conn = _get_connection(db_path)
    try:
        conn.execute(
            """INSERT INTO properties (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET
               value=excluded.value,
               updated_at=excluded.updated_at""",
            (key, value, datetime.now(UTC).isoformat()),
        )
        conn.commit()
    finally:
        conn.close()


def delete_property(key: str, db_path: Path | None = None) -> bool:
    """Delete a property. Returns True if a row was deleted."""
    conn = _get_connection(db_path)
    try:
        cursor = conn.execute("DELETE FROM properties WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def list_property_keys(prefix: str = "", db_path: Path | None = None) -> list[str]:
    """List property keys, optionally restricted to a prefix."""
    conn = _get_connection(db_path)
    try:
        rows = conn.execute(
            "SELECT key FROM properties WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return [r["key"] for r in rows]
    finally:
        conn.close()


def delete_all_properties(db_path: Path | None = None) -> int:
    """Wipe the whole key-value store. Returns number of rows deleted."""
    conn = _get_connection(db_path)
    try:
        cursor = conn.execute("DELETE FROM properties")
        conn.commit()
        logger.info("Deleted %d properties", cursor.rowcount)
        return cursor.rowcount
    finally:
        conn.close()


# --- One-time triggers ---

def schedule_trigger(function_tag: str, delay_seconds: float,
                     db_path: Path | None = None) -> str:
    """Schedule function_tag to run once after delay_seconds. Returns the trigger id."""
    trigger_id = uuid.uuid4().hex
    now = datetime.now(UTC)
    run_at = now + timedelta(seconds=delay_seconds)
    conn = _get_connection(db_path)
    try:
        conn.execute(
            "INSERT INTO triggers (trigger_id, function_tag, run_at, created_at) "
            "VALUES (?, ?, ?, ?)",
            (trigger_id, function_tag, run_at.isoformat(), now.isoformat()),
        )
        conn.commit()
        logger.info("Scheduled trigger %s for %s at %s", trigger_id, function_tag, run_at.isoformat())
        return trigger_id
    finally:
        conn.close()


def cancel_trigger(trigger_id: str, db_path: Path | None = None) -> bool:
    """Delete a trigger. Returns True if it existed."""
    conn = _get_connection(db_path)
    try:
        cursor = conn.execute("DELETE FROM triggers WHERE trigger_id = ?", (trigger_id,))
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def list_triggers(db_path: Path | None = None) -> list[dict]:
    """List all active triggers, earliest first."""
    conn = _get_connection(db_path)
    try:
        rows = conn.execute(
            "SELECT * FROM triggers ORDER BY run_at, created_at"
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def due_triggers(now: datetime | None = None, db_path: Path | None = None) -> list[dict]:
    """List triggers whose run_at is at or before now."""
    now = now or datetime.now(UTC)
    return [
        t for t in list_triggers(db_path=db_path)
        if datetime.fromisoformat(t["run_at"]) <= now
    ]


def delete_all_triggers(db_path: Path | None = None) -> int:
    """Delete every trigger. Returns number of rows deleted."""
    conn = _get_connection(db_path)
    try:
        cursor = conn.execute("DELETE FROM triggers")
        conn.commit()
        logger.info("Deleted %d triggers", cursor.rowcount)
        return cursor.rowcount
    finally:
        conn.close()


# --- Pipeline Run Logging ---

def start_run(run_id: str, kind: str = "", db_path: Path | None = None) -> None:
    """Record the start of a pipeline run."""
    conn = _get_connection(db_path)
    try:
        conn.execute(
            "INSERT INTO pipeline_runs (run_id, kind, started_at, status, steps_log) "
            "VALUES (?, ?, ?, 'running', '[]')",
            (run_id, kind, datetime.now(UTC).isoformat()),
        )
        conn.commit()
    finally:
        conn.close()


def log_step(run_id: str, step: str, status: str, message: str = "",
             db_path: Path | None = None) -> None:
    """Log a pipeline step to the current run."""
    conn = _get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT steps_log FROM pipeline_runs WHERE run_id = ?", (run_id,)
        ).fetchone()
        if not row:
            return

        steps = json.loads(row["steps_log"])
        steps.append({
            "step": step,
            "status": status,
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
        })

        conn.execute(
            "UPDATE pipeline_runs SET steps_log = ?, current_step = ? WHERE run_id = ?",
            (json.dumps(steps), step, run_id),
        )
        conn.commit()
    finally:
        conn.close()


def finish_run(run_id: str, status: str, error_message: str = "",
               db_path: Path | None = None) -> None:
    """Mark a pipeline run as finished."""
    conn = _get_connection(db_path)
    try:
        conn.execute(
            "UPDATE pipeline_runs SET status = ?, finished_at = ?, error_message = ? "
            "WHERE run_id = ?",
            (status, datetime.now(UTC).isoformat(), error_message, run_id),
        )
        conn.commit()
    finally:
        conn.close()


def list_runs(limit: int = 20, db_path: Path | None = None) -> list[dict]:
    """List recent pipeline runs (most recent first)."""
    conn = _get_connection(db_path)
    try:
        rows = conn.execute(
            "SELECT * FROM pipeline_runs ORDER BY started_at DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        result = []
        for r in rows:
            d = dict(r)
            d["steps_log"] = json.loads(d["steps_log"])
            result.append(d)
        return result
    finally:
        conn.close()


def get_run(run_id: str, db_path: Path | None = None) -> dict | None:
    """Get a single pipeline run by run_id."""
    conn = _get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM pipeline_runs WHERE run_id = ?", (run_id,)
        ).fetchone()
        if not row:
            return None
        d = dict(row)
        d["steps_log"] = json.loads(d["steps_log"])
        return d
    finally:
        conn.close()
