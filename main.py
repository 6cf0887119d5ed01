"""FastAPI app: cron endpoints, status API and the background scheduler."""

import asyncio
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from config import LOCAL_TZ, settings
from src import database, gcs_storage
from src.continuation import key_from_tag
from src.exceptions import TaskminderError
from src.models import ALL_KEYS, Horizon, ReminderKey
from src.reminder_config import (
    disable_reminder,
    enable_reminder,
    load_enabled_keys,
    load_reminder_config,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# One job at a time: scans of different keys share the workbook quota
_run_lock = asyncio.Lock()
_next_job_runs: dict[str, datetime] = {}


def _local_now() -> datetime:
    return datetime.now(LOCAL_TZ)


def _calc_next_daily(hour: int, now: datetime | None = None) -> datetime:
    """Next occurrence of hour:00 local time, strictly after now."""
    now = now or _local_now()
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return target


def _calc_next_weekly(weekday: int, hour: int, now: datetime | None = None) -> datetime:
    """Next occurrence of weekday at hour:00 local time, strictly after now."""
    now = now or _local_now()
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    target += timedelta(days=(weekday - now.weekday()) % 7)
    if target <= now:
        target += timedelta(days=7)
    return target


def _calc_next_runs(now: datetime | None = None) -> dict[str, datetime]:
    return {
        "today": _calc_next_daily(settings.today_reminder_hour, now),
        "week": _calc_next_weekly(settings.week_reminder_weekday, settings.week_reminder_hour, now),
        "sync-completion": _calc_next_daily(settings.completion_sync_hour, now),
    }


def _keys_for(horizon: Horizon) -> list[ReminderKey]:
    """Enabled reminder keys of one horizon."""
    keys = [key for key in load_enabled_keys(settings.db_path) if key.horizon == horizon]
    if not keys:
        logger.info("No %s reminders are enabled.", horizon.value)
    return keys


def _job_reminders(keys: list[ReminderKey]) -> None:
    from remind import run_reminder

    for key in keys:
        try:
            run_reminder(key)
        except TaskminderError as e:
            logger.error("Reminder %s failed: %s", key.slug, e)


def _job_continuations() -> None:
    from remind import run_due_continuations

    run_due_continuations()


def _job_sync_completion() -> None:
    from remind import run_completion_sync

    try:
        run_completion_sync()
    except TaskminderError as e:
        logger.error("Completion sync failed: %s", e)


def _job_update_index() -> None:
    from remind import run_index_update

    try:
        run_index_update()
    except TaskminderError as e:
        logger.error("Index update failed: %s", e)


async def _run_job(name: str, job: Callable[[], None]) -> None:
    """Run a blocking job in a worker thread, guarded by the run lock."""
    async with _run_lock:
        logger.info("Running job: %s", name)
        try:
            await asyncio.to_thread(job)
        except Exception as e:
            logger.error("Job %s crashed: %s", name, e, exc_info=True)


def _job_evening_maintenance() -> None:
    _job_sync_completion()
    _job_update_index()


def _recurring_job(name: str) -> Callable[[], None]:
    if name == "today":
        return lambda: _job_reminders(_keys_for(Horizon.TODAY))
    if name == "week":
        return lambda: _job_reminders(_keys_for(Horizon.WEEK))
    return _job_evening_maintenance


async def _scheduler() -> None:
    """Poll for due continuations and fire the recurring reminder jobs."""
    _next_job_runs.update(_calc_next_runs())
    for name, when in _next_job_runs.items():
        logger.info("Scheduler: next %s at %s", name, when.strftime("%Y-%m-%d %H:%M %Z"))

    while True:
        now = _local_now()
        for name, when in list(_next_job_runs.items()):
            if when <= now:
                _next_job_runs[name] = _calc_next_runs(now)[name]
                logger.info("Scheduler: triggering %s (next at %s)",
                            name, _next_job_runs[name].strftime("%Y-%m-%d %H:%M"))
                await _run_job(name, _recurring_job(name))

        due = database.due_triggers(datetime.now(UTC), db_path=settings.db_path)
        if any(key_from_tag(t["function_tag"]) for t in due):
            await _run_job("continuations", _job_continuations)

        await asyncio.sleep(settings.scheduler_poll_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Pull the state file and start the background scheduler."""
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    gcs_storage.download_db(settings.db_path)

    task = asyncio.create_task(_scheduler())
    logger.info("Background scheduler started (%s, poll every %ds).",
                settings.timezone, settings.scheduler_poll_seconds)
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(title="Taskminder", description="Task sheet reminder mailer", lifespan=lifespan)


def _check_secret(request: Request, secret: str) -> JSONResponse | None:
    """Return an error response unless the cron secret matches.

    Accepts the secret via query param or Authorization: Bearer header.
    """
    if not secret:
        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith("Bearer "):
            secret = auth_header[7:]

    if not settings.cron_secret:
        return JSONResponse(
            {"error": "CRON_SECRET not configured on server."},
            status_code=500,
        )
    if secret != settings.cron_secret:
        return JSONResponse({"error": "Invalid secret."}, status_code=403)
    return None


def _start_job(name: str, job: Callable[[], None]) -> JSONResponse:
    if _run_lock.locked():
        return JSONResponse(
            {"status": "already_running", "message": "Another job is in progress."},
            status_code=409,
        )
    logger.info("Cron trigger: starting %s.", name)
    asyncio.create_task(_run_job(name, job))
    return JSONResponse({"status": "started", "message": f"{name} started via cron."})


# --- Cron triggers ---

@app.api_route("/api/cron/remind/{audience}/{horizon}", methods=["GET", "POST"])
async def api_cron_remind(audience: str, horizon: str, request: Request, secret: str = Query("")):
    """External cron trigger for one reminder key."""
    if (error := _check_secret(request, secret)) is not None:
        return error
    try:
        key = ReminderKey.parse(audience, horizon)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=404)
    return _start_job(key.slug, lambda: _job_reminders([key]))


@app.api_route("/api/cron/continuations", methods=["GET", "POST"])
async def api_cron_continuations(request: Request, secret: str = Query("")):
    """Run any due continuation triggers now."""
    if (error := _check_secret(request, secret)) is not None:
        return error
    return _start_job("continuations", _job_continuations)


@app.api_route("/api/cron/sync-completion", methods=["GET", "POST"])
async def api_cron_sync_completion(request: Request, secret: str = Query("")):
    """Copy completion marks from today's documents into the sheets."""
    if (error := _check_secret(request, secret)) is not None:
        return error
    return _start_job("sync-completion", _job_sync_completion)


@app.api_route("/api/cron/update-index", methods=["GET", "POST"])
async def api_cron_update_index(request: Request, secret: str = Query("")):
    """Rebuild the ongoing and completed index sheets."""
    if (error := _check_secret(request, secret)) is not None:
        return error
    return _start_job("update-index", _job_update_index)


# --- State ---

@app.get("/api/status")
async def api_status():
    """Gate, checkpoint and continuation state of every reminder key."""
    from remind import key_status

    return JSONResponse({
        "keys": [key_status(key, db_path=settings.db_path) for key in ALL_KEYS],
        "triggers": database.list_triggers(db_path=settings.db_path),
        "running": _run_lock.locked(),
        "next_runs": {name: when.isoformat() for name, when in _next_job_runs.items()},
    })


@app.get("/api/runs")
async def api_runs(limit: int = Query(20)):
    """List pipeline runs."""
    return JSONResponse(database.list_runs(limit=limit, db_path=settings.db_path))


@app.get("/api/runs/{run_id}")
async def api_run(run_id: str):
    """Get a single pipeline run."""
    run = database.get_run(run_id, db_path=settings.db_path)
    if not run:
        return JSONResponse({"error": "Run not found"}, status_code=404)
    return JSONResponse(run)


@app.get("/api/reminder-config")
async def api_reminder_config():
    """Show the stored recipients and document URLs."""
    config = load_reminder_config(settings.db_path)
    return JSONResponse({
        "staff": [{"name": s.name, "email": s.email} for s in config.staff],
        "broadcast_recipients": [
            {"name": r.name, "email": r.email} for r in config.broadcast_recipients
        ],
        "broadcast_today_doc_url": config.broadcast_today_doc_url,
        "broadcast_week_doc_url": config.broadcast_week_doc_url,
        "individuals": [
            {
                "name": i.name,
                "email": i.email,
                "today_doc_url": i.today_doc_url,
                "week_doc_url": i.week_doc_url,
            }
            for i in config.individuals
        ],
    })


@app.get("/api/reminders")
async def api_reminders():
    """Which reminders the recurring schedule runs."""
    enabled = load_enabled_keys(settings.db_path)
    return JSONResponse({key.slug: key in enabled for key in ALL_KEYS})


@app.post("/api/reminders/{audience}/{horizon}/{action}")
async def api_toggle_reminder(audience: str, horizon: str, action: str,
                              request: Request, secret: str = Query("")):
    """Enable or disable one reminder on the recurring schedule."""
    if (error := _check_secret(request, secret)) is not None:
        return error
    try:
        key = ReminderKey.parse(audience, horizon)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=404)
    if action == "enable":
        changed = enable_reminder(key, settings.db_path)
    elif action == "disable":
        changed = disable_reminder(key, settings.db_path)
    else:
        return JSONResponse({"error": f"Unknown action: {action}"}, status_code=404)
    gcs_storage.upload_db(settings.db_path)
    return JSONResponse({"key": key.slug, "enabled": action == "enable", "changed": changed})


@app.post("/api/reset")
async def api_reset(request: Request, secret: str = Query("")):
    """Delete every stored setting, checkpoint, gate and trigger."""
    from remind import reset_all_state

    if (error := _check_secret(request, secret)) is not None:
        return error
    if _run_lock.locked():
        return JSONResponse(
            {"status": "already_running", "message": "Cannot reset while a job is running."},
            status_code=409,
        )
    props, triggers = reset_all_state(settings.db_path)
    gcs_storage.upload_db(settings.db_path)
    return JSONResponse({"status": "ok", "properties_deleted": props, "triggers_deleted": triggers})
