"""Centralized configuration using pydantic-settings."""

from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Google OAuth2 (authorized-user token; the client JSON is only needed
    # by scripts/google_auth.py to mint the token)
    google_credentials_json: str = ""
    google_token_json: str = ""

    # Workbook holding the task sheets
    spreadsheet_id: str = ""

    # "Today" is computed in this zone
    timezone: str = "Asia/Tokyo"

    # Mail
    sender_email: str = "me"
    admin_email: str = ""

    # Local state
    output_dir: Path = Path("output")

    # Scan budget, kept below a 300 s host ceiling to leave room for the
    # checkpoint write
    scan_time_budget_seconds: float = 270.0
    continuation_delay_seconds: int = 10
    scheduler_poll_seconds: int = 15

    # Secret for external cron trigger (e.g. cron-job.org)
    cron_secret: str = ""

    # Index sheets (never scanned for reminders)
    ongoing_index_sheet_name: str = "Task Index"
    completed_index_sheet_name: str = "Completed Task Index"
    completion_flag: str = "[Done]"
    back_to_index_phrase: str = "Back to Index"

    # Recurring schedule (LOCAL_TZ). Weekday: Monday=0 ... Friday=4
    today_reminder_hour: int = 8
    week_reminder_weekday: int = 4
    week_reminder_hour: int = 16
    completion_sync_hour: int = 17

    # Google Cloud Storage (persist the SQLite file across restarts)
    gcs_bucket_name: str = ""
    gcs_credentials_json: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def db_path(self) -> Path:
        return self.output_dir / "taskminder.db"

    @property
    def spreadsheet_url(self) -> str:
        if not self.spreadsheet_id:
            return ""
        return f"https://docs.google.com/spreadsheets/d/{self.spreadsheet_id}/edit"


settings = Settings()

LOCAL_TZ = ZoneInfo(settings.timezone)
