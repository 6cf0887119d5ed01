"""Gmail API delivery of reminder notifications."""

import base64
import html
import logging
from email.mime.text import MIMEText

from config import settings
from src.exceptions import NotificationError, TaskminderError
from src.google_client import build_service
from src.models import Audience, Horizon

logger = logging.getLogger(__name__)

CONFIG_ERROR_SUBJECT = "Error on Sharing Reminders (Today or Next Week)"

_AUDIENCE_LABELS = {
    Audience.BROADCAST: "general reminder",
    Audience.PER_INDIVIDUAL: "staff-based reminder",
}
_HORIZON_LABELS = {
    Horizon.TODAY: "today's",
    Horizon.WEEK: "next week's",
}

_EMAIL_SHELL = """\
<html>
<body style="font-family: Arial, sans-serif; font-size: 14px; color: #222;">
{content}
<p style="color: #888; font-size: 12px;">This message was sent automatically by Taskminder.</p>
</body>
</html>
"""


def render_success_html(title: str, horizon: Horizon, doc_url: str) -> str:
    """Body of the mail announcing a freshly rendered reminder document."""
    content = (
        f"<p>{html.escape(title)} is ready.</p>\n"
        f"<p>Please check {_HORIZON_LABELS[horizon]} tasks in "
        f'<a href="{html.escape(doc_url, quote=True)}">the reminder document</a>.</p>'
    )
    if horizon == Horizon.TODAY:
        content += "\n<p>Once an item is completed, input \"C\" in its Complete cell.</p>"
    return _EMAIL_SHELL.format(content=content)


def render_failure_html(audience: Audience, horizon: Horizon, spreadsheet_url: str) -> str:
    """Body of the mail sent when no destination document is configured."""
    what = f"{_HORIZON_LABELS[horizon]} {_AUDIENCE_LABELS[audience]}"
    content = (
        f"<p>The {html.escape(what)} could not be shared because its Google Doc "
        f"is not set.</p>\n"
        f'<p>Open <a href="{html.escape(spreadsheet_url, quote=True)}">the task spreadsheet</a> '
        f"and set the reminder document URL in the settings.</p>"
    )
    return _EMAIL_SHELL.format(content=content)


def render_write_failure_html(audience: Audience, horizon: Horizon, doc_url: str, reason: str) -> str:
    """Body of the mail sent when the reminder document could not be written."""
    what = f"{_HORIZON_LABELS[horizon]} {_AUDIENCE_LABELS[audience]}"
    content = (
        f"<p>The {html.escape(what)} could not be shared because writing "
        f'<a href="{html.escape(doc_url, quote=True)}">its Google Doc</a> failed.</p>\n'
        f"<p>Reason: {html.escape(reason)}</p>\n"
        "<p>Check that the document still exists and is shared with the reminder account.</p>"
    )
    return _EMAIL_SHELL.format(content=content)


def render_config_error_html() -> str:
    """Body of the mail sent to the administrator when no recipients are set."""
    content = (
        "<p>Necessary information such as emails and Google Doc URLs is not set. "
        "Configure the reminder recipients and documents, then run the reminder again.</p>"
    )
    return _EMAIL_SHELL.format(content=content)


def _build_raw_message(to: list[str], subject: str, html_body: str, sender: str) -> str:
    message = MIMEText(html_body, "html", "utf-8")
    message["To"] = ", ".join(to)
    message["Subject"] = subject
    if sender and sender != "me":
        message["From"] = sender
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


class GmailNotifier:
    """Sends HTML mail through the authorized Gmail account."""

    def __init__(self, service=None, sender: str | None = None):
        self._service = service
        self.sender = sender if sender is not None else settings.sender_email

    @property
    def service(self):
        if self._service is None:
            self._service = build_service("gmail", "v1")
        return self._service

    def send(self, to: str | list[str], subject: str, html_body: str) -> None:
        recipients = [to] if isinstance(to, str) else list(to)
        if not recipients:
            raise NotificationError(f"No recipients for {subject!r}")

        raw = _build_raw_message(recipients, subject, html_body, self.sender)
        try:
            self.service.users().messages().send(userId="me", body={"raw": raw}).execute()
        except TaskminderError:
            raise
        except Exception as e:
            raise NotificationError(f"Failed to send {subject!r}: {e}") from e
        logger.info("Sent %r to %s", subject, ", ".join(recipients))
