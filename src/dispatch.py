"""Fan a finished scan out to its audience: render documents and send mail."""

import logging
from datetime import date

from src.completion_gate import CompletionGate
from src.exceptions import DocumentRenderError, NotificationError, TaskminderError
from src.models import (
    Audience,
    CompletionStatus,
    DeliveryResult,
    DispatchOutcome,
    Horizon,
    ReminderConfig,
    ReminderKey,
    SourceReport,
)
from src.notifier import (
    CONFIG_ERROR_SUBJECT,
    render_config_error_html,
    render_failure_html,
    render_success_html,
    render_write_failure_html,
)
from src.report_renderer import build_report, filter_reports_for_assignee, report_title

logger = logging.getLogger(__name__)


def _unique(values) -> list[str]:
    """Drop blanks and repeats, keeping first-seen order."""
    seen: dict[str, None] = {}
    for value in values:
        if value and value not in seen:
            seen[value] = None
    return list(seen)


class DispatchFanout:
    """Renders and delivers one reminder key once its gate reads DONE.

    `writer` needs `write(doc_url, ReportDocument)` and `mailer` needs
    `send(to, subject, html_body)`.
    """

    def __init__(
        self,
        gate: CompletionGate,
        writer,
        mailer,
        config: ReminderConfig,
        spreadsheet_url: str,
        today: date,
        admin_email: str = "",
    ):
        self.gate = gate
        self.writer = writer
        self.mailer = mailer
        self.config = config
        self.spreadsheet_url = spreadsheet_url
        self.today = today
        self.admin_email = admin_email

    def dispatch(self, key: ReminderKey, reports: list[SourceReport]) -> DispatchOutcome:
        status = self.gate.read(key)
        if status is None:
            logger.info("Nothing to dispatch for %s (no completed scan).", key.slug)
            return DispatchOutcome(key, skipped=True)
        if status == CompletionStatus.PENDING:
            logger.info("Scan for %s is still in progress — dispatch deferred.", key.slug)
            return DispatchOutcome(key, skipped=True, gate_status=status)

        outcome = DispatchOutcome(key, gate_status=status)
        if key.audience == Audience.BROADCAST:
            self._dispatch_broadcast(key.horizon, reports, outcome)
        else:
            self._dispatch_individuals(key.horizon, reports, outcome)

        self.gate.clear(key)
        sent = sum(1 for d in outcome.deliveries if d.success)
        logger.info(
            "Dispatch for %s finished: %d delivered, %d failed",
            key.slug, sent, len(outcome.deliveries) - sent,
        )
        return outcome

    # --- branches ---

    def _dispatch_broadcast(self, horizon: Horizon, reports: list[SourceReport],
                            outcome: DispatchOutcome) -> None:
        recipients = _unique(m.email for m in self.config.broadcast_recipients)
        if not recipients:
            self._report_misconfiguration(outcome)
            return
        if not reports:
            logger.info("No reminder items for the general %s reminder — nothing sent.", horizon.value)
            return

        title = report_title(horizon, self.today)
        doc_url = self.config.broadcast_doc_url_for(horizon)
        outcome.deliveries.append(
            self._deliver(recipients, title, Audience.BROADCAST, horizon, reports, doc_url)
        )

    def _dispatch_individuals(self, horizon: Horizon, reports: list[SourceReport],
                              outcome: DispatchOutcome) -> None:
        if not self.config.individuals:
            self._report_misconfiguration(outcome)
            return
        if not reports:
            logger.info("No reminder items for staff %s reminders — nothing sent.", horizon.value)
            return

        seen: set[tuple[str, str]] = set()
        for individual in self.config.individuals:
            identity = (individual.name, individual.email)
            if identity in seen:
                logger.warning("Duplicate staff entry %s <%s> skipped", *identity)
                continue
            seen.add(identity)

            title = report_title(horizon, self.today, individual.name)
            view = filter_reports_for_assignee(reports, individual.name)
            outcome.deliveries.append(self._deliver(
                [individual.email], title, Audience.PER_INDIVIDUAL, horizon,
                view, individual.doc_url_for(horizon),
            ))

    def _deliver(self, recipients: list[str], title: str, audience: Audience,
                 horizon: Horizon, reports: list[SourceReport],
                 doc_url: str | None) -> DeliveryResult:
        """Render + notify one recipient branch; failures stay local to it."""
        label = ", ".join(recipients)
        try:
            if not doc_url:
                self.mailer.send(
                    recipients, title,
                    render_failure_html(audience, horizon, self.spreadsheet_url),
                )
                logger.warning("%s not shared with %s: no Google Doc set.", title, label)
                return DeliveryResult(label, success=False, error="document not configured")

            try:
                self.writer.write(doc_url, build_report(title, reports, horizon))
            except DocumentRenderError as e:
                logger.error("Writing %r for %s failed: %s", title, label, e)
                self._notify_write_failure(recipients, title, audience, horizon, doc_url, str(e))
                return DeliveryResult(label, success=False, doc_url=doc_url, error=str(e))

            self.mailer.send(recipients, title, render_success_html(title, horizon, doc_url))
            logger.info("%s shared with %s.", title, label)
            return DeliveryResult(label, success=True, doc_url=doc_url)
        except TaskminderError as e:
            logger.error("Delivering %r to %s failed: %s", title, label, e)
            return DeliveryResult(label, success=False, doc_url=doc_url, error=str(e))

    def _notify_write_failure(self, recipients: list[str], title: str, audience: Audience,
                              horizon: Horizon, doc_url: str, reason: str) -> None:
        try:
            self.mailer.send(
                recipients, title,
                render_write_failure_html(audience, horizon, doc_url, reason),
            )
        except NotificationError as e:
            logger.error("Could not tell %s that %r failed: %s", ", ".join(recipients), title, e)

    def _report_misconfiguration(self, outcome: DispatchOutcome) -> None:
        if not self.admin_email:
            logger.error("Reminder recipients are not configured and no admin email is set.")
            outcome.deliveries.append(
                DeliveryResult("", success=False, error="recipients not configured")
            )
            return
        try:
            self.mailer.send([self.admin_email], CONFIG_ERROR_SUBJECT, render_config_error_html())
            error = "recipients not configured"
        except TaskminderError as e:
            logger.error("Could not notify %s about missing configuration: %s", self.admin_email, e)
            error = str(e)
        outcome.deliveries.append(DeliveryResult(self.admin_email, success=False, error=error))
