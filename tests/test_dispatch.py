"""Tests for the gate-checked dispatch fan-out."""

from datetime import date

from src.completion_gate import CompletionGate
from src.dispatch import DispatchFanout
from src.exceptions import DocumentRenderError, NotificationError
from src.models import (
    Audience,
    CompletionStatus,
    Horizon,
    IndividualTarget,
    ReminderConfig,
    ReminderKey,
    SourceReport,
    StaffMember,
    WorkItem,
)
from src.notifier import CONFIG_ERROR_SUBJECT

TODAY = date(2023, 5, 5)
SHEET_URL = "https://docs.google.com/spreadsheets/d/abc/edit"
BROADCAST_TODAY = ReminderKey(Audience.BROADCAST, Horizon.TODAY)
INDIVIDUAL_TODAY = ReminderKey(Audience.PER_INDIVIDUAL, Horizon.TODAY)
INDIVIDUAL_WEEK = ReminderKey(Audience.PER_INDIVIDUAL, Horizon.WEEK)


class FakeWriter:
    def __init__(self, fail_for: set[str] = frozenset()):
        self.fail_for = fail_for
        self.documents: dict[str, object] = {}
        self.writes = 0

    def write(self, doc_url, report):
        if doc_url in self.fail_for:
            raise DocumentRenderError(f"cannot open {doc_url}")
        self.writes += 1
        self.documents[doc_url] = report


class FakeMailer:
    def __init__(self, fail_for: set[str] = frozenset()):
        self.fail_for = fail_for
        self.sent: list[tuple[list[str], str, str]] = []

    def send(self, to, subject, html_body):
        if set(to) & self.fail_for:
            raise NotificationError("smtp down")
        self.sent.append((list(to), subject, html_body))


def _reports() -> list[SourceReport]:
    return [
        SourceReport("Ops: Payroll", f"{SHEET_URL}#gid=0", [
            WorkItem("Pay run", "Submit", TODAY, "Alice"),
            WorkItem("Bonus", "Check", TODAY, "Bob"),
        ]),
        SourceReport("Sales: Leads", f"{SHEET_URL}#gid=1", [
            WorkItem("Call", "Follow up", TODAY, "Bob"),
        ]),
    ]


def _config(**overrides) -> ReminderConfig:
    values = dict(
        staff=(StaffMember("Alice", "alice@example.com"), StaffMember("Bob", "bob@example.com")),
        broadcast_recipients=(
            StaffMember("Alice", "alice@example.com"),
            StaffMember("Bob", "bob@example.com"),
            StaffMember("Bob", "bob@example.com"),
        ),
        broadcast_today_doc_url="https://docs.google.com/document/d/general-today/edit",
        broadcast_week_doc_url="https://docs.google.com/document/d/general-week/edit",
        individuals=(
            IndividualTarget("Alice", "alice@example.com",
                             "https://docs.google.com/document/d/alice-today/edit",
                             "https://docs.google.com/document/d/alice-week/edit"),
            IndividualTarget("Bob", "bob@example.com",
                             "https://docs.google.com/document/d/bob-today/edit", None),
        ),
    )
    values.update(overrides)
    return ReminderConfig(**values)


def _fanout(db_path, writer=None, mailer=None, config=None, admin_email="admin@example.com"):
    return DispatchFanout(
        gate=CompletionGate(db_path),
        writer=writer or FakeWriter(),
        mailer=mailer or FakeMailer(),
        config=config or _config(),
        spreadsheet_url=SHEET_URL,
        today=TODAY,
        admin_email=admin_email,
    )


def test_absent_gate_is_a_no_op(tmp_path):
    mailer = FakeMailer()
    outcome = _fanout(tmp_path / "test.db", mailer=mailer).dispatch(BROADCAST_TODAY, _reports())

    assert outcome.skipped
    assert outcome.gate_status is None
    assert mailer.sent == []


def test_pending_gate_is_a_no_op(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_pending(BROADCAST_TODAY)
    writer, mailer = FakeWriter(), FakeMailer()

    outcome = _fanout(db_path, writer, mailer).dispatch(BROADCAST_TODAY, _reports())

    assert outcome.skipped
    assert outcome.gate_status == CompletionStatus.PENDING
    assert writer.writes == 0
    assert mailer.sent == []
    assert CompletionGate(db_path).read(BROADCAST_TODAY) == CompletionStatus.PENDING


def test_broadcast_renders_once_and_mails_unique_recipients(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(BROADCAST_TODAY)
    writer, mailer = FakeWriter(), FakeMailer()

    outcome = _fanout(db_path, writer, mailer).dispatch(BROADCAST_TODAY, _reports())

    assert not outcome.skipped
    assert [d.success for d in outcome.deliveries] == [True]
    report = writer.documents["https://docs.google.com/document/d/general-today/edit"]
    assert report.title == "Today's General Reminder on Friday, May 5, 2023"
    assert [s.heading for s in report.sections] == ["Ops: Payroll", "Sales: Leads"]
    assert len(mailer.sent) == 1
    to, subject, body = mailer.sent[0]
    assert to == ["alice@example.com", "bob@example.com"]
    assert subject == report.title
    assert "general-today" in body
    assert CompletionGate(db_path).read(BROADCAST_TODAY) is None


def test_broadcast_without_document_sends_failure_notice(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(BROADCAST_TODAY)
    writer, mailer = FakeWriter(), FakeMailer()

    outcome = _fanout(db_path, writer, mailer, _config(broadcast_today_doc_url=None)).dispatch(
        BROADCAST_TODAY, _reports(),
    )

    assert writer.writes == 0
    assert len(mailer.sent) == 1
    assert "not set" in mailer.sent[0][2]
    assert SHEET_URL in mailer.sent[0][2]
    assert outcome.deliveries[0].success is False
    assert CompletionGate(db_path).read(BROADCAST_TODAY) is None


def test_missing_recipients_notifies_admin(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(BROADCAST_TODAY)
    mailer = FakeMailer()

    outcome = _fanout(db_path, mailer=mailer, config=_config(broadcast_recipients=())).dispatch(
        BROADCAST_TODAY, _reports(),
    )

    assert len(mailer.sent) == 1
    to, subject, _ = mailer.sent[0]
    assert to == ["admin@example.com"]
    assert subject == CONFIG_ERROR_SUBJECT
    assert outcome.deliveries[0].success is False
    assert CompletionGate(db_path).read(BROADCAST_TODAY) is None


def test_missing_recipients_without_admin_only_logs(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(INDIVIDUAL_TODAY)
    mailer = FakeMailer()

    outcome = _fanout(db_path, mailer=mailer, config=_config(individuals=()), admin_email="").dispatch(
        INDIVIDUAL_TODAY, _reports(),
    )

    assert mailer.sent == []
    assert outcome.deliveries[0].error == "recipients not configured"


def test_empty_aggregation_sends_nothing(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(BROADCAST_TODAY)
    writer, mailer = FakeWriter(), FakeMailer()

    outcome = _fanout(db_path, writer, mailer).dispatch(BROADCAST_TODAY, [])

    assert outcome.deliveries == []
    assert writer.writes == 0
    assert mailer.sent == []
    assert CompletionGate(db_path).read(BROADCAST_TODAY) is None


def test_individuals_get_filtered_views(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(INDIVIDUAL_TODAY)
    writer, mailer = FakeWriter(), FakeMailer()

    outcome = _fanout(db_path, writer, mailer).dispatch(INDIVIDUAL_TODAY, _reports())

    assert [d.success for d in outcome.deliveries] == [True, True]
    alice = writer.documents["https://docs.google.com/document/d/alice-today/edit"]
    bob = writer.documents["https://docs.google.com/document/d/bob-today/edit"]
    assert alice.title == "Today's Reminder for Alice on Friday, May 5, 2023"
    assert [s.heading for s in alice.sections] == ["Ops: Payroll"]
    assert len(alice.sections[0].rows) == 2  # header + one item
    assert [s.heading for s in bob.sections] == ["Ops: Payroll", "Sales: Leads"]
    assert [to for to, _, _ in mailer.sent] == [["alice@example.com"], ["bob@example.com"]]


def test_individual_branches_are_independent(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(INDIVIDUAL_WEEK)
    writer = FakeWriter(fail_for={"https://docs.google.com/document/d/alice-week/edit"})
    mailer = FakeMailer()

    outcome = _fanout(db_path, writer, mailer).dispatch(INDIVIDUAL_WEEK, _reports())

    alice, bob = outcome.deliveries
    assert alice.success is False
    assert "cannot open" in alice.error
    # Bob has no WEEK document: he still gets the "not set" notice
    assert bob.success is False
    assert bob.error == "document not configured"
    assert [to for to, _, _ in mailer.sent] == [["alice@example.com"], ["bob@example.com"]]
    assert "cannot open" in mailer.sent[0][2]
    assert CompletionGate(db_path).read(INDIVIDUAL_WEEK) is None


def test_mail_failure_is_recorded_per_branch(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(INDIVIDUAL_TODAY)
    writer = FakeWriter()
    mailer = FakeMailer(fail_for={"alice@example.com"})

    outcome = _fanout(db_path, writer, mailer).dispatch(INDIVIDUAL_TODAY, _reports())

    assert [d.success for d in outcome.deliveries] == [False, True]
    assert writer.writes == 2


def test_duplicate_individuals_are_delivered_once(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(INDIVIDUAL_TODAY)
    bob = IndividualTarget("Bob", "bob@example.com", "https://docs.google.com/document/d/bob-today/edit")
    mailer = FakeMailer()

    outcome = _fanout(db_path, mailer=mailer, config=_config(individuals=(bob, bob))).dispatch(
        INDIVIDUAL_TODAY, _reports(),
    )

    assert len(outcome.deliveries) == 1
    assert len(mailer.sent) == 1


def test_redispatch_after_unexpected_crash_is_idempotent(tmp_path):
    db_path = tmp_path / "test.db"
    writer = FakeWriter()

    CompletionGate(db_path).set_done(BROADCAST_TODAY)
    _fanout(db_path, writer).dispatch(BROADCAST_TODAY, _reports())
    first = writer.documents["https://docs.google.com/document/d/general-today/edit"]

    # Gate left DONE by a crash after rendering: the same content is rendered again
    CompletionGate(db_path).set_done(BROADCAST_TODAY)
    _fanout(db_path, writer).dispatch(BROADCAST_TODAY, _reports())
    second = writer.documents["https://docs.google.com/document/d/general-today/edit"]

    assert first == second
    assert writer.writes == 2


def test_document_write_failure_notifies_recipients(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(BROADCAST_TODAY)

    class DeletedDocWriter:
        def write(self, doc_url, report):
            raise DocumentRenderError("document was deleted")

    mailer = FakeMailer()
    config = _config(broadcast_recipients=(StaffMember("Alice", "alice@example.com"),))

    outcome = _fanout(db_path, DeletedDocWriter(), mailer, config).dispatch(
        BROADCAST_TODAY, _reports(),
    )

    assert len(mailer.sent) == 1
    to, subject, body = mailer.sent[0]
    assert to == ["alice@example.com"]
    assert subject == "Today's General Reminder on Friday, May 5, 2023"
    assert "document was deleted" in body
    assert "general-today" in body
    assert outcome.deliveries[0].success is False
    assert outcome.deliveries[0].error == "document was deleted"
    assert CompletionGate(db_path).read(BROADCAST_TODAY) is None


def test_write_failure_notice_that_cannot_be_sent_stays_local(tmp_path):
    db_path = tmp_path / "test.db"
    CompletionGate(db_path).set_done(INDIVIDUAL_TODAY)
    writer = FakeWriter(fail_for={"https://docs.google.com/document/d/alice-today/edit"})
    mailer = FakeMailer(fail_for={"alice@example.com"})

    outcome = _fanout(db_path, writer, mailer).dispatch(INDIVIDUAL_TODAY, _reports())

    alice, bob = outcome.deliveries
    assert alice.success is False
    assert "cannot open" in alice.error
    assert bob.success is True
    assert [to for to, _, _ in mailer.sent] == [["bob@example.com"]]
