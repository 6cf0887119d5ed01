"""Tests for copying completion marks from documents back into the sheets."""

from src.completion_sync import completed_rows, sync_completion_status, today_document_urls
from src.exceptions import DocumentRenderError, SheetReadError
from src.models import IndividualTarget, ReminderConfig, SheetInfo

GENERAL = "https://docs.google.com/document/d/general/edit"
ALICE = "https://docs.google.com/document/d/alice/edit"
HEADER = ["Item", "Summary", "Date", "Staff", "Complete"]


class FakeReader:
    def __init__(self, docs: dict[str, list], failing: set[str] = frozenset()):
        self.docs = docs
        self.failing = failing

    def read_sections(self, doc_url):
        if doc_url in self.failing:
            raise DocumentRenderError("gone")
        return self.docs.get(doc_url, [])


class FakeSheets:
    def __init__(self, sheets: dict[str, list[list]], unreadable: set[str] = frozenset()):
        self.sheets = sheets
        self.unreadable = unreadable
        self.marked: list[tuple[str, int]] = []

    def list_sheets(self):
        return [SheetInfo(title, i) for i, title in enumerate(self.sheets)]

    def read_rows(self, title):
        if title in self.unreadable:
            raise SheetReadError(f"cannot read {title}")
        return self.sheets[title]

    def mark_complete(self, title, row_number):
        self.marked.append((title, row_number))


def _config(**overrides):
    values = dict(
        broadcast_today_doc_url=GENERAL,
        individuals=(
            IndividualTarget("Alice", "alice@example.com", ALICE, None),
            IndividualTarget("Bob", "bob@example.com", GENERAL, None),
            IndividualTarget("Carol", "carol@example.com", None, None),
        ),
    )
    values.update(overrides)
    return ReminderConfig(**values)


def test_today_document_urls_dedupes_and_skips_unset():
    assert today_document_urls(_config()) == [GENERAL, ALICE]
    assert today_document_urls(ReminderConfig()) == []


def test_completed_rows_skips_header_and_unmarked():
    table = [
        HEADER,
        ["Pay run", "Submit", "Friday, May 5, 2023", "Alice", "C"],
        ["Bonus", "Check", "Friday, May 5, 2023", "Bob", ""],
        ["Call", "Follow up", "Friday, May 5, 2023", "Bob", " C "],
        ["Short row"],
    ]
    assert completed_rows(table) == ["Pay runSubmit", "CallFollow up"]


def test_sync_marks_matching_rows():
    sheets = FakeSheets({
        "Ops: Payroll": [
            ["", "Item", "Summary", "Date", "Staff", "Complete"],
            ["Back", "Bonus", "Check", 45051, "Bob", False],
            ["Back", "Pay run", "Submit", 45051, "Alice", False],
        ],
        "Sales: Leads": [
            ["", "Item", "Summary"],
            ["Back", "Call", "Follow up"],
        ],
    })
    reader = FakeReader({
        GENERAL: [("Ops: Payroll", [HEADER, ["Pay run", "Submit", "", "Alice", "C"]])],
        ALICE: [
            ("Sales: Leads", [HEADER, ["Call", "Follow up", "", "Bob", "C"]]),
            ("Deleted: Sheet", [HEADER, ["x", "y", "", "", "C"]]),
        ],
    })

    updated = sync_completion_status(reader, sheets, _config())

    assert updated == 2
    assert sheets.marked == [("Ops: Payroll", 3), ("Sales: Leads", 2)]


def test_sync_skips_failing_documents():
    sheets = FakeSheets({"Ops: Payroll": [["", "Item", "Summary"], ["Back", "Pay run", "Submit"]]})
    reader = FakeReader(
        {ALICE: [("Ops: Payroll", [HEADER, ["Pay run", "Submit", "", "Alice", "C"]])]},
        failing={GENERAL},
    )

    assert sync_completion_status(reader, sheets, _config()) == 1
    assert sheets.marked == [("Ops: Payroll", 2)]


def test_sync_without_marks_reads_no_sheet_rows():
    sheets = FakeSheets({"Ops: Payroll": []})
    reader = FakeReader({GENERAL: [("Ops: Payroll", [HEADER, ["Pay run", "Submit", "", "Alice", ""]])]})

    assert sync_completion_status(reader, sheets, _config(individuals=())) == 0
    assert sheets.marked == []


def test_sync_skips_unreadable_sheets():
    sheets = FakeSheets(
        {
            "Ops: Payroll": [["", "Item", "Summary"], ["Back", "Pay run", "Submit"]],
            "Sales: Leads": [["", "Item", "Summary"], ["Back", "Call", "Follow up"]],
        },
        unreadable={"Ops: Payroll"},
    )
    reader = FakeReader({GENERAL: [
        ("Ops: Payroll", [HEADER, ["Pay run", "Submit", "", "Alice", "C"]]),
        ("Sales: Leads", [HEADER, ["Call", "Follow up", "", "Bob", "C"]]),
    ]})

    assert sync_completion_status(reader, sheets, _config(individuals=())) == 1
    assert sheets.marked == [("Sales: Leads", 2)]
