"""Build the reminder document layout and per-assignee views."""

from datetime import date

from src.horizon import format_english_date
from src.models import (
    Horizon,
    ReportDocument,
    ReportSection,
    SourceReport,
    TableCell,
)

COMPLETION_MARK = "C"
TODAY_INTRO = f'*Once the item is completed, input "{COMPLETION_MARK}"!'

TODAY_HEADERS = ["Item", "Summary", "Date", "Staff", "Complete"]
WEEK_HEADERS = ["Item", "Summary", "Date", "Staff"]
TODAY_COLUMN_WIDTHS = [100, 200, 70, 50, 70]
WEEK_COLUMN_WIDTHS = [100, 250, 70, 70]

HEADER_FONT_SIZE = 10
# Item, Summary, Date, Staff, Complete
BODY_FONT_SIZES = [9, 7, 8, 8, 10]


def filter_reports_for_assignee(reports: list[SourceReport], name: str) -> list[SourceReport]:
    """Restrict reports to one assignee's items, dropping sheets left empty."""
    filtered = []
    for report in reports:
        items = [item for item in report.items if item.assignee == name]
        if items:
            filtered.append(SourceReport(report.source_name, report.source_url, items))
    return filtered


def report_title(horizon: Horizon, today: date, name: str | None = None) -> str:
    """Document title and mail subject for a reminder."""
    when = "Today's" if horizon == Horizon.TODAY else "Next Week's"
    on = format_english_date(today)
    if name is None:
        return f"{when} General Reminder on {on}"
    return f"{when} Reminder for {name} on {on}"


def build_report(title: str, reports: list[SourceReport], horizon: Horizon) -> ReportDocument:
    """Lay out one table per sheet. WEEK omits the completion column."""
    if horizon == Horizon.TODAY:
        headers, widths = TODAY_HEADERS, TODAY_COLUMN_WIDTHS
    else:
        headers, widths = WEEK_HEADERS, WEEK_COLUMN_WIDTHS

    sections = []
    for report in reports:
        rows = [[TableCell(h, bold=True, font_size=HEADER_FONT_SIZE) for h in headers]]
        for item in report.items:
            values = [item.label, item.note, format_english_date(item.due_date), item.assignee, ""]
            rows.append([
                TableCell(values[i], font_size=BODY_FONT_SIZES[i])
                for i in range(len(headers))
            ])
        sections.append(ReportSection(
            heading=report.source_name,
            link_url=report.source_url,
            column_widths=list(widths),
            rows=rows,
        ))

    intro = TODAY_INTRO if horizon == Horizon.TODAY else None
    return ReportDocument(title=title, intro=intro, sections=sections)
