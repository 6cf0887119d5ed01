"""Sort the task sheets by date and rebuild the ongoing / completed index sheets.

Task sheets are named "Category: Task". Finished ones carry the configured
completion flag in their name. Hidden sheets are left out of the index
(they are still scanned for reminders).
"""

import logging

from src.exceptions import SheetWriteError
from src.models import SheetInfo

logger = logging.getLogger(__name__)


def group_task_sheets(
    sheets: list[SheetInfo],
    completion_flag: str,
    sheet_url,
) -> tuple[dict[str, list[tuple[str, str]]], dict[str, list[tuple[str, str]]]]:
    """Split visible "Category: Task" sheets into (ongoing, completed) by category.

    Each category maps to (task, url) pairs in workbook order.
    """
    ongoing: dict[str, list[tuple[str, str]]] = {}
    completed: dict[str, list[tuple[str, str]]] = {}
    for sheet in sheets:
        if ":" not in sheet.title or sheet.hidden:
            continue
        name = sheet.title
        target = ongoing
        if completion_flag and completion_flag in name:
            name = name.replace(completion_flag, "")
            target = completed
        category, task = (part.strip() for part in name.split(":", 1))
        target.setdefault(category, []).append((task, sheet_url(sheet.sheet_id)))
    return ongoing, completed


def _hyperlink(url: str, label: str) -> str:
    return '=HYPERLINK("{}","{}")'.format(url.replace('"', '""'), label.replace('"', '""'))


def index_values(categories: dict[str, list[tuple[str, str]]]) -> list[list[str]]:
    """One column per category: header cell, then a link per task."""
    if not categories:
        return []
    columns = [
        [category] + [_hyperlink(url, task) for task, url in tasks]
        for category, tasks in categories.items()
    ]
    height = max(len(c) for c in columns)
    return [
        [column[row] if row < len(column) else "" for column in columns]
        for row in range(height)
    ]


def sort_task_sheets(source, sheets: list[SheetInfo], reserved_names: tuple[str, ...]) -> int:
    """Sort every non-index sheet by date. A sheet that fails is logged and skipped."""
    sorted_count = 0
    for sheet in sheets:
        if sheet.title in reserved_names:
            continue
        try:
            source.sort_by_date(sheet)
        except SheetWriteError as e:
            logger.error("Skipping sort of %r: %s", sheet.title, e)
            continue
        sorted_count += 1
    return sorted_count


def update_index_sheets(source, ongoing_name: str, completed_name: str,
                        completion_flag: str) -> None:
    """Sort the task sheets by date, then rewrite both index sheets.

    `source` is a SpreadsheetSource.
    """
    sheets = source.list_sheets()
    sorted_count = sort_task_sheets(source, sheets, (ongoing_name, completed_name))
    ongoing, completed = group_task_sheets(sheets, completion_flag, source.sheet_url)
    source.replace_values(ongoing_name, index_values(ongoing))
    source.replace_values(completed_name, index_values(completed))
    logger.info(
        "Index sheets updated: %d ongoing and %d completed categories (%d sheets sorted)",
        len(ongoing), len(completed), sorted_count,
    )
