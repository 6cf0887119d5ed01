"""Copy "C" marks from today's reminder documents back into the task sheets."""

import logging

from src.exceptions import SheetReadError, TaskminderError
from src.models import ReminderConfig
from src.report_renderer import COMPLETION_MARK
from src.scan_engine import COL_ITEM, COL_SUMMARY, cell_text

logger = logging.getLogger(__name__)

# Column of the completion mark in a TODAY reminder table
DOC_COMPLETE_COLUMN = 4


def today_document_urls(config: ReminderConfig) -> list[str]:
    """The general TODAY document first, then each staff member's, without repeats."""
    urls = [config.broadcast_today_doc_url]
    urls.extend(i.today_doc_url for i in config.individuals)
    return list(dict.fromkeys(u for u in urls if u))


def completed_rows(table: list[list[str]]) -> list[str]:
    """Item+Summary keys of the table rows marked complete (header row skipped)."""
    keys = []
    for row in table[1:]:
        if len(row) > DOC_COMPLETE_COLUMN and row[DOC_COMPLETE_COLUMN].strip() == COMPLETION_MARK:
            keys.append(row[0] + row[1])
    return keys


def sync_completion_status(reader, source, config: ReminderConfig) -> int:
    """Tick the sheet rows whose reminder-table row carries the completion mark.

    `reader` needs `read_sections(doc_url)`; `source` needs `read_rows(title)`,
    `list_sheets()` and `mark_complete(title, row_number)`. Returns the number
    of rows updated. A failing document or sheet is logged and skipped.
    """
    titles = {sheet.title for sheet in source.list_sheets()}
    updated = 0
    for doc_url in today_document_urls(config):
        try:
            sections = reader.read_sections(doc_url)
        except TaskminderError as e:
            logger.error("Skipping %s: %s", doc_url, e)
            continue

        for sheet_name, table in sections:
            if sheet_name not in titles:
                continue
            keys = completed_rows(table)
            if not keys:
                continue
            try:
                rows = source.read_rows(sheet_name)
            except SheetReadError as e:
                logger.error("Skipping sheet %r: %s", sheet_name, e)
                continue
            for key in keys:
                for index, row in enumerate(rows):
                    cells = list(row) + ["", "", ""]
                    if cell_text(cells[COL_ITEM]) + cell_text(cells[COL_SUMMARY]) == key:
                        source.mark_complete(sheet_name, index + 1)
                        updated += 1
                        logger.info("Status for %s in %s changed to completed.", key, sheet_name)
                        break
    return updated
