"""Google Sheets access for the task workbook."""

import logging

from config import settings
from src.exceptions import SheetReadError, SheetWriteError, TaskminderError
from src.google_client import build_service
from src.models import SheetInfo

logger = logging.getLogger(__name__)

# Task sheets use columns A (back link) to F (completion checkbox)
TASK_RANGE_COLUMNS = "A1:F"
COMPLETE_COLUMN = "F"
# Zero-based index of the Date column (D)
DATE_COLUMN_INDEX = 3


def _quote_title(title: str) -> str:
    """Quote a sheet title for A1 notation."""
    return "'" + title.replace("'", "''") + "'"


class SpreadsheetSource:
    """Reads and writes the tabs of one spreadsheet.

    The Google API client is created lazily so tests can pass a stub
    `service` instead.
    """

    def __init__(self, spreadsheet_id: str | None = None, service=None):
        self.spreadsheet_id = spreadsheet_id or settings.spreadsheet_id
        self._service = service

    @property
    def service(self):
        if self._service is None:
            self._service = build_service("sheets", "v4")
        return self._service

    @property
    def url(self) -> str:
        return f"https://docs.google.com/spreadsheets/d/{self.spreadsheet_id}/edit"

    def sheet_url(self, sheet_id: int) -> str:
        return f"{self.url}#gid={sheet_id}"

    def list_sheets(self) -> list[SheetInfo]:
        """Enumerate tabs in workbook order."""
        try:
            result = (
                self.service.spreadsheets()
                .get(
                    spreadsheetId=self.spreadsheet_id,
                    fields="sheets.properties(sheetId,title,hidden)",
                )
                .execute()
            )
        except TaskminderError:
            raise
        except Exception as e:
            raise SheetReadError(f"Failed to list sheets: {e}") from e

        sheets = []
        for sheet in result.get("sheets", []):
            props = sheet.get("properties", {})
            sheets.append(SheetInfo(
                title=props.get("title", ""),
                sheet_id=int(props.get("sheetId", 0)),
                hidden=bool(props.get("hidden", False)),
            ))
        return sheets

    def read_rows(self, title: str) -> list[list]:
        """Return the raw cell values of a task sheet, header row included.

        Dates come back as serial numbers and checkboxes as booleans.
        Trailing empty rows and cells are omitted by the API.
        """
        try:
            result = (
                self.service.spreadsheets()
                .values()
                .get(
                    spreadsheetId=self.spreadsheet_id,
                    range=f"{_quote_title(title)}!{TASK_RANGE_COLUMNS}",
                    valueRenderOption="UNFORMATTED_VALUE",
                    dateTimeRenderOption="SERIAL_NUMBER",
                )
                .execute()
            )
        except TaskminderError:
            raise
        except Exception as e:
            raise SheetReadError(f"Failed to read sheet {title!r}: {e}") from e
        return result.get("values", [])

    def mark_complete(self, title: str, row_number: int) -> None:
        """Tick the completion checkbox of a 1-based row."""
        cell = f"{_quote_title(title)}!{COMPLETE_COLUMN}{row_number}"
        try:
            (
                self.service.spreadsheets()
                .values()
                .update(
                    spreadsheetId=self.spreadsheet_id,
                    range=cell,
                    valueInputOption="RAW",
                    body={"values": [[True]]},
                )
                .execute()
            )
        except Exception as e:
            raise SheetWriteError(f"Failed to update {cell}: {e}") from e

    def replace_values(self, title: str, values: list[list[str]]) -> None:
        """Clear a sheet and write values from A1, evaluating formulas."""
        quoted = _quote_title(title)
        try:
            sheet_values = self.service.spreadsheets().values()
            sheet_values.clear(spreadsheetId=self.spreadsheet_id, range=quoted, body={}).execute()
            if values:
                sheet_values.update(
                    spreadsheetId=self.spreadsheet_id,
                    range=f"{quoted}!A1",
                    valueInputOption="USER_ENTERED",
                    body={"values": values},
                ).execute()
        except Exception as e:
            raise SheetWriteError(f"Failed to rewrite sheet {title!r}: {e}") from e

    def sort_by_date(self, sheet: SheetInfo) -> None:
        """Sort a task sheet's data rows (row 2 down) by date, oldest first."""
        request = {
            "sortRange": {
                "range": {"sheetId": sheet.sheet_id, "startRowIndex": 1},
                "sortSpecs": [{"dimensionIndex": DATE_COLUMN_INDEX, "sortOrder": "ASCENDING"}],
            }
        }
        try:
            (
                self.service.spreadsheets()
                .batchUpdate(spreadsheetId=self.spreadsheet_id, body={"requests": [request]})
                .execute()
            )
        except Exception as e:
            raise SheetWriteError(f"Failed to sort sheet {sheet.title!r}: {e}") from e
