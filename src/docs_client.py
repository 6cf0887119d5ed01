"""Write reminder reports into Google Docs and read them back."""

import logging
import re

from src.exceptions import DocumentRenderError, TaskminderError
from src.google_client import build_service
from src.models import ReportDocument, ReportSection

logger = logging.getLogger(__name__)

GOOGLE_DOC_MIME_TYPE = "application/vnd.google-apps.document"

INTRO_COLOR = {"red": 1.0, "green": 0.0, "blue": 0.0}
HEADING_FONT_SIZE = 12
CELL_PADDING_PT = 10

_DOC_ID_PATTERN = re.compile(r"/d/([a-zA-Z0-9_-]+)")


def extract_doc_id(url: str) -> str | None:
    """Return the document id of a Google Docs URL, or None."""
    if not url:
        return None
    match = _DOC_ID_PATTERN.search(url)
    return match.group(1) if match else None


def _utf16_len(text: str) -> int:
    """Docs API indices count UTF-16 code units."""
    return len(text.encode("utf-16-le")) // 2


def _body_end_index(document: dict) -> int:
    content = document.get("body", {}).get("content", [])
    return content[-1]["endIndex"] if content else 1


def _paragraph_text(paragraph: dict) -> str:
    parts = [
        element.get("textRun", {}).get("content", "")
        for element in paragraph.get("elements", [])
    ]
    return "".join(parts).rstrip("\n")


def _cell_requests(start: int, text: str, bold: bool, font_size: int) -> list[dict]:
    end = start + _utf16_len(text)
    return [
        {"insertText": {"location": {"index": start}, "text": text}},
        {
            "updateTextStyle": {
                "range": {"startIndex": start, "endIndex": end},
                "textStyle": {
                    "bold": bold,
                    "fontSize": {"magnitude": font_size, "unit": "PT"},
                },
                "fields": "bold,fontSize",
            }
        },
    ]


class GoogleDocsWriter:
    """Render-by-replacement into existing Google Docs."""

    def __init__(self, docs_service=None, drive_service=None):
        self._docs = docs_service
        self._drive = drive_service

    @property
    def docs(self):
        if self._docs is None:
            self._docs = build_service("docs", "v1")
        return self._docs

    @property
    def drive(self):
        if self._drive is None:
            self._drive = build_service("drive", "v3")
        return self._drive

    def write(self, doc_url: str, report: ReportDocument) -> None:
        """Replace the whole body of the document with the report."""
        doc_id = extract_doc_id(doc_url)
        if not doc_id:
            raise DocumentRenderError(f"Not a Google Docs URL: {doc_url}")

        try:
            self._clear(doc_id)
            self.drive.files().update(fileId=doc_id, body={"name": report.title}).execute()
            if report.intro:
                self._append_intro(doc_id, report.intro)
            for section in report.sections:
                self._append_section(doc_id, section)
        except TaskminderError:
            raise
        except Exception as e:
            raise DocumentRenderError(f"Failed to render document {doc_id}: {e}") from e

        logger.info("Rendered %d table(s) into document %s", len(report.sections), doc_id)

    def read_sections(self, doc_url: str) -> list[tuple[str, list[list[str]]]]:
        """Return (heading, table rows) for every table that follows a HEADING_1."""
        doc_id = extract_doc_id(doc_url)
        if not doc_id:
            raise DocumentRenderError(f"Not a Google Docs URL: {doc_url}")
        try:
            document = self.docs.documents().get(documentId=doc_id).execute()
        except Exception as e:
            raise DocumentRenderError(f"Failed to read document {doc_id}: {e}") from e

        sections = []
        heading = None
        for element in document.get("body", {}).get("content", []):
            paragraph = element.get("paragraph")
            if paragraph is not None:
                style = paragraph.get("paragraphStyle", {}).get("namedStyleType")
                if style == "HEADING_1":
                    heading = _paragraph_text(paragraph)
                continue
            table = element.get("table")
            if table is not None and heading:
                rows = []
                for row in table.get("tableRows", []):
                    cells = []
                    for cell in row.get("tableCells", []):
                        texts = [
                            _paragraph_text(c["paragraph"])
                            for c in cell.get("content", []) if "paragraph" in c
                        ]
                        cells.append("\n".join(texts).strip())
                    rows.append(cells)
                sections.append((heading, rows))
        return sections

    def mime_type(self, doc_id: str) -> str | None:
        """MIME type of a Drive file, or None when it is missing or inaccessible."""
        try:
            meta = self.drive.files().get(fileId=doc_id, fields="mimeType").execute()
        except Exception as e:
            logger.info("Drive lookup failed for %s: %s", doc_id, e)
            return None
        return meta.get("mimeType")

    # --- internals ---

    def _get(self, doc_id: str) -> dict:
        return self.docs.documents().get(documentId=doc_id).execute()

    def _batch(self, doc_id: str, requests: list[dict]) -> None:
        if requests:
            self.docs.documents().batchUpdate(
                documentId=doc_id, body={"requests": requests}
            ).execute()

    def _clear(self, doc_id: str) -> None:
        end = _body_end_index(self._get(doc_id))
        # The final newline of the body can never be deleted
        if end > 2:
            self._batch(doc_id, [{
                "deleteContentRange": {"range": {"startIndex": 1, "endIndex": end - 1}}
            }])

    def _append_paragraph(self, doc_id: str, text: str) -> tuple[int, int]:
        """Insert text as a new paragraph at the end; return its text range."""
        start = _body_end_index(self._get(doc_id)) - 1
        self._batch(doc_id, [{"insertText": {"location": {"index": start}, "text": text + "\n"}}])
        return start, start + _utf16_len(text)

    def _append_intro(self, doc_id: str, intro: str) -> None:
        start, end = self._append_paragraph(doc_id, intro)
        self._batch(doc_id, [{
            "updateTextStyle": {
                "range": {"startIndex": start, "endIndex": end},
                "textStyle": {
                    "bold": False,
                    "foregroundColor": {"color": {"rgbColor": INTRO_COLOR}},
                },
                "fields": "bold,foregroundColor",
            }
        }])

    def _append_section(self, doc_id: str, section: ReportSection) -> None:
        start, end = self._append_paragraph(doc_id, section.heading)
        self._batch(doc_id, [
            {
                "updateParagraphStyle": {
                    "range": {"startIndex": start, "endIndex": end},
                    "paragraphStyle": {"namedStyleType": "HEADING_1"},
                    "fields": "namedStyleType",
                }
            },
            {
                "updateTextStyle": {
                    "range": {"startIndex": start, "endIndex": end},
                    "textStyle": {
                        "bold": True,
                        "fontSize": {"magnitude": HEADING_FONT_SIZE, "unit": "PT"},
                        "link": {"url": section.link_url},
                    },
                    "fields": "bold,fontSize,link",
                }
            },
        ])

        num_rows = len(section.rows)
        num_cols = len(section.column_widths)
        self._batch(doc_id, [{
            "insertTable": {
                "rows": num_rows,
                "columns": num_cols,
                "endOfSegmentLocation": {"segmentId": ""},
            }
        }])

        document = self._get(doc_id)
        tables = [e for e in document["body"]["content"] if "table" in e]
        table_element = tables[-1]
        self._batch(doc_id, self._table_requests(table_element, section))

    @staticmethod
    def _table_requests(table_element: dict, section: ReportSection) -> list[dict]:
        """Column widths first, then cell text from the last cell backwards so
        earlier indices stay valid."""
        table_start = table_element["startIndex"]
        requests = [
            {
                "updateTableColumnProperties": {
                    "tableStartLocation": {"index": table_start},
                    "columnIndices": [col],
                    "tableColumnProperties": {
                        "widthType": "FIXED_WIDTH",
                        "width": {"magnitude": width, "unit": "PT"},
                    },
                    "fields": "width,widthType",
                }
            }
            for col, width in enumerate(section.column_widths)
        ]

        cell_writes = []
        for row_index, row in enumerate(table_element["table"]["tableRows"]):
            for col_index, cell in enumerate(row["tableCells"]):
                spec = section.rows[row_index][col_index]
                if not spec.text:
                    continue
                cell_start = cell["content"][0]["startIndex"]
                cell_writes.append((cell_start, spec))

        for cell_start, spec in sorted(cell_writes, key=lambda w: w[0], reverse=True):
            requests.extend(_cell_requests(cell_start, spec.text, spec.bold, spec.font_size))

        if len(section.rows) > 1:
            requests.append({
                "updateTableCellStyle": {
                    "tableRange": {
                        "tableCellLocation": {
                            "tableStartLocation": {"index": table_start},
                            "rowIndex": 1,
                            "columnIndex": 0,
                        },
                        "rowSpan": len(section.rows) - 1,
                        "columnSpan": len(section.column_widths),
                    },
                    "tableCellStyle": {
                        "paddingLeft": {"magnitude": CELL_PADDING_PT, "unit": "PT"},
                    },
                    "fields": "paddingLeft",
                }
            })
        return requests
