from __future__ import annotations

import html
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import chardet
import pdfplumber
from docx import Document as DocxDocument
from docx.table import Table as DocxTable
from docx.text.paragraph import Paragraph as DocxParagraph
from openpyxl import load_workbook
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC_MIME = "application/msword"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_MIME = "application/vnd.ms-excel"
XLSM_MIME = "application/vnd.ms-excel.sheet.macroEnabled.12"
TEXT_MIME = "text/plain"

WORD_MIME_TYPES = frozenset({DOCX_MIME, DOC_MIME})
SPREADSHEET_MIME_TYPES = frozenset({XLSX_MIME, XLS_MIME, XLSM_MIME})
TEXT_MIME_TYPES = frozenset({TEXT_MIME, "text/markdown", "text/csv"})
SUPPORTED_MIME_TYPES = frozenset({PDF_MIME}) | WORD_MIME_TYPES | SPREADSHEET_MIME_TYPES | TEXT_MIME_TYPES

MIME_BY_EXTENSION = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
    ".doc": DOC_MIME,
    ".xlsx": XLSX_MIME,
    ".xlsm": XLSM_MIME,
    ".xls": XLS_MIME,
    ".txt": TEXT_MIME,
    ".md": "text/markdown",
    ".csv": "text/csv",
}

HTML_OPEN, HTML_CLOSE = "[HTML_CONTENT]", "[/HTML_CONTENT]"
RAW_OPEN, RAW_CLOSE = "[RAW_TEXT]", "[/RAW_TEXT]"
_COMPOSITE_HTML = re.compile(r"\[HTML_CONTENT\]\n?(.*?)\n?\[/HTML_CONTENT\]", re.DOTALL)
_COMPOSITE_RAW = re.compile(r"\[RAW_TEXT\]\n?(.*?)\n?\[/RAW_TEXT\]", re.DOTALL)

_HEADING_PATTERNS = (
    re.compile(r"^[A-ZÁÉÍÓÚÑÜ][A-ZÁÉÍÓÚÑÜ\s]{5,}$"),
    re.compile(r"^\d+\.\s+[A-ZÁÉÍÓÚÑÜ]"),
    re.compile(r"^[IVX]+\.\s+"),
)
_DOCX_HEADING_STYLE = re.compile(r"^heading\s*(\d)", re.IGNORECASE)


class DocumentExtractionError(Exception):
    """Raised when a file cannot be turned into text; fatal for the document."""


class UnsupportedFormatError(DocumentExtractionError):
    pass


class DocumentDecodeError(DocumentExtractionError):
    pass


class ExtractionMetadata(BaseModel):
    pages: Optional[int] = None
    sheets: Optional[list[str]] = None
    sheet_count: Optional[int] = None
    sections: list[str] = Field(default_factory=list)
    word_count: int = 0


@dataclass
class ExtractionResult:
    text: str
    metadata: ExtractionMetadata
    has_tables: bool = False


@dataclass
class SheetGrid:
    name: str
    cells: list[list[str]] = field(default_factory=list)


def resolve_mime_type(filename: str | None, declared: str | None) -> str:
    """Prefer the declared type unless it is missing or generic."""
    declared = (declared or "").split(";")[0].strip().lower()
    if declared and declared != "application/octet-stream":
        return declared
    suffix = Path(filename or "").suffix.lower()
    return MIME_BY_EXTENSION.get(suffix, declared or "application/octet-stream")


def is_supported_mime_type(mime_type: str) -> bool:
    return mime_type in SUPPORTED_MIME_TYPES


def is_spreadsheet(mime_type: str, filename: str | None = None) -> bool:
    if mime_type in SPREADSHEET_MIME_TYPES:
        return True
    return Path(filename or "").suffix.lower() in {".xlsx", ".xlsm", ".xls"}


def compose_tagged_text(html_content: str, raw_text: str) -> str:
    return f"{HTML_OPEN}\n{html_content}\n{HTML_CLOSE}\n\n{RAW_OPEN}\n{raw_text}\n{RAW_CLOSE}"


def split_composite(text: str) -> tuple[str | None, str]:
    """Return ``(html, raw)`` for a tagged composite, ``(None, text)`` otherwise."""
    html_match = _COMPOSITE_HTML.search(text)
    raw_match = _COMPOSITE_RAW.search(text)
    if not html_match and not raw_match:
        return None, text
    html_part = html_match.group(1) if html_match else None
    raw_part = raw_match.group(1) if raw_match else ""
    return html_part, raw_part


def detect_tables_in_text(text: str) -> bool:
    consecutive = 0
    for line in text.split("\n"):
        if "\t" in line or "|" in line:
            consecutive += 1
            if consecutive >= 3:
                return True
        else:
            consecutive = 0
    return False


def extract_sections(text: str) -> list[str]:
    sections: list[str] = []
    for line in text.split("\n"):
        trimmed = line.strip()
        if not trimmed or len(trimmed) >= 100:
            continue
        if any(pattern.match(trimmed) for pattern in _HEADING_PATTERNS):
            sections.append(trimmed)
    return sections


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def load_sheet_grids(file_bytes: bytes) -> list[SheetGrid]:
    """Read every sheet into a rectangular grid of trimmed strings."""
    try:
        workbook = load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
    except Exception as exc:
        raise DocumentDecodeError(f"Could not read spreadsheet: {exc}") from exc

    grids: list[SheetGrid] = []
    try:
        for worksheet in workbook.worksheets:
            rows = [[cell_text(value) for value in row] for row in worksheet.iter_rows(values_only=True)]
            width = max((len(row) for row in rows), default=0)
            cells = [row + [""] * (width - len(row)) for row in rows]
            grids.append(SheetGrid(name=worksheet.title, cells=cells))
    finally:
        workbook.close()
    return grids


def _extract_pdf(file_bytes: bytes) -> tuple[str, ExtractionMetadata, bool]:
    try:
        with pdfplumber.open(io.BytesIO(file_bytes)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:
        raise DocumentDecodeError(f"Could not read PDF: {exc}") from exc
    text = "\n".join(pages)
    return text, ExtractionMetadata(pages=len(pages)), detect_tables_in_text(text)


def _docx_blocks(document):
    body = document.element.body
    for child in body.iterchildren():
        tag = child.tag.rsplit("}", 1)[-1]
        if tag == "p":
            yield DocxParagraph(child, document)
        elif tag == "tbl":
            yield DocxTable(child, document)


def _render_docx(document) -> tuple[str, str]:
    html_parts: list[str] = []
    text_parts: list[str] = []
    for block in _docx_blocks(document):
        if isinstance(block, DocxParagraph):
            content = block.text
            if not content.strip():
                continue
            style_name = block.style.name if block.style is not None else ""
            heading = _DOCX_HEADING_STYLE.match(style_name or "")
            if heading:
                level = min(max(int(heading.group(1)), 1), 6)
                html_parts.append(f"<h{level}>{html.escape(content)}</h{level}>")
            elif style_name == "Title":
                html_parts.append(f"<h1>{html.escape(content)}</h1>")
            else:
                html_parts.append(f"<p>{html.escape(content)}</p>")
            text_parts.append(content)
        else:
            html_rows: list[str] = []
            for row in block.rows:
                cells = [cell.text.strip() for cell in row.cells]
                html_rows.append("<tr>" + "".join(f"<td>{html.escape(cell)}</td>" for cell in cells) + "</tr>")
                text_parts.append("\t".join(cells))
            html_parts.append("<table>" + "".join(html_rows) + "</table>")
    return "\n".join(html_parts), "\n\n".join(text_parts)


def _extract_word(file_bytes: bytes) -> tuple[str, ExtractionMetadata, bool]:
    try:
        document = DocxDocument(io.BytesIO(file_bytes))
        html_content, raw_text = _render_docx(document)
    except Exception as exc:
        raise DocumentDecodeError(f"Could not read Word document: {exc}") from exc

    if "<table" in html_content:
        return compose_tagged_text(html_content, raw_text), ExtractionMetadata(), True
    return raw_text, ExtractionMetadata(), detect_tables_in_text(raw_text)


def sheet_to_html(grid: SheetGrid) -> str:
    rows = []
    for row in grid.cells:
        rows.append("<tr>" + "".join(f"<td>{html.escape(cell)}</td>" for cell in row) + "</tr>")
    return "<table>" + "".join(rows) + "</table>"


def sheet_to_text(grid: SheetGrid) -> str:
    return "\n".join("\t".join(row) for row in grid.cells if any(row))


def _extract_spreadsheet(file_bytes: bytes) -> tuple[str, ExtractionMetadata, bool]:
    grids = load_sheet_grids(file_bytes)
    all_html = ""
    all_text = ""
    for grid in grids:
        all_html += f"\n\n=== SHEET: {grid.name} ===\n{sheet_to_html(grid)}\n=== END SHEET ===\n"
        all_text += f"\n\n=== SHEET: {grid.name} ===\n{sheet_to_text(grid)}\n=== END SHEET ===\n"
    names = [grid.name for grid in grids]
    metadata = ExtractionMetadata(sheets=names, sheet_count=len(names))
    return compose_tagged_text(all_html, all_text), metadata, True


def _extract_plain_text(file_bytes: bytes) -> tuple[str, ExtractionMetadata, bool]:
    try:
        text = file_bytes.decode("utf-8")
    except UnicodeDecodeError:
        encoding = chardet.detect(file_bytes).get("encoding")
        if not encoding:
            raise DocumentDecodeError("Could not detect text encoding.")
        try:
            text = file_bytes.decode(encoding)
        except (LookupError, UnicodeDecodeError) as exc:
            raise DocumentDecodeError(f"Could not decode text as {encoding}: {exc}") from exc
    return text, ExtractionMetadata(), detect_tables_in_text(text)


def extract_document(file_bytes: bytes, mime_type: str) -> ExtractionResult:
    """Turn raw bytes into text plus coarse metadata.

    Word files with tables and all spreadsheets come back as a tagged composite
    (see ``compose_tagged_text``) so callers can recover both the HTML view and
    the plain-text view.
    """
    if mime_type == PDF_MIME:
        text, metadata, has_tables = _extract_pdf(file_bytes)
    elif mime_type in WORD_MIME_TYPES:
        text, metadata, has_tables = _extract_word(file_bytes)
    elif mime_type in SPREADSHEET_MIME_TYPES:
        text, metadata, has_tables = _extract_spreadsheet(file_bytes)
    elif mime_type in TEXT_MIME_TYPES:
        text, metadata, has_tables = _extract_plain_text(file_bytes)
    else:
        raise UnsupportedFormatError(f"Unsupported file type: {mime_type}")

    metadata.sections = extract_sections(text)
    metadata.word_count = len(text.split())
    logger.debug("Extracted %s characters (%s words) from %s", len(text), metadata.word_count, mime_type)
    return ExtractionResult(text=text, metadata=metadata, has_tables=has_tables)
