from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Sequence

from bs4 import BeautifulSoup
from openpyxl.utils import get_column_letter
from pydantic import BaseModel

from .text_extraction import (
    SheetGrid,
    cell_text,
    extract_document,
    is_spreadsheet,
    load_sheet_grids,
    split_composite,
)

logger = logging.getLogger(__name__)

_BOLIVIANOS_PATTERN = re.compile(r"\bbs\b\.?|\bbolivianos\b", re.IGNORECASE)
_CALCULATION_PATTERN = re.compile(r"(.*?):\s*(\d+\.?\d*)%")
_ASCII_SEPARATOR = re.compile(r"^[+\-|=\s]+$")
_ALIGNMENT_CELL = re.compile(r"^:?-{3,}:?$")
_MARKDOWN_HEADER_SEPARATOR = re.compile(r"^\|[\s\-:]+\|")
_HEADING_TAG = re.compile(r"^h[1-6]$")


class Calculation(BaseModel):
    description: str
    value: str


class TableSource(BaseModel):
    sheet: Optional[str] = None
    range: Optional[str] = None
    page: Optional[int] = None


class TableMetadata(BaseModel):
    currency: Optional[str] = None
    calculations: Optional[list[Calculation]] = None
    source: Optional[TableSource] = None


@dataclass
class DetectedTable:
    title: str
    headers: list[str]
    rows: list[list[str]]
    metadata: TableMetadata = field(default_factory=TableMetadata)

    def fingerprint(self) -> str:
        payload = json.dumps([self.headers, self.rows], ensure_ascii=False)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class TableRegion:
    title: str
    headers: list[str]
    rows: list[list[str]]
    start_row: int
    end_row: int
    start_col: int
    end_col: int

    @property
    def a1_range(self) -> str:
        start = f"{get_column_letter(self.start_col + 1)}{self.start_row + 1}"
        end = f"{get_column_letter(self.end_col + 1)}{self.end_row + 1}"
        return f"{start}:{end}"


class TableStrategy(Protocol):
    name: str

    def detect(self, source) -> List[DetectedTable]:
        ...


def fit_row(row: Sequence[str], width: int) -> list[str]:
    cells = [cell.strip() for cell in row[:width]]
    return cells + [""] * (width - len(cells))


def _make_table(title: str, headers: list[str], rows: list[list[str]], metadata: TableMetadata | None = None) -> DetectedTable:
    width = len(headers)
    return DetectedTable(
        title=title.strip(),
        headers=[header.strip() for header in headers],
        rows=[fit_row(row, width) for row in rows],
        metadata=metadata or TableMetadata(),
    )


def _split_pipe_cells(line: str) -> list[str]:
    return [cell.strip() for cell in line.split("|") if cell.strip()]


def _is_rule_line(line: str) -> bool:
    if len(line) > 10 and _ASCII_SEPARATOR.match(line):
        return True
    # short borders and markdown alignment rows (|---|:--:|); "- | -" is data
    if "|" not in line and "+" not in line:
        return False
    cells = [cell.strip() for cell in re.split(r"[|+]", line) if cell.strip()]
    return bool(cells) and all(_ALIGNMENT_CELL.match(cell) for cell in cells)


def identify_table_regions(grid: Sequence[Sequence[str]]) -> list[TableRegion]:
    """Find header+body blocks in a sheet, scanning rows top to bottom."""
    regions: list[TableRegion] = []
    current: TableRegion | None = None
    title = ""

    for row_idx, raw_row in enumerate(grid):
        row = [cell_text(cell) for cell in raw_row]
        filled = [col for col, cell in enumerate(row) if cell]

        if current is None:
            if len(filled) == 1:
                title = row[filled[0]]
            elif len(filled) >= 2:
                start_col, end_col = filled[0], filled[-1]
                current = TableRegion(
                    title=title,
                    headers=row[start_col : end_col + 1],
                    rows=[],
                    start_row=row_idx,
                    end_row=row_idx,
                    start_col=start_col,
                    end_col=end_col,
                )
                title = ""
            continue

        span = fit_row(row[current.start_col : current.end_col + 1], current.end_col - current.start_col + 1)
        if any(span):
            current.rows.append(span)
            current.end_row = row_idx
        else:
            if current.rows:
                regions.append(current)
            current = None
            title = ""

    if current is not None and current.rows:
        regions.append(current)

    return regions


def detect_currency(cells: Iterable[str]) -> str | None:
    all_text = " ".join(cells)
    if _BOLIVIANOS_PATTERN.search(all_text):
        return "BOB"
    if "$" in all_text:
        return "USD"
    return None


def detect_calculations(rows: Iterable[Sequence[str]]) -> list[Calculation]:
    calculations: list[Calculation] = []
    for row in rows:
        match = _CALCULATION_PATTERN.search(" ".join(row))
        if match:
            calculations.append(Calculation(description=match.group(1).strip(), value=f"{match.group(2)}%"))
    return calculations


class GridTableStrategy:
    name = "grid"

    def detect(self, source: SheetGrid) -> List[DetectedTable]:
        tables: List[DetectedTable] = []
        for region in identify_table_regions(source.cells):
            all_cells = list(region.headers) + [cell for row in region.rows for cell in row]
            calculations = detect_calculations(region.rows)
            metadata = TableMetadata(
                currency=detect_currency(all_cells),
                calculations=calculations or None,
                source=TableSource(sheet=source.name, range=region.a1_range),
            )
            tables.append(_make_table(region.title or source.name, region.headers, region.rows, metadata))
        return tables


class HtmlTableStrategy:
    name = "html"

    def detect(self, source: str) -> List[DetectedTable]:
        soup = BeautifulSoup(source, "html.parser")
        tables: List[DetectedTable] = []
        for table in soup.find_all("table"):
            headers: list[str] = []
            rows: list[list[str]] = []
            for tr in table.find_all("tr"):
                if tr.find_parent("table") is not table:
                    continue
                header_cells = tr.find_all("th", recursive=False)
                if header_cells:
                    headers.extend(cell.get_text(" ", strip=True) for cell in header_cells)
                    continue
                cells = [cell.get_text(" ", strip=True) for cell in tr.find_all("td", recursive=False)]
                if cells:
                    rows.append(cells)

            if not headers and rows:
                headers, rows = rows[0], rows[1:]
            if not rows:
                continue

            heading = table.find_previous(_HEADING_TAG)
            title = heading.get_text(" ", strip=True) if heading is not None else ""
            tables.append(_make_table(title, headers, rows))
        return tables


class AsciiPipeTableStrategy:
    name = "ascii"

    def detect(self, source: str) -> List[DetectedTable]:
        tables: List[DetectedTable] = []
        headers: list[str] | None = None
        rows: list[list[str]] = []
        title = ""

        for raw_line in source.split("\n"):
            line = raw_line.strip()
            if _is_rule_line(line):
                continue

            cells = _split_pipe_cells(line)
            if len(cells) >= 2:
                if headers is None:
                    headers, rows = cells, []
                else:
                    rows.append(cells)
                continue

            if headers is not None:
                # an open header waits for its first body row
                if not rows:
                    continue
                tables.append(_make_table(title, headers, rows))
                headers, rows, title = None, [], ""
            if line and "|" not in line:
                title = line

        if headers is not None and rows:
            tables.append(_make_table(title, headers, rows))
        return tables


class MarkdownTableStrategy:
    name = "markdown"

    def detect(self, source: str) -> List[DetectedTable]:
        tables: List[DetectedTable] = []
        lines = [line.strip() for line in source.split("\n")]
        i = 0
        while i < len(lines) - 1:
            line = lines[i]
            if "|" not in line or not _MARKDOWN_HEADER_SEPARATOR.match(lines[i + 1]):
                i += 1
                continue

            headers = _split_pipe_cells(line)
            rows: list[list[str]] = []
            j = i + 2
            while j < len(lines) and "|" in lines[j]:
                cells = _split_pipe_cells(lines[j])
                if cells:
                    rows.append(cells)
                j += 1

            if rows:
                title = ""
                if i > 0 and lines[i - 1] and "|" not in lines[i - 1]:
                    title = re.sub(r"^#+\s*", "", lines[i - 1])
                tables.append(_make_table(title, headers, rows))
            i = j
        return tables


def dedupe_tables(tables: Iterable[DetectedTable]) -> list[DetectedTable]:
    """Drop repeated detections of the same headers and rows, keeping the first."""
    seen: dict[str, DetectedTable] = {}
    for table in tables:
        key = table.fingerprint()
        existing = seen.get(key)
        if existing is None:
            seen[key] = table
        elif not existing.title and table.title:
            existing.title = table.title
    return list(seen.values())


def extract_tables_from_grids(grids: Iterable[SheetGrid]) -> list[DetectedTable]:
    strategy = GridTableStrategy()
    tables: list[DetectedTable] = []
    for grid in grids:
        tables.extend(strategy.detect(grid))
    return tables


def extract_tables_from_text(text: str) -> list[DetectedTable]:
    html_part, raw_part = split_composite(text)
    if html_part is None and "<table" in text:
        html_part = text

    tables: list[DetectedTable] = []
    if html_part:
        tables.extend(HtmlTableStrategy().detect(html_part))
    for strategy in (AsciiPipeTableStrategy(), MarkdownTableStrategy()):
        tables.extend(strategy.detect(raw_part))
    return dedupe_tables(tables)


def extract_tables_from_document(
    file_bytes: bytes,
    mime_type: str,
    filename: str,
    text: str | None = None,
) -> list[DetectedTable]:
    """Detect tables in an uploaded file.

    Spreadsheets are scanned sheet by sheet on their cell grid. Every other
    format goes through the text strategies, reusing ``text`` when the caller
    already extracted it.
    """
    if is_spreadsheet(mime_type, filename):
        tables = extract_tables_from_grids(load_sheet_grids(file_bytes))
    else:
        if text is None:
            text = extract_document(file_bytes, mime_type).text
        tables = extract_tables_from_text(text)
    logger.debug("Detected %s tables in %s", len(tables), filename)
    return tables
