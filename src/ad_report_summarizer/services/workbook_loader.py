"""Native .xlsx parser producing the sparse Workbook model.

Values are read with ``data_only=True`` so every cell carries whatever the
authoring application last calculated and saved. Formulas are never
evaluated here; a workbook that was never recalculated simply yields empty
cells, which the quality gate later detects.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import load_workbook
from openpyxl.worksheet.worksheet import Worksheet

from ad_report_summarizer.config import settings
from ad_report_summarizer.utils.cells import column_label
from ad_report_summarizer.utils.exceptions import (
    FileTooLargeError,
    UnsupportedFormatError,
    WorkbookParseError,
)
from ad_report_summarizer.utils.logging import get_logger
from ad_report_summarizer.workbook import Cell, Sheet, Workbook

logger = get_logger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"
_NUMBER_CODES = set("0#?.,")


@dataclass
class WorkbookLoadOptions:
    """Options controlling workbook loading."""

    max_size_bytes: int | None = None
    render_display: bool = True


class WorkbookLoader:
    """Load .xlsx uploads into the Workbook model using openpyxl."""

    def __init__(self, options: WorkbookLoadOptions | None = None) -> None:
        self.options = options or WorkbookLoadOptions()

    @property
    def max_size_bytes(self) -> int:
        return self.options.max_size_bytes or settings.max_file_size_bytes

    def load_path(self, file_path: Path) -> Workbook:
        """Load a workbook from disk."""
        if not file_path.exists():
            raise WorkbookParseError(
                f"File not found: {file_path}", filename=file_path.name
            )
        return self.load_bytes(file_path.read_bytes(), filename=file_path.name)

    def load_bytes(self, data: bytes, filename: str) -> Workbook:
        """Load a workbook from uploaded bytes.

        Raises:
            UnsupportedFormatError: If the file is not an .xlsx workbook.
            FileTooLargeError: If the upload exceeds the configured limit.
            WorkbookParseError: If the archive cannot be read.
        """
        if Path(filename).suffix.lower() != ".xlsx":
            raise UnsupportedFormatError(
                filename=filename, detected_format=Path(filename).suffix or None
            )
        if len(data) > self.max_size_bytes:
            raise FileTooLargeError(
                file_size=len(data), max_size=self.max_size_bytes, filename=filename
            )
        if not data.startswith(_ZIP_MAGIC):
            raise WorkbookParseError(
                filename=filename, details={"reason": "not a zip archive"}
            )

        try:
            wb = load_workbook(io.BytesIO(data), data_only=True, read_only=False)
        except Exception as e:
            logger.warning(
                "Workbook could not be parsed",
                filename=filename,
                error=f"{type(e).__name__}: {e}",
            )
            raise WorkbookParseError(
                filename=filename, details={"reason": str(e)}
            ) from e

        sheets = tuple(self._read_sheet(ws) for ws in wb.worksheets)
        workbook = Workbook(
            sheets=sheets,
            metadata={"filename": filename, "sheet_names": [s.name for s in sheets]},
        )
        logger.info(
            "Workbook loaded",
            filename=filename,
            sheets=len(sheets),
            cells=sum(len(s.cells) for s in sheets),
        )
        return workbook

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _read_sheet(self, ws: Worksheet) -> Sheet:
        cells: dict[tuple[int, int], Cell] = {}
        for row in ws.iter_rows():
            for cell in row:
                if cell.value is None:
                    continue
                display = (
                    render_display(cell.value, cell.number_format)
                    if self.options.render_display
                    else None
                )
                cells[(cell.row - 1, cell.column - 1)] = Cell(
                    value=cell.value, display=display
                )
        return Sheet(name=ws.title, cells=cells, dimension=ws.dimensions)


def render_display(value: Any, number_format: str | None) -> str | None:
    """Render a cached value the way its number format displays it.

    Covers the formats report templates use: General, fixed decimals,
    thousands separators, percentages, currency brackets and quoted unit
    suffixes. Returns None when the value should just be stringified.
    """
    if value is None or isinstance(value, (str, bool)):
        return None
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%Y/%m/%d")
        return value.strftime("%Y/%m/%d %H:%M")
    if isinstance(value, date):
        return value.strftime("%Y/%m/%d")
    if not isinstance(value, (int, float)):
        return None

    fmt = number_format or "General"
    if fmt.lower() == "general":
        return _format_general(value)

    sections = _split_sections(fmt)
    section = sections[0]
    negative = value < 0
    if negative and len(sections) > 1:
        section = sections[1]
    elif negative:
        section = "-" + section if not section.startswith("-") else section

    try:
        return _apply_section(abs(value), section)
    except ValueError:
        return None


def _format_general(value: int | float) -> str:
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.10g}"
    return str(value)


def _split_sections(fmt: str) -> list[str]:
    sections: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in fmt:
        if char == '"':
            in_quotes = not in_quotes
        if char == ";" and not in_quotes:
            sections.append("".join(current))
            current = []
            continue
        current.append(char)
    sections.append("".join(current))
    return sections


def _tokenize(section: str) -> list[tuple[str, str]]:
    """Split a format section into code, General and literal tokens."""
    tokens: list[tuple[str, str]] = []
    i = 0
    while i < len(section):
        char = section[i]
        if char == '"':
            end = section.find('"', i + 1)
            if end == -1:
                raise ValueError(f"Unterminated literal in format: {section!r}")
            tokens.append(("literal", section[i + 1 : end]))
            i = end + 1
        elif char == "\\" and i + 1 < len(section):
            tokens.append(("literal", section[i + 1]))
            i += 2
        elif char in "_*" and i + 1 < len(section):
            i += 2
        elif char == "[":
            end = section.find("]", i)
            if end == -1:
                raise ValueError(f"Unterminated bracket in format: {section!r}")
            body = section[i + 1 : end]
            if body.startswith("$"):
                tokens.append(("literal", body[1:].split("-", 1)[0]))
            i = end + 1
        elif section[i : i + 7].lower() == "general":
            tokens.append(("general", ""))
            i += 7
        elif char == "@":
            raise ValueError("Text format applied to a number")
        elif char in _NUMBER_CODES:
            tokens.append(("code", char))
            i += 1
        else:
            tokens.append(("literal", char))
            i += 1
    return tokens


def _apply_section(value: float | int, section: str) -> str:
    tokens = _tokenize(section)
    if any(kind == "general" for kind, _ in tokens):
        # General with unit literals, e.g. General"件"
        return "".join(
            _format_general(value) if kind == "general" else text
            for kind, text in tokens
        )

    code_positions = [n for n, (kind, _) in enumerate(tokens) if kind == "code"]
    if not code_positions:
        return "".join(text for _, text in tokens)

    first = code_positions[0]
    code = "".join(text for kind, text in tokens if kind == "code")
    prefix = "".join(text for _, text in tokens[:first])
    suffix = "".join(text for kind, text in tokens[first:] if kind == "literal")

    if "%" in prefix or "%" in suffix:
        value = value * 100

    integer_part, _, decimal_part = code.partition(".")
    max_decimals = sum(1 for c in decimal_part if c in "0#?")
    min_decimals = decimal_part.count("0")
    thousands = "," in integer_part.strip(",")

    text = f"{value:,.{max_decimals}f}" if thousands else f"{value:.{max_decimals}f}"
    if max_decimals > min_decimals:
        whole, _, fraction = text.partition(".")
        fraction = fraction.rstrip("0")
        if len(fraction) < min_decimals:
            fraction = fraction.ljust(min_decimals, "0")
        text = f"{whole}.{fraction}" if fraction else whole
    return f"{prefix}{text}{suffix}"


def sheet_preview(sheet: Sheet, max_rows: int | None = None) -> pd.DataFrame:
    """Tabulate a sheet's display values for previewing.

    Columns are named with spreadsheet letters and empty cells are ``""``.
    """
    limit = max_rows or settings.preview_max_rows
    rng = sheet.scan_range
    last_row = min(rng.end_row, rng.start_row + limit - 1)
    columns = [column_label(c) for c in range(rng.start_col, rng.end_col + 1)]

    rows: list[list[str]] = []
    for row in range(rng.start_row, last_row + 1):
        values = []
        for col in range(rng.start_col, rng.end_col + 1):
            cell = sheet.cell_at(row, col)
            values.append(cell.display_value if cell is not None else "")
        rows.append(values)

    frame = pd.DataFrame(rows, columns=columns)
    frame.index = pd.RangeIndex(rng.start_row + 1, rng.start_row + 1 + len(rows))
    return frame
