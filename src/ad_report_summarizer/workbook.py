"""Dataclasses representing a parsed report workbook."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any

from ad_report_summarizer.utils.cells import CellRange, decode_address, decode_range

DEFAULT_SCAN_RANGE = "A1:Z100"


@dataclass(frozen=True)
class Cell:
    """A single worksheet cell.

    ``value`` is the raw cached value (number, string, date or bool) and
    ``display`` the text the authoring application would have shown, when
    it could be rendered.
    """

    value: Any
    display: str | None = None

    @property
    def display_value(self) -> str:
        """Prefer the rendered text, else stringify the raw value."""
        if self.display:
            return self.display
        return stringify(self.value)


def stringify(value: Any) -> str:
    """Stringify a raw cell value; ``None`` becomes the empty string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class Sheet:
    """A sparse worksheet keyed by zero-based ``(row, col)``."""

    name: str
    cells: dict[tuple[int, int], Cell] = field(default_factory=dict)
    dimension: str | None = None

    def get(self, address: str) -> Cell | None:
        return self.cells.get(decode_address(address))

    def cell_at(self, row: int, col: int) -> Cell | None:
        return self.cells.get((row, col))

    @property
    def scan_range(self) -> CellRange:
        """The declared populated rectangle, or a generous default."""
        return decode_range(self.dimension or DEFAULT_SCAN_RANGE)


@dataclass(frozen=True)
class Workbook:
    """An ordered collection of sheets, in authored order."""

    sheets: tuple[Sheet, ...]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def sheet_names(self) -> list[str]:
        return [sheet.name for sheet in self.sheets]

    def get_sheet(self, name: str) -> Sheet | None:
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        return None


def resolve_sheet_name(workbook: Workbook, hint: str) -> str:
    """Return the first sheet whose trimmed name contains ``hint``.

    Falls back to the literal hint, which may name no sheet at all.
    """
    for name in workbook.sheet_names:
        if hint in name.strip():
            return name
    return hint


def resolve_sheet(workbook: Workbook, hint: str) -> Sheet | None:
    return workbook.get_sheet(resolve_sheet_name(workbook, hint))


def find_summary_sheet(workbook: Workbook, marker: str) -> str:
    """Name of the summary sheet: first name containing ``marker``, else the first sheet."""
    for name in workbook.sheet_names:
        if marker in name:
            return name
    if not workbook.sheets:
        raise ValueError("Workbook contains no sheets")
    return workbook.sheets[0].name
