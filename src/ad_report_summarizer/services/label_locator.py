"""Label-search fallback for KPIs that moved away from their usual cell.

Report worksheets are maintained by hand, so a KPI is sometimes found a
few rows or columns away from its canonical address. The locator scans the
sheet's populated range for the KPI's caption and reads the neighbouring
value. The scan is row-major from the top-left corner: the topmost, then
leftmost, occurrence of a caption wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ad_report_summarizer.utils.cells import encode_address, normalize_numeric_display
from ad_report_summarizer.workbook import Workbook, resolve_sheet, stringify


class LabelDirection(str, Enum):
    """Where the value sits relative to its caption."""

    BELOW = "below"
    RIGHT = "right"


@dataclass(frozen=True)
class LabelMatch:
    """A value found next to a caption."""

    value: str
    address: str
    anchor_address: str


def find_by_label(
    workbook: Workbook,
    sheet_hint: str,
    label: str,
    direction: LabelDirection | str = LabelDirection.BELOW,
) -> LabelMatch | None:
    """Find ``label`` in the sheet and return the value next to it.

    Args:
        workbook: Parsed workbook.
        sheet_hint: Sheet name fragment, resolved like a direct read.
        label: Caption text; matched as a substring of each cell's raw value.
        direction: Whether the value is one row below or one column right.

    Returns:
        The neighbouring value (display-resolved and normalized, ``""`` when
        the neighbour is empty) with its address, or None when no cell in
        the scanned range contains the caption.
    """
    direction = LabelDirection(direction)
    sheet = resolve_sheet(workbook, sheet_hint)
    if sheet is None:
        return None

    for row, col in sheet.scan_range.iter_coordinates():
        cell = sheet.cell_at(row, col)
        if cell is None or label not in stringify(cell.value):
            continue

        if direction is LabelDirection.BELOW:
            target = (row + 1, col)
        else:
            target = (row, col + 1)

        neighbour = sheet.cell_at(*target)
        value = neighbour.display_value if neighbour is not None else ""
        return LabelMatch(
            value=normalize_numeric_display(value),
            address=encode_address(*target),
            anchor_address=encode_address(row, col),
        )

    return None
