"""Direct cell reads at fixed report coordinates."""

from __future__ import annotations

from ad_report_summarizer.utils.cells import normalize_numeric_display
from ad_report_summarizer.workbook import Workbook, resolve_sheet


def read_cell(workbook: Workbook, sheet_hint: str, address: str) -> str:
    """Return the normalized display value at ``address``.

    The sheet is resolved by name containment. A missing sheet or cell
    yields ``""``; absence is expected and handled by the caller's fallback.
    """
    sheet = resolve_sheet(workbook, sheet_hint)
    if sheet is None:
        return ""
    cell = sheet.get(address)
    if cell is None:
        return ""
    return normalize_numeric_display(cell.display_value)
