from __future__ import annotations

import io
import zipfile
from collections.abc import Callable
from typing import Any

import openpyxl
import pytest

from ad_report_summarizer.utils.cells import decode_address
from ad_report_summarizer.workbook import Cell, Sheet, Workbook

SUMMARY_SHEET = "月次サマリー"

# Cell values are either raw values or (value, number_format) pairs.
SheetSpec = dict[str, Any]


def _write_xlsx(sheets: dict[str, SheetSpec]) -> bytes:
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name, cells in sheets.items():
        ws = wb.create_sheet(title=name)
        for address, spec in cells.items():
            value, number_format = spec if isinstance(spec, tuple) else (spec, None)
            ws[address] = value
            if number_format:
                ws[address].number_format = number_format

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _report_cells() -> SheetSpec:
    return {
        "E7": "目標達成率",
        "E8": (1.2, "0%"),
        "R7": "コンバージョン数",
        "R8": 5,
        "AF7": "コンバージョン率",
        "AF8": (0.0123, "0.00%"),
        "AT7": "コンバージョン単価",
        "AT8": (3400, '#,##0"円"'),
        "R10": "検索",
        "Z10": 3,
        "R11": "リマーケティング",
        "Z11": 2,
        "R12": "ディスプレイ",
        "Z12": 0,
        "AF18": "クリック率",
        "AF19": (0.015, "0.00%"),
        "BH37": "目標値",
        "BH38": 3,
    }


@pytest.fixture
def make_xlsx() -> Callable[[dict[str, SheetSpec]], bytes]:
    """Factory building .xlsx bytes from ``{sheet: {address: value}}``."""
    return _write_xlsx


@pytest.fixture
def report_cells() -> SheetSpec:
    """Summary sheet of a healthy, recalculated monthly report."""
    return _report_cells()


@pytest.fixture
def report_xlsx() -> bytes:
    return _write_xlsx({"日別データ": {"A1": "日付"}, SUMMARY_SHEET: _report_cells()})


@pytest.fixture
def stale_report_xlsx() -> bytes:
    """A report as downloaded: formulas present but no cached values."""
    cells = _report_cells()
    cells.update({"E8": "=R8/BH38", "R8": "=SUM(Z10:Z15)", "AT8": "=1000*3"})
    for caption in ("E7", "R7", "AT7"):
        del cells[caption]
    return _write_xlsx({SUMMARY_SHEET: cells})


@pytest.fixture
def truncated_xlsx(report_xlsx: bytes) -> bytes:
    """A valid archive whose worksheet XML was cut off mid-document."""
    source = zipfile.ZipFile(io.BytesIO(report_xlsx))
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as target:
        for info in source.infolist():
            data = source.read(info.filename)
            if info.filename.startswith("xl/worksheets/"):
                data = data[: len(data) // 2]
            target.writestr(info, data)
    return buffer.getvalue()


def build_sheet(name: str, cells: dict[str, Any]) -> Sheet:
    """Build a Sheet from ``{address: value}`` or ``{address: Cell}``."""
    parsed = {
        decode_address(address): spec if isinstance(spec, Cell) else Cell(value=spec)
        for address, spec in cells.items()
    }
    return Sheet(name=name, cells=parsed)


@pytest.fixture
def make_workbook() -> Callable[..., Workbook]:
    """Factory building an in-memory Workbook, one sheet per keyword."""

    def _make(sheets: dict[str, dict[str, Any]]) -> Workbook:
        return Workbook(
            sheets=tuple(build_sheet(name, cells) for name, cells in sheets.items())
        )

    return _make
