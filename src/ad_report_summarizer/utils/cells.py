"""Cell addressing and numeric display helpers.

Coordinates are zero-based ``(row, col)`` pairs throughout; addresses are
the usual spreadsheet "A1" notation. Column letters use bijective base-26
(there is no zero digit), so index 26 is "AA" rather than "BA".
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

_ADDRESS_RE = re.compile(r"^\$?([A-Za-z]+)\$?([0-9]+)$")

# Unit suffixes that may follow a rendered number in the report layout.
_SUFFIX = r"(?=%|円|件|$|\s)"
_ZERO_DECIMALS_RE = re.compile(r"\.00+" + _SUFFIX)
_TRAILING_ZEROS_RE = re.compile(r"(\.\d*?[1-9])0+" + _SUFFIX)
_DANGLING_POINT_RE = re.compile(r"\." + _SUFFIX)

UNTRUSTWORTHY_VALUES = frozenset({"", "0", "0%"})


def column_label(index: int) -> str:
    """Convert a zero-based column index to its letter label.

    >>> column_label(0), column_label(25), column_label(26), column_label(702)
    ('A', 'Z', 'AA', 'AAA')
    """
    if index < 0:
        raise ValueError(f"Column index must be non-negative, got {index}")

    label = ""
    while index >= 0:
        label = chr(index % 26 + ord("A")) + label
        index = index // 26 - 1
    return label


def column_index(label: str) -> int:
    """Convert a column label such as "AF" back to its zero-based index."""
    if not label or not label.isalpha() or not label.isascii():
        raise ValueError(f"Invalid column label: {label!r}")

    number = 0
    for char in label.upper():
        number = number * 26 + (ord(char) - ord("A") + 1)
    return number - 1


def encode_address(row: int, col: int) -> str:
    """Build an "A1" address from zero-based coordinates."""
    if row < 0:
        raise ValueError(f"Row index must be non-negative, got {row}")
    return f"{column_label(col)}{row + 1}"


def decode_address(address: str) -> tuple[int, int]:
    """Parse an "A1" address into zero-based ``(row, col)``."""
    match = _ADDRESS_RE.match(address.strip())
    if match is None:
        raise ValueError(f"Invalid cell address: {address!r}")

    letters, digits = match.groups()
    row = int(digits)
    if row < 1:
        raise ValueError(f"Invalid cell address: {address!r}")
    return row - 1, column_index(letters)


@dataclass(frozen=True)
class CellRange:
    """Inclusive rectangle of zero-based coordinates."""

    start_row: int
    start_col: int
    end_row: int
    end_col: int

    def iter_coordinates(self) -> Iterator[tuple[int, int]]:
        """Yield coordinates row by row, left to right within a row."""
        for row in range(self.start_row, self.end_row + 1):
            for col in range(self.start_col, self.end_col + 1):
                yield row, col

    @property
    def cell_count(self) -> int:
        return (self.end_row - self.start_row + 1) * (
            self.end_col - self.start_col + 1
        )


def decode_range(ref: str) -> CellRange:
    """Parse a range reference like "A1:Z100" (or a single address)."""
    start, _, end = ref.partition(":")
    start_row, start_col = decode_address(start)
    end_row, end_col = decode_address(end) if end else (start_row, start_col)
    return CellRange(
        start_row=min(start_row, end_row),
        start_col=min(start_col, end_col),
        end_row=max(start_row, end_row),
        end_col=max(start_col, end_col),
    )


def normalize_numeric_display(value: Any) -> Any:
    """Strip rendering noise from a numeric display string.

    Non-string values are returned unchanged. For strings, trailing ".00",
    trailing zeros after a significant decimal and a dangling decimal point
    are removed wherever they sit before a unit suffix, whitespace or the
    end of the string. Magnitudes are never changed.

    >>> normalize_numeric_display("100.00%")
    '100%'
    >>> normalize_numeric_display("12.340円")
    '12.34円'
    """
    if not isinstance(value, str):
        return value

    value = _ZERO_DECIMALS_RE.sub("", value)
    value = _TRAILING_ZEROS_RE.sub(r"\1", value)
    return _DANGLING_POINT_RE.sub("", value)


def is_untrustworthy(value: str | None) -> bool:
    """Return True for values indistinguishable from an unpopulated cell."""
    return value is None or value in UNTRUSTWORTHY_VALUES
