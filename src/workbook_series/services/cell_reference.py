"""A1 address algebra and single-cell / range text helpers.

Addresses are 0-indexed ``(row, column)`` pairs internally and A1 strings
externally: ``decode_cell("E23") == CellAddress(row=22, column=4)``.
"""

from __future__ import annotations

from typing import Any, NamedTuple

from openpyxl.utils.cell import (
    column_index_from_string,
    coordinate_from_string,
    get_column_letter,
    range_boundaries,
)
from openpyxl.utils.exceptions import CellCoordinatesException

from workbook_series.utils.exceptions import InvalidCellReferenceError
from workbook_series.workbook_document import WorkbookCell, WorkbookSheet


class CellAddress(NamedTuple):
    """0-indexed cell position."""

    row: int
    column: int

    def to_a1(self) -> str:
        return encode_cell(self.row, self.column)

    def shifted(self, columns: int) -> CellAddress:
        return CellAddress(self.row, self.column + columns)


def column_to_letters(column: int) -> str:
    """Convert a 0-indexed column to letters (0 -> "A", 26 -> "AA")."""
    try:
        return get_column_letter(column + 1)
    except ValueError as e:
        raise InvalidCellReferenceError(str(column)) from e


def letters_to_column(letters: str) -> int:
    """Convert column letters to a 0-indexed column ("A" -> 0)."""
    try:
        return column_index_from_string(letters.strip().upper()) - 1
    except ValueError as e:
        raise InvalidCellReferenceError(letters) from e


def decode_cell(address: str) -> CellAddress:
    """Parse an A1 reference (``$`` markers allowed) into a CellAddress."""
    try:
        letters, row = coordinate_from_string(address.strip().upper())
    except (CellCoordinatesException, ValueError, AttributeError) as e:
        raise InvalidCellReferenceError(str(address)) from e
    return CellAddress(row - 1, letters_to_column(letters))


def encode_cell(row: int, column: int) -> str:
    if row < 0:
        raise InvalidCellReferenceError(f"row {row}")
    return f"{column_to_letters(column)}{row + 1}"


def decode_range(reference: str) -> tuple[CellAddress, CellAddress]:
    """Parse ``"B5:C5"`` into its start and end addresses.

    A single address is treated as a one-cell range.
    """
    try:
        min_col, min_row, max_col, max_row = range_boundaries(
            reference.strip().upper()
        )
    except (ValueError, TypeError, AttributeError) as e:
        raise InvalidCellReferenceError(str(reference)) from e
    if None in (min_col, min_row, max_col, max_row):
        # whole-row / whole-column references have no bounded cell span
        raise InvalidCellReferenceError(reference)
    return (
        CellAddress(min_row - 1, min_col - 1),
        CellAddress(max_row - 1, max_col - 1),
    )


def format_range(start: CellAddress, end: CellAddress) -> str:
    return f"{start.to_a1()}:{end.to_a1()}"


def stringify_value(value: Any) -> str:
    """Render a raw cell value as text, without a trailing ``.0`` on whole floats."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_cell(sheet: WorkbookSheet, address: str | CellAddress) -> WorkbookCell | None:
    if isinstance(address, str):
        address = decode_cell(address)
    return sheet.cell(address.row, address.column)


def get_cell_text(sheet: WorkbookSheet, address: str | CellAddress) -> str:
    """Text of one cell; empty when the cell is absent or its value is falsy."""
    cell = get_cell(sheet, address)
    if cell is None or not cell.value:
        return ""
    return stringify_value(cell.value)


def get_range_text_joined(sheet: WorkbookSheet, reference: str) -> str:
    """Join the non-empty cell texts of a range, row by row, with single spaces.

    Used for labels split across merged cells, e.g. ``"B5:C5"``.
    """
    start, end = decode_range(reference)
    parts = []
    for row in range(start.row, end.row + 1):
        for column in range(start.column, end.column + 1):
            cell = sheet.cell(row, column)
            if cell is not None and cell.value:
                parts.append(stringify_value(cell.value))
    return " ".join(parts)
