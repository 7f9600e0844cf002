"""Locate anchor cells by text pattern instead of a fixed address."""

from __future__ import annotations

from workbook_series.services.category_scanner import format_category_label
from workbook_series.services.cell_reference import CellAddress, decode_cell
from workbook_series.workbook_document import WorkbookSheet


def find_pattern_matches(sheet: WorkbookSheet, pattern: str) -> list[CellAddress]:
    """All cells whose display text contains ``pattern``, case-insensitively.

    Matches come back in document order. Date cells are matched on their
    month-year label, so a pattern like "ene-16" finds a date header.
    """
    needle = pattern.strip().lower()
    if not needle:
        return []
    return [
        CellAddress(row, column)
        for row, column, cell in sheet.iter_cells()
        if needle in format_category_label(cell).lower()
    ]


def find_pattern_anchor(
    sheet: WorkbookSheet, pattern: str, preferred_row: int
) -> CellAddress | None:
    """First match on ``preferred_row``, else the first match anywhere."""
    matches = find_pattern_matches(sheet, pattern)
    for match in matches:
        if match.row == preferred_row:
            return match
    return matches[0] if matches else None


def resolve_pattern_anchor(
    sheet: WorkbookSheet,
    pattern: str | None,
    fallback: str | CellAddress,
) -> CellAddress:
    """Resolve an anchor: same-row match first, then first match, then fallback."""
    fallback_address = decode_cell(fallback) if isinstance(fallback, str) else fallback
    if not pattern:
        return fallback_address
    match = find_pattern_anchor(sheet, pattern, fallback_address.row)
    return match if match is not None else fallback_address
