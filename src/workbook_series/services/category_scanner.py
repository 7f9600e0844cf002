"""Dynamic header-row scanning.

A header row is walked rightward from its anchor until a run of blank cells
says the data has ended. Date-like headers become short Spanish month-year
labels ("ene-24"); numeric rows can be scanned the same way in number mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from openpyxl.styles.numbers import is_date_format
from openpyxl.utils.datetime import from_excel

from workbook_series.services.cell_reference import (
    CellAddress,
    decode_cell,
    format_range,
    stringify_value,
)
from workbook_series.services.numeric import CoercionTally, normalize_number
from workbook_series.workbook_document import CellKind, WorkbookCell, WorkbookSheet

SPANISH_MONTHS: tuple[str, ...] = (
    "ene",
    "feb",
    "mar",
    "abr",
    "may",
    "jun",
    "jul",
    "ago",
    "sep",
    "oct",
    "nov",
    "dic",
)

DEFAULT_MAX_COLUMNS = 500
MIN_BLANK_THRESHOLD = 2


class ScanMode(str, Enum):
    CATEGORY = "category"
    NUMBER = "number"


def month_year_label(value: date) -> str:
    """Format a date as "mmm-yy" with Spanish month abbreviations."""
    return f"{SPANISH_MONTHS[value.month - 1]}-{value.year % 100:02d}"


def _as_date(cell: WorkbookCell) -> date | None:
    if cell.kind is CellKind.DATE and isinstance(cell.value, (datetime, date)):
        return cell.value
    if (
        cell.kind is CellKind.NUMBER
        and cell.number_format
        and is_date_format(cell.number_format)
    ):
        try:
            converted = from_excel(cell.value)
        except (ValueError, OverflowError, TypeError):
            return None
        if isinstance(converted, (datetime, date)):
            return converted
    return None


def format_category_label(cell: WorkbookCell | None) -> str:
    """Label text for a header cell.

    Dates, and serial numbers shown with a date format, become "mmm-yy";
    everything else is the raw value as text.
    """
    if cell is None or cell.value is None:
        return ""
    as_date = _as_date(cell)
    if as_date is not None:
        return month_year_label(as_date)
    return stringify_value(cell.value)


@dataclass(frozen=True)
class ScanResult:
    """Outcome of one rightward scan.

    ``values`` keeps the run of trailing blanks (as None) that triggered the
    stop; use :meth:`trimmed` for the meaningful prefix. ``last_non_blank``
    is the last column holding a value, or the start address when the whole
    scanned span was blank.
    """

    values: tuple[str | float | int | None, ...]
    start: CellAddress
    last_non_blank: CellAddress
    has_values: bool

    @property
    def last_non_blank_address(self) -> str:
        return self.last_non_blank.to_a1()

    @property
    def meaningful_length(self) -> int:
        if not self.has_values:
            return 0
        return self.last_non_blank.column - self.start.column + 1

    @property
    def trailing_blank_count(self) -> int:
        return len(self.values) - self.meaningful_length

    @property
    def consumed_range(self) -> str:
        return format_range(self.start, self.last_non_blank)

    def trimmed(self) -> list[str | float | int | None]:
        return list(self.values[: self.meaningful_length])


def scan_row(
    sheet: WorkbookSheet,
    start_address: str | CellAddress,
    mode: ScanMode = ScanMode.CATEGORY,
    blank_threshold: int = 3,
    max_columns: int = DEFAULT_MAX_COLUMNS,
    tally: CoercionTally | None = None,
) -> ScanResult:
    """Walk a row rightward until ``blank_threshold`` consecutive blanks.

    A cell is blank when it is absent or its value is None or "". The
    threshold is never below 2, and no more than ``max_columns`` cells are
    visited whatever the threshold.

    Args:
        sheet: Sheet to read.
        start_address: First cell of the row span.
        mode: ``CATEGORY`` formats labels; ``NUMBER`` normalizes values.
        blank_threshold: Consecutive blanks that end the scan.
        max_columns: Hard cap on visited columns.
        tally: Optional counter of number-mode coercions.
    """
    start = (
        decode_cell(start_address) if isinstance(start_address, str) else start_address
    )
    threshold = max(MIN_BLANK_THRESHOLD, blank_threshold)
    normalize = tally.normalize if tally is not None else normalize_number

    values: list[str | float | int | None] = []
    consecutive_blanks = 0
    last_column = start.column
    has_values = False

    for offset in range(max_columns):
        column = start.column + offset
        cell = sheet.cell(start.row, column)
        if cell is None or cell.is_blank:
            consecutive_blanks += 1
            values.append(None)
        else:
            consecutive_blanks = 0
            has_values = True
            last_column = column
            if mode is ScanMode.CATEGORY:
                values.append(format_category_label(cell))
            else:
                values.append(normalize(cell.value))

        if consecutive_blanks >= threshold:
            break

    return ScanResult(
        values=tuple(values),
        start=start,
        last_non_blank=CellAddress(start.row, last_column),
        has_values=has_values,
    )
