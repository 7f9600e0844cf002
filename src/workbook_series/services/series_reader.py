"""Fixed-length numeric row reads."""

from __future__ import annotations

from workbook_series.services.cell_reference import CellAddress, decode_cell
from workbook_series.services.numeric import CoercionTally, normalize_number
from workbook_series.workbook_document import WorkbookSheet


def read_series(
    sheet: WorkbookSheet,
    start_address: str | CellAddress,
    length: int,
    tally: CoercionTally | None = None,
) -> list[float | int | None]:
    """Read exactly ``length`` cells rightward from ``start_address``.

    There is no blank-run termination here: the category count decides the
    width, so blanks inside or at the end of the row simply become None.
    """
    start = (
        decode_cell(start_address) if isinstance(start_address, str) else start_address
    )
    normalize = tally.normalize if tally is not None else normalize_number
    values: list[float | int | None] = []
    for offset in range(max(length, 0)):
        cell = sheet.cell(start.row, start.column + offset)
        values.append(None if cell is None else normalize(cell.value))
    return values
