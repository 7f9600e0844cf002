from __future__ import annotations

import io
import zipfile
from collections.abc import Callable, Iterator, Mapping
from typing import Any

import pytest
from openpyxl import Workbook

from workbook_series.services.workbook_loader import WorkbookLoader
from workbook_series.utils.logging import clear_context
from workbook_series.workbook_document import WorkbookDocument, WorkbookSheet

SheetCells = Mapping[str, Any]


def build_xlsx(
    sheets: Mapping[str, SheetCells],
    number_formats: Mapping[tuple[str, str], str] | None = None,
) -> bytes:
    """Write an .xlsx workbook in memory.

    ``sheets`` maps sheet titles to ``{"A1": value}`` dictionaries. Strings
    starting with "=" are stored as formulas without cached values, the way
    a workbook saved without recalculation looks to a values-only reader.
    """
    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, cells in sheets.items():
        worksheet = workbook.create_sheet(title)
        for reference, value in cells.items():
            worksheet[reference] = value
    for (title, reference), number_format in (number_formats or {}).items():
        workbook[title][reference].number_format = number_format
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def corrupt_first_sheet(content: bytes) -> bytes:
    """Rewrite a workbook so its first sheet part is truncated XML."""
    source = zipfile.ZipFile(io.BytesIO(content))
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as target:
        for item in source.infolist():
            data = source.read(item.filename)
            if item.filename == "xl/worksheets/sheet1.xml":
                data = b"<worksheet><sheetData><row"
            target.writestr(item, data)
    return buffer.getvalue()


@pytest.fixture
def xlsx_bytes() -> Callable[..., bytes]:
    """Factory for in-memory .xlsx content."""
    return build_xlsx


@pytest.fixture
def corrupt_xlsx_bytes() -> bytes:
    """A zip-valid workbook whose sheet XML cannot be parsed."""
    return corrupt_first_sheet(build_xlsx({"Sheet1": {"A1": 1}}))


@pytest.fixture
def make_workbook() -> Callable[..., WorkbookDocument]:
    """Factory building a loaded document from ``{sheet: {A1: value}}``."""

    def _make(
        sheets: Mapping[str, SheetCells],
        number_formats: Mapping[tuple[str, str], str] | None = None,
    ) -> WorkbookDocument:
        return WorkbookLoader().load_bytes(
            build_xlsx(sheets, number_formats), source="test.xlsx"
        )

    return _make


@pytest.fixture
def make_sheet(
    make_workbook: Callable[..., WorkbookDocument],
) -> Callable[..., WorkbookSheet]:
    """Factory building a single loaded sheet from ``{A1: value}``."""

    def _make(cells: SheetCells, name: str = "Sheet1") -> WorkbookSheet:
        sheet = make_workbook({name: cells}).get_sheet(name)
        assert sheet is not None
        return sheet

    return _make


@pytest.fixture(autouse=True)
def _clean_log_context() -> Iterator[None]:
    clear_context()
    yield
    clear_context()
