"""Tests for A1 address helpers and cell text access."""

from collections.abc import Callable

import pytest

from workbook_series.services.cell_reference import (
    CellAddress,
    column_to_letters,
    decode_cell,
    decode_range,
    encode_cell,
    format_range,
    get_cell,
    get_cell_text,
    get_range_text_joined,
    letters_to_column,
    stringify_value,
)
from workbook_series.utils.exceptions import ErrorCode, InvalidCellReferenceError
from workbook_series.workbook_document import WorkbookSheet


class TestAddressAlgebra:
    """Tests for decoding and encoding A1 references."""

    def test_decode_is_zero_indexed(self) -> None:
        assert decode_cell("E23") == CellAddress(row=22, column=4)
        assert decode_cell("A1") == CellAddress(0, 0)

    def test_decode_accepts_lowercase_and_dollars(self) -> None:
        assert decode_cell("$c$3") == CellAddress(2, 2)

    def test_encode_round_trips_decode(self) -> None:
        for reference in ("A1", "Z9", "AA10", "DR3", "XFD1048576"):
            address = decode_cell(reference)
            assert encode_cell(address.row, address.column) == reference

    def test_column_letters(self) -> None:
        assert column_to_letters(0) == "A"
        assert column_to_letters(25) == "Z"
        assert column_to_letters(26) == "AA"
        assert letters_to_column("AA") == 26

    def test_invalid_reference_raises(self) -> None:
        with pytest.raises(InvalidCellReferenceError) as exc_info:
            decode_cell("not a cell")
        assert exc_info.value.error_code == ErrorCode.INVALID_CELL_REFERENCE

    def test_negative_row_cannot_be_encoded(self) -> None:
        with pytest.raises(InvalidCellReferenceError):
            encode_cell(-1, 0)

    def test_shifted_moves_columns_only(self) -> None:
        assert CellAddress(2, 2).shifted(3) == CellAddress(2, 5)
        assert CellAddress(2, 2).shifted(3).to_a1() == "F3"

    def test_decode_range(self) -> None:
        start, end = decode_range("B5:C5")
        assert start == CellAddress(4, 1)
        assert end == CellAddress(4, 2)

    def test_single_cell_range(self) -> None:
        start, end = decode_range("D4")
        assert start == end == CellAddress(3, 3)

    def test_unbounded_range_rejected(self) -> None:
        with pytest.raises(InvalidCellReferenceError):
            decode_range("A:A")

    def test_format_range(self) -> None:
        assert format_range(CellAddress(2, 2), CellAddress(2, 121)) == "C3:DR3"


class TestStringifyValue:
    """Tests for rendering raw values as text."""

    def test_whole_float_loses_decimal_point(self) -> None:
        assert stringify_value(2024.0) == "2024"

    def test_fractional_float_kept(self) -> None:
        assert stringify_value(2.5) == "2.5"

    def test_none_is_empty(self) -> None:
        assert stringify_value(None) == ""

    def test_booleans(self) -> None:
        assert stringify_value(True) == "TRUE"
        assert stringify_value(False) == "FALSE"


class TestCellText:
    """Tests for reading labels out of a sheet."""

    def test_get_cell_text(self, make_sheet: Callable[..., WorkbookSheet]) -> None:
        sheet = make_sheet({"C25": "Tarifa regulada", "C26": 12})
        assert get_cell_text(sheet, "C25") == "Tarifa regulada"
        assert get_cell_text(sheet, "C26") == "12"

    def test_missing_cell_is_empty(
        self, make_sheet: Callable[..., WorkbookSheet]
    ) -> None:
        sheet = make_sheet({"A1": "x"})
        assert get_cell_text(sheet, "Z99") == ""
        assert get_cell(sheet, "Z99") is None

    def test_falsy_value_is_empty(
        self, make_sheet: Callable[..., WorkbookSheet]
    ) -> None:
        sheet = make_sheet({"A1": 0})
        assert get_cell_text(sheet, "A1") == ""

    def test_range_text_joined(self, make_sheet: Callable[..., WorkbookSheet]) -> None:
        sheet = make_sheet({"B5": "Margen", "C5": "bruto"})
        assert get_range_text_joined(sheet, "B5:C5") == "Margen bruto"

    def test_range_text_skips_empty_cells(
        self, make_sheet: Callable[..., WorkbookSheet]
    ) -> None:
        sheet = make_sheet({"B5": "Margen", "D5": "total"})
        assert get_range_text_joined(sheet, "B5:D5") == "Margen total"

    def test_range_text_walks_row_major(
        self, make_sheet: Callable[..., WorkbookSheet]
    ) -> None:
        sheet = make_sheet({"A1": "a", "B1": "b", "A2": "c", "B2": "d"})
        assert get_range_text_joined(sheet, "A1:B2") == "a b c d"
