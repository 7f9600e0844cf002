"""Dataclasses representing a loaded workbook."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class CellKind(str, Enum):
    """Kind tag of a cell's cached value."""

    NUMBER = "number"
    DATE = "date"
    TEXT = "text"
    BLANK = "blank"


@dataclass(frozen=True)
class WorkbookCell:
    """A single cell: kind tag, raw cached value and display format.

    A ``NUMBER`` cell may carry a date-shaped ``number_format`` when the
    workbook stores a date as a bare serial number.
    """

    kind: CellKind
    value: Any
    number_format: str | None = None

    @property
    def is_blank(self) -> bool:
        return self.kind is CellKind.BLANK or self.value is None or self.value == ""


@dataclass(frozen=True)
class WorkbookSheet:
    """A worksheet keyed by 0-indexed ``(row, column)`` addresses."""

    name: str
    cells: Mapping[tuple[int, int], WorkbookCell]

    def __post_init__(self) -> None:
        object.__setattr__(self, "cells", MappingProxyType(dict(self.cells)))

    def cell(self, row: int, column: int) -> WorkbookCell | None:
        return self.cells.get((row, column))

    def iter_cells(self) -> Iterator[tuple[int, int, WorkbookCell]]:
        """Yield non-blank cells in document order (row by row, left to right)."""
        for row, column in sorted(self.cells):
            cell = self.cells[(row, column)]
            if not cell.is_blank:
                yield row, column, cell


@dataclass(frozen=True)
class WorkbookDocument:
    """A loaded workbook. Created once per buffer and never mutated."""

    sheets: Mapping[str, WorkbookSheet]
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sheets", MappingProxyType(dict(self.sheets)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def sheet_names(self) -> list[str]:
        return list(self.sheets)

    def get_sheet(self, name: str) -> WorkbookSheet | None:
        return self.sheets.get(name)
