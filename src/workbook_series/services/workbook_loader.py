"""Load .xlsx buffers into read-only workbook documents."""

from __future__ import annotations

import io
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from openpyxl import load_workbook
from openpyxl.cell import Cell
from openpyxl.worksheet.worksheet import Worksheet

from workbook_series.config import settings
from workbook_series.utils.exceptions import (
    FileTooLargeError,
    UnsupportedFormatError,
    WorkbookLoadError,
)
from workbook_series.utils.logging import get_logger
from workbook_series.workbook_document import (
    CellKind,
    WorkbookCell,
    WorkbookDocument,
    WorkbookSheet,
)

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = frozenset({".xlsx", ".xlsm"})

# Every OOXML workbook is a zip archive.
_ZIP_SIGNATURE = b"PK\x03\x04"


def validate_upload(filename: str | None, content: bytes) -> None:
    """Reject uploads that are too large or not .xlsx workbooks.

    Raises:
        FileTooLargeError: If the content exceeds ``settings.max_file_size_bytes``.
        UnsupportedFormatError: If the extension or content signature is wrong.
    """
    if len(content) > settings.max_file_size_bytes:
        raise FileTooLargeError(
            file_size=len(content),
            max_size=settings.max_file_size_bytes,
            filename=filename,
        )
    extension = Path(filename or "").suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(
            f"File type not allowed: '{extension or filename}'. "
            f"Expected one of: {', '.join(sorted(SUPPORTED_EXTENSIONS))}",
            filename=filename,
        )
    if not content.startswith(_ZIP_SIGNATURE):
        raise UnsupportedFormatError(
            "File content is not an .xlsx workbook", filename=filename
        )


class WorkbookLoader:
    """Turn workbook bytes into a :class:`WorkbookDocument` using openpyxl.

    Only cached values are read (``data_only=True``); formulas are never
    evaluated.
    """

    def load_bytes(self, data: bytes, source: str | None = None) -> WorkbookDocument:
        """Parse an in-memory .xlsx buffer."""
        try:
            workbook = load_workbook(
                filename=io.BytesIO(data), data_only=True, read_only=False
            )
            try:
                sheets = {ws.title: self._read_sheet(ws) for ws in workbook.worksheets}
            finally:
                workbook.close()
        except Exception as e:
            # malformed parts surface as zip, XML, key or value errors
            logger.warning(
                "Workbook could not be parsed",
                source=source,
                error=f"{type(e).__name__}: {e}",
            )
            raise WorkbookLoadError(
                "Could not read workbook",
                filename=source,
                cause=f"{type(e).__name__}: {e}",
            ) from e

        logger.info(
            "Workbook loaded",
            source=source,
            sheets=len(sheets),
            size_bytes=len(data),
        )
        return WorkbookDocument(
            sheets=sheets,
            metadata={
                "source": source,
                "size_bytes": len(data),
                "loaded_at": datetime.now(UTC).isoformat(),
            },
        )

    def load_path(self, file_path: Path) -> WorkbookDocument:
        """Read and parse a workbook from disk."""
        if not file_path.exists():
            raise WorkbookLoadError(
                f"Workbook file not found: {file_path}", filename=str(file_path)
            )
        return self.load_bytes(file_path.read_bytes(), source=file_path.name)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _read_sheet(self, sheet: Worksheet) -> WorkbookSheet:
        cells: dict[tuple[int, int], WorkbookCell] = {}
        for row in sheet.iter_rows():
            for cell in row:
                converted = self._build_cell(cell)
                if converted is not None:
                    # openpyxl is 1-indexed
                    cells[(cell.row - 1, cell.column - 1)] = converted
        return WorkbookSheet(name=sheet.title, cells=cells)

    @staticmethod
    def _build_cell(cell: Cell) -> WorkbookCell | None:
        """Map an openpyxl cell onto a tagged cell, or None when empty."""
        value: Any = cell.value
        if value is None or value == "":
            return None
        number_format = cell.number_format or None
        kind = _classify(value)
        if kind is CellKind.TEXT and not isinstance(value, str):
            value = _text_of(value)
        return WorkbookCell(kind=kind, value=value, number_format=number_format)


def _classify(value: Any) -> CellKind:
    if isinstance(value, bool):
        return CellKind.TEXT
    if isinstance(value, (datetime, date)):
        return CellKind.DATE
    if isinstance(value, (int, float)):
        return CellKind.NUMBER
    return CellKind.TEXT


def _text_of(value: Any) -> str:
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)
