"""Services for workbook series extraction."""

from workbook_series.services.workbook_loader import (
    WorkbookLoader,
    validate_upload,
)

__all__ = ["WorkbookLoader", "validate_upload"]
