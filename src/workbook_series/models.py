"""Pydantic models for extraction results, sync status and API responses."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from workbook_series.utils.exceptions import ErrorCode


class FileFamily(str, Enum):
    """The two workbook families reports read from."""

    FACTURACION = "facturacion"
    BALANCE = "balance"

    @property
    def is_primary(self) -> bool:
        """The billing family gets the stricter month-year header filter."""
        return self is FileFamily.FACTURACION


# =============================================================================
# Extraction results
# =============================================================================


class ValidationCode(str, Enum):
    """Kinds of problems recorded on an extraction result."""

    SHEET_NOT_FOUND = "sheet_not_found"
    EMPTY_RANGE = "empty_range"
    NO_NUMERIC_DATA = "no_numeric_data"
    STALE_CALCULATION = "stale_calculation"
    COERCION = "coercion"
    SCAN_EXCEPTION = "scan_exception"


class ValidationIssue(BaseModel):
    """One error or warning found while extracting a report."""

    code: ValidationCode
    message: str


class ValidationReport(BaseModel):
    """Diagnostics collected while extracting a report."""

    sheet_found: bool = False
    has_data: bool = False
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    def add_error(self, code: ValidationCode, message: str) -> None:
        self.errors.append(ValidationIssue(code=code, message=message))

    def add_warning(self, code: ValidationCode, message: str) -> None:
        self.warnings.append(ValidationIssue(code=code, message=message))

    @property
    def is_ok(self) -> bool:
        return not self.errors


class ParsedSeries(BaseModel):
    """One named numeric row, aligned one-to-one with the categories."""

    name: str
    values: list[float | None]


class ExtractionResult(BaseModel):
    """Chart-ready data extracted for one report."""

    report_id: int = Field(..., description="Id of the report configuration")
    categories: list[str] = Field(
        default_factory=list, description="X-axis labels, usually 'mmm-yy'"
    )
    series: list[ParsedSeries] = Field(
        default_factory=list, description="Series in configuration order"
    )
    resolved_range: str = Field(
        default="", description="Header span actually consumed, e.g. 'C3:DR3'"
    )
    discarded_column_count: int = Field(
        default=0, description="Header columns removed by the category filter"
    )
    validation: ValidationReport = Field(default_factory=ValidationReport)


# =============================================================================
# Sync status
# =============================================================================


class SyncStatus(str, Enum):
    """Per-file state of the remote sync workflow."""

    IDLE = "idle"
    CHECKING = "checking"
    LOADING = "loading"
    SUCCESS = "success"
    UP_TO_DATE = "up-to-date"
    ERROR = "error"
    NEEDS_CONSENT = "needs_consent"


class FileSyncStatus(BaseModel):
    """Sync state of one workbook family."""

    status: SyncStatus = SyncStatus.IDLE
    last_modified: str | None = None
    etag: str | None = None
    message: str | None = None


class SyncResponse(BaseModel):
    """Response model for the sync endpoint."""

    statuses: dict[FileFamily, FileSyncStatus]
    changed: list[FileFamily] = Field(
        default_factory=list, description="Families whose workbook was replaced"
    )
    last_sync: datetime | None = None


# =============================================================================
# API models
# =============================================================================


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: str
    version: str


class UploadResponse(BaseModel):
    """Response model for workbook upload endpoint."""

    file_family: FileFamily
    filename: str
    file_size: int
    sheet_names: list[str]
    reports_recomputed: int = Field(
        ..., description="Number of report results recomputed from this workbook"
    )


class ErrorDetail(BaseModel):
    """Error detail model for API error responses."""

    detail: str = Field(..., description="Human-readable error message")
    error_code: str | None = Field(
        default=None,
        description="Machine-readable error code (e.g., 'E1001')",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details for debugging",
    )
    request_id: str | None = Field(
        default=None,
        description="Request ID for error correlation",
    )

    @classmethod
    def from_error_code(
        cls,
        error_code: ErrorCode,
        detail: str,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> "ErrorDetail":
        return cls(
            detail=detail,
            error_code=error_code.value,
            details=details,
            request_id=request_id,
        )


class ReportSummary(BaseModel):
    """One configured report, as listed by GET /reports."""

    id: int
    title: str
    file_family: FileFamily
    sheet: str
    chart_type: str
    export_filename: str
    has_result: bool = Field(
        ..., description="Whether the report's workbook is loaded"
    )
