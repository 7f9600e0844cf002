"""Centralized exception classes for workbook series extraction.

This module provides a hierarchy of custom exceptions with error codes,
HTTP status code mapping, and structured error details. Extraction itself
never raises these past the report builder (problems found while reading a
workbook become validation issues on the result); they are raised at the
boundaries around it: loading files, reading configuration, and syncing
workbooks from Microsoft Graph.

Exception Hierarchy:
    WBSError (base)
    ├── FileError
    │   ├── FileTooLargeError
    │   ├── UnsupportedFormatError
    │   └── WorkbookLoadError
    ├── ConfigurationError
    │   └── InvalidCellReferenceError
    ├── ReportError
    │   ├── ReportNotFoundError
    │   └── WorkbookNotLoadedError
    └── SyncError
        └── GraphAPIError
            ├── GraphAuthError
            └── GraphRateLimitError

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the application.

    Error codes are grouped by category:
    - E1xxx: File/workbook errors
    - E2xxx: Configuration errors
    - E3xxx: Report errors
    - E5xxx: Sync/external service errors
    - E9xxx: Internal/unexpected errors
    """

    # File errors (E1xxx)
    FILE_TOO_LARGE = "E1001"
    UNSUPPORTED_FORMAT = "E1002"
    WORKBOOK_LOAD_FAILED = "E1003"

    # Configuration errors (E2xxx)
    INVALID_CONFIGURATION = "E2001"
    INVALID_CELL_REFERENCE = "E2002"

    # Report errors (E3xxx)
    REPORT_NOT_FOUND = "E3001"
    WORKBOOK_NOT_LOADED = "E3002"

    # Sync errors (E5xxx)
    GRAPH_API_ERROR = "E5001"
    GRAPH_AUTH_FAILED = "E5002"
    GRAPH_RATE_LIMIT = "E5003"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    UNEXPECTED_ERROR = "E9999"


class HTTPStatusMixin:
    """Mixin that provides HTTP status code for exceptions."""

    http_status: int = 500

    def get_http_status(self) -> int:
        """Get the HTTP status code for this exception."""
        return self.http_status


class WBSError(Exception, HTTPStatusMixin):
    """Base exception for all workbook series errors.

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
        http_status: HTTP status code for API responses (default 500).
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for API responses."""
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# File Errors (E1xxx)
# =============================================================================


class FileError(WBSError):
    """Base class for uploaded or downloaded file errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.WORKBOOK_LOAD_FAILED,
        filename: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with file name information.

        Args:
            message: Error message.
            error_code: Error code.
            filename: Name of the problematic file.
            details: Additional details.
        """
        details = details or {}
        if filename:
            details["filename"] = filename
        super().__init__(message, error_code, details)
        self.filename = filename


class FileTooLargeError(FileError):
    """Raised when a file exceeds the maximum allowed size."""

    http_status: int = 413

    def __init__(
        self,
        file_size: int,
        max_size: int,
        filename: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["file_size_bytes"] = file_size
        details["max_size_bytes"] = max_size
        message = (
            f"File size ({file_size} bytes) exceeds maximum "
            f"allowed size ({max_size} bytes)"
        )
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_TOO_LARGE,
            filename=filename,
            details=details,
        )
        self.file_size = file_size
        self.max_size = max_size


class UnsupportedFormatError(FileError):
    """Raised when an uploaded file is not an .xlsx workbook."""

    def __init__(
        self,
        message: str,
        filename: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.UNSUPPORTED_FORMAT,
            filename=filename,
            details=details,
        )


class WorkbookLoadError(FileError):
    """Raised when a buffer cannot be parsed as a workbook."""

    http_status: int = 422

    def __init__(
        self,
        message: str,
        filename: str | None = None,
        cause: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the underlying parser failure.

        Args:
            message: Error message.
            filename: Optional source name of the workbook.
            cause: Description of the underlying parser error.
            details: Additional details.
        """
        details = details or {}
        if cause:
            details["cause"] = cause
        super().__init__(
            message=message,
            error_code=ErrorCode.WORKBOOK_LOAD_FAILED,
            filename=filename,
            details=details,
        )


# =============================================================================
# Configuration Errors (E2xxx)
# =============================================================================


class ConfigurationError(WBSError):
    """Raised when report configuration is invalid."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_CONFIGURATION,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code, details)


class InvalidCellReferenceError(ConfigurationError):
    """Raised when an A1-style cell or range reference cannot be decoded."""

    def __init__(self, reference: str, details: dict[str, Any] | None = None) -> None:
        """Initialize with the offending reference.

        Args:
            reference: The address or range string that failed to decode.
            details: Additional details.
        """
        details = details or {}
        details["reference"] = reference
        super().__init__(
            message=f"Invalid cell reference: {reference!r}",
            error_code=ErrorCode.INVALID_CELL_REFERENCE,
            details=details,
        )
        self.reference = reference


# =============================================================================
# Report Errors (E3xxx)
# =============================================================================


class ReportError(WBSError):
    """Base class for report lookup errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        report_id: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if report_id is not None:
            details["report_id"] = report_id
        super().__init__(message, error_code, details)
        self.report_id = report_id


class ReportNotFoundError(ReportError):
    """Raised when a report id is not configured."""

    http_status: int = 404

    def __init__(self, report_id: int) -> None:
        super().__init__(
            message=f"Report not found: {report_id}",
            error_code=ErrorCode.REPORT_NOT_FOUND,
            report_id=report_id,
        )


class WorkbookNotLoadedError(ReportError):
    """Raised when a report is requested before its workbook was loaded."""

    http_status: int = 409

    def __init__(self, report_id: int, file_family: str) -> None:
        """Initialize with the report and the family whose workbook is missing.

        Args:
            report_id: Requested report.
            file_family: File family the report reads from.
        """
        super().__init__(
            message=(
                f"Report {report_id} has no result yet: no '{file_family}' "
                "workbook has been loaded"
            ),
            error_code=ErrorCode.WORKBOOK_NOT_LOADED,
            report_id=report_id,
            details={"file_family": file_family},
        )
        self.file_family = file_family


# =============================================================================
# Sync Errors (E5xxx)
# =============================================================================


class SyncError(WBSError):
    """Base class for remote workbook sync errors."""

    http_status: int = 502


class GraphAPIError(SyncError):
    """Raised when Microsoft Graph answers with a non-success status."""

    def __init__(
        self,
        status_code: int,
        message: str | None = None,
        error_code: ErrorCode = ErrorCode.GRAPH_API_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the HTTP status of the failed response.

        Args:
            status_code: HTTP status returned by Graph.
            message: Best-effort message extracted from the response body.
            error_code: Error code.
            details: Additional details.
        """
        details = details or {}
        details["status_code"] = status_code
        message = message or f"Error {status_code}: could not access the file"
        super().__init__(message, error_code, details)
        self.status_code = status_code


class GraphAuthError(GraphAPIError):
    """Raised on 401/403 responses; the caller may retry with more consent."""

    def __init__(
        self,
        status_code: int,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=status_code,
            message=message,
            error_code=ErrorCode.GRAPH_AUTH_FAILED,
            details=details,
        )


class GraphRateLimitError(GraphAPIError):
    """Raised on 429/503 responses; retried with backoff."""

    def __init__(
        self,
        status_code: int,
        retry_after: float | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with retry information.

        Args:
            status_code: 429 or 503.
            retry_after: Seconds to wait before retry, from Retry-After.
            message: Error message.
            details: Additional details.
        """
        details = details or {}
        if retry_after is not None:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            status_code=status_code,
            message=message or f"Graph API throttled the request ({status_code})",
            error_code=ErrorCode.GRAPH_RATE_LIMIT,
            details=details,
        )
        self.retry_after = retry_after
