"""Utilities package for workbook series extraction.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from workbook_series.utils.exceptions import (
    ErrorCode,
    FileError,
    GraphAPIError,
    HTTPStatusMixin,
    SyncError,
    WBSError,
)
from workbook_series.utils.logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Exceptions
    "ErrorCode",
    "FileError",
    "GraphAPIError",
    "HTTPStatusMixin",
    "SyncError",
    "WBSError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
