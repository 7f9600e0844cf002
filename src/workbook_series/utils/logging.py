"""Structured logging utilities for workbook series extraction.

This module provides:
- Request and report ID tracking using contextvars
- Structured logging with ``key=value`` metadata
- Performance metrics logging helpers

Usage:
    from workbook_series.utils.logging import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(report_id=3, sheet="VENTAS (S)"):
        logger.info("Scanning categories", start="F2")

    with timed_operation(logger, "build_reports") as metrics:
        metrics.reports_built += 1
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_report_id_var: ContextVar[str | None] = ContextVar("report_id", default=None)
_extra_context_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "extra_context", default=None
)


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    return _request_id_var.get()


def set_request_id(request_id: str | None) -> None:
    """Set the request ID in context.

    Args:
        request_id: The request ID to set, or None to clear.
    """
    _request_id_var.set(request_id)


def get_report_id() -> str | None:
    """Get the report currently being built, if any."""
    return _report_id_var.get()


def set_report_id(report_id: str | None) -> None:
    """Set the report ID in context.

    Args:
        report_id: The report ID to set, or None to clear.
    """
    _report_id_var.set(report_id)


def get_extra_context() -> dict[str, Any]:
    """Get additional context from context vars."""
    ctx = _extra_context_var.get()
    return ctx if ctx is not None else {}


def set_extra_context(context: dict[str, Any]) -> None:
    """Set additional context in context vars."""
    _extra_context_var.set(context)


def clear_context() -> None:
    """Clear all context variables."""
    _request_id_var.set(None)
    _report_id_var.set(None)
    _extra_context_var.set(None)


@dataclass
class PerformanceMetrics:
    """Counters collected while an operation runs.

    Attributes:
        operation: Name of the operation being measured.
        start_time: When the operation started.
        end_time: When the operation ended.
        duration_seconds: Duration in seconds.
        reports_built: Number of extraction results produced.
        series_read: Number of numeric rows read.
        bytes_downloaded: Workbook bytes fetched from Graph.
        api_calls: Number of HTTP calls made.
        custom_metrics: Additional custom metrics.
    """

    operation: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    reports_built: int = 0
    series_read: int = 0
    bytes_downloaded: int = 0
    api_calls: int = 0
    custom_metrics: dict[str, Any] = field(default_factory=dict)

    def finish(self) -> None:
        """Mark the operation as complete and calculate duration."""
        self.end_time = datetime.now(UTC)
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging, omitting zero counters."""
        result: dict[str, Any] = {
            "operation": self.operation,
            "duration_seconds": self.duration_seconds,
        }
        if self.reports_built > 0:
            result["reports_built"] = self.reports_built
        if self.series_read > 0:
            result["series_read"] = self.series_read
        if self.bytes_downloaded > 0:
            result["bytes_downloaded"] = self.bytes_downloaded
        if self.api_calls > 0:
            result["api_calls"] = self.api_calls
        if self.custom_metrics:
            result["custom_metrics"] = self.custom_metrics
        return result


class StructuredLogFormatter(logging.Formatter):
    """Log formatter that prefixes records with the active context.

    Adds request_id, report_id and any extra context as a bracketed
    ``key=value`` prefix.
    """

    def format(self, record: logging.LogRecord) -> str:
        prefix_parts = []
        request_id = get_request_id()
        if request_id:
            prefix_parts.append(f"request_id={request_id}")
        report_id = get_report_id()
        if report_id:
            prefix_parts.append(f"report_id={report_id}")
        for key, value in get_extra_context().items():
            prefix_parts.append(f"{key}={value}")

        prefix = f"[{' '.join(prefix_parts)}] " if prefix_parts else ""

        original_msg = record.msg
        record.msg = f"{prefix}{original_msg}"
        result = super().format(record)
        record.msg = original_msg
        return result


class StructuredLogger:
    """Thin wrapper over a standard logger that appends structured fields.

    ``logger.info("Loaded workbook", sheets=4)`` emits
    ``Loaded workbook | sheets=4``.
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)
        self._name = name

    @property
    def logger(self) -> logging.Logger:
        """Access the underlying Python logger."""
        return self._logger

    def _build_message(self, message: str, **kwargs: Any) -> str:
        if not kwargs:
            return message
        parts = [f"{k}={v}" for k, v in kwargs.items()]
        return f"{message} | {', '.join(parts)}"

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(self._build_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(self._build_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(self._build_message(message, **kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._logger.error(self._build_message(message, **kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an exception with traceback."""
        self._logger.exception(self._build_message(message, **kwargs))

    def log_performance(self, metrics: PerformanceMetrics) -> None:
        """Log performance metrics."""
        self.info(f"Performance: {metrics.operation}", **metrics.to_dict())

    def log_api_call(
        self,
        service: str,
        operation: str,
        duration_seconds: float,
        status_code: int | None = None,
        success: bool = True,
        error_message: str | None = None,
    ) -> None:
        """Log an outbound HTTP call.

        Args:
            service: Service name (e.g., "graph").
            operation: Operation performed.
            duration_seconds: Time taken for the call.
            status_code: HTTP status, when a response was received.
            success: Whether the call succeeded.
            error_message: Error message if call failed.
        """
        kwargs: dict[str, Any] = {
            "service": service,
            "operation": operation,
            "duration_seconds": f"{duration_seconds:.3f}",
            "success": success,
        }
        if status_code is not None:
            kwargs["status_code"] = status_code
        if error_message:
            kwargs["error"] = error_message

        level = logging.INFO if success else logging.ERROR
        self._logger.log(level, self._build_message("API call", **kwargs))

    def log_report_result(
        self,
        report_id: int,
        categories: int,
        series: int,
        errors: int,
        warnings: int,
    ) -> None:
        """Log the outcome of one report extraction.

        Reports with validation errors are logged at WARNING so they show up
        without enabling debug output.
        """
        kwargs: dict[str, Any] = {
            "report_id": report_id,
            "categories": categories,
            "series": series,
            "errors": errors,
            "warnings": warnings,
        }
        level = logging.WARNING if errors else logging.INFO
        self._logger.log(level, self._build_message("Report extracted", **kwargs))


class LogContext:
    """Context manager for adding temporary context to logs.

    Usage:
        with LogContext(report_id=1, sheet="Precio Medio"):
            logger.info("Processing...")
    """

    def __init__(self, **kwargs: Any) -> None:
        self._new_context = kwargs
        self._old_context: dict[str, Any] = {}
        self._old_report_id: str | None = None
        self._old_request_id: str | None = None

    def __enter__(self) -> "LogContext":
        self._old_context = get_extra_context().copy()
        self._old_report_id = get_report_id()
        self._old_request_id = get_request_id()

        new_context = dict(self._new_context)
        report_id = new_context.pop("report_id", None)
        request_id = new_context.pop("request_id", None)
        if report_id is not None:
            set_report_id(str(report_id))
        if request_id is not None:
            set_request_id(request_id)

        merged = self._old_context.copy()
        merged.update(new_context)
        set_extra_context(merged)
        return self

    def __exit__(self, *args: Any) -> None:
        set_extra_context(self._old_context)
        set_report_id(self._old_report_id)
        set_request_id(self._old_request_id)


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Time a block and log its metrics when it exits.

    Usage:
        with timed_operation(logger, "sync") as metrics:
            metrics.api_calls += 1

    Args:
        logger: Logger to use for output.
        operation: Name of the operation.

    Yields:
        PerformanceMetrics instance for tracking.
    """
    metrics = PerformanceMetrics(operation=operation)
    try:
        yield metrics
    finally:
        metrics.finish()
        logger.log_performance(metrics)


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    use_structured_formatter: bool = True,
) -> None:
    """Configure the root logger with a single console handler.

    Args:
        level: Log level (int or string like "INFO").
        format_string: Custom format string (uses default if None).
        use_structured_formatter: Whether to use the structured formatter.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)

    formatter: logging.Formatter
    if use_structured_formatter:
        formatter = StructuredLogFormatter(format_string)
    else:
        formatter = logging.Formatter(format_string)

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module.

    Example:
        logger = get_logger(__name__)
        logger.info("Workbook loaded", sheets=5)
    """
    return StructuredLogger(name)
