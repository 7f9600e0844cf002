"""Tests for structured logging utilities."""

import logging

import pytest

from workbook_series.utils.logging import (
    LogContext,
    PerformanceMetrics,
    StructuredLogFormatter,
    clear_context,
    get_extra_context,
    get_logger,
    get_report_id,
    get_request_id,
    set_request_id,
    timed_operation,
)


class TestContextVars:
    """Tests for context variable helpers."""

    def test_request_id(self) -> None:
        set_request_id("req-1")
        assert get_request_id() == "req-1"
        clear_context()
        assert get_request_id() is None

    def test_extra_context_defaults_to_empty(self) -> None:
        clear_context()
        assert get_extra_context() == {}


class TestLogContext:
    """Tests for LogContext."""

    def test_sets_and_restores(self) -> None:
        with LogContext(report_id=3, sheet="VENTAS (S)"):
            assert get_report_id() == "3"
            assert get_extra_context() == {"sheet": "VENTAS (S)"}
        assert get_report_id() is None
        assert get_extra_context() == {}

    def test_nested_contexts_merge(self) -> None:
        with LogContext(request_id="req-9", family="balance"):
            with LogContext(report_id=7, sheet="Perfil"):
                assert get_request_id() == "req-9"
                assert get_extra_context() == {"family": "balance", "sheet": "Perfil"}
            assert get_report_id() is None
            assert get_extra_context() == {"family": "balance"}
        assert get_request_id() is None


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_kwargs_rendered_as_key_values(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = get_logger("wbs.test")
        with caplog.at_level(logging.INFO, logger="wbs.test"):
            logger.info("Loaded workbook", sheets=4, family="facturacion")
        assert caplog.messages == ["Loaded workbook | sheets=4, family=facturacion"]

    def test_plain_message(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("wbs.test")
        with caplog.at_level(logging.INFO, logger="wbs.test"):
            logger.info("Ready")
        assert caplog.messages == ["Ready"]

    def test_underlying_logger(self) -> None:
        assert get_logger("wbs.test").logger is logging.getLogger("wbs.test")

    def test_report_with_errors_logs_warning(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = get_logger("wbs.test")
        with caplog.at_level(logging.INFO, logger="wbs.test"):
            logger.log_report_result(1, categories=0, series=0, errors=1, warnings=0)
            logger.log_report_result(2, categories=3, series=2, errors=0, warnings=1)
        assert [record.levelno for record in caplog.records] == [
            logging.WARNING,
            logging.INFO,
        ]
        assert "report_id=1" in caplog.messages[0]

    def test_failed_api_call_logs_error(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("wbs.test")
        with caplog.at_level(logging.INFO, logger="wbs.test"):
            logger.log_api_call(
                "graph", "GET /shares", 0.25, status_code=404, success=False
            )
        record = caplog.records[0]
        assert record.levelno == logging.ERROR
        assert "duration_seconds=0.250" in record.getMessage()
        assert "status_code=404" in record.getMessage()


class TestFormatter:
    """Tests for StructuredLogFormatter."""

    def test_prefixes_context(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
        with LogContext(request_id="req-1", report_id=5, sheet="Perfil"):
            output = formatter.format(record)
        assert output == "[request_id=req-1 report_id=5 sheet=Perfil] hello"
        assert record.msg == "hello"

    def test_no_prefix_without_context(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
        assert formatter.format(record) == "hello"


class TestPerformanceMetrics:
    """Tests for PerformanceMetrics and timed_operation."""

    def test_to_dict_omits_zero_counters(self) -> None:
        metrics = PerformanceMetrics(operation="sync")
        metrics.api_calls = 2
        metrics.finish()
        data = metrics.to_dict()
        assert data["api_calls"] == 2
        assert "reports_built" not in data
        assert data["duration_seconds"] >= 0

    def test_timed_operation_logs_on_exit(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = get_logger("wbs.test")
        with caplog.at_level(logging.INFO, logger="wbs.test"):
            with timed_operation(logger, "build_reports") as metrics:
                metrics.reports_built = 7
        assert metrics.end_time is not None
        assert "Performance: build_reports" in caplog.messages[0]
        assert "reports_built=7" in caplog.messages[0]

    def test_timed_operation_logs_on_error(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = get_logger("wbs.test")
        with caplog.at_level(logging.INFO, logger="wbs.test"):
            with pytest.raises(RuntimeError):
                with timed_operation(logger, "sync"):
                    raise RuntimeError("boom")
        assert "Performance: sync" in caplog.messages[0]
