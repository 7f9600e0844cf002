"""Build chart-ready results from a workbook and a report configuration.

This is the orchestration step: it resolves the category anchor, scans the
header row, filters the categories, reads every configured series to the
same length and records what went wrong along the way. Problems never
abort a build; they are collected on the result's validation report.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from workbook_series.config import settings
from workbook_series.models import (
    ExtractionResult,
    FileFamily,
    ParsedSeries,
    ValidationCode,
)
from workbook_series.report_config import ReportConfig, SeriesConfig
from workbook_series.services.anchor_resolver import (
    find_pattern_anchor,
    resolve_pattern_anchor,
)
from workbook_series.services.category_filter import filter_categories
from workbook_series.services.category_scanner import (
    ScanMode,
    format_category_label,
    scan_row,
)
from workbook_series.services.cell_reference import (
    CellAddress,
    decode_cell,
    format_range,
    get_cell_text,
    get_range_text_joined,
)
from workbook_series.services.numeric import CoercionTally
from workbook_series.services.series_reader import read_series
from workbook_series.utils.logging import LogContext, get_logger, timed_operation
from workbook_series.workbook_document import WorkbookDocument, WorkbookSheet

logger = get_logger(__name__)


class ReportBuilder:
    """Extracts one :class:`ExtractionResult` per report configuration."""

    def __init__(
        self,
        blank_threshold: int | None = None,
        max_columns: int | None = None,
        stale_null_ratio: float | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            blank_threshold: Default blank run ending a header scan, used when
                a report does not set ``max_consecutive_blanks``.
            max_columns: Hard cap on columns walked per scan.
            stale_null_ratio: Null ratio above which a series is reported as
                possibly missing calculated values.
        """
        self.blank_threshold = (
            blank_threshold
            if blank_threshold is not None
            else settings.default_blank_threshold
        )
        self.max_columns = (
            max_columns if max_columns is not None else settings.max_scan_columns
        )
        self.stale_null_ratio = (
            stale_null_ratio
            if stale_null_ratio is not None
            else settings.stale_null_ratio
        )

    def build(
        self, workbook: WorkbookDocument, report: ReportConfig
    ) -> ExtractionResult:
        """Extract categories and series for ``report`` from ``workbook``.

        The result always satisfies: every series has exactly as many values
        as there are categories.
        """
        with LogContext(report_id=report.id, sheet=report.sheet):
            result = self._build(workbook, report)
            logger.log_report_result(
                report_id=report.id,
                categories=len(result.categories),
                series=len(result.series),
                errors=len(result.validation.errors),
                warnings=len(result.validation.warnings),
            )
            return result

    def build_all(
        self,
        workbooks: Mapping[FileFamily, WorkbookDocument | None],
        reports: Iterable[ReportConfig],
    ) -> list[ExtractionResult]:
        """Build every report whose workbook family is loaded."""
        results: list[ExtractionResult] = []
        with timed_operation(logger, "build_reports") as metrics:
            for report in reports:
                workbook = workbooks.get(report.file_family)
                if workbook is None:
                    continue
                result = self.build(workbook, report)
                results.append(result)
                metrics.reports_built += 1
                metrics.series_read += len(result.series)
        return results

    def _build(
        self, workbook: WorkbookDocument, report: ReportConfig
    ) -> ExtractionResult:
        result = ExtractionResult(report_id=report.id)
        validation = result.validation

        sheet = workbook.get_sheet(report.sheet)
        if sheet is None:
            validation.add_error(
                ValidationCode.SHEET_NOT_FOUND,
                f'Sheet "{report.sheet}" does not exist in the workbook.',
            )
            return result
        validation.sheet_found = True

        try:
            category_start = self._read_categories(sheet, report, result)
        except Exception as e:
            logger.exception("Category scan failed", error=str(e))
            validation.add_error(
                ValidationCode.SCAN_EXCEPTION,
                f"Error reading dynamic categories: {e}",
            )
            return result

        expected_length = len(result.categories)
        if expected_length == 0:
            return result

        tally = CoercionTally()
        stale_series: list[str] = []
        total_points = 0
        for index, series_config in enumerate(report.series):
            name = _series_name(sheet, series_config, index)
            values_start = _resolve_values_start(sheet, series_config, category_start)
            values = read_series(sheet, values_start, expected_length, tally)

            missing = sum(1 for value in values if value is None)
            if missing / expected_length > self.stale_null_ratio:
                stale_series.append(name)
            total_points += expected_length - missing
            result.series.append(ParsedSeries(name=name, values=values))

        if stale_series:
            validation.add_warning(
                ValidationCode.STALE_CALCULATION,
                "Possibly missing calculated values (many empty cells) in: "
                f"{', '.join(stale_series)}. Open the workbook in Excel, "
                "recalculate and save it, then load it again.",
            )

        if total_points > 0:
            validation.has_data = True
        else:
            validation.add_error(
                ValidationCode.NO_NUMERIC_DATA,
                "No numeric data found in the detected ranges.",
            )

        if tally.count:
            validation.add_warning(
                ValidationCode.COERCION,
                f"{tally.count} value(s) could not be read as numbers "
                "and were left empty.",
            )
        return result

    def _read_categories(
        self, sheet: WorkbookSheet, report: ReportConfig, result: ExtractionResult
    ) -> CellAddress:
        """Scan, combine and filter the header row into ``result``.

        Returns the resolved category start address.
        """
        start = resolve_pattern_anchor(
            sheet, report.category_header_pattern, report.category_start_cell
        )
        threshold = report.max_consecutive_blanks or self.blank_threshold
        scan = scan_row(
            sheet,
            start,
            mode=ScanMode.CATEGORY,
            blank_threshold=threshold,
            max_columns=self.max_columns,
        )
        # interior blanks stay as empty labels so positions line up with values
        labels = ["" if label is None else str(label) for label in scan.trimmed()]

        if report.category_start_cell_row2:
            second_row = decode_cell(report.category_start_cell_row2)
            labels = [
                " ".join(
                    (
                        label,
                        format_category_label(
                            sheet.cell(second_row.row, second_row.column + offset)
                        ),
                    )
                ).strip()
                for offset, label in enumerate(labels)
            ]

        categories = filter_categories(labels, report.is_primary_family)
        discarded = len(labels) - len(categories)
        if discarded:
            end = start.shifted(max(len(categories) - 1, 0))
        else:
            end = scan.last_non_blank

        result.categories = list(categories)
        result.discarded_column_count = discarded
        result.resolved_range = format_range(start, end)

        if not categories:
            result.validation.add_error(
                ValidationCode.EMPTY_RANGE,
                f"Empty range or no valid dates at {start.to_a1()}.",
            )
        return start


def _series_name(sheet: WorkbookSheet, series: SeriesConfig, index: int) -> str:
    if series.name_cell:
        return get_cell_text(sheet, series.name_cell)
    if series.name_range:
        return get_range_text_joined(sheet, series.name_range)
    return f"Serie {index + 1}"


def _resolve_values_start(
    sheet: WorkbookSheet, series: SeriesConfig, category_start: CellAddress
) -> CellAddress:
    """Where a series' values begin.

    A header pattern is searched on the category row first and picks the
    column the values start in; the row is always the configured one.
    Without a pattern, or when nothing matches, the configured literal
    address is used.
    """
    configured = decode_cell(series.values_start_cell)
    if not series.value_header_pattern:
        return configured
    match = find_pattern_anchor(
        sheet, series.value_header_pattern, category_start.row
    )
    if match is None:
        return configured
    return CellAddress(configured.row, match.column)


def build_report(workbook: WorkbookDocument, report: ReportConfig) -> ExtractionResult:
    """Build one report with the configured defaults."""
    return ReportBuilder().build(workbook, report)


def build_reports(
    workbooks: Mapping[FileFamily, WorkbookDocument | None],
    reports: Iterable[ReportConfig],
) -> list[ExtractionResult]:
    """Build every report whose workbook family is loaded."""
    return ReportBuilder().build_all(workbooks, reports)
