"""In-memory store of the loaded workbooks and their extraction results.

Each family holds at most one workbook. Replacing a workbook recomputes
every report's result from the current set of workbooks, so results are
always consistent with what is loaded.
"""

import threading
from datetime import UTC, datetime

from workbook_series.models import ExtractionResult, FileFamily
from workbook_series.report_config import ReportConfig, find_report, get_report_configs
from workbook_series.services.report_builder import ReportBuilder
from workbook_series.utils.exceptions import ReportNotFoundError, WorkbookNotLoadedError
from workbook_series.utils.logging import get_logger
from workbook_series.workbook_document import WorkbookDocument

logger = get_logger(__name__)


class WorkbookStore:
    """Thread-safe holder of workbooks per family and results per report."""

    def __init__(
        self,
        reports: tuple[ReportConfig, ...] | None = None,
        builder: ReportBuilder | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            reports: Report configurations. Defaults to the configured set.
            builder: Report builder. Defaults to one using settings.
        """
        self.reports = reports if reports is not None else get_report_configs()
        self.builder = builder or ReportBuilder()
        self._workbooks: dict[FileFamily, WorkbookDocument] = {}
        self._results: dict[int, ExtractionResult] = {}
        self._updated_at: dict[FileFamily, datetime] = {}
        self._lock = threading.RLock()

    def get_workbook(self, family: FileFamily) -> WorkbookDocument | None:
        with self._lock:
            return self._workbooks.get(family)

    def has_workbook(self, family: FileFamily) -> bool:
        with self._lock:
            return family in self._workbooks

    def set_workbook(self, family: FileFamily, workbook: WorkbookDocument) -> int:
        """Replace a family's workbook and recompute all results.

        Returns:
            Number of results built from the replaced workbook's family.
        """
        return self.set_workbooks({family: workbook})

    def set_workbooks(self, workbooks: dict[FileFamily, WorkbookDocument]) -> int:
        """Replace several workbooks at once with a single recomputation."""
        with self._lock:
            self._workbooks.update(workbooks)
            now = datetime.now(UTC)
            for family in workbooks:
                self._updated_at[family] = now
            results = self.builder.build_all(self._workbooks, self.reports)
            self._results = {result.report_id: result for result in results}
            recomputed = sum(
                1
                for report in self.reports
                if report.file_family in workbooks and report.id in self._results
            )
        logger.info(
            "Workbooks replaced",
            families=",".join(family.value for family in workbooks),
            results=len(results),
        )
        return recomputed

    def get_result(self, report_id: int) -> ExtractionResult:
        """Get the current result of one report.

        Raises:
            ReportNotFoundError: If no report has this id.
            WorkbookNotLoadedError: If the report's workbook is not loaded yet.
        """
        report = find_report(report_id, self.reports)
        if report is None:
            raise ReportNotFoundError(report_id)
        with self._lock:
            result = self._results.get(report_id)
        if result is None:
            raise WorkbookNotLoadedError(report_id, report.file_family.value)
        return result

    def list_results(self) -> list[ExtractionResult]:
        """Current results, in report configuration order."""
        with self._lock:
            return [
                self._results[report.id]
                for report in self.reports
                if report.id in self._results
            ]

    def get_report(self, report_id: int) -> ReportConfig:
        report = find_report(report_id, self.reports)
        if report is None:
            raise ReportNotFoundError(report_id)
        return report

    def updated_at(self, family: FileFamily) -> datetime | None:
        with self._lock:
            return self._updated_at.get(family)

    def clear(self) -> None:
        """Drop every workbook and result. Used primarily for testing."""
        with self._lock:
            self._workbooks.clear()
            self._results.clear()
            self._updated_at.clear()


# Global store instance
_workbook_store: WorkbookStore | None = None


def get_workbook_store() -> WorkbookStore:
    """Get the global store, creating it on first call."""
    global _workbook_store
    if _workbook_store is None:
        _workbook_store = WorkbookStore()
    return _workbook_store


def reset_workbook_store() -> None:
    """Reset the global store. Used primarily for testing."""
    global _workbook_store
    _workbook_store = None
