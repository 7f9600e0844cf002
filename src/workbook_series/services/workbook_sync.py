"""Refresh workbooks from their sharing links when they change remotely.

A sync pass checks each configured family's driveItem metadata and compares
its eTag with the last downloaded version. Only changed workbooks are
downloaded, loaded and handed to the :class:`WorkbookStore`, which then
recomputes every report.

Authentication failures (401/403) abort the pass and it is retried once
with an elevated token. If that fails too, every family is marked
``needs_consent``. Any other failure only affects its own family.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path

from workbook_series.config import settings
from workbook_series.models import (
    FileFamily,
    FileSyncStatus,
    SyncResponse,
    SyncStatus,
)
from workbook_series.services.graph_client import GraphClient, share_id_from_link
from workbook_series.services.sync_state import (
    StoredFileMeta,
    SyncState,
    SyncStateStore,
)
from workbook_series.services.workbook_loader import WorkbookLoader
from workbook_series.services.workbook_store import WorkbookStore, get_workbook_store
from workbook_series.utils.exceptions import GraphAuthError, WBSError
from workbook_series.utils.logging import (
    LogContext,
    PerformanceMetrics,
    get_logger,
    timed_operation,
)
from workbook_series.workbook_document import WorkbookDocument

logger = get_logger(__name__)

# Called with advanced=True after an authorization failure
TokenProvider = Callable[..., Awaitable[str]]

CONSENT_MESSAGE = "Insufficient permissions to read the shared workbook."


class WorkbookSync:
    """Runs sync passes and tracks the per-family status."""

    def __init__(
        self,
        client: GraphClient,
        store: WorkbookStore,
        state_store: SyncStateStore,
        links: Mapping[FileFamily, str],
        loader: WorkbookLoader | None = None,
    ) -> None:
        """Initialize the workflow.

        Args:
            client: Graph client used for metadata and downloads.
            store: Store receiving the changed workbooks.
            state_store: Persistence for the last-seen eTags.
            links: Sharing link per family; empty links are skipped.
            loader: Workbook loader. Defaults to a new one.
        """
        self.client = client
        self.store = store
        self.state_store = state_store
        self.links = dict(links)
        self.loader = loader or WorkbookLoader()
        self._statuses: dict[FileFamily, FileSyncStatus] = {
            family: FileSyncStatus() for family in FileFamily
        }
        self._lock = asyncio.Lock()

    @property
    def statuses(self) -> dict[FileFamily, FileSyncStatus]:
        return dict(self._statuses)

    def status(self) -> SyncResponse:
        """Current statuses without contacting Graph."""
        return SyncResponse(
            statuses=self.statuses, last_sync=self.state_store.load().last_sync
        )

    async def sync(
        self, token_provider: TokenProvider, only_check_meta: bool = False
    ) -> SyncResponse:
        """Run one sync pass over every family that has a link.

        Args:
            token_provider: Async callable returning a bearer token; called
                again with ``advanced=True`` after an authorization failure.
            only_check_meta: Refresh statuses without downloading anything.
        """
        async with self._lock:
            state = self.state_store.load()
            downloaded: dict[FileFamily, WorkbookDocument] = {}
            authorized = True

            with timed_operation(logger, "sync") as metrics:
                try:
                    token = await token_provider(advanced=False)
                    try:
                        await self._run_pass(
                            token, state, downloaded, only_check_meta, metrics
                        )
                    except GraphAuthError as e:
                        logger.warning(
                            "Graph denied access, retrying with elevated consent",
                            status_code=e.status_code,
                        )
                        token = await token_provider(advanced=True)
                        await self._run_pass(
                            token, state, downloaded, only_check_meta, metrics
                        )
                except GraphAuthError as e:
                    authorized = False
                    logger.error("Sync needs additional consent", error=e.message)
                    for family in FileFamily:
                        self._statuses[family] = self._statuses[family].model_copy(
                            update={
                                "status": SyncStatus.NEEDS_CONSENT,
                                "message": CONSENT_MESSAGE,
                            }
                        )

            if downloaded:
                # report recomputation is CPU bound
                await asyncio.to_thread(self.store.set_workbooks, downloaded)
            if authorized and not only_check_meta:
                state.last_sync = datetime.now(UTC)
            self.state_store.save(state)

            return SyncResponse(
                statuses=self.statuses,
                changed=list(downloaded),
                last_sync=state.last_sync,
            )

    async def _run_pass(
        self,
        token: str,
        state: SyncState,
        downloaded: dict[FileFamily, WorkbookDocument],
        only_check_meta: bool,
        metrics: PerformanceMetrics,
    ) -> None:
        for family, link in self.links.items():
            share_id = share_id_from_link(link)
            if not share_id:
                continue
            with LogContext(file_family=family.value):
                try:
                    workbook = await self._sync_family(
                        family, share_id, token, state, only_check_meta, metrics
                    )
                except GraphAuthError:
                    raise
                except WBSError as e:
                    logger.error("Sync failed", error=e.message)
                    self._statuses[family] = FileSyncStatus(
                        status=SyncStatus.ERROR, message=e.message
                    )
                    continue
            if workbook is not None:
                downloaded[family] = workbook

    async def _sync_family(
        self,
        family: FileFamily,
        share_id: str,
        token: str,
        state: SyncState,
        only_check_meta: bool,
        metrics: PerformanceMetrics,
    ) -> WorkbookDocument | None:
        self._statuses[family] = self._statuses[family].model_copy(
            update={"status": SyncStatus.CHECKING, "message": "Checking..."}
        )
        meta = await self.client.fetch_meta(share_id, token)
        metrics.api_calls += 1

        stored = state.files.get(family)
        unchanged = (
            stored is not None and stored.etag is not None and stored.etag == meta.etag
        )
        self._statuses[family] = FileSyncStatus(
            status=SyncStatus.UP_TO_DATE if unchanged else SyncStatus.LOADING,
            last_modified=meta.last_modified,
            etag=meta.etag,
            message=None if unchanged else "Downloading new version...",
        )

        if only_check_meta or (unchanged and self.store.has_workbook(family)):
            return None

        content = await self.client.fetch_content(share_id, token)
        metrics.api_calls += 1
        metrics.bytes_downloaded += len(content)
        workbook = await asyncio.to_thread(
            self.loader.load_bytes, content, meta.name or family.value
        )

        state.files[family] = StoredFileMeta(
            etag=meta.etag, last_modified=meta.last_modified
        )
        self._statuses[family] = self._statuses[family].model_copy(
            update={"status": SyncStatus.SUCCESS, "message": None}
        )
        logger.info("Workbook refreshed", etag=meta.etag, size_bytes=len(content))
        return workbook


async def auto_refresh(
    sync: WorkbookSync, token_provider: TokenProvider, interval_seconds: float
) -> None:
    """Run a sync pass every ``interval_seconds`` until cancelled.

    A failed pass is logged and the loop keeps going; per-family problems
    are already reported through the sync statuses.
    """
    logger.info("Auto-refresh started", interval_seconds=interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            response = await sync.sync(token_provider)
        except Exception:
            logger.exception("Auto-refresh pass failed")
            continue
        logger.info(
            "Auto-refresh pass finished",
            changed=",".join(family.value for family in response.changed) or "-",
        )


def configured_links() -> dict[FileFamily, str]:
    return {
        FileFamily.FACTURACION: settings.facturacion_link,
        FileFamily.BALANCE: settings.balance_link,
    }


# Global sync instance
_workbook_sync: WorkbookSync | None = None


def get_workbook_sync() -> WorkbookSync:
    """Get the global sync workflow, creating it on first call."""
    global _workbook_sync
    if _workbook_sync is None:
        _workbook_sync = WorkbookSync(
            client=GraphClient(),
            store=get_workbook_store(),
            state_store=SyncStateStore(Path(settings.sync_state_path)),
            links=configured_links(),
        )
    return _workbook_sync


def reset_workbook_sync() -> None:
    """Reset the global sync workflow. Used primarily for testing."""
    global _workbook_sync
    _workbook_sync = None
