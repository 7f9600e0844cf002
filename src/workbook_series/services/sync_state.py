"""Persisted change tags of the synced workbooks."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from workbook_series.models import FileFamily
from workbook_series.utils.logging import get_logger

logger = get_logger(__name__)


class StoredFileMeta(BaseModel):
    """Last version of a workbook that was downloaded."""

    etag: str | None = None
    last_modified: str | None = None


class SyncState(BaseModel):
    """Everything remembered between sync passes."""

    files: dict[FileFamily, StoredFileMeta] = Field(default_factory=dict)
    last_sync: datetime | None = None


class SyncStateStore:
    """Loads and saves :class:`SyncState` as a JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> SyncState:
        """Read the stored state; a missing or unreadable file gives a fresh one."""
        if not self.path.exists():
            return SyncState()
        try:
            return SyncState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, PydanticValidationError) as e:
            logger.warning(
                "Ignoring unreadable sync state", path=str(self.path), error=str(e)
            )
            return SyncState()

    def save(self, state: SyncState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        logger.debug("Sync state saved", path=str(self.path))
