"""Tests for the FastAPI application."""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from fastapi import status
from pydantic import SecretStr

from workbook_series.api import create_app
from workbook_series.models import FileFamily, FileSyncStatus, SyncResponse, SyncStatus
from workbook_series.services.workbook_store import reset_workbook_store
from workbook_series.services.workbook_sync import reset_workbook_sync

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@asynccontextmanager
async def create_test_client(
    state_path: Path,
    patches: dict[str, Any] | None = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client with proper lifespan handling.

    Args:
        state_path: Where the sync workflow keeps its eTags.
        patches: Optional dictionary of patch targets and values.
    """
    patch_targets = {
        "workbook_series.api.settings.sync_state_path": str(state_path),
        "workbook_series.api.settings.facturacion_link": "",
        "workbook_series.api.settings.balance_link": "",
        **(patches or {}),
    }

    for target, value in patch_targets.items():
        patch(target, value).start()
    reset_workbook_store()
    reset_workbook_sync()
    try:
        app = create_app()
        async with (
            app.router.lifespan_context(app),
            httpx.AsyncClient(
                transport=httpx.ASGITransport(app=app),
                base_url="http://test",
            ) as client,
        ):
            client.app = app  # type: ignore[attr-defined]
            yield client
    finally:
        patch.stopall()
        reset_workbook_store()
        reset_workbook_sync()


@pytest.fixture
async def client(tmp_path: Path) -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client for the FastAPI application."""
    async with create_test_client(tmp_path / "state.json") as ac:
        yield ac


@pytest.fixture
def market_share_xlsx(xlsx_bytes: Callable[..., bytes]) -> bytes:
    """Billing workbook holding only the market share sheet."""
    return xlsx_bytes(
        {
            "Participación": {
                "C4": datetime(2024, 1, 1),
                "D4": datetime(2024, 2, 1),
                "B5": "Propio",
                "C5": 60,
                "D5": 55,
                "B6": "Competencia",
                "C6": 40,
                "D6": 45.5,
            }
        }
    )


async def _upload(
    client: httpx.AsyncClient, content: bytes, filename: str = "Facturacion.xlsx"
) -> httpx.Response:
    return await client.post(
        "/workbooks/facturacion",
        files={"file": (filename, content, XLSX_TYPE)},
    )


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    async def test_health_check_returns_healthy(
        self, client: httpx.AsyncClient
    ) -> None:
        response = await client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"

    async def test_request_id_is_echoed(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    async def test_request_id_is_generated(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.headers["X-Request-ID"]


class TestUploadEndpoint:
    """Tests for POST /workbooks/{family}."""

    async def test_upload_recomputes_family_reports(
        self, client: httpx.AsyncClient, market_share_xlsx: bytes
    ) -> None:
        response = await _upload(client, market_share_xlsx)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["file_family"] == "facturacion"
        assert data["filename"] == "Facturacion.xlsx"
        assert data["sheet_names"] == ["Participación"]
        # every billing report gets a result, even those whose sheet is absent
        assert data["reports_recomputed"] == 6

    async def test_unknown_family(
        self, client: httpx.AsyncClient, market_share_xlsx: bytes
    ) -> None:
        response = await client.post(
            "/workbooks/costes",
            files={"file": ("a.xlsx", market_share_xlsx, XLSX_TYPE)},
        )

        assert response.status_code == 422

    async def test_wrong_extension(self, client: httpx.AsyncClient) -> None:
        response = await _upload(client, b"a,b\n1,2\n", filename="data.csv")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["error_code"] == "E1002"
        assert data["details"]["filename"] == "data.csv"
        assert "request_id" in data

    async def test_unreadable_workbook(self, client: httpx.AsyncClient) -> None:
        response = await _upload(client, b"PK\x03\x04 not really a workbook")

        assert response.status_code == 422
        assert response.json()["error_code"] == "E1003"

    async def test_malformed_sheet_part(
        self, client: httpx.AsyncClient, corrupt_xlsx_bytes: bytes
    ) -> None:
        response = await _upload(client, corrupt_xlsx_bytes)

        assert response.status_code == 422
        assert response.json()["error_code"] == "E1003"

    async def test_file_too_large(self, tmp_path: Path) -> None:
        patches = {
            "workbook_series.services.workbook_loader.settings.max_file_size_mb": 1
        }
        async with create_test_client(tmp_path / "state.json", patches) as client:
            response = await _upload(client, b"PK\x03\x04" + b"0" * (1024 * 1024))

        assert response.status_code == 413
        assert response.json()["error_code"] == "E1001"


class TestReportEndpoints:
    """Tests for the /reports endpoints."""

    async def test_list_reports_before_upload(
        self, client: httpx.AsyncClient
    ) -> None:
        response = await client.get("/reports")

        assert response.status_code == status.HTTP_200_OK
        reports = response.json()
        assert [report["id"] for report in reports] == [1, 2, 3, 4, 5, 6, 7]
        assert not any(report["has_result"] for report in reports)
        assert reports[5]["export_filename"] == "Margen_Comercial.csv"

    async def test_list_reports_after_upload(
        self, client: httpx.AsyncClient, market_share_xlsx: bytes
    ) -> None:
        await _upload(client, market_share_xlsx)
        reports = (await client.get("/reports")).json()

        has_result = {report["id"]: report["has_result"] for report in reports}
        assert has_result[4] is True
        assert has_result[7] is False

    async def test_report_before_upload_conflicts(
        self, client: httpx.AsyncClient
    ) -> None:
        response = await client.get("/reports/1")

        assert response.status_code == status.HTTP_409_CONFLICT
        data = response.json()
        assert data["error_code"] == "E3002"
        assert data["details"]["file_family"] == "facturacion"

    async def test_unknown_report(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/reports/99")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "E3001"

    async def test_get_report(
        self, client: httpx.AsyncClient, market_share_xlsx: bytes
    ) -> None:
        await _upload(client, market_share_xlsx)
        response = await client.get("/reports/4")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["report_id"] == 4
        assert data["categories"] == ["ene-24", "feb-24"]
        assert [series["name"] for series in data["series"]] == [
            "Propio",
            "Competencia",
        ]
        assert data["series"][1]["values"] == [40, 45.5]
        assert data["validation"]["errors"] == []

    async def test_missing_sheet_is_reported_not_raised(
        self, client: httpx.AsyncClient, market_share_xlsx: bytes
    ) -> None:
        await _upload(client, market_share_xlsx)
        response = await client.get("/reports/1")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["categories"] == []
        assert data["validation"]["sheet_found"] is False
        assert data["validation"]["errors"][0]["code"] == "sheet_not_found"

    async def test_export_csv(
        self, client: httpx.AsyncClient, market_share_xlsx: bytes
    ) -> None:
        await _upload(client, market_share_xlsx)
        response = await client.get("/reports/4/csv")

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == (
            "attachment; filename*=UTF-8''PARTICIPACI%C3%93N_EN_EL_MERCADO.csv"
        )
        assert response.text == (
            '"Category","Propio","Competencia"\n'
            '"ene-24",60,40\n'
            '"feb-24",55,45.5\n'
        )

    async def test_export_csv_before_upload(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/reports/4/csv")

        assert response.status_code == status.HTTP_409_CONFLICT


class _RecordingSync:
    """Stands in for the sync workflow and records the token it is given."""

    def __init__(self) -> None:
        self.tokens: list[str] = []
        self.only_check_meta: bool | None = None

    async def sync(self, token_provider: Any, only_check_meta: bool = False) -> Any:
        self.tokens.append(await token_provider(advanced=False))
        self.tokens.append(await token_provider(advanced=True))
        self.only_check_meta = only_check_meta
        return SyncResponse(
            statuses={
                family: FileSyncStatus(status=SyncStatus.UP_TO_DATE)
                for family in FileFamily
            }
        )


class TestSyncEndpoints:
    """Tests for the /sync endpoints."""

    async def test_sync_without_token(self, tmp_path: Path) -> None:
        patches = {"workbook_series.api.settings.graph_access_token": SecretStr("")}
        async with create_test_client(tmp_path / "state.json", patches) as client:
            response = await client.post("/sync")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert "access token" in response.json()["detail"]

    async def test_sync_uses_bearer_and_elevated_tokens(
        self, client: httpx.AsyncClient
    ) -> None:
        recorder = _RecordingSync()
        client.app.state.sync = recorder  # type: ignore[attr-defined]

        response = await client.post(
            "/sync",
            params={"only_check_meta": "true"},
            headers={
                "Authorization": "Bearer basic-token",
                "X-Graph-Elevated-Token": "elevated-token",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        assert recorder.tokens == ["basic-token", "elevated-token"]
        assert recorder.only_check_meta is True
        assert response.json()["statuses"]["balance"]["status"] == "up-to-date"

    async def test_sync_without_links_leaves_families_idle(
        self, client: httpx.AsyncClient
    ) -> None:
        response = await client.post(
            "/sync", headers={"Authorization": "Bearer basic-token"}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert {item["status"] for item in data["statuses"].values()} == {"idle"}
        assert data["changed"] == []

    async def test_sync_status(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/sync/status")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert set(data["statuses"]) == {"facturacion", "balance"}
        assert data["last_sync"] is None


class TestAutoRefresh:
    """Tests for the background refresh started by the lifespan."""

    async def test_runs_sync_passes_and_stops_on_shutdown(
        self, tmp_path: Path
    ) -> None:
        patches = {
            "workbook_series.api.settings.auto_refresh": True,
            "workbook_series.api.settings.graph_access_token": SecretStr("tok"),
            # a few milliseconds between passes
            "workbook_series.api.settings.refresh_interval_minutes": 0.0005,
        }
        async with create_test_client(tmp_path / "state.json", patches) as client:
            task = client.app.state.refresh_task  # type: ignore[attr-defined]
            assert task is not None

            last_sync = None
            for _ in range(100):
                await asyncio.sleep(0.05)
                last_sync = (await client.get("/sync/status")).json()["last_sync"]
                if last_sync is not None:
                    break

        assert last_sync is not None
        assert task.cancelled()

    async def test_not_started_without_token(self, tmp_path: Path) -> None:
        patches = {
            "workbook_series.api.settings.auto_refresh": True,
            "workbook_series.api.settings.graph_access_token": SecretStr(""),
        }
        async with create_test_client(tmp_path / "state.json", patches) as client:
            assert client.app.state.refresh_task is None  # type: ignore[attr-defined]

    async def test_disabled_by_default(self, client: httpx.AsyncClient) -> None:
        assert client.app.state.refresh_task is None  # type: ignore[attr-defined]
