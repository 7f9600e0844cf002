"""FastAPI application for workbook series extraction."""

import asyncio
import uuid
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime
from typing import Annotated, Any
from urllib.parse import quote

from fastapi import (
    FastAPI,
    File,
    Header,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from workbook_series import __version__
from workbook_series.config import settings, validate_settings_on_startup
from workbook_series.models import (
    ErrorDetail,
    ExtractionResult,
    FileFamily,
    HealthResponse,
    ReportSummary,
    SyncResponse,
    UploadResponse,
)
from workbook_series.services.csv_export import to_csv
from workbook_series.services.workbook_loader import WorkbookLoader, validate_upload
from workbook_series.services.workbook_store import WorkbookStore, get_workbook_store
from workbook_series.services.workbook_sync import (
    WorkbookSync,
    auto_refresh,
    get_workbook_sync,
)
from workbook_series.utils.exceptions import ErrorCode, WBSError
from workbook_series.utils.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)

# Configure structured logging using settings
configure_logging(
    level=settings.log_level_int,
    use_structured_formatter=True,
)
logger = get_logger(__name__)

_BEARER_PREFIX = "bearer "


def _bearer_token(authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith(_BEARER_PREFIX):
        token = authorization[len(_BEARER_PREFIX) :].strip()
        return token or None
    return None


def _start_auto_refresh(sync: WorkbookSync) -> asyncio.Task[None] | None:
    """Schedule periodic sync passes when enabled and a token is configured."""
    token = settings.get_graph_access_token()
    if not settings.auto_refresh or not token:
        return None

    async def token_provider(advanced: bool = False) -> str:
        return token

    return asyncio.create_task(
        auto_refresh(sync, token_provider, settings.refresh_interval_minutes * 60)
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        app.state.store = get_workbook_store()
        app.state.sync = get_workbook_sync()
        app.state.refresh_task = _start_auto_refresh(app.state.sync)
        try:
            yield
        finally:
            task = app.state.refresh_task
            if task is not None:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
                logger.info("Auto-refresh stopped")

    app = FastAPI(
        title="Workbook Series API",
        description=(
            "Extracts chart-ready time series from Excel workbooks and keeps "
            "them in sync with their shared copies on Microsoft Graph."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Configure CORS using settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Validate settings on startup
    validate_settings_on_startup(settings)

    def _store(request: Request) -> WorkbookStore:
        store: WorkbookStore = request.app.state.store
        return store

    def _sync(request: Request) -> WorkbookSync:
        sync: WorkbookSync = request.app.state.sync
        return sync

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Any:
        """Assign a request ID, expose it in logs and echo it in the response."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        set_request_id(request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()

    @app.exception_handler(WBSError)
    async def wbs_exception_handler(request: Request, exc: WBSError) -> JSONResponse:
        """Return structured error responses for the package's exceptions."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.error(
            f"WBS Error: {exc.message}",
            error_code=exc.error_code.value,
            http_status=exc.http_status,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=ErrorDetail.from_error_code(
                exc.error_code,
                exc.message,
                details=exc.details or None,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        """Custom exception handler for HTTP exceptions."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.warning(
            f"HTTP Error: {exc.detail}",
            status_code=exc.status_code,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                detail=str(exc.detail),
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all handler that hides internals unless debug is enabled."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.exception(
            f"Unexpected error: {type(exc).__name__}",
            error_type=type(exc).__name__,
        )
        if settings.debug:
            detail = f"Internal server error: {type(exc).__name__}: {exc}"
        else:
            detail = "Internal server error. Please try again later."

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail(
                detail=detail,
                error_code=ErrorCode.INTERNAL_ERROR.value,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> dict[str, Any]:
        """Check the health status of the service."""
        logger.debug("Health check requested")
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": __version__,
        }

    @app.post(
        "/workbooks/{family}",
        response_model=UploadResponse,
        tags=["Workbooks"],
        responses={
            400: {"model": ErrorDetail, "description": "Not an .xlsx workbook"},
            413: {"model": ErrorDetail, "description": "File too large"},
            422: {"model": ErrorDetail, "description": "Workbook cannot be read"},
        },
    )
    async def upload_workbook(
        request: Request,
        family: FileFamily,
        file: Annotated[UploadFile, File(description="Excel workbook (.xlsx)")],
    ) -> UploadResponse:
        """Load a workbook for one family and recompute every report.

        Args:
            request: FastAPI request object
            family: Workbook family the file belongs to
            file: The uploaded workbook

        Returns:
            UploadResponse: Sheets found and how many reports were recomputed
        """
        content = await file.read()
        validate_upload(file.filename, content)

        # parsing and recomputation are CPU bound
        workbook = await asyncio.to_thread(
            WorkbookLoader().load_bytes, content, file.filename
        )
        recomputed = await asyncio.to_thread(
            _store(request).set_workbook, family, workbook
        )

        logger.info(
            "Workbook uploaded",
            file_family=family.value,
            filename=file.filename,
            file_size=len(content),
            reports_recomputed=recomputed,
        )
        return UploadResponse(
            file_family=family,
            filename=file.filename or "unknown",
            file_size=len(content),
            sheet_names=workbook.sheet_names,
            reports_recomputed=recomputed,
        )

    @app.get("/reports", response_model=list[ReportSummary], tags=["Reports"])
    async def list_reports(request: Request) -> list[ReportSummary]:
        """List configured reports and whether each has a result yet."""
        store = _store(request)
        loaded = {result.report_id for result in store.list_results()}
        return [
            ReportSummary(
                id=report.id,
                title=report.title,
                file_family=report.file_family,
                sheet=report.sheet,
                chart_type=report.chart_type,
                export_filename=report.export_filename,
                has_result=report.id in loaded,
            )
            for report in store.reports
        ]

    @app.get(
        "/reports/{report_id}",
        response_model=ExtractionResult,
        tags=["Reports"],
        responses={
            404: {"model": ErrorDetail, "description": "Report not found"},
            409: {"model": ErrorDetail, "description": "Workbook not loaded"},
        },
    )
    async def get_report(request: Request, report_id: int) -> ExtractionResult:
        """Get the extracted categories, series and diagnostics of a report."""
        return _store(request).get_result(report_id)

    @app.get(
        "/reports/{report_id}/csv",
        tags=["Reports"],
        response_class=Response,
        responses={
            200: {"content": {"text/csv": {}}},
            404: {"model": ErrorDetail, "description": "Report not found"},
            409: {"model": ErrorDetail, "description": "Workbook not loaded"},
        },
    )
    async def export_report_csv(request: Request, report_id: int) -> Response:
        """Download a report's data as CSV."""
        store = _store(request)
        report = store.get_report(report_id)
        result = store.get_result(report_id)
        return Response(
            content=to_csv(result),
            media_type="text/csv; charset=utf-8",
            headers={
                "Content-Disposition": (
                    f"attachment; filename*=UTF-8''{quote(report.export_filename)}"
                )
            },
        )

    @app.post(
        "/sync",
        response_model=SyncResponse,
        tags=["Sync"],
        responses={
            401: {"model": ErrorDetail, "description": "No Graph token available"},
        },
    )
    async def run_sync(
        request: Request,
        only_check_meta: Annotated[bool, Query()] = False,
        authorization: Annotated[str | None, Header()] = None,
        x_graph_elevated_token: Annotated[str | None, Header()] = None,
    ) -> SyncResponse:
        """Check the shared workbooks for changes and reload the changed ones.

        The Graph token comes from the ``Authorization: Bearer`` header, or
        from ``WBS_GRAPH_ACCESS_TOKEN`` when the header is absent. After an
        authorization failure the pass is retried with the token in
        ``X-Graph-Elevated-Token`` when one is sent.
        """
        token = _bearer_token(authorization) or settings.get_graph_access_token()
        if not token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="A Microsoft Graph access token is required",
            )

        async def token_provider(advanced: bool = False) -> str:
            if advanced and x_graph_elevated_token:
                return x_graph_elevated_token
            return token

        response = await _sync(request).sync(
            token_provider, only_check_meta=only_check_meta
        )
        logger.info(
            "Sync finished",
            changed=",".join(family.value for family in response.changed) or "-",
            only_check_meta=only_check_meta,
        )
        return response

    @app.get("/sync/status", response_model=SyncResponse, tags=["Sync"])
    async def sync_status(request: Request) -> SyncResponse:
        """Current per-file sync status, without contacting Graph."""
        return _sync(request).status()

    logger.info("FastAPI application created successfully")
    return app


# Create the application instance
app = create_app()
