"""Workbook Series - chart-ready time series extracted from Excel workbooks."""

__version__ = "0.1.0"

from workbook_series.api import app, create_app  # noqa: E402

__all__ = ["app", "create_app"]


def main() -> None:
    """Run the FastAPI server using uvicorn."""
    import uvicorn

    from workbook_series.config import settings

    uvicorn.run(
        "workbook_series.api:app",
        host=settings.server_host,
        port=settings.server_port,
    )
