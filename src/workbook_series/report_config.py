"""Static report definitions: which sheet, which anchors, which series.

Reports are immutable records loaded once at startup, either the built-in
list below or a JSON file named by ``WBS_REPORT_CONFIG_PATH``. JSON files may
use camelCase keys (``categoryStartCell``, ``valuesStartCell``, ...).
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from workbook_series.config import settings
from workbook_series.models import FileFamily
from workbook_series.services.cell_reference import decode_cell, decode_range
from workbook_series.utils.exceptions import (
    ConfigurationError,
    InvalidCellReferenceError,
)
from workbook_series.utils.logging import get_logger

logger = get_logger(__name__)

RenderType = Literal["bar", "line", "area"]


def _check_cell(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        decode_cell(value)
    except InvalidCellReferenceError as e:
        raise ValueError(e.message) from e
    return value.strip().upper()


class _Record(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class SeriesConfig(_Record):
    """One numeric row of a report.

    ``render_type`` and ``stack`` are rendering hints passed through untouched.
    """

    values_start_cell: str
    name_cell: str | None = None
    name_range: str | None = None
    value_header_pattern: str | None = None
    render_type: RenderType | None = None
    stack: bool | str | None = None

    @field_validator("values_start_cell", "name_cell")
    @classmethod
    def validate_cell(cls, v: str | None) -> str | None:
        return _check_cell(v)

    @field_validator("name_range")
    @classmethod
    def validate_range(cls, v: str | None) -> str | None:
        if v is None:
            return None
        try:
            decode_range(v)
        except InvalidCellReferenceError as e:
            raise ValueError(e.message) from e
        return v.strip().upper()


class ReportConfig(_Record):
    """Where one chart's data lives in its workbook."""

    id: int
    title: str
    file_family: FileFamily = Field(alias="fileType")
    sheet: str
    category_start_cell: str
    category_start_cell_row2: str | None = None
    category_header_pattern: str | None = None
    max_consecutive_blanks: int | None = Field(default=None, ge=2)
    series: tuple[SeriesConfig, ...] = ()
    chart_type: RenderType = Field(default="bar", alias="type")
    stack: bool = False

    # Visual hints, passed through to clients
    height: int | None = None
    disable_data_zoom: bool | None = None
    initial_zoom_last_n: int | None = None
    x_axis_label_interval: int | Literal["auto"] | None = None
    x_axis_label_rotate: int | None = None

    @field_validator("category_start_cell", "category_start_cell_row2")
    @classmethod
    def validate_cell(cls, v: str | None) -> str | None:
        return _check_cell(v)

    @property
    def is_primary_family(self) -> bool:
        return self.file_family.is_primary

    @property
    def export_filename(self) -> str:
        return "_".join(self.title.split()) + ".csv"


class _ReportList(BaseModel):
    reports: tuple[ReportConfig, ...]

    @model_validator(mode="after")
    def validate_unique_ids(self) -> _ReportList:
        ids = [report.id for report in self.reports]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate report ids: {duplicates}")
        return self


def _series(*pairs: tuple[str, str]) -> tuple[SeriesConfig, ...]:
    return tuple(
        SeriesConfig(name_cell=name, values_start_cell=values) for name, values in pairs
    )


BUILTIN_REPORTS: tuple[ReportConfig, ...] = (
    # Facturacion
    ReportConfig(
        id=1,
        title="EVOLUCIÓN DEL PRECIO MEDIO DE ENERGÍA ACTIVA",
        file_family=FileFamily.FACTURACION,
        sheet="Precio Medio",
        category_start_cell="E23",
        series=_series(
            ("C25", "E25"), ("C32", "E32"), ("C37", "E37"), ("B50", "E50")
        ),
    ),
    ReportConfig(
        id=2,
        title="VENTA DE ENERGÍA (GWh)",
        file_family=FileFamily.FACTURACION,
        sheet="VENTAS (MWh)",
        category_start_cell="F63",
        stack=True,
        series=_series(
            ("D64", "F64"),
            ("D65", "F65"),
            ("D66", "F66"),
            ("D67", "F67"),
            ("D68", "F68"),
        ),
    ),
    ReportConfig(
        id=3,
        title="INGRESOS POR VENTAS DE ENERGÍA",
        file_family=FileFamily.FACTURACION,
        sheet="VENTAS (S)",
        category_start_cell="F2",
        series=_series(
            ("C4", "F4"), ("C11", "F11"), ("C16", "F16"), ("C26", "F26")
        ),
    ),
    ReportConfig(
        id=4,
        title="PARTICIPACIÓN EN EL MERCADO",
        file_family=FileFamily.FACTURACION,
        sheet="Participación",
        category_start_cell="C4",
        series=_series(("B5", "C5"), ("B6", "C6")),
    ),
    ReportConfig(
        id=5,
        title="ENERGÍA DESPACHADA",
        file_family=FileFamily.FACTURACION,
        sheet="Despacho",
        category_start_cell="C5",
        series=_series(("B6", "C6"), ("B7", "C7")),
    ),
    ReportConfig(
        id=6,
        title="Margen Comercial",
        file_family=FileFamily.FACTURACION,
        sheet="Margen Comercial",
        category_start_cell="D3",
        category_start_cell_row2="D4",
        series=(
            SeriesConfig(name_range="B5:C5", values_start_cell="D5"),
            SeriesConfig(name_range="B12:C12", values_start_cell="D12"),
            SeriesConfig(name_range="B20:C20", values_start_cell="D20"),
        ),
    ),
    # Balance
    ReportConfig(
        id=7,
        title="Producción de energía activa 2016-2025",
        file_family=FileFamily.BALANCE,
        sheet="Perfil",
        category_start_cell="C3",
        chart_type="line",
        disable_data_zoom=False,
        initial_zoom_last_n=24,
        height=550,
        x_axis_label_interval="auto",
        x_axis_label_rotate=45,
        series=(
            SeriesConfig(
                name_cell="B20",
                values_start_cell="C20",
                render_type="area",
                stack="total",
            ),
            SeriesConfig(
                name_cell="B19",
                values_start_cell="C19",
                render_type="area",
                stack="total",
            ),
            SeriesConfig(
                name_cell="B16",
                values_start_cell="C16",
                render_type="line",
                stack=False,
            ),
            SeriesConfig(
                name_cell="B17",
                values_start_cell="C17",
                render_type="line",
                stack=False,
            ),
        ),
    ),
)


def load_report_configs(path: Path) -> tuple[ReportConfig, ...]:
    """Load report definitions from a JSON array.

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read report configuration: {path}", details={"error": str(e)}
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Invalid JSON in report configuration: {path}",
            details={"parse_error": str(e)},
        ) from e

    try:
        reports = _ReportList.model_validate({"reports": raw})
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid report configuration: {path}",
            details={"validation_errors": [err["msg"] for err in e.errors()]},
        ) from e

    logger.info(
        "Report configuration loaded", path=str(path), reports=len(reports.reports)
    )
    return reports.reports


@lru_cache(maxsize=1)
def get_report_configs() -> tuple[ReportConfig, ...]:
    """Configured reports: the JSON file from settings, else the built-ins."""
    if settings.report_config_path:
        return load_report_configs(Path(settings.report_config_path))
    return BUILTIN_REPORTS


def find_report(
    report_id: int, reports: tuple[ReportConfig, ...]
) -> ReportConfig | None:
    return next((report for report in reports if report.id == report_id), None)
