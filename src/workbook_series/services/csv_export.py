"""Tabular views of an extraction result: CSV text and a pandas DataFrame."""

from __future__ import annotations

import csv
import io

import pandas as pd

from workbook_series.models import ExtractionResult

CATEGORY_HEADER = "Category"


def _cell(value: float | None) -> float | int | None:
    # whole numbers are written without a trailing ".0"
    if value is not None and value.is_integer():
        return int(value)
    return value


def to_csv(result: ExtractionResult) -> str:
    """Render a result as CSV, one row per category.

    Labels and series names are quoted; numbers are written bare and
    missing values are left empty.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_STRINGS, lineterminator="\n")
    writer.writerow([CATEGORY_HEADER, *(series.name for series in result.series)])
    for index, category in enumerate(result.categories):
        writer.writerow(
            [category, *(_cell(series.values[index]) for series in result.series)]
        )
    return buffer.getvalue()


def to_dataframe(result: ExtractionResult) -> pd.DataFrame:
    """Return the result as a DataFrame indexed by category label.

    Missing values are NaN. Columns follow the configured series order.
    """
    # keyed by position first: two series may share a name
    frame = pd.DataFrame(
        {position: series.values for position, series in enumerate(result.series)},
        index=pd.Index(result.categories, name=CATEGORY_HEADER),
        dtype="float64",
    )
    frame.columns = [series.name for series in result.series]
    return frame
