"""Trim scanned header labels down to the genuine time series."""

from __future__ import annotations

import re
from collections.abc import Sequence

from workbook_series.services.category_scanner import SPANISH_MONTHS

TOTAL_MARKER = "total"
_DIGIT = re.compile(r"\d")


def looks_like_month_year(label: str) -> bool:
    """True when a normalized label holds a month abbreviation and a digit."""
    has_month = any(month in label for month in SPANISH_MONTHS)
    return has_month and _DIGIT.search(label) is not None


def find_cutoff(
    categories: Sequence[str | None], is_primary_family: bool
) -> int | None:
    """Index of the first label that ends the series, or None.

    A label containing "total" always ends it. For the primary (billing)
    family, so does the first non-empty label that is not month-year shaped,
    which drops trailing annotation columns such as "Nota (1)".
    """
    for index, category in enumerate(categories):
        label = (category or "").strip().lower()
        if TOTAL_MARKER in label:
            return index
        if is_primary_family and label and not looks_like_month_year(label):
            return index
    return None


def filter_categories(
    categories: Sequence[str | None], is_primary_family: bool
) -> Sequence[str | None]:
    """Return the prefix of ``categories`` before the cutoff.

    The input is returned as-is when nothing is cut, so the result is always
    a prefix of the input.
    """
    cutoff = find_cutoff(categories, is_primary_family)
    if cutoff is None:
        return categories
    return categories[:cutoff]
