"""Numeric normalization shared by every numeric read.

Both the number-mode header scan and the series reader go through
:func:`normalize_number` so that a cell is coerced the same way no matter
which path reads it.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from openpyxl.cell.cell import ERROR_CODES

_DISALLOWED_CHARS = re.compile(r"[^0-9.\-]")
# Longest leading float, the way a lenient float parser reads "12.5-3" as 12.5.
_LEADING_FLOAT = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")


def _unify_separators(text: str) -> str:
    """Rewrite thousands/decimal separators so that only a decimal dot remains.

    When both "," and "." appear, whichever comes last is the decimal mark
    and the other is grouping ("1,234.5" and "1.234,5" both give "1234.5").
    A lone comma is a decimal comma ("12,5"); repeated commas or repeated
    dots are grouping ("1,234,567", "1.234.567").
    """
    has_comma = "," in text
    has_dot = "." in text
    if has_comma and has_dot:
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")
    if has_comma:
        if text.count(",") == 1:
            return text.replace(",", ".")
        return text.replace(",", "")
    if text.count(".") > 1:
        return text.replace(".", "")
    return text


def normalize_number(raw: Any) -> float | int | None:
    """Coerce a raw cell value to a number, or None.

    - ``None`` and ``""`` give None.
    - Numbers are returned unchanged, except NaN which gives None.
    - Anything else is stringified, stripped, has its separators unified,
      loses every character outside ``[0-9.-]`` and is parsed as a float;
      an unparseable or non-finite result gives None.

    Excel error literals such as ``#DIV/0!`` give None rather than the
    digits they happen to contain.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if isinstance(raw, float) and math.isnan(raw):
            return None
        return raw

    text = str(raw).strip()
    if text.upper() in ERROR_CODES:
        return None
    cleaned = _DISALLOWED_CHARS.sub("", _unify_separators(text))
    match = _LEADING_FLOAT.match(cleaned)
    if match is None:
        return None
    value = float(match.group(0))
    if not math.isfinite(value):
        return None
    return value


@dataclass
class CoercionTally:
    """Counts raw values that were present but could not be read as numbers."""

    count: int = 0

    def normalize(self, raw: Any) -> float | int | None:
        value = normalize_number(raw)
        if value is None and raw is not None and raw != "":
            self.count += 1
        return value
