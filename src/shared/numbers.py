from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation


def to_number(value: object) -> float:
    """Coerce an upstream numeric-or-string field to a finite float.

    ``None``, booleans, blank or non-numeric strings, NaN and infinities all
    become ``0.0``.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, Decimal):
        result = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return 0.0
        try:
            result = float(Decimal(text))
        except (InvalidOperation, ValueError):
            return 0.0
    else:
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def optional_number(value: object) -> float | None:
    """Like :func:`to_number` but keeps "absent" distinguishable from zero."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return to_number(value)


def safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0
