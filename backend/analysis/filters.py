"""
Tabular Filter

Applies per-field allow-lists to unified dataset rows, plus the
cell coercions shared by the analysis code.
"""

import math
from typing import Any, Iterable

from api.schemas.requests import DashboardFilters


MISSING_VALUE = "N/A"


def stringify_value(value: Any) -> str:
    """
    Render a cell the way it is shown to users and matched by filters.

    Integral floats drop the trailing ``.0`` so ``100.0`` and ``100``
    match the same allow-list entry.
    """
    if value is None:
        return MISSING_VALUE
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def to_number(value: Any) -> float:
    """Coerce a cell to a finite float; anything unparseable is 0."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def apply_filters(
    rows: Iterable[dict[str, Any]],
    filters: DashboardFilters,
) -> list[dict[str, Any]]:
    """
    Keep rows whose value is allowed for every restricted field.

    A field missing from the filter, or mapped to an empty list,
    imposes no constraint.
    """
    active = {
        field: set(values)
        for field, values in filters.categorical.items()
        if values
    }
    if not active:
        return list(rows)

    return [
        row for row in rows
        if all(stringify_value(row.get(field)) in allowed for field, allowed in active.items())
    ]
