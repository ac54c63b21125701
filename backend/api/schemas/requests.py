"""
API Request Schemas

Pydantic models for request validation.
"""

import json
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


class DashboardFilters(BaseModel):
    """Per-field allow-lists applied to dataset rows."""

    categorical: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Field name -> allowed values (empty list = no restriction)"
    )

    @field_validator("categorical", mode="before")
    @classmethod
    def coerce_values(cls, v: Any) -> Any:
        """Stringify allow-list values; null means no filters."""
        if v is None:
            return {}
        if not isinstance(v, dict):
            return v
        coerced = {}
        for field, values in v.items():
            if values is None:
                coerced[field] = []
            elif isinstance(values, (list, tuple)):
                coerced[field] = [str(value) for value in values]
            else:
                coerced[field] = [str(values)]
        return coerced

    def canonical(self) -> str:
        """
        Order-independent serialization of the filter state.

        Field order and allow-list order never change which rows match,
        so both are normalized. Anything else is kept verbatim.
        """
        normalized = {
            field: sorted(values)
            for field, values in sorted(self.categorical.items())
        }
        return json.dumps({"categorical": normalized}, ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def parse_query(cls, raw: Optional[str]) -> "DashboardFilters":
        """
        Decode the JSON `filters` query parameter.

        Absent or unparseable input means "no filters".
        """
        if not raw:
            return cls()
        try:
            return cls.model_validate_json(raw)
        except ValidationError:
            return cls()
