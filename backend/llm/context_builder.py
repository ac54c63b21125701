"""
Context Builder

Builds the dataset context sent to the LLM. Every dynamic string passes
through redaction before it can reach a prompt.
"""

import json
import re
from typing import Any, Optional

from api.schemas.requests import DashboardFilters
from api.schemas.responses import DatasetInsight, InsightMetadata, InsightType
from core.datasets import GROUP_A, GROUP_B, Dataset


EMAIL_PATTERN = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
# Eight or more consecutive digits: phone, account and document numbers
LONG_NUMBER_PATTERN = re.compile(r"(?<!\d)\d{8,}(?!\d)")

REDACTED_EMAIL = "[REDACTED_EMAIL]"
REDACTED_NUMBER = "[REDACTED_NUMBER]"

NOT_AVAILABLE = "N/A"


def redact_text(value: Optional[str]) -> str:
    """Mask e-mail addresses and long digit runs, then trim."""
    if not value:
        return ""
    text = EMAIL_PATTERN.sub(REDACTED_EMAIL, value)
    text = LONG_NUMBER_PATTERN.sub(REDACTED_NUMBER, text)
    return text.strip()


def redact_filters(filters: DashboardFilters) -> dict[str, list[str]]:
    """Filter state with both field names and values redacted."""
    return {
        redact_text(field): [redact_text(value) for value in values]
        for field, values in filters.categorical.items()
    }


def redact_metadata(metadata: InsightMetadata) -> dict[str, Any]:
    """Metadata as a dict with every text field redacted; numbers pass through."""
    return {
        key: redact_text(value) if isinstance(value, str) else value
        for key, value in metadata.model_dump(exclude_none=True).items()
    }


class ContextBuilder:
    """
    Builds context strings for LLM prompts.

    Only aggregate facts about the dataset are included; row values are
    never sent.
    """

    MAX_CONTEXT_CHARS = 8000  # Approximately 2000 tokens
    MAX_NARRATIVE_INSIGHTS = 8

    def __init__(self, max_chars: Optional[int] = None):
        self.max_chars = max_chars or self.MAX_CONTEXT_CHARS

    def build_dataset_summary(self, dataset: Dataset, filters: DashboardFilters) -> dict[str, Any]:
        """Redacted facts about the comparison being analyzed."""
        kpis = dataset.schema_mapping.kpi_fields if dataset.schema_mapping else []
        ai_config = dataset.ai_config

        return {
            "dataset_name": redact_text(dataset.meta.name),
            "description": redact_text(dataset.meta.description) or NOT_AVAILABLE,
            "group_a": redact_text(dataset.group_label(GROUP_A)),
            "group_b": redact_text(dataset.group_label(GROUP_B)),
            "kpis": [
                {"name": redact_text(k.column_name), "label": redact_text(k.label)}
                for k in kpis
            ],
            "filters": {"categorical": redact_filters(filters)},
            "user_context": redact_text(ai_config.user_context if ai_config else None) or NOT_AVAILABLE,
            "sample_size": len(dataset.data),
        }

    def build_insights_digest(self, insights: list[DatasetInsight]) -> list[dict[str, Any]]:
        """The leading insights, reduced to what a narrative needs."""
        return [
            {
                "type": insight.type.value,
                "severity": insight.severity,
                "title": redact_text(insight.title),
                "message": redact_text(insight.message),
                "metadata": redact_metadata(insight.metadata),
            }
            for insight in insights[:self.MAX_NARRATIVE_INSIGHTS]
        ]

    def strongest_signals(self, insights: list[DatasetInsight], limit: int = 3) -> list[dict[str, Any]]:
        """Dimension insights with the largest positive change, one per title."""
        positive = sorted(
            (
                i for i in insights
                if i.metadata.dimension and i.metadata.change is not None
                and i.metadata.change > 0 and i.type != InsightType.SUMMARY
            ),
            key=lambda i: i.metadata.change,
            reverse=True,
        )

        signals: dict[str, dict[str, Any]] = {}
        for insight in positive:
            title = redact_text(insight.title)
            if title not in signals:
                signals[title] = {
                    "signal": title,
                    "dimension": redact_text(insight.metadata.dimension),
                    "kpi": redact_text(insight.metadata.kpi) or "unknown",
                    "change": round(insight.metadata.change, 2),
                }
        return list(signals.values())[:limit]

    def weakest_metrics(self, insights: list[DatasetInsight], limit: int = 3) -> list[dict[str, Any]]:
        """KPIs with the most negative change."""
        negative = sorted(
            (
                i for i in insights
                if i.metadata.kpi and i.metadata.change is not None and i.metadata.change < 0
            ),
            key=lambda i: i.metadata.change,
        )
        return [
            {"kpi": redact_text(i.metadata.kpi), "change": round(i.metadata.change, 2)}
            for i in negative[:limit]
        ]

    def to_json(self, value: Any) -> str:
        return self._truncate(json.dumps(value, ensure_ascii=False, indent=2))

    def _truncate(self, text: str) -> str:
        """Truncate text to max chars."""
        if len(text) <= self.max_chars:
            return text

        return text[:self.max_chars - 50] + "\n\n... (truncated for length)"


# Global instance
context_builder = ContextBuilder()
