"""
AI Insights Generator

Asks an OpenAI-compatible LLM for insights about a dataset comparison
and normalizes whatever comes back into DatasetInsight objects.
"""

import json
import math
from typing import Any, Optional

from api.schemas.requests import DashboardFilters
from api.schemas.responses import (
    INSIGHT_ICONS, DatasetInsight, InsightMetadata, InsightSource, InsightType,
)
from config import LLMSettings, get_settings
from core.datasets import Dataset
from core.logging_config import llm_logger as logger
from insights.base import sort_by_severity
from llm.chat_client import ChatCompletionClient, LLMRequestError, chat_client
from llm.context_builder import ContextBuilder, context_builder
from llm.prompts import INSIGHTS_PROMPT, INSIGHTS_SYSTEM_PROMPT


DEFAULT_SEVERITY = 2
DEFAULT_CONFIDENCE = 0.8
DEFAULT_TITLE = "Insight"
DEFAULT_MESSAGE = "Insight generated by AI"


class AIInsightsError(LLMRequestError):
    """The LLM answered, but not with usable insights."""


def _as_number(value: Any) -> Optional[float]:
    """Finite number from a JSON value; numeric strings are accepted."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _as_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def normalize_type(value: Any) -> InsightType:
    try:
        return InsightType(value)
    except ValueError:
        return InsightType.SUMMARY


def normalize_severity(value: Any) -> int:
    number = _as_number(value)
    if number is None:
        number = DEFAULT_SEVERITY
    return max(1, min(5, int(round(number))))


def normalize_confidence(value: Any) -> float:
    number = _as_number(value)
    if number is None:
        number = DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


class AIInsightsGenerator:
    """
    LLM-backed insight generator.

    Any failure (deadline, transport, status, unparseable or empty
    answer) raises; deciding what to do about it is the caller's job.
    """

    source = InsightSource.AI_MODEL

    def __init__(
        self,
        client: Optional[ChatCompletionClient] = None,
        builder: Optional[ContextBuilder] = None,
        settings: Optional[LLMSettings] = None,
    ):
        self.client = client or chat_client
        self.builder = builder or context_builder
        self.settings = settings or get_settings().llm

    def build_messages(self, dataset: Dataset, filters: DashboardFilters) -> list[dict[str, str]]:
        summary = self.builder.build_dataset_summary(dataset, filters)
        prompt = INSIGHTS_PROMPT.format(
            dataset_name=summary["dataset_name"],
            description=summary["description"],
            group_a=summary["group_a"],
            group_b=summary["group_b"],
            sample_size=summary["sample_size"],
            kpis=json.dumps(summary["kpis"], ensure_ascii=False),
            filters=json.dumps(summary["filters"], ensure_ascii=False),
            user_context=summary["user_context"],
        )
        return [
            {"role": "system", "content": INSIGHTS_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def generate_insights(
        self,
        dataset: Dataset,
        filters: DashboardFilters,
    ) -> list[DatasetInsight]:
        logger.info(f"Requesting AI insights for dataset {dataset.id}")

        completion = await self.client.complete_json(
            self.build_messages(dataset, filters),
            temperature=self.settings.temperature,
            timeout=self.settings.insights_timeout,
        )

        items = self._parse_items(completion.content)
        insights = [self._normalize(dataset, item) for item in items]

        logger.success(f"AI produced {len(insights)} insights for dataset {dataset.id}")
        return sort_by_severity(insights)

    def _parse_items(self, content: str) -> list[dict[str, Any]]:
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise AIInsightsError(f"LLM returned invalid JSON: {e}") from e

        if not isinstance(parsed, dict):
            raise AIInsightsError("LLM JSON root is not an object")

        items = parsed.get("insights")
        if not isinstance(items, list):
            raise AIInsightsError("LLM JSON has no insights list")

        items = [item for item in items if isinstance(item, dict)]
        if not items:
            raise AIInsightsError("LLM returned no usable insights")
        return items

    def _normalize(self, dataset: Dataset, item: dict[str, Any]) -> DatasetInsight:
        insight_type = normalize_type(item.get("type"))
        metadata = item.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}

        return DatasetInsight(
            dataset_id=dataset.id,
            type=insight_type,
            severity=normalize_severity(item.get("severity")),
            icon=INSIGHT_ICONS[insight_type],
            title=_as_text(item.get("title")) or DEFAULT_TITLE,
            message=_as_text(item.get("message")) or DEFAULT_MESSAGE,
            metadata=InsightMetadata(
                kpi=_as_text(metadata.get("kpi")),
                dimension=_as_text(metadata.get("dimension")),
                value=_as_number(metadata.get("value")),
                change=_as_number(metadata.get("change")),
                period=_as_text(metadata.get("period")),
            ),
            generated_by=self.source,
            confidence=normalize_confidence(item.get("confidence")),
        )


# Global instance
ai_generator = AIInsightsGenerator()
