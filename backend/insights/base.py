"""
Insight generator interface shared by the rule engine and the AI generator.
"""

from typing import Protocol

from api.schemas.requests import DashboardFilters
from api.schemas.responses import DatasetInsight, InsightSource
from core.datasets import Dataset


class InsightsGenerator(Protocol):
    """Produces an ordered insight list for a dataset snapshot."""

    source: InsightSource

    async def generate_insights(
        self,
        dataset: Dataset,
        filters: DashboardFilters,
    ) -> list[DatasetInsight]:
        ...


def sort_by_severity(insights: list[DatasetInsight]) -> list[DatasetInsight]:
    """Severity descending; equal severities keep their order."""
    return sorted(insights, key=lambda i: i.severity, reverse=True)
