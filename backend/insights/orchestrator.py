"""
Insight Orchestrator

Cache-aside insight generation for one dataset under one filter state:
load and authorize the dataset, serve from cache when possible,
otherwise run the AI generator with a statistical fallback, optionally
attach an executive narrative, and cache the result.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from api.schemas.requests import DashboardFilters
from api.schemas.responses import (
    BusinessNarrative, DatasetInsight, InsightSource, InsightsPayload, NarrativeStatus, utcnow,
)
from config import get_settings
from core.cache import InsightsCacheRepository, make_cache_key
from core.datasets import Dataset, DatasetNotFoundError, DatasetStore
from core.logging_config import insights_logger as logger
from insights.base import InsightsGenerator
from insights.narrative_generator import NarrativeGenerator, resolve_language


@dataclass
class OrchestratorOptions:
    """Process-wide switches, independent of per-dataset configuration."""

    ai_enabled: bool = False
    narrative_enabled: bool = False

    @classmethod
    def from_settings(cls) -> "OrchestratorOptions":
        settings = get_settings()
        return cls(
            ai_enabled=settings.llm.enabled,
            narrative_enabled=settings.llm.narrative_enabled,
        )


@dataclass
class InsightsResult:
    """Outcome of one orchestrated generation."""

    insights: list[DatasetInsight]
    from_cache: bool
    generated_by: InsightSource
    generated_at: datetime
    generation_time_ms: float
    business_narrative: Optional[BusinessNarrative] = None
    narrative_status: NarrativeStatus = NarrativeStatus.NOT_REQUESTED


class InsightOrchestrator:
    """
    Top-level insights use case.

    Flow:
    1. Load the dataset and check ownership
    2. Serve from cache unless a refresh is forced
    3. AI generator when allowed, statistical generator otherwise
       (and whenever the AI generator fails)
    4. Optional narrative
    5. Cache and return
    """

    def __init__(
        self,
        store: DatasetStore,
        cache: InsightsCacheRepository,
        rule_engine: InsightsGenerator,
        ai_generator: Optional[InsightsGenerator] = None,
        narrator: Optional[NarrativeGenerator] = None,
        options: Optional[OrchestratorOptions] = None,
    ):
        self.store = store
        self.cache = cache
        self.rule_engine = rule_engine
        self.ai_generator = ai_generator
        self.narrator = narrator
        self.options = options or OrchestratorOptions()

    async def generate(
        self,
        dataset_id: str,
        user_id: str,
        filters: Optional[DashboardFilters] = None,
        force_refresh: bool = False,
    ) -> InsightsResult:
        """
        Insights for a dataset as seen through a filter state.

        Raises:
            DatasetNotFoundError: dataset absent or owned by someone else
        """
        start = time.perf_counter()
        filters = filters or DashboardFilters()

        dataset = await self.store.find_by_id(dataset_id)
        if dataset is None or dataset.owner_id != user_id:
            logger.warning(f"Dataset {dataset_id} not found for user {user_id}")
            raise DatasetNotFoundError(dataset_id)

        key = make_cache_key(dataset_id, filters)

        if not force_refresh:
            cached = await self._read_cache(key)
            if cached is not None:
                logger.info(f"Cache hit for dataset {dataset_id}")
                return self._result(cached, from_cache=True, start=start)

        logger.info(f"Generating insights for dataset {dataset_id} (force_refresh={force_refresh})")

        ai_allowed = self._ai_allowed(dataset)
        insights, source = await self._generate_insights(dataset, filters, ai_allowed)

        narrative, narrative_status = None, NarrativeStatus.NOT_REQUESTED
        if ai_allowed and self.options.narrative_enabled and self.narrator is not None:
            narrative, narrative_status = await self._generate_narrative(dataset, insights)

        payload = InsightsPayload(
            insights=insights,
            generated_by=source,
            business_narrative=narrative,
            narrative_status=narrative_status,
        )
        await self._write_cache(key, payload)

        result = self._result(payload, from_cache=False, start=start)
        logger.success(
            f"Generated {len(insights)} insights for dataset {dataset_id} "
            f"via {source.value} in {result.generation_time_ms:.0f}ms"
        )
        return result

    def _ai_allowed(self, dataset: Dataset) -> bool:
        if not self.options.ai_enabled or self.ai_generator is None:
            return False
        return bool(dataset.ai_config and dataset.ai_config.allows_insights())

    async def _generate_insights(
        self,
        dataset: Dataset,
        filters: DashboardFilters,
        ai_allowed: bool,
    ) -> tuple[list[DatasetInsight], InsightSource]:
        if ai_allowed:
            try:
                insights = await self.ai_generator.generate_insights(dataset, filters)
                return insights, self.ai_generator.source
            except Exception as e:
                logger.warning(f"AI insights failed for dataset {dataset.id}, using rule engine: {e}")

        insights = await self.rule_engine.generate_insights(dataset, filters)
        return insights, self.rule_engine.source

    async def _generate_narrative(
        self,
        dataset: Dataset,
        insights: list[DatasetInsight],
    ) -> tuple[Optional[BusinessNarrative], NarrativeStatus]:
        language = resolve_language(dataset.ai_config.user_context if dataset.ai_config else None)
        try:
            narrative = await self.narrator.generate_narrative(dataset, insights, language)
            return narrative, NarrativeStatus.GENERATED
        except Exception as e:
            logger.warning(f"Narrative failed for dataset {dataset.id}: {e}")
            return None, NarrativeStatus.FALLBACK

    async def _read_cache(self, key: str) -> Optional[InsightsPayload]:
        try:
            return await self.cache.get(key)
        except Exception as e:
            logger.error(f"Cache read failed for {key}, treating as miss: {e}")
            return None

    async def _write_cache(self, key: str, payload: InsightsPayload) -> None:
        try:
            await self.cache.set(key, payload)
        except Exception as e:
            logger.error(f"Cache write failed for {key}: {e}")

    def _result(self, payload: InsightsPayload, from_cache: bool, start: float) -> InsightsResult:
        return InsightsResult(
            insights=payload.insights,
            from_cache=from_cache,
            generated_by=payload.generated_by,
            generated_at=utcnow(),
            generation_time_ms=(time.perf_counter() - start) * 1000,
            business_narrative=payload.business_narrative,
            narrative_status=payload.narrative_status,
        )
