"""
API Dependencies

Process-wide singletons handed to routes through FastAPI's dependency
injection, so tests can swap them via `app.dependency_overrides`.
"""

from functools import lru_cache

from core.cache import InsightCache, create_insight_cache
from core.datasets import InMemoryDatasetStore
from insights.ai_generator import ai_generator
from insights.narrative_generator import narrative_generator
from insights.orchestrator import InsightOrchestrator, OrchestratorOptions
from insights.rule_engine import rule_engine


@lru_cache
def get_dataset_store() -> InMemoryDatasetStore:
    return InMemoryDatasetStore()


@lru_cache
def get_insight_cache() -> InsightCache:
    return create_insight_cache()


@lru_cache
def get_orchestrator() -> InsightOrchestrator:
    return InsightOrchestrator(
        store=get_dataset_store(),
        cache=get_insight_cache(),
        rule_engine=rule_engine,
        ai_generator=ai_generator,
        narrator=narrative_generator,
        options=OrchestratorOptions.from_settings(),
    )
