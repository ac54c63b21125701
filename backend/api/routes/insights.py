"""
Insights API Routes

Insights for a dataset under the dashboard's current filters.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from api.dependencies import get_orchestrator
from api.schemas.requests import DashboardFilters
from api.schemas.responses import InsightsMeta, InsightsResponse
from core.datasets import DatasetNotFoundError
from core.logging_config import api_logger as logger
from insights.orchestrator import InsightOrchestrator


router = APIRouter()


@router.get("/datasets/{dataset_id}/insights", response_model=InsightsResponse)
async def get_dataset_insights(
    dataset_id: str,
    filters: Optional[str] = Query(default=None, description='JSON filter state, e.g. {"categorical": {"region": ["North"]}}'),
    force_refresh: bool = Query(default=False, alias="forceRefresh", description="Bypass the cache"),
    user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> InsightsResponse:
    """
    Generate (or fetch cached) insights for a dataset.

    Unparseable filters are treated as no filters.
    """
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity")

    try:
        result = await orchestrator.generate(
            dataset_id=dataset_id,
            user_id=user_id.strip(),
            filters=DashboardFilters.parse_query(filters),
            force_refresh=force_refresh,
        )
    except DatasetNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    logger.info(
        f"GET insights {dataset_id}: {len(result.insights)} insights, "
        f"cache {'hit' if result.from_cache else 'miss'}"
    )

    return InsightsResponse(
        insights=result.insights,
        meta=InsightsMeta(
            total=len(result.insights),
            generated_at=result.generated_at,
            cache_status="hit" if result.from_cache else "miss",
            generated_by=result.generated_by,
            generation_time_ms=round(result.generation_time_ms, 2),
        ),
        business_narrative=result.business_narrative,
        narrative_status=result.narrative_status,
    )
