"""
API Response Schemas

Pydantic models for insights and API responses.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


class InsightType(str, Enum):
    """Types of insights."""

    SUMMARY = "summary"
    WARNING = "warning"
    SUGGESTION = "suggestion"
    TREND = "trend"
    ANOMALY = "anomaly"


class InsightSource(str, Enum):
    """Component that produced an insight list."""

    RULE_ENGINE = "rule-engine"
    AI_MODEL = "ai-model"


class NarrativeStatus(str, Enum):
    """Outcome of the optional narrative step."""

    NOT_REQUESTED = "not-requested"
    GENERATED = "generated"
    FALLBACK = "fallback"


# Icon shown for each insight type
INSIGHT_ICONS: dict[InsightType, str] = {
    InsightType.SUMMARY: "💡",
    InsightType.WARNING: "⚠️",
    InsightType.SUGGESTION: "✨",
    InsightType.TREND: "📈",
    InsightType.ANOMALY: "🚨",
}

ICON_TREND_UP = "📈"
ICON_TREND_DOWN = "📉"
ICON_TOP_PERFORMER = "✅"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_insight_id() -> str:
    return str(uuid4())


class InsightMetadata(BaseModel):
    """Numbers and names an insight refers to."""

    kpi: Optional[str] = None
    dimension: Optional[str] = None
    value: Optional[float] = None
    change: Optional[float] = Field(default=None, description="Signed percent change")
    period: Optional[str] = None


class DatasetInsight(BaseModel):
    """A single insight about a dataset comparison."""

    id: str = Field(default_factory=new_insight_id)
    dataset_id: str
    type: InsightType
    severity: int = Field(..., ge=1, le=5)
    icon: str
    title: str
    message: str
    metadata: InsightMetadata = Field(default_factory=InsightMetadata)
    generated_by: InsightSource
    confidence: float = Field(..., ge=0, le=1)
    generated_at: datetime = Field(default_factory=utcnow)

    @field_validator("severity", mode="before")
    @classmethod
    def clamp_severity(cls, v: float) -> int:
        return max(1, min(5, int(round(v))))

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(1.0, float(v)))


class BusinessNarrative(BaseModel):
    """Executive summary written by the LLM from an insight list."""

    summary: str
    recommended_actions: list[str] = []
    language: str = Field(default="es", pattern="^(es|en)$")
    generated_by: InsightSource = InsightSource.AI_MODEL
    model: str
    confidence: float = Field(default=0.8, ge=0, le=1)
    generated_at: datetime = Field(default_factory=utcnow)


class InsightsPayload(BaseModel):
    """Everything one generation produces; this is what gets cached."""

    insights: list[DatasetInsight]
    generated_by: InsightSource
    business_narrative: Optional[BusinessNarrative] = None
    narrative_status: NarrativeStatus = NarrativeStatus.NOT_REQUESTED


class InsightsMeta(BaseModel):
    """Request-level facts about an insights response."""

    total: int
    generated_at: datetime
    cache_status: str = Field(..., pattern="^(hit|miss)$")
    generated_by: InsightSource
    generation_time_ms: float


class InsightsResponse(BaseModel):
    """Insights endpoint response."""

    insights: list[DatasetInsight]
    meta: InsightsMeta
    business_narrative: Optional[BusinessNarrative] = None
    narrative_status: NarrativeStatus = NarrativeStatus.NOT_REQUESTED

