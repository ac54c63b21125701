"""
Outlier Detector

Z-score outlier detection over aggregated dimension totals.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from config import get_settings


@dataclass
class GroupOutlier:
    """A dimension value whose total sits far from the others."""

    label: str
    value: float
    z_score: float
    deviation_pct: float  # (value - mean) / mean * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "value": round(self.value, 4),
            "z_score": round(self.z_score, 4),
            "deviation_pct": round(self.deviation_pct, 4),
        }


@dataclass
class OutlierResult:
    """Result of outlier detection across group totals."""

    method: str
    total_count: int
    mean: Optional[float]
    std: Optional[float]
    outliers: list[GroupOutlier] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    @property
    def outlier_count(self) -> int:
        return len(self.outliers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "total_count": self.total_count,
            "outlier_count": self.outlier_count,
            "mean": round(self.mean, 4) if self.mean is not None else None,
            "std": round(self.std, 4) if self.std is not None else None,
            "outliers": [o.to_dict() for o in self.outliers],
            "skipped_reason": self.skipped_reason,
        }


class OutlierDetector:
    """Outlier detection for grouped totals."""

    def __init__(self):
        self.settings = get_settings()

    def detect_zscore(
        self,
        labels: list[str],
        values: list[float],
        threshold: Optional[float] = None,
    ) -> OutlierResult:
        """
        Flag totals whose population z-score exceeds the threshold.

        Degenerate distributions (fewer than two values, zero spread or
        zero mean) never produce outliers.
        """
        if threshold is None:
            threshold = self.settings.rules.zscore_threshold

        arr = np.asarray(values, dtype=np.float64)

        if len(arr) < 2:
            return OutlierResult(
                method="zscore", total_count=len(arr), mean=None, std=None,
                skipped_reason="fewer than two values",
            )

        mean = float(np.mean(arr))
        std = float(np.std(arr))

        if np.isclose(std, 0.0) or mean == 0:
            return OutlierResult(
                method="zscore", total_count=len(arr), mean=mean, std=std,
                skipped_reason="zero spread" if np.isclose(std, 0.0) else "zero mean",
            )

        z_scores = (arr - mean) / std
        outlier_mask = np.abs(z_scores) > threshold

        outliers = [
            GroupOutlier(
                label=labels[i],
                value=float(arr[i]),
                z_score=float(z_scores[i]),
                deviation_pct=float((arr[i] - mean) / mean * 100),
            )
            for i in np.where(outlier_mask)[0]
        ]

        return OutlierResult(
            method="zscore",
            total_count=len(arr),
            mean=mean,
            std=std,
            outliers=outliers,
        )


# Global instance
outlier_detector = OutlierDetector()
