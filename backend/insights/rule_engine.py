"""
Rule Engine Insights Generator

Deterministic, offline insights for a two-group comparison:
KPI trends, an overall summary, dimension outliers, A vs B gaps per
dimension value (and per observed value combination), the top
performer and two short rankings.
"""

from typing import Optional

import polars as pl

from analysis.filters import apply_filters
from analysis.outliers import OutlierDetector, outlier_detector
from analysis.statistical import (
    COMBINED_DIMENSION, GroupComparison, KpiTotals, StatisticalAnalyzer, statistical_analyzer,
)
from api.schemas.requests import DashboardFilters
from api.schemas.responses import (
    ICON_TOP_PERFORMER, ICON_TREND_DOWN, ICON_TREND_UP, INSIGHT_ICONS,
    DatasetInsight, InsightMetadata, InsightSource, InsightType,
)
from config import RuleEngineSettings, get_settings
from core.datasets import GROUP_A, GROUP_B, Dataset, KPIField
from core.logging_config import insights_logger as logger
from insights.base import sort_by_severity


MIN_RANKING_CARDINALITY = 3
MIN_RANKING_KPIS = 2


def fmt(value: float) -> str:
    return f"{value:,.0f}"


def fmt_change(change: float) -> str:
    return f"{change:+.1f}%"


class RuleEngineInsightsGenerator:
    """
    Statistical insight generator.

    Never calls the network and never raises for well-formed datasets.
    Output is sorted by severity (stable), so the summary, which is
    always present, comes last unless it is the only insight.
    """

    source = InsightSource.RULE_ENGINE

    def __init__(
        self,
        settings: Optional[RuleEngineSettings] = None,
        analyzer: Optional[StatisticalAnalyzer] = None,
        detector: Optional[OutlierDetector] = None,
    ):
        self.settings = settings or get_settings().rules
        self.analyzer = analyzer or statistical_analyzer
        self.detector = detector or outlier_detector

    async def generate_insights(
        self,
        dataset: Dataset,
        filters: DashboardFilters,
    ) -> list[DatasetInsight]:
        return self.generate(dataset, filters)

    def generate(self, dataset: Dataset, filters: DashboardFilters) -> list[DatasetInsight]:
        rows = apply_filters(dataset.data, filters)
        logger.info(f"Rule engine: dataset {dataset.id}, {len(rows):,}/{len(dataset.data):,} rows after filters")

        mapping = dataset.schema_mapping
        if mapping is None:
            logger.info("No schema mapping, returning summary only")
            return [self._unmapped_summary(dataset, len(rows))]

        kpis = mapping.kpi_fields
        dimensions = list(dict.fromkeys(mapping.categorical_fields))

        frame = self.analyzer.build_frame(rows, dimensions, kpis)
        totals = self.analyzer.kpi_totals(frame, kpis)

        insights: list[DatasetInsight] = []
        insights.extend(self._kpi_trends(dataset, totals))
        insights.extend(self._dimension_outliers(dataset, frame, dimensions, kpis))

        single, combined = self._group_comparisons(frame, dimensions, kpis)
        insights.extend(self._comparative_anomalies(dataset, single + combined, kpis))

        top = self._top_performer(dataset, frame, dimensions, kpis)
        if top:
            insights.append(top)

        growth = self._growth_ranking(dataset, single, dimensions, kpis)
        if growth:
            insights.append(growth)

        weakest = self._weakest_kpis(dataset, totals)
        if weakest:
            insights.append(weakest)

        insights.append(self._summary(dataset, totals))

        logger.success(f"Rule engine produced {len(insights)} insights")
        return sort_by_severity(insights)

    def _insight(
        self,
        dataset: Dataset,
        type: InsightType,
        severity: int,
        title: str,
        message: str,
        confidence: float,
        metadata: Optional[InsightMetadata] = None,
        icon: Optional[str] = None,
    ) -> DatasetInsight:
        return DatasetInsight(
            dataset_id=dataset.id,
            type=type,
            severity=severity,
            icon=icon or INSIGHT_ICONS[type],
            title=title,
            message=message,
            metadata=metadata or InsightMetadata(),
            generated_by=self.source,
            confidence=confidence,
        )

    def _unmapped_summary(self, dataset: Dataset, row_count: int) -> DatasetInsight:
        return self._insight(
            dataset,
            type=InsightType.SUMMARY,
            severity=1,
            title="Dataset summary",
            message=(
                f"{row_count:,} rows available. Configure KPIs and dimensions "
                "to unlock detailed insights."
            ),
            confidence=1,
        )

    def _kpi_trends(self, dataset: Dataset, totals: list[KpiTotals]) -> list[DatasetInsight]:
        label_a = dataset.group_label(GROUP_A)
        label_b = dataset.group_label(GROUP_B)
        insights = []

        for kpi in totals:
            change = kpi.change
            if abs(change) <= self.settings.trend_threshold:
                continue

            rising = change > 0
            insights.append(
                self._insight(
                    dataset,
                    type=InsightType.TREND if rising else InsightType.WARNING,
                    severity=4 if abs(change) >= self.settings.high_severity_threshold else 3,
                    icon=ICON_TREND_UP if rising else ICON_TREND_DOWN,
                    title=f"{kpi.label}: {'notable improvement' if rising else 'warning signal'}",
                    message=(
                        f"{kpi.label} {'rises' if rising else 'falls'} {abs(change):.1f}% "
                        f"({label_a}: {fmt(kpi.group_a)} vs {label_b}: {fmt(kpi.group_b)})."
                    ),
                    metadata=InsightMetadata(kpi=kpi.name, value=kpi.group_b, change=change),
                    confidence=0.95,
                )
            )

        return insights

    def _summary(self, dataset: Dataset, totals: list[KpiTotals]) -> DatasetInsight:
        overall = sum(k.change for k in totals) / len(totals) if totals else 0.0
        label_a = dataset.group_label(GROUP_A)
        label_b = dataset.group_label(GROUP_B)

        if overall > 0:
            message = f"On average, KPIs improved {overall:.1f}% from {label_a} to {label_b}."
        elif overall < 0:
            message = f"On average, KPIs declined {abs(overall):.1f}% from {label_a} to {label_b}."
        else:
            message = f"On average, KPIs held steady between {label_a} and {label_b}."

        return self._insight(
            dataset,
            type=InsightType.SUMMARY,
            severity=1,
            title="Overall summary",
            message=message,
            metadata=InsightMetadata(change=overall),
            confidence=1,
        )

    def _dimension_outliers(
        self,
        dataset: Dataset,
        frame: pl.DataFrame,
        dimensions: list[str],
        kpis: list[KPIField],
    ) -> list[DatasetInsight]:
        insights = []

        for dimension in dimensions:
            for kpi in kpis:
                labels, values = self.analyzer.dimension_totals(frame, dimension, kpi)
                result = self.detector.detect_zscore(labels, values, self.settings.zscore_threshold)
                if result.skipped_reason:
                    logger.debug(f"Outliers skipped for {dimension}/{kpi.column_name}: {result.skipped_reason}")
                    continue

                for outlier in result.outliers:
                    direction = "above" if outlier.deviation_pct > 0 else "below"
                    insights.append(
                        self._insight(
                            dataset,
                            type=InsightType.ANOMALY,
                            severity=4,
                            title=f"Outlier in {kpi.label} by {dimension}",
                            message=(
                                f"{dimension} {outlier.label}: {kpi.label} totals {fmt(outlier.value)}, "
                                f"{abs(outlier.deviation_pct):.1f}% {direction} the average of "
                                f"{fmt(result.mean)} (z={outlier.z_score:.2f})."
                            ),
                            metadata=InsightMetadata(
                                kpi=kpi.column_name,
                                dimension=dimension,
                                value=outlier.value,
                                change=outlier.deviation_pct,
                            ),
                            confidence=0.85,
                        )
                    )

        return insights

    def _group_comparisons(
        self,
        frame: pl.DataFrame,
        dimensions: list[str],
        kpis: list[KPIField],
    ) -> tuple[list[GroupComparison], list[GroupComparison]]:
        """A/B cells of the representative (first) KPI, per dimension and combined."""
        if not kpis or not dimensions:
            return [], []

        representative = kpis[0]
        single = []
        for dimension in dimensions:
            single.extend(self.analyzer.compare_groups(frame, [dimension], representative))

        combined = []
        if len(dimensions) >= 2:
            combined = self.analyzer.compare_groups(frame, dimensions, representative)

        return single, combined

    def _comparative_anomalies(
        self,
        dataset: Dataset,
        comparisons: list[GroupComparison],
        kpis: list[KPIField],
    ) -> list[DatasetInsight]:
        label_a = dataset.group_label(GROUP_A)
        label_b = dataset.group_label(GROUP_B)
        labels = {k.column_name: k.label for k in kpis}

        significant = [
            c for c in comparisons
            if c.has_both_bases and abs(c.change) >= self.settings.dimension_threshold
        ]
        significant.sort(key=lambda c: abs(c.change), reverse=True)

        insights = []
        for comparison in significant[:self.settings.max_dimension_insights]:
            if comparison.dimension == COMBINED_DIMENSION:
                context = f"Combination {comparison.value}"
            else:
                context = f"{comparison.dimension} {comparison.value}"
            leader = dataset.group_label(comparison.dominant_group)
            kpi_label = labels.get(comparison.kpi, comparison.kpi)

            insights.append(
                self._insight(
                    dataset,
                    type=InsightType.ANOMALY,
                    severity=4,
                    title=f"Relevant gap in {kpi_label}",
                    message=(
                        f"{context}: {label_a} {fmt(comparison.group_a)} vs "
                        f"{label_b} {fmt(comparison.group_b)} "
                        f"(Δ{fmt_change(comparison.change)}, {leader} leads)."
                    ),
                    metadata=InsightMetadata(
                        kpi=comparison.kpi,
                        dimension=comparison.dimension,
                        value=max(comparison.group_a, comparison.group_b),
                        change=comparison.change,
                    ),
                    confidence=0.85,
                )
            )

        return insights

    def _top_performer(
        self,
        dataset: Dataset,
        frame: pl.DataFrame,
        dimensions: list[str],
        kpis: list[KPIField],
    ) -> Optional[DatasetInsight]:
        if not dimensions or not kpis or frame.height == 0:
            return None

        dimension, kpi = dimensions[0], kpis[0]
        labels, values = self.analyzer.dimension_totals(frame, dimension, kpi)
        if not labels:
            return None

        # First maximum wins on ties
        best = max(range(len(values)), key=lambda i: values[i])

        return self._insight(
            dataset,
            type=InsightType.SUGGESTION,
            severity=2,
            icon=ICON_TOP_PERFORMER,
            title=f"Top {dimension}: {labels[best]}",
            message=(
                f"{labels[best]} leads {kpi.label} with {fmt(values[best])} across "
                f"{dataset.group_label(GROUP_A)} and {dataset.group_label(GROUP_B)}."
            ),
            metadata=InsightMetadata(kpi=kpi.column_name, dimension=dimension, value=values[best]),
            confidence=1,
        )

    def _growth_ranking(
        self,
        dataset: Dataset,
        single: list[GroupComparison],
        dimensions: list[str],
        kpis: list[KPIField],
    ) -> Optional[DatasetInsight]:
        if not dimensions or not kpis:
            return None

        dimension = dimensions[0]
        cells = [c for c in single if c.dimension == dimension]
        if len(cells) < MIN_RANKING_CARDINALITY:
            return None

        growing = sorted(
            (c for c in cells if c.has_both_bases and c.change > 0),
            key=lambda c: c.change,
            reverse=True,
        )[:self.settings.top_items]
        if not growing:
            return None

        highlights = ", ".join(f"{c.value} ({fmt_change(c.change)})" for c in growing)
        return self._insight(
            dataset,
            type=InsightType.SUGGESTION,
            severity=2,
            icon=ICON_TOP_PERFORMER,
            title=f"Top {dimension} values by growth",
            message=f"Strongest growth in {kpis[0].label}: {highlights}.",
            metadata=InsightMetadata(kpi=kpis[0].column_name, dimension=dimension, change=growing[0].change),
            confidence=0.9,
        )

    def _weakest_kpis(self, dataset: Dataset, totals: list[KpiTotals]) -> Optional[DatasetInsight]:
        if len(totals) < MIN_RANKING_KPIS:
            return None

        declining = sorted(
            (k for k in totals if k.change < 0),
            key=lambda k: k.change,
        )[:self.settings.top_items]
        if not declining:
            return None

        summary = ", ".join(f"{k.label} ({fmt_change(k.change)})" for k in declining)
        return self._insight(
            dataset,
            type=InsightType.SUGGESTION,
            severity=2,
            title="KPIs to improve",
            message=f"Prioritize these declining KPIs: {summary}.",
            metadata=InsightMetadata(kpi=declining[0].name, change=declining[0].change),
            confidence=0.9,
        )


# Global instance
rule_engine = RuleEngineInsightsGenerator()
