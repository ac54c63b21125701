"""
Statistical Analyzer

Group comparisons over unified two-group rows using Polars.
Rows are loaded into a typed frame once, then every aggregation
(KPI totals, per-dimension totals, A vs B cells) is a vectorized
group-by over that frame.
"""

from dataclasses import dataclass
from typing import Any, Iterable

import polars as pl

from analysis.filters import stringify_value, to_number
from core.datasets import GROUP_A, GROUP_B, SOURCE_GROUP_FIELD, KPIField


COMBINED_DIMENSION = "__combined__"


def percent_change(base: float, current: float) -> float:
    """Signed change from base to current in percent; 0 when base is 0."""
    if base == 0:
        return 0.0
    return (current - base) / base * 100


def dim_column(field: str) -> str:
    return f"dim:{field}"


def kpi_column(column_name: str) -> str:
    return f"kpi:{column_name}"


@dataclass
class KpiTotals:
    """A KPI summed per source group."""

    name: str
    label: str
    group_a: float
    group_b: float

    @property
    def change(self) -> float:
        return percent_change(self.group_a, self.group_b)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "group_a": round(self.group_a, 4),
            "group_b": round(self.group_b, 4),
            "change": round(self.change, 4),
        }


@dataclass
class GroupComparison:
    """A/B totals of one KPI for one dimension value (or value combination)."""

    dimension: str
    value: str
    kpi: str
    group_a: float
    group_b: float

    @property
    def change(self) -> float:
        return percent_change(self.group_a, self.group_b)

    @property
    def dominant_group(self) -> str:
        return GROUP_B if self.group_b >= self.group_a else GROUP_A

    @property
    def has_both_bases(self) -> bool:
        return self.group_a != 0 and self.group_b != 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "dimension": self.dimension,
            "value": self.value,
            "kpi": self.kpi,
            "group_a": round(self.group_a, 4),
            "group_b": round(self.group_b, 4),
            "change": round(self.change, 4),
        }


class StatisticalAnalyzer:
    """Vectorized A/B aggregations for the rule engine."""

    def build_frame(
        self,
        rows: Iterable[dict[str, Any]],
        dimensions: list[str],
        kpis: list[KPIField],
    ) -> pl.DataFrame:
        """
        Load rows into a typed frame.

        Dimension cells are stringified and KPI cells coerced to finite
        floats, so malformed values become 0 instead of NaN.
        """
        rows = list(rows)
        data: dict[str, list] = {
            SOURCE_GROUP_FIELD: [str(row.get(SOURCE_GROUP_FIELD, "")) for row in rows],
        }
        schema: dict[str, Any] = {SOURCE_GROUP_FIELD: pl.Utf8}

        for field in dimensions:
            column = dim_column(field)
            data[column] = [stringify_value(row.get(field)) for row in rows]
            schema[column] = pl.Utf8

        for kpi in kpis:
            column = kpi_column(kpi.column_name)
            data[column] = [to_number(row.get(kpi.column_name)) for row in rows]
            schema[column] = pl.Float64

        return pl.DataFrame(data, schema=schema)

    def kpi_totals(self, frame: pl.DataFrame, kpis: list[KPIField]) -> list[KpiTotals]:
        """Sum every KPI per source group."""
        if not kpis:
            return []

        is_a = pl.col(SOURCE_GROUP_FIELD) == GROUP_A
        is_b = pl.col(SOURCE_GROUP_FIELD) == GROUP_B

        exprs = []
        for i, kpi in enumerate(kpis):
            column = pl.col(kpi_column(kpi.column_name))
            exprs.append(column.filter(is_a).sum().alias(f"a_{i}"))
            exprs.append(column.filter(is_b).sum().alias(f"b_{i}"))

        totals = frame.select(exprs).row(0, named=True)

        return [
            KpiTotals(
                name=kpi.column_name,
                label=kpi.label,
                group_a=float(totals[f"a_{i}"] or 0.0),
                group_b=float(totals[f"b_{i}"] or 0.0),
            )
            for i, kpi in enumerate(kpis)
        ]

    def dimension_totals(
        self,
        frame: pl.DataFrame,
        dimension: str,
        kpi: KPIField,
    ) -> tuple[list[str], list[float]]:
        """Sum a KPI per dimension value with both source groups combined."""
        column = dim_column(dimension)
        agg = (
            frame.group_by(column, maintain_order=True)
            .agg(pl.col(kpi_column(kpi.column_name)).sum().alias("total"))
        )
        return agg[column].to_list(), [float(v or 0.0) for v in agg["total"].to_list()]

    def compare_groups(
        self,
        frame: pl.DataFrame,
        dimensions: list[str],
        kpi: KPIField,
    ) -> list[GroupComparison]:
        """
        Sum a KPI per (source group, dimension value).

        With several dimensions only the value combinations that occur
        in the frame are returned, tagged with COMBINED_DIMENSION.
        """
        if not dimensions:
            return []

        columns = [dim_column(d) for d in dimensions]
        value_column = pl.col(kpi_column(kpi.column_name))
        agg = (
            frame.group_by(columns, maintain_order=True)
            .agg(
                value_column.filter(pl.col(SOURCE_GROUP_FIELD) == GROUP_A).sum().alias("group_a"),
                value_column.filter(pl.col(SOURCE_GROUP_FIELD) == GROUP_B).sum().alias("group_b"),
            )
        )

        comparisons = []
        for row in agg.iter_rows(named=True):
            if len(dimensions) == 1:
                dimension = dimensions[0]
                value = row[columns[0]]
            else:
                dimension = COMBINED_DIMENSION
                value = " | ".join(f"{d}={row[c]}" for d, c in zip(dimensions, columns))

            comparisons.append(
                GroupComparison(
                    dimension=dimension,
                    value=value,
                    kpi=kpi.column_name,
                    group_a=float(row["group_a"] or 0.0),
                    group_b=float(row["group_b"] or 0.0),
                )
            )

        return comparisons


# Global instance
statistical_analyzer = StatisticalAnalyzer()
