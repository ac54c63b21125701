"""
Test Analysis Helpers

Unit tests for row filtering, group aggregations and outlier detection.
"""

import math

import pytest

from analysis.filters import apply_filters, stringify_value, to_number
from analysis.outliers import OutlierDetector
from analysis.statistical import COMBINED_DIMENSION, StatisticalAnalyzer, percent_change
from api.schemas.requests import DashboardFilters
from core.datasets import KPIField


@pytest.fixture
def rows():
    return [
        {"_source_group": "groupA", "region": "North", "year": 2023.0, "active": True, "revenue": 100},
        {"_source_group": "groupA", "region": "South", "year": 2023.0, "active": False, "revenue": "50"},
        {"_source_group": "groupB", "region": "North", "year": 2024.0, "active": True, "revenue": 150.5},
        {"_source_group": "groupB", "region": None, "year": 2024.0, "active": True, "revenue": "oops"},
    ]


@pytest.fixture
def analyzer():
    return StatisticalAnalyzer()


@pytest.fixture
def outlier_detector():
    return OutlierDetector()


@pytest.fixture
def revenue():
    return KPIField(id="k1", column_name="revenue", label="Revenue")


class TestFilters:
    def test_no_filters_keeps_everything(self, rows):
        assert apply_filters(rows, DashboardFilters()) == rows

    def test_allow_list(self, rows):
        kept = apply_filters(rows, DashboardFilters(categorical={"region": ["North"]}))

        assert len(kept) == 2
        assert all(r["region"] == "North" for r in kept)

    def test_empty_allow_list_imposes_nothing(self, rows):
        kept = apply_filters(rows, DashboardFilters(categorical={"region": []}))

        assert kept == rows

    def test_every_field_must_match(self, rows):
        filters = DashboardFilters(categorical={"region": ["North"], "year": ["2024"]})
        kept = apply_filters(rows, filters)

        assert len(kept) == 1
        assert kept[0]["revenue"] == 150.5

    def test_missing_values_match_na(self, rows):
        kept = apply_filters(rows, DashboardFilters(categorical={"region": ["N/A"]}))

        assert len(kept) == 1
        assert kept[0]["region"] is None

    def test_integral_floats_match_integer_text(self, rows):
        kept = apply_filters(rows, DashboardFilters(categorical={"year": [2023]}))

        assert len(kept) == 2

    def test_booleans_match_lowercase(self, rows):
        kept = apply_filters(rows, DashboardFilters(categorical={"active": ["false"]}))

        assert len(kept) == 1
        assert kept[0]["region"] == "South"

    def test_unknown_field_filters_as_na(self, rows):
        assert apply_filters(rows, DashboardFilters(categorical={"missing": ["x"]})) == []

    def test_stringify_value(self):
        assert stringify_value(None) == "N/A"
        assert stringify_value(100.0) == "100"
        assert stringify_value(2.5) == "2.5"
        assert stringify_value(True) == "true"
        assert stringify_value("North") == "North"

    def test_to_number_never_returns_nan(self):
        assert to_number("12.5") == 12.5
        assert to_number(" 7 ") == 7.0
        assert to_number("abc") == 0.0
        assert to_number(None) == 0.0
        assert to_number(float("nan")) == 0.0
        assert to_number(float("inf")) == 0.0
        assert to_number([1, 2]) == 0.0


class TestFilterParsing:
    def test_parse_query(self):
        filters = DashboardFilters.parse_query('{"categorical": {"region": ["North", 3]}}')

        assert filters.categorical == {"region": ["North", "3"]}

    def test_unparseable_query_means_no_filters(self):
        assert DashboardFilters.parse_query("{not json").categorical == {}
        assert DashboardFilters.parse_query(None).categorical == {}
        assert DashboardFilters.parse_query('{"categorical": 5}').categorical == {}

    def test_canonical_ignores_order(self):
        a = DashboardFilters(categorical={"region": ["b", "a"], "channel": ["web"]})
        b = DashboardFilters(categorical={"channel": ["web"], "region": ["a", "b"]})

        assert a.canonical() == b.canonical()

    def test_canonical_keeps_empty_lists_distinct(self):
        assert DashboardFilters().canonical() != DashboardFilters(categorical={"region": []}).canonical()


class TestStatisticalAnalyzer:
    def test_percent_change(self):
        assert percent_change(200, 100) == -50
        assert percent_change(100, 150) == 50
        assert percent_change(0, 100) == 0

    def test_kpi_totals(self, analyzer, rows, revenue):
        frame = analyzer.build_frame(rows, ["region"], [revenue])
        totals = analyzer.kpi_totals(frame, [revenue])

        assert len(totals) == 1
        assert totals[0].group_a == 150.0
        assert totals[0].group_b == 150.5
        assert totals[0].change == pytest.approx(1 / 3)

    def test_kpi_totals_without_kpis(self, analyzer, rows):
        frame = analyzer.build_frame(rows, [], [])

        assert analyzer.kpi_totals(frame, []) == []

    def test_dimension_totals_keep_first_seen_order(self, analyzer, rows, revenue):
        frame = analyzer.build_frame(rows, ["region"], [revenue])
        labels, totals = analyzer.dimension_totals(frame, "region", revenue)

        assert labels == ["North", "South", "N/A"]
        assert totals == [250.5, 50.0, 0.0]

    def test_compare_groups_single_dimension(self, analyzer, rows, revenue):
        frame = analyzer.build_frame(rows, ["region"], [revenue])
        cells = {c.value: c for c in analyzer.compare_groups(frame, ["region"], revenue)}

        assert cells["North"].group_a == 100.0
        assert cells["North"].group_b == 150.5
        assert cells["North"].has_both_bases
        assert not cells["South"].has_both_bases
        assert cells["South"].change == -100.0

    def test_compare_groups_combined_only_observed(self, analyzer, rows, revenue):
        frame = analyzer.build_frame(rows, ["region", "year"], [revenue])
        cells = analyzer.compare_groups(frame, ["region", "year"], revenue)

        assert all(c.dimension == COMBINED_DIMENSION for c in cells)
        assert {c.value for c in cells} == {
            "region=North | year=2023",
            "region=South | year=2023",
            "region=North | year=2024",
            "region=N/A | year=2024",
        }

    def test_empty_rows(self, analyzer, revenue):
        frame = analyzer.build_frame([], ["region"], [revenue])

        assert analyzer.kpi_totals(frame, [revenue])[0].change == 0
        assert analyzer.compare_groups(frame, ["region"], revenue) == []


class TestOutlierDetector:
    def test_detects_single_outlier(self, outlier_detector):
        labels = [f"R{i}" for i in range(10)]
        values = [10.0] * 9 + [100.0]

        result = outlier_detector.detect_zscore(labels, values, threshold=2.0)

        assert result.mean == 19.0
        assert result.std == 27.0
        assert result.outlier_count == 1
        outlier = result.outliers[0]
        assert outlier.label == "R9"
        assert outlier.z_score == pytest.approx(3.0)
        assert outlier.deviation_pct == pytest.approx(81 / 19 * 100)

    def test_skips_single_value(self, outlier_detector):
        result = outlier_detector.detect_zscore(["A"], [5.0])

        assert result.outliers == []
        assert result.skipped_reason

    def test_skips_zero_spread(self, outlier_detector):
        result = outlier_detector.detect_zscore(["A", "B", "C"], [4.0, 4.0, 4.0])

        assert result.outliers == []
        assert result.skipped_reason == "zero spread"

    def test_skips_zero_mean(self, outlier_detector):
        result = outlier_detector.detect_zscore(["A", "B"], [-5.0, 5.0])

        assert result.outliers == []
        assert result.skipped_reason == "zero mean"

    def test_to_dict(self, outlier_detector):
        result = outlier_detector.detect_zscore([f"R{i}" for i in range(10)], [10.0] * 9 + [100.0])
        data = result.to_dict()

        assert data["outlier_count"] == 1
        assert not math.isnan(data["std"])
