"""
Test Insights API

HTTP surface tests with the orchestrator swapped through
dependency overrides.
"""

import json

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_orchestrator
from core.cache import InsightCache
from core.datasets import InMemoryDatasetStore
from insights.orchestrator import InsightOrchestrator, OrchestratorOptions
from insights.rule_engine import RuleEngineInsightsGenerator
from main import app


URL = "/api/v1/datasets/ds-1/insights"
HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def client(sales_dataset):
    store = InMemoryDatasetStore()
    store.add(sales_dataset)
    orchestrator = InsightOrchestrator(
        store=store,
        cache=InsightCache(maxsize=16, ttl_seconds=300),
        rule_engine=RuleEngineInsightsGenerator(),
        options=OrchestratorOptions(),
    )
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestInsightsEndpoint:
    def test_requires_user(self, client):
        response = client.get(URL)

        assert response.status_code == 401

    def test_unknown_dataset(self, client):
        response = client.get("/api/v1/datasets/missing/insights", headers=HEADERS)

        assert response.status_code == 404
        assert "missing" in response.json()["detail"]

    def test_other_owner_is_not_found(self, client):
        response = client.get(URL, headers={"X-User-Id": "intruder"})

        assert response.status_code == 404

    def test_miss_then_hit(self, client):
        first = client.get(URL, headers=HEADERS)
        second = client.get(URL, headers=HEADERS)

        assert first.status_code == 200
        body = first.json()
        assert body["meta"]["cache_status"] == "miss"
        assert body["meta"]["generated_by"] == "rule-engine"
        assert body["meta"]["total"] == len(body["insights"])
        assert body["narrative_status"] == "not-requested"
        assert second.json()["meta"]["cache_status"] == "hit"

    def test_insight_shape(self, client):
        insight = client.get(URL, headers=HEADERS).json()["insights"][0]

        for field in ("id", "dataset_id", "type", "severity", "icon", "title",
                      "message", "metadata", "generated_by", "confidence", "generated_at"):
            assert field in insight
        assert insight["dataset_id"] == "ds-1"

    def test_filters(self, client):
        filters = json.dumps({"categorical": {"region": ["South"]}})

        body = client.get(URL, params={"filters": filters}, headers=HEADERS).json()

        summary = next(i for i in body["insights"] if i["type"] == "summary")
        assert summary["metadata"]["change"] == pytest.approx(-15)

    def test_bad_filters_mean_no_filters(self, client):
        unfiltered = client.get(URL, headers=HEADERS)
        garbled = client.get(URL, params={"filters": "{oops"}, headers=HEADERS)

        assert garbled.status_code == 200
        assert garbled.json()["meta"]["cache_status"] == "hit"
        assert len(garbled.json()["insights"]) == len(unfiltered.json()["insights"])

    def test_force_refresh(self, client):
        client.get(URL, headers=HEADERS)

        response = client.get(URL, params={"forceRefresh": "true"}, headers=HEADERS)

        assert response.json()["meta"]["cache_status"] == "miss"


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
