"""
Shared fixtures: dataset factories and log capture.
"""

from typing import Any, Optional

import pytest
from loguru import logger

from core.datasets import (
    AIConfig, Dataset, DatasetMeta, GroupConfig, KPIField, SchemaMapping, SourceConfig,
)


def build_dataset(
    rows: list[dict[str, Any]],
    kpis: tuple[str, ...] = ("revenue",),
    categorical: tuple[str, ...] = ("region",),
    dataset_id: str = "ds-1",
    owner_id: str = "user-1",
    ai_config: Optional[AIConfig] = None,
    mapped: bool = True,
    name: str = "Sales 2023 vs 2024",
) -> Dataset:
    mapping = None
    if mapped:
        mapping = SchemaMapping(
            dimension_field=categorical[0] if categorical else "region",
            kpi_fields=[
                KPIField(id=f"kpi-{k}", column_name=k, label=k.title())
                for k in kpis
            ],
            categorical_fields=list(categorical),
        )

    return Dataset(
        id=dataset_id,
        owner_id=owner_id,
        meta=DatasetMeta(name=name, description="Yearly comparison"),
        source_config=SourceConfig(
            group_a=GroupConfig(label="2023"),
            group_b=GroupConfig(label="2024"),
        ),
        schema_mapping=mapping,
        ai_config=ai_config,
        data=rows,
    )


def row(group: str, **cells) -> dict[str, Any]:
    return {"_source_group": group, **cells}


@pytest.fixture
def dataset_factory():
    return build_dataset


@pytest.fixture
def make_row():
    return row


@pytest.fixture
def sales_dataset():
    """Three regions, two KPIs, clear A/B movement."""
    return build_dataset(
        rows=[
            row("groupA", region="North", channel="Web", revenue=100, units=50),
            row("groupA", region="South", channel="Store", revenue=100, units=40),
            row("groupA", region="East", channel="Web", revenue=100, units=30),
            row("groupB", region="North", channel="Web", revenue=180, units=45),
            row("groupB", region="South", channel="Store", revenue=120, units=20),
            row("groupB", region="East", channel="Web", revenue=110, units=25),
        ],
        kpis=("revenue", "units"),
        categorical=("region", "channel"),
    )


@pytest.fixture
def log_messages():
    """Messages logged through loguru while the test runs."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
