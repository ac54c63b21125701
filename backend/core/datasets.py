"""
Dataset Store

Dataset models and the store the insights engine reads them from.
Dataset persistence lives elsewhere; this module only exposes lookup
by id plus an in-process store that can be seeded from JSON files.
"""

import json
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Optional, Protocol, Union

from pydantic import BaseModel, Field

from api.schemas.responses import utcnow
from core.logging_config import data_logger as logger


SOURCE_GROUP_FIELD = "_source_group"
GROUP_A = "groupA"
GROUP_B = "groupB"

# A unified row: scalar cells keyed by column name, tagged with SOURCE_GROUP_FIELD
DataRow = dict[str, Union[str, int, float, bool, None]]


class DatasetNotFoundError(LookupError):
    """Dataset does not exist or belongs to another user."""

    def __init__(self, dataset_id: str):
        self.dataset_id = dataset_id
        super().__init__(f"Dataset '{dataset_id}' not found")


class GroupConfig(BaseModel):
    """Presentation metadata for one source group."""

    label: str
    color: str = "#3b82f6"
    original_file_name: str = ""
    row_count: int = 0


class SourceConfig(BaseModel):
    group_a: GroupConfig
    group_b: GroupConfig


class KPIField(BaseModel):
    """A numeric column compared across source groups."""

    id: str
    column_name: str
    label: str
    format: str = Field(default="number", pattern="^(number|currency|percentage)$")
    highlighted: bool = False


class SchemaMapping(BaseModel):
    dimension_field: str
    date_field: Optional[str] = None
    kpi_fields: list[KPIField] = []
    categorical_fields: list[str] = []


class EnabledFeatures(BaseModel):
    insights: bool = False


class AIConfig(BaseModel):
    enabled: bool = False
    enabled_features: Optional[EnabledFeatures] = None
    user_context: Optional[str] = None

    def allows_insights(self) -> bool:
        """Blanket flag or the per-feature insights flag."""
        if self.enabled:
            return True
        return bool(self.enabled_features and self.enabled_features.insights)


class DatasetMeta(BaseModel):
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Dataset(BaseModel):
    """A two-group comparison dataset."""

    id: str
    owner_id: str
    status: str = Field(default="ready", pattern="^(processing|ready|error)$")
    meta: DatasetMeta
    source_config: SourceConfig
    schema_mapping: Optional[SchemaMapping] = None
    ai_config: Optional[AIConfig] = None
    data: list[dict[str, Any]] = []

    def group_label(self, group: str) -> str:
        if group == GROUP_B:
            return self.source_config.group_b.label
        return self.source_config.group_a.label


class DatasetStore(Protocol):
    """Read side of dataset persistence used by the insights engine."""

    async def find_by_id(self, dataset_id: str) -> Optional[Dataset]:
        ...


class InMemoryDatasetStore:
    """Thread-safe in-process dataset store."""

    def __init__(self):
        self._datasets: dict[str, Dataset] = {}
        self._lock = Lock()

    async def find_by_id(self, dataset_id: str) -> Optional[Dataset]:
        with self._lock:
            return self._datasets.get(dataset_id)

    def add(self, dataset: Dataset) -> None:
        with self._lock:
            self._datasets[dataset.id] = dataset

    def load_directory(self, directory: str) -> int:
        """
        Load every `*.json` dataset document in a directory.

        Files that fail to parse are logged and skipped.

        Returns:
            Number of datasets loaded
        """
        path = Path(directory)
        if not path.is_dir():
            logger.info(f"No dataset directory at {path}, starting empty")
            return 0

        loaded = 0
        for file in sorted(path.glob("*.json")):
            try:
                dataset = Dataset.model_validate(json.loads(file.read_text(encoding="utf-8")))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping dataset file {file.name}: {e}")
                continue
            self.add(dataset)
            loaded += 1

        logger.info(f"Loaded {loaded} datasets from {path}")
        return loaded
