"""
Caching Utilities

In-memory insight cache with TTL and LRU eviction.
"""

import hashlib
import time
from collections import OrderedDict
from threading import Lock
from typing import Callable, Optional, Protocol

from api.schemas.requests import DashboardFilters
from api.schemas.responses import InsightsPayload
from config import get_settings
from core.logging_config import cache_logger as logger


KEY_PREFIX = "insights"


def make_cache_key(dataset_id: str, filters: DashboardFilters) -> str:
    """
    Cache key for a dataset under a filter state.

    Equivalent filter states (same fields and values in any order)
    share a key.
    """
    digest = hashlib.sha256(filters.canonical().encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}:{dataset_id}:{digest}"


class InsightsCacheRepository(Protocol):
    """Storage for generated insight payloads."""

    async def get(self, key: str) -> Optional[InsightsPayload]:
        ...

    async def set(self, key: str, payload: InsightsPayload, ttl_seconds: Optional[float] = None) -> None:
        ...

    async def invalidate(self, key: str) -> None:
        ...

    async def invalidate_dataset(self, dataset_id: str) -> int:
        ...


class InsightCache:
    """
    Thread-safe LRU cache with per-entry TTL.

    Entries store their absolute expiry; an expired entry behaves as
    absent and is removed when read.
    """

    def __init__(
        self,
        maxsize: int = 512,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: OrderedDict[str, tuple[InsightsPayload, float]] = OrderedDict()
        self._lock = Lock()

    async def get(self, key: str) -> Optional[InsightsPayload]:
        """Get payload from cache if not expired."""
        with self._lock:
            if key not in self._cache:
                return None

            payload, expires_at = self._cache[key]
            if self._clock() >= expires_at:
                # Expired
                del self._cache[key]
                logger.debug(f"Expired {key}")
                return None

            # Move to end (most recently accessed)
            self._cache.move_to_end(key)
            return payload

    async def set(self, key: str, payload: InsightsPayload, ttl_seconds: Optional[float] = None) -> None:
        """Store payload, replacing any previous entry under the key."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._cache.pop(key, None)

            # Remove oldest if at capacity
            while len(self._cache) >= self.maxsize:
                evicted, _ = self._cache.popitem(last=False)
                logger.debug(f"Evicted {evicted}")

            self._cache[key] = (payload, self._clock() + ttl)

    async def invalidate(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    async def invalidate_dataset(self, dataset_id: str) -> int:
        """Drop every entry of a dataset, whatever its filters."""
        prefix = f"{KEY_PREFIX}:{dataset_id}:"
        with self._lock:
            stale = [key for key in self._cache if key.startswith(prefix)]
            for key in stale:
                del self._cache[key]

        if stale:
            logger.info(f"Invalidated {len(stale)} entries for dataset {dataset_id}")
        return len(stale)

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


def create_insight_cache() -> InsightCache:
    settings = get_settings()
    return InsightCache(
        maxsize=settings.cache.max_size,
        ttl_seconds=settings.cache.ttl_seconds,
    )
