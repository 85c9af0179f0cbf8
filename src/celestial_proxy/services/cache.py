"""In-memory TTL cache for upstream reference data."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from cachetools import TLRUCache
from prometheus_client import Counter, Gauge

from celestial_proxy.config import Settings

logger = structlog.get_logger()

T = TypeVar("T")

# Metrics
cache_hits = Counter("cache_hits_total", "Total cache hits", ["namespace"])
cache_misses = Counter("cache_misses_total", "Total cache misses", ["namespace"])
cache_size_gauge = Gauge("cache_size", "Current number of cache entries")


@dataclass(frozen=True)
class CacheEntry:
    """Cached value with its absolute expiry on the cache's clock."""

    value: Any
    expires_at: float


def _time_to_use(_key: str, entry: CacheEntry, _now: float) -> float:
    return entry.expires_at


def _namespace(key: str) -> str:
    """Metric label for a key such as ``tarot:card:17`` -> ``tarot:card``."""
    head, sep, _ = key.rpartition(":")
    return head if sep else key


class CacheService:
    """Key/value cache with a per-entry time-to-live.

    Expired entries are treated as absent and dropped lazily on read. There is
    no coalescing of concurrent misses: two callers racing on the same key may
    both run the producer passed to :meth:`wrap`.
    """

    def __init__(
        self,
        settings: Settings,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize cache with settings."""
        self._cache: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=settings.cache_max_size,
            ttu=_time_to_use,
            timer=timer,
        )
        self._timer = timer

    def get(self, key: str) -> Any | None:
        """Return the cached value for ``key``, or None if missing or expired."""
        entry = self._cache.get(key)
        if entry is None:
            # Drops the expired entry that may still sit under this key
            self._cache.expire()
            cache_misses.labels(namespace=_namespace(key)).inc()
            return None
        cache_hits.labels(namespace=_namespace(key)).inc()
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds, replacing any entry."""
        self._cache[key] = CacheEntry(value=value, expires_at=self._timer() + ttl)
        cache_size_gauge.set(len(self._cache))

    async def wrap(self, key: str, ttl: float, producer: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for ``key`` or produce, store and return it.

        Errors raised by ``producer`` propagate and nothing is cached.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache hit", cache_key=key, cache_hit=True)
            return cached

        logger.debug("Cache miss", cache_key=key, cache_hit=False)
        value = await producer()
        self.set(key, value, ttl)
        return value

    def clear(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()
        cache_size_gauge.set(0)

    @property
    def size(self) -> int:
        """Return current cache size."""
        return len(self._cache)

    def is_healthy(self) -> bool:
        """Check if cache is operational."""
        return self._cache is not None and isinstance(len(self._cache), int)
