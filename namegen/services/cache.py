"""
Ephemeral Cache - Process-local TTL map with a background sweep.

The cache is an optimization only. Every caller must behave correctly when
handed a NullCache instead, and separate processes never share entries.
Instances are created by the application lifespan and injected into routes.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from structlog import get_logger

from namegen.observability.metrics import metrics

logger = get_logger(__name__)

T = TypeVar("T")


class CacheTTL:
    """Standard TTLs in seconds."""

    SHORT = 5 * 60
    MEDIUM = 15 * 60
    LONG = 60 * 60
    VERY_LONG = 24 * 60 * 60


@dataclass
class CacheEntry:
    """Stored value with its write time and lifetime."""

    data: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class Cache(Protocol):
    """Operations request handlers may use."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    def has(self, key: str) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def clear(self) -> None: ...

    def invalidate_by_prefix(self, pattern: str) -> int: ...


class MemoryCache:
    """
    In-memory TTL cache.

    ``get``/``has`` evict an expired entry when they touch it; ``sweep``
    evicts every expired entry and runs on a fixed interval once ``start``
    has been called from inside an event loop.
    """

    def __init__(
        self,
        sweep_interval: float = 300.0,
        default_ttl: float = CacheTTL.SHORT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._sweep_interval = sweep_interval
        self._default_ttl = default_ttl
        self._clock = clock
        self._sweep_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value; ``ttl`` defaults to the cache's default TTL."""
        self._entries[key] = CacheEntry(
            data=value,
            timestamp=self._clock(),
            ttl=self._default_ttl if ttl is None else ttl,
        )

    def get(self, key: str) -> Any | None:
        """Return the value, or None when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry.data

    def has(self, key: str) -> bool:
        """True if the key is present and not expired."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return False
        return True

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def invalidate_by_prefix(self, pattern: str) -> int:
        """Remove every key whose name contains ``pattern``; returns how many."""
        doomed = [key for key in self._entries if pattern in key]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def sweep(self) -> int:
        """Evict all expired entries; returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("cache_swept", evicted=len(expired), remaining=len(self._entries))
        return len(expired)

    def stats(self) -> dict[str, Any]:
        """Size and key listing, for debugging endpoints and tests."""
        return {"size": len(self._entries), "keys": list(self._entries)}

    def start(self) -> None:
        """Launch the periodic sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def shutdown(self) -> None:
        """Stop the sweep and drop all entries."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        self.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()


class NullCache:
    """Cache that stores nothing; substitutable for MemoryCache."""

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        return None

    def has(self, key: str) -> bool:
        return False

    def delete(self, key: str) -> bool:
        return False

    def clear(self) -> None:
        return None

    def invalidate_by_prefix(self, pattern: str) -> int:
        return 0


def create_cache(sweep_interval: float = 300.0) -> MemoryCache:
    """Create and start a cache. Must be called inside a running event loop."""
    cache = MemoryCache(sweep_interval=sweep_interval)
    cache.start()
    logger.info("cache_started", sweep_interval_seconds=sweep_interval)
    return cache


async def shutdown_cache(cache: MemoryCache) -> None:
    """Tear down a cache created by create_cache."""
    await cache.shutdown()
    logger.info("cache_stopped")


# ============================================================================
# Key helpers
# ============================================================================


def user_data_key(user_id: str, data_type: str) -> str:
    """Key for per-user cached data."""
    return f"user_data:{user_id}:{data_type}"


def invalidate_user_data(cache: Cache, user_id: str) -> int:
    """Drop every cached entry belonging to one user."""
    return cache.invalidate_by_prefix(f"user_data:{user_id}:")


async def get_or_load(
    cache: Cache,
    key: str,
    loader: Callable[[], Awaitable[T]],
    ttl: float | None = None,
) -> T:
    """Read-through: return the cached value or load, store and return it."""
    cached = cache.get(key)
    if cached is not None:
        metrics.record_cache_lookup(hit=True)
        logger.debug("cache_hit", key=key)
        return cached  # type: ignore[no-any-return]

    metrics.record_cache_lookup(hit=False)
    logger.debug("cache_miss", key=key)
    value = await loader()
    cache.set(key, value, ttl)
    return value
