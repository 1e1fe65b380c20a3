"""
Schema Cache

LRU cache of discovered schemas with single-flight discovery.

Guarantees:
    - At most one discovery runs per graph_id. Concurrent callers for a key
      that is being discovered await the same task.
    - Successful discoveries are served until invalidated or evicted.
    - A failed discovery is raised to every caller waiting on it and
      nothing is stored, so the next call discovers again.
    - invalidate() is unconditional and idempotent. A discovery that was
      in flight when its key was invalidated still answers its waiters
      but is not stored.
    - Eviction drops the least recently used entry (by last cache hit or
      store) and never waits on other keys.

All state is touched only from the event loop thread, between awaits, so
no lock is needed: the in-flight task map is the per-key single-flight
primitive and different keys proceed in parallel.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from cachetools import Cache, LRUCache

from graph_ask.errors import StoreUnavailable
from graph_ask.types.schema import GraphSchema

logger = logging.getLogger(__name__)

SchemaLoader = Callable[[str], Awaitable[GraphSchema]]

DEFAULT_CAPACITY = 100


@dataclass
class CacheStats:
    """Counters since the cache was created."""

    hits: int = 0
    misses: int = 0
    discoveries: int = 0
    failures: int = 0
    evictions: int = 0


class _SchemaLRU(LRUCache):
    """LRUCache that reports capacity evictions."""

    def __init__(self, maxsize: int, on_evict: Callable[[str], None]) -> None:
        super().__init__(maxsize=maxsize)
        self._on_evict = on_evict

    def popitem(self):
        key, value = super().popitem()
        self._on_evict(key)
        return key, value

    def peek(self, key: str) -> GraphSchema | None:
        # Cache.__getitem__ skips LRUCache's recency update
        if key not in self:
            return None
        return Cache.__getitem__(self, key)


class SchemaCache:
    """
    Single-flight LRU schema cache.

    Args:
        loader: Default discovery function, called with the graph_id
        capacity: Maximum number of cached schemas
        discovery_timeout: Seconds allowed per discovery (None = no limit)

    Example:
        >>> cache = SchemaCache(SchemaDiscovery(store).discover, capacity=100)
        >>> schema = await cache.get_or_discover("movies")
        >>> cache.invalidate("movies")
    """

    def __init__(
        self,
        loader: SchemaLoader | None = None,
        *,
        capacity: int = DEFAULT_CAPACITY,
        discovery_timeout: float | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._loader = loader
        self._capacity = capacity
        self._discovery_timeout = discovery_timeout
        self._entries = _SchemaLRU(capacity, self._evicted)
        self._inflight: dict[str, asyncio.Task[GraphSchema]] = {}
        self.stats = CacheStats()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, graph_id: object) -> bool:
        return graph_id in self._entries

    def keys(self) -> list[str]:
        """Cached graph ids, sorted."""
        return sorted(self._entries)

    def peek(self, graph_id: str) -> GraphSchema | None:
        """Cached schema without touching recency."""
        return self._entries.peek(graph_id)

    def is_discovering(self, graph_id: str) -> bool:
        return graph_id in self._inflight

    async def get_or_discover(
        self,
        graph_id: str,
        loader: SchemaLoader | None = None,
    ) -> GraphSchema:
        """
        Return the cached schema or discover it.

        Args:
            graph_id: Graph name
            loader: Discovery function for this call; defaults to the
                cache's loader. Only used when this call starts a discovery.

        Raises:
            Whatever the discovery raised; StoreUnavailable on timeout
        """
        cached = self._entries.get(graph_id)
        if cached is not None:
            self.stats.hits += 1
            return cached

        self.stats.misses += 1
        task = self._inflight.get(graph_id)
        if task is None:
            load = loader or self._loader
            if load is None:
                raise ValueError("SchemaCache has no loader for discovery")
            task = asyncio.ensure_future(self._discover(graph_id, load))
            task.add_done_callback(_consume_exception)
            self._inflight[graph_id] = task
        else:
            logger.debug(f"Joining in-flight schema discovery for '{graph_id}'")

        # Shielded so one caller's cancellation or timeout does not abort
        # the discovery other callers are waiting on
        return await asyncio.shield(task)

    async def _discover(self, graph_id: str, load: SchemaLoader) -> GraphSchema:
        this_task = asyncio.current_task()
        self.stats.discoveries += 1
        try:
            if self._discovery_timeout is not None:
                try:
                    schema = await asyncio.wait_for(load(graph_id), self._discovery_timeout)
                except asyncio.TimeoutError as e:
                    raise StoreUnavailable(
                        f"Schema discovery for '{graph_id}' timed out after "
                        f"{self._discovery_timeout:g}s"
                    ) from e
            else:
                schema = await load(graph_id)
        except Exception:
            self.stats.failures += 1
            logger.warning(f"Schema discovery for '{graph_id}' failed; not cached")
            raise
        finally:
            still_current = self._inflight.get(graph_id) is this_task
            if still_current:
                del self._inflight[graph_id]

        if still_current:
            self._store(graph_id, schema)
        else:
            logger.info(f"Schema for '{graph_id}' was invalidated during discovery; not cached")
        return schema

    def _store(self, graph_id: str, schema: GraphSchema) -> None:
        self._entries[graph_id] = schema

    def _evicted(self, graph_id: str) -> None:
        self.stats.evictions += 1
        logger.info(f"Evicted schema for '{graph_id}' (capacity {self._capacity})")

    def invalidate(self, graph_id: str) -> None:
        """Drop a graph's schema. Safe whether or not it is cached."""
        removed = self._entries.pop(graph_id, None) is not None
        detached = self._inflight.pop(graph_id, None) is not None
        if removed or detached:
            logger.info(f"Invalidated schema for '{graph_id}'")

    def clear(self) -> None:
        """Drop every cached schema."""
        # MutableMapping.clear() goes through popitem() and would count evictions
        self._entries = _SchemaLRU(self._capacity, self._evicted)
        self._inflight.clear()


def _consume_exception(task: asyncio.Future) -> None:
    # Marks the exception retrieved when every waiter was cancelled
    if not task.cancelled():
        task.exception()
