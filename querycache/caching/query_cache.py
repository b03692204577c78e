"""
In-memory cache of deferred query values keyed by canonical query key.
"""

import asyncio
import json
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union, TYPE_CHECKING

from ..shared.config import DEFAULT_STALE_MS, QueryCacheSettings
from ..shared.logging import get_logger
from .cache_entry import CacheEntry
from .descriptor import Clock, ComputeFn, QueryDescriptor, encode_key, encode_key_prefix, wall_clock_ms

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..host.cancellation import CancellationToken
    from ..shared.metrics import CacheMetrics


HydrationHook = Callable[[str, Callable[[], Awaitable[Any]]], Awaitable[Any]]


class QueryCache:
    """
    Cache of in-flight and settled query futures.

    Entries are installed synchronously before the computation is handed back,
    so concurrent callers for the same key share one future. Staleness is
    evaluated lazily on read; nothing is evicted on a timer.
    """

    def __init__(
        self,
        default_stale_ms: float = DEFAULT_STALE_MS,
        *,
        hydrate: Optional[HydrationHook] = None,
        metrics: Optional["CacheMetrics"] = None,
        clock: Clock = wall_clock_ms,
    ):
        if default_stale_ms < 0:
            raise ValueError(f"default_stale_ms must be non-negative, got {default_stale_ms}")

        self.default_stale_ms = default_stale_ms
        self.hydrate = hydrate
        self.metrics = metrics
        self.logger = get_logger("querycache.cache")
        self._clock = clock
        self._entries: Dict[str, CacheEntry[Any]] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_settings(
        cls,
        settings: QueryCacheSettings,
        *,
        hydrate: Optional[HydrationHook] = None,
        clock: Clock = wall_clock_ms,
    ) -> "QueryCache":
        """Build a cache from host settings."""
        metrics = None
        if settings.enable_metrics:
            from ..shared.metrics import CacheMetrics
            metrics = CacheMetrics()
        return cls(settings.default_stale_ms, hydrate=hydrate, metrics=metrics, clock=clock)

    def descriptor(
        self,
        key: Sequence[Any],
        compute: ComputeFn,
        stale_after_ms: Optional[float] = None,
    ) -> QueryDescriptor:
        """Build a descriptor bound to this cache's default staleness and clock."""
        return QueryDescriptor(
            key,
            compute,
            stale_after_ms,
            default_stale_ms=self.default_stale_ms,
            clock=self._clock,
        )

    def _as_descriptor(self, query: Union[QueryDescriptor, Dict[str, Any]]) -> QueryDescriptor:
        if isinstance(query, QueryDescriptor):
            return query
        return QueryDescriptor.from_options(query, default_stale_ms=self.default_stale_ms, clock=self._clock)

    def _install(self, key: str, value: "asyncio.Future[Any]") -> CacheEntry[Any]:
        entry = CacheEntry(value, self._clock())
        self._entries[key] = entry
        self._record_size()
        return entry

    def _create(self, descriptor: QueryDescriptor, signal: Optional["CancellationToken"]) -> "asyncio.Future[Any]":
        """First population of a key; goes through the hydration hook when one is set."""
        if self.hydrate is None:
            return descriptor.invoke(signal)
        return asyncio.ensure_future(
            self.hydrate(descriptor.canonical_key, lambda: descriptor.invoke(signal))
        )

    def fetch_or_refresh(
        self,
        query: Union[QueryDescriptor, Dict[str, Any]],
        signal: Optional["CancellationToken"] = None,
    ) -> "asyncio.Future[Any]":
        """
        Return the held value for the query, recomputing when absent or stale.

        A fresh entry is returned untouched and compute is not invoked. A stale
        refresh invokes compute directly, bypassing the hydration hook.
        """
        descriptor = self._as_descriptor(query)
        key = descriptor.canonical_key

        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                entry = self._install(key, self._create(descriptor, signal))
                self._record_lookup("fetch", "miss", key)
            elif cached.invalidated or descriptor.is_stale(cached.created_at):
                entry = self._install(key, descriptor.invoke(signal))
                self._record_lookup("fetch", "stale", key)
            else:
                entry = cached
                self._record_lookup("fetch", "hit", key)

        return entry.value

    def ensure(
        self,
        query: Union[QueryDescriptor, Dict[str, Any]],
        signal: Optional["CancellationToken"] = None,
    ) -> "asyncio.Future[Any]":
        """Return the held value for the query regardless of staleness, creating it when absent."""
        descriptor = self._as_descriptor(query)
        key = descriptor.canonical_key

        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._record_lookup("ensure", "hit", key)
                return cached.value

            entry = self._install(key, self._create(descriptor, signal))
            self._record_lookup("ensure", "miss", key)
            return entry.value

    def set(self, key: Sequence[Any], value: Any) -> None:
        """
        Install an already-resolved value, replacing any existing entry.

        Must be called from within a running event loop; the value is held as
        a settled future bound to that loop.
        """
        canonical = encode_key(key)
        future = asyncio.get_running_loop().create_future()
        future.set_result(value)

        with self._lock:
            self._install(canonical, future)

        self.logger.debug("Query value set", query_key=canonical)

    def get(self, key: Sequence[Any]) -> Optional["asyncio.Future[Any]"]:
        """Return the held future for the key, or None when absent."""
        with self._lock:
            entry = self._entries.get(encode_key(key))
        return entry.value if entry is not None else None

    def remove(self, query: Union[QueryDescriptor, Sequence[Any]]) -> None:
        """Delete the entry for a descriptor or key; missing keys are ignored."""
        key = query.canonical_key if isinstance(query, QueryDescriptor) else encode_key(query)

        with self._lock:
            removed = self._entries.pop(key, None)
            if removed is not None:
                self._record_size()

        if removed is not None:
            self.logger.debug("Query removed", query_key=key)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._record_size()

        self.logger.info("Query cache cleared", entries=count)

    def invalidate(self, key: Sequence[Any]) -> None:
        """Mark the entry for exactly this key as stale."""
        canonical = encode_key(key)

        with self._lock:
            entry = self._entries.get(canonical)
            if entry is None:
                return
            entry.invalidate()

        self._record_invalidation("exact", 1)
        self.logger.debug("Query invalidated", query_key=canonical)

    def invalidate_by_prefix(self, key_prefix: Sequence[Any] = ()) -> int:
        """
        Mark every entry whose key starts with the given fragments as stale.

        An empty prefix invalidates everything. Returns the number of entries
        marked.
        """
        prefix = encode_key_prefix(key_prefix)
        exact = encode_key(key_prefix)
        marked = 0

        with self._lock:
            for key, entry in self._entries.items():
                if key == exact or key.startswith(prefix):
                    entry.invalidate()
                    marked += 1

        self._record_invalidation("prefix", marked)
        self.logger.info("Queries invalidated by prefix", prefix=exact, invalidated=marked)
        return marked

    def keys(self) -> List[list]:
        """Original keys of every held entry."""
        with self._lock:
            canonical_keys = list(self._entries)
        return [json.loads(key) for key in canonical_keys]

    def stats(self) -> Dict[str, Any]:
        """Snapshot of entry counts by state."""
        with self._lock:
            entries = list(self._entries.values())

        states: Dict[str, int] = {"pending": 0, "fulfilled": 0, "rejected": 0, "cancelled": 0}
        for entry in entries:
            states[entry.state()] += 1

        return {
            "entries": len(entries),
            "invalidated": sum(1 for entry in entries if entry.invalidated),
            "states": states,
            "default_stale_ms": self.default_stale_ms,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Sequence[Any]) -> bool:
        canonical = encode_key(key)
        with self._lock:
            return canonical in self._entries

    def _record_lookup(self, operation: str, result: str, key: str) -> None:
        self.logger.debug("Query lookup", operation=operation, result=result, query_key=key)
        if self.metrics is None:
            return
        try:
            self.metrics.record_lookup(operation, result)
        except Exception as exc:  # pragma: no cover - metrics failures must not break lookups
            self.logger.debug("Failed to record lookup metrics", error=str(exc))

    def _record_invalidation(self, mode: str, count: int) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.record_invalidation(mode, count)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to record invalidation metrics", error=str(exc))

    def _record_size(self) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.set_entries(len(self._entries))
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to record size metrics", error=str(exc))
