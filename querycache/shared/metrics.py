"""
Prometheus metrics for the query cache.
"""

from typing import Optional
import threading

from prometheus_client import CollectorRegistry, Counter, Gauge


class CacheMetrics:
    """Lookup, invalidation and size metrics for one cache instance."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "query_cache"):
        # Private registry per instance so several caches can coexist in one process
        self.registry = registry if registry is not None else CollectorRegistry()
        self._lock = threading.Lock()

        self.lookups = Counter(
            f"{namespace}_lookups_total",
            "Cache lookups by operation and result",
            ["operation", "result"],
            registry=self.registry
        )
        self.invalidations = Counter(
            f"{namespace}_invalidations_total",
            "Entries marked stale by invalidation",
            ["mode"],
            registry=self.registry
        )
        self.entries = Gauge(
            f"{namespace}_entries",
            "Number of entries currently held",
            registry=self.registry
        )

    def record_lookup(self, operation: str, result: str) -> None:
        """Count a lookup; result is one of hit, miss or stale."""
        with self._lock:
            self.lookups.labels(operation=operation, result=result).inc()

    def record_invalidation(self, mode: str, count: int = 1) -> None:
        if count <= 0:
            return
        with self._lock:
            self.invalidations.labels(mode=mode).inc(count)

    def set_entries(self, count: int) -> None:
        self.entries.set(count)

    def sample(self, name: str, **labels) -> float:
        """Read back a sample value, 0.0 when it was never recorded."""
        value = self.registry.get_sample_value(name, labels or None)
        return value if value is not None else 0.0
