"""
querycache: a cache of deferred query values keyed by hierarchical keys.

The cache holds the asyncio future of each query, not its settled result, so
callers await, chain or race it directly and concurrent callers for the same
key share one computation.

- caching: descriptors, cache entries and the query cache itself
- host: cancellation tokens, hydration store and the reactive observer
- adapters: ready-made compute functions (HTTP)
- shared: config, logging, errors and metrics
"""

from .caching.descriptor import QueryDescriptor, query_options
from .caching.query_cache import QueryCache
from .host.cancellation import CancellationToken
from .host.hydration import HydrationStore
from .host.observer import QueryObserver, QueryResult
from .shared.errors import KeyEncodingError, QueryCacheException, QueryCancelledError

__all__ = [
    "CancellationToken",
    "HydrationStore",
    "KeyEncodingError",
    "QueryCache",
    "QueryCacheException",
    "QueryCancelledError",
    "QueryDescriptor",
    "QueryObserver",
    "QueryResult",
    "query_options",
]
