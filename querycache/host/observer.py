"""
Reactive host adapter over QueryCache.

A host (UI binding, request handler, long-lived task) hands the observer a
function that derives the current query options from its live inputs. Every
`result()` call re-derives the descriptor and reads through the cache, so the
observer follows the inputs without owning any cache state.
"""

import asyncio
from typing import Any, Callable, Dict, Generator, Optional, Union

from ..caching.descriptor import QueryDescriptor
from ..caching.query_cache import QueryCache
from ..shared.logging import get_logger
from .cancellation import CancellationToken


OptionsFn = Callable[[], Union[Dict[str, Any], QueryDescriptor]]


class QueryResult:
    """Awaitable handle to a cached query value plus the key it was read for."""

    __slots__ = ("_future", "_descriptor")

    def __init__(self, future: "asyncio.Future[Any]", descriptor: QueryDescriptor):
        self._future = future
        self._descriptor = descriptor

    @property
    def query_key(self) -> list:
        return self._descriptor.original_key

    @property
    def future(self) -> "asyncio.Future[Any]":
        return self._future

    def done(self) -> bool:
        return self._future.done()

    def __await__(self) -> Generator[Any, None, Any]:
        # Shielded: cancelling one awaiting caller must not cancel the shared computation
        return asyncio.shield(self._future).__await__()


class QueryObserver:
    """Follows a derived query and reads it through the cache on demand."""

    def __init__(self, cache: QueryCache, options_fn: OptionsFn):
        self.cache = cache
        self.options_fn = options_fn
        self.logger = get_logger("querycache.observer")
        self._token: Optional[CancellationToken] = None
        self._key: Optional[str] = None
        self._closed = False

    def _derive(self) -> QueryDescriptor:
        options = self.options_fn()
        if isinstance(options, QueryDescriptor):
            return options
        return self.cache.descriptor(options["key"], options["compute"], options.get("stale_after_ms"))

    @property
    def token(self) -> Optional[CancellationToken]:
        return self._token

    def result(self) -> QueryResult:
        """Re-derive the query and return the cached (or freshly started) value."""
        if self._closed:
            raise RuntimeError("QueryObserver is closed")

        descriptor = self._derive()
        if descriptor.canonical_key != self._key:
            # The previous key's computation is abandoned by this observer
            if self._token is not None:
                self._token.cancel(reason="query key changed")
            self._token = CancellationToken(name=descriptor.canonical_key)
            self.logger.debug("Observed query key changed", previous=self._key, query_key=descriptor.canonical_key)
            self._key = descriptor.canonical_key

        future = self.cache.fetch_or_refresh(descriptor, self._token)
        return QueryResult(future, descriptor)

    def close(self) -> None:
        """Tear down the observer, cancelling the token of the current key."""
        if self._closed:
            return
        self._closed = True
        if self._token is not None:
            self._token.cancel(reason="observer closed")
        self.logger.debug("Query observer closed", query_key=self._key)
