"""
Unit tests for CancellationToken and cancelled computations in the cache.
"""

import asyncio
import pytest
from unittest.mock import MagicMock

from querycache.caching.descriptor import query_options
from querycache.caching.query_cache import QueryCache
from querycache.host.cancellation import CancellationToken
from querycache.shared.errors import QueryCancelledError
from querycache.shared.test_helpers import CountingCompute, FakeClock


class TestCancellationToken:
    """Test cases for CancellationToken."""

    def test_initial_state(self):
        token = CancellationToken("users")

        assert token.cancelled is False
        assert token.reason is None
        token.raise_if_cancelled()

    def test_cancel_sets_reason(self):
        token = CancellationToken()

        assert token.cancel("torn down") is True
        assert token.cancelled is True
        assert token.reason == "torn down"

    def test_second_cancel_is_ignored(self):
        token = CancellationToken()
        token.cancel("first")

        assert token.cancel("second") is False
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        token = CancellationToken("users")
        token.cancel("stop")

        with pytest.raises(QueryCancelledError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.code == "QUERY_CANCELLED"
        assert exc_info.value.details == {"reason": "stop"}

    def test_callbacks_run_once_on_cancel(self):
        token = CancellationToken()
        callback = MagicMock()
        token.add_callback(callback)

        token.cancel()
        token.cancel()

        callback.assert_called_once_with(token)

    def test_callback_added_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        callback = MagicMock()

        token.add_callback(callback)

        callback.assert_called_once_with(token)

    @pytest.mark.asyncio
    async def test_wait_resolves_on_cancel(self):
        token = CancellationToken()
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel("stop")

        await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_wait_returns_immediately_when_cancelled(self):
        token = CancellationToken()
        token.cancel()

        await asyncio.wait_for(token.wait(), timeout=1)


class TestCancelledComputations:
    """Cancelled computations are cached like any other rejection."""

    @pytest.mark.asyncio
    async def test_cancelled_entry_stays_cached(self):
        calls = []

        async def compute(signal, key):
            calls.append(key)
            await signal.wait()
            signal.raise_if_cancelled()

        cache = QueryCache(5000, clock=FakeClock())
        token = CancellationToken()
        options = query_options(["slow"], compute)

        future = cache.fetch_or_refresh(options, token)
        await asyncio.sleep(0)
        token.cancel("caller left")

        with pytest.raises(QueryCancelledError):
            await future

        assert cache.fetch_or_refresh(options) is future
        assert len(calls) == 1
        assert cache.stats()["states"]["rejected"] == 1

    @pytest.mark.asyncio
    async def test_cancelling_token_does_not_touch_other_keys(self):
        cache = QueryCache(5000, clock=FakeClock())
        token = CancellationToken()
        other = CountingCompute(value="other")

        await cache.fetch_or_refresh(query_options(["other"], other))
        token.cancel()

        assert await cache.get(["other"]) == "other"

    @pytest.mark.asyncio
    async def test_task_cancellation_is_cached(self):
        cache = QueryCache(5000, clock=FakeClock())
        future = cache.fetch_or_refresh(query_options(["t"], CountingCompute(value="v", delay=1)))
        future.cancel()

        with pytest.raises(asyncio.CancelledError):
            await future

        assert cache.get(["t"]) is future
        assert cache.stats()["states"]["cancelled"] == 1
