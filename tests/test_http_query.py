"""
Unit tests for the HTTP compute adapter.
"""

import httpx
import pytest

from querycache.adapters.http_query import HttpQueryFunction
from querycache.caching.descriptor import query_options
from querycache.caching.query_cache import QueryCache
from querycache.host.cancellation import CancellationToken
from querycache.shared.config import get_settings
from querycache.shared.errors import ExternalServiceError, QueryCancelledError
from querycache.shared.test_helpers import FakeClock


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpQueryFunction:
    """Test cases for HttpQueryFunction."""

    def test_build_request_path_and_params(self):
        path, params = HttpQueryFunction.build_request(["users", 10, {"expand": "teams", "skip": None}])

        assert path == "/users/10"
        assert params == {"expand": "teams"}

    def test_build_request_quotes_segments(self):
        path, _ = HttpQueryFunction.build_request(["files", "a/b c", True, None])
        assert path == "/files/a%2Fb%20c/true"

    def test_base_url_trailing_slash_stripped(self):
        assert HttpQueryFunction("http://api.local/").base_url == "http://api.local"

    def test_from_settings_uses_timeout(self):
        fetch = HttpQueryFunction.from_settings("http://api.local", get_settings(http_timeout_seconds=2.5), service="users_api")

        assert fetch.timeout == 2.5
        assert fetch.service == "users_api"

    @pytest.mark.asyncio
    async def test_fetches_json(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": 10, "name": "Alice"})

        async with _client(handler) as client:
            fetch = HttpQueryFunction("http://api.local", client)
            result = await fetch(None, ["users", 10, {"expand": "teams"}])

        assert result == {"id": 10, "name": "Alice"}
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/users/10"
        assert seen[0].url.params["expand"] == "teams"

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self):
        async with _client(lambda request: httpx.Response(404)) as client:
            result = await HttpQueryFunction("http://api.local", client)(None, ["users", 99])

        assert result is None

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        async with _client(lambda request: httpx.Response(503, text="down")) as client:
            fetch = HttpQueryFunction("http://api.local", client, service="users_api")

            with pytest.raises(ExternalServiceError) as exc_info:
                await fetch(None, ["users"])

        assert exc_info.value.code == "EXTERNAL_SERVICE_ERROR"
        assert exc_info.value.message.startswith("users_api:")
        assert exc_info.value.details == {"status_code": 503, "body": "down"}

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(ExternalServiceError):
                await HttpQueryFunction("http://api.local", client)(None, ["users"])

    @pytest.mark.asyncio
    async def test_cancelled_token_skips_request(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        token = CancellationToken()
        token.cancel()

        async with _client(handler) as client:
            with pytest.raises(QueryCancelledError):
                await HttpQueryFunction("http://api.local", client)(token, ["users"])

        assert seen == []

    @pytest.mark.asyncio
    async def test_cached_requests_are_deduplicated(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[{"id": 1}])

        async with _client(handler) as client:
            cache = QueryCache(5000, clock=FakeClock())
            options = query_options(["users"], HttpQueryFunction("http://api.local", client))

            first = cache.fetch_or_refresh(options)
            second = cache.fetch_or_refresh(options)

            assert await first == [{"id": 1}]
            assert await second == [{"id": 1}]

        assert len(seen) == 1
