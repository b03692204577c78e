"""
HTTP-backed compute function for queries.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING
from urllib.parse import quote
import httpx

from ..shared.config import QueryCacheSettings
from ..shared.errors import ExternalServiceError
from ..shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..host.cancellation import CancellationToken


class HttpQueryFunction:
    """
    Compute function that GETs JSON for a query key.

    Scalar key fragments become URL path segments and dict fragments are
    merged into query parameters, so ["users", 10, {"expand": "teams"}]
    fetches `{base_url}/users/10?expand=teams`.
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: float = 10.0,
        service: str = "query_backend",
    ):
        self.base_url = base_url.rstrip('/')
        self.client = client
        self.timeout = timeout
        self.service = service
        self.logger = get_logger("querycache.http_query")

    @classmethod
    def from_settings(
        cls,
        base_url: str,
        settings: QueryCacheSettings,
        client: Optional[httpx.AsyncClient] = None,
        **kwargs,
    ) -> "HttpQueryFunction":
        return cls(base_url, client, timeout=settings.http_timeout_seconds, **kwargs)

    @staticmethod
    def build_request(key: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
        """Split a key into a URL path and query parameters."""
        segments: List[str] = []
        params: Dict[str, Any] = {}
        for fragment in key:
            if isinstance(fragment, dict):
                params.update({k: v for k, v in fragment.items() if v is not None})
            elif fragment is None:
                continue
            elif isinstance(fragment, bool):
                segments.append("true" if fragment else "false")
            else:
                segments.append(quote(str(fragment), safe=""))
        return "/" + "/".join(segments), params

    async def __call__(self, signal: Optional["CancellationToken"], key: Sequence[Any]) -> Optional[Any]:
        if signal is not None:
            signal.raise_if_cancelled()

        path, params = self.build_request(key)
        url = f"{self.base_url}{path}"

        try:
            if self.client is not None:
                response = await self.client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            self.logger.error("Query request failed", url=url, params=params, error=str(exc))
            raise ExternalServiceError(
                service=self.service,
                message=str(exc),
                details={"url": url, "params": params}
            ) from exc

        # Drop the response of a request whose caller went away meanwhile
        if signal is not None:
            signal.raise_if_cancelled()

        if response.status_code == 404:
            self.logger.info("Query resource not found", url=url, params=params)
            return None

        if not response.is_success:
            self.logger.error(
                "Query request returned error status",
                url=url,
                params=params,
                status_code=response.status_code,
                response=response.text
            )
            raise ExternalServiceError(
                service=self.service,
                message=f"Unexpected status {response.status_code}",
                details={"status_code": response.status_code, "body": response.text}
            )

        self.logger.debug("Query resource retrieved", url=url, params=params)
        return response.json()
