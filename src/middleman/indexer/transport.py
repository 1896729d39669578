"""GraphQL transport over HTTP.

GET is preferred because a plain GET without custom headers is a "simple"
cross-origin request and skips the CORS preflight. Documents that would
produce an oversized URL, or a GET that fails outright, go out as POST.
"""

import json
import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from middleman.indexer.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_MAX_GET_URL_LENGTH = 7000


def build_get_url(endpoint: str, document: str, variables: Optional[dict] = None) -> str:
    """Embed query and variables in the endpoint's query string."""
    params = {"query": document}
    if variables:
        params["variables"] = json.dumps(variables, separators=(",", ":"))
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(params)}"


def _snippet(text: str, limit: int = 160) -> str:
    return " ".join(text[:limit].split())


class GraphQLTransport:
    """Sends one logical GraphQL request and unwraps the response envelope.

    No retries happen here; variant fallback belongs to the executor.
    """

    def __init__(
        self,
        endpoint: str,
        user_agent: Optional[str] = None,
        timeout: float = 30.0,
        max_get_url_length: int = DEFAULT_MAX_GET_URL_LENGTH,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize transport.

        Args:
            endpoint: Default GraphQL endpoint URL
            user_agent: Client identification string
            timeout: HTTP timeout in seconds
            max_get_url_length: GET URLs longer than this are sent as POST
            client: Optional pre-built HTTP client (tests inject a mock transport)
        """
        self.endpoint = endpoint
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_get_url_length = max_get_url_length
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"user-agent": self.user_agent} if self.user_agent else None
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GraphQLTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def send(
        self,
        document: str,
        variables: Optional[dict] = None,
        endpoint: Optional[str] = None,
    ) -> dict[str, Any]:
        """Execute a GraphQL document and return its `data` object.

        Raises:
            TransportError: on non-2xx status, non-JSON body, GraphQL
                errors, or a missing `data` field
        """
        endpoint = endpoint or self.endpoint
        client = await self._get_client()

        url = build_get_url(endpoint, document, variables)
        if len(url) <= self.max_get_url_length:
            try:
                response = await client.get(url)
                if response.is_success:
                    return self._unwrap(response)
                logger.debug(f"GraphQL GET returned HTTP {response.status_code}, retrying as POST")
            except httpx.HTTPError as e:
                logger.debug(f"GraphQL GET failed ({type(e).__name__}: {e}), retrying as POST")
            except TransportError as e:
                if e.http_status is None and e.message == "non-JSON response":
                    logger.debug("GraphQL GET returned non-JSON body, retrying as POST")
                else:
                    raise
        else:
            logger.debug(f"GET URL too long ({len(url)} chars), using POST")

        try:
            response = await client.post(
                endpoint,
                json={"query": document, "variables": variables or {}},
                headers={"content-type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise TransportError(_snippet(response.text), http_status=response.status_code)
        return self._unwrap(response)

    @staticmethod
    def _unwrap(response: httpx.Response) -> dict[str, Any]:
        """Turn a GraphQL envelope into its data, or raise."""
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError("non-JSON response") from e

        if not isinstance(payload, dict):
            raise TransportError("non-JSON response")

        errors = payload.get("errors")
        if errors:
            messages = [
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in errors
            ]
            raise TransportError("; ".join(messages))

        data = payload.get("data")
        if data is None:
            raise TransportError("no data in GraphQL response")
        return data
