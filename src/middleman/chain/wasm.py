"""CosmWasm smart queries over the chain's LCD REST API.

GET {rest}/cosmwasm/wasm/v1/contract/{address}/smart/{base64(json query)}
"""

import base64
import json
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class ContractQueryError(Exception):
    """A smart query could not be completed."""

    def __init__(self, contract: str, message: str, http_status: Optional[int] = None):
        super().__init__(f"{contract}: {message}")
        self.contract = contract
        self.message = message
        self.http_status = http_status


def encode_query(msg: dict) -> str:
    raw = json.dumps(msg, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode()


class WasmQueryClient:
    """Read-only client for contract smart queries."""

    def __init__(
        self,
        rest_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rest_url = rest_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def query_smart(self, contract: str, msg: dict) -> Any:
        """Run a smart query and return its `data` payload.

        Raises:
            ContractQueryError: network failure, non-2xx status or bad body
        """
        client = await self._get_client()
        url = f"{self.rest_url}/cosmwasm/wasm/v1/contract/{contract}/smart/{encode_query(msg)}"

        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise ContractQueryError(contract, f"{type(e).__name__}: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ContractQueryError(contract, "non-JSON response", response.status_code) from e

        if not response.is_success:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise ContractQueryError(
                contract, message or f"HTTP {response.status_code}", response.status_code
            )

        if not isinstance(payload, dict) or "data" not in payload:
            raise ContractQueryError(contract, "missing data in query response", response.status_code)
        return payload["data"]
