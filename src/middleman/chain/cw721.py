"""cw721 NFT collection queries and approve message."""

import logging
from typing import Any, Optional

from middleman.chain.escrow import ExecuteInstruction
from middleman.chain.wasm import ContractQueryError, WasmQueryClient

logger = logging.getLogger(__name__)


class Cw721Collection:
    """One NFT collection contract.

    Query helpers degrade to empty results on failure; a collection that
    cannot be queried is treated as holding nothing.
    """

    def __init__(
        self,
        query_client: WasmQueryClient,
        address: str,
        info_cache: Optional[dict[str, dict]] = None,
    ):
        self.query_client = query_client
        self.address = address
        self._info_cache = info_cache if info_cache is not None else {}

    async def owner_tokens(
        self, owner: str, start_after: Optional[str] = None, limit: int = 50
    ) -> list[str]:
        try:
            data = await self.query_client.query_smart(
                self.address,
                {"tokens": {"owner": owner, "limit": limit, "start_after": start_after}},
            )
        except ContractQueryError as e:
            logger.warning(f"tokens query failed for {self.address}: {e}")
            return []
        return list((data or {}).get("tokens") or [])

    async def is_approved(self, token_id: "int | str", spender: str) -> bool:
        try:
            data = await self.query_client.query_smart(
                self.address,
                {
                    "approval": {
                        "token_id": str(token_id),
                        "spender": spender,
                        "include_expired": False,
                    }
                },
            )
        except ContractQueryError as e:
            # The contract errors when no approval exists
            logger.debug(f"approval query for {self.address}:{token_id} -> {e}")
            return False
        return bool(data)

    async def nft_info(self, token_id: "int | str") -> dict[str, Any]:
        """nft_info response, cached per token. Failures cache an empty dict."""
        key = f"{self.address}:{token_id}"
        if key in self._info_cache:
            return self._info_cache[key]

        try:
            data = await self.query_client.query_smart(
                self.address, {"nft_info": {"token_id": str(token_id)}}
            )
            info = data if isinstance(data, dict) else {}
        except ContractQueryError as e:
            logger.debug(f"nft_info failed for {key}: {e}")
            info = {}

        self._info_cache[key] = info
        return info

    def approve(self, spender: str, token_id: "int | str") -> ExecuteInstruction:
        return ExecuteInstruction(
            contract=self.address,
            msg={"approve": {"spender": spender, "token_id": str(token_id)}},
        )
