"""Escrow contract messages and queries.

The escrow contract holds offers of NFTs (plus optional funds) from a
sender to a peer in exchange for the peer's NFTs. This module only reads
from it and builds execute messages; signing and broadcasting belong to
the wallet.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from middleman.chain.wasm import WasmQueryClient

logger = logging.getLogger(__name__)


class Coin(BaseModel):
    denom: str
    amount: str = Field(..., description="Integer amount in minor units")


class OfferToken(BaseModel):
    """NFT reference as the escrow contract expects it."""

    collection: str
    token_id: int

    @property
    def key(self) -> str:
        return f"{self.collection}:{self.token_id}"


class OfferEntry(BaseModel):
    id: int
    sender: str
    peer: str
    offered_nfts: list[OfferToken] = Field(default_factory=list)
    wanted_nfts: list[OfferToken] = Field(default_factory=list)
    created_at: str
    expires_at: str
    offered_funds: Optional[list[Coin]] = None


class OffersResponse(BaseModel):
    offers: list[OfferEntry] = Field(default_factory=list)


class OfferExpiry(BaseModel):
    min: int
    max: int


class EscrowParams(BaseModel):
    offer_expiry: OfferExpiry
    maintainer: str
    max_offers: int
    bundle_limit: int


class ParamsResponse(BaseModel):
    params: EscrowParams


class ExecuteInstruction(BaseModel):
    """A ready-to-sign execute message."""

    contract: str
    msg: dict[str, Any]
    funds: list[Coin] = Field(default_factory=list)


def seconds_to_timestamp(expires_at: Optional[float]) -> Optional[str]:
    """Contract timestamps are nanoseconds serialized as a string."""
    if not expires_at or expires_at <= 0:
        return None
    return str(int(expires_at) * 1_000_000_000)


class EscrowContract:
    """Typed access to one deployed escrow contract."""

    def __init__(self, query_client: WasmQueryClient, address: str):
        self.query_client = query_client
        self.address = address

    async def params(self) -> ParamsResponse:
        data = await self.query_client.query_smart(self.address, {"params": {}})
        return ParamsResponse.model_validate(data)

    async def offers_by_sender(self, sender: str) -> OffersResponse:
        data = await self.query_client.query_smart(
            self.address, {"offers_by_sender": {"sender": sender}}
        )
        return OffersResponse.model_validate(data)

    async def offers_by_peer(self, peer: str) -> OffersResponse:
        data = await self.query_client.query_smart(
            self.address, {"offers_by_peer": {"peer": peer}}
        )
        return OffersResponse.model_validate(data)

    def create_offer(
        self,
        offered: list[OfferToken],
        wanted: list[OfferToken],
        peer: str,
        expires_at: Optional[float] = None,
        funds: Optional[list[Coin]] = None,
    ) -> ExecuteInstruction:
        """Build a create_offer message.

        Args:
            offered: Sender's NFTs put into escrow
            wanted: Peer's NFTs requested in exchange
            peer: Counterparty address
            expires_at: Expiry as unix seconds (None or <= 0 for contract default)
            funds: Coins sent along with the offer
        """
        offered_funds = list(funds) if funds else None
        msg = {
            "create_offer": {
                "offered_nfts": [t.model_dump() for t in offered],
                "wanted_nfts": [t.model_dump() for t in wanted],
                "peer": peer,
                "expires_at": seconds_to_timestamp(expires_at),
            }
        }
        if offered_funds:
            msg["create_offer"]["offered_funds"] = [c.model_dump() for c in offered_funds]
        return ExecuteInstruction(contract=self.address, msg=msg, funds=offered_funds or [])

    def remove_offer(self, offer_id: int) -> ExecuteInstruction:
        return ExecuteInstruction(contract=self.address, msg={"remove_offer": {"id": offer_id}})

    def accept_offer(self, offer_id: int) -> ExecuteInstruction:
        return ExecuteInstruction(contract=self.address, msg={"accept_offer": {"id": offer_id}})

    def reject_offer(self, offer_id: int) -> ExecuteInstruction:
        return ExecuteInstruction(contract=self.address, msg={"reject_offer": {"id": offer_id}})


def locked_token_keys(offers: list[OfferEntry], address: Optional[str]) -> set[str]:
    """Keys of tokens already committed to offers sent by `address`."""
    if not address:
        return set()
    return {
        token.key
        for offer in offers
        if offer.sender == address
        for token in offer.offered_nfts
    }
