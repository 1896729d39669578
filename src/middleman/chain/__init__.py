"""On-chain collaborators: escrow contract and cw721 collections."""

from middleman.chain.cw721 import Cw721Collection
from middleman.chain.escrow import (
    Coin,
    EscrowContract,
    ExecuteInstruction,
    OfferEntry,
    OffersResponse,
    OfferToken,
    ParamsResponse,
    locked_token_keys,
)
from middleman.chain.wasm import ContractQueryError, WasmQueryClient

__all__ = [
    "WasmQueryClient",
    "ContractQueryError",
    "EscrowContract",
    "Cw721Collection",
    "ExecuteInstruction",
    "Coin",
    "OfferToken",
    "OfferEntry",
    "OffersResponse",
    "ParamsResponse",
    "locked_token_keys",
]
