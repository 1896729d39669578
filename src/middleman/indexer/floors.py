"""Collection floor prices and owned-collection lookups (best effort)."""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional

from middleman.indexer.errors import IndexerError
from middleman.indexer.models import FloorPrice
from middleman.indexer.transport import GraphQLTransport

logger = logging.getLogger(__name__)

STARS_DENOM = "ustars"
STARS_DECIMALS = 6
MAX_FLOOR_LOOKUPS = 40

FLOOR_QUERY = (
    "query Floors($addr:String!){ collection(collectionAddr:$addr)"
    "{ collectionAddr floorPrice floorPriceStars floorPriceUsd } }"
)
OWNED_COLLECTIONS_QUERY = (
    "query Owned($owner:String!){ ownedCollections(ownerAddr:$owner)"
    "{ collections { collectionAddr } } }"
)


def to_minor_units(value, decimals: int = STARS_DECIMALS) -> Optional[str]:
    """Convert a whole-unit amount (e.g. 12.5 STARS) to an integer string."""
    try:
        amount = Decimal(str(value)) * (Decimal(10) ** decimals)
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return str(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_floor(node: dict) -> Optional[FloorPrice]:
    """Read a collection node's floor, preferring the STARS-denominated field."""
    if node.get("floorPriceStars") is not None:
        amount = to_minor_units(node["floorPriceStars"])
        return FloorPrice(amount=amount, denom=STARS_DENOM) if amount is not None else None
    if node.get("floorPrice") is not None:
        return FloorPrice(amount=str(node["floorPrice"]), denom=STARS_DENOM)
    return None


class FloorPriceFetcher:
    """Looks up floor prices one collection at a time.

    Missing entries in the returned map mean "unknown", never zero.
    """

    def __init__(self, transport: GraphQLTransport, max_lookups: int = MAX_FLOOR_LOOKUPS):
        self.transport = transport
        self.max_lookups = max_lookups

    async def fetch_floors(self, collections: Iterable[str]) -> dict[str, FloorPrice]:
        unique = list(dict.fromkeys(c for c in collections if c))[: self.max_lookups]
        floors: dict[str, FloorPrice] = {}

        for address in unique:
            try:
                data = await self.transport.send(FLOOR_QUERY, {"addr": address})
            except IndexerError as e:
                logger.debug(f"Floor lookup failed for {address}: {e}")
                continue

            node = data.get("collection") if isinstance(data, dict) else None
            if not isinstance(node, dict):
                continue
            floor = parse_floor(node)
            if floor is not None:
                floors[node.get("collectionAddr") or address] = floor

        return floors

    async def fetch_owned_collections(self, owner: str) -> list[str]:
        """Collection addresses in which `owner` holds tokens."""
        try:
            data = await self.transport.send(OWNED_COLLECTIONS_QUERY, {"owner": owner})
        except IndexerError as e:
            logger.warning(f"Owned collections lookup failed for {owner}: {e}")
            return []

        container = data.get("ownedCollections") if isinstance(data, dict) else None
        entries = container.get("collections") if isinstance(container, dict) else None
        if not isinstance(entries, list):
            return []
        return [c["collectionAddr"] for c in entries if isinstance(c, dict) and c.get("collectionAddr")]
