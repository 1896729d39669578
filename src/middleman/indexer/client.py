"""Indexer client facade wiring transport, executor, pagers and enrichment."""

import logging
from typing import Iterable, Optional

from middleman.config import Settings, get_settings
from middleman.indexer.batch import BatchEnricher, BatchResult
from middleman.indexer.executor import AdaptiveExecutor
from middleman.indexer.floors import FloorPriceFetcher
from middleman.indexer.models import (
    CollectionsPage,
    EntityKey,
    FloorPrice,
    IndexedCollection,
    IndexedToken,
    OwnedTokensPage,
)
from middleman.indexer.pagination import CollectionsPager, OwnedTokensPager
from middleman.indexer.transport import GraphQLTransport
from middleman.indexer.variants import VariantGenerator, VariantRegistry

logger = logging.getLogger(__name__)


class IndexerClient:
    """Single entry point for everything read from the GraphQL indexer."""

    def __init__(
        self,
        transport: GraphQLTransport,
        registry: Optional[VariantRegistry] = None,
        generator: Optional[VariantGenerator] = None,
        image_batch_size: Optional[int] = None,
        details_batch_size: Optional[int] = None,
    ):
        self.transport = transport
        self.executor = AdaptiveExecutor(transport, registry=registry, generator=generator)
        self.owned = OwnedTokensPager(self.executor)
        self.collections = CollectionsPager(self.executor)
        self.enricher = BatchEnricher(
            transport,
            image_batch_size=image_batch_size,
            details_batch_size=details_batch_size,
        )
        self.floors = FloorPriceFetcher(transport)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "IndexerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def fetch_owned_tokens_page(
        self, owner: str, cursor: Optional[str] = None, limit: int = 100
    ) -> OwnedTokensPage:
        return await self.owned.fetch_page(owner, cursor, limit)

    async def fetch_owned_tokens(
        self, owner: str, max_total: int = 2000, per_page_limit: int = 100
    ) -> list[IndexedToken]:
        return await self.owned.fetch_all(owner, max_total, per_page_limit)

    async def fetch_collections_page(self, limit: int = 100, offset: int = 0) -> CollectionsPage:
        return await self.collections.fetch_page(limit, offset)

    async def fetch_all_collections(self, max_total: int = 5000) -> list[IndexedCollection]:
        return await self.collections.fetch_all(max_total)

    async def fetch_owned_collections(self, owner: str) -> list[str]:
        return await self.floors.fetch_owned_collections(owner)

    async def fetch_floors(self, collections: Iterable[str]) -> dict[str, FloorPrice]:
        return await self.floors.fetch_floors(collections)

    async def fetch_token_images(self, keys: Iterable["EntityKey | str"]) -> BatchResult:
        return await self.enricher.fetch_token_images(keys)

    async def fetch_token_details(self, keys: Iterable["EntityKey | str"]) -> BatchResult:
        return await self.enricher.fetch_token_details(keys)


def create_indexer_client(
    settings: Optional[Settings] = None,
    generator: Optional[VariantGenerator] = None,
) -> IndexerClient:
    """Create an indexer client from application settings."""
    settings = settings or get_settings()
    transport = GraphQLTransport(
        endpoint=settings.indexer_url,
        user_agent=settings.indexer_ua,
        timeout=settings.indexer_timeout,
        max_get_url_length=settings.indexer_get_max_url_length,
    )
    logger.debug(f"Created indexer client for {settings.indexer_url}")
    return IndexerClient(
        transport,
        generator=generator,
        image_batch_size=settings.image_batch_size,
        details_batch_size=settings.details_batch_size,
    )
