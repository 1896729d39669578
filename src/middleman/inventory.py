"""Per-owner NFT inventory assembled from the indexer and the chain.

A loader serves one owner at a time. `begin(owner)` starts a new session
and invalidates the previous one; every result that arrives after an await
is committed only if its session is still current, so a slow page for an
old owner can never land in the new owner's inventory.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from middleman.indexer.client import IndexerClient
from middleman.indexer.errors import CursorInvalidatedError, IndexerError
from middleman.indexer.models import EntityKey, FloorPrice, IndexedToken, OwnedTokensPage, TokenDetails
from middleman.indexer.pagination import OWNED_MAX_ITERATIONS
from middleman.media import DEFAULT_GATEWAY, MediaResolver, normalize_image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InventorySession:
    """Identity captured when a load starts."""

    owner: str
    generation: int


class InventoryLoader:
    """Loads and enriches the tokens held by one owner."""

    def __init__(
        self,
        indexer: IndexerClient,
        media_resolver: Optional[MediaResolver] = None,
        page_size: int = 120,
        max_tokens: int = 10000,
        media_concurrency: int = 6,
        gateway: str = DEFAULT_GATEWAY,
        image_backfill_cap: int = 60,
        media_fallback_cap: int = 300,
        details_cap: int = 150,
    ):
        self.indexer = indexer
        self.media_resolver = media_resolver
        self.page_size = page_size
        self.max_tokens = max_tokens
        self.media_concurrency = media_concurrency
        self.gateway = gateway
        self.image_backfill_cap = image_backfill_cap
        self.media_fallback_cap = media_fallback_cap
        self.details_cap = details_cap

        self._generation = 0
        self._session: Optional[InventorySession] = None
        self._reset()

    def _reset(self) -> None:
        self.tokens: list[IndexedToken] = []
        self.names: dict[str, str] = {}
        self.media: dict[str, str] = {}
        self.details: dict[str, TokenDetails] = {}
        self.floors: dict[str, FloorPrice] = {}
        self.cursor: Optional[str] = None
        self.exhausted = False
        self._seen: set[EntityKey] = set()
        # Collections whose floor was already requested this session
        self._floor_lookups: set[str] = set()

    def begin(self, owner: str) -> InventorySession:
        """Start loading for `owner`, discarding any previous inventory."""
        self._generation += 1
        self._session = InventorySession(owner=owner, generation=self._generation)
        self._reset()
        logger.debug(f"Inventory session {self._generation} started for {owner}")
        return self._session

    def is_current(self, session: InventorySession) -> bool:
        return self._session == session

    async def load_next_page(self, session: InventorySession) -> list[IndexedToken]:
        """Load and enrich the next page. Returns the newly added tokens.

        Raises:
            IndexerError: the page itself could not be fetched
        """
        if not self.is_current(session) or self.exhausted:
            return []

        page = await self.indexer.fetch_owned_tokens_page(session.owner, self.cursor, self.page_size)
        if not self.is_current(session):
            logger.info(f"Discarding stale page for {session.owner}")
            return []

        added = self._commit_page(page)
        await self._enrich(session, added)
        return added if self.is_current(session) else []

    async def load_all(self, session: InventorySession) -> int:
        """Load pages until the owner is exhausted, replaced, or capped.

        Returns the number of tokens held once loading stops.
        """
        restarted = False
        pages = 0

        while (
            self.is_current(session)
            and not self.exhausted
            and len(self.tokens) < self.max_tokens
            and pages < OWNED_MAX_ITERATIONS
        ):
            pages += 1
            try:
                await self.load_next_page(session)
            except CursorInvalidatedError as e:
                if restarted or not self.is_current(session):
                    logger.error(f"Inventory load for {session.owner} aborted: {e}")
                    break
                restarted = True
                logger.warning(f"Inventory cursor invalidated for {session.owner}, restarting: {e}")
                self.cursor = None
            except IndexerError as e:
                logger.error(f"Inventory load for {session.owner} stopped: {e}")
                break

        if not self.is_current(session):
            logger.info(f"Inventory load for {session.owner} superseded")
        else:
            logger.info(f"Inventory for {session.owner}: {len(self.tokens)} tokens")
        return len(self.tokens)

    def _commit_page(self, page: OwnedTokensPage) -> list[IndexedToken]:
        added = []
        for token in page.tokens:
            if token.key in self._seen:
                continue
            self._seen.add(token.key)
            self.tokens.append(token)
            added.append(token)

            key = str(token.key)
            if token.name:
                self.names[key] = token.name
            image = normalize_image(token.image, self.gateway)
            if image and key not in self.media:
                self.media[key] = image

        self.cursor = page.next_cursor
        self.exhausted = page.next_cursor is None
        return added

    def _missing_media(self, keys: list[EntityKey]) -> list[EntityKey]:
        return [k for k in keys if not self.media.get(str(k))]

    async def _enrich(self, session: InventorySession, tokens: list[IndexedToken]) -> None:
        """Best-effort backfill of images, floors and details for new tokens."""
        if not tokens:
            return
        keys = [t.key for t in tokens]

        missing = self._missing_media(keys)[: self.image_backfill_cap]
        if missing:
            images = await self.indexer.fetch_token_images(missing)
            if not self.is_current(session):
                return
            for key, image in images.items():
                url = normalize_image(image, self.gateway)
                if url and not self.media.get(key):
                    self.media[key] = url

        collections = dict.fromkeys(t.collection_address for t in tokens)
        pending = [c for c in collections if c not in self._floor_lookups]
        if pending:
            self._floor_lookups.update(pending)
            floors = await self.indexer.fetch_floors(pending)
            if not self.is_current(session):
                return
            self.floors.update(floors)

        if self.media_resolver is not None:
            still_missing = self._missing_media(keys)[: self.media_fallback_cap]
            if still_missing:
                try:
                    resolved = await self.media_resolver.batch_resolve(
                        still_missing, concurrency=self.media_concurrency
                    )
                except Exception as e:
                    logger.warning(f"Media fallback failed for {session.owner}: {e}")
                    resolved = {}
                if not self.is_current(session):
                    return
                for key, media in resolved.items():
                    if media.image and not self.media.get(key):
                        self.media[key] = media.image

        details = await self.indexer.fetch_token_details(keys[: self.details_cap])
        if not self.is_current(session):
            return
        self.details.update({k: v for k, v in details.items() if v is not None})
