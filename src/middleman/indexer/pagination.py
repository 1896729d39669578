"""Pagination driver over the adaptive executor.

Callers only ever see an opaque cursor string (or None for "no more
pages"), whatever pagination model the active variant uses underneath.
"""

import logging
from collections import OrderedDict
from typing import Hashable, Optional

from middleman.indexer.errors import CursorInvalidatedError, IndexerError
from middleman.indexer.executor import AdaptiveExecutor
from middleman.indexer.models import (
    CollectionsPage,
    IndexedCollection,
    IndexedToken,
    OwnedTokensPage,
)
from middleman.indexer.variants import COLLECTIONS, OWNED_TOKENS, parse_offset

logger = logging.getLogger(__name__)

OWNED_MAX_ITERATIONS = 300
COLLECTIONS_MAX_ITERATIONS = 200
MAX_TRACKED_OWNERS = 64


class OwnedTokensPager:
    """Pages through the tokens held by an owner address."""

    def __init__(
        self,
        executor: AdaptiveExecutor,
        max_iterations: int = OWNED_MAX_ITERATIONS,
        max_tracked_owners: int = MAX_TRACKED_OWNERS,
    ):
        self.executor = executor
        self.max_iterations = max_iterations
        self.max_tracked_owners = max_tracked_owners
        # owner -> {cursor: name of the variant that issued it}, least recent owner first
        self._issued: OrderedDict[str, dict[str, str]] = OrderedDict()

    def _issuer(self, owner: str, cursor: str) -> Optional[str]:
        issued = self._issued.get(owner)
        return issued.get(cursor) if issued else None

    def _remember(self, owner: str, cursor: str, variant: str) -> None:
        issued = self._issued.setdefault(owner, {})
        self._issued.move_to_end(owner)
        issued.pop(cursor, None)
        issued[cursor] = variant
        while len(issued) > self.max_iterations:
            del issued[next(iter(issued))]
        while len(self._issued) > self.max_tracked_owners:
            self._issued.popitem(last=False)

    async def fetch_page(
        self,
        owner: str,
        cursor: Optional[str] = None,
        limit: int = 100,
    ) -> OwnedTokensPage:
        """Fetch one page of tokens owned by `owner`.

        A cursor must have been issued by this pager for the same owner.

        Raises:
            CursorInvalidatedError: the cursor is unknown or its variant is
                no longer usable
            IndexerError: every variant failed
        """
        pinned = None
        if cursor:
            pinned = self._issuer(owner, cursor)
            if pinned is None:
                raise CursorInvalidatedError(OWNED_TOKENS)
        execution = await self.executor.execute(
            OWNED_TOKENS, owner, limit, cursor, pinned=pinned
        )
        next_cursor = execution.next_cursor
        if next_cursor is not None:
            self._remember(owner, next_cursor, execution.variant.name)

        return OwnedTokensPage(
            tokens=list(execution.page.items),
            next_cursor=next_cursor,
            variant=execution.variant.name,
        )

    async def fetch_all(
        self,
        owner: str,
        max_total: int = 2000,
        per_page_limit: int = 100,
    ) -> list[IndexedToken]:
        """Fetch every token owned by `owner`, up to `max_total`.

        Fail-soft: a page that fails mid-sequence is logged and the tokens
        gathered so far are returned.
        """
        tokens: list[IndexedToken] = []
        seen: set[Hashable] = set()
        cursor: Optional[str] = None
        restarts = 0
        iterations = 0

        while len(tokens) < max_total and iterations < self.max_iterations:
            iterations += 1
            try:
                page = await self.fetch_page(owner, cursor, per_page_limit)
            except CursorInvalidatedError as e:
                if restarts >= 1:
                    logger.error(f"Owned tokens for {owner} aborted after restart: {e}")
                    break
                restarts += 1
                logger.warning(f"Restarting owned tokens for {owner} from first page: {e}")
                cursor = None
                continue
            except IndexerError as e:
                logger.error(f"Indexer fetch error for {owner}: {e}")
                break

            for token in page.tokens:
                if token.key not in seen:
                    seen.add(token.key)
                    tokens.append(token)

            if page.next_cursor is None:
                break
            cursor = page.next_cursor
        else:
            if iterations >= self.max_iterations:
                logger.warning(f"Owned tokens for {owner} stopped at {iterations} pages")

        logger.info(f"Fetched {len(tokens[:max_total])} tokens for {owner}")
        return tokens[:max_total]


class CollectionsPager:
    """Pages through the indexer's collection listing (offset based)."""

    def __init__(
        self,
        executor: AdaptiveExecutor,
        max_iterations: int = COLLECTIONS_MAX_ITERATIONS,
    ):
        self.executor = executor
        self.max_iterations = max_iterations

    async def fetch_page(self, limit: int = 100, offset: int = 0) -> CollectionsPage:
        execution = await self.executor.execute(
            COLLECTIONS, None, limit, str(offset) if offset else None
        )
        next_cursor = execution.next_cursor
        return CollectionsPage(
            collections=list(execution.page.items),
            next_offset=parse_offset(next_cursor) if next_cursor is not None else None,
            total=execution.page.page_info.total,
        )

    async def fetch_all(
        self, max_total: int = 5000, per_page_limit: int = 100
    ) -> list[IndexedCollection]:
        collections: list[IndexedCollection] = []
        seen: set[str] = set()
        offset = 0
        iterations = 0

        while len(collections) < max_total and iterations < self.max_iterations:
            iterations += 1
            try:
                page = await self.fetch_page(per_page_limit, offset)
            except IndexerError as e:
                logger.error(f"Collections fetch failed at offset {offset}: {e}")
                break

            for collection in page.collections:
                address = collection.collection_address
                if address:
                    if address in seen:
                        continue
                    seen.add(address)
                collections.append(collection)

            if page.next_offset is None:
                break
            offset = page.next_offset

        return collections[:max_total]
