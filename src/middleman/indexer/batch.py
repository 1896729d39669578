"""Batched per-token lookups using GraphQL field aliases.

A group of N tokens becomes one document with N aliased `token(...)`
selections (t0, t1, ...). If a whole group fails, each token in it is
retried on its own so one bad entity cannot blank out its siblings.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from middleman.indexer.errors import IndexerError, PartialBatchFailure
from middleman.indexer.extraction import extract_details, extract_image
from middleman.indexer.models import EntityKey, TokenDetails
from middleman.indexer.transport import GraphQLTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9:_\-./]")


def sanitize(value: str) -> str:
    """Strip everything outside the allow-listed character set."""
    return _UNSAFE_CHARS.sub("", str(value))


@dataclass(frozen=True)
class FieldSet(Generic[T]):
    """Selection requested per token plus how to read it back."""

    name: str
    selection: str
    batch_size: int
    parse: Callable[[Any], Optional[T]]


IMAGE_FIELDS: FieldSet[str] = FieldSet(
    name="TokenImages",
    selection="imageUrl image { url }",
    batch_size=20,
    parse=extract_image,
)

# Heavier than images; keep groups smaller
DETAIL_FIELDS: FieldSet[TokenDetails] = FieldSet(
    name="TokenDetails",
    selection="description traits { name value rarityPercent rarityScore rarity }",
    batch_size=12,
    parse=extract_details,
)


class BatchResult(dict):
    """Mapping of entity key string to value (None when unresolved)."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failed_keys: set[str] = set()

    def raise_for_failures(self) -> None:
        if self.failed_keys:
            resolved = sum(1 for value in self.values() if value is not None)
            raise PartialBatchFailure(set(self.failed_keys), resolved)


def build_batch_query(keys: list[EntityKey], fields: FieldSet) -> str:
    body = "\n".join(
        f't{i}: token(collectionAddr:"{sanitize(k.collection_address)}", '
        f'tokenId:"{sanitize(k.token_id)}"){{ {fields.selection} }}'
        for i, k in enumerate(keys)
    )
    return f"query {fields.name} {{\n{body}\n}}"


def build_single_query(fields: FieldSet) -> str:
    return (
        "query SingleToken($c:String!,$id:String!){ "
        f"token(collectionAddr:$c, tokenId:$id){{ {fields.selection} }} }}"
    )


class BatchEnricher:
    """Backfills token fields for many entity keys in few round trips."""

    def __init__(
        self,
        transport: GraphQLTransport,
        image_batch_size: Optional[int] = None,
        details_batch_size: Optional[int] = None,
    ):
        self.transport = transport
        self.image_batch_size = image_batch_size or IMAGE_FIELDS.batch_size
        self.details_batch_size = details_batch_size or DETAIL_FIELDS.batch_size

    async def fetch_batch(
        self,
        keys: Iterable["EntityKey | str"],
        fields: FieldSet[T],
        batch_size: Optional[int] = None,
    ) -> BatchResult:
        """Fetch `fields` for every key.

        Groups run sequentially to keep load on the shared public API low.
        """
        unique: list[EntityKey] = []
        seen: set[EntityKey] = set()
        for key in keys:
            entity = EntityKey.coerce(key)
            if entity not in seen:
                seen.add(entity)
                unique.append(entity)

        size = max(batch_size or fields.batch_size, 1)
        result = BatchResult()

        for start in range(0, len(unique), size):
            group = unique[start:start + size]
            try:
                data = await self.transport.send(build_batch_query(group, fields), {})
            except IndexerError as e:
                logger.warning(
                    f"{fields.name} group of {len(group)} failed, retrying individually: {e}"
                )
                await self._fetch_individually(group, fields, result)
                continue
            if not isinstance(data, dict):
                logger.warning(
                    f"{fields.name} group of {len(group)} returned {type(data).__name__}, retrying individually"
                )
                await self._fetch_individually(group, fields, result)
                continue

            for i, key in enumerate(group):
                node = data.get(f"t{i}")
                result[str(key)] = fields.parse(node) if node else None

        if result.failed_keys:
            logger.warning(f"{fields.name}: {len(result.failed_keys)} of {len(unique)} tokens unresolved")
        return result

    async def _fetch_individually(
        self,
        group: list[EntityKey],
        fields: FieldSet,
        result: BatchResult,
    ) -> None:
        document = build_single_query(fields)
        for key in group:
            try:
                data = await self.transport.send(
                    document, {"c": key.collection_address, "id": key.token_id}
                )
            except IndexerError as e:
                logger.debug(f"{fields.name} lookup failed for {key}: {e}")
                result[str(key)] = None
                result.failed_keys.add(str(key))
                continue
            if not isinstance(data, dict):
                logger.debug(f"{fields.name} lookup for {key} returned {type(data).__name__}")
                result[str(key)] = None
                result.failed_keys.add(str(key))
                continue
            node = data.get("token")
            result[str(key)] = fields.parse(node) if node else None

    async def fetch_token_images(self, keys: Iterable["EntityKey | str"]) -> BatchResult:
        return await self.fetch_batch(keys, IMAGE_FIELDS, self.image_batch_size)

    async def fetch_token_details(self, keys: Iterable["EntityKey | str"]) -> BatchResult:
        return await self.fetch_batch(keys, DETAIL_FIELDS, self.details_batch_size)
