"""Query variants for logical indexer operations.

The public indexer schema changes without notice (roots and fields get
renamed or removed). Each logical operation therefore has an ordered list
of candidate query shapes; the executor uses the first one that works.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from middleman.indexer.extraction import normalize_collection, normalize_tokens
from middleman.indexer.models import NormalizedPage, PageInfo

logger = logging.getLogger(__name__)

OWNED_TOKENS = "owned_tokens"
COLLECTIONS = "collections"


class PaginationMode(str, Enum):
    OFFSET = "offset"
    CURSOR = "cursor"


@dataclass(frozen=True)
class QueryVariant:
    """One concrete query document hypothesized to satisfy an operation."""

    name: str
    document: str
    extract: Callable[[dict], Optional[NormalizedPage]]
    build_variables: Callable[[Optional[str], int, Optional[str]], dict]
    pagination_mode: PaginationMode = PaginationMode.CURSOR

    def next_cursor(
        self, page: NormalizedPage, cursor: Optional[str], limit: int
    ) -> Optional[str]:
        """Translate a page's pagination info into an opaque cursor.

        Offset mode: the next offset as a decimal string. Stops once
        offset + limit reaches the reported total or, with no total, once a
        page comes back short. Cursor mode: the server's end cursor.
        """
        info = page.page_info
        if self.pagination_mode == PaginationMode.OFFSET:
            offset = parse_offset(cursor)
            next_offset = offset + limit
            if info.total is not None:
                return str(next_offset) if next_offset < info.total else None
            returned = info.raw_count if info.raw_count is not None else len(page.items)
            if not info.has_next_page or returned < limit:
                return None
            return str(next_offset)

        if info.has_next_page and info.end_cursor:
            return info.end_cursor
        return None


def parse_offset(cursor: Optional[str]) -> int:
    if not cursor:
        return 0
    try:
        return max(int(cursor), 0)
    except ValueError:
        return 0


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ======================
# owned_tokens
# ======================

TOKEN_FIELDS = "tokenId collectionAddr name imageUrl image { url }"

OWNED_OFFSET_QUERY = f"""query OwnedTokens($owner:String!,$limit:Int,$offset:Int){{
  tokens(ownerAddr:$owner, limit:$limit, offset:$offset){{
    tokens {{ {TOKEN_FIELDS} }}
    total limit offset
  }}
}}"""

OWNED_CONNECTION_QUERY = f"""query OwnedTokens($owner:String!,$first:Int,$after:String){{
  tokens(owner:$owner, first:$first, after:$after){{
    edges {{ node {{ {TOKEN_FIELDS} }} }}
    pageInfo {{ hasNextPage endCursor }}
  }}
}}"""

OWNED_SIMPLE_QUERY = f"""query OwnedTokens($owner:String!){{
  tokens(ownerAddr:$owner){{
    tokens {{ {TOKEN_FIELDS} }}
  }}
}}"""


def extract_owned_offset(data: dict) -> Optional[NormalizedPage]:
    container = data.get("tokens") if isinstance(data, dict) else None
    if not isinstance(container, dict) or "tokens" not in container:
        return None
    raw_list = container.get("tokens") or []
    if not isinstance(raw_list, list):
        return None
    total = _int_or_none(container.get("total"))
    # Some deployments omit total; fall back to the short-page heuristic
    return NormalizedPage(
        items=normalize_tokens(raw_list),
        page_info=PageInfo(
            has_next_page=bool(raw_list),
            total=total,
            raw_count=len(raw_list),
        ),
    )


def extract_owned_connection(data: dict) -> Optional[NormalizedPage]:
    container = data.get("tokens") if isinstance(data, dict) else None
    if not isinstance(container, dict) or "edges" not in container:
        return None
    edges = container.get("edges") or []
    info = container.get("pageInfo") or {}
    if not isinstance(edges, list) or not isinstance(info, dict):
        return None
    nodes = [edge.get("node") for edge in edges if isinstance(edge, dict)]
    end_cursor = info.get("endCursor")
    return NormalizedPage(
        items=normalize_tokens(nodes),
        page_info=PageInfo(
            has_next_page=bool(info.get("hasNextPage")),
            end_cursor=end_cursor if isinstance(end_cursor, str) and end_cursor else None,
            raw_count=len(edges),
        ),
    )


def extract_owned_simple(data: dict) -> Optional[NormalizedPage]:
    container = data.get("tokens") if isinstance(data, dict) else None
    if not isinstance(container, dict) or "tokens" not in container:
        return None
    return NormalizedPage(
        items=normalize_tokens(container.get("tokens")),
        page_info=PageInfo(has_next_page=False),
    )


OWNED_TOKEN_VARIANTS: tuple[QueryVariant, ...] = (
    QueryVariant(
        name="tokens(ownerAddr offset)",
        document=OWNED_OFFSET_QUERY,
        extract=extract_owned_offset,
        build_variables=lambda owner, limit, cursor: {
            "owner": owner,
            "limit": limit,
            "offset": parse_offset(cursor),
        },
        pagination_mode=PaginationMode.OFFSET,
    ),
    QueryVariant(
        name="tokens(owner connection)",
        document=OWNED_CONNECTION_QUERY,
        extract=extract_owned_connection,
        build_variables=lambda owner, limit, cursor: {
            "owner": owner,
            "first": limit,
            "after": cursor,
        },
        pagination_mode=PaginationMode.CURSOR,
    ),
    QueryVariant(
        name="tokens(ownerAddr simple)",
        document=OWNED_SIMPLE_QUERY,
        extract=extract_owned_simple,
        build_variables=lambda owner, limit, cursor: {"owner": owner},
        pagination_mode=PaginationMode.CURSOR,
    ),
)


# ======================
# collections
# ======================

COLLECTIONS_QUERY = """query Collections($limit:Int,$offset:Int){
  collections(limit:$limit, offset:$offset){
    collections { name collectionAddr mintedAt }
    total limit offset
  }
}"""


def extract_collections(data: dict) -> Optional[NormalizedPage]:
    container = data.get("collections") if isinstance(data, dict) else None
    if not isinstance(container, dict):
        return None
    raw_list = container.get("collections") or []
    if not isinstance(raw_list, list):
        return None
    items = [c for c in (normalize_collection(raw) for raw in raw_list) if c is not None]
    return NormalizedPage(
        items=items,
        page_info=PageInfo(
            has_next_page=bool(raw_list),
            total=_int_or_none(container.get("total")),
            raw_count=len(raw_list),
        ),
    )


COLLECTION_VARIANTS: tuple[QueryVariant, ...] = (
    QueryVariant(
        name="collections(offset)",
        document=COLLECTIONS_QUERY,
        extract=extract_collections,
        build_variables=lambda owner, limit, cursor: {
            "limit": limit,
            "offset": parse_offset(cursor),
        },
        pagination_mode=PaginationMode.OFFSET,
    ),
)


class VariantRegistry:
    """Fixed, ordered variant lists keyed by logical operation."""

    def __init__(self, variants: Optional[dict[str, tuple[QueryVariant, ...]]] = None):
        self._variants: dict[str, tuple[QueryVariant, ...]] = dict(variants or {})

    def register(self, operation: str, variants: list[QueryVariant]) -> None:
        if operation in self._variants:
            raise ValueError(f"Operation '{operation}' is already registered")
        self._variants[operation] = tuple(variants)

    def variants(self, operation: str) -> tuple[QueryVariant, ...]:
        try:
            return self._variants[operation]
        except KeyError:
            raise KeyError(f"Unknown indexer operation: {operation}") from None

    @property
    def operations(self) -> list[str]:
        return list(self._variants)


def default_registry() -> VariantRegistry:
    """Registry with every built-in operation."""
    return VariantRegistry(
        {
            OWNED_TOKENS: OWNED_TOKEN_VARIANTS,
            COLLECTIONS: COLLECTION_VARIANTS,
        }
    )


class VariantGenerator(ABC):
    """Extension point for synthesizing variants at runtime.

    An implementation could introspect the live schema and build query
    documents for whatever root fields it finds. The executor consults it
    only after every registered variant has failed.
    """

    @abstractmethod
    async def discover(self, operation: str, transport) -> list[QueryVariant]:
        """Return new candidate variants for an operation (may be empty)."""
        pass


class NullVariantGenerator(VariantGenerator):
    """Default generator: never proposes anything."""

    async def discover(self, operation: str, transport) -> list[QueryVariant]:
        return []
