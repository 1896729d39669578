"""Adaptive client for the Stargaze GraphQL indexer.

Components:
- transport: GET/POST GraphQL requests and envelope handling
- variants: ordered query shapes per logical operation
- executor: variant probing and lock-in
- pagination: offset/cursor paging behind one opaque cursor
- batch: aliased multi-token lookups with per-token fallback
- floors: collection floor prices
"""

from middleman.indexer.batch import DETAIL_FIELDS, IMAGE_FIELDS, BatchEnricher, BatchResult
from middleman.indexer.client import IndexerClient, create_indexer_client
from middleman.indexer.errors import (
    AllVariantsExhaustedError,
    CursorInvalidatedError,
    IndexerError,
    PartialBatchFailure,
    ShapeMismatchError,
    TransportError,
)
from middleman.indexer.executor import AdaptiveExecutor
from middleman.indexer.models import (
    EntityKey,
    FloorPrice,
    IndexedCollection,
    IndexedToken,
    OwnedTokensPage,
    TokenDetails,
    TokenTrait,
)
from middleman.indexer.pagination import CollectionsPager, OwnedTokensPager
from middleman.indexer.transport import GraphQLTransport
from middleman.indexer.variants import (
    COLLECTIONS,
    OWNED_TOKENS,
    PaginationMode,
    QueryVariant,
    VariantGenerator,
    VariantRegistry,
    default_registry,
)

__all__ = [
    # Client
    "IndexerClient",
    "create_indexer_client",
    # Building blocks
    "GraphQLTransport",
    "AdaptiveExecutor",
    "OwnedTokensPager",
    "CollectionsPager",
    "BatchEnricher",
    "BatchResult",
    "IMAGE_FIELDS",
    "DETAIL_FIELDS",
    # Variants
    "QueryVariant",
    "PaginationMode",
    "VariantRegistry",
    "VariantGenerator",
    "default_registry",
    "OWNED_TOKENS",
    "COLLECTIONS",
    # Models
    "EntityKey",
    "IndexedToken",
    "IndexedCollection",
    "OwnedTokensPage",
    "TokenDetails",
    "TokenTrait",
    "FloorPrice",
    # Errors
    "IndexerError",
    "TransportError",
    "ShapeMismatchError",
    "AllVariantsExhaustedError",
    "CursorInvalidatedError",
    "PartialBatchFailure",
]
