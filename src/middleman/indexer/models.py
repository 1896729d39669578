"""Typed entities produced by the indexer client."""

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class EntityKey:
    """(collection, token id) pair identifying a single NFT."""

    collection_address: str
    token_id: str

    def __str__(self) -> str:
        return f"{self.collection_address}:{self.token_id}"

    @classmethod
    def parse(cls, value: str) -> "EntityKey":
        """Parse a "collection:tokenId" string."""
        collection, sep, token_id = value.partition(":")
        if not sep or not collection or not token_id:
            raise ValueError(f"Invalid entity key: {value!r}")
        return cls(collection, token_id)

    @classmethod
    def coerce(cls, value: "EntityKey | str") -> "EntityKey":
        if isinstance(value, EntityKey):
            return value
        return cls.parse(value)


@dataclass
class IndexedToken:
    """Token as reported by the indexer, normalized across schema variants."""

    collection_address: str
    token_id: str
    image: Optional[str] = None
    name: Optional[str] = None

    @property
    def key(self) -> EntityKey:
        return EntityKey(self.collection_address, self.token_id)


@dataclass
class IndexedCollection:
    """Collection listing entry."""

    collection_address: Optional[str] = None
    name: Optional[str] = None
    minted_at: Optional[str] = None

    @property
    def address(self) -> Optional[str]:
        return self.collection_address


@dataclass
class TokenTrait:
    name: str
    value: str
    rarity_percent: Optional[float] = None
    rarity_score: Optional[float] = None
    rarity: Optional[float] = None


@dataclass
class TokenDetails:
    description: Optional[str] = None
    traits: Optional[list[TokenTrait]] = None


@dataclass
class FloorPrice:
    """Floor price in minor units (e.g. ustars)."""

    amount: str
    denom: str


@dataclass
class PageInfo:
    """Pagination state reported by the server for one page."""

    has_next_page: bool = False
    end_cursor: Optional[str] = None
    total: Optional[int] = None
    # Entries the server returned, before malformed ones were dropped
    raw_count: Optional[int] = None


@dataclass
class NormalizedPage(Generic[T]):
    """Uniform page shape every query variant extracts into."""

    items: list[T] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=PageInfo)


@dataclass
class OwnedTokensPage:
    tokens: list[IndexedToken]
    next_cursor: Optional[str]
    variant: Optional[str] = None


@dataclass
class CollectionsPage:
    collections: list[IndexedCollection]
    next_offset: Optional[int]
    total: Optional[int] = None
