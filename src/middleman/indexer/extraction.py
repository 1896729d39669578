"""Field extraction rules for raw indexer entities.

Each field lists the names it has been published under, in the order they
are tried. When the indexer renames a field, add the new path here.

    collection address   collectionAddr, collectionAddress, contractAddr,
                         contractAddress, collection.contractAddress
    token id             tokenId, id
    image                imageUrl, image.url, media.image, media.url, image
    name                 name
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from middleman.indexer.models import IndexedCollection, IndexedToken, TokenDetails, TokenTrait


@dataclass(frozen=True)
class FieldRule:
    """A named path into a raw JSON object."""

    name: str
    path: tuple[str, ...]

    def lookup(self, raw: Any) -> Any:
        node = raw
        for part in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        return node


def rule(path: str) -> FieldRule:
    return FieldRule(name=path, path=tuple(path.split(".")))


COLLECTION_ADDRESS_RULES = (
    rule("collectionAddr"),
    rule("collectionAddress"),
    rule("contractAddr"),
    rule("contractAddress"),
    rule("collection.contractAddress"),
)
TOKEN_ID_RULES = (
    rule("tokenId"),
    rule("id"),
)
IMAGE_RULES = (
    rule("imageUrl"),
    rule("image.url"),
    rule("media.image"),
    rule("media.url"),
    rule("image"),
)
NAME_RULES = (rule("name"),)


def first_text(raw: Any, rules: Sequence[FieldRule]) -> Optional[str]:
    """Return the first rule value that is a non-empty string or a number."""
    for field_rule in rules:
        value = field_rule.lookup(raw)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_token(raw: Any) -> Optional[IndexedToken]:
    """Map a raw token object to an IndexedToken.

    Returns None when the collection address or token id cannot be found;
    partially populated tokens are never passed upstream.
    """
    if not isinstance(raw, dict):
        return None
    collection = first_text(raw, COLLECTION_ADDRESS_RULES)
    token_id = first_text(raw, TOKEN_ID_RULES)
    if not collection or not token_id:
        return None
    return IndexedToken(
        collection_address=collection,
        token_id=token_id,
        image=first_text(raw, IMAGE_RULES),
        name=first_text(raw, NAME_RULES),
    )


def normalize_tokens(raw_list: Any) -> list[IndexedToken]:
    if not isinstance(raw_list, list):
        return []
    tokens = (normalize_token(raw) for raw in raw_list)
    return [token for token in tokens if token is not None]


def normalize_collection(raw: Any) -> Optional[IndexedCollection]:
    if not isinstance(raw, dict):
        return None
    return IndexedCollection(
        collection_address=first_text(raw, COLLECTION_ADDRESS_RULES),
        name=first_text(raw, NAME_RULES),
        minted_at=first_text(raw, (rule("mintedAt"),)),
    )


def extract_image(node: Any) -> Optional[str]:
    """Image URL from a token node, or None."""
    return first_text(node, IMAGE_RULES[:2])


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_details(node: Any) -> Optional[TokenDetails]:
    """Description and traits from a token node, or None."""
    if not isinstance(node, dict):
        return None

    traits = None
    raw_traits = node.get("traits")
    if isinstance(raw_traits, list):
        traits = [
            TokenTrait(
                name=str(t.get("name", "")),
                value=str(t.get("value", "")),
                rarity_percent=_optional_float(t.get("rarityPercent")),
                rarity_score=_optional_float(t.get("rarityScore")),
                rarity=_optional_float(t.get("rarity")),
            )
            for t in raw_traits
            if isinstance(t, dict)
        ]

    description = node.get("description")
    return TokenDetails(
        description=description if isinstance(description, str) and description else None,
        traits=traits,
    )
