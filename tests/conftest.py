"""Pytest configuration and fixtures."""

import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import httpx
import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ.pop("INDEXER_URL", None)
os.environ.pop("INDEXER_UA", None)

from middleman.indexer.client import IndexerClient
from middleman.indexer.errors import TransportError

ENDPOINT = "https://indexer.test/graphql"
GATEWAY = "https://gw.test/ipfs/"

_ALIAS = re.compile(r't(\d+): token\(collectionAddr:"([^"]*)", tokenId:"([^"]*)"\)')


def make_tokens(count: int, collection: str = "stars1alpha", start: int = 0, images: bool = True) -> list[dict]:
    """Raw token objects as the indexer returns them."""
    return [
        {
            "tokenId": str(i),
            "collectionAddr": collection,
            "name": f"Token {i}",
            "imageUrl": f"ipfs://QmImage{i}/art.png" if images else None,
        }
        for i in range(start, start + count)
    ]


def parse_graphql_request(request: httpx.Request) -> tuple[str, dict]:
    """Read query and variables from a GET or POST GraphQL request."""
    if request.method == "GET":
        raw = request.url.params.get("variables")
        return request.url.params.get("query", ""), json.loads(raw) if raw else {}
    body = json.loads(request.content)
    return body.get("query", ""), body.get("variables") or {}


@dataclass
class RecordedRequest:
    method: str
    document: str
    variables: dict
    url: str


class FakeGraphQLServer:
    """httpx handler that records requests and answers via a resolver.

    The resolver gets the RecordedRequest and returns either an
    httpx.Response or a JSON-serializable envelope.
    """

    def __init__(self, resolver: Callable[[RecordedRequest], Any]):
        self.resolver = resolver
        self.requests: list[RecordedRequest] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        document, variables = parse_graphql_request(request)
        recorded = RecordedRequest(request.method, document, variables, str(request.url))
        self.requests.append(recorded)
        result = self.resolver(recorded)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    @property
    def methods(self) -> list[str]:
        return [r.method for r in self.requests]


@dataclass
class FakeIndexer:
    """In-memory stand-in for the indexer's GraphQL schema.

    Duck-types GraphQLTransport.send. Owned-token query shapes can be taken
    away at runtime through `unavailable` ("offset", "connection", "simple",
    "collections", "floors", "owned_collections") to simulate schema drift.
    """

    owned: dict[str, list[dict]] = field(default_factory=dict)
    collections: list[dict] = field(default_factory=list)
    floors: dict[str, dict] = field(default_factory=dict)
    token_fields: dict[str, dict] = field(default_factory=dict)
    owned_collections: dict[str, list[str]] = field(default_factory=dict)
    unavailable: set[str] = field(default_factory=set)
    fail_keys: set[str] = field(default_factory=set)
    report_total: bool = True
    before_send: Optional[Callable[[str, dict], Awaitable[None]]] = None
    calls: list[tuple[str, dict]] = field(default_factory=list)

    async def aclose(self) -> None:
        pass

    def calls_to(self, marker: str) -> list[tuple[str, dict]]:
        return [c for c in self.calls if marker in c[0]]

    async def send(self, document: str, variables: Optional[dict] = None, endpoint: Optional[str] = None) -> dict:
        variables = variables or {}
        self.calls.append((document, variables))
        if self.before_send is not None:
            await self.before_send(document, variables)

        if "ownedCollections" in document:
            self._require("owned_collections", "ownedCollections")
            addresses = self.owned_collections.get(variables["owner"], [])
            return {"ownedCollections": {"collections": [{"collectionAddr": a} for a in addresses]}}
        if document.startswith("query TokenImages") or document.startswith("query TokenDetails"):
            return self._batch(document)
        if document.startswith("query SingleToken"):
            key = f"{variables['c']}:{variables['id']}"
            if key in self.fail_keys:
                raise TransportError(f"token {key} failed")
            return {"token": self.token_fields.get(key)}
        if "collections(limit:" in document:
            self._require("collections", "collections")
            return {"collections": self._offset_page("collections", self.collections, variables)}
        if "collection(collectionAddr:" in document:
            self._require("floors", "collection")
            address = variables["addr"]
            node = self.floors.get(address)
            return {"collection": dict(node, collectionAddr=address) if node is not None else None}
        if "tokens(ownerAddr:$owner, limit:" in document:
            self._require("offset", "tokens")
            tokens = self.owned.get(variables["owner"], [])
            return {"tokens": self._offset_page("tokens", tokens, variables)}
        if "tokens(owner:$owner, first:" in document:
            self._require("connection", "tokens")
            return {"tokens": self._connection(variables)}
        if "tokens(ownerAddr:$owner){" in document:
            self._require("simple", "tokens")
            return {"tokens": {"tokens": list(self.owned.get(variables["owner"], []))}}
        raise TransportError("Unknown query")

    def _require(self, kind: str, root: str) -> None:
        if kind in self.unavailable:
            raise TransportError(f'Cannot query field "{root}" on type "Query".')

    def _offset_page(self, key: str, items: list[dict], variables: dict) -> dict:
        offset = variables.get("offset") or 0
        limit = variables.get("limit") or 100
        return {
            key: items[offset:offset + limit],
            "total": len(items) if self.report_total else None,
            "limit": limit,
            "offset": offset,
        }

    def _connection(self, variables: dict) -> dict:
        tokens = self.owned.get(variables["owner"], [])
        after = variables.get("after")
        start = int(after.split(":")[1]) if after else 0
        end = start + (variables.get("first") or 100)
        return {
            "edges": [{"node": t} for t in tokens[start:end]],
            "pageInfo": {"hasNextPage": end < len(tokens), "endCursor": f"cur:{end}"},
        }

    def _batch(self, document: str) -> dict:
        aliases = _ALIAS.findall(document)
        for _, collection, token_id in aliases:
            if f"{collection}:{token_id}" in self.fail_keys:
                raise TransportError("group failed")
        return {f"t{i}": self.token_fields.get(f"{c}:{t}") for i, c, t in aliases}


@pytest.fixture
def fake_indexer() -> FakeIndexer:
    return FakeIndexer()


@pytest.fixture
def indexer_client(fake_indexer: FakeIndexer) -> IndexerClient:
    """Indexer client wired straight to the in-memory schema."""
    return IndexerClient(fake_indexer)
