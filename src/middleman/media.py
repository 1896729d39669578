"""Token media resolution straight from collection contracts.

Used when the indexer has no image for a token: nft_info gives the token
URI, the URI is fetched through an IPFS gateway, and the image is picked
out of the metadata JSON (or the URI itself is the image).
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import httpx

from middleman.chain.cw721 import Cw721Collection
from middleman.chain.wasm import WasmQueryClient
from middleman.indexer.extraction import first_text, rule
from middleman.indexer.models import EntityKey

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY = "https://ipfs-gw.stargaze-apis.com/ipfs/"

_GATEWAY_PATH = re.compile(r"https?://[^/]+/ipfs/([a-zA-Z0-9]+)(?:/([^?]+))?")
_BARE_CID = re.compile(r"^[a-zA-Z0-9]{46,}$")
_HAS_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")

# Metadata image fields, in the order they are tried
METADATA_IMAGE_RULES = (
    rule("image"),
    rule("image_url"),
    rule("imageURI"),
    rule("media"),
    rule("properties.image"),
)


def normalize_image(uri: Optional[str], gateway: str = DEFAULT_GATEWAY) -> Optional[str]:
    """Rewrite IPFS references (ipfs://, fs://, bare CIDs, other gateways) onto `gateway`."""
    if not uri or not uri.strip():
        return None
    if not gateway.endswith("/"):
        gateway += "/"

    url = uri.strip()
    if url.startswith("ipfs://"):
        path = url[len("ipfs://"):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        url = gateway + path
    elif url.startswith("fs://"):
        url = gateway + url[len("fs://"):]
    elif not _HAS_SCHEME.match(url) and _BARE_CID.match(url):
        url = gateway + url

    match = _GATEWAY_PATH.search(url)
    if match:
        url = gateway + match.group(1)
        if match.group(2):
            url += "/" + match.group(2)
    return url


def pick_image(metadata: Any, gateway: str = DEFAULT_GATEWAY) -> Optional[str]:
    if not isinstance(metadata, dict):
        return None
    return normalize_image(first_text(metadata, METADATA_IMAGE_RULES), gateway)


@dataclass
class ResolvedMedia:
    image: Optional[str] = None
    raw_token_uri: Optional[str] = None
    metadata: Any = None
    error: Optional[str] = None


class MediaResolver:
    """Resolves token images via nft_info and the token's metadata URI."""

    def __init__(
        self,
        query_client: WasmQueryClient,
        gateway: str = DEFAULT_GATEWAY,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.query_client = query_client
        self.gateway = gateway
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._info_cache: dict[str, dict] = {}
        self._http_cache: dict[str, Any] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def resolve(self, key: "EntityKey | str") -> ResolvedMedia:
        entity = EntityKey.coerce(key)
        collection = Cw721Collection(
            self.query_client, entity.collection_address, info_cache=self._info_cache
        )
        info = await collection.nft_info(entity.token_id)
        token_uri = info.get("token_uri") or None
        if not token_uri:
            return ResolvedMedia(metadata=info)

        url = normalize_image(token_uri, self.gateway)
        if url in self._http_cache:
            cached = self._http_cache[url]
            return ResolvedMedia(
                image=pick_image(cached, self.gateway), raw_token_uri=token_uri, metadata=cached
            )

        client = await self._get_client()
        try:
            response = await client.get(url, follow_redirects=True)
            response.raise_for_status()
            content_type = response.headers.get("content-type", "")

            if "application/json" in content_type:
                metadata = response.json()
                self._http_cache[url] = metadata
                return ResolvedMedia(
                    image=pick_image(metadata, self.gateway),
                    raw_token_uri=token_uri,
                    metadata=metadata,
                )
            if content_type.startswith("image/"):
                return ResolvedMedia(image=url, raw_token_uri=token_uri, metadata={"direct": True})
            return ResolvedMedia(raw_token_uri=token_uri, metadata={"content_type": content_type})

        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Metadata fetch failed for {entity} ({url}): {e}")
            return ResolvedMedia(raw_token_uri=token_uri, metadata=info, error=str(e))

    async def batch_resolve(
        self,
        keys: Iterable["EntityKey | str"],
        concurrency: int = 4,
        on_progress: Optional[Callable[[int, int], Any]] = None,
    ) -> dict[str, ResolvedMedia]:
        """Resolve many tokens with a fixed pool of workers.

        Workers pull from a shared queue until it is empty. An exception in
        any worker cancels the others and propagates.
        """
        entities = list(dict.fromkeys(EntityKey.coerce(k) for k in keys))
        results: dict[str, ResolvedMedia] = {}
        if not entities:
            return results

        queue: asyncio.Queue = asyncio.Queue()
        for entity in entities:
            queue.put_nowait(entity)
        done = 0

        async def worker() -> None:
            nonlocal done
            while True:
                try:
                    entity = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[str(entity)] = await self.resolve(entity)
                done += 1
                if on_progress:
                    on_progress(done, len(entities))

        workers = [
            asyncio.create_task(worker())
            for _ in range(min(max(concurrency, 1), len(entities)))
        ]
        try:
            await asyncio.gather(*workers)
        except Exception:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        logger.debug(f"Resolved media for {len(results)} tokens")
        return results
