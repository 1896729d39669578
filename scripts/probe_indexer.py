#!/usr/bin/env python3
"""Probe the GraphQL indexer from the command line.

Shows which query variant the live schema accepts and what it returns.

Usage:
    python scripts/probe_indexer.py tokens <owner> [--max 500] [--resolve-media]
    python scripts/probe_indexer.py collections [--max 300]
    python scripts/probe_indexer.py floors <collection> [<collection> ...]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from middleman.chain.wasm import WasmQueryClient
from middleman.config import get_settings
from middleman.indexer.client import create_indexer_client
from middleman.indexer.variants import OWNED_TOKENS
from middleman.inventory import InventoryLoader
from middleman.media import MediaResolver

load_dotenv()

logger = logging.getLogger(__name__)


async def probe_tokens(owner: str, max_total: int, resolve_media: bool) -> None:
    settings = get_settings()
    async with create_indexer_client(settings) as indexer:
        resolver = None
        if resolve_media:
            resolver = MediaResolver(
                WasmQueryClient(settings.rest_url, timeout=settings.indexer_timeout),
                gateway=settings.ipfs_gateway,
            )

        loader = InventoryLoader(
            indexer,
            media_resolver=resolver,
            page_size=settings.owned_page_size,
            max_tokens=max_total,
            media_concurrency=settings.media_concurrency,
            gateway=settings.ipfs_gateway,
        )
        session = loader.begin(owner)
        try:
            total = await loader.load_all(session)
        finally:
            if resolver is not None:
                await resolver.query_client.aclose()
                await resolver.aclose()

        variant = indexer.executor.active_variant(OWNED_TOKENS)
        print(f"Variant: {variant.name if variant else '(none)'}")
        print(f"Tokens:  {total}")
        for token in loader.tokens:
            key = str(token.key)
            floor = loader.floors.get(token.collection_address)
            print(
                f"  {key}  {loader.names.get(key, '-')}"
                f"  image={loader.media.get(key, '-')}"
                f"  floor={floor.amount + floor.denom if floor else '?'}"
            )


async def probe_collections(max_total: int) -> None:
    async with create_indexer_client() as indexer:
        collections = await indexer.fetch_all_collections(max_total)
        print(f"Collections: {len(collections)}")
        for collection in collections:
            print(f"  {collection.collection_address}  {collection.name or '-'}")


async def probe_floors(collections: list[str]) -> None:
    async with create_indexer_client() as indexer:
        floors = await indexer.fetch_floors(collections)
        print(json.dumps({k: vars(v) for k, v in floors.items()}, indent=2))


def main() -> int:
    parser = argparse.ArgumentParser(description="Probe the NFT indexer")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    tokens = sub.add_parser("tokens", help="List tokens held by an owner")
    tokens.add_argument("owner")
    tokens.add_argument("--max", type=int, default=2000)
    tokens.add_argument("--resolve-media", action="store_true", help="Fall back to contract metadata")

    collections = sub.add_parser("collections", help="List collections")
    collections.add_argument("--max", type=int, default=500)

    floors = sub.add_parser("floors", help="Floor prices for collections")
    floors.add_argument("collections", nargs="+")

    args = parser.parse_args()

    debug = args.debug or get_settings().debug
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "tokens":
        asyncio.run(probe_tokens(args.owner, args.max, args.resolve_media))
    elif args.command == "collections":
        asyncio.run(probe_collections(args.max))
    else:
        asyncio.run(probe_floors(args.collections))
    return 0


if __name__ == "__main__":
    sys.exit(main())
