"""Application configuration using pydantic-settings.

Indexer endpoint and client identification can be overridden through the
environment (INDEXER_URL, INDEXER_UA); everything else has Stargaze mainnet
defaults.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INDEXER_URL = "https://constellations-api.mainnet.stargaze-apis.com/graphql"
DEFAULT_INDEXER_UA = "usemiddleman-app/0.1 (contact: set INDEXER_UA)"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Indexer (GraphQL)
    # ======================
    indexer_url: str = Field(default=DEFAULT_INDEXER_URL, description="GraphQL indexer endpoint")
    indexer_ua: str = Field(default=DEFAULT_INDEXER_UA, description="Client identification string")
    indexer_timeout: float = Field(default=30.0, description="HTTP timeout for indexer requests (seconds)")
    indexer_get_max_url_length: int = Field(
        default=7000, description="Longest GET URL before falling back to POST"
    )

    # ======================
    # Batching / paging
    # ======================
    image_batch_size: int = Field(default=20, description="Tokens per aliased image query")
    details_batch_size: int = Field(default=12, description="Tokens per aliased details query")
    owned_page_size: int = Field(default=120, description="Tokens requested per inventory page")
    media_concurrency: int = Field(default=6, description="Parallel workers for media resolution")

    # ======================
    # Chain
    # ======================
    chain_id: str = Field(default="stargaze-1", description="Cosmos chain ID")
    rpc_url: str = Field(default="https://rpc.stargaze-apis.com", description="Tendermint RPC URL")
    rest_url: str = Field(default="https://rest.stargaze-apis.com", description="LCD REST URL")
    escrow_contract: Optional[str] = Field(default=None, description="Escrow contract address")
    ipfs_gateway: str = Field(
        default="https://ipfs-gw.stargaze-apis.com/ipfs/", description="IPFS HTTP gateway"
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_escrow(self) -> bool:
        """Check if an escrow contract address is configured."""
        return bool(self.escrow_contract and self.escrow_contract.startswith("stars1"))

    def get_safe_dict(self) -> dict:
        """Return settings as a plain dict for diagnostics."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "indexer": {
                "url": self.indexer_url,
                "user_agent": self.indexer_ua,
                "timeout": self.indexer_timeout,
                "get_max_url_length": self.indexer_get_max_url_length,
            },
            "batching": {
                "images": self.image_batch_size,
                "details": self.details_batch_size,
                "page_size": self.owned_page_size,
                "media_concurrency": self.media_concurrency,
            },
            "chain": {
                "id": self.chain_id,
                "rpc": self.rpc_url,
                "rest": self.rest_url,
                "escrow": self.escrow_contract or "(not set)",
                "ipfs_gateway": self.ipfs_gateway,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
