"""
Application configuration using pydantic-settings.

============================================================================
UPSTREAM DATA SOURCE
============================================================================
All catalog data comes from the remote nhentai gallery API. Nothing is
persisted locally: the only process-lifetime state is the bounded in-memory
response cache in nhdiscovery/core/cache.py. The upstream is treated as an
untrusted, rate-limited, paginated source and every ranking is computed
here, per request.
============================================================================
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "nhentai Discovery API"
    debug: bool = False

    # Upstream catalog API
    nhentai_api_url: str = "https://nhentai.net"
    nhentai_user_agent: str = "nh-client"
    image_domain: str = "nhentai.net"
    # Page images are spread over these hosts by (media_id + page) % len(hosts)
    image_hosts: list[str] = ["i1", "i2", "i4"]

    # CORS: the desktop renderer talks to us from localhost
    cors_origins: list[str] = [
        "http://localhost:3000",
    ]

    # Tag usage catalog (scraped global tag counts used for rarity weighting)
    tags_catalog_path: str = "data/nhentai-tags.json"

    # =========================================================================
    # Timeout and Resilience Settings
    # =========================================================================

    http_request_timeout: float = 10.0  # Per upstream request
    max_concurrent_requests: int = 20  # In-flight upstream requests per client

    # Response cache
    search_cache_max_entries: int = 200
    search_cache_ttl_seconds: int = 600  # 10 minutes

    # Retry settings (only rate-limit responses are retried)
    rate_limit_max_retries: int = 3
    retry_base_delay: float = 1.0  # Delay is base * 2^attempt

    # Discovery
    recommendation_timeout: float = 60.0  # Overall deadline per discovery request
    related_max_results: int = 12


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
