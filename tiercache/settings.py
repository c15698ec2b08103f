"""Cache settings — environment-driven configuration via pydantic-settings.

    TIERCACHE_ROOT=/var/cache/ncdb
    TIERCACHE_MEMORY_COST_LIMIT=52428800
    TIERCACHE_IMAGES_MAX_BYTES=209715200

get_settings() is cached: one instance per process.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tiercache.cache import CacheConfig, CategoryConfig, RetryPolicy, MiB


class CacheSettings(BaseSettings):
    """Cache settings from environment variables."""

    model_config = SettingsConfigDict(env_prefix="TIERCACHE_", env_file=".env", extra="ignore")

    root: Path = Path.home() / ".cache" / "tiercache"

    # Memory tier
    memory_cost_limit: int = 50 * MiB
    memory_count_limit: int = 100

    # Disk categories: TTL in seconds, budget in bytes (0 = unbounded)
    metadata_ttl_seconds: int = 24 * 60 * 60
    metadata_max_bytes: int = 200 * MiB
    images_ttl_seconds: int = 7 * 24 * 60 * 60
    images_max_bytes: int = 500 * MiB
    responses_ttl_seconds: int = 60 * 60
    responses_max_bytes: int = 200 * MiB
    news_ttl_seconds: int = 4 * 60 * 60
    news_max_bytes: int = 50 * MiB
    default_category: str = "metadata"

    # Fetch
    retry_count: int = 2
    retry_delay_seconds: float = 1.0

    # Eviction
    sweep_interval_seconds: int = 60 * 60

    @field_validator("root", mode="before")
    @classmethod
    def expand_root(cls, v: object) -> object:
        """Allow '~' in TIERCACHE_ROOT."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    def _category(self, name: str) -> CategoryConfig:
        ttl = getattr(self, f"{name}_ttl_seconds")
        max_bytes = getattr(self, f"{name}_max_bytes")
        return CategoryConfig(name, timedelta(seconds=ttl), max_bytes or None)

    def to_config(self) -> CacheConfig:
        return CacheConfig(
            root=self.root,
            memory_cost_limit=self.memory_cost_limit,
            memory_count_limit=self.memory_count_limit,
            categories=tuple(self._category(n) for n in ("metadata", "images", "responses", "news")),
            default_category=self.default_category,
            retry=RetryPolicy(self.retry_count, timedelta(seconds=self.retry_delay_seconds)),
            sweep_interval=timedelta(seconds=self.sweep_interval_seconds),
        )


@lru_cache
def get_settings() -> CacheSettings:
    return CacheSettings()


__all__ = ("CacheSettings", "get_settings")
