"""
Cache — tiered artifact caching.

    from tiercache import cache as C

    artifacts = C.cache(cache_root).category("images", ttl=timedelta(days=7), max_bytes=200 * C.MiB).build()

    poster = await artifacts.get_or_fetch("poster_7", download_poster, category="images")
    data = await artifacts.get("movie_42", C.ALL)
"""

from __future__ import annotations

from tiercache.cache._types import (
    Tier,
    TierSet,
    ALL,
    MEMORY_ONLY,
    DISK_ONLY,
    CacheEntry,
    DiskRecord,
    DiskEntryInfo,
    CacheStats,
    SweepReport,
    FetchFailed,
    DecodeFailed,
    DiskIOError,
    format_bytes,
)
from tiercache.cache._keys import sanitize
from tiercache.cache._codec import Codec, RawCodec, JsonCodec, ModelCodec
from tiercache.cache._memory import MemoryTier
from tiercache.cache._disk import DiskTier
from tiercache.cache._coalesce import FetchCoalescer
from tiercache.cache._retry import RetryPolicy, retry, retrying, NO_RETRY
from tiercache.cache._eviction import EvictionEngine
from tiercache.cache._stats import StatsCounter
from tiercache.cache._config import (
    MiB,
    CategoryConfig,
    CacheConfig,
    METADATA,
    IMAGES,
    RESPONSES,
    NEWS,
    DEFAULT_CATEGORIES,
)
from tiercache.cache._prefetch import PrefetchGroup
from tiercache.cache._facade import Cache
from tiercache.cache._builder import CacheBuilder, cache

__all__ = (
    # Types
    "Tier",
    "TierSet",
    "ALL",
    "MEMORY_ONLY",
    "DISK_ONLY",
    "CacheEntry",
    "DiskRecord",
    "DiskEntryInfo",
    "CacheStats",
    "SweepReport",
    "format_bytes",
    # Errors
    "FetchFailed",
    "DecodeFailed",
    "DiskIOError",
    # Components
    "sanitize",
    "Codec",
    "RawCodec",
    "JsonCodec",
    "ModelCodec",
    "MemoryTier",
    "DiskTier",
    "FetchCoalescer",
    "RetryPolicy",
    "retry",
    "retrying",
    "NO_RETRY",
    "EvictionEngine",
    "StatsCounter",
    "PrefetchGroup",
    # Config
    "MiB",
    "CategoryConfig",
    "CacheConfig",
    "METADATA",
    "IMAGES",
    "RESPONSES",
    "NEWS",
    "DEFAULT_CATEGORIES",
    # Facade
    "Cache",
    "CacheBuilder",
    "cache",
)
