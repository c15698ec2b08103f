"""
Cache facade — memory tier → disk tier → coalesced, retried fetch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import timedelta
from types import TracebackType

from kungfu import LazyCoroResult, Option, Result, Ok, Error, Some, Nothing

from tiercache._types import Fetch
from tiercache.cache._codec import Codec
from tiercache.cache._coalesce import FetchCoalescer
from tiercache.cache._config import CacheConfig, CategoryConfig
from tiercache.cache._disk import DiskTier
from tiercache.cache._eviction import EvictionEngine
from tiercache.cache._keys import sanitize, memory_key
from tiercache.cache._locks import KeyedLocks
from tiercache.cache._memory import MemoryTier
from tiercache.cache._prefetch import PrefetchGroup
from tiercache.cache._retry import retrying
from tiercache.cache._stats import StatsCounter
from tiercache.cache._types import (
    ALL,
    CacheEntry,
    CacheStats,
    DecodeFailed,
    FetchFailed,
    SweepReport,
    Tier,
    TierSet,
)

logger = logging.getLogger(__name__)


class Cache:
    """
    Tiered artifact cache.

    One instance per process, created by the composition root and passed to
    whatever needs it.

    Every operation takes an optional `category` (a disk subdirectory with
    its own TTL and budget); None means config.default_category.

    Example:
        cache = Cache(CacheConfig(root=Path("/tmp/app-cache")))
        async with cache:
            await cache.put("movie_42", b'{"title":"Face/Off"}', ttl=timedelta(hours=24))
            data = await cache.get("movie_42")

            match await cache.get_or_fetch("poster_7", download_poster, category="images"):
                case Ok(poster): ...
                case Error(e): ...   # FetchFailed
    """

    def __init__(
        self,
        config: CacheConfig,
        *,
        memory: MemoryTier | None = None,
        disk: DiskTier | None = None,
    ) -> None:
        self._config = config
        self._clock = config.clock
        self._memory = memory or MemoryTier(config.memory_cost_limit, config.memory_count_limit)
        self._disk = disk or DiskTier(config.root, config.clock)
        self._locks = KeyedLocks()
        self._eviction = EvictionEngine(self._disk, config.categories, config.clock, self._locks)
        self._coalescer: FetchCoalescer[bytes, FetchFailed] = FetchCoalescer()
        self._stats = StatsCounter()
        self._prefetches: set[PrefetchGroup] = set()

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def memory(self) -> MemoryTier:
        return self._memory

    @property
    def disk(self) -> DiskTier:
        return self._disk

    @property
    def eviction(self) -> EvictionEngine:
        return self._eviction

    @property
    def coalescer(self) -> FetchCoalescer[bytes, FetchFailed]:
        return self._coalescer

    # ═══════════════════════════════════════════════════════════════════════════
    # Lifecycle
    # ═══════════════════════════════════════════════════════════════════════════

    def start(self) -> None:
        """Start the periodic eviction sweep."""
        self._eviction.start(self._config.sweep_interval)

    async def aclose(self) -> None:
        """Stop the sweep, cancel prefetches and in-flight fetches."""
        await self._eviction.stop()
        for group in list(self._prefetches):
            group.cancel()
        await self._coalescer.cancel_all()

    async def __aenter__(self) -> Cache:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ═══════════════════════════════════════════════════════════════════════════
    # get / put
    # ═══════════════════════════════════════════════════════════════════════════

    async def get(
        self,
        key: str,
        tiers: TierSet = ALL,
        category: str | None = None,
    ) -> bytes | None:
        """Memory first, then disk (promoting to memory). None on miss."""
        cat = self._config.category(category)
        payload = await self._lookup(cat, sanitize(key), tiers)
        if payload is None:
            self._stats.miss()
            logger.debug("miss: %s/%s", cat.name, key)
        else:
            self._stats.hit()
        return payload

    async def put(
        self,
        key: str,
        value: bytes,
        ttl: timedelta | None = None,
        tiers: TierSet = ALL,
        category: str | None = None,
    ) -> None:
        """
        Store `value` in the selected tiers, replacing any previous entry.

        ttl defaults to the category's TTL. Disk failures are logged, not
        raised.
        """
        cat = self._config.category(category)
        lifetime = ttl if ttl is not None else cat.ttl
        if lifetime <= timedelta(0):
            raise ValueError("ttl must be positive")
        await self._store(cat, sanitize(key), bytes(value), lifetime, tiers)

    async def _lookup(self, cat: CategoryConfig, token: str, tiers: TierSet) -> bytes | None:
        mkey = memory_key(cat.name, token)
        if Tier.MEMORY in tiers:
            entry = self._memory.get(mkey, self._clock())
            if entry is not None:
                return entry.payload

        if Tier.DISK not in tiers:
            return None

        async with self._locks.hold(mkey):
            match await self._disk.read(cat.name, token):
                case Error(err):
                    logger.warning("disk read degraded to miss: %s", err)
                    return None
                case Ok(None):
                    return None
                case Ok(record):
                    if Tier.MEMORY in tiers:
                        # Promotion keeps the disk expiry so both tiers agree
                        self._memory.set(CacheEntry(
                            key=mkey,
                            payload=record.payload,
                            expires_at=record.expires_at,
                            cost=self._config.cost_fn(record.payload),
                        ))
                    return record.payload

    async def _store(
        self,
        cat: CategoryConfig,
        token: str,
        payload: bytes,
        lifetime: timedelta,
        tiers: TierSet,
    ) -> None:
        mkey = memory_key(cat.name, token)

        # One writer per entry: both tiers end up holding the same bytes
        async with self._locks.hold(mkey):
            expires_at = self._clock() + lifetime
            if Tier.MEMORY in tiers:
                self._memory.set(CacheEntry(
                    key=mkey,
                    payload=payload,
                    expires_at=expires_at,
                    cost=self._config.cost_fn(payload),
                ))
            else:
                # A stale memory copy would shadow the new disk value
                self._memory.delete(mkey)

            if Tier.DISK in tiers:
                match await self._disk.write(cat.name, token, payload, expires_at):
                    case Error(err):
                        logger.warning("disk write skipped: %s", err)
                    case Ok(_):
                        pass

    # ═══════════════════════════════════════════════════════════════════════════
    # get_or_fetch
    # ═══════════════════════════════════════════════════════════════════════════

    def get_or_fetch(
        self,
        key: str,
        fetch: Fetch,
        ttl: timedelta | None = None,
        tiers: TierSet = ALL,
        category: str | None = None,
    ) -> LazyCoroResult[bytes, FetchFailed]:
        """
        Cached value, else fetch (coalesced per key, retried) and cache it.

        On failure every waiter gets Error(FetchFailed) and nothing is cached.

        Example:
            match await cache.get_or_fetch(url, lambda: client.download(url), category="images"):
                case Ok(data): ...
                case Error(failed): ...
        """
        cat = self._config.category(category)
        lifetime = ttl if ttl is not None else cat.ttl
        token = sanitize(key)

        async def execute() -> Result[bytes, FetchFailed]:
            cached = await self._lookup(cat, token, tiers)
            if cached is not None:
                self._stats.hit()
                return Ok(cached)
            self._stats.miss()
            return await self._fetch_through(cat, token, key, fetch, lifetime, tiers)

        return LazyCoroResult(execute)

    async def fetch_or_raise(
        self,
        key: str,
        fetch: Fetch,
        ttl: timedelta | None = None,
        tiers: TierSet = ALL,
        category: str | None = None,
    ) -> bytes:
        """get_or_fetch that raises FetchFailed instead of returning Error."""
        match await self.get_or_fetch(key, fetch, ttl, tiers, category):
            case Ok(payload):
                return payload
            case Error(failed):
                raise failed

    async def _fetch_through(
        self,
        cat: CategoryConfig,
        token: str,
        key: str,
        fetch: Fetch,
        lifetime: timedelta,
        tiers: TierSet,
    ) -> Result[bytes, FetchFailed]:
        policy = self._config.retry

        async def flight() -> Result[bytes, FetchFailed]:
            result = await retrying(key, fetch, policy)
            match result:
                case Ok(payload):
                    self._stats.fetched(ok=True)
                    await self._store(cat, token, payload, lifetime, tiers)
                case Error(_):
                    self._stats.fetched(ok=False)
            return result

        return await self._coalescer.run(memory_key(cat.name, token), flight)

    # ═══════════════════════════════════════════════════════════════════════════
    # Typed values
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_value[T](
        self,
        key: str,
        codec: Codec[T],
        tiers: TierSet = ALL,
        category: str | None = None,
    ) -> T | None:
        """
        Decoded value or None.

        An entry that fails to decode is evicted and counted as a miss.
        """
        match await self._load(key, codec, tiers, self._config.category(category)):
            case Some(value):
                return value
            case _:
                return None

    async def _load[T](
        self,
        key: str,
        codec: Codec[T],
        tiers: TierSet,
        cat: CategoryConfig,
    ) -> Option[T]:
        # Some(None) is a cached null, distinct from a miss
        token = sanitize(key)
        payload = await self._lookup(cat, token, tiers)
        if payload is not None:
            match self._decode(key, payload, codec):
                case Ok(value):
                    self._stats.hit()
                    return Some(value)
                case Error(failed):
                    logger.warning("evicting corrupt entry: %s", failed)
                    await self._evict(cat, token)
        self._stats.miss()
        return Nothing()

    async def put_value[T](
        self,
        key: str,
        value: T,
        codec: Codec[T],
        ttl: timedelta | None = None,
        tiers: TierSet = ALL,
        category: str | None = None,
    ) -> None:
        await self.put(key, codec.encode(value), ttl, tiers, category)

    def get_or_fetch_value[T](
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        codec: Codec[T],
        ttl: timedelta | None = None,
        tiers: TierSet = ALL,
        category: str | None = None,
    ) -> LazyCoroResult[T, FetchFailed]:
        """Typed get_or_fetch: `fetch` yields a value, the codec handles bytes."""
        cat = self._config.category(category)
        lifetime = ttl if ttl is not None else cat.ttl
        token = sanitize(key)

        async def fetch_bytes() -> bytes:
            return codec.encode(await fetch())

        async def execute() -> Result[T, FetchFailed]:
            match await self._load(key, codec, tiers, cat):
                case Some(value):
                    return Ok(value)
                case _:
                    pass
            result = await self._fetch_through(cat, token, key, fetch_bytes, lifetime, tiers)
            match result:
                case Ok(payload):
                    match self._decode(key, payload, codec):
                        case Ok(decoded):
                            return Ok(decoded)
                        case Error(failed):
                            await self._evict(cat, token)
                            return Error(FetchFailed(key=key, attempts=1, cause=failed))
                case Error(failed):
                    return Error(failed)

        return LazyCoroResult(execute)

    @staticmethod
    def _decode[T](key: str, payload: bytes, codec: Codec[T]) -> Result[T, DecodeFailed]:
        try:
            return Ok(codec.decode(payload))
        except ValueError as e:
            return Error(DecodeFailed(key=key, reason=str(e)))

    # ═══════════════════════════════════════════════════════════════════════════
    # Invalidation
    # ═══════════════════════════════════════════════════════════════════════════

    async def remove(self, key: str) -> None:
        """Delete `key` from every tier and category. Best-effort."""
        token = sanitize(key)
        for cat in self._config.categories:
            await self._evict(cat, token)

    async def _evict(self, cat: CategoryConfig, token: str) -> None:
        mkey = memory_key(cat.name, token)
        async with self._locks.hold(mkey):
            self._memory.delete(mkey)
            match await self._disk.delete(cat.name, token):
                case Error(err):
                    logger.warning("disk delete failed: %s", err)
                case Ok(_):
                    pass

    async def clear(self, tiers: TierSet = ALL) -> None:
        """Empty the selected tiers (disk: every category)."""
        if Tier.MEMORY in tiers:
            self._memory.clear()
        if Tier.DISK in tiers:
            for cat in self._config.categories:
                match await self._disk.clear(cat.name):
                    case Error(err):
                        logger.warning("disk clear failed: %s", err)
                    case Ok(removed):
                        logger.debug("cleared %d files from %s", removed, cat.name)

    def on_memory_pressure(self) -> None:
        """Platform low-memory signal: drop the memory tier, synchronously."""
        dropped = self._memory.clear()
        logger.info("memory pressure: dropped %d entries", dropped)

    async def exists(self, key: str, category: str | None = None) -> bool:
        """Live entry in either tier. Does not count as a hit or miss."""
        cat = self._config.category(category)
        token = sanitize(key)
        if self._memory.peek(memory_key(cat.name, token), self._clock()):
            return True
        return await self._disk.contains(cat.name, token)

    # ═══════════════════════════════════════════════════════════════════════════
    # Eviction
    # ═══════════════════════════════════════════════════════════════════════════

    async def prune_expired(self) -> SweepReport:
        """Run the expiration sweep now. Unreadable categories are listed in report.failed."""
        return await self._eviction.prune_expired()

    async def sweep(self) -> SweepReport:
        """Expiration sweep followed by size-budget eviction."""
        return await self._eviction.sweep()

    # ═══════════════════════════════════════════════════════════════════════════
    # Prefetch
    # ═══════════════════════════════════════════════════════════════════════════

    def prefetch(
        self,
        requests: Mapping[str, Fetch],
        ttl: timedelta | None = None,
        tiers: TierSet = ALL,
        category: str | None = None,
    ) -> PrefetchGroup:
        """
        Warm the cache in the background.

        Keys already live in memory are skipped. The returned group can be
        cancelled as a whole or per key; normal get() calls are never blocked by it.
        """
        cat = self._config.category(category)
        now = self._clock()
        tasks: dict[str, asyncio.Task[Result[bytes, FetchFailed]]] = {}
        for key, fetch in requests.items():
            if self._memory.peek(memory_key(cat.name, sanitize(key)), now):
                continue
            op = self.get_or_fetch(key, fetch, ttl, tiers, cat.name)

            async def run(op: LazyCoroResult[bytes, FetchFailed] = op) -> Result[bytes, FetchFailed]:
                return await op

            tasks[key] = asyncio.ensure_future(run())

        group = PrefetchGroup(tasks)
        self._prefetches.add(group)
        group.add_done_callback(self._prefetches.discard)
        return group

    # ═══════════════════════════════════════════════════════════════════════════
    # Stats
    # ═══════════════════════════════════════════════════════════════════════════

    async def stats(self) -> CacheStats:
        """Snapshot of entry counts, disk usage and counters."""
        counts: dict[str, int] = {"memory": len(self._memory)}
        disk_bytes: dict[str, int] = {}
        for cat in self._config.categories:
            match await self._disk.count(cat.name):
                case Ok(n):
                    counts[cat.name] = n
                case Error(err):
                    logger.warning("stats: %s", err)
                    counts[cat.name] = 0
            match await self._disk.size_of(cat.name):
                case Ok(size):
                    disk_bytes[cat.name] = size
                case Error(err):
                    logger.warning("stats: %s", err)
                    disk_bytes[cat.name] = 0

        c = self._stats.snapshot()
        return CacheStats(
            entry_counts=counts,
            aggregate_disk_bytes=sum(disk_bytes.values()),
            disk_bytes=disk_bytes,
            memory_cost=self._memory.total_cost,
            hit_count=c.hits,
            miss_count=c.misses,
            fetch_count=c.fetches,
            fetch_failures=c.fetch_failures,
        )

    def reset_statistics(self) -> None:
        self._stats.reset()


__all__ = ("Cache",)
