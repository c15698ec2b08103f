"""
Cache builder — fluent API.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from tiercache._types import Clock, CostFn
from tiercache.cache._config import CacheConfig, CategoryConfig
from tiercache.cache._facade import Cache
from tiercache.cache._retry import RetryPolicy

# ═══════════════════════════════════════════════════════════════════════════════
# Cache Builder
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class CacheBuilder:
    """
    Fluent cache builder.

    Example:
        artifacts = (
            C.cache(Path("~/.cache/ncdb").expanduser())
            .memory(cost_limit=50 * C.MiB, count_limit=100)
            .category("images", ttl=timedelta(days=7), max_bytes=200 * C.MiB)
            .retry(C.retry(times=2, delay=timedelta(seconds=1)))
            .build()
        )
    """

    _config: CacheConfig

    def memory(
        self,
        *,
        cost_limit: int | None = None,
        count_limit: int | None = None,
    ) -> CacheBuilder:
        """Memory tier budgets."""
        return CacheBuilder(self._config.with_memory(cost_limit=cost_limit, count_limit=count_limit))

    def category(
        self,
        name: str,
        *,
        ttl: timedelta,
        max_bytes: int | None = None,
        default: bool = False,
    ) -> CacheBuilder:
        """Add or replace a disk category."""
        config = self._config.with_category(CategoryConfig(name, ttl, max_bytes))
        if default:
            config = config.with_default_category(name)
        return CacheBuilder(config)

    def retry(self, policy: RetryPolicy) -> CacheBuilder:
        """Retry policy for fetches."""
        return CacheBuilder(self._config.with_retry(policy))

    def sweep_every(self, interval: timedelta) -> CacheBuilder:
        """Period of the background eviction sweep."""
        return CacheBuilder(self._config.with_sweep_interval(delta=interval))

    def clock(self, clock: Clock) -> CacheBuilder:
        return CacheBuilder(self._config.with_clock(clock))

    def cost(self, cost_fn: CostFn) -> CacheBuilder:
        """Memory-tier cost function (default: payload length)."""
        return CacheBuilder(self._config.with_cost_fn(cost_fn))

    @property
    def config(self) -> CacheConfig:
        return self._config

    def build(self) -> Cache:
        """Build the cache."""
        return Cache(self._config)


# ═══════════════════════════════════════════════════════════════════════════════
# cache() — Entry Point
# ═══════════════════════════════════════════════════════════════════════════════


def cache(root: Path | str | CacheConfig) -> CacheBuilder:
    """
    Start a builder rooted at a cache directory (or from a full config).

    Example:
        from tiercache import cache as C

        artifacts = C.cache("/tmp/ncdb-cache").build()
        await artifacts.put("movie_42", payload)
    """
    if isinstance(root, CacheConfig):
        return CacheBuilder(root)
    return CacheBuilder(CacheConfig(root=Path(root)))


__all__ = ("CacheBuilder", "cache")
