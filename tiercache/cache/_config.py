"""
Cache configuration — budgets, TTLs, categories.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path

from tiercache._types import Clock, CostFn, utc_now, byte_cost
from tiercache.cache._retry import RetryPolicy

MiB = 1024 * 1024

_CATEGORY_NAME = re.compile(r"[A-Za-z0-9_-]+")


# ═══════════════════════════════════════════════════════════════════════════════
# Category — Disk Subdirectory With Its Own TTL and Budget
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CategoryConfig:
    """
    One artifact category.

    ttl: default time-to-live for puts that do not pass one.
    max_bytes: disk budget; None disables size-budget eviction.
    """

    name: str
    ttl: timedelta
    max_bytes: int | None = None

    def __post_init__(self) -> None:
        if not _CATEGORY_NAME.fullmatch(self.name):
            raise ValueError(f"invalid category name: {self.name!r}")
        if self.ttl <= timedelta(0):
            raise ValueError(f"category {self.name!r}: ttl must be positive")
        if self.max_bytes is not None and self.max_bytes < 0:
            raise ValueError(f"category {self.name!r}: max_bytes must be >= 0")


METADATA = CategoryConfig("metadata", timedelta(hours=24), 200 * MiB)
IMAGES = CategoryConfig("images", timedelta(days=7), 500 * MiB)
RESPONSES = CategoryConfig("responses", timedelta(hours=1), 200 * MiB)
NEWS = CategoryConfig("news", timedelta(hours=4), 50 * MiB)

DEFAULT_CATEGORIES = (METADATA, IMAGES, RESPONSES, NEWS)


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Config — Full Configuration
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """
    Cache configuration.

    Fluent, immutable — each with_* returns a new config.

    Example:
        config = (
            CacheConfig(root=Path("/var/cache/app"))
            .with_memory(cost_limit=20 * MiB, count_limit=200)
            .with_category(CategoryConfig("images", timedelta(days=7), 200 * MiB))
            .with_retry(RetryPolicy(times=2, delay=timedelta(seconds=1)))
        )
    """

    root: Path
    memory_cost_limit: int = 50 * MiB
    memory_count_limit: int = 100
    categories: tuple[CategoryConfig, ...] = DEFAULT_CATEGORIES
    default_category: str = "metadata"
    retry: RetryPolicy = RetryPolicy()
    sweep_interval: timedelta = timedelta(hours=1)
    clock: Clock = field(default=utc_now, compare=False)
    cost_fn: CostFn = field(default=byte_cost, compare=False)

    def __post_init__(self) -> None:
        names = [c.name for c in self.categories]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate category names: {names}")
        if self.default_category not in names:
            raise ValueError(f"default category {self.default_category!r} is not configured")
        if self.memory_cost_limit <= 0 or self.memory_count_limit <= 0:
            raise ValueError("memory budgets must be positive")
        if self.sweep_interval <= timedelta(0):
            raise ValueError("sweep interval must be positive")

    def category(self, name: str | None = None) -> CategoryConfig:
        """Look up a category; None means the default one."""
        wanted = name or self.default_category
        for c in self.categories:
            if c.name == wanted:
                return c
        raise KeyError(f"unknown cache category: {wanted!r}")

    @property
    def category_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.categories)

    def with_memory(
        self,
        *,
        cost_limit: int | None = None,
        count_limit: int | None = None,
    ) -> CacheConfig:
        return replace(
            self,
            memory_cost_limit=cost_limit if cost_limit is not None else self.memory_cost_limit,
            memory_count_limit=count_limit if count_limit is not None else self.memory_count_limit,
        )

    def with_category(self, category: CategoryConfig) -> CacheConfig:
        """Add a category, or replace the one with the same name."""
        rest = tuple(c for c in self.categories if c.name != category.name)
        return replace(self, categories=(*rest, category))

    def with_default_category(self, name: str) -> CacheConfig:
        return replace(self, default_category=name)

    def with_retry(self, policy: RetryPolicy) -> CacheConfig:
        return replace(self, retry=policy)

    def with_sweep_interval(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> CacheConfig:
        interval = delta if delta is not None else timedelta(seconds=seconds or 3600)
        return replace(self, sweep_interval=interval)

    def with_clock(self, clock: Clock) -> CacheConfig:
        return replace(self, clock=clock)

    def with_cost_fn(self, cost_fn: CostFn) -> CacheConfig:
        return replace(self, cost_fn=cost_fn)


__all__ = (
    "MiB",
    "CategoryConfig",
    "CacheConfig",
    "METADATA",
    "IMAGES",
    "RESPONSES",
    "NEWS",
    "DEFAULT_CATEGORIES",
)
