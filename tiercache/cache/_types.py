"""
Cache types.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Flag, auto
from pathlib import Path

# ═══════════════════════════════════════════════════════════════════════════════
# Tier — Which Storage Layers an Operation Touches
# ═══════════════════════════════════════════════════════════════════════════════


class Tier(Flag):
    """
    Cache tier selector.

    Members combine into a set:
        Tier.MEMORY | Tier.DISK  # both tiers (ALL)

    Reads always check MEMORY before DISK.
    """

    MEMORY = auto()
    DISK = auto()


type TierSet = Tier

ALL: TierSet = Tier.MEMORY | Tier.DISK
MEMORY_ONLY: TierSet = Tier.MEMORY
DISK_ONLY: TierSet = Tier.DISK


# ═══════════════════════════════════════════════════════════════════════════════
# Entries
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    One cached value.

    Note: payload is opaque — interpretation belongs to the caller (see codecs).
    """

    key: str
    payload: bytes
    expires_at: datetime
    cost: int

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True, slots=True)
class DiskRecord:
    """Blob read back from disk together with its sidecar expiry."""

    payload: bytes
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class DiskEntryInfo:
    """Directory listing row used by eviction and stats."""

    token: str
    modified_at: float
    size: int
    expires_at: datetime | None


# ═══════════════════════════════════════════════════════════════════════════════
# Stats
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Read-only snapshot of cache state and counters."""

    entry_counts: Mapping[str, int]
    aggregate_disk_bytes: int
    disk_bytes: Mapping[str, int] = field(default_factory=dict)
    memory_cost: int = 0
    hit_count: int = 0
    miss_count: int = 0
    fetch_count: int = 0
    fetch_failures: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hit_count + self.miss_count
        if total == 0:
            return 0.0
        return self.hit_count / total

    @property
    def formatted_disk_size(self) -> str:
        return format_bytes(self.aggregate_disk_bytes)


@dataclass(frozen=True, slots=True)
class SweepReport:
    """What one eviction pass removed, and which categories it could not read."""

    expired_removed: int = 0
    budget_removed: int = 0
    bytes_freed: int = 0
    failed: tuple[str, ...] = ()

    def __add__(self, other: SweepReport) -> SweepReport:
        return SweepReport(
            expired_removed=self.expired_removed + other.expired_removed,
            budget_removed=self.budget_removed + other.budget_removed,
            bytes_freed=self.bytes_freed + other.bytes_freed,
            failed=(*self.failed, *(c for c in other.failed if c not in self.failed)),
        )


def format_bytes(size: int) -> str:
    """1536 -> '1.5 KB'."""
    value = float(size)
    for unit in ("bytes", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            if unit == "bytes":
                return f"{int(value)} bytes"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class FetchFailed(Exception):
    """
    Caller-supplied fetch failed on every attempt.

    The only error the cache surfaces to callers.
    """

    key: str
    attempts: int
    cause: BaseException | None = None

    def __str__(self) -> str:
        return f"fetch for {self.key!r} failed after {self.attempts} attempt(s): {self.cause}"


@dataclass(frozen=True, slots=True)
class DecodeFailed(Exception):
    """Cached bytes could not be decoded into the expected type."""

    key: str
    reason: str

    def __str__(self) -> str:
        return f"cannot decode {self.key!r}: {self.reason}"


@dataclass(frozen=True, slots=True)
class DiskIOError(Exception):
    """
    Filesystem failure inside the disk tier.

    Note: Never raised out of the facade — it degrades to miss/no-op.
    """

    operation: str
    path: Path
    cause: OSError | ValueError | None = None

    def __str__(self) -> str:
        return f"{self.operation} {self.path}: {self.cause}"


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
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
    "FetchFailed",
    "DecodeFailed",
    "DiskIOError",
)
