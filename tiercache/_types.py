"""
Core types for tiercache.

Re-exports from kungfu + custom type aliases.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, UTC

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail."""

# ═══════════════════════════════════════════════════════════════════════════════
# Caller-supplied Operations
# ═══════════════════════════════════════════════════════════════════════════════

type Fetch = Callable[[], Awaitable[bytes]]
"""Produces the bytes for a key when every tier misses."""

type Clock = Callable[[], datetime]
"""Returns the current time (timezone-aware)."""

type CostFn = Callable[[bytes], int]
"""Memory-tier weight of a payload."""


def utc_now() -> datetime:
    return datetime.now(UTC)


def byte_cost(payload: bytes) -> int:
    return len(payload)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Type aliases
    "Lazy",
    "Fetch",
    "Clock",
    "CostFn",
    # Defaults
    "utc_now",
    "byte_cost",
)
