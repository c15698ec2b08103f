"""
tiercache — tiered artifact caching for async Python.

    from tiercache import cache as C   # Memory + disk tiers, single-flight fetch
"""

from tiercache import cache
from tiercache._types import (
    Lazy,
    Fetch,
    Clock,
    CostFn,
)

__version__ = "0.1.0"

__all__ = (
    "cache",
    "Lazy",
    "Fetch",
    "Clock",
    "CostFn",
)
