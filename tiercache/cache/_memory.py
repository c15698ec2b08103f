"""
Memory tier — bounded in-process LRU.

Two budgets, both enforced on insert:
    cost_limit   — sum of entry costs (bytes by default)
    count_limit  — number of entries

Least-recently-used entries are popped until the new entry fits.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import datetime

from tiercache.cache._types import CacheEntry

logger = logging.getLogger(__name__)


class MemoryTier:
    """
    Thread-safe LRU keyed by memory key.

    Note: Never suspends. Every method is a plain locked dict operation, so
    a memory-pressure callback may call it from any thread.

    Example:
        tier = MemoryTier(cost_limit=50 * 1024 * 1024, count_limit=100)
    """

    def __init__(self, cost_limit: int, count_limit: int) -> None:
        if cost_limit <= 0 or count_limit <= 0:
            raise ValueError("memory tier budgets must be positive")
        self._cost_limit = cost_limit
        self._count_limit = count_limit
        # Insertion order doubles as recency order: oldest first
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._total_cost = 0
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "memory"

    @property
    def cost_limit(self) -> int:
        return self._cost_limit

    @property
    def count_limit(self) -> int:
        return self._count_limit

    @property
    def total_cost(self) -> int:
        with self._lock:
            return self._total_cost

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str, now: datetime) -> CacheEntry | None:
        """Return the live entry and mark it most recent; drop it if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                self._pop(key)
                return None
            self._entries.move_to_end(key)
            return entry

    def peek(self, key: str, now: datetime) -> bool:
        """Presence check without touching recency."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(now)

    def set(self, entry: CacheEntry) -> bool:
        """
        Insert or replace.

        Returns False when the entry alone exceeds the cost budget; it is not
        admitted and any previous value for the key is dropped.
        """
        with self._lock:
            if entry.key in self._entries:
                self._pop(entry.key)

            if entry.cost > self._cost_limit:
                logger.debug("memory: %s (%d) exceeds cost budget, not admitted", entry.key, entry.cost)
                return False

            while self._entries and (
                len(self._entries) >= self._count_limit
                or self._total_cost + entry.cost > self._cost_limit
            ):
                evicted_key, evicted = self._entries.popitem(last=False)
                self._total_cost -= evicted.cost
                logger.debug("memory: evicted %s", evicted_key)

            self._entries[entry.key] = entry
            self._total_cost += entry.cost
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._pop(key) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._total_cost = 0
            return count

    def _pop(self, key: str) -> CacheEntry | None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._total_cost -= entry.cost
        return entry


__all__ = ("MemoryTier",)
