"""
Statistics counter — hits, misses, fetches.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Counts:
    hits: int
    misses: int
    fetches: int
    fetch_failures: int


class StatsCounter:
    """Monotonic counters; reset() zeroes them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._fetches = 0
        self._fetch_failures = 0

    def hit(self) -> None:
        with self._lock:
            self._hits += 1

    def miss(self) -> None:
        with self._lock:
            self._misses += 1

    def fetched(self, ok: bool) -> None:
        with self._lock:
            self._fetches += 1
            if not ok:
                self._fetch_failures += 1

    def snapshot(self) -> Counts:
        with self._lock:
            return Counts(self._hits, self._misses, self._fetches, self._fetch_failures)

    def reset(self) -> None:
        with self._lock:
            self._hits = self._misses = self._fetches = self._fetch_failures = 0


__all__ = ("Counts", "StatsCounter")
