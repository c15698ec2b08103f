"""
Keyed locks — one asyncio.Lock per cache entry.

Shared by the facade and the eviction engine so that a blob and its sidecar
are always written, read and deleted as a unit.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass(slots=True)
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class KeyedLocks:
    """
    Lazily created per-key locks, dropped once nobody holds or awaits them.

    Example:
        locks = KeyedLocks()
        async with locks.hold("images/poster_7"):
            ...
    """

    def __init__(self) -> None:
        self._slots: dict[str, _Slot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def locked(self, key: str) -> bool:
        slot = self._slots.get(key)
        return slot is not None and slot.lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _Slot()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[key]


__all__ = ("KeyedLocks",)
