"""
Eviction engine — expiration sweep and size-budget eviction for the disk tier.

Two independent passes per category:
    1. expiration — delete entries whose sidecar expiry has passed, plus
       orphans (blob without readable sidecar, sidecar without blob)
    2. budget     — while the category exceeds max_bytes, delete the oldest
       entry by modification time

Every delete happens under the entry's key lock, the same one the facade
holds while writing, so a sweep never splits a blob from its sidecar.

A category whose directory cannot be read is logged and skipped; the other
categories are still swept.

The memory tier needs no sweep: it checks expiry on read and is bounded on
insert.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import timedelta

from kungfu import Result, Ok, Error

from tiercache._types import Clock, utc_now
from tiercache.cache._config import CategoryConfig
from tiercache.cache._disk import DiskTier
from tiercache.cache._keys import memory_key
from tiercache.cache._locks import KeyedLocks
from tiercache.cache._types import DiskIOError, SweepReport

logger = logging.getLogger(__name__)


class EvictionEngine:
    """
    Runs sweeps on demand or periodically in a background task.

    Example:
        engine = EvictionEngine(disk, config.categories)
        report = await engine.sweep()
        engine.start(timedelta(hours=1))
        ...
        await engine.stop()
    """

    def __init__(
        self,
        disk: DiskTier,
        categories: Sequence[CategoryConfig],
        clock: Clock = utc_now,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._disk = disk
        self._categories = tuple(categories)
        self._clock = clock
        self._locks = locks if locks is not None else KeyedLocks()
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ───────────────────────────────────────────────────────────────────────────
    # Passes
    # ───────────────────────────────────────────────────────────────────────────

    async def prune_expired(self) -> SweepReport:
        """Expiration pass over every configured category."""
        async with self._lock:
            report = SweepReport()
            for category in self._categories:
                report += _recover(category.name, await self._expire(category.name))
            return report

    async def enforce_budgets(self) -> SweepReport:
        """Budget pass over every category that has max_bytes."""
        async with self._lock:
            report = SweepReport()
            for category in self._categories:
                if category.max_bytes is None:
                    continue
                report += _recover(category.name, await self._shrink(category.name, category.max_bytes))
            return report

    async def sweep(self) -> SweepReport:
        """Expiration pass, then budget pass."""
        report = await self.prune_expired() + await self.enforce_budgets()
        if report.expired_removed or report.budget_removed:
            logger.info(
                "sweep: %d expired, %d over budget, %d bytes freed",
                report.expired_removed, report.budget_removed, report.bytes_freed,
            )
        return report

    async def _expire(self, category: str) -> Result[SweepReport, DiskIOError]:
        match await self._disk.entries(category):
            case Error(err):
                return Error(err)
            case Ok(infos):
                pass

        now = self._clock()
        removed = 0
        freed = 0
        for info in infos:
            if info.expires_at is not None and now < info.expires_at:
                continue
            async with self._locks.hold(memory_key(category, info.token)):
                # The listing may predate a write that finished while we waited
                match await self._disk.expiry(category, info.token):
                    case Error(err):
                        return Error(err)
                    case Ok(expires_at) if expires_at is not None and now < expires_at:
                        continue
                    case Ok(_):
                        pass
                match await self._disk.delete(category, info.token):
                    case Error(err):
                        return Error(err)
                    case Ok(True):
                        removed += 1
                        freed += info.size
                    case Ok(False):
                        pass

        match await self._disk.remove_orphans(category):
            case Error(err):
                return Error(err)
            case Ok(_):
                pass
        return Ok(SweepReport(expired_removed=removed, bytes_freed=freed))

    async def _shrink(self, category: str, max_bytes: int) -> Result[SweepReport, DiskIOError]:
        match await self._disk.size_of(category):
            case Error(err):
                return Error(err)
            case Ok(total):
                pass
        if total <= max_bytes:
            return Ok(SweepReport())

        match await self._disk.entries(category):
            case Error(err):
                return Error(err)
            case Ok(infos):
                pass

        removed = 0
        freed = 0
        for info in sorted(infos, key=lambda i: (i.modified_at, i.token)):
            if total <= max_bytes:
                break
            async with self._locks.hold(memory_key(category, info.token)):
                match await self._disk.delete(category, info.token):
                    case Error(err):
                        return Error(err)
                    case Ok(_):
                        total -= info.size
                        removed += 1
                        freed += info.size
                        logger.debug("evict: %s/%s (%d bytes)", category, info.token, info.size)
        return Ok(SweepReport(budget_removed=removed, bytes_freed=freed))

    # ───────────────────────────────────────────────────────────────────────────
    # Background loop
    # ───────────────────────────────────────────────────────────────────────────

    def start(self, interval: timedelta) -> None:
        """Sweep every `interval` until stop(). No-op if already running."""
        if self.running:
            return
        self._task = asyncio.ensure_future(self._loop(interval.total_seconds()))

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.sweep()


def _recover(category: str, result: Result[SweepReport, DiskIOError]) -> SweepReport:
    match result:
        case Ok(report):
            return report
        case Error(err):
            logger.warning("sweep: skipping %s: %s", category, err)
            return SweepReport(failed=(category,))


__all__ = ("EvictionEngine",)
