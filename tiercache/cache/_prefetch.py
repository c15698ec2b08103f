"""
Prefetch groups — bulk warm-up, cancellable as a unit.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping

from kungfu import Result

from tiercache.cache._types import FetchFailed


class PrefetchGroup:
    """
    Background fetches started by Cache.prefetch().

    Note: cancel() detaches the group's waiters, which cancels every fetch
    nobody else is waiting on. A fetch another caller also awaits keeps
    running for that caller.
    """

    def __init__(self, tasks: Mapping[str, asyncio.Task[Result[bytes, FetchFailed]]]) -> None:
        self._tasks = dict(tasks)
        self._callbacks: list[Callable[[PrefetchGroup], None]] = []
        if not self._tasks:
            return
        remaining = len(self._tasks)

        def _on_done(_: asyncio.Task[Result[bytes, FetchFailed]]) -> None:
            nonlocal remaining
            remaining -= 1
            if remaining == 0:
                for cb in self._callbacks:
                    cb(self)

        for task in self._tasks.values():
            task.add_done_callback(_on_done)

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(self._tasks)

    @property
    def done(self) -> bool:
        return all(t.done() for t in self._tasks.values())

    def add_done_callback(self, cb: Callable[[PrefetchGroup], None]) -> None:
        if self.done:
            cb(self)
        else:
            self._callbacks.append(cb)

    def cancel(self, keys: Iterable[str] | None = None) -> None:
        """Cancel the whole group, or only `keys`. Unknown keys are ignored."""
        selected = self._tasks if keys is None else {k: self._tasks[k] for k in keys if k in self._tasks}
        for task in selected.values():
            task.cancel()

    async def wait(self) -> dict[str, Result[bytes, FetchFailed]]:
        """Await every fetch. Cancelled keys are left out of the result."""
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        return {
            key: task.result()
            for key, task in self._tasks.items()
            if not task.cancelled() and task.exception() is None
        }


__all__ = ("PrefetchGroup",)
