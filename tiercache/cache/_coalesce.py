"""
Fetch coalescer — single-flight per key.

N concurrent misses for the same key share one task, so the upstream fetch
runs once and every waiter receives the same Result. A flight whose waiters
have all been cancelled is cancelled too.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from kungfu import Result

logger = logging.getLogger(__name__)

type Flight[T, E] = Callable[[], Coroutine[Any, Any, Result[T, E]]]


class FetchCoalescer[T, E]:
    """
    Map of key → in-flight task.

    Note: Waiters await the task through asyncio.shield. Cancelling one
    waiter detaches it; the shared task is cancelled only once no waiter
    is left.

    Example:
        coalescer = FetchCoalescer[bytes, FetchFailed]()
        result = await coalescer.run("poster_7", lambda: download("poster_7"))
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[Result[T, E]]] = {}
        self._waiters: dict[asyncio.Task[Result[T, E]], int] = {}

    def in_flight(self) -> frozenset[str]:
        """Keys with a fetch currently running."""
        return frozenset(self._in_flight)

    def __contains__(self, key: str) -> bool:
        return key in self._in_flight

    def waiters(self, key: str) -> int:
        """Callers currently awaiting the flight for `key`."""
        task = self._in_flight.get(key)
        return 0 if task is None else self._waiters.get(task, 0)

    async def run(self, key: str, flight: Flight[T, E]) -> Result[T, E]:
        """Join the running flight for `key`, or start one."""
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(flight())
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug("coalesce: joined in-flight fetch for %s", key)

        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            return await asyncio.shield(task)
        finally:
            self._detach(key, task)

    async def cancel_all(self) -> None:
        """Cancel every in-flight task and wait for them to unwind."""
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _detach(self, key: str, task: asyncio.Task[Result[T, E]]) -> None:
        remaining = self._waiters[task] - 1
        if remaining:
            self._waiters[task] = remaining
            return
        del self._waiters[task]
        if not task.done():
            logger.debug("coalesce: no waiters left for %s, cancelling fetch", key)
            task.cancel()

    def _release(self, key: str, task: asyncio.Task[Result[T, E]]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.error("coalesce: flight for %s raised", key, exc_info=task.exception())


__all__ = ("FetchCoalescer", "Flight")
