"""
Retry policy — bounded retries with a fixed delay.

No backoff, no jitter: 1 + times attempts, `delay` apart.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from kungfu import LazyCoroResult, Result, Ok, Error
from combinators import lift as L

from tiercache._types import Fetch
from tiercache.cache._types import FetchFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry a failed fetch `times` more times, waiting `delay` in between."""

    times: int = 2
    delay: timedelta = timedelta(seconds=1)

    def __post_init__(self) -> None:
        if self.times < 0:
            raise ValueError("retry times must be >= 0")
        if self.delay < timedelta(0):
            raise ValueError("retry delay must be >= 0")

    @property
    def attempts(self) -> int:
        return self.times + 1


def retry(times: int = 2, delay: timedelta = timedelta(seconds=1)) -> RetryPolicy:
    """
    Create a retry policy.

    Example:
        C.retry(times=2, delay=timedelta(seconds=1))
        C.retry(times=0)  # single attempt
    """
    return RetryPolicy(times, delay)


NO_RETRY = RetryPolicy(times=0, delay=timedelta(0))


def retrying(key: str, fetch: Fetch, policy: RetryPolicy) -> LazyCoroResult[bytes, FetchFailed]:
    """
    Wrap a caller fetch with the policy.

    Exceptions from `fetch` are captured per attempt; after the last one the
    result is Error(FetchFailed) carrying the final cause.
    """
    delay = policy.delay.total_seconds()

    async def execute() -> Result[bytes, FetchFailed]:
        last: BaseException | None = None
        for attempt in range(1, policy.attempts + 1):
            result = await L.catching_async(fetch, on_error=lambda e: e)
            match result:
                case Ok(payload):
                    return Ok(payload)
                case Error(asyncio.CancelledError() as cancelled):
                    raise cancelled
                case Error(e):
                    last = e
                    logger.warning(
                        "fetch %r failed (attempt %d/%d): %s",
                        key, attempt, policy.attempts, e,
                    )
            if attempt < policy.attempts:
                await asyncio.sleep(delay)
        return Error(FetchFailed(key=key, attempts=policy.attempts, cause=last))

    return LazyCoroResult(execute)


__all__ = ("RetryPolicy", "retry", "retrying", "NO_RETRY")
