"""Coalescer tests — one flight per key, shared result, cancellation isolation."""

import asyncio

import pytest
from kungfu import Result, Ok, Error

from tiercache.cache import FetchCoalescer


class Upstream:
    def __init__(self, delay: float = 0.05, fail: bool = False) -> None:
        self.delay = delay
        self.fail = fail
        self.calls: list[str] = []

    def flight(self, key: str):
        async def run() -> Result[str, str]:
            self.calls.append(key)
            await asyncio.sleep(self.delay)
            if self.fail:
                return Error(f"{key} unavailable")
            return Ok(f"value:{key}")
        return run


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_flight():
    coalescer = FetchCoalescer[str, str]()
    upstream = Upstream()

    results = await asyncio.gather(*[
        coalescer.run("poster_7", upstream.flight("poster_7")) for _ in range(10)
    ])

    assert upstream.calls == ["poster_7"]
    for r in results:
        match r:
            case Ok(value):
                assert value == "value:poster_7"
            case Error(e):
                pytest.fail(e)


@pytest.mark.asyncio
async def test_distinct_keys_fly_independently():
    coalescer = FetchCoalescer[str, str]()
    upstream = Upstream()

    await asyncio.gather(
        coalescer.run("a", upstream.flight("a")),
        coalescer.run("b", upstream.flight("b")),
    )

    assert sorted(upstream.calls) == ["a", "b"]


@pytest.mark.asyncio
async def test_failure_is_shared_and_not_remembered():
    coalescer = FetchCoalescer[str, str]()
    upstream = Upstream(fail=True)

    results = await asyncio.gather(*[
        coalescer.run("k", upstream.flight("k")) for _ in range(3)
    ])
    assert all(isinstance(r, Error) for r in results)
    assert upstream.calls == ["k"]

    upstream.fail = False
    match await coalescer.run("k", upstream.flight("k")):
        case Ok(value):
            assert value == "value:k"
        case Error(e):
            pytest.fail(e)
    assert upstream.calls == ["k", "k"]


@pytest.mark.asyncio
async def test_key_released_after_completion():
    coalescer = FetchCoalescer[str, str]()
    upstream = Upstream(delay=0.01)

    task = asyncio.ensure_future(coalescer.run("k", upstream.flight("k")))
    await asyncio.sleep(0)
    assert "k" in coalescer
    await task
    await asyncio.sleep(0)
    assert coalescer.in_flight() == frozenset()


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_others():
    coalescer = FetchCoalescer[str, str]()
    upstream = Upstream(delay=0.05)

    first = asyncio.ensure_future(coalescer.run("k", upstream.flight("k")))
    second = asyncio.ensure_future(coalescer.run("k", upstream.flight("k")))
    await asyncio.sleep(0.01)
    first.cancel()

    match await second:
        case Ok(value):
            assert value == "value:k"
        case Error(e):
            pytest.fail(e)
    assert first.cancelled()
    assert upstream.calls == ["k"]


@pytest.mark.asyncio
async def test_last_waiter_cancelled_cancels_flight():
    coalescer = FetchCoalescer[str, str]()
    started, cancelled = asyncio.Event(), asyncio.Event()

    async def flight() -> Result[str, str]:
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return Ok("late")

    first = asyncio.ensure_future(coalescer.run("k", flight))
    second = asyncio.ensure_future(coalescer.run("k", flight))
    await asyncio.wait_for(started.wait(), timeout=1)
    assert coalescer.waiters("k") == 2

    first.cancel()
    await asyncio.sleep(0.01)
    assert coalescer.waiters("k") == 1
    assert not cancelled.is_set()

    second.cancel()
    await asyncio.wait_for(cancelled.wait(), timeout=1)
    await asyncio.sleep(0)
    assert coalescer.in_flight() == frozenset()
    assert first.cancelled() and second.cancelled()


@pytest.mark.asyncio
async def test_cancel_all():
    coalescer = FetchCoalescer[str, str]()
    upstream = Upstream(delay=10)

    waiter = asyncio.ensure_future(coalescer.run("k", upstream.flight("k")))
    await asyncio.sleep(0.01)
    await coalescer.cancel_all()

    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert coalescer.in_flight() == frozenset()
