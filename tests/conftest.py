"""Shared fixtures — a controllable clock and a tmp_path-rooted cache."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, UTC
from pathlib import Path

import pytest
from kungfu import Result, Ok, Error

from tiercache import cache as C


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=UTC)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def config(root: Path, clock: FakeClock) -> C.CacheConfig:
    return (
        C.CacheConfig(root=root)
        .with_clock(clock)
        .with_retry(C.RetryPolicy(times=2, delay=timedelta(0)))
    )


@pytest.fixture
def cache(config: C.CacheConfig) -> C.Cache:
    return C.Cache(config)


def disk_files(directory: Path) -> set[str]:
    if not directory.exists():
        return set()
    return {p.name for p in directory.iterdir()}


def unwrap[T](result: Result[T, object]) -> T:
    match result:
        case Ok(value):
            return value
        case Error(err):
            pytest.fail(f"expected Ok, got Error({err!r})")


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll until predicate() holds; fail after `timeout` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.001)
