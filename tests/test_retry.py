"""Retry tests — attempt counting, fixed delay, final cause."""

from datetime import timedelta

import pytest
from kungfu import Ok, Error

from tiercache.cache import FetchFailed, RetryPolicy, retry, retrying, NO_RETRY


class Flaky:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> bytes:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls}")
        return b"ok"


FAST = retry(times=2, delay=timedelta(0))


@pytest.mark.asyncio
async def test_success_on_first_attempt():
    fetch = Flaky(failures=0)
    match await retrying("k", fetch, FAST):
        case Ok(data):
            assert data == b"ok"
        case Error(e):
            pytest.fail(str(e))
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_recovers_within_budget():
    fetch = Flaky(failures=2)
    match await retrying("k", fetch, FAST):
        case Ok(data):
            assert data == b"ok"
        case Error(e):
            pytest.fail(str(e))
    assert fetch.calls == 3


@pytest.mark.asyncio
async def test_exhausted_reports_last_cause():
    fetch = Flaky(failures=10)
    match await retrying("poster_7", fetch, FAST):
        case Error(FetchFailed(key=key, attempts=attempts, cause=cause)):
            assert key == "poster_7"
            assert attempts == 3
            assert isinstance(cause, ConnectionError)
            assert str(cause) == "attempt 3"
        case other:
            pytest.fail(f"unexpected {other}")
    assert fetch.calls == 3


@pytest.mark.asyncio
async def test_no_retry_is_single_attempt():
    fetch = Flaky(failures=1)
    match await retrying("k", fetch, NO_RETRY):
        case Error(FetchFailed(attempts=1)):
            pass
        case other:
            pytest.fail(f"unexpected {other}")
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_waits_between_attempts(monkeypatch):
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr("tiercache.cache._retry.asyncio.sleep", fake_sleep)
    await retrying("k", Flaky(failures=10), retry(times=2, delay=timedelta(seconds=1)))

    assert delays == [1.0, 1.0]


def test_default_policy():
    policy = RetryPolicy()
    assert policy.times == 2
    assert policy.delay == timedelta(seconds=1)
    assert policy.attempts == 3


def test_negative_values_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(times=-1)
    with pytest.raises(ValueError):
        RetryPolicy(delay=timedelta(seconds=-1))
