"""Eviction tests — expiration sweep, oldest-first budget eviction, background loop."""

import asyncio
import os
from datetime import timedelta
from pathlib import Path

import pytest

from tiercache.cache import CategoryConfig, DiskTier, EvictionEngine
from tiercache.cache._disk import encode_sidecar
from tiercache.cache._keys import memory_key
from tiercache.cache._locks import KeyedLocks

from conftest import FakeClock, disk_files, unwrap


IMAGES = CategoryConfig("images", ttl=timedelta(days=7), max_bytes=200)
NEWS = CategoryConfig("news", ttl=timedelta(hours=4))


async def write_aged(disk: DiskTier, clock: FakeClock, token: str, size: int, age_minutes: int) -> None:
    await disk.write("images", token, b"x" * size, clock() + timedelta(days=7))
    mtime = (clock() - timedelta(minutes=age_minutes)).timestamp()
    os.utime(disk.blob_path("images", token), (mtime, mtime))


@pytest.mark.asyncio
async def test_budget_removes_oldest_until_under_limit(root: Path, clock: FakeClock):
    disk = DiskTier(root, clock)
    engine = EvictionEngine(disk, [IMAGES], clock)
    await write_aged(disk, clock, "oldest", 100, age_minutes=30)
    await write_aged(disk, clock, "middle", 100, age_minutes=20)
    await write_aged(disk, clock, "newest", 100, age_minutes=10)

    report = await engine.enforce_budgets()

    assert report.budget_removed == 2
    assert disk_files(root / "images") == {"newest", "newest.meta"}
    assert unwrap(await disk.size_of("images")) <= 200


@pytest.mark.asyncio
async def test_budget_untouched_when_within_limit(root: Path, clock: FakeClock):
    disk = DiskTier(root, clock)
    engine = EvictionEngine(disk, [IMAGES], clock)
    await write_aged(disk, clock, "only", 50, age_minutes=5)

    report = await engine.enforce_budgets()

    assert report.budget_removed == 0
    assert "only" in disk_files(root / "images")


@pytest.mark.asyncio
async def test_categories_without_budget_are_skipped(root: Path, clock: FakeClock):
    disk = DiskTier(root, clock)
    engine = EvictionEngine(disk, [NEWS], clock)
    for n in range(5):
        await disk.write("news", f"story_{n}", b"x" * 1000, clock() + timedelta(hours=4))

    report = await engine.enforce_budgets()

    assert report.budget_removed == 0
    assert unwrap(await disk.count("news")) == 5


@pytest.mark.asyncio
async def test_expiration_pass_removes_expired_and_orphans(root: Path, clock: FakeClock):
    disk = DiskTier(root, clock)
    engine = EvictionEngine(disk, [NEWS], clock)
    await disk.write("news", "stale", b"x", clock() + timedelta(hours=1))
    await disk.write("news", "fresh", b"x", clock() + timedelta(hours=8))
    (root / "news" / "headless").write_bytes(b"no sidecar")
    (root / "news" / "ghost.meta").write_bytes(b"{}")

    clock.advance(hours=2)
    report = await engine.prune_expired()

    assert report.expired_removed == 2
    assert disk_files(root / "news") == {"fresh", "fresh.meta"}


@pytest.mark.asyncio
async def test_sweep_combines_both_passes(root: Path, clock: FakeClock):
    disk = DiskTier(root, clock)
    engine = EvictionEngine(disk, [IMAGES], clock)
    await disk.write("images", "expired", b"x" * 10, clock() + timedelta(minutes=1))
    await write_aged(disk, clock, "a", 150, age_minutes=20)
    await write_aged(disk, clock, "b", 150, age_minutes=10)

    clock.advance(minutes=5)
    report = await engine.sweep()

    assert report.expired_removed == 1
    assert report.budget_removed == 1
    assert report.bytes_freed > 0
    assert disk_files(root / "images") == {"b", "b.meta"}


@pytest.mark.asyncio
async def test_background_loop_sweeps_until_stopped(root: Path, clock: FakeClock):
    disk = DiskTier(root, clock)
    engine = EvictionEngine(disk, [NEWS], clock)
    await disk.write("news", "stale", b"x", clock() + timedelta(hours=1))
    clock.advance(hours=2)

    engine.start(timedelta(milliseconds=10))
    assert engine.running
    await asyncio.sleep(0.1)
    await engine.stop()

    assert not engine.running
    assert disk_files(root / "news") == set()


@pytest.mark.asyncio
async def test_background_loop_survives_failures(tmp_path: Path, clock: FakeClock):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"not a directory")
    engine = EvictionEngine(DiskTier(blocker, clock), [NEWS], clock)

    engine.start(timedelta(milliseconds=5))
    await asyncio.sleep(0.05)

    assert engine.running
    await engine.stop()


@pytest.mark.asyncio
async def test_expiration_pass_waits_for_in_progress_write(root: Path, clock: FakeClock):
    disk = DiskTier(root, clock)
    locks = KeyedLocks()
    engine = EvictionEngine(disk, [NEWS], clock, locks)
    directory = root / "news"
    directory.mkdir(parents=True)

    async with locks.hold(memory_key("news", "incoming")):
        # Blob renamed into place, sidecar not yet written
        (directory / "incoming").write_bytes(b"fresh")
        pruning = asyncio.ensure_future(engine.prune_expired())
        await asyncio.sleep(0.05)
        assert "incoming" in disk_files(directory)
        (directory / "incoming.meta").write_bytes(encode_sidecar(clock() + timedelta(hours=1)))

    report = await pruning

    assert report.expired_removed == 0
    assert disk_files(directory) == {"incoming", "incoming.meta"}
    assert unwrap(await disk.read("news", "incoming")) is not None


@pytest.mark.asyncio
async def test_unreadable_category_does_not_stop_the_sweep(root: Path, clock: FakeClock):
    broken = CategoryConfig("broken", ttl=timedelta(hours=1), max_bytes=10)
    disk = DiskTier(root, clock)
    engine = EvictionEngine(disk, [broken, NEWS, IMAGES], clock)
    root.mkdir(parents=True)
    (root / "broken").write_bytes(b"a file where a directory belongs")
    await disk.write("news", "stale", b"x", clock() + timedelta(hours=1))
    await write_aged(disk, clock, "a", 150, age_minutes=20)
    await write_aged(disk, clock, "b", 150, age_minutes=10)

    clock.advance(hours=2)
    report = await engine.sweep()

    assert report.failed == ("broken",)
    assert report.expired_removed == 1
    assert report.budget_removed == 1
    assert disk_files(root / "news") == set()
    assert disk_files(root / "images") == {"b", "b.meta"}
