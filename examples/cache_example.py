"""
Cache — memory tier → disk tier → coalesced fetch.

Key concepts:
- One Cache per process, built at the composition root and injected
- Categories = disk subdirectories with their own TTL and byte budget
- get_or_fetch = cache, else fetch once (however many callers ask) and cache

Level 2: tiercache.cache
Level 1: kungfu.Result
"""

import asyncio
import tempfile
from datetime import timedelta
from pathlib import Path

from kungfu import Ok, Error
from tiercache import cache as C
from examples._infra import banner, run, FakeImageServer


server = FakeImageServer(latency=0.05, flaky=1)


def build_cache(root: Path) -> C.Cache:
    return (
        C.cache(root)
        .memory(cost_limit=1 * C.MiB, count_limit=50)
        .category("images", ttl=timedelta(days=7), max_bytes=128)
        .retry(C.retry(times=2, delay=timedelta(milliseconds=10)))
        .build()
    )


async def main() -> C.CacheStats:
    banner("Cache: Tiers, Coalescing, Eviction")

    with tempfile.TemporaryDirectory() as tmp:
        artifacts = build_cache(Path(tmp))

        print("\n1. Five concurrent requests for one poster (one download, one retry):")
        async def load_poster():
            return await artifacts.get_or_fetch(
                "/t/p/w500/poster_7.jpg",
                lambda: server.download("poster_7"),
                category="images",
            )

        results = await asyncio.gather(*[load_poster() for _ in range(5)])
        for r in results:
            match r:
                case Ok(data):
                    print(f"   {data!r}")
                case Error(e):
                    print(f"   error: {e}")
        print(f"   downloads: {server.downloads}")

        print("\n2. Drop memory tier, read again (promoted from disk):")
        artifacts.on_memory_pressure()
        data = await artifacts.get("/t/p/w500/poster_7.jpg", category="images")
        print(f"   {data!r}")

        print("\n3. Typed metadata round-trip:")
        await artifacts.put_value("movie_42", {"title": "Face/Off"}, C.JsonCodec(), ttl=timedelta(hours=24))
        print(f"   {await artifacts.get_value('movie_42', C.JsonCodec())}")

        print("\n4. Overfill the 128-byte image budget, then sweep:")
        for n in range(3):
            await artifacts.put(f"poster_{n}", bytes(40), category="images")
        report = await artifacts.sweep()
        print(f"   removed {report.budget_removed} entries, freed {report.bytes_freed} bytes")

        stats = await artifacts.stats()
        print(f"\n   stats: {dict(stats.entry_counts)} hit_rate={stats.hit_rate:.2f} disk={stats.formatted_disk_size}")
        await artifacts.aclose()

    print("\nDone!")
    return stats


if __name__ == "__main__":
    run(main)
