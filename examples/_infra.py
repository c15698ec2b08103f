"""Shared infrastructure for examples."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field


# Errors
@dataclass(frozen=True, slots=True)
class UpstreamDown(Exception):
    url: str

    def __str__(self) -> str:
        return f"{self.url}: upstream unavailable"


# Fake image server
@dataclass(slots=True)
class FakeImageServer:
    """Serves deterministic bytes per path; fails the first `flaky` calls."""

    latency: float = 0.05
    flaky: int = 0
    downloads: dict[str, int] = field(default_factory=dict)

    async def download(self, path: str) -> bytes:
        await asyncio.sleep(self.latency)
        self.downloads[path] = self.downloads.get(path, 0) + 1
        if self.flaky > 0:
            self.flaky -= 1
            raise UpstreamDown(path)
        return f"<image {path}>".encode()


# Helpers
def banner(title: str) -> None:
    print(f"\n{'─' * 50}\n{title}\n{'─' * 50}")


def run(main: Callable[[], Coroutine[object, object, None]]) -> None:
    asyncio.run(main())
