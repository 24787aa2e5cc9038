"""Test helpers: an in-memory provider with scripted answers."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from snitch.errors import ScanFailure
from snitch.models import Sample, ScanResult
from snitch.providers.base import PendingProvider

SEEN_AT = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class FakeProvider(PendingProvider):
    """Flags hashes in ``hits``; raises ScanFailure for hashes in ``failures``."""

    def __init__(
        self,
        name: str = "fake",
        max_requests: int = 4,
        threshold: timedelta = timedelta(0),
        hits: set[str] | None = None,
        failures: set[str] | None = None,
    ) -> None:
        super().__init__(max_requests, threshold)
        self.name = name
        self.hits = hits or set()
        self.failures = failures or set()
        self.scanned: list[str] = []
        self.closed = False

    async def scan(self, sample: Sample) -> ScanResult | None:
        self.scanned.append(sample.hash)
        if sample.hash in self.failures:
            raise ScanFailure(self.name, sample, "provider unavailable")
        if sample.hash in self.hits:
            return ScanResult(sample=sample, provider=self.name, last_seen=SEEN_AT)
        return None

    async def aclose(self) -> None:
        self.closed = True


def make_samples(count: int) -> list[Sample]:
    return [Sample(name=f"implant-{i}.exe", hash=f"h{i}") for i in range(1, count + 1)]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def close_all(*providers) -> None:
    async def _close():
        for provider in providers:
            await provider.aclose()

    asyncio.run(_close())
