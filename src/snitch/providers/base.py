"""Provider capability contract and the shared pending-list implementation."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import timedelta
from typing import Protocol, runtime_checkable

from snitch.models import Sample, ScanResult

logger = logging.getLogger(__name__)


@runtime_checkable
class Provider(Protocol):
    name: str

    @property
    def threshold(self) -> timedelta:
        """Cool-down to honour between two batches."""
        ...

    @property
    def max_requests(self) -> int:
        """Number of scans allowed per cool-down window."""
        ...

    def add(self, sample: Sample) -> None: ...

    def remove(self, sample: Sample) -> None: ...

    def samples(self) -> list[Sample]:
        """Snapshot of the pending list."""
        ...

    async def wait_for_samples(self, timeout: float) -> bool:
        """Wait until something is pending. Returns False on timeout."""
        ...

    async def scan(self, sample: Sample) -> ScanResult | None:
        """Query the provider once.

        Returns None while the sample is unknown; raises ScanFailure when the
        query itself fails.
        """
        ...

    async def aclose(self) -> None: ...


class PendingProvider:
    """Lock-protected pending list shared by the concrete providers.

    ``add``/``remove``/``samples`` may be called from any thread. The lock is
    only held for list operations, never across a scan.
    """

    name = "pending"

    def __init__(self, max_requests: int, threshold: timedelta) -> None:
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        self._max_requests = max_requests
        self._threshold = threshold
        self._pending: list[Sample] = []
        self._lock = threading.Lock()
        self._has_work = asyncio.Event()
        # Loop whose scan task waits on _has_work; Event.set is not thread-safe.
        self._waiter_loop: asyncio.AbstractEventLoop | None = None

    @property
    def threshold(self) -> timedelta:
        return self._threshold

    @property
    def max_requests(self) -> int:
        return self._max_requests

    def add(self, sample: Sample) -> None:
        with self._lock:
            self._pending.append(sample)
            loop = self._waiter_loop
        self._wake(loop)

    def remove(self, sample: Sample) -> None:
        with self._lock:
            before = len(self._pending)
            self._pending = [s for s in self._pending if s.hash != sample.hash]
            removed = before - len(self._pending)
            if not self._pending:
                self._has_work.clear()
        if removed:
            logger.debug("%s: dropped %s from pending list", self.name, sample.hash)

    def samples(self) -> list[Sample]:
        with self._lock:
            return list(self._pending)

    async def wait_for_samples(self, timeout: float) -> bool:
        with self._lock:
            if self._pending:
                return True
            self._has_work.clear()
            self._waiter_loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(self._has_work.wait(), timeout)
        except TimeoutError:
            return False
        return True

    def _wake(self, loop: asyncio.AbstractEventLoop | None) -> None:
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if loop is None or loop is current or loop.is_closed():
            self._has_work.set()
        else:
            loop.call_soon_threadsafe(self._has_work.set)

    async def scan(self, sample: Sample) -> ScanResult | None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, max_requests={self._max_requests}, "
            f"threshold={self._threshold}, pending={len(self.samples())})"
        )
