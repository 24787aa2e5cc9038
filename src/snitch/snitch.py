"""Coordinator: fans samples out to providers and reports each burned sample once."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from snitch.errors import ConfigError
from snitch.models import Sample, ScanResult
from snitch.scanloop import scan_loop

if TYPE_CHECKING:
    from snitch.config import SnitchConfig
    from snitch.providers.base import Provider

logger = logging.getLogger(__name__)

FlaggedCallback = Callable[[ScanResult], None | Awaitable[None]]


class Snitch:
    """Owns the provider registry, the ingestion queue and flagged-result handling.

    Lifecycle: ``register`` providers, ``await start()``, feed samples with
    ``add``/``add_nowait``, then ``await stop()`` exactly once. ``on_flagged``
    is called at most once per hash; sync callbacks run in a worker thread and
    may overlap each other.
    """

    def __init__(
        self,
        on_flagged: FlaggedCallback | None = None,
        *,
        idle_interval: float = 30.0,
        scan_timeout: float | None = 60.0,
    ) -> None:
        self.on_flagged = on_flagged
        self.idle_interval = idle_interval
        self.scan_timeout = scan_timeout

        self._providers: dict[str, Provider] = {}
        self._queue: asyncio.Queue[Sample] = asyncio.Queue()
        self._stop = asyncio.Event()
        self._seen: set[str] = set()
        self._flagged: set[str] = set()

        self._ingest_task: asyncio.Task | None = None
        self._loop_tasks: list[asyncio.Task] = []
        self._callback_tasks: set[asyncio.Task] = set()
        self._started = False
        self._stopped = False

    @classmethod
    def from_config(cls, cfg: SnitchConfig, on_flagged: FlaggedCallback | None = None) -> Snitch:
        from snitch.providers import build_providers

        sn = cls(on_flagged, idle_interval=cfg.idle_interval, scan_timeout=cfg.scan_timeout)
        for provider in build_providers(cfg):
            sn.register(provider)
        return sn

    @property
    def providers(self) -> dict[str, Provider]:
        return dict(self._providers)

    @property
    def flagged(self) -> frozenset[str]:
        return frozenset(self._flagged)

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    def register(self, provider: Provider) -> None:
        if self._started:
            raise RuntimeError("providers must be registered before start()")
        if provider.name in self._providers:
            logger.debug("Replacing provider %s", provider.name)
        self._providers[provider.name] = provider

    async def start(self) -> None:
        if self._started:
            raise RuntimeError("Snitch already started")
        if not self._providers:
            raise ConfigError("No providers registered")
        self._started = True

        for provider in self._providers.values():
            task = asyncio.create_task(
                scan_loop(
                    provider,
                    self._stop,
                    self._handle_result,
                    idle_interval=self.idle_interval,
                    scan_timeout=self.scan_timeout,
                ),
                name=f"scan-{provider.name}",
            )
            self._loop_tasks.append(task)
        self._ingest_task = asyncio.create_task(self._ingest(), name="ingest")
        logger.info("Monitoring with %d provider(s): %s", len(self._providers), ", ".join(self._providers))

    async def stop(self) -> None:
        """Stop every loop, wait for pending callbacks and close providers.

        Must be called exactly once, after ``start()``.
        """
        if not self._started:
            raise RuntimeError("Snitch.stop() called before start()")
        if self._stopped:
            raise RuntimeError("Snitch.stop() called twice")
        self._stopped = True
        self._stop.set()

        self._ingest_task.cancel()
        results = await asyncio.gather(self._ingest_task, *self._loop_tasks, return_exceptions=True)
        for task, outcome in zip(self._loop_tasks, results[1:]):
            if isinstance(outcome, Exception):
                logger.error("%s ended with an error: %r", task.get_name(), outcome)

        if self._callback_tasks:
            await asyncio.gather(*self._callback_tasks)
        for provider in self._providers.values():
            await provider.aclose()
        logger.info("Stopped (%d sample(s) flagged)", len(self._flagged))

    async def run_forever(self) -> None:
        """Block until ``stop()`` is called from another task."""
        await self._stop.wait()

    async def add(self, name: str, hash: str) -> None:
        await self._queue.put(Sample(name=name, hash=hash))

    def add_nowait(self, name: str, hash: str) -> None:
        self._queue.put_nowait(Sample(name=name, hash=hash))

    def pending(self) -> dict[str, int]:
        return {name: len(p.samples()) for name, p in self._providers.items()}

    async def __aenter__(self) -> Snitch:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _ingest(self) -> None:
        while True:
            sample = await self._queue.get()
            if sample.hash in self._seen:
                logger.debug("Already monitoring %s, ignoring %s", sample.hash, sample.name)
                continue
            self._seen.add(sample.hash)
            for provider in self._providers.values():
                provider.add(sample)
            logger.debug("Queued %s (%s) on %d provider(s)", sample.name, sample.hash, len(self._providers))

    def _handle_result(self, result: ScanResult) -> None:
        sample = result.sample
        if sample.hash in self._flagged:
            logger.debug("%s already reported, ignoring hit from %s", sample.hash, result.provider)
            return
        self._flagged.add(sample.hash)

        # Drop it everywhere before notifying so no other provider reports it.
        for provider in self._providers.values():
            provider.remove(sample)
        logger.info("%s (%s) flagged by %s", sample.name, sample.hash, result.provider)

        if self.on_flagged is None:
            return
        task = asyncio.create_task(self._notify(result))
        self._callback_tasks.add(task)
        task.add_done_callback(self._callback_tasks.discard)

    async def _notify(self, result: ScanResult) -> None:
        try:
            if inspect.iscoroutinefunction(self.on_flagged):
                await self.on_flagged(result)
            else:
                # Callable objects with an async __call__ hand back a coroutine.
                outcome = await asyncio.to_thread(self.on_flagged, result)
                if inspect.isawaitable(outcome):
                    await outcome
        except Exception:
            logger.exception("Flagged callback failed for %s", result.sample.hash)
