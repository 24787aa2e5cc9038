"""Per-provider batch scan loop.

Each round snapshots the provider's pending list, scans it in chunks of
``max_requests`` and pauses ``threshold`` after every chunk, so the
provider's quota is respected across rounds too. A failing scan only skips
that sample for the round.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Sequence

from snitch.errors import ScanFailure
from snitch.models import Sample, ScanResult
from snitch.providers.base import Provider

logger = logging.getLogger(__name__)

ResultHandler = Callable[[ScanResult], None]
# Waits for the given number of seconds; returns True if stopped meanwhile.
Pause = Callable[[float], Awaitable[bool]]


def chunks(samples: Sequence[Sample], size: int) -> list[list[Sample]]:
    """Split into consecutive chunks of ``size``; the last one may be shorter."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [list(samples[i : i + size]) for i in range(0, len(samples), size)]


async def wait_stopped(stop: asyncio.Event, seconds: float) -> bool:
    """Sleep for ``seconds`` unless ``stop`` fires first."""
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), seconds)
    except TimeoutError:
        return False
    return True


async def scan_round(
    provider: Provider,
    stop: asyncio.Event,
    on_result: ResultHandler,
    *,
    scan_timeout: float | None = None,
    pause: Pause | None = None,
) -> int:
    """Scan one snapshot of the pending list. Returns the number of chunks run."""
    pause = pause or functools.partial(wait_stopped, stop)

    batches = chunks(provider.samples(), provider.max_requests)
    logger.debug(
        "%s: round of %d chunk(s) of up to %d",
        provider.name, len(batches), provider.max_requests,
    )

    done = 0
    for batch in batches:
        for sample in batch:
            if stop.is_set():
                return done
            if sample not in provider.samples():
                # flagged elsewhere since the snapshot
                continue
            result = await _scan_one(provider, sample, scan_timeout)
            if result is not None:
                on_result(result)
                provider.remove(sample)
        done += 1
        # Sleep after every batch, including the last: the next round's
        # first batch counts against the same quota.
        if await pause(provider.threshold.total_seconds()):
            break
    return done


async def scan_loop(
    provider: Provider,
    stop: asyncio.Event,
    on_result: ResultHandler,
    *,
    idle_interval: float = 30.0,
    scan_timeout: float | None = None,
    pause: Pause | None = None,
) -> None:
    """Run rounds until ``stop`` is set."""
    logger.info(
        "%s: scan loop started (%d request(s) every %s)",
        provider.name, provider.max_requests, provider.threshold,
    )
    while not stop.is_set():
        if not provider.samples():
            await _wait_for_work(provider, stop, idle_interval)
            continue
        await scan_round(
            provider, stop, on_result, scan_timeout=scan_timeout, pause=pause
        )
    logger.info("%s: scan loop stopped", provider.name)


async def _scan_one(
    provider: Provider, sample: Sample, timeout: float | None
) -> ScanResult | None:
    try:
        if timeout is None:
            return await provider.scan(sample)
        return await asyncio.wait_for(provider.scan(sample), timeout)
    except ScanFailure as exc:
        logger.warning("%s (will retry next round)", exc)
    except TimeoutError:
        logger.warning(
            "%s: scan of %s timed out after %.0fs (will retry next round)",
            provider.name, sample.hash, timeout,
        )
    except Exception:
        logger.exception("%s: unexpected error scanning %s", provider.name, sample.hash)
    return None


async def _wait_for_work(provider: Provider, stop: asyncio.Event, timeout: float) -> None:
    work = asyncio.ensure_future(provider.wait_for_samples(timeout))
    stopped = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({work, stopped}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work, stopped):
            if not task.done():
                task.cancel()
