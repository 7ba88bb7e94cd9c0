from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

import structlog

from klinewatch.ingest.stream import SymbolStream
from klinewatch.utils.types import Sample

log = structlog.get_logger("backfill")

# (symbol) -> closed samples, oldest first
FetchHistory = Callable[[str], Awaitable[list[Sample]]]


@dataclass(slots=True)
class BackfillStats:
    ok: int = 0
    failed: int = 0
    samples: int = 0


async def preload_symbol(stream: SymbolStream, fetch: FetchHistory, stats: BackfillStats) -> None:
    """
    Seed one stream's window. Whatever happens, the stream is marked ready
    afterwards: a failed symbol runs with an empty window and alerts later.
    """
    try:
        samples = await fetch(stream.symbol)
        n = stream.seed(samples)
        stats.ok += 1
        stats.samples += n
        log.info("backfill_ok", symbol=stream.symbol, samples=n)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        stats.failed += 1
        log.warning("backfill_failed", symbol=stream.symbol, err=str(e))
    finally:
        stream.mark_ready()


async def preload_all(
    streams: Sequence[SymbolStream],
    fetch: FetchHistory,
    batch_size: int = 20,
    delay_s: float = 1.0,
) -> BackfillStats:
    """
    Backfill in batches of `batch_size` concurrent fetches, sleeping `delay_s`
    between batches to stay under the REST weight limit.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    stats = BackfillStats()
    for i in range(0, len(streams), batch_size):
        batch = streams[i:i + batch_size]
        await asyncio.gather(*(preload_symbol(s, fetch, stats) for s in batch))
        if i + batch_size < len(streams):
            await asyncio.sleep(delay_s)
    log.info("backfill_done", ok=stats.ok, failed=stats.failed, samples=stats.samples)
    return stats
