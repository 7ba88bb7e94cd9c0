from __future__ import annotations

import asyncio
from typing import Callable, Dict, Iterable, Optional, Protocol

import structlog

from klinewatch.data.registry import SymbolRegistry, SymbolSlot
from klinewatch.notify.queue import AlertDispatcher
from klinewatch.utils.types import AlertEvent, Kline, PendingAlert, Sample

log = structlog.get_logger("stream")


class Evaluator(Protocol):
    @property
    def window_capacity(self) -> int: ...
    def seed_value(self, sample: Sample) -> float: ...
    def observe(self, slot: SymbolSlot, sample: Sample) -> Optional[AlertEvent]: ...


class SymbolStream:
    """
    One symbol's ingestion actor.

    - Owns its registry slot (window + alert state); nothing else writes to it.
    - offer() is the only entry point for live events: forming klines are
      ignored, events before mark_ready() are dropped, the rest go to an
      unbounded inbox processed strictly in arrival order by run().
    - A failure while processing one sample is logged and the loop carries on.
    """
    def __init__(
        self,
        slot: SymbolSlot,
        evaluator: Evaluator,
        dispatcher: AlertDispatcher,
        format_fn: Callable[[AlertEvent], str],
    ):
        self.slot = slot
        self.symbol = slot.symbol
        self.evaluator = evaluator
        self.dispatcher = dispatcher
        self.format_fn = format_fn
        self.ready = False
        self.inbox: asyncio.Queue[Sample] = asyncio.Queue()
        self.dropped_not_ready = 0
        self.errors = 0

    # --- startup ---

    def seed(self, samples: Iterable[Sample]) -> int:
        """Replace the window contents with historical samples (oldest first)."""
        self.slot.window.clear()
        n = 0
        for s in samples:
            self.slot.window.push(self.evaluator.seed_value(s))
            n += 1
        return n

    def mark_ready(self) -> None:
        self.ready = True

    # --- live path ---

    def offer(self, kline: Kline) -> bool:
        if not kline.is_closed:
            return False
        if not self.ready:
            self.dropped_not_ready += 1
            return False
        self.inbox.put_nowait(kline.to_sample())
        return True

    def on_sample(self, sample: Sample) -> Optional[AlertEvent]:
        evt = self.evaluator.observe(self.slot, sample)
        if evt is not None:
            self.dispatcher.enqueue(
                PendingAlert(text=self.format_fn(evt), symbol=self.symbol, rule=evt.get("rule", ""))
            )
        return evt

    async def run(self) -> None:
        while True:
            sample = await self.inbox.get()
            try:
                self.on_sample(sample)
            except Exception as e:
                self.errors += 1
                log.warning("sample_processing_error", symbol=self.symbol, err=str(e))


class StreamIngestor:
    """
    Builds one SymbolStream per symbol in the universe and routes parsed
    klines to them by symbol. Each stream runs as its own task; the only
    state they share is the dispatcher queue.
    """
    def __init__(
        self,
        symbols: Iterable[str],
        evaluator: Evaluator,
        dispatcher: AlertDispatcher,
        format_fn: Callable[[AlertEvent], str],
        registry: Optional[SymbolRegistry] = None,
    ):
        self.registry = registry or SymbolRegistry(evaluator.window_capacity)
        self.streams: Dict[str, SymbolStream] = {}
        for sym in symbols:
            slot = self.registry.register(sym)
            self.streams[sym] = SymbolStream(slot, evaluator, dispatcher, format_fn)
        self._tasks: list[asyncio.Task] = []
        self.unknown_dropped = 0

    @property
    def symbols(self) -> list[str]:
        return list(self.streams.keys())

    def get(self, symbol: str) -> Optional[SymbolStream]:
        return self.streams.get(symbol)

    def route(self, kline: Kline) -> bool:
        stream = self.streams.get(kline.symbol)
        if stream is None:
            self.unknown_dropped += 1
            log.debug("kline_unknown_symbol", symbol=kline.symbol)
            return False
        return stream.offer(kline)

    async def start(self) -> None:
        for sym, stream in self.streams.items():
            self._tasks.append(asyncio.create_task(stream.run(), name=f"stream-{sym}"))
        log.info("streams_started", count=len(self._tasks))

    async def stop(self) -> None:
        for t in self._tasks:
            t.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
