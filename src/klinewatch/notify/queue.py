from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Protocol

import structlog

from klinewatch.utils.types import PendingAlert

log = structlog.get_logger("dispatcher")


class AlertSink(Protocol):
    async def send(self, destination: str, text: str, render_options: dict) -> None: ...


@dataclass(slots=True)
class QueueStats:
    enq_ok: int = 0
    deq_ok: int = 0
    delivered: int = 0
    failed: int = 0


@dataclass(slots=True)
class DispatcherConfig:
    destination: str
    interval_s: float = 1.1            # one message per tick
    warn_depth: int = 200              # log when backlog grows past this
    render_options: dict = field(
        default_factory=lambda: {"parse_mode": "Markdown", "disable_web_page_preview": True}
    )


class AlertDispatcher:
    """
    Single shared, unbounded FIFO of PendingAlert drained at a fixed cadence.

    - enqueue() never blocks and never drops; many symbol streams call it.
    - The drain task pops at most one alert per tick and hands it to the sink
      in a tracked background task, so a slow delivery does not stretch the
      cadence.
    - Delivery errors are logged and the alert is gone (at-most-once).

    Under an alert storm the backlog grows without bound and delivery latency
    grows with it (depth x interval_s). warn_depth makes that visible in logs.
    """
    def __init__(self, cfg: DispatcherConfig, sink: AlertSink):
        if cfg.interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.cfg = cfg
        self.sink = sink
        self._q: asyncio.Queue[PendingAlert] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()
        self._stop = asyncio.Event()
        self._warned = False
        self.stats = QueueStats()

    def enqueue(self, alert: PendingAlert) -> None:
        self._q.put_nowait(alert)
        self.stats.enq_ok += 1
        depth = self._q.qsize()
        if depth > self.cfg.warn_depth and not self._warned:
            self._warned = True
            log.warning(
                "alert_backlog_high",
                depth=depth,
                est_delay_s=round(depth * self.cfg.interval_s, 1),
            )
        log.info("alert_queued", symbol=alert.symbol, rule=alert.rule, depth=depth)

    def qsize(self) -> int:
        return self._q.qsize()

    async def start(self) -> None:
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="alert-dispatcher")

    async def stop(self, flush: bool = False) -> None:
        """
        Cancel the drain loop and wait for in-flight deliveries.
        flush=True keeps draining (same cadence) until the queue is empty first.
        """
        if flush:
            while not self._q.empty() and self._task is not None and not self._task.done():
                await asyncio.sleep(self.cfg.interval_s)
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        discarded = self._q.qsize()
        if discarded:
            log.info("alerts_discarded_on_stop", count=discarded)

    # ---------- drain core ----------

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.cfg.interval_s
        try:
            while not self._stop.is_set():
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
                next_tick += self.cfg.interval_s
                if next_tick < loop.time():
                    # fell behind (loop stalled): never burst to catch up
                    next_tick = loop.time() + self.cfg.interval_s
                self._drain_one()
        except asyncio.CancelledError:
            return

    def _drain_one(self) -> None:
        try:
            alert = self._q.get_nowait()
        except asyncio.QueueEmpty:
            return
        self.stats.deq_ok += 1
        if self._q.qsize() <= self.cfg.warn_depth:
            self._warned = False
        task = asyncio.create_task(self._deliver(alert), name=f"deliver-{alert.symbol}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _deliver(self, alert: PendingAlert) -> None:
        try:
            await self.sink.send(self.cfg.destination, alert.text, dict(self.cfg.render_options))
            self.stats.delivered += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.stats.failed += 1
            log.warning("alert_delivery_failed", symbol=alert.symbol, err=str(e))
