from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Callable

import structlog
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from klinewatch.utils.backoff import ReconnectBackoff, jitter
from klinewatch.utils.time import seconds_since, utc_now_s
from klinewatch.utils.types import Kline
from klinewatch.ingest import parser  # must expose parse_kline_msg(dict)->Kline|None


@dataclass(slots=True)
class BinanceWSConfig:
    stream_url: str
    symbols: list[str]
    interval: str = "15m"
    # reconnect behavior
    max_backoff_s: float = 30.0
    initial_backoff_s: float = 0.25
    backoff_factor: float = 2.0
    # staleness: klines tick every ~2s per stream while trading, so silence is suspicious
    expect_heartbeat_s: float = 30.0
    # timeouts
    open_timeout_s: float = 10.0
    ping_interval_s: float = 20.0
    # params per SUBSCRIBE message
    subscribe_chunk: int = 200


class BinanceKlineWS:
    """
    Binance combined-stream kline client.

    Lifecycle:
      - Connect → SUBSCRIBE <symbol>@kline_<interval> (chunked) → Stream
      - On any error, close and reconnect with jittered backoff (cap)
      - Parses inbound JSON and hands every kline update to `on_kline`.
        Filtering forming klines is the consumer's job.

    Malformed messages are logged and dropped; they never end the loop.

    Usage:
        cfg = BinanceWSConfig(stream_url="wss://stream.binance.com:9443/stream", symbols=["btcusdt"])
        client = BinanceKlineWS(cfg, on_kline=ingestor.route)
        await client.start()   # runs until cancelled/stop() called
    """

    def __init__(self, cfg: BinanceWSConfig, on_kline: Callable[[Kline], object], name: str = "binance_ws"):
        self.cfg = cfg
        self.on_kline = on_kline
        self._log = structlog.get_logger(name)
        self._stop = asyncio.Event()
        self._last_msg_ts: float = 0.0
        self._ws = None
        self._req_id = 0
        self.backoff = ReconnectBackoff(cfg.initial_backoff_s, cfg.max_backoff_s, cfg.backoff_factor)

        self.connected: bool = False
        self.subscribed: bool = False
        self.malformed: int = 0

    # ---------------------------- public API ---------------------------- #

    async def start(self) -> None:
        while not self._stop.is_set():
            try:
                await self._connect_and_stream()
                if self._stop.is_set():
                    break
                # server closed us cleanly: reconnect right away
                self.backoff.reset()
            except asyncio.CancelledError:
                # allow cooperative shutdown without error
                break
            except Exception as e:
                # if we're stopping, don't backoff-sleep; just exit
                if self._stop.is_set():
                    break
                if self.subscribed:
                    # this attempt was streaming before it dropped
                    self.backoff.reset()
                backoff = self.backoff.next()
                self._log.warning(
                    "ws_error_reconnect", err=str(e), attempt=self.backoff.attempts, backoff_s=round(backoff, 3)
                )
                await asyncio.sleep(jitter(backoff))
        self._log.info("ws_loop_exit")

    async def stop(self) -> None:
        self._stop.set()
        if self._ws and hasattr(self._ws, "close"):
            try:
                await self._ws.close()
            except Exception as e:
                self._log.debug("ws_close_error", err=str(e))

    def stream_names(self) -> list[str]:
        return [f"{s.lower()}@kline_{self.cfg.interval}" for s in self.cfg.symbols]

    # --------------------------- core internals ------------------------- #

    async def _connect_and_stream(self) -> None:
        """
        Establishes connection, subscribes, then streams messages.
        Returns only on stop() or connection closure/error.
        """
        self._reset_state()
        url = self.cfg.stream_url

        self._log.info("ws_connecting", url=url, streams=len(self.cfg.symbols))
        async with ws_connect(
            url,
            open_timeout=self.cfg.open_timeout_s,
            ping_interval=self.cfg.ping_interval_s,
            ping_timeout=None,
            max_queue=None,
        ) as ws:
            self._ws = ws
            self.connected = True
            self._last_msg_ts = utc_now_s()
            self._log.info("ws_connected")

            await self._subscribe(ws)
            await self._stream_loop(ws)

    async def _subscribe(self, ws) -> None:
        names = self.stream_names()
        step = max(1, self.cfg.subscribe_chunk)
        for i in range(0, len(names), step):
            self._req_id += 1
            msg = {"method": "SUBSCRIBE", "params": names[i:i + step], "id": self._req_id}
            await ws.send(json.dumps(msg))
        # acks ({"result": null, "id": n}) arrive in the stream and are ignored there
        self.subscribed = True
        self._log.info("ws_subscribed", streams=len(names))

    async def _stream_loop(self, ws) -> None:
        """
        Reads messages and forwards klines. Monitors staleness and stop signal.
        """
        while not self._stop.is_set():
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=self._recv_timeout())
            except asyncio.TimeoutError:
                if seconds_since(self._last_msg_ts) > self.cfg.expect_heartbeat_s:
                    self._log.warning(
                        "ws_stale_no_messages",
                        age_s=round(seconds_since(self._last_msg_ts), 3),
                    )
                continue
            except ConnectionClosed as e:
                self._log.warning("ws_closed", code=getattr(e, "code", None), reason=str(e))
                raise
            except asyncio.CancelledError:
                if not self._stop.is_set():
                    raise
                # graceful path: socket closed after stop()
                self._log.info("ws_recv_cancelled")
                return

            self._last_msg_ts = utc_now_s()
            self.handle_raw(raw)

        self._log.info("ws_stream_loop_exit")

    def handle_raw(self, raw) -> None:
        try:
            msg = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.malformed += 1
            self._log.warning("ws_json_error", err=str(e))
            return

        try:
            kline = parser.parse_kline_msg(msg)
        except ValueError as e:
            self.malformed += 1
            self._log.warning("parse_kline_error", err=str(e), snippet=str(msg)[:200])
            return

        if kline is None:
            self._handle_non_kline(msg)
            return
        try:
            self.on_kline(kline)
        except Exception as e:
            self._log.warning("kline_route_error", symbol=kline.symbol, err=str(e))

    # --------------------------- helpers -------------------------------- #

    def healthy(self) -> bool:
        """Quick health signal."""
        if not self.connected or not self.subscribed:
            return False
        return seconds_since(self._last_msg_ts) <= self.cfg.expect_heartbeat_s

    def _handle_non_kline(self, msg) -> None:
        """
        Subscription acks and errors.
          {"result": null, "id": 1}
          {"error": {"code": 2, "msg": "Invalid request"}, "id": 1}
        """
        if isinstance(msg, dict) and msg.get("error"):
            self._log.warning("binance_stream_error", msg=msg)

    def _recv_timeout(self) -> float:
        # how long we're okay waiting for a message before we check staleness
        return max(1.0, min(self.cfg.expect_heartbeat_s, 5.0))

    def _reset_state(self) -> None:
        self.connected = False
        self.subscribed = False
        self._last_msg_ts = 0.0
        self._ws = None


def shard_symbols(symbols: list[str], per_conn: int) -> list[list[str]]:
    """Split the universe across connections (Binance caps streams per connection)."""
    per_conn = max(1, int(per_conn))
    return [symbols[i:i + per_conn] for i in range(0, len(symbols), per_conn)]
