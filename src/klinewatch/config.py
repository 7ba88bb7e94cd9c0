# src/klinewatch/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal

from klinewatch.alerts.rules import RsiRule, VolumeSpikeRule
from klinewatch.ingest.binance_rest import DEFAULT_STABLECOINS
from klinewatch.utils.time import interval_seconds

Mode = Literal["volume", "rsi"]

_TRUE = ("1", "true", "yes", "on")


@dataclass(slots=True)
class MonitorConfig:
    """
    Process configuration, read once at startup by config_from_env().
    """
    mode: Mode = "volume"
    interval: str = "15m"
    number_coins: int = 100
    quote_asset: str = "USDT"
    stablecoins: tuple[str, ...] = DEFAULT_STABLECOINS

    volume_rule: VolumeSpikeRule = field(default_factory=VolumeSpikeRule)
    rsi_rule: RsiRule = field(default_factory=RsiRule)

    # backfill pacing
    batch_size: int = 20
    batch_delay_s: float = 1.0

    # dispatcher
    dispatch_interval_s: float = 1.1
    queue_warn_depth: int = 200

    # endpoints
    rest_url: str = "https://api.binance.com"
    ws_url: str = "wss://stream.binance.com:9443/stream"
    max_streams_per_conn: int = 200

    @property
    def window_capacity(self) -> int:
        return self.volume_rule.window if self.mode == "volume" else self.rsi_rule.window


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default

def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default

def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return raw.strip().lower() in _TRUE


def config_from_env() -> MonitorConfig:
    """
    Build MonitorConfig from environment variables (call load_dotenv() first).
    Raises ValueError on values that do not parse or make no sense.
    """
    mode = os.getenv("MODE", "volume").strip().lower()
    if mode not in ("volume", "rsi"):
        raise ValueError(f"MODE must be 'volume' or 'rsi', got {mode!r}")

    interval = os.getenv("INTERVAL", "15m").strip()
    interval_seconds(interval)  # validate early

    stable_env = os.getenv("STABLECOINS")
    stablecoins = (
        tuple(s.strip().upper() for s in stable_env.split(",") if s.strip())
        if stable_env is not None
        else DEFAULT_STABLECOINS
    )

    candle_limit = _int("CANDLE_LIMIT", 30)
    volume_rule = VolumeSpikeRule(
        multiplier=_float("VOLUME_MULTIPLIER", 2.0),
        floor_usd=_float("VOLUME_FLOOR_USD", 50_000.0),
        window=candle_limit,
        min_samples=_int("VOLUME_MIN_SAMPLES", candle_limit),
        edge_triggered=_bool("VOLUME_EDGE_TRIGGERED", False),
    )
    volume_rule.name = f"volume_spike_{volume_rule.multiplier:g}x"

    rsi_rule = RsiRule(
        period=_int("RSI_PERIOD", 14),
        upper=_float("RSI_UPPER", 80.0),
        lower=_float("RSI_LOWER", 20.0),
        window=_int("RSI_WINDOW", 100),
    )
    rsi_rule.name = f"rsi{rsi_rule.period}_{rsi_rule.upper:g}_{rsi_rule.lower:g}"

    cfg = MonitorConfig(
        mode=mode,  # type: ignore[arg-type]
        interval=interval,
        number_coins=_int("NUMBER_COINS", 100),
        quote_asset=os.getenv("QUOTE_ASSET", "USDT").strip().upper(),
        stablecoins=stablecoins,
        volume_rule=volume_rule,
        rsi_rule=rsi_rule,
        batch_size=_int("BATCH_SIZE", 20),
        batch_delay_s=_int("BATCH_DELAY_MS", 1000) / 1000.0,
        dispatch_interval_s=_int("DISPATCH_INTERVAL_MS", 1100) / 1000.0,
        queue_warn_depth=_int("QUEUE_WARN_DEPTH", 200),
        rest_url=os.getenv("BINANCE_REST_URL", "https://api.binance.com").rstrip("/"),
        ws_url=os.getenv("BINANCE_WS_URL", "wss://stream.binance.com:9443/stream"),
        max_streams_per_conn=_int("MAX_STREAMS_PER_CONN", 200),
    )
    if cfg.number_coins < 1:
        raise ValueError("NUMBER_COINS must be >= 1")
    if cfg.batch_size < 1:
        raise ValueError("BATCH_SIZE must be >= 1")
    if cfg.dispatch_interval_s <= 0:
        raise ValueError("DISPATCH_INTERVAL_MS must be > 0")
    return cfg
