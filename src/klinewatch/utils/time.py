from __future__ import annotations

import time

# --- fast, allocation-free time helpers ---

def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()

def utc_now_ms() -> int:
    """Unix epoch milliseconds (int)."""
    return time.time_ns() // 1_000_000

def ms_to_s(ts_ms: int | float) -> float:
    return float(ts_ms) / 1000.0

# --- kline interval helpers ---

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86_400, "w": 604_800}

def interval_seconds(interval: str) -> int:
    """
    Binance interval string -> seconds. "15m" -> 900, "1h" -> 3600.
    Month intervals ("1M") are not supported.
    """
    if not interval or len(interval) < 2:
        raise ValueError(f"bad interval: {interval!r}")
    unit = interval[-1]
    if unit not in _UNIT_SECONDS:
        raise ValueError(f"unsupported interval unit: {interval!r}")
    n = int(interval[:-1])
    if n <= 0:
        raise ValueError(f"bad interval: {interval!r}")
    return n * _UNIT_SECONDS[unit]

def seconds_since(ts_past: float) -> float:
    """Non-negative time since past (clamped at 0)."""
    now = utc_now_s()
    return max(0.0, now - ts_past)
