# src/klinewatch/alerts/rules.py
from __future__ import annotations
from dataclasses import dataclass


@dataclass(slots=True)
class RsiRule:
    """
    Edge-triggered RSI band alert.
    - RSI > upper → "high" once, re-armed only after RSI is back in [lower, upper]
    - RSI < lower → "low"  once, same re-arm rule
    """
    name: str = "rsi14_80_20"
    period: int = 14
    upper: float = 80.0
    lower: float = 20.0
    window: int = 100                   # prices kept per symbol (>= period + 1)

    def __post_init__(self):
        if self.period < 1:
            raise ValueError("period must be >= 1")
        if self.window < self.period + 1:
            raise ValueError("window must hold at least period + 1 prices")
        if self.lower > self.upper:
            raise ValueError("lower threshold above upper threshold")


@dataclass(slots=True)
class VolumeSpikeRule:
    """
    Fire when the closed interval's notional volume >= multiplier x trailing mean
    and >= floor_usd, once the trailing window holds min_samples values.

    edge_triggered=False re-alerts on every qualifying interval (sustained
    elevated volume keeps firing). True suppresses repeats until an interval
    fails the condition.
    """
    name: str = "volume_spike_2x"
    multiplier: float = 2.0
    floor_usd: float = 50_000.0
    window: int = 30                    # trailing notionals kept per symbol
    min_samples: int = 30
    edge_triggered: bool = False

    def __post_init__(self):
        if self.window < 1:
            raise ValueError("window must be >= 1")
        if not 1 <= self.min_samples <= self.window:
            raise ValueError("min_samples must be within [1, window]")
