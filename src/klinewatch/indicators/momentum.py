# src/klinewatch/indicators/momentum.py
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

DEFAULT_RSI_PERIOD = 14


def _gains_losses(c: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    delta = np.diff(c)
    return np.maximum(delta, 0.0), np.maximum(-delta, 0.0)


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    # RS is infinite when there were no losses at all
    if avg_loss == 0.0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def compute_rsi(prices: Sequence[float] | np.ndarray, period: int = DEFAULT_RSI_PERIOD) -> Optional[float]:
    """
    Wilder RSI of the last price in `prices` (oldest -> newest).

    Seeding: simple mean of the first `period` gains/losses. Every later delta
    is folded in with Wilder smoothing, avg = (avg * (period - 1) + x) / period.

    Returns None when fewer than period + 1 prices are available or any price
    is not finite.
    """
    if period < 1:
        raise ValueError("period must be >= 1")
    c = np.asarray(prices, dtype=np.float64)
    if c.ndim != 1 or c.size < period + 1:
        return None
    if not np.isfinite(c).all():
        return None

    gain, loss = _gains_losses(c)
    avg_gain = float(gain[:period].mean())
    avg_loss = float(loss[:period].mean())
    for i in range(period, gain.size):
        avg_gain = (avg_gain * (period - 1) + gain[i]) / period
        avg_loss = (avg_loss * (period - 1) + loss[i]) / period
    return _rsi_from_averages(avg_gain, avg_loss)

