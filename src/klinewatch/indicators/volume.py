# src/klinewatch/indicators/volume.py
from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np


def notional(price: float, volume: float) -> float:
    """Quote-currency volume approximation: close price x base volume."""
    return float(price) * float(volume)


def trailing_mean(history: Sequence[float] | np.ndarray) -> Optional[float]:
    h = np.asarray(history, dtype=np.float64)
    if h.size == 0:
        return None
    return float(h.mean())


def spike_ratio(history: Sequence[float] | np.ndarray, current: float) -> Optional[float]:
    """
    current / mean(history), where history excludes `current`.

    None when history is empty or any input is not finite. A zero trailing
    mean gives inf for a positive current value (anything beats a dead window).
    """
    h = np.asarray(history, dtype=np.float64)
    cur = float(current)
    if h.size == 0 or not math.isfinite(cur) or not np.isfinite(h).all():
        return None
    avg = float(h.mean())
    if avg <= 0.0:
        return math.inf if cur > 0.0 else None
    return cur / avg
