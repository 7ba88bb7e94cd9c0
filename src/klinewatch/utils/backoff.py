from __future__ import annotations

import random
from dataclasses import dataclass, field


def jitter(v: float, *, ratio: float = 0.2) -> float:
    """
    Add ±ratio jitter. ratio=0.2 -> multiply by [0.8, 1.2].
    """
    lo = 1.0 - ratio
    hi = 1.0 + ratio
    return v * (lo + (hi - lo) * random.random())


@dataclass(slots=True)
class ReconnectBackoff:
    """
    Reconnect delay schedule for one WebSocket client (no jitter applied here).

    next() yields initial, initial*factor, ... up to cap. The client calls
    reset() after an attempt that got as far as subscribing, so a link that
    streamed for hours and then dropped starts over at `initial_s` instead of
    inheriting the delays of every earlier drop.
    """
    initial_s: float = 0.25
    cap_s: float = 30.0
    factor: float = 2.0
    attempts: int = field(init=False, default=0)
    _next_s: float = field(init=False, default=0.0)

    def __post_init__(self) -> None:
        if self.initial_s <= 0 or self.cap_s < self.initial_s:
            raise ValueError("need 0 < initial_s <= cap_s")
        if self.factor < 1.0:
            raise ValueError("factor must be >= 1")
        self._next_s = self.initial_s

    def next(self) -> float:
        delay = self._next_s
        self._next_s = min(delay * self.factor, self.cap_s)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self._next_s = self.initial_s
        self.attempts = 0
