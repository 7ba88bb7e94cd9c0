from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict, Literal

from klinewatch.utils.time import ms_to_s

# ---- ingest-level primitives ----

@dataclass(slots=True)
class Sample:
    """
    One closed-interval observation for a symbol.
    """
    ts: float       # epoch seconds (interval close)
    price: float    # close price
    volume: float   # base-asset volume

    @property
    def notional(self) -> float:
        # quote-currency volume approximation (close * base volume)
        return self.price * self.volume


@dataclass(slots=True)
class Kline:
    """
    Normalized kline update from the live feed. Only `is_closed` updates
    represent a finalized observation.
    """
    symbol: str       # lowercase, e.g. "btcusdt"
    open_time: int    # epoch ms
    close_time: int   # epoch ms
    open: float
    high: float
    low: float
    close: float
    volume: float
    is_closed: bool

    def to_sample(self) -> Sample:
        return Sample(ts=ms_to_s(self.close_time), price=self.close, volume=self.volume)


# ---- alerting domain ----

AlertType = Literal["high", "low", "spike"]

class AlertEvent(TypedDict, total=False):
    symbol: str
    rule: str
    type: AlertType
    zone: str
    value: float
    ts: float
    message: str
    # volume-specific
    current: float
    average: float
    # momentum-specific
    period: int
    threshold: float


@dataclass(slots=True)
class PendingAlert:
    text: str
    symbol: str = ""
    rule: str = ""
