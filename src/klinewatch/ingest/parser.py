from __future__ import annotations
from typing import Optional
from klinewatch.utils.types import Kline

def parse_kline_msg(m: dict) -> Optional[Kline]:
    """
    Return Kline if `m` is a kline event; None for anything else
    (subscription acks, other event types).

    Accepts both the combined-stream envelope and a raw event:
      {"stream": "btcusdt@kline_15m", "data": {"e": "kline", "s": "BTCUSDT", "k": {...}}}
      {"e": "kline", "s": "BTCUSDT", "k": {...}}

    Kline payload fields used:
      - "t" / "T"  open / close time (epoch ms)
      - "o","h","l","c" prices (strings)
      - "v"        base-asset volume (string)
      - "x"        is this kline closed?

    Raises ValueError when a kline event is missing fields or carries values
    that do not parse as numbers.
    """
    if not isinstance(m, dict):
        raise ValueError(f"expected object, got {type(m).__name__}")

    data = m.get("data", m)
    if not isinstance(data, dict):
        raise ValueError("kline envelope 'data' is not an object")
    if data.get("e") != "kline" and "k" not in data:
        return None

    k = data.get("k")
    if not isinstance(k, dict):
        raise ValueError("kline event without 'k' payload")

    sym = data.get("s") or k.get("s")
    if not sym:
        raise ValueError("kline event without symbol")

    try:
        kline = Kline(
            symbol=str(sym).lower(),
            open_time=int(k["t"]),
            close_time=int(k["T"]),
            open=float(k["o"]),
            high=float(k["h"]),
            low=float(k["l"]),
            close=float(k["c"]),
            volume=float(k["v"]),
            is_closed=k["x"],
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed kline payload: {e!r}") from e
    if not isinstance(kline.is_closed, bool):
        raise ValueError(f"kline 'x' flag is not a boolean: {kline.is_closed!r}")
    return kline
