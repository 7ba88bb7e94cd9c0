from __future__ import annotations

def base_asset(symbol: str, quote: str = "USDT") -> str:
    """btcusdt -> BTC"""
    sym = symbol.upper()
    q = quote.upper()
    return sym[: -len(q)] if q and sym.endswith(q) else sym

def format_volume_alert(evt: dict, quote: str = "USDT") -> str:
    base = base_asset(evt.get("symbol", "?"), quote)
    current = float(evt.get("current", 0.0))
    return f"📢 *#{base}* high volume spike: *${current / 1_000:.4f}k*"

def format_rsi_alert(evt: dict, quote: str = "USDT") -> str:
    base = base_asset(evt.get("symbol", "?"), quote)
    rsi = float(evt.get("value", 0.0))
    period = int(evt.get("period", 14))
    if evt.get("type") == "high":
        return f"📈 *#{base}* RSI{period} overbought: *{rsi:.2f}*"
    return f"📉 *#{base}* RSI{period} oversold: *{rsi:.2f}*"

def format_alert(evt: dict, quote: str = "USDT") -> str:
    if evt.get("type") == "spike":
        return format_volume_alert(evt, quote)
    return format_rsi_alert(evt, quote)

def format_startup(n_pairs: int, mode: str) -> str:
    what = "Volume" if mode == "volume" else "RSI"
    return f"🤖 {what} alert bot started for {n_pairs} pairs."
