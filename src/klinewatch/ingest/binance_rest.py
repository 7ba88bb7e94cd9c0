from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import aiohttp
import structlog

from klinewatch.utils.time import ms_to_s, utc_now_ms
from klinewatch.utils.types import Sample

log = structlog.get_logger("binance_rest")

DEFAULT_STABLECOINS = ("USDC", "DAI", "BUSD", "TUSD", "FDUSD", "USDP", "USTC", "USDD")


class UniverseError(RuntimeError):
    """The symbol universe could not be fetched; nothing to monitor."""


@dataclass(slots=True)
class BinanceRestConfig:
    base_url: str = "https://api.binance.com"
    quote_asset: str = "USDT"
    stablecoins: tuple[str, ...] = field(default_factory=lambda: DEFAULT_STABLECOINS)
    timeout_s: float = 10.0


class BinanceRest:
    """
    Thin async client for the two REST calls made at startup:
      - top_symbols(): 24h tickers ranked by quote volume
      - klines():      recent closed klines to seed a window
    """
    def __init__(self, cfg: Optional[BinanceRestConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg or BinanceRestConfig()
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    async def _get_json(self, path: str, params: Optional[dict] = None):
        assert self._session is not None, "start() first"
        url = f"{self.cfg.base_url}{path}"
        async with self._session.get(url, params=params) as resp:
            resp.raise_for_status()
            return await resp.json()

    # ---------------------------- universe ---------------------------- #

    async def top_symbols(self, limit: int) -> list[str]:
        """
        Quote-asset pairs ranked by 24h quote volume (desc), stablecoin bases
        excluded, lowercased. Any failure here is fatal to startup.
        """
        try:
            tickers = await self._get_json("/api/v3/ticker/24hr")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            # ValueError: body was not JSON
            raise UniverseError(f"ticker/24hr request failed: {e}") from e
        if not isinstance(tickers, list):
            raise UniverseError("ticker/24hr returned a non-list payload")
        return rank_symbols(tickers, limit, self.cfg.quote_asset, self.cfg.stablecoins)

    # ---------------------------- backfill ---------------------------- #

    async def klines(self, symbol: str, interval: str, limit: int) -> list[Sample]:
        """
        Closed klines oldest -> newest. The last REST kline is usually the
        still-forming one; it is dropped so only finalized intervals seed a window.
        """
        rows = await self._get_json(
            "/api/v3/klines",
            params={"symbol": symbol.upper(), "interval": interval, "limit": str(limit)},
        )
        return rows_to_samples(rows, now_ms=utc_now_ms())


def rank_symbols(
    tickers: list[dict],
    limit: int,
    quote_asset: str = "USDT",
    stablecoins: tuple[str, ...] = DEFAULT_STABLECOINS,
) -> list[str]:
    quote = quote_asset.upper()
    excluded = {s.upper() for s in stablecoins}
    ranked: list[tuple[float, str]] = []
    for t in tickers:
        if not isinstance(t, dict):
            continue
        sym = str(t.get("symbol", ""))
        if not sym.endswith(quote) or len(sym) == len(quote):
            continue
        if sym[: -len(quote)] in excluded:
            continue
        try:
            qv = float(t.get("quoteVolume", 0.0))
        except (TypeError, ValueError):
            log.debug("ticker_bad_quote_volume", symbol=sym)
            continue
        ranked.append((qv, sym))
    ranked.sort(key=lambda x: x[0], reverse=True)
    return [sym.lower() for _, sym in ranked[: max(0, int(limit))]]


def rows_to_samples(rows: list, now_ms: int) -> list[Sample]:
    """
    REST kline row: [openTime, open, high, low, close, volume, closeTime, ...]
    Rows whose close time is still in the future are forming and skipped.
    """
    out: list[Sample] = []
    for r in rows:
        close_time = int(r[6])
        if close_time >= now_ms:
            continue
        out.append(Sample(ts=ms_to_s(close_time), price=float(r[4]), volume=float(r[5])))
    return out
