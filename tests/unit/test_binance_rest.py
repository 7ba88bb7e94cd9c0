import aiohttp
import pytest

from klinewatch.ingest.binance_rest import (
    BinanceRest,
    BinanceRestConfig,
    UniverseError,
    rank_symbols,
    rows_to_samples,
)
from tests.helpers.fake_http import FakeResponse, FakeSession


TICKERS = [
    {"symbol": "BTCUSDT", "quoteVolume": "900000000.0"},
    {"symbol": "ETHUSDT", "quoteVolume": "500000000.0"},
    {"symbol": "USDCUSDT", "quoteVolume": "800000000.0"},   # stablecoin base
    {"symbol": "ETHBTC", "quoteVolume": "999999999999.0"},  # wrong quote
    {"symbol": "SOLUSDT", "quoteVolume": "700000000.0"},
    {"symbol": "BADUSDT", "quoteVolume": "n/a"},
    {"symbol": "USDT", "quoteVolume": "1.0"},
]


def row(open_ms, close, volume, close_ms):
    return [open_ms, "1.0", "1.0", "1.0", str(close), str(volume), close_ms, "0", 0, "0", "0", "0"]


def test_rank_symbols_filters_and_sorts():
    assert rank_symbols(TICKERS, 10) == ["btcusdt", "solusdt", "ethusdt"]
    assert rank_symbols(TICKERS, 2) == ["btcusdt", "solusdt"]
    assert rank_symbols(TICKERS, 0) == []

def test_rank_symbols_custom_exclusions():
    assert rank_symbols(TICKERS, 10, stablecoins=("SOL",)) == ["btcusdt", "usdcusdt", "ethusdt"]

def test_rows_to_samples_drops_forming_kline():
    now = 10_000
    rows = [row(0, 100.0, 2.0, 899), row(900, 101.0, 3.0, 1799), row(9_500, 102.0, 1.0, 10_399)]
    samples = rows_to_samples(rows, now_ms=now)
    assert [s.price for s in samples] == [100.0, 101.0]
    assert [s.volume for s in samples] == [2.0, 3.0]
    assert samples[0].ts == pytest.approx(0.899)


@pytest.mark.asyncio
async def test_top_symbols_via_session():
    session = FakeSession({"/api/v3/ticker/24hr": FakeResponse(payload=TICKERS)})
    rest = BinanceRest(BinanceRestConfig(base_url="https://api.test"), session=session)
    await rest.start()
    assert await rest.top_symbols(2) == ["btcusdt", "solusdt"]
    assert session.calls[0][:2] == ("GET", "https://api.test/api/v3/ticker/24hr")
    await rest.stop()
    # injected sessions are not ours to close
    assert session.closed is False

@pytest.mark.asyncio
async def test_top_symbols_http_error_is_universe_error():
    session = FakeSession({"/api/v3/ticker/24hr": FakeResponse(status=503, payload={"msg": "down"})})
    rest = BinanceRest(session=session)
    with pytest.raises(UniverseError):
        await rest.top_symbols(10)

@pytest.mark.asyncio
async def test_top_symbols_transport_error_is_universe_error():
    session = FakeSession({"/api/v3/ticker/24hr": aiohttp.ClientConnectionError("refused")})
    rest = BinanceRest(session=session)
    with pytest.raises(UniverseError):
        await rest.top_symbols(10)

@pytest.mark.asyncio
async def test_top_symbols_bad_payload():
    session = FakeSession({"/api/v3/ticker/24hr": FakeResponse(payload={"code": -1})})
    rest = BinanceRest(session=session)
    with pytest.raises(UniverseError):
        await rest.top_symbols(10)

@pytest.mark.asyncio
async def test_klines_request_params_and_closed_only():
    rows = [row(0, 100.0, 2.0, 899), row(900, 101.0, 3.0, 4_102_444_800_000)]
    session = FakeSession({"/api/v3/klines": FakeResponse(payload=rows)})
    rest = BinanceRest(session=session)
    samples = await rest.klines("btcusdt", "15m", 31)

    _, url, params = session.calls[0]
    assert url.endswith("/api/v3/klines")
    assert params == {"symbol": "BTCUSDT", "interval": "15m", "limit": "31"}
    assert len(samples) == 1 and samples[0].price == 100.0

@pytest.mark.asyncio
async def test_klines_http_error_propagates():
    session = FakeSession({"/api/v3/klines": FakeResponse(status=429, payload={"msg": "slow down"})})
    rest = BinanceRest(session=session)
    with pytest.raises(aiohttp.ClientError):
        await rest.klines("btcusdt", "15m", 31)

@pytest.mark.asyncio
async def test_top_symbols_non_json_body_is_universe_error():
    resp = FakeResponse(text="<html>maintenance</html>", json_error=ValueError("Expecting value"))
    rest = BinanceRest(session=FakeSession({"/api/v3/ticker/24hr": resp}))
    with pytest.raises(UniverseError):
        await rest.top_symbols(10)

def test_rank_symbols_skips_non_object_entries():
    tickers = ["BTCUSDT", None, {"symbol": "ETHUSDT", "quoteVolume": "5"}]
    assert rank_symbols(tickers, 10) == ["ethusdt"]
