# src/klinewatch/main.py
import asyncio
import functools

import structlog
from dotenv import load_dotenv

from klinewatch.config import MonitorConfig, config_from_env
from klinewatch.alerts.evaluator import RsiEvaluator, VolumeSpikeEvaluator
from klinewatch.alerts.formatting import format_alert, format_startup
from klinewatch.alerts.notifiers import ConsoleNotifier
from klinewatch.ingest.backfill import preload_all
from klinewatch.ingest.binance_rest import BinanceRest, BinanceRestConfig, UniverseError
from klinewatch.ingest.binance_ws import BinanceKlineWS, BinanceWSConfig, shard_symbols
from klinewatch.ingest.stream import StreamIngestor
from klinewatch.notify.queue import AlertDispatcher, DispatcherConfig
from klinewatch.notify.telegram import TelegramSink, config_from_env as telegram_config_from_env

log = structlog.get_logger("main")


def build_evaluator(cfg: MonitorConfig):
    if cfg.mode == "rsi":
        return RsiEvaluator(cfg.rsi_rule)
    return VolumeSpikeEvaluator(cfg.volume_rule)


def build_sink():
    """Telegram if TOKEN/CHAT_ID are set, console otherwise. Returns (sink, destination)."""
    try:
        tg_cfg = telegram_config_from_env()  # raises if env missing
    except RuntimeError:
        log.info("telegram_disabled_missing_env")
        return ConsoleNotifier(), "console"
    log.info("telegram_enabled")
    return TelegramSink(tg_cfg), tg_cfg.chat_id


# ---------------------------
# Main
# ---------------------------

async def main():
    cfg = config_from_env()
    log.info("config_loaded", mode=cfg.mode, interval=cfg.interval, number_coins=cfg.number_coins)

    rest = BinanceRest(BinanceRestConfig(
        base_url=cfg.rest_url,
        quote_asset=cfg.quote_asset,
        stablecoins=cfg.stablecoins,
    ))
    sink, destination = build_sink()
    dispatcher = AlertDispatcher(
        DispatcherConfig(
            destination=destination,
            interval_s=cfg.dispatch_interval_s,
            warn_depth=cfg.queue_warn_depth,
        ),
        sink,
    )

    clients: list[BinanceKlineWS] = []
    ingestor = None
    await rest.start()
    if isinstance(sink, TelegramSink):
        await sink.start()
    try:
        # Universe (fatal if unavailable)
        try:
            symbols = await rest.top_symbols(cfg.number_coins)
        except UniverseError as e:
            log.error("universe_fetch_failed", err=str(e))
            raise SystemExit(1)
        if not symbols:
            log.error("universe_empty", quote=cfg.quote_asset)
            raise SystemExit(1)
        log.info("universe_loaded", count=len(symbols), top=symbols[:5])

        evaluator = build_evaluator(cfg)
        quote = cfg.quote_asset
        ingestor = StreamIngestor(
            symbols,
            evaluator,
            dispatcher,
            format_fn=lambda evt: format_alert(evt, quote),
        )

        # Seed windows before live data; one extra row covers the forming kline REST returns
        fetch = functools.partial(_fetch_history, rest, cfg.interval, cfg.window_capacity + 1)
        await preload_all(
            [ingestor.streams[s] for s in symbols],
            fetch,
            batch_size=cfg.batch_size,
            delay_s=cfg.batch_delay_s,
        )

        await dispatcher.start()
        await ingestor.start()
        await sink.send_admin(format_startup(len(symbols), cfg.mode))

        for i, shard in enumerate(shard_symbols(symbols, cfg.max_streams_per_conn)):
            clients.append(BinanceKlineWS(
                BinanceWSConfig(stream_url=cfg.ws_url, symbols=shard, interval=cfg.interval),
                on_kline=ingestor.route,
                name=f"binance_ws_{i}",
            ))

        await asyncio.gather(*(c.start() for c in clients))
    finally:
        # graceful shutdown to avoid unclosed sessions
        for c in clients:
            await c.stop()
        if ingestor is not None:
            await ingestor.stop()
        await dispatcher.stop()
        if isinstance(sink, TelegramSink):
            await sink.stop()
        await rest.stop()


async def _fetch_history(rest: BinanceRest, interval: str, limit: int, symbol: str):
    return await rest.klines(symbol, interval, limit)


def run():
    load_dotenv()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
