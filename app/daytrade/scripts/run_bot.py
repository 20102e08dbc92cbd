#!/usr/bin/env python3
"""
Run one bot with paper fills

    run_bot.py [SYMBOL] [USER_ID] [paper|db]

"paper" (default) keeps everything in memory and drives a simulated feed.
"db" reads candles from TimescaleDB and persists trades and logs there.

Ctrl+C stops the bot (open position is closed with BOT_STOPPED).
"""
import asyncio
import signal
import sys

from loguru import logger

from daytrade.bot.engine import TradingEngine
from daytrade.core.log_setup import configure_logging
from daytrade.core.market_data import SimulatedMarketData, INDICATOR_LOOKBACK
from daytrade.core.memory_store import InMemoryStore
from daytrade.core.models import StrategyConfig
from daytrade.core.paper_broker import PaperOrderExecutor
from daytrade.core.redis_client import RedisEventSink, QueueEventSink
from daytrade.core.settings import Settings
from daytrade.core.timescale_client import TimescaleClient, TimescaleMarketData

FEED_INTERVAL = 1.0     # seconds between simulated bars


async def feed(market: SimulatedMarketData, symbol: str, stop: asyncio.Event):
    while not stop.is_set():
        market.step(symbol)
        try:
            await asyncio.wait_for(stop.wait(), timeout=FEED_INTERVAL)
        except asyncio.TimeoutError:
            pass


async def drain(queue: asyncio.Queue):
    while True:
        event = await queue.get()
        logger.debug(f"[Event] {event.kind} {event.user_id}: {event.payload}")


async def main(argv):
    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_dir)

    symbol = argv[1] if len(argv) > 1 else "WIN"
    user_id = argv[2] if len(argv) > 2 else "paper"
    mode = argv[3] if len(argv) > 3 else "paper"

    db = None
    feeder = None
    stop = asyncio.Event()

    if mode == "db":
        db = TimescaleClient(settings.db)
        await db.connect()
        store = db
        market = TimescaleMarketData(db)
    else:
        store = InMemoryStore()
        market = SimulatedMarketData()
        for _ in range(INDICATOR_LOOKBACK):
            market.step(symbol)
        feeder = asyncio.create_task(feed(market, symbol, stop))

    config = await store.create_config(StrategyConfig(id="", user_id=user_id, symbol=symbol))

    redis_sink = RedisEventSink(settings.redis_host, settings.redis_port)
    drainer = None
    try:
        await redis_sink.connect()
        events = redis_sink
    except Exception:
        logger.warning("Redis unavailable, events stay in-process")
        events = QueueEventSink(maxsize=1000)
        drainer = asyncio.create_task(drain(events.queue))

    engine = TradingEngine(market, PaperOrderExecutor(), store, events, settings=settings)

    loop = asyncio.get_running_loop()

    def signal_handler(sig, frame):
        """Handle Ctrl+C gracefully"""
        logger.info("[SIGINT] Stopping bot...")
        loop.call_soon_threadsafe(stop.set)

    signal.signal(signal.SIGINT, signal_handler)

    logger.info("=" * 70)
    logger.info(f"PAPER TRADING {symbol} as {user_id} ({mode}) - Press Ctrl+C to stop")
    logger.info("=" * 70)

    await engine.start_bot(user_id, config)

    await stop.wait()
    await engine.shutdown()
    if feeder:
        await feeder

    metrics = await store.get_daily_metrics(user_id)
    logger.info(
        f"Session: {metrics.total_trades} trades, R$ {metrics.total_profit:.2f}, "
        f"win rate {metrics.win_rate:.1f}%"
    )

    if drainer:
        drainer.cancel()
    if events is redis_sink:
        await redis_sink.disconnect()
    if db:
        await db.disconnect()


if __name__ == "__main__":
    asyncio.run(main(sys.argv))
