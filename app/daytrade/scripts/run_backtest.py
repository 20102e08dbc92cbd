#!/usr/bin/env python3
"""
Run a backtest of the entry / risk rules

    run_backtest.py [SYMBOL] [PERIOD] [INTERVAL] [CSV_PATH]

Without CSV_PATH the bars come from the seeded sample generator.
"""
import asyncio
import sys

from loguru import logger

from daytrade.analytics.backtest.engine import BacktestEngine
from daytrade.core.errors import InsufficientData
from daytrade.core.log_setup import configure_logging
from daytrade.core.market_data import SimulatedMarketData, load_history_csv
from daytrade.core.models import StrategyConfig
from daytrade.core.settings import Settings


async def main(argv):
    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_dir)

    symbol = argv[1] if len(argv) > 1 else "WIN"
    period = argv[2] if len(argv) > 2 else "1mo"
    interval = argv[3] if len(argv) > 3 else "5m"
    csv_path = argv[4] if len(argv) > 4 else None

    config = StrategyConfig(id="backtest", user_id="cli", symbol=symbol)
    engine = BacktestEngine()

    try:
        if csv_path:
            result = engine.simulate(load_history_csv(csv_path, symbol), config)
        else:
            result = await engine.run(SimulatedMarketData(seed=42), config, period, interval)
    except InsufficientData as e:
        logger.error(str(e))
        return 1

    print(f"\n{'='*60}")
    print(f"BACKTEST RESULTS - {symbol}")
    print(f"{'='*60}")
    print(f"Source: {csv_path or f'sample data, {period} of {interval} bars'}")
    print(f"Bars: {result.bars}")
    print(f"Total Trades: {result.total_trades}")
    print(f"Wins / Losses: {result.winning_trades} / {result.losing_trades}")
    print(f"Win Rate: {result.win_rate:.1f}%")
    print(f"Total Return: R$ {result.total_return:.2f}")
    print(f"Average Return: R$ {result.average_return:.2f}")
    print(f"Max Drawdown: R$ {result.max_drawdown:.2f}")
    if result.open_position:
        print(f"Open at end: {result.open_position.direction.value} @ {result.open_position.entry_price:.1f}")
    print(f"{'='*60}\n")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv)))
