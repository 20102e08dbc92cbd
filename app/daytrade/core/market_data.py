"""
Market data adapters that do not need a live feed:
a seeded random-walk simulator and a CSV history loader.
"""
import math
import random
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Deque

import pandas as pd
from loguru import logger

from daytrade.analytics.indicators import indicator_set
from daytrade.core.interfaces import MarketDataProvider
from daytrade.core.models import MarketSnapshot, IndicatorSet

# bars of 5m candles per period
PERIOD_BARS = {
    "1d": 288,
    "1w": 2016,
    "1mo": 8640,
    "3mo": 25920,
    "6mo": 51840,
    "1y": 103680,
}
DEFAULT_PERIOD_BARS = 8640

BASE_PRICES = {"WIN": 112000.0, "WDO": 5.20}
DEFAULT_BASE_PRICE = 100.0

INDICATOR_LOOKBACK = 50
MIN_INDICATOR_BARS = 21


def parse_interval(interval: str) -> int:
    """'5m' / '1h' / '1d' -> minutes, 5 when unparseable"""
    try:
        value = int(interval[:-1])
    except (ValueError, TypeError):
        return 5

    unit = interval[-1]
    if unit == "m":
        return value
    if unit == "h":
        return value * 60
    if unit == "d":
        return value * 24 * 60
    return 5


class SimulatedMarketData(MarketDataProvider):
    """
    Random-walk prices per symbol. Call step() to append a new 1m bar.
    """

    def __init__(self, seed: Optional[int] = None, clock=datetime.now, max_bars: int = 500):
        self.rng = random.Random(seed)
        self.clock = clock
        self.bars: Dict[str, Deque[MarketSnapshot]] = defaultdict(lambda: deque(maxlen=max_bars))

    def step(self, symbol: str, volatility: float = 0.001) -> MarketSnapshot:
        last = self.bars[symbol][-1].price if self.bars[symbol] else BASE_PRICES.get(symbol, DEFAULT_BASE_PRICE)
        change = (self.rng.random() - 0.5) * volatility * last
        price = last + change

        bar = MarketSnapshot(
            symbol=symbol,
            price=price,
            timestamp=self.clock(),
            volume=float(self.rng.randint(100, 1099)),
            open=last,
            high=max(last, price),
            low=min(last, price),
        )
        self.bars[symbol].append(bar)
        return bar

    async def latest(self, symbol: str) -> Optional[MarketSnapshot]:
        bars = self.bars.get(symbol)
        if not bars:
            return None
        return bars[-1]

    async def indicators(self, symbol: str, timeframe: str) -> Optional[IndicatorSet]:
        bars = list(self.bars.get(symbol, ()))[-INDICATOR_LOOKBACK:]
        if len(bars) < MIN_INDICATOR_BARS:
            return None
        return indicator_set([b.price for b in bars], [b.volume or 0 for b in bars])

    async def history(self, symbol: str, period: str, interval: str) -> List[MarketSnapshot]:
        limit = PERIOD_BARS.get(period, DEFAULT_PERIOD_BARS)
        minutes = parse_interval(interval)
        base = BASE_PRICES.get(symbol, DEFAULT_BASE_PRICE)
        now = self.clock()

        data: List[MarketSnapshot] = []
        for i in range(limit - 1, -1, -1):
            timestamp = now - timedelta(minutes=i * minutes)
            trend = math.sin(i / 100) * 0.001
            noise = (self.rng.random() - 0.5) * 0.005
            change = base * (trend + noise)
            open_ = base + change
            high = open_ + abs(change) * self.rng.random()
            low = open_ - abs(change) * self.rng.random()
            close = low + (high - low) * self.rng.random()
            data.append(MarketSnapshot(
                symbol=symbol,
                price=close,
                timestamp=timestamp,
                volume=float(self.rng.randint(1000, 10999)),
                open=open_,
                high=high,
                low=low,
            ))

        logger.debug(f"Generated {len(data)} sample {interval} bars for {symbol}")
        return data


def load_history_csv(path: str, symbol: str) -> List[MarketSnapshot]:
    """
    Load OHLCV bars from a CSV with columns time/timestamp, open, high, low, close[, volume].
    Rows are sorted chronologically.
    """
    df = pd.read_csv(path)
    df.columns = [c.strip().lower() for c in df.columns]

    time_col = "timestamp" if "timestamp" in df.columns else "time"
    if time_col not in df.columns or "close" not in df.columns:
        raise ValueError(f"{path}: expected a time/timestamp column and a close column")

    df[time_col] = pd.to_datetime(df[time_col])
    df = df.sort_values(time_col).reset_index(drop=True)

    bars = []
    for row in df.to_dict("records"):
        bars.append(MarketSnapshot(
            symbol=symbol,
            price=float(row["close"]),
            timestamp=row[time_col].to_pydatetime(),
            volume=float(row["volume"]) if "volume" in row and pd.notna(row["volume"]) else None,
            open=float(row["open"]) if "open" in row else None,
            high=float(row["high"]) if "high" in row else None,
            low=float(row["low"]) if "low" in row else None,
        ))

    logger.info(f"Loaded {len(bars)} bars for {symbol} from {path}")
    return bars
