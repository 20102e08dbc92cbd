from datetime import datetime
from unittest.mock import MagicMock, AsyncMock

import pytest

from daytrade.bot.engine import TradingEngine
from daytrade.core.memory_store import InMemoryStore
from daytrade.core.models import StrategyConfig, MarketSnapshot, IndicatorSet
from daytrade.core.paper_broker import PaperOrderExecutor
from daytrade.core.redis_client import QueueEventSink
from daytrade.core.settings import Settings

SESSION_TIME = datetime(2024, 1, 15, 11, 0)


def make_snapshot(price: float, timestamp: datetime = SESSION_TIME, symbol: str = "WIN") -> MarketSnapshot:
    return MarketSnapshot(symbol=symbol, price=price, timestamp=timestamp, volume=1000.0)


def bullish_indicators() -> IndicatorSet:
    return IndicatorSet(rsi=55, ema9=112500, ema21=112400, macd=0.15, macd_signal=0.10, volatility=100)


@pytest.fixture
def clock():
    return lambda: SESSION_TIME


@pytest.fixture
def config():
    return StrategyConfig(id="cfg-main", user_id="user-1")


@pytest.fixture
def store(clock, config):
    s = InMemoryStore(clock=clock)
    s.configs[config.id] = config
    s.active_configs[config.id] = False
    return s


@pytest.fixture
def market():
    m = MagicMock()
    m.latest = AsyncMock(return_value=make_snapshot(112000))
    m.indicators = AsyncMock(return_value=bullish_indicators())
    m.history = AsyncMock(return_value=[])
    return m


@pytest.fixture
def executor():
    return PaperOrderExecutor()


@pytest.fixture
def events():
    return QueueEventSink()


@pytest.fixture
async def engine(market, executor, store, events, clock):
    # long interval: tests drive ticks through run_tick
    eng = TradingEngine(
        market, executor, store, events,
        settings=Settings(monitor_interval=3600),
        clock=clock,
    )
    yield eng
    await eng.shutdown()
