from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Dict, Any

from daytrade.core.models import (
    MarketSnapshot,
    IndicatorSet,
    OrderResult,
    Direction,
    StrategyConfig,
    Position,
    ExitReason,
    DailyMetrics,
    BotEvent,
    BacktestResult,
)


class MarketDataProvider(ABC):
    """
    Source of prices and indicators. The engine never talks to a feed directly.
    """

    @abstractmethod
    async def latest(self, symbol: str) -> Optional[MarketSnapshot]:
        ...

    @abstractmethod
    async def indicators(self, symbol: str, timeframe: str) -> Optional[IndicatorSet]:
        ...

    @abstractmethod
    async def history(self, symbol: str, period: str, interval: str) -> List[MarketSnapshot]:
        """Bars in chronological order"""
        ...


class OrderExecutor(ABC):

    @abstractmethod
    async def execute(
        self, symbol: str, direction: Direction, quantity: int, price: float
    ) -> OrderResult:
        ...


class PersistenceStore(ABC):
    """
    Configs, trades, audit logs and backtest results.
    """

    @abstractmethod
    async def create_config(self, config: StrategyConfig) -> StrategyConfig:
        ...

    @abstractmethod
    async def get_config(self, config_id: str, user_id: str) -> Optional[StrategyConfig]:
        ...

    @abstractmethod
    async def set_config_active(self, config_id: str, user_id: str, active: bool) -> None:
        ...

    @abstractmethod
    async def get_open_position(self, user_id: str) -> Optional[Position]:
        ...

    @abstractmethod
    async def create_trade(self, position: Position) -> Position:
        ...

    @abstractmethod
    async def update_trade_stop_loss(self, trade_id: str, stop_loss: float) -> None:
        ...

    @abstractmethod
    async def close_trade(
        self,
        trade_id: str,
        user_id: str,
        exit_price: float,
        reason: ExitReason,
        result: float,
        exit_time: datetime,
    ) -> Position:
        ...

    @abstractmethod
    async def append_log(
        self,
        user_id: str,
        config_id: Optional[str],
        level: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    @abstractmethod
    async def get_daily_metrics(self, user_id: str) -> DailyMetrics:
        ...

    @abstractmethod
    async def save_backtest_result(
        self,
        user_id: str,
        config_id: str,
        name: str,
        period: str,
        interval: str,
        result: BacktestResult,
    ) -> str:
        ...


class EventSink(ABC):
    """Fire-and-forget receiver of status and trade notifications"""

    @abstractmethod
    async def publish(self, event: BotEvent) -> None:
        ...
