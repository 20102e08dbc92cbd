import itertools
from dataclasses import replace
from datetime import datetime, date
from typing import Optional, Dict, Any, List, Callable

from loguru import logger

from daytrade.core.interfaces import PersistenceStore
from daytrade.core.models import (
    StrategyConfig,
    Position,
    PositionStatus,
    ExitReason,
    DailyMetrics,
    BacktestResult,
)


class InMemoryStore(PersistenceStore):
    """
    Dict-backed store for paper trading and tests. Nothing survives the process.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self.configs: Dict[str, StrategyConfig] = {}
        self.active_configs: Dict[str, bool] = {}
        self.trades: Dict[str, Position] = {}
        self.logs: List[Dict[str, Any]] = []
        self.backtests: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    async def create_config(self, config: StrategyConfig) -> StrategyConfig:
        if not config.id:
            config = replace(config, id=self._next_id("cfg"))
        self.configs[config.id] = config
        self.active_configs[config.id] = False
        return config

    async def get_config(self, config_id: str, user_id: str) -> Optional[StrategyConfig]:
        config = self.configs.get(config_id)
        if config is None or config.user_id != user_id:
            return None
        return config

    async def set_config_active(self, config_id: str, user_id: str, active: bool) -> None:
        if config_id in self.configs:
            self.active_configs[config_id] = active

    async def get_open_position(self, user_id: str) -> Optional[Position]:
        for trade in self.trades.values():
            if trade.user_id == user_id and trade.status is PositionStatus.OPEN:
                return trade
        return None

    async def create_trade(self, position: Position) -> Position:
        position.id = position.id or self._next_id("trade")
        self.trades[position.id] = position
        return position

    async def update_trade_stop_loss(self, trade_id: str, stop_loss: float) -> None:
        trade = self.trades.get(trade_id)
        if trade is None:
            raise KeyError(f"Unknown trade {trade_id}")
        trade.stop_loss = stop_loss

    async def close_trade(
        self,
        trade_id: str,
        user_id: str,
        exit_price: float,
        reason: ExitReason,
        result: float,
        exit_time: datetime,
    ) -> Position:
        trade = self.trades.get(trade_id)
        if trade is None or trade.user_id != user_id:
            raise KeyError(f"Unknown trade {trade_id} for user {user_id}")

        trade.exit_price = exit_price
        trade.exit_reason = reason
        trade.result = result
        trade.exit_time = exit_time
        trade.status = PositionStatus.CLOSED
        return trade

    async def append_log(
        self,
        user_id: str,
        config_id: Optional[str],
        level: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.logs.append({
            "user_id": user_id,
            "config_id": config_id,
            "level": level,
            "message": message,
            "metadata": metadata or {},
            "timestamp": self.clock(),
        })

    async def get_daily_metrics(self, user_id: str) -> DailyMetrics:
        today: date = self.clock().date()
        todays = [
            t for t in self.trades.values()
            if t.user_id == user_id and t.entry_time.date() == today
        ]
        closed = [t for t in todays if t.status is PositionStatus.CLOSED]
        wins = [t for t in closed if t.result > 0]

        return DailyMetrics(
            total_trades=len(todays),
            total_profit=sum(t.result for t in closed),
            winning_trades=len(wins),
            losing_trades=len(todays) - len(wins),
        )

    async def save_backtest_result(
        self,
        user_id: str,
        config_id: str,
        name: str,
        period: str,
        interval: str,
        result: BacktestResult,
    ) -> str:
        result_id = self._next_id("bt")
        self.backtests[result_id] = {
            "user_id": user_id,
            "config_id": config_id,
            "name": name,
            "period": period,
            "interval": interval,
            "result": result,
            "created_at": self.clock(),
        }
        logger.debug(f"Stored backtest {result_id} ({name}) for user {user_id}")
        return result_id
