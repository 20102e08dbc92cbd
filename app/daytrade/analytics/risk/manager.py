import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from loguru import logger

from daytrade.analytics.contracts import get_contract_spec
from daytrade.core.models import StrategyConfig, Position, Direction, ExitReason


@dataclass
class RiskAction:
    """Outcome of one tick for an open position"""
    exit_reason: Optional[ExitReason] = None
    exit_price: Optional[float] = None
    new_stop_loss: Optional[float] = None

    @property
    def should_exit(self) -> bool:
        return self.exit_reason is not None


class RiskManager:
    """
    Take-profit / stop-loss levels at entry and exit / trailing-stop checks per tick
    """

    def calculate_target_points(self, config: StrategyConfig) -> int:
        """
        Points per trade needed to make a pro-rata share of the daily target.
        Never below 1.
        """
        spec = get_contract_spec(config.symbol)
        value_per_point = spec.point_value * config.contracts
        target_value = config.daily_profit_target / config.max_trades_per_day
        return max(1, math.floor(target_value / value_per_point + 0.5))

    def calculate_take_profit(self, entry_price: float, direction: Direction, target_points: float) -> float:
        return entry_price + target_points * direction.sign

    def calculate_stop_loss(self, entry_price: float, direction: Direction, stop_points: float) -> float:
        return entry_price - stop_points * direction.sign

    def entry_levels(self, config: StrategyConfig, direction: Direction, entry_price: float) -> Tuple[float, float]:
        """Returns (take_profit, stop_loss)"""
        target_points = self.calculate_target_points(config)
        take_profit = self.calculate_take_profit(entry_price, direction, target_points)
        stop_loss = self.calculate_stop_loss(entry_price, direction, config.stop_loss_points)
        return take_profit, stop_loss

    def open_position(
        self,
        config: StrategyConfig,
        direction: Direction,
        entry_price: float,
        entry_time: datetime,
    ) -> Position:
        """Build a new open position with both levels set"""
        take_profit, stop_loss = self.entry_levels(config, direction, entry_price)

        if direction is Direction.LONG:
            ordered = take_profit > entry_price > stop_loss
        else:
            ordered = take_profit < entry_price < stop_loss
        if not ordered:
            raise ValueError(
                f"{direction.name} levels out of order: TP={take_profit} "
                f"entry={entry_price} SL={stop_loss}"
            )

        spec = get_contract_spec(config.symbol)
        position = Position(
            direction=direction,
            symbol=config.symbol,
            entry_price=entry_price,
            take_profit=take_profit,
            stop_loss=stop_loss,
            quantity=config.contracts,
            point_value=spec.point_value,
            entry_time=entry_time,
            user_id=config.user_id,
            config_id=config.id,
        )

        logger.info(
            f"[RiskMgr] Levels for {direction.name} {config.contracts} {config.symbol} "
            f"@ {entry_price:.1f} | TP: {take_profit:.1f} | SL: {stop_loss:.1f}"
        )
        return position

    def check_take_profit(self, position: Position, current_price: float) -> bool:
        if position.direction is Direction.LONG:
            return current_price >= position.take_profit
        return current_price <= position.take_profit

    def check_stop_loss(self, position: Position, current_price: float) -> bool:
        if position.direction is Direction.LONG:
            return current_price <= position.stop_loss
        return current_price >= position.stop_loss

    def check_exit(self, position: Position, current_price: float) -> Optional[Tuple[ExitReason, float]]:
        """
        Exit reason and the level price to settle at, or None.
        Exits settle at the configured level, not at the tick price.
        """
        if self.check_take_profit(position, current_price):
            return ExitReason.TAKE_PROFIT, position.take_profit
        if self.check_stop_loss(position, current_price):
            return ExitReason.STOP_LOSS, position.stop_loss
        return None

    def trailing_stop(self, position: Position, current_price: float, distance: float) -> Optional[float]:
        """New stop if it tightens the current one, else None"""
        if position.direction is Direction.LONG:
            candidate = current_price - distance
            if candidate > position.stop_loss:
                return candidate
        else:
            candidate = current_price + distance
            if candidate < position.stop_loss:
                return candidate
        return None

    def evaluate(self, position: Position, current_price: float, config: StrategyConfig) -> RiskAction:
        exit_hit = self.check_exit(position, current_price)
        if exit_hit is not None:
            reason, price = exit_hit
            return RiskAction(exit_reason=reason, exit_price=price)

        if config.trailing_stop_enabled:
            new_stop = self.trailing_stop(position, current_price, config.trailing_stop_points)
            if new_stop is not None:
                return RiskAction(new_stop_loss=new_stop)

        return RiskAction()

    def realized_result(self, position: Position, exit_price: float) -> float:
        return position.realized_result(exit_price)
