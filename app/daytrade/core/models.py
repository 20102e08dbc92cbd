# core/models.py

import asyncio
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List, Tuple, Any


class Direction(str, Enum):
    LONG = "COMPRA"
    SHORT = "VENDA"

    @property
    def opposite(self) -> "Direction":
        return Direction.SHORT if self is Direction.LONG else Direction.LONG

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


class PositionStatus(str, Enum):
    OPEN = "ATIVO"
    CLOSED = "FECHADO"


class ExitReason(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    BOT_STOPPED = "BOT_STOPPED"
    EMERGENCY_STOP = "EMERGENCY_STOP"


@dataclass(frozen=True)
class StrategyConfig:
    id: str
    user_id: str
    name: str = "default"
    symbol: str = "WIN"
    contracts: int = 1
    daily_profit_target: float = 500.0   # currency
    stop_loss_points: float = 150
    max_trades_per_day: int = 3
    trailing_stop_enabled: bool = True
    trailing_stop_points: float = 50
    dynamic_hours: bool = True
    entry_times: Tuple[str, ...] = ("10:00", "13:00", "15:30")

    def __post_init__(self):
        if self.contracts < 1:
            raise ValueError(f"contracts must be >= 1, got {self.contracts}")
        if self.max_trades_per_day < 1:
            raise ValueError(f"max_trades_per_day must be >= 1, got {self.max_trades_per_day}")
        if self.stop_loss_points <= 0:
            raise ValueError(f"stop_loss_points must be > 0, got {self.stop_loss_points}")
        if self.trailing_stop_points < 0:
            raise ValueError(f"trailing_stop_points must be >= 0, got {self.trailing_stop_points}")


@dataclass
class MarketSnapshot:
    symbol: str
    price: float            # last traded / close
    timestamp: datetime
    volume: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None


@dataclass
class IndicatorSet:
    rsi: float
    ema9: float
    ema21: float
    macd: float
    macd_signal: float
    volatility: float
    volume_ratio: Optional[float] = None


@dataclass
class EntryDecision:
    should_enter: bool
    direction: Direction
    score: int


@dataclass
class OrderResult:
    success: bool
    order_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Position:
    direction: Direction
    symbol: str
    entry_price: float
    take_profit: float
    stop_loss: float
    quantity: int
    point_value: float
    entry_time: datetime
    status: PositionStatus = PositionStatus.OPEN
    exit_price: Optional[float] = None
    exit_reason: Optional[ExitReason] = None
    exit_time: Optional[datetime] = None
    result: float = 0.0
    id: Optional[str] = None
    user_id: Optional[str] = None
    config_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    def points_gained(self, exit_price: float) -> float:
        return (exit_price - self.entry_price) * self.direction.sign

    def realized_result(self, exit_price: float) -> float:
        return self.points_gained(exit_price) * self.point_value * self.quantity

    def close(self, exit_price: float, reason: ExitReason, exit_time: datetime) -> float:
        self.result = self.realized_result(exit_price)
        self.exit_price = exit_price
        self.exit_reason = reason
        self.exit_time = exit_time
        self.status = PositionStatus.CLOSED
        return self.result


@dataclass
class DailyMetrics:
    total_trades: int = 0
    total_profit: float = 0.0
    winning_trades: int = 0
    losing_trades: int = 0

    @property
    def win_rate(self) -> float:
        if self.total_trades == 0:
            return 0.0
        return self.winning_trades / self.total_trades * 100


@dataclass
class BotRuntimeState:
    user_id: str
    config: StrategyConfig
    active: bool = True
    position: Optional[Position] = None
    trades_today: int = 0
    profit_today: float = 0.0
    last_activity: datetime = field(default_factory=datetime.now)
    stopping: bool = False
    stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    tick_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def config_id(self) -> str:
        return self.config.id

    def summary(self) -> Dict[str, Any]:
        return {
            "is_active": self.active,
            "user_id": self.user_id,
            "config_id": self.config_id,
            "current_position": position_to_dict(self.position) if self.position else None,
            "daily_trades": self.trades_today,
            "daily_profit": self.profit_today,
            "last_activity": self.last_activity,
        }


@dataclass
class BotEvent:
    kind: str               # bot_status / trade_update
    user_id: str
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BacktestTrade:
    entry_time: datetime
    exit_time: datetime
    direction: Direction
    entry_price: float
    exit_price: float
    points: float
    result: float
    reason: ExitReason


@dataclass
class BacktestResult:
    total_trades: int
    winning_trades: int
    losing_trades: int
    total_return: float
    average_return: float
    max_drawdown: float
    win_rate: float
    trades: List[BacktestTrade] = field(default_factory=list)
    open_position: Optional[Position] = None
    bars: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["open_position"] = position_to_dict(self.open_position) if self.open_position else None
        return data


def position_to_dict(position: Position) -> Dict[str, Any]:
    return asdict(position)
