import json
import os
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List

import asyncpg
from loguru import logger

from daytrade.analytics.indicators import indicator_set
from daytrade.core.interfaces import PersistenceStore, MarketDataProvider
from daytrade.core.market_data import PERIOD_BARS, DEFAULT_PERIOD_BARS, INDICATOR_LOOKBACK, MIN_INDICATOR_BARS
from daytrade.core.models import (
    StrategyConfig,
    Position,
    PositionStatus,
    Direction,
    ExitReason,
    DailyMetrics,
    MarketSnapshot,
    IndicatorSet,
    BacktestResult,
)


def _json_default(o):
    if isinstance(o, datetime):
        return o.isoformat()
    raise TypeError(f"Type {type(o)} not serializable")


def _row_to_config(row) -> StrategyConfig:
    return StrategyConfig(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        symbol=row["symbol"],
        contracts=row["contracts"],
        daily_profit_target=float(row["daily_profit_target"]),
        stop_loss_points=row["stop_loss_points"],
        max_trades_per_day=row["max_trades_per_day"],
        trailing_stop_enabled=row["trailing_stop_enabled"],
        trailing_stop_points=row["trailing_stop_points"],
        dynamic_hours=row["dynamic_hours"],
        entry_times=tuple(json.loads(row["entry_times"] or "[]")),
    )


def _row_to_position(row) -> Position:
    return Position(
        id=row["id"],
        user_id=row["user_id"],
        config_id=row["config_id"],
        symbol=row["symbol"],
        direction=Direction(row["direction"]),
        entry_price=row["entry_price"],
        take_profit=row["take_profit"],
        stop_loss=row["stop_loss"],
        quantity=row["quantity"],
        point_value=row["point_value"],
        entry_time=row["entry_time"],
        status=PositionStatus(row["status"]),
        exit_price=row["exit_price"],
        exit_reason=ExitReason(row["exit_reason"]) if row["exit_reason"] else None,
        exit_time=row["exit_time"],
        result=float(row["result"] or 0),
    )


class TimescaleClient(PersistenceStore):
    def __init__(self, dsn: Optional[Dict[str, Any]] = None):
        self.pool = None
        self._dsn = dsn or {
            "user": os.getenv("PGUSER", "postgres"),
            "password": os.getenv("PGPASSWORD", "postgres"),
            "database": os.getenv("PGDATABASE", "trading_db"),
            "host": os.getenv("PGHOST", "localhost"),
            "port": int(os.getenv("PGPORT", "5432")),
        }

    async def connect(self):
        if self.pool is None:
            try:
                self.pool = await asyncpg.create_pool(**self._dsn, min_size=2, max_size=10)
                logger.info(f"Connected to TimescaleDB at {self._dsn['host']}:{self._dsn['port']}")
            except Exception as e:
                logger.error(f"Failed to connect to TimescaleDB: {e}")
                raise

    async def disconnect(self):
        if self.pool:
            await self.pool.close()
            logger.info("Disconnected from TimescaleDB")
            self.pool = None

    def _require_pool(self):
        if self.pool is None:
            raise RuntimeError("TimescaleClient not connected")
        return self.pool

    # --- configurations ---

    async def create_config(self, config: StrategyConfig) -> StrategyConfig:
        q = """
        INSERT INTO bot_configurations(
            id, user_id, name, symbol, contracts, daily_profit_target, stop_loss_points,
            max_trades_per_day, trailing_stop_enabled, trailing_stop_points, dynamic_hours,
            entry_times, is_active)
        VALUES(COALESCE(NULLIF($1, ''), gen_random_uuid()::text),$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,false)
        RETURNING *
        """
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(
                q,
                config.id,
                config.user_id,
                config.name,
                config.symbol,
                config.contracts,
                config.daily_profit_target,
                config.stop_loss_points,
                config.max_trades_per_day,
                config.trailing_stop_enabled,
                config.trailing_stop_points,
                config.dynamic_hours,
                json.dumps(list(config.entry_times)),
            )
            return _row_to_config(row)

    async def get_config(self, config_id: str, user_id: str) -> Optional[StrategyConfig]:
        q = "SELECT * FROM bot_configurations WHERE id = $1 AND user_id = $2"
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(q, config_id, user_id)
            return _row_to_config(row) if row else None

    async def set_config_active(self, config_id: str, user_id: str, active: bool) -> None:
        q = """
        UPDATE bot_configurations SET is_active = $3, updated_at = now()
        WHERE id = $1 AND user_id = $2
        """
        async with self._require_pool().acquire() as conn:
            await conn.execute(q, config_id, user_id, active)

    # --- trades ---

    async def get_open_position(self, user_id: str) -> Optional[Position]:
        q = """
        SELECT * FROM trades WHERE user_id = $1 AND status = $2
        ORDER BY entry_time DESC LIMIT 1
        """
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(q, user_id, PositionStatus.OPEN.value)
            return _row_to_position(row) if row else None

    async def create_trade(self, position: Position) -> Position:
        q = """
        INSERT INTO trades(
            id, user_id, config_id, symbol, direction, entry_price, take_profit, stop_loss,
            quantity, point_value, status, entry_time)
        VALUES(gen_random_uuid()::text,$1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11)
        RETURNING id
        """
        async with self._require_pool().acquire() as conn:
            position.id = await conn.fetchval(
                q,
                position.user_id,
                position.config_id,
                position.symbol,
                position.direction.value,
                position.entry_price,
                position.take_profit,
                position.stop_loss,
                position.quantity,
                position.point_value,
                position.status.value,
                position.entry_time,
            )
            return position

    async def update_trade_stop_loss(self, trade_id: str, stop_loss: float) -> None:
        async with self._require_pool().acquire() as conn:
            await conn.execute("UPDATE trades SET stop_loss = $2 WHERE id = $1", trade_id, stop_loss)

    async def close_trade(
        self,
        trade_id: str,
        user_id: str,
        exit_price: float,
        reason: ExitReason,
        result: float,
        exit_time: datetime,
    ) -> Position:
        q = """
        UPDATE trades
        SET exit_price = $3, exit_reason = $4, result = $5, exit_time = $6, status = $7
        WHERE id = $1 AND user_id = $2
        RETURNING *
        """
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(
                q, trade_id, user_id, exit_price, reason.value, result, exit_time,
                PositionStatus.CLOSED.value,
            )
            if row is None:
                raise KeyError(f"Unknown trade {trade_id} for user {user_id}")
            return _row_to_position(row)

    async def get_daily_metrics(self, user_id: str) -> DailyMetrics:
        today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
        q = """
        SELECT count(*) AS total_trades,
               coalesce(sum(result), 0) AS total_profit,
               count(*) FILTER (WHERE result > 0) AS winning_trades,
               count(*) FILTER (WHERE result <= 0) AS losing_trades
        FROM trades
        WHERE user_id = $1 AND entry_time >= $2 AND entry_time < $3
        """
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(q, user_id, today, today + timedelta(days=1))
            return DailyMetrics(
                total_trades=row["total_trades"],
                total_profit=float(row["total_profit"]),
                winning_trades=row["winning_trades"],
                losing_trades=row["losing_trades"],
            )

    # --- logs / backtests ---

    async def append_log(
        self,
        user_id: str,
        config_id: Optional[str],
        level: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        q = """
        INSERT INTO bot_logs(user_id, config_id, level, message, metadata)
        VALUES($1,$2,$3,$4,$5)
        """
        async with self._require_pool().acquire() as conn:
            await conn.execute(
                q, user_id, config_id, level, message,
                json.dumps(metadata or {}, default=_json_default),
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
        q = """
        INSERT INTO backtest_results(
            id, user_id, config_id, name, period, interval, total_trades, winning_trades,
            losing_trades, total_return, average_return, max_drawdown, win_rate, results)
        VALUES(gen_random_uuid()::text,$1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,$13)
        RETURNING id
        """
        payload = result.to_dict()
        async with self._require_pool().acquire() as conn:
            return await conn.fetchval(
                q,
                user_id,
                config_id,
                name,
                period,
                interval,
                result.total_trades,
                result.winning_trades,
                result.losing_trades,
                result.total_return,
                result.average_return,
                result.max_drawdown,
                result.win_rate,
                json.dumps(payload["trades"], default=_json_default),
            )


class TimescaleMarketData(MarketDataProvider):
    """
    Reads candles from the ohlcv table; indicators are computed from the last 50 closes.
    """

    def __init__(self, db: TimescaleClient):
        self.db = db

    async def fetch_candles(self, symbol: str, timeframe: str, limit: int) -> List[MarketSnapshot]:
        """Most recent `limit` candles, oldest first"""
        query = """
        SELECT time, symbol, open, high, low, close, volume
        FROM ohlcv
        WHERE symbol = $1 AND timeframe = $2
        ORDER BY time DESC
        LIMIT $3
        """
        async with self.db._require_pool().acquire() as conn:
            rows = await conn.fetch(query, symbol, timeframe, limit)

        return [
            MarketSnapshot(
                symbol=r["symbol"],
                price=r["close"],
                timestamp=r["time"],
                volume=r["volume"],
                open=r["open"],
                high=r["high"],
                low=r["low"],
            )
            for r in reversed(rows)
        ]

    async def latest(self, symbol: str) -> Optional[MarketSnapshot]:
        candles = await self.fetch_candles(symbol, "1m", 1)
        return candles[-1] if candles else None

    async def indicators(self, symbol: str, timeframe: str) -> Optional[IndicatorSet]:
        candles = await self.fetch_candles(symbol, timeframe, INDICATOR_LOOKBACK)
        if len(candles) < MIN_INDICATOR_BARS:
            return None
        return indicator_set([c.price for c in candles], [c.volume or 0 for c in candles])

    async def history(self, symbol: str, period: str, interval: str) -> List[MarketSnapshot]:
        limit = PERIOD_BARS.get(period, DEFAULT_PERIOD_BARS)
        return await self.fetch_candles(symbol, interval, limit)
