#!/usr/bin/env python3
import asyncio

import asyncpg
from loguru import logger

from daytrade.core.settings import Settings

TABLES = {
    "ohlcv": """
    CREATE TABLE IF NOT EXISTS ohlcv (
        time TIMESTAMPTZ NOT NULL,
        symbol TEXT NOT NULL,
        timeframe TEXT NOT NULL,
        open DOUBLE PRECISION,
        high DOUBLE PRECISION,
        low DOUBLE PRECISION,
        close DOUBLE PRECISION,
        volume DOUBLE PRECISION,
        PRIMARY KEY (time, symbol, timeframe)
    );
    """,
    "bot_configurations": """
    CREATE TABLE IF NOT EXISTS bot_configurations (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        symbol TEXT NOT NULL DEFAULT 'WIN',
        contracts INTEGER NOT NULL DEFAULT 1,
        daily_profit_target NUMERIC NOT NULL DEFAULT 500,
        stop_loss_points DOUBLE PRECISION NOT NULL DEFAULT 150,
        max_trades_per_day INTEGER NOT NULL DEFAULT 3,
        trailing_stop_enabled BOOLEAN NOT NULL DEFAULT true,
        trailing_stop_points DOUBLE PRECISION NOT NULL DEFAULT 50,
        dynamic_hours BOOLEAN NOT NULL DEFAULT true,
        entry_times TEXT,
        is_active BOOLEAN NOT NULL DEFAULT false,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "trades": """
    CREATE TABLE IF NOT EXISTS trades (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        config_id TEXT REFERENCES bot_configurations(id),
        symbol TEXT NOT NULL,
        direction TEXT NOT NULL,
        entry_price DOUBLE PRECISION NOT NULL,
        take_profit DOUBLE PRECISION NOT NULL,
        stop_loss DOUBLE PRECISION NOT NULL,
        quantity INTEGER NOT NULL,
        point_value DOUBLE PRECISION NOT NULL,
        status TEXT NOT NULL DEFAULT 'ATIVO',
        entry_time TIMESTAMPTZ NOT NULL,
        exit_price DOUBLE PRECISION,
        exit_reason TEXT,
        exit_time TIMESTAMPTZ,
        result NUMERIC DEFAULT 0
    );
    CREATE INDEX IF NOT EXISTS trades_user_status_idx ON trades (user_id, status);
    """,
    "bot_logs": """
    CREATE TABLE IF NOT EXISTS bot_logs (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL,
        config_id TEXT,
        level TEXT NOT NULL,
        message TEXT NOT NULL,
        metadata TEXT,
        timestamp TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "backtest_results": """
    CREATE TABLE IF NOT EXISTS backtest_results (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        config_id TEXT,
        name TEXT NOT NULL,
        period TEXT NOT NULL,
        interval TEXT NOT NULL,
        total_trades INTEGER NOT NULL,
        winning_trades INTEGER NOT NULL,
        losing_trades INTEGER NOT NULL,
        total_return NUMERIC NOT NULL,
        average_return NUMERIC NOT NULL,
        max_drawdown NUMERIC NOT NULL,
        win_rate NUMERIC NOT NULL,
        results TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
}


async def init_db():
    settings = Settings.from_env()
    conn = await asyncpg.connect(**settings.db)

    try:
        for name, ddl in TABLES.items():
            await conn.execute(ddl)
            logger.info(f"Created {name} table")
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(init_db())
