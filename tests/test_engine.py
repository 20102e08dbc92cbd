"""
Trading engine lifecycle and tick tests
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from daytrade.bot.engine import TradingEngine
from daytrade.core.errors import AlreadyActive, NotActive
from daytrade.core.market_data import SimulatedMarketData
from daytrade.core.models import (
    Position,
    PositionStatus,
    Direction,
    ExitReason,
    OrderResult,
)
from daytrade.core.paper_broker import PaperOrderExecutor
from daytrade.core.settings import Settings

from conftest import make_snapshot, SESSION_TIME


def messages(store, level=None):
    return [log["message"] for log in store.logs if level is None or log["level"] == level]


async def add_closed_trade(store, config, result):
    position = Position(
        direction=Direction.LONG,
        symbol="WIN",
        entry_price=112000,
        take_profit=112833,
        stop_loss=111850,
        quantity=1,
        point_value=0.20,
        entry_time=SESSION_TIME,
        status=PositionStatus.CLOSED,
        result=result,
        user_id=config.user_id,
        config_id=config.id,
    )
    return await store.create_trade(position)


class TestLifecycle:

    async def test_start_reports_active(self, engine, store, config):
        await engine.start_bot("user-1", config)

        status = await engine.get_bot_status("user-1")
        assert status.active is True
        assert status.config_id == config.id
        assert store.active_configs[config.id] is True
        assert "Bot started" in messages(store, "INFO")

    async def test_start_twice_fails(self, engine, config):
        await engine.start_bot("user-1", config)
        with pytest.raises(AlreadyActive):
            await engine.start_bot("user-1", config)

    async def test_stop(self, engine, store, config):
        await engine.start_bot("user-1", config)
        await engine.stop_bot("user-1")

        assert await engine.get_bot_status("user-1") is None
        assert store.active_configs[config.id] is False
        assert "Bot stopped by user" in messages(store, "INFO")

        with pytest.raises(NotActive):
            await engine.stop_bot("user-1")

    async def test_stop_unknown_user(self, engine):
        with pytest.raises(NotActive):
            await engine.stop_bot("nobody")

    async def test_emergency_stop_unknown_user_is_noop(self, engine, store):
        await engine.emergency_stop("nobody")
        assert store.logs == []

    async def test_restart_after_stop(self, engine, config):
        await engine.start_bot("user-1", config)
        await engine.stop_bot("user-1")
        state = await engine.start_bot("user-1", config)
        assert state.active

    async def test_concurrent_stops_only_one_wins(self, engine, config):
        await engine.start_bot("user-1", config)
        results = await asyncio.gather(
            engine.stop_bot("user-1"), engine.stop_bot("user-1"), return_exceptions=True
        )
        assert sum(isinstance(r, NotActive) for r in results) == 1

    async def test_status_event_published(self, engine, events, config):
        await engine.start_bot("user-1", config)
        event = events.queue.get_nowait()
        assert event.kind == "bot_status"
        assert event.payload["config_id"] == config.id

    async def test_stop_while_activating(self, engine, store, config):
        """A stop that lands during activation leaves the config inactive and no monitor task"""
        gate = asyncio.Event()
        set_active = store.set_config_active

        async def slow_activate(config_id, user_id, active):
            if active:
                await gate.wait()
            await set_active(config_id, user_id, active)

        store.set_config_active = slow_activate
        starting = asyncio.create_task(engine.start_bot("user-1", config))
        for _ in range(3):
            await asyncio.sleep(0)

        await engine.stop_bot("user-1")
        gate.set()
        state = await starting

        assert state.task is None
        assert store.active_configs[config.id] is False
        assert "Bot started" not in messages(store)
        assert await engine.get_bot_status("user-1") is None

    async def test_monitor_loop_ticks(self, market, executor, store, clock, config):
        engine = TradingEngine(market, executor, store, settings=Settings(monitor_interval=0.01), clock=clock)
        await engine.start_bot("user-1", config)
        await asyncio.sleep(0.1)
        await engine.stop_bot("user-1")

        assert market.latest.await_count >= 1
        # stop closed whatever the loop opened
        assert await store.get_open_position("user-1") is None


class TestTick:

    async def test_opens_position(self, engine, store, executor, config):
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")

        position = await store.get_open_position("user-1")
        assert position.direction is Direction.LONG
        assert position.entry_price == 112000
        assert position.take_profit == 112833
        assert position.stop_loss == 111850
        assert len(executor.orders) == 1
        assert (await engine.get_bot_status("user-1")).position is position
        assert any(m.startswith("Trade executed") for m in messages(store, "INFO"))

    async def test_no_market_data(self, engine, store, market, config):
        market.latest.return_value = None
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")

        assert messages(store, "WARNING") == ["No market data available for WIN"]
        assert store.trades == {}
        assert (await engine.get_bot_status("user-1")).position is None

    async def test_no_indicators(self, engine, store, market, config):
        market.indicators.return_value = None
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")

        assert messages(store, "WARNING") == ["No indicators available for WIN"]
        assert store.trades == {}

    async def test_failed_order(self, market, store, clock, config):
        executor = AsyncMock()
        executor.execute.return_value = OrderResult(success=False, error="rejected")
        engine = TradingEngine(market, executor, store, settings=Settings(monitor_interval=3600), clock=clock)

        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")

        assert any("rejected" in m for m in messages(store, "ERROR"))
        assert store.trades == {}
        assert (await engine.get_bot_status("user-1")).position is None
        await engine.shutdown()

    async def test_error_does_not_stop_later_ticks(self, engine, store, market, config):
        market.latest.side_effect = [RuntimeError("feed down"), make_snapshot(112000)]
        await engine.start_bot("user-1", config)

        await engine.run_tick("user-1")
        assert "Monitoring error: feed down" in messages(store, "ERROR")

        await engine.run_tick("user-1")
        assert await store.get_open_position("user-1") is not None
        market.latest.side_effect = None

    async def test_audit_failure_does_not_break_tick(self, engine, store, config):
        await engine.start_bot("user-1", config)
        store.append_log = AsyncMock(side_effect=RuntimeError("db down"))

        await engine.run_tick("user-1")
        assert await store.get_open_position("user-1") is not None

    async def test_trade_limit_skips_entry(self, engine, store, market, config):
        for _ in range(config.max_trades_per_day):
            await add_closed_trade(store, config, 10.0)
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")

        assert "Daily trade limit reached" in messages(store, "INFO")
        market.indicators.assert_not_awaited()
        assert await store.get_open_position("user-1") is None

    async def test_profit_target_stops_bot(self, engine, store, config):
        await add_closed_trade(store, config, 600.0)
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")

        assert await engine.get_bot_status("user-1") is None
        assert store.active_configs[config.id] is False
        assert "Daily profit target reached" in messages(store, "INFO")

    async def test_missing_config_stops_bot(self, engine, store, config):
        await engine.start_bot("user-1", config)
        del store.configs[config.id]
        await engine.run_tick("user-1")

        assert await engine.get_bot_status("user-1") is None

    async def test_take_profit_closes_position(self, engine, store, market, executor, config):
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")
        trade = await store.get_open_position("user-1")

        market.latest.return_value = make_snapshot(112900)
        await engine.run_tick("user-1")

        assert trade.status is PositionStatus.CLOSED
        assert trade.exit_reason is ExitReason.TAKE_PROFIT
        assert trade.exit_price == 112833
        assert trade.result == pytest.approx(166.6)
        assert executor.orders[-1]["side"] == Direction.SHORT.value
        assert (await engine.get_bot_status("user-1")).position is None

    async def test_trailing_stop_persisted(self, engine, store, market, config):
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")

        market.latest.return_value = make_snapshot(112200)
        await engine.run_tick("user-1")

        trade = await store.get_open_position("user-1")
        assert trade.stop_loss == 112150
        assert any(m.startswith("Trailing stop moved") for m in messages(store, "INFO"))

    async def test_stop_not_moved_when_price_falls(self, engine, store, market, config):
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")
        store.update_trade_stop_loss = AsyncMock(wraps=store.update_trade_stop_loss)

        market.latest.return_value = make_snapshot(111900)
        await engine.run_tick("user-1")

        store.update_trade_stop_loss.assert_not_awaited()
        trade = await store.get_open_position("user-1")
        assert trade.stop_loss == 111850

    async def test_concurrent_ticks_open_one_position(self, market, store, clock, config):
        executor = PaperOrderExecutor(latency=0.01)
        engine = TradingEngine(market, executor, store, settings=Settings(monitor_interval=3600), clock=clock)
        await engine.start_bot("user-1", config)

        await asyncio.gather(engine.run_tick("user-1"), engine.run_tick("user-1"))

        assert len(store.trades) == 1
        assert len(executor.orders) == 1
        await engine.shutdown()

    async def test_no_ticks_after_stop(self, engine, store, market, config):
        await engine.start_bot("user-1", config)
        await engine.stop_bot("user-1")
        market.latest.reset_mock()

        await engine.run_tick("user-1")
        market.latest.assert_not_awaited()


class TestForcedClose:

    async def test_stop_closes_open_position(self, engine, store, market, config):
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")
        trade = await store.get_open_position("user-1")

        market.latest.return_value = make_snapshot(112100)
        await engine.stop_bot("user-1")

        assert trade.exit_reason is ExitReason.BOT_STOPPED
        assert trade.exit_price == 112100
        assert trade.result == pytest.approx(20.0)

    async def test_emergency_stop(self, engine, store, config):
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")
        trade = await store.get_open_position("user-1")

        await engine.emergency_stop("user-1")

        assert trade.exit_reason is ExitReason.EMERGENCY_STOP
        assert "Emergency stop activated" in messages(store, "WARNING")
        assert await engine.get_bot_status("user-1") is None

    async def test_no_price_leaves_position_open(self, engine, store, market, config):
        await engine.start_bot("user-1", config)
        await engine.run_tick("user-1")

        market.latest.return_value = None
        await engine.stop_bot("user-1")

        assert await store.get_open_position("user-1") is not None
        assert any("left open" in m for m in messages(store, "WARNING"))
        assert await engine.get_bot_status("user-1") is None


class TestBacktest:

    async def test_named_backtest_is_saved(self, executor, store, clock, config):
        engine = TradingEngine(SimulatedMarketData(seed=5), executor, store, clock=clock)
        result = await engine.run_backtest(config, "1d", "5m", name="smoke")

        assert result.bars == 288
        saved = list(store.backtests.values())
        assert len(saved) == 1
        assert saved[0]["name"] == "smoke"
        assert saved[0]["result"] is result

    async def test_unnamed_backtest_not_saved(self, executor, store, clock, config):
        engine = TradingEngine(SimulatedMarketData(seed=5), executor, store, clock=clock)
        await engine.run_backtest(config, "1d", "5m")
        assert store.backtests == {}
