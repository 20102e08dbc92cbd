"""
Trading engine - per-user bot lifecycle and monitoring loop
"""
import asyncio
from datetime import datetime
from typing import Optional, Callable

from loguru import logger

from daytrade.analytics.backtest.engine import BacktestEngine
from daytrade.analytics.risk.manager import RiskManager
from daytrade.analytics.strategies.entry_score import EntryEvaluator
from daytrade.bot.registry import BotRegistry
from daytrade.core.errors import NotActive, DataUnavailable, ExecutionFailed
from daytrade.core.interfaces import MarketDataProvider, OrderExecutor, PersistenceStore, EventSink
from daytrade.core.models import (
    StrategyConfig,
    BotRuntimeState,
    Position,
    MarketSnapshot,
    EntryDecision,
    ExitReason,
    BotEvent,
    BacktestResult,
    position_to_dict,
)
from daytrade.core.settings import Settings


class TradingEngine:
    """
    Runs one monitoring task per user. Each tick:
    reload config -> latest snapshot -> refresh position and daily metrics ->
    daily limits -> manage the open position or evaluate an entry.
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        executor: OrderExecutor,
        store: PersistenceStore,
        events: Optional[EventSink] = None,
        registry: Optional[BotRegistry] = None,
        evaluator: Optional[EntryEvaluator] = None,
        risk_manager: Optional[RiskManager] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings or Settings()
        self.market_data = market_data
        self.executor = executor
        self.store = store
        self.events = events
        self.registry = registry or BotRegistry()
        self.evaluator = evaluator or EntryEvaluator(self.settings.market_timezone)
        self.risk_manager = risk_manager or RiskManager()
        self.backtester = BacktestEngine(self.evaluator, self.risk_manager)
        self.clock = clock

    @property
    def interval(self) -> float:
        return self.settings.monitor_interval

    # ------------------------------------------------------------------ lifecycle

    async def start_bot(self, user_id: str, config: StrategyConfig) -> BotRuntimeState:
        state = BotRuntimeState(user_id=user_id, config=config, last_activity=self.clock())
        await self.registry.register(state)

        try:
            await self.store.set_config_active(config.id, user_id, True)
        except Exception:
            await self.registry.unregister(user_id)
            raise

        if state.stopping:
            # stopped while activating; the stopper's inactive write may have landed first
            await self.store.set_config_active(config.id, user_id, False)
            logger.info(f"[Engine] Bot for {user_id} stopped before monitoring started")
            return state

        state.task = asyncio.create_task(self._monitor_loop(state), name=f"bot-{user_id}")

        logger.info(f"[Engine] Started bot for {user_id} on {config.symbol} (config {config.id})")
        await self._emit(BotEvent("bot_status", user_id, state.summary()))
        await self._audit(state, "INFO", "Bot started")
        return state

    async def stop_bot(self, user_id: str) -> None:
        state = await self.registry.claim_for_stop(user_id)
        await self._shutdown(state, ExitReason.BOT_STOPPED, "INFO", "Bot stopped by user")

    async def emergency_stop(self, user_id: str) -> None:
        try:
            state = await self.registry.claim_for_stop(user_id)
        except NotActive:
            logger.info(f"[Engine] Emergency stop for {user_id}: no active bot")
            return
        await self._shutdown(state, ExitReason.EMERGENCY_STOP, "WARNING", "Emergency stop activated")

    async def get_bot_status(self, user_id: str) -> Optional[BotRuntimeState]:
        return self.registry.get(user_id)

    async def shutdown(self) -> None:
        """Stop every running bot"""
        for user_id in self.registry.active_users():
            try:
                await self.stop_bot(user_id)
            except NotActive:
                continue

    async def _shutdown(
        self,
        state: BotRuntimeState,
        reason: ExitReason,
        level: str,
        message: str,
        from_tick: bool = False,
    ) -> None:
        if from_tick:
            state.stop_event.set()
        else:
            await self._halt_monitoring(state)

        try:
            await self._force_close(state, reason)
        except Exception as e:
            logger.exception(f"[Engine] Failed to close position for {state.user_id}")
            await self._audit(state, "ERROR", f"Failed to close position on stop: {e}")

        try:
            await self.store.set_config_active(state.config_id, state.user_id, False)
        finally:
            await self.registry.unregister(state.user_id)
            state.active = False

        logger.info(f"[Engine] {message} ({state.user_id})")
        await self._emit(BotEvent("bot_status", state.user_id, {"is_active": False, "reason": reason.value}))
        await self._audit(state, level, message)

    async def _halt_monitoring(self, state: BotRuntimeState) -> None:
        """No tick starts after this; an in-flight tick may finish"""
        state.stop_event.set()
        task = state.task
        if task is not None and task is not asyncio.current_task() and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass

        # ticks driven from outside the monitor task
        async with state.tick_lock:
            pass

    async def _stop_from_tick(self, state: BotRuntimeState, message: str) -> None:
        try:
            await self.registry.claim_for_stop(state.user_id)
        except NotActive:
            return
        await self._shutdown(state, ExitReason.BOT_STOPPED, "INFO", message, from_tick=True)

    # ------------------------------------------------------------------ monitoring

    async def _monitor_loop(self, state: BotRuntimeState) -> None:
        logger.info(f"[Engine] Monitoring {state.user_id} every {self.interval}s")
        while not state.stop_event.is_set():
            try:
                await asyncio.wait_for(state.stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if state.stop_event.is_set():
                break
            await self.run_tick(state.user_id)
        logger.debug(f"[Engine] Monitoring loop for {state.user_id} finished")

    async def run_tick(self, user_id: str) -> None:
        """One monitoring cycle; never raises. Ticks for the same bot never overlap."""
        state = self.registry.get(user_id)
        if state is None or state.stopping:
            return

        async with state.tick_lock:
            if state.stopping:
                return
            try:
                await self._tick(state)
            except DataUnavailable as e:
                await self._audit(state, "WARNING", str(e))
            except ExecutionFailed as e:
                await self._audit(state, "ERROR", str(e), error=e.error)
            except Exception as e:
                logger.exception(f"[Engine] Error monitoring bot for user {user_id}")
                await self._audit(state, "ERROR", f"Monitoring error: {e}")

    async def _tick(self, state: BotRuntimeState) -> None:
        user_id = state.user_id

        config = await self.store.get_config(state.config_id, user_id)
        if config is None:
            await self._stop_from_tick(state, "Configuration not found, bot stopped")
            return
        state.config = config

        snapshot = await self.market_data.latest(config.symbol)
        if snapshot is None:
            raise DataUnavailable(config.symbol)

        state.position = await self.store.get_open_position(user_id)
        metrics = await self.store.get_daily_metrics(user_id)
        state.trades_today = metrics.total_trades
        state.profit_today = metrics.total_profit

        if state.profit_today >= config.daily_profit_target:
            await self._audit(state, "INFO", "Daily profit target reached")
            await self._stop_from_tick(state, "Bot stopped: daily profit target reached")
            return

        if state.position is not None:
            await self._manage_position(state, config, snapshot)
        elif state.trades_today >= config.max_trades_per_day:
            await self._audit(state, "INFO", "Daily trade limit reached")
        else:
            await self._evaluate_entry(state, config, snapshot)

        state.last_activity = self.clock()

    # ------------------------------------------------------------------ positions

    async def _manage_position(self, state: BotRuntimeState, config: StrategyConfig, snapshot: MarketSnapshot) -> None:
        position = state.position
        action = self.risk_manager.evaluate(position, snapshot.price, config)

        if action.should_exit:
            await self._close_position(state, position, action.exit_price, action.exit_reason)
        elif action.new_stop_loss is not None:
            await self.store.update_trade_stop_loss(position.id, action.new_stop_loss)
            position.stop_loss = action.new_stop_loss
            await self._audit(
                state, "INFO", f"Trailing stop moved to {action.new_stop_loss:.1f} points",
                trade_id=position.id,
            )

    async def _evaluate_entry(self, state: BotRuntimeState, config: StrategyConfig, snapshot: MarketSnapshot) -> None:
        indicators = await self.market_data.indicators(config.symbol, self.settings.indicator_timeframe)
        if indicators is None:
            raise DataUnavailable(config.symbol, "indicators")

        decision = self.evaluator.evaluate(snapshot, indicators)
        if decision.should_enter:
            await self._open_position(state, config, snapshot, decision)

    async def _open_position(
        self,
        state: BotRuntimeState,
        config: StrategyConfig,
        snapshot: MarketSnapshot,
        decision: EntryDecision,
    ) -> None:
        position = self.risk_manager.open_position(config, decision.direction, snapshot.price, self.clock())

        order = await self.executor.execute(config.symbol, decision.direction, config.contracts, snapshot.price)
        if not order.success:
            raise ExecutionFailed(config.symbol, order.error)

        position = await self.store.create_trade(position)
        state.position = position

        await self._emit(BotEvent("trade_update", state.user_id, {"trade": position_to_dict(position)}))
        await self._audit(
            state,
            "INFO",
            f"Trade executed: {position.direction.value} @ {position.entry_price:.1f} | "
            f"TP: {position.take_profit:.1f} | SL: {position.stop_loss:.1f}",
            order_id=order.order_id,
            score=decision.score,
        )

    async def _close_position(
        self,
        state: BotRuntimeState,
        position: Position,
        exit_price: float,
        reason: ExitReason,
    ) -> None:
        result = self.risk_manager.realized_result(position, exit_price)

        order = await self.executor.execute(
            position.symbol, position.direction.opposite, position.quantity, exit_price
        )
        if not order.success:
            await self._audit(state, "ERROR", f"Exit order failed: {order.error}", trade_id=position.id)

        closed = await self.store.close_trade(
            position.id, state.user_id, exit_price, reason, result, self.clock()
        )
        state.position = None
        state.profit_today += result

        await self._emit(BotEvent("trade_update", state.user_id, {"trade": position_to_dict(closed)}))
        await self._audit(
            state,
            "INFO",
            f"Trade closed ({reason.value}): {position.entry_price:.1f} -> {exit_price:.1f} | R$ {result:.2f}",
            trade_id=position.id,
            result=result,
        )

    async def _force_close(self, state: BotRuntimeState, reason: ExitReason) -> None:
        position = await self.store.get_open_position(state.user_id)
        if position is None:
            return

        snapshot = await self.market_data.latest(position.symbol)
        if snapshot is None:
            await self._audit(
                state, "WARNING", f"No market data to close position {position.id}, left open",
                trade_id=position.id,
            )
            return

        await self._close_position(state, position, snapshot.price, reason)

    # ------------------------------------------------------------------ backtest

    async def run_backtest(
        self,
        config: StrategyConfig,
        period: str,
        interval: str,
        name: Optional[str] = None,
    ) -> BacktestResult:
        result = await self.backtester.run(self.market_data, config, period, interval)
        if name:
            result_id = await self.store.save_backtest_result(
                config.user_id, config.id, name, period, interval, result
            )
            logger.info(f"[Engine] Saved backtest {name!r} as {result_id}")
        return result

    # ------------------------------------------------------------------ plumbing

    async def _emit(self, event: BotEvent) -> None:
        if self.events is None:
            return
        try:
            await self.events.publish(event)
        except Exception as e:
            logger.warning(f"[Engine] Failed to publish {event.kind} for {event.user_id}: {e}")

    async def _audit(self, state: BotRuntimeState, level: str, message: str, **metadata) -> None:
        logger.log(level, f"[Engine] {state.user_id}: {message}")
        try:
            await self.store.append_log(state.user_id, state.config_id, level, message, metadata or None)
        except Exception as e:
            logger.error(f"[Engine] Failed to write audit log for {state.user_id}: {e}")
