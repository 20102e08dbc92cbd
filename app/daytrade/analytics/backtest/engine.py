"""
Backtesting engine: replays the live entry / risk logic over historical bars
"""
from typing import Sequence, List, Optional

from loguru import logger

from daytrade.analytics.indicators import indicator_set, SLOW_EMA
from daytrade.analytics.risk.manager import RiskManager
from daytrade.analytics.strategies.entry_score import EntryEvaluator
from daytrade.core.errors import InsufficientData
from daytrade.core.interfaces import MarketDataProvider
from daytrade.core.models import (
    StrategyConfig,
    MarketSnapshot,
    Position,
    BacktestTrade,
    BacktestResult,
)

MIN_BARS = 50
WARMUP_INDEX = SLOW_EMA     # first index with a full 21-bar window


class BacktestEngine:
    """
    Bar-by-bar simulator with at most one synthetic position.
    No orders are placed; exits settle at the take-profit / stop-loss level.
    A position still open after the last bar is reported as `open_position`
    and left out of the statistics.
    """

    def __init__(
        self,
        evaluator: Optional[EntryEvaluator] = None,
        risk_manager: Optional[RiskManager] = None,
    ):
        self.evaluator = evaluator or EntryEvaluator()
        self.risk_manager = risk_manager or RiskManager()

    async def run(
        self,
        provider: MarketDataProvider,
        config: StrategyConfig,
        period: str,
        interval: str,
    ) -> BacktestResult:
        """Fetch history from the provider and simulate"""
        logger.info(f"[Backtest] {config.symbol} {interval} over {period} (config {config.id})")

        bars = await provider.history(config.symbol, period, interval)
        return self.simulate(bars, config)

    def simulate(self, bars: Sequence[MarketSnapshot], config: StrategyConfig) -> BacktestResult:
        if len(bars) < MIN_BARS:
            raise InsufficientData(len(bars), MIN_BARS)

        trades: List[BacktestTrade] = []
        position: Optional[Position] = None

        for i in range(WARMUP_INDEX, len(bars)):
            bar = bars[i]
            window = bars[i - WARMUP_INDEX + 1: i + 1]
            closes = [b.price for b in window]
            volumes = [b.volume or 0 for b in window]
            indicators = indicator_set(closes, volumes)

            if position is None:
                decision = self.evaluator.evaluate(bar, indicators)
                if decision.should_enter:
                    position = self.risk_manager.open_position(
                        config, decision.direction, bar.price, bar.timestamp
                    )
                continue

            action = self.risk_manager.evaluate(position, bar.price, config)
            if action.should_exit:
                result = position.close(action.exit_price, action.exit_reason, bar.timestamp)
                trades.append(BacktestTrade(
                    entry_time=position.entry_time,
                    exit_time=bar.timestamp,
                    direction=position.direction,
                    entry_price=position.entry_price,
                    exit_price=action.exit_price,
                    points=position.points_gained(action.exit_price),
                    result=result,
                    reason=action.exit_reason,
                ))
                position = None
            elif action.new_stop_loss is not None:
                position.stop_loss = action.new_stop_loss

        result = self.summarize(trades)
        result.open_position = position
        result.bars = len(bars)

        logger.info(
            f"[Backtest] Completed: {result.total_trades} trades, "
            f"return={result.total_return:.2f}, wins={result.winning_trades}, "
            f"losses={result.losing_trades}, max DD={result.max_drawdown:.2f}"
        )
        if position is not None:
            logger.info(
                f"[Backtest] {position.direction.name} from {position.entry_price:.1f} "
                f"still open at series end, excluded from statistics"
            )
        return result

    @staticmethod
    def summarize(trades: List[BacktestTrade]) -> BacktestResult:
        total = len(trades)
        wins = [t for t in trades if t.result > 0]
        total_return = sum(t.result for t in trades)

        return BacktestResult(
            total_trades=total,
            winning_trades=len(wins),
            losing_trades=total - len(wins),
            total_return=total_return,
            average_return=total_return / total if total else 0.0,
            max_drawdown=max_drawdown([t.result for t in trades]),
            win_rate=(len(wins) / total * 100) if total else 0.0,
            trades=trades,
        )


def max_drawdown(results: Sequence[float]) -> float:
    """Largest peak-to-trough fall of the cumulative result curve"""
    peak = 0.0
    running = 0.0
    worst = 0.0
    for r in results:
        running += r
        if running > peak:
            peak = running
        worst = max(worst, peak - running)
    return worst
