from datetime import datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from loguru import logger

from daytrade.core.models import MarketSnapshot, IndicatorSet, EntryDecision, Direction


class EntryEvaluator:
    """
    Additive entry score over independent signals (max 100):
    - RSI neutral zone (30-70): +20, oversold (<35): +15, overbought (>65): +10
    - Trend EMA9 > EMA21: +20 LONG, otherwise +15 SHORT (always sets direction)
    - MACD above signal: +15
    - Volatility in 20-200: +20
    - Inside the trading session window: +25
    Enter when the score reaches 60.
    """

    ENTRY_THRESHOLD = 60

    RSI_NEUTRAL = (30, 70)
    RSI_OVERSOLD = 35
    RSI_OVERBOUGHT = 65
    VOLATILITY_BAND = (20, 200)

    SESSION_OPEN = time(9, 30)
    SESSION_CLOSE = time(17, 25)

    W_RSI_NEUTRAL = 20
    W_RSI_OVERSOLD = 15
    W_RSI_OVERBOUGHT = 10
    W_TREND_UP = 20
    W_TREND_DOWN = 15
    W_MOMENTUM = 15
    W_VOLATILITY = 20
    W_SESSION = 25

    def __init__(self, market_timezone: Optional[str] = "America/Sao_Paulo"):
        self.tz = ZoneInfo(market_timezone) if market_timezone else None

    def evaluate(self, snapshot: MarketSnapshot, indicators: IndicatorSet) -> EntryDecision:
        score = 0
        direction = Direction.LONG

        # RSI: neutral zone wins over the bias bands
        if self.RSI_NEUTRAL[0] <= indicators.rsi <= self.RSI_NEUTRAL[1]:
            score += self.W_RSI_NEUTRAL
        elif indicators.rsi < self.RSI_OVERSOLD:
            score += self.W_RSI_OVERSOLD
            direction = Direction.LONG
        elif indicators.rsi > self.RSI_OVERBOUGHT:
            score += self.W_RSI_OVERBOUGHT
            direction = Direction.SHORT

        # Trend always overrides the RSI bias
        if indicators.ema9 > indicators.ema21:
            score += self.W_TREND_UP
            direction = Direction.LONG
        else:
            score += self.W_TREND_DOWN
            direction = Direction.SHORT

        if indicators.macd > indicators.macd_signal:
            score += self.W_MOMENTUM

        if self.VOLATILITY_BAND[0] <= indicators.volatility <= self.VOLATILITY_BAND[1]:
            score += self.W_VOLATILITY

        if self.in_session(snapshot.timestamp):
            score += self.W_SESSION

        decision = EntryDecision(
            should_enter=score >= self.ENTRY_THRESHOLD,
            direction=direction,
            score=score,
        )
        logger.debug(
            f"[EntryScore] {snapshot.symbol} @ {snapshot.price} | score={score} "
            f"dir={direction.name} enter={decision.should_enter}"
        )
        return decision

    def in_session(self, moment: datetime) -> bool:
        """09:30 onwards, all of 10h-16h, and up to 17:25 (market local time)"""
        if self.tz is not None and moment.tzinfo is not None:
            moment = moment.astimezone(self.tz)

        hour, minute = moment.hour, moment.minute
        return (
            (hour == self.SESSION_OPEN.hour and minute >= self.SESSION_OPEN.minute)
            or (self.SESSION_OPEN.hour < hour < self.SESSION_CLOSE.hour)
            or (hour == self.SESSION_CLOSE.hour and minute <= self.SESSION_CLOSE.minute)
        )
