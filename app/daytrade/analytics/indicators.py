"""
Technical indicators over ordered price sequences.

All functions are pure; callers pass prices oldest first.
"""
from typing import Sequence, Optional, List, Tuple

from daytrade.core.models import IndicatorSet

RSI_PERIOD = 9
FAST_EMA = 9
SLOW_EMA = 21
MACD_FAST = 8
MACD_SLOW = 17
MACD_SIGNAL = 6
VOLATILITY_WINDOW = 10
VOLUME_WINDOW = 20


def rsi(prices: Sequence[float], period: int = RSI_PERIOD) -> float:
    """
    RSI over the last `period` deltas.
    Returns 50 when there is not enough data and 100 when there are no losses.
    """
    if len(prices) < period + 1:
        return 50.0

    gains = 0.0
    losses = 0.0
    for i in range(len(prices) - period, len(prices)):
        diff = prices[i] - prices[i - 1]
        if diff > 0:
            gains += diff
        else:
            losses -= diff

    avg_gain = gains / period
    avg_loss = losses / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def ema(prices: Sequence[float], period: int) -> float:
    """EMA seeded with the first price of the window"""
    if len(prices) == 0:
        return 0.0
    if len(prices) == 1:
        return float(prices[0])

    multiplier = 2 / (period + 1)
    value = float(prices[0])
    for price in prices[1:]:
        value = (price - value) * multiplier + value
    return value


def stddev(prices: Sequence[float]) -> float:
    """Population standard deviation"""
    if len(prices) == 0:
        return 0.0

    mean = sum(prices) / len(prices)
    variance = sum((x - mean) ** 2 for x in prices) / len(prices)
    return variance ** 0.5


def macd(
    prices: Sequence[float],
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL,
) -> Tuple[float, float]:
    """
    Returns (macd line, signal line). The signal line is the EMA of the
    MACD values computed at every point of the window.
    """
    if len(prices) == 0:
        return 0.0, 0.0

    fast_mult = 2 / (fast + 1)
    slow_mult = 2 / (slow + 1)
    fast_val = slow_val = float(prices[0])
    series: List[float] = [0.0]
    # running EMAs: each step equals ema() over the prefix ending there
    for price in prices[1:]:
        fast_val = (price - fast_val) * fast_mult + fast_val
        slow_val = (price - slow_val) * slow_mult + slow_val
        series.append(fast_val - slow_val)

    return series[-1], ema(series, signal)


def volume_ratio(volumes: Optional[Sequence[float]], window: int = VOLUME_WINDOW) -> float:
    if not volumes:
        return 0.0
    recent = volumes[-window:]
    average = sum(recent) / len(recent)
    if average == 0:
        return 0.0
    return volumes[-1] / average


def indicator_set(
    closes: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
) -> IndicatorSet:
    """Build the full indicator set from a window of closes"""
    macd_line, signal_line = macd(closes)
    return IndicatorSet(
        rsi=rsi(closes, RSI_PERIOD),
        ema9=ema(closes, FAST_EMA),
        ema21=ema(closes, SLOW_EMA),
        macd=macd_line,
        macd_signal=signal_line,
        volatility=stddev(closes[-VOLATILITY_WINDOW:]),
        volume_ratio=volume_ratio(volumes) if volumes else None,
    )
