class TradingBotError(Exception):
    """Base class for engine errors"""


class AlreadyActive(TradingBotError):
    def __init__(self, user_id: str):
        super().__init__(f"Bot already active for user {user_id}")
        self.user_id = user_id


class NotActive(TradingBotError):
    def __init__(self, user_id: str):
        super().__init__(f"No active bot found for user {user_id}")
        self.user_id = user_id


class InsufficientData(TradingBotError):
    def __init__(self, bars: int, required: int):
        super().__init__(f"Insufficient market data for backtest: {bars} bars, need {required}")
        self.bars = bars
        self.required = required


class ExecutionFailed(TradingBotError):
    def __init__(self, symbol: str, error: str = None):
        super().__init__(f"Order execution failed for {symbol}: {error or 'unknown error'}")
        self.symbol = symbol
        self.error = error


class DataUnavailable(TradingBotError):
    def __init__(self, symbol: str, what: str = "market data"):
        super().__init__(f"No {what} available for {symbol}")
        self.symbol = symbol
        self.what = what
