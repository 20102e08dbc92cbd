import asyncio
import uuid
from datetime import datetime
from typing import List, Dict, Any

from loguru import logger

from daytrade.core.interfaces import OrderExecutor
from daytrade.core.models import Direction, OrderResult


class PaperOrderExecutor(OrderExecutor):
    """
    Simulated fills - no real order leaves the process
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.orders: List[Dict[str, Any]] = []

    async def execute(
        self, symbol: str, direction: Direction, quantity: int, price: float
    ) -> OrderResult:
        if quantity < 1:
            return OrderResult(success=False, error=f"Invalid quantity {quantity}")

        if self.latency:
            await asyncio.sleep(self.latency)

        order_id = f"ORD_{datetime.now():%Y%m%d%H%M%S}_{uuid.uuid4().hex[:9]}"
        self.orders.append({
            "order_id": order_id,
            "symbol": symbol,
            "side": direction.value,
            "qty": quantity,
            "price": price,
            "time": datetime.now(),
        })

        logger.info(f"[PaperBroker] {direction.value} {quantity} {symbol} @ {price:.1f} | id={order_id}")
        return OrderResult(success=True, order_id=order_id)
