import os
import json
import asyncio
from typing import Optional
import redis.asyncio as aioredis
from loguru import logger
from datetime import datetime, date

from daytrade.core.interfaces import EventSink
from daytrade.core.models import BotEvent

CHANNEL_PREFIX = "daytrade"


def _json_default(o):
    if isinstance(o, (datetime, date)):
        return o.isoformat()
    raise TypeError(f"Type {type(o)} not serializable")


class RedisEventSink(EventSink):
    """
    Publishes bot events as JSON on `daytrade:<kind>` channels.
    WebSocket / UI layers subscribe to these channels on their side.
    """

    def __init__(self, host: str = None, port: int = None):
        self.client: Optional[aioredis.Redis] = None
        self.host = host or os.getenv("REDIS_HOST", "localhost")
        self.port = int(port or os.getenv("REDIS_PORT", 6379))

    async def connect(self):
        try:
            self.client = aioredis.from_url(
                f"redis://{self.host}:{self.port}",
                encoding="utf-8",
                decode_responses=True
            )
            await self.client.ping()
            logger.info(f"Connected to Redis at {self.host}:{self.port}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    async def disconnect(self):
        if self.client:
            await self.client.aclose()
            logger.info("Disconnected from Redis")

    @staticmethod
    def channel_for(kind: str) -> str:
        return f"{CHANNEL_PREFIX}:{kind}"

    async def publish(self, event: BotEvent) -> None:
        if self.client:
            payload = json.dumps(event.to_dict(), default=_json_default)
            await self.client.publish(self.channel_for(event.kind), payload)


class QueueEventSink(EventSink):
    """In-process channel; consumers read events from `queue`"""

    def __init__(self, maxsize: int = 0):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def publish(self, event: BotEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Event queue full, dropping {event.kind} for {event.user_id}")
