import asyncio
from typing import Dict, Optional, List

from daytrade.core.errors import AlreadyActive, NotActive
from daytrade.core.models import BotRuntimeState


class BotRegistry:
    """
    user id -> runtime state, at most one entry per user.
    A single coarse lock guards insert / claim / remove.
    """

    def __init__(self):
        self._bots: Dict[str, BotRuntimeState] = {}
        self.lock = asyncio.Lock()

    async def register(self, state: BotRuntimeState) -> None:
        async with self.lock:
            if state.user_id in self._bots:
                raise AlreadyActive(state.user_id)
            self._bots[state.user_id] = state

    async def claim_for_stop(self, user_id: str) -> BotRuntimeState:
        """Mark the bot as stopping; a second caller gets NotActive"""
        async with self.lock:
            state = self._bots.get(user_id)
            if state is None or state.stopping:
                raise NotActive(user_id)
            state.stopping = True
            state.stop_event.set()
            return state

    async def unregister(self, user_id: str) -> Optional[BotRuntimeState]:
        async with self.lock:
            return self._bots.pop(user_id, None)

    def get(self, user_id: str) -> Optional[BotRuntimeState]:
        return self._bots.get(user_id)

    def active_users(self) -> List[str]:
        return list(self._bots)
