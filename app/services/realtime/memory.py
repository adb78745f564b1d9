"""
In-Memory Change Feed

Delivers change events to subscribers living in the same process.
Used in development mode and by the test suite.

Version: 1.0.0
"""

import asyncio
import itertools
import logging
from collections import deque

from app.services.realtime.base import (
    BaseChangeFeed,
    ChangeCallback,
    ChangeEvent,
    ChangeScope,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

# Recent events kept for inspection
HISTORY_SIZE = 200


class InMemoryChangeFeed(BaseChangeFeed):
    """Process-local pub/sub."""

    def __init__(self, history_size: int = HISTORY_SIZE):
        self._subscribers: dict[int, tuple[ChangeScope, ChangeCallback]] = {}
        self._ids = itertools.count(1)
        self.published: deque[ChangeEvent] = deque(maxlen=history_size)
        logger.info("InMemoryChangeFeed initialized")

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: ChangeEvent) -> None:
        self.published.append(event)
        logger.debug(f"Change: {event.table} {event.action} #{event.row_id}")

        for scope, callback in list(self._subscribers.values()):
            if not scope.matches(event):
                continue
            result = callback(event)
            if asyncio.iscoroutine(result):
                await result

    async def subscribe(self, scope: ChangeScope, callback: ChangeCallback) -> Unsubscribe:
        subscription_id = next(self._ids)
        self._subscribers[subscription_id] = (scope, callback)
        logger.debug(f"Subscribed #{subscription_id} to {scope.channel_name}")

        async def unsubscribe() -> None:
            if self._subscribers.pop(subscription_id, None) is not None:
                logger.debug(f"Unsubscribed #{subscription_id} from {scope.channel_name}")

        return unsubscribe

    async def health_check(self) -> bool:
        return True
