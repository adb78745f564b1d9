"""
Redis Change Feed

Production implementation on top of Redis pub/sub, so a change written by
one API worker reaches live lists held open by every other worker.

One Redis channel per table ("changes:orders", ...). Filtering by column
happens on the subscriber side with ChangeScope.matches.

Version: 1.0.0
"""

import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.services.realtime.base import (
    BaseChangeFeed,
    ChangeCallback,
    ChangeEvent,
    ChangeScope,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "changes:"


class RedisChangeFeed(BaseChangeFeed):
    """Change feed shared through Redis pub/sub."""

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or get_settings().redis_url
        self.client = aioredis.from_url(self.redis_url, decode_responses=True)
        logger.info("RedisChangeFeed initialized")

    @property
    def provider_name(self) -> str:
        return "redis"

    @staticmethod
    def channel_for(table: str) -> str:
        return f"{CHANNEL_PREFIX}{table}"

    async def publish(self, event: ChangeEvent) -> None:
        payload = json.dumps(event.to_dict(), default=str)
        await self.client.publish(self.channel_for(event.table), payload)
        logger.debug(f"Published change: {event.table} {event.action} #{event.row_id}")

    async def subscribe(self, scope: ChangeScope, callback: ChangeCallback) -> Unsubscribe:
        pubsub = self.client.pubsub()
        channel = self.channel_for(scope.table)
        # Returns once Redis has confirmed the subscription
        await pubsub.subscribe(channel)

        async def reader() -> None:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    event = ChangeEvent.from_dict(json.loads(message["data"]))
                except (ValueError, KeyError) as e:
                    logger.warning(f"Ignoring malformed change on {channel}: {e}")
                    continue
                if not scope.matches(event):
                    continue
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result

        task = asyncio.create_task(reader())
        logger.debug(f"Subscribed to {scope.channel_name}")

        async def unsubscribe() -> None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            try:
                await pubsub.unsubscribe(channel)
            finally:
                await pubsub.aclose()
            logger.debug(f"Unsubscribed from {scope.channel_name}")

        return unsubscribe

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
