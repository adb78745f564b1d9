"""
Change Feed Factory

Returns the in-memory or Redis change feed based on ENV_MODE.

Environment Switching:
    - ENV_MODE=development → InMemoryChangeFeed (single process)
    - ENV_MODE=staging → RedisChangeFeed
    - ENV_MODE=production → RedisChangeFeed

Version: 1.0.0
"""

import logging
from functools import lru_cache
from typing import Optional

from app.core.config import get_settings
from app.services.realtime.base import (
    BaseChangeFeed,
    ChangeEvent,
    ChangeScope,
)
from app.services.realtime.live_query import LiveQuery, NewArrivalDetector
from app.services.realtime.memory import InMemoryChangeFeed

logger = logging.getLogger(__name__)


@lru_cache()
def get_change_feed() -> BaseChangeFeed:
    """Get the configured change feed (cached)."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Change Feed: Using InMemoryChangeFeed (development mode)")
        return InMemoryChangeFeed()

    # Imported lazily so development does not need a Redis client configured
    from app.services.realtime.redis_feed import RedisChangeFeed

    logger.info(f"Change Feed: Using RedisChangeFeed ({settings.env_mode.value} mode)")
    return RedisChangeFeed(settings.redis_url)


def reset_change_feed() -> None:
    """Clear the cached feed instance."""
    get_change_feed.cache_clear()
    logger.debug("Change feed cache cleared")


async def publish_change(event: ChangeEvent, feed: Optional[BaseChangeFeed] = None) -> bool:
    """
    Publish a change that has already been committed.

    The write stands even when the feed is down: the failure is logged and
    open live lists pick the row up on their next change or refresh.

    Returns:
        True if the event reached the feed
    """
    try:
        await (feed or get_change_feed()).publish(event)
        return True
    except Exception as e:
        logger.error(f"Change feed publish failed for {event.table} #{event.row_id}: {e}")
        return False


__all__ = [
    "get_change_feed",
    "reset_change_feed",
    "publish_change",
    "BaseChangeFeed",
    "ChangeEvent",
    "ChangeScope",
    "InMemoryChangeFeed",
    "LiveQuery",
    "NewArrivalDetector",
]
