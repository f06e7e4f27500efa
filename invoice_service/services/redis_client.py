"""
Redis client for webhook redelivery locking.

Provides:
- A shared async Redis connection pool
- WebhookEventLock: a short-lived per-event lock so two concurrent
  deliveries of the same Stripe event are not processed twice
"""
import logging
from typing import Optional

import redis.asyncio as redis

from invoice_service.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Global Redis connection pool
_redis_pool: Optional[redis.Redis] = None

LOCK_KEY_PREFIX = "webhook-event:"


async def get_redis_client() -> redis.Redis:
    """
    Get async Redis client instance.

    Uses a connection pool for efficient connection management.

    Returns:
        Async Redis client
    """
    global _redis_pool

    if _redis_pool is None:
        _redis_pool = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Created Redis connection pool")

    return _redis_pool


async def close_redis_client() -> None:
    """
    Close Redis connection pool.

    Should be called during application shutdown.
    """
    global _redis_pool

    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
        logger.info("Closed Redis connection pool")


class WebhookEventLock:
    """
    Per-event-id lock held while one delivery is being processed.

    Redis errors propagate; the webhook then fails and Stripe redelivers.
    """

    def __init__(self, client: redis.Redis, ttl_seconds: Optional[int] = None):
        self.client = client
        self.ttl_seconds = ttl_seconds or settings.webhook_lock_ttl_seconds

    @staticmethod
    def key(event_id: str) -> str:
        return f"{LOCK_KEY_PREFIX}{event_id}"

    async def acquire(self, event_id: str) -> bool:
        """Return True if this caller now holds the lock for event_id."""
        acquired = await self.client.set(
            self.key(event_id), "1", nx=True, ex=self.ttl_seconds
        )
        return bool(acquired)

    async def release(self, event_id: str) -> None:
        await self.client.delete(self.key(event_id))
