"""
Redis connection used for post-commit event pub/sub.

Only PUBLISH and PING are issued; nothing is stored in Redis, so losing the
connection degrades event delivery and never the ledger.
"""

import logging

import redis.asyncio as redis
from accounts_backend.app.core.config import settings

logger = logging.getLogger("accounts.events")


# Shared async client; channels are "<event_channel_prefix>:<topic>"
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency handing the shared client to the event publisher."""
    return redis_client


async def ping_redis() -> bool:
    """
    Check that the event transport is reachable.

    Returns:
        True if Redis answered the ping, False otherwise
    """
    try:
        return await redis_client.ping()
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return False


async def close_redis() -> None:
    """Release the client's connections on shutdown."""
    await redis_client.aclose()
    logger.info("Redis connection closed")
