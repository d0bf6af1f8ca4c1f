"""Redis connection and client management."""

import asyncio
from typing import Optional

import redis
import redis.asyncio as aioredis

from app.settings import settings
from app.utils.logging_config import logger

_redis_client: Optional[aioredis.Redis] = None
_redis_lock = asyncio.Lock()


async def get_redis() -> aioredis.Redis:
    """
    Returns the shared async Redis client, creating it on first use.
    """
    global _redis_client
    async with _redis_lock:
        if _redis_client is None:
            _redis_client = aioredis.from_url(
                str(settings.REDIS_URL), encoding="utf-8", decode_responses=True
            )
    return _redis_client


def get_redis_sync() -> redis.Redis:
    """Synchronous client for Celery tasks."""
    return redis.from_url(
        str(settings.REDIS_URL), encoding="utf-8", decode_responses=True
    )


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        try:
            await _redis_client.aclose()
        except Exception as e:
            logger.warning(f"Error closing Redis connection: {e}")
        _redis_client = None


async def check_redis_connection():
    """
    Checks the connection to the Redis server.
    Raises an exception if the connection fails.
    """
    try:
        async with aioredis.from_url(
            str(settings.REDIS_URL), encoding="utf-8", decode_responses=True
        ) as redis_client:
            if await redis_client.ping():
                logger.info("Redis connection successful")
            else:
                raise ConnectionError(
                    "Redis connection failed: PING command returned False"
                )
    except Exception as e:
        logger.error(f"Redis connection error: {e}")
        raise
