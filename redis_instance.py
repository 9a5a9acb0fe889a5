"""
Redis Instance Singleton

Provides a single shared Redis client for the realtime change feed and the
broadcast channel. Mirrors bot_instance.py.

Usage:
    from redis_instance import get_redis
    redis = get_redis()
    await redis.publish(channel, payload)
"""

from redis.asyncio import Redis

import config

_redis_instance = None


def get_redis() -> Redis:
    """
    Get the singleton Redis client.

    Returns:
        Redis: The shared asyncio Redis client
    """
    global _redis_instance
    if _redis_instance is None:
        _redis_instance = Redis(
            host=config.REDIS_HOST,
            port=config.REDIS_PORT,
            password=config.REDIS_PASSWORD,
            decode_responses=True
        )
    return _redis_instance


async def close_redis():
    """
    Close the Redis client.

    Should be called during application shutdown.
    """
    global _redis_instance
    if _redis_instance is not None:
        await _redis_instance.aclose()
        _redis_instance = None
