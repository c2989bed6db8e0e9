"""
Redis connection management.
Handles creation and teardown of async Redis clients.
"""

import logging

from redis.asyncio import Redis

from jobqueue.config import get_settings

logger = logging.getLogger(__name__)

# Global shared client instance
_client: Redis | None = None


def create_client(redis_url: str | None = None) -> Redis:
    """
    Create a new Redis client.

    Workers each need their own client: WATCH state is tied to the
    connection issuing it.

    Args:
        redis_url: Redis URL. Defaults to the configured URL.

    Returns:
        Redis: A client returning decoded strings.
    """
    url = redis_url or get_settings().redis_url
    return Redis.from_url(url, decode_responses=True)


def get_client() -> Redis:
    """
    Get or create the shared Redis client.

    Returns:
        Redis: The shared client used for job records.
    """
    global _client
    if _client is None:
        _client = create_client()
        logger.info("Redis client initialized")
    return _client


async def close_client() -> None:
    """
    Close the shared Redis client.
    Should be called on process shutdown.
    """
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis client closed")
