"""
Redis async client - one pool per process, reconnected on demand.

The API connects once at startup; if Redis is unreachable it still serves
registration calls and publishing fails with ChannelUnavailable (HTTP 503).
The dispatcher worker calls connect_redis() again whenever the channel is
down.  The pool is built once and reused across reconnects, and only the
transitions between up and down are logged.
"""

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from herald.config import settings

logger = logging.getLogger(__name__)

_pool: aioredis.ConnectionPool | None = None
_client: aioredis.Redis | None = None
_connected: bool | None = None  # None until the first connection attempt


def _build_client() -> aioredis.Redis:
    global _pool, _client
    if _client is None:
        _pool = aioredis.ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=20,
        )
        _client = aioredis.Redis(connection_pool=_pool)
    return _client


async def connect_redis() -> bool:
    """(Re)connect to Redis and report whether the intent channel is usable.

    Safe to call repeatedly: an existing pool is pinged rather than rebuilt.
    """
    global _connected
    if not settings.REDIS_URL:
        if _connected is None:
            logger.info("REDIS_URL is empty - Redis disabled, intents cannot be queued")
            _connected = False
        return False

    was_connected = _connected
    try:
        await _build_client().ping()
    except (RedisError, OSError) as exc:
        if was_connected is not False:
            logger.warning("Redis unavailable (%s) - intent queue disabled", exc)
        _connected = False
        return False

    if was_connected is False:
        logger.info("Redis reconnected: %s", settings.REDIS_URL)
    elif was_connected is None:
        logger.info("Redis connected: %s", settings.REDIS_URL)
    _connected = True
    return True


def mark_redis_down() -> None:
    """Record a failed command; get_redis() returns None until connect_redis() succeeds."""
    global _connected
    if _connected:
        _connected = False


async def close_redis() -> None:
    """Close the pool.  Call once at process shutdown."""
    global _pool, _client, _connected
    if _client:
        await _client.aclose()
        _client = None
    if _pool:
        await _pool.aclose()
        _pool = None
    _connected = None


def get_redis() -> aioredis.Redis | None:
    """Return the live Redis client, or None while Redis is down or disabled."""
    return _client if _connected else None
