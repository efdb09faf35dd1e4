"""
Shared Redis connection pool.

Used by ``RedisLockManager`` (per-ride ledger locks), ``RedisDispatcher``
(lifecycle events) and the sweeper's leader lock.
"""

import redis.asyncio as aioredis

from src.config import settings

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url,
    decode_responses=True,
    max_connections=settings.redis_max_connections,
)


async def get_redis() -> aioredis.Redis:
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    await _pool.disconnect()
