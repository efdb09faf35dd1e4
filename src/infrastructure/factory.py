"""Builds an engine over the SQL stores, shared by the API and the sweeper."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.clock import SystemClock
from src.domain.ports import LockManager, NotificationDispatcher
from src.infrastructure.locks import LocalLockManager, RedisLockManager
from src.infrastructure.notifications import LoggingDispatcher, RedisDispatcher
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import (
    SqlBookingStore,
    SqlIdentityService,
    SqlRideStore,
)
from src.services.engine import Engine, build_engine

# One per process so every request shares the same per-ride locks
_local_locks = LocalLockManager(wait_seconds=settings.lock_wait_seconds)


async def lock_manager() -> LockManager:
    if settings.lock_backend == "local":
        return _local_locks
    return RedisLockManager(
        await get_redis(),
        ttl_seconds=settings.lock_ttl_seconds,
        wait_seconds=settings.lock_wait_seconds,
    )


async def notifier() -> NotificationDispatcher:
    if settings.notification_backend == "log":
        return LoggingDispatcher()
    return RedisDispatcher(await get_redis(), settings.notification_channel)


async def sql_engine(session: AsyncSession) -> Engine:
    return build_engine(
        SqlRideStore(session),
        SqlBookingStore(session),
        SqlIdentityService(session),
        await lock_manager(),
        await notifier(),
        SystemClock(),
    )
