"""
Background Booking Sweeper
==========================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 60 s).

Each cycle
----------
1. Expire pending bookings whose 10-minute hold has run out.  Expiry goes
   through ``BookingLifecycleManager.expire_booking`` and therefore the
   same seat-release path as an explicit cancellation.
2. Send departure reminders for bookings inside the 2 h reminder window.

Both steps are idempotent: a booking that is already terminal (or already
reminded) is skipped, so an interrupted cycle is simply retried.

Concurrency safety
------------------
With the Redis lock backend a **Redis distributed lock** ensures only one
API process runs a cycle at a time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from src.config import settings
from src.infrastructure.database import async_session_factory
from src.infrastructure.factory import sql_engine
from src.infrastructure.locks import DistributedLock
from src.infrastructure.redis_client import get_redis
from src.services.engine import Engine

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


@dataclass
class SweepResult:
    expired: list[str] = field(default_factory=list)
    reminded: list[str] = field(default_factory=list)


# ── Public API ────────────────────────────────────────────────────────


async def start_sweep_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Booking sweeper started (interval=%ds)", settings.sweep_interval_seconds
    )


async def stop_sweep_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Booking sweeper stopped")


async def sweep_once(engine: Engine) -> SweepResult:
    """One expiry + reminder pass over the given engine."""
    result = SweepResult(
        expired=await engine.bookings.expire_overdue_bookings(),
        reminded=await engine.bookings.send_due_reminders(),
    )
    if result.expired or result.reminded:
        logger.info(
            "Sweep: %d bookings expired, %d reminders sent",
            len(result.expired),
            len(result.reminded),
        )
    return result


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a sweep cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sweep_cycle()
        except Exception:
            logger.exception("Unhandled error in sweep cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_sweep_cycle() -> Optional[SweepResult]:
    """Execute one sweep cycle.  Returns None when another worker holds the lock."""
    lock: Optional[DistributedLock] = None
    if settings.lock_backend == "redis":
        lock = DistributedLock(await get_redis(), "booking_sweeper", ttl_seconds=60)
        if not await lock.try_acquire():
            logger.debug("Lock held by another worker; skipping cycle")
            return None

    try:
        async with async_session_factory() as session:
            result = await sweep_once(await sql_engine(session))
            await session.commit()
        return result
    finally:
        if lock is not None:
            await lock.release()
