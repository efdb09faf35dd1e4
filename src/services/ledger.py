"""
Seat Inventory Ledger
=====================

The only code path that changes a ride's seat counters.

Every reserve / release runs inside a per-ride critical section
(``LockManager.hold("ride:<id>")``) around a read of the ride row taken
with ``for_update=True``.  Inside that section:

1. the counters are mutated on a private copy of the ride,
2. registered capacity callbacks run (the ride manager uses this to move
   ``active -> full`` and ``full -> active``),
3. the ride is saved with a version check.

``hold`` exposes the same section to the lifecycle managers so a booking
status change and the matching seat release commit together.  If the
block raises, nothing is written.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable

from src.domain.entities import RideOffer
from src.domain.enums import RideStatus
from src.domain.errors import (
    InsufficientSeatsError,
    NotBookableError,
    NotFoundError,
)
from src.domain.ports import LockManager, RideStore

logger = logging.getLogger(__name__)

CapacityCallback = Callable[[RideOffer, datetime], Awaitable[None]]


class LedgerSession:
    """A ride loaded under its lock.  Obtained from ``SeatLedger.hold``."""

    def __init__(self, ride: RideOffer):
        self.ride = ride
        self.dirty = False

    def reserve(self, seats: int) -> bool:
        if self.ride.status == RideStatus.FULL:
            raise InsufficientSeatsError(
                "Ride is full",
                details=[{"available": 0, "requested": seats}],
            )
        if self.ride.status != RideStatus.ACTIVE:
            raise NotBookableError(
                f"Ride is not accepting bookings (status {self.ride.status.value})"
            )
        now_full = self.ride.seats.reserve(seats)
        self.dirty = True
        return now_full

    def release(self, seats: int) -> None:
        self.ride.seats.release(seats)
        self.dirty = True

    def resize(self, total: int) -> None:
        self.ride.seats.resize(total)
        self.dirty = True

    def touch(self) -> None:
        """Mark the ride for saving after a non-seat change."""
        self.dirty = True


class SeatLedger:
    def __init__(self, rides: RideStore, locks: LockManager):
        self.rides = rides
        self.locks = locks
        self._callbacks: list[CapacityCallback] = []

    def on_capacity_change(self, callback: CapacityCallback) -> None:
        self._callbacks.append(callback)

    @asynccontextmanager
    async def hold(self, ride_id: str, now: datetime) -> AsyncIterator[LedgerSession]:
        async with self.locks.hold(f"ride:{ride_id}"):
            ride = await self.rides.get(ride_id, for_update=True)
            if ride is None:
                raise NotFoundError(f"Ride {ride_id} not found")
            session = LedgerSession(ride)
            yield session
            if session.dirty:
                for callback in self._callbacks:
                    await callback(session.ride, now)
                await self.rides.save(session.ride)

    async def reserve(self, ride_id: str, seats: int, now: datetime) -> RideOffer:
        async with self.hold(ride_id, now) as session:
            session.reserve(seats)
        logger.info(
            "Reserved %d seats on ride %s (%d left)",
            seats,
            ride_id,
            session.ride.seats.available,
        )
        return session.ride

    async def release(self, ride_id: str, seats: int, now: datetime) -> RideOffer:
        async with self.hold(ride_id, now) as session:
            session.release(seats)
        logger.info(
            "Released %d seats on ride %s (%d left)",
            seats,
            ride_id,
            session.ride.seats.available,
        )
        return session.ride
