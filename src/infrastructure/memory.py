"""
In-process stores with the same contract as the SQL repositories.

Used by the test-suite, the seed script and single-process local runs.
Every read returns a deep copy and every write checks ``version``, so the
optimistic-concurrency behaviour matches ``SqlBookingStore``.  Each call
yields to the event loop once so concurrent callers genuinely interleave.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime
from typing import Optional, TypeVar

from src.domain.entities import Booking, RideOffer
from src.domain.enums import BookingStatus
from src.domain.errors import ConflictError, StaleStateError
from src.domain.ports import BookingStore, IdentityService, RideStore, UserProfile

T = TypeVar("T", RideOffer, Booking)


def _checked_save(table: dict[str, T], entity: T, kind: str) -> T:
    current = table.get(entity.id)
    if current is None or current.version != entity.version:
        raise StaleStateError(f"{kind} {entity.id} was modified concurrently")
    entity.version += 1
    table[entity.id] = copy.deepcopy(entity)
    return entity


class InMemoryRideStore(RideStore):
    def __init__(self):
        self._rides: dict[str, RideOffer] = {}

    async def add(self, ride: RideOffer) -> RideOffer:
        await asyncio.sleep(0)
        if ride.id in self._rides:
            raise ConflictError(f"Ride {ride.id} already exists")
        ride.version = 1
        self._rides[ride.id] = copy.deepcopy(ride)
        return ride

    async def get(self, ride_id: str, *, for_update: bool = False) -> Optional[RideOffer]:
        await asyncio.sleep(0)
        ride = self._rides.get(ride_id)
        return copy.deepcopy(ride) if ride else None

    async def save(self, ride: RideOffer) -> RideOffer:
        await asyncio.sleep(0)
        return _checked_save(self._rides, ride, "Ride")

    async def list_by_driver(self, driver_id: str) -> list[RideOffer]:
        return [
            copy.deepcopy(r) for r in self._rides.values() if r.driver_id == driver_id
        ]

    async def list_children(self, parent_ride_id: str) -> list[RideOffer]:
        children = [
            copy.deepcopy(r)
            for r in self._rides.values()
            if r.parent_ride_id == parent_ride_id
        ]
        return sorted(children, key=lambda r: r.departure_at)


class InMemoryBookingStore(BookingStore):
    def __init__(self):
        self._bookings: dict[str, Booking] = {}

    async def add(self, booking: Booking) -> Booking:
        await asyncio.sleep(0)
        if booking.id in self._bookings:
            raise ConflictError(f"Booking {booking.id} already exists")
        booking.version = 1
        self._bookings[booking.id] = copy.deepcopy(booking)
        return booking

    async def get(self, booking_id: str) -> Optional[Booking]:
        await asyncio.sleep(0)
        booking = self._bookings.get(booking_id)
        return copy.deepcopy(booking) if booking else None

    async def save(self, booking: Booking) -> Booking:
        await asyncio.sleep(0)
        return _checked_save(self._bookings, booking, "Booking")

    async def list_for_ride(self, ride_id: str) -> list[Booking]:
        found = [b for b in self._bookings.values() if b.ride_id == ride_id]
        return [copy.deepcopy(b) for b in sorted(found, key=lambda b: b.created_at)]

    async def list_active_for_ride(self, ride_id: str) -> list[Booking]:
        return [b for b in await self.list_for_ride(ride_id) if b.is_active]

    async def find_active(self, passenger_id: str, ride_id: str) -> Optional[Booking]:
        for booking in self._bookings.values():
            if (
                booking.ride_id == ride_id
                and booking.passenger_id == passenger_id
                and booking.is_active
            ):
                return copy.deepcopy(booking)
        return None

    async def list_expired_pending(self, now: datetime, limit: int = 100) -> list[Booking]:
        found = [b for b in self._bookings.values() if b.is_expired(now)]
        found.sort(key=lambda b: b.expires_at)
        return [copy.deepcopy(b) for b in found[:limit]]

    async def list_reminder_due(
        self, now: datetime, until: datetime, limit: int = 100
    ) -> list[Booking]:
        found = [
            b
            for b in self._bookings.values()
            if b.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)
            and b.reminder_sent_at is None
            and now < b.departure_at <= until
        ]
        found.sort(key=lambda b: b.departure_at)
        return [copy.deepcopy(b) for b in found[:limit]]


class InMemoryIdentityService(IdentityService):
    def __init__(self, users: Optional[list[UserProfile]] = None):
        self._users = {u.id: u for u in users or []}

    def register(self, user: UserProfile) -> UserProfile:
        self._users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        return self._users.get(user_id)
