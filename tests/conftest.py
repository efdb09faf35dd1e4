"""
Shared test fixtures.

The engine runs over the in-memory stores with a ``FixedClock`` so every
time window can be hit exactly, without Docker / PostgreSQL / Redis.
SQL repository tests use an in-memory SQLite database (via aiosqlite)
and live in ``test_sql_store.py``.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.domain.clock import FixedClock
from src.domain.entities import Location
from src.domain.ports import UserProfile
from src.domain.validation import RidePolicy
from src.infrastructure.locks import LocalLockManager
from src.infrastructure.memory import (
    InMemoryBookingStore,
    InMemoryIdentityService,
    InMemoryRideStore,
)
from src.infrastructure.notifications import LoggingDispatcher
from src.services.engine import build_engine

# Monday 08:00 UTC
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

ANCHOR = Location(8.4799, 4.6753, "Main Gate")
TOWN = Location(8.4966, 4.5421, "Post Office")

DRIVER = "driver-1"
OTHER_DRIVER = "driver-2"
PASSENGER_A = "passenger-a"
PASSENGER_B = "passenger-b"
PASSENGER_C = "passenger-c"
UNVERIFIED = "passenger-unverified"
INACTIVE = "passenger-inactive"

POLICY = RidePolicy(
    anchor=ANCHOR, anchor_radius_km=1.5, min_price=100.0, max_price=2000.0
)

USERS = [
    UserProfile(DRIVER, "Tunde"),
    UserProfile(OTHER_DRIVER, "Amaka"),
    UserProfile(PASSENGER_A, "Chioma"),
    UserProfile(PASSENGER_B, "Segun"),
    UserProfile(PASSENGER_C, "Fatima"),
    UserProfile(UNVERIFIED, "Ngozi", is_verified=False),
    UserProfile(INACTIVE, "Ibrahim", is_active=False),
]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def notifier() -> LoggingDispatcher:
    return LoggingDispatcher()


@pytest.fixture
def ride_store() -> InMemoryRideStore:
    return InMemoryRideStore()


@pytest.fixture
def booking_store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


@pytest.fixture
def engine(clock, notifier, ride_store, booking_store):
    return build_engine(
        ride_store,
        booking_store,
        InMemoryIdentityService(USERS),
        LocalLockManager(wait_seconds=1.0),
        notifier,
        clock,
        POLICY,
    )


@pytest.fixture
def make_ride(engine):
    """Create a ride from the anchor point, published unless told otherwise."""

    async def _make(
        total_seats: int = 3,
        hours_ahead: float = 48,
        price_per_seat: float = 500.0,
        driver_id: str = DRIVER,
        publish: bool = True,
        **kwargs,
    ):
        return await engine.rides.create_ride(
            driver_id=driver_id,
            vehicle_id="KWL-101-AA",
            origin=ANCHOR,
            destination=TOWN,
            departure_at=NOW + timedelta(hours=hours_ahead),
            total_seats=total_seats,
            price_per_seat=price_per_seat,
            publish=publish,
            **kwargs,
        )

    return _make


@pytest.fixture
def confirmed_booking(engine):
    """Book, accept terms and confirm in one step."""

    async def _book(ride_id: str, passenger_id: str, seats: int = 1):
        booking = await engine.bookings.create_booking(passenger_id, ride_id, seats)
        await engine.bookings.accept_terms(booking.id, passenger_id)
        return await engine.bookings.confirm_booking(booking.id, passenger_id)

    return _book


async def assert_seat_invariants(engine, ride_id: str) -> None:
    """``available + booked == total`` and active bookings account for ``booked``."""
    ride = await engine.rides.get_ride(ride_id)
    assert ride.seats.available + ride.seats.booked == ride.seats.total
    assert 0 <= ride.seats.available <= ride.seats.total
    active = await engine.bookings.bookings.list_active_for_ride(ride_id)
    assert sum(b.seats for b in active) == ride.seats.booked
