"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample users (3 drivers, 5 passengers; one passenger unverified)
  - 4 sample rides from / to the campus anchor point (one still a draft)
  - 5 sample bookings (pending, confirmed and cancelled)

Rides and bookings go through the lifecycle managers so seat counters and
statuses are consistent with what the API would produce.
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from src.domain.clock import SystemClock
from src.domain.entities import Location
from src.domain.enums import PaymentMethod
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.locks import LocalLockManager
from src.infrastructure.models import UserModel
from src.infrastructure.notifications import LoggingDispatcher
from src.infrastructure.repositories import (
    SqlBookingStore,
    SqlIdentityService,
    SqlRideStore,
)
from src.services.engine import build_engine

# Campus main gate (the platform anchor point)
ANCHOR = Location(8.4799, 4.6753, "Main Gate")

DESTINATIONS = [
    Location(8.4966, 4.5421, "Post Office"),
    Location(8.4420, 4.4960, "Tanke Junction"),
    Location(8.5240, 4.5560, "Challenge"),
]

USERS = [
    {"id": "driver-1", "name": "Tunde Bakare", "email": "tunde@example.com", "is_verified": True},
    {"id": "driver-2", "name": "Amaka Obi", "email": "amaka@example.com", "is_verified": True},
    {"id": "driver-3", "name": "Yusuf Bello", "email": "yusuf@example.com", "is_verified": True},
    {"id": "passenger-1", "name": "Chioma Eze", "email": "chioma@example.com", "is_verified": True},
    {"id": "passenger-2", "name": "Segun Ade", "email": "segun@example.com", "is_verified": True},
    {"id": "passenger-3", "name": "Fatima Musa", "email": "fatima@example.com", "is_verified": True},
    {"id": "passenger-4", "name": "Ibrahim Lawal", "email": "ibrahim@example.com", "is_verified": True},
    {"id": "passenger-5", "name": "Ngozi Umeh", "email": "ngozi@example.com", "is_verified": False},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        for u in USERS:
            session.add(UserModel(**u, is_active=True))
        await session.flush()
        print(f"  Created {len(USERS)} users")

        clock = SystemClock()
        carpool = build_engine(
            SqlRideStore(session),
            SqlBookingStore(session),
            SqlIdentityService(session),
            LocalLockManager(),
            LoggingDispatcher(),
            clock,
        )
        now = clock.now().replace(second=0, microsecond=0)

        # ── Rides ─────────────────────────────────────────────────────
        rides = []
        for i, (driver, destination) in enumerate(
            zip(("driver-1", "driver-2", "driver-3"), DESTINATIONS)
        ):
            ride = await carpool.rides.create_ride(
                driver_id=driver,
                vehicle_id=f"KWL-{100 + i}-AA",
                origin=ANCHOR,
                destination=destination,
                departure_at=now + timedelta(hours=3 + i * 5),
                total_seats=4,
                price_per_seat=300.0 + i * 100,
                publish=True,
            )
            rides.append(ride)
        draft = await carpool.rides.create_ride(
            driver_id="driver-1",
            vehicle_id="KWL-100-AA",
            origin=DESTINATIONS[0],
            destination=ANCHOR,
            departure_at=now + timedelta(days=2),
            total_seats=3,
            price_per_seat=350.0,
            notes="Return trip",
        )
        print(f"  Created {len(rides) + 1} rides ({draft.reference} left as draft)")

        # ── Bookings ──────────────────────────────────────────────────
        b1 = await carpool.bookings.create_booking("passenger-1", rides[0].id, 2)
        await carpool.bookings.accept_terms(b1.id, "passenger-1")
        await carpool.bookings.confirm_booking(b1.id, "passenger-1")

        await carpool.bookings.create_booking("passenger-2", rides[0].id, 1)

        b3 = await carpool.bookings.create_booking(
            "passenger-3", rides[1].id, 1, payment_method=PaymentMethod.TRANSFER
        )
        await carpool.bookings.accept_terms(b3.id, "passenger-3")

        b4 = await carpool.bookings.create_booking("passenger-4", rides[2].id, 1)
        await carpool.bookings.cancel_booking(b4.id, "passenger-4", "Change of plans")

        await carpool.bookings.create_booking("passenger-4", rides[1].id, 2)
        print("  Created 5 bookings")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
