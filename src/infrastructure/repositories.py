"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and implements
one of the store ports from ``src.domain.ports``.  Rows are mapped to
domain entities on the way out, so callers never hold ORM objects.

Writes are optimistic: ``save`` issues ``UPDATE ... WHERE version = :v``
and raises ``StaleStateError`` when no row matched.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, RideModel, UserModel
from src.domain.entities import Booking, Location, Recurrence, RideOffer, SeatInventory
from src.domain.enums import ACTIVE_BOOKING_STATUSES, BookingStatus, Weekday
from src.domain.errors import StaleStateError
from src.domain.ports import BookingStore, IdentityService, RideStore, UserProfile


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Mapping ───────────────────────────────────────────────────────────

_RIDE_TIMESTAMPS = (
    "created_at",
    "updated_at",
    "published_at",
    "started_at",
    "completed_at",
    "cancelled_at",
)

_BOOKING_TIMESTAMPS = (
    "verification_expires_at",
    "terms_accepted_at",
    "expires_at",
    "checked_in_at",
    "picked_up_at",
    "dropped_off_at",
    "reminder_sent_at",
    "created_at",
    "updated_at",
    "confirmed_at",
    "cancelled_at",
    "completed_at",
    "no_show_at",
)

_BOOKING_PLAIN = (
    "id",
    "reference",
    "ride_id",
    "passenger_id",
    "driver_id",
    "seats",
    "price_per_seat",
    "total_price",
    "status",
    "payment_method",
    "payment_status",
    "payment_reference",
    "verification_code",
    "fee_amount",
    "refund_amount",
    "amount_received",
    "cancellation_reason",
    "cancelled_by",
    "is_late_cancellation",
    "notes",
)


def ride_values(ride: RideOffer) -> dict[str, Any]:
    values: dict[str, Any] = {
        "id": ride.id,
        "reference": ride.reference,
        "driver_id": ride.driver_id,
        "vehicle_id": ride.vehicle_id,
        "origin_lat": ride.origin.latitude,
        "origin_lng": ride.origin.longitude,
        "origin_name": ride.origin.name,
        "destination_lat": ride.destination.latitude,
        "destination_lng": ride.destination.longitude,
        "destination_name": ride.destination.name,
        "departure_at": ride.departure_at,
        "total_seats": ride.seats.total,
        "available_seats": ride.seats.available,
        "booked_seats": ride.seats.booked,
        "price_per_seat": ride.price_per_seat,
        "currency": ride.currency,
        "status": ride.status,
        "recurrence_days": None,
        "recurrence_end_date": None,
        "parent_ride_id": ride.parent_ride_id,
        "estimated_distance_km": ride.estimated_distance_km,
        "notes": ride.notes,
        "cancellation_reason": ride.cancellation_reason,
    }
    if ride.recurrence is not None:
        days = sorted(ride.recurrence.days, key=lambda d: d.day_number)
        values["recurrence_days"] = ",".join(d.value for d in days)
        values["recurrence_end_date"] = ride.recurrence.end_date
    for name in _RIDE_TIMESTAMPS:
        values[name] = getattr(ride, name)
    return values


def ride_from_row(row: RideModel) -> RideOffer:
    recurrence = None
    if row.recurrence_days:
        recurrence = Recurrence(
            days=frozenset(Weekday(d) for d in row.recurrence_days.split(",")),
            end_date=row.recurrence_end_date,
        )
    return RideOffer(
        id=row.id,
        reference=row.reference,
        driver_id=row.driver_id,
        vehicle_id=row.vehicle_id,
        origin=Location(row.origin_lat, row.origin_lng, row.origin_name or ""),
        destination=Location(
            row.destination_lat, row.destination_lng, row.destination_name or ""
        ),
        departure_at=_aware(row.departure_at),
        seats=SeatInventory(
            total=row.total_seats,
            available=row.available_seats,
            booked=row.booked_seats,
        ),
        price_per_seat=row.price_per_seat,
        currency=row.currency,
        status=row.status,
        recurrence=recurrence,
        parent_ride_id=row.parent_ride_id,
        estimated_distance_km=row.estimated_distance_km,
        notes=row.notes,
        cancellation_reason=row.cancellation_reason,
        version=row.version,
        **{name: _aware(getattr(row, name)) for name in _RIDE_TIMESTAMPS},
    )


def booking_values(booking: Booking) -> dict[str, Any]:
    values = {name: getattr(booking, name) for name in _BOOKING_PLAIN}
    values["departure_at"] = booking.departure_at
    for name in _BOOKING_TIMESTAMPS:
        values[name] = getattr(booking, name)
    return values


def booking_from_row(row: BookingModel) -> Booking:
    return Booking(
        departure_at=_aware(row.departure_at),
        version=row.version,
        **{name: getattr(row, name) for name in _BOOKING_PLAIN},
        **{name: _aware(getattr(row, name)) for name in _BOOKING_TIMESTAMPS},
    )


# ── Repositories ──────────────────────────────────────────────────────


class SqlRideStore(RideStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, ride: RideOffer) -> RideOffer:
        self.session.add(RideModel(**ride_values(ride), version=1))
        await self.session.flush()
        ride.version = 1
        return ride

    async def get(self, ride_id: str, *, for_update: bool = False) -> Optional[RideOffer]:
        """``for_update`` takes a row lock (SELECT ... FOR UPDATE)."""
        query = (
            select(RideModel)
            .where(RideModel.id == ride_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        return ride_from_row(row) if row else None

    async def save(self, ride: RideOffer) -> RideOffer:
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride.id, RideModel.version == ride.version)
            .values(**ride_values(ride), version=ride.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StaleStateError(f"Ride {ride.id} was modified concurrently")
        ride.version += 1
        return ride

    async def list_by_driver(self, driver_id: str) -> list[RideOffer]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.driver_id == driver_id)
            .order_by(RideModel.departure_at)
        )
        return [ride_from_row(r) for r in result.scalars().all()]

    async def list_children(self, parent_ride_id: str) -> list[RideOffer]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.parent_ride_id == parent_ride_id)
            .order_by(RideModel.departure_at)
        )
        return [ride_from_row(r) for r in result.scalars().all()]


class SqlBookingStore(BookingStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, booking: Booking) -> Booking:
        self.session.add(BookingModel(**booking_values(booking), version=1))
        await self.session.flush()
        booking.version = 1
        return booking

    async def get(self, booking_id: str) -> Optional[Booking]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return booking_from_row(row) if row else None

    async def save(self, booking: Booking) -> Booking:
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking.id,
                BookingModel.version == booking.version,
            )
            .values(**booking_values(booking), version=booking.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StaleStateError(f"Booking {booking.id} was modified concurrently")
        booking.version += 1
        return booking

    async def _select(self, *criteria, order_by=None, limit: Optional[int] = None):
        query = (
            select(BookingModel)
            .where(*criteria)
            .order_by(order_by if order_by is not None else BookingModel.created_at)
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return [booking_from_row(r) for r in result.scalars().all()]

    async def list_for_ride(self, ride_id: str) -> list[Booking]:
        return await self._select(BookingModel.ride_id == ride_id)

    async def list_active_for_ride(self, ride_id: str) -> list[Booking]:
        return await self._select(
            BookingModel.ride_id == ride_id,
            BookingModel.status.in_(list(ACTIVE_BOOKING_STATUSES)),
        )

    async def find_active(self, passenger_id: str, ride_id: str) -> Optional[Booking]:
        found = await self._select(
            BookingModel.ride_id == ride_id,
            BookingModel.passenger_id == passenger_id,
            BookingModel.status.in_(list(ACTIVE_BOOKING_STATUSES)),
            limit=1,
        )
        return found[0] if found else None

    async def list_expired_pending(self, now: datetime, limit: int = 100) -> list[Booking]:
        return await self._select(
            BookingModel.status == BookingStatus.PENDING,
            BookingModel.expires_at.is_not(None),
            BookingModel.expires_at <= now,
            order_by=BookingModel.expires_at,
            limit=limit,
        )

    async def list_reminder_due(
        self, now: datetime, until: datetime, limit: int = 100
    ) -> list[Booking]:
        return await self._select(
            BookingModel.status.in_([BookingStatus.PENDING, BookingStatus.CONFIRMED]),
            BookingModel.reminder_sent_at.is_(None),
            BookingModel.departure_at > now,
            BookingModel.departure_at <= until,
            order_by=BookingModel.departure_at,
            limit=limit,
        )


class SqlIdentityService(IdentityService):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        row = await self.session.get(UserModel, user_id)
        if row is None:
            return None
        return UserProfile(
            id=row.id,
            display_name=row.name,
            is_verified=row.is_verified,
            is_active=row.is_active,
        )
