"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``     -- drivers and passengers (identity flags only)
* ``rides``     -- ride offers with their seat counters
* ``bookings``  -- seat bookings against a ride

Indexes
-------
* **B-Tree** on ``status``, ``driver_id``, ``departure_at`` for the overlap
  guard and listings.
* **B-Tree** on ``(ride_id, status)`` for the ride -> active bookings index,
  ``(status, expires_at)`` for the expiry sweep and ``departure_at`` for
  reminders.

Every mutable table carries a ``version`` column used for optimistic
concurrency (see ``repositories``).
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base
from src.domain.enums import (
    Actor,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True)
    reference = Column(String(12), unique=True, nullable=False)
    driver_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(String(64), nullable=False)

    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    origin_name = Column(String(255), nullable=False, default="")
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    destination_name = Column(String(255), nullable=False, default="")

    departure_at = Column(DateTime(timezone=True), nullable=False)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    booked_seats = Column(Integer, nullable=False, default=0)
    price_per_seat = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="NGN")
    status = Column(Enum(RideStatus), default=RideStatus.DRAFT, nullable=False)

    # Comma-separated weekday names, e.g. "monday,wednesday"
    recurrence_days = Column(String(80), nullable=True)
    recurrence_end_date = Column(Date, nullable=True)
    parent_ride_id = Column(String(36), ForeignKey("rides.id"), nullable=True)

    estimated_distance_km = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_driver_departure", "driver_id", "departure_at"),
        Index("idx_rides_parent", "parent_ride_id"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True)
    reference = Column(String(12), unique=True, nullable=False)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False)
    passenger_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    seats = Column(Integer, nullable=False)
    price_per_seat = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    departure_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False)

    payment_method = Column(Enum(PaymentMethod), default=PaymentMethod.CASH, nullable=False)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    payment_reference = Column(String(64), nullable=True)

    verification_code = Column(String(6), nullable=False)
    verification_expires_at = Column(DateTime(timezone=True), nullable=True)

    fee_amount = Column(Float, nullable=False, default=0.0)
    refund_amount = Column(Float, nullable=True)
    amount_received = Column(Float, nullable=True)

    terms_accepted_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    dropped_off_at = Column(DateTime(timezone=True), nullable=True)
    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(Enum(Actor), nullable=True)
    is_late_cancellation = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    no_show_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index("idx_bookings_ride_status", "ride_id", "status"),
        Index("idx_bookings_passenger", "passenger_id"),
        Index("idx_bookings_status_expires", "status", "expires_at"),
        Index("idx_bookings_departure", "departure_at"),
    )
