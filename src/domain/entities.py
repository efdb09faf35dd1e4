"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``RideOffer`` and ``Booking``: every status change
  goes through ``transition`` which looks up ``(status, event)`` in the
  tables from ``enums``.
- ``SeatInventory`` owns the ``total / available / booked`` counters and
  keeps ``booked + available == total`` on every mutation.

Entities never read the clock; callers pass ``now``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from . import codes
from .enums import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    RIDE_TRANSITIONS,
    Actor,
    BookingEvent,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    RideEvent,
    RideStatus,
    Weekday,
)
from .errors import (
    ConflictError,
    InsufficientSeatsError,
    InvalidTransitionError,
    ValidationError,
)
from .time_windows import pending_expiry

# Pickup codes stay valid a little past departure to cover late pickups
VERIFICATION_CODE_VALIDITY = timedelta(hours=2)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    name: str = ""


@dataclass(frozen=True)
class Recurrence:
    days: frozenset[Weekday]
    end_date: Optional[date] = None


# ── Seat inventory ────────────────────────────────────────────────────


@dataclass
class SeatInventory:
    total: int
    available: int
    booked: int = 0

    @classmethod
    def of(cls, total: int) -> "SeatInventory":
        return cls(total=total, available=total, booked=0)

    @property
    def is_full(self) -> bool:
        return self.available == 0

    def reserve(self, seats: int) -> bool:
        """Take *seats*; returns True when this reserve used the last seat."""
        if seats < 1:
            raise ValidationError("Seat count must be positive", "INVALID_SEATS")
        if seats > self.available:
            raise InsufficientSeatsError(
                f"Only {self.available} seats available",
                details=[{"available": self.available, "requested": seats}],
            )
        self.available -= seats
        self.booked += seats
        return self.available == 0

    def release(self, seats: int) -> None:
        if seats < 1:
            raise ValidationError("Seat count must be positive", "INVALID_SEATS")
        if seats > self.booked:
            raise ConflictError(
                f"Cannot release {seats} seats, only {self.booked} booked",
                "SEAT_RELEASE_MISMATCH",
            )
        self.available += seats
        self.booked -= seats

    def resize(self, total: int) -> None:
        if total < self.booked:
            raise ValidationError(
                f"Cannot reduce seats below booked count ({self.booked})",
                "SEATS_BELOW_BOOKED",
            )
        self.total = total
        self.available = total - self.booked


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class RideOffer:
    driver_id: str
    vehicle_id: str
    origin: Location
    destination: Location
    departure_at: datetime
    seats: SeatInventory
    price_per_seat: float
    id: str = field(default_factory=codes.new_id)
    reference: str = field(default_factory=codes.ride_reference)
    currency: str = "NGN"
    status: RideStatus = RideStatus.DRAFT
    recurrence: Optional[Recurrence] = None
    parent_ride_id: Optional[str] = None
    estimated_distance_km: Optional[float] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in (RideStatus.COMPLETED, RideStatus.CANCELLED)

    def can(self, event: RideEvent) -> bool:
        return (self.status, event) in RIDE_TRANSITIONS

    def transition(self, event: RideEvent, now: datetime) -> None:
        """Apply *event* if legal from the current status, else raise."""
        new_status = RIDE_TRANSITIONS.get((self.status, event))
        if new_status is None:
            raise InvalidTransitionError(
                f"Cannot {event.value} ride in status {self.status.value}",
                details=[{"status": self.status.value, "event": event.value}],
            )
        self.status = new_status
        self.updated_at = now

    def publish(self, now: datetime) -> None:
        self.transition(RideEvent.PUBLISH, now)
        self.published_at = now

    def start(self, now: datetime) -> None:
        self.transition(RideEvent.START, now)
        self.started_at = now

    def complete(self, now: datetime) -> None:
        self.transition(RideEvent.COMPLETE, now)
        self.completed_at = now

    def cancel(self, reason: str, now: datetime) -> None:
        self.transition(RideEvent.CANCEL, now)
        self.cancellation_reason = reason
        self.cancelled_at = now


@dataclass
class Booking:
    ride_id: str
    passenger_id: str
    driver_id: str
    seats: int
    price_per_seat: float
    total_price: float
    departure_at: datetime
    id: str = field(default_factory=codes.new_id)
    reference: str = field(default_factory=codes.booking_reference)
    status: BookingStatus = BookingStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_reference: Optional[str] = None
    verification_code: str = field(default_factory=codes.verification_code)
    verification_expires_at: Optional[datetime] = None
    fee_amount: float = 0.0
    refund_amount: Optional[float] = None
    amount_received: Optional[float] = None
    terms_accepted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    dropped_off_at: Optional[datetime] = None
    reminder_sent_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[Actor] = None
    is_late_cancellation: bool = False
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def create(
        cls,
        ride: RideOffer,
        passenger_id: str,
        seats: int,
        now: datetime,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        notes: Optional[str] = None,
    ) -> "Booking":
        """New pending booking with money frozen from the ride's current price."""
        return cls(
            ride_id=ride.id,
            passenger_id=passenger_id,
            driver_id=ride.driver_id,
            seats=seats,
            price_per_seat=ride.price_per_seat,
            total_price=round(ride.price_per_seat * seats, 2),
            departure_at=ride.departure_at,
            payment_method=payment_method,
            verification_expires_at=ride.departure_at + VERIFICATION_CODE_VALIDITY,
            expires_at=pending_expiry(now),
            notes=notes,
            created_at=now,
            updated_at=now,
        )

    # ── Queries ───────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED

    @property
    def requires_payment(self) -> bool:
        """Non-cash bookings must be paid before they can be confirmed."""
        return self.payment_method != PaymentMethod.CASH and not self.is_paid

    def is_expired(self, now: datetime) -> bool:
        return (
            self.status == BookingStatus.PENDING
            and self.expires_at is not None
            and now >= self.expires_at
        )

    def can(self, event: BookingEvent) -> bool:
        return (self.status, event) in BOOKING_TRANSITIONS

    # ── Transitions ───────────────────────────────────────────────

    def require(self, event: BookingEvent) -> BookingStatus:
        """Return the status *event* leads to, or raise if it is illegal."""
        new_status = BOOKING_TRANSITIONS.get((self.status, event))
        if new_status is None:
            raise InvalidTransitionError(
                f"Cannot {event.value} booking in status {self.status.value}",
                details=[{"status": self.status.value, "event": event.value}],
            )
        return new_status

    def transition(self, event: BookingEvent, now: datetime) -> None:
        self.status = self.require(event)
        self.updated_at = now

    def set_payment_status(self, status: PaymentStatus, now: datetime) -> None:
        if status not in PAYMENT_TRANSITIONS[self.payment_status]:
            raise InvalidTransitionError(
                f"Cannot move payment from {self.payment_status.value} to {status.value}",
                "INVALID_PAYMENT_TRANSITION",
            )
        self.payment_status = status
        self.updated_at = now

    def accept_terms(self, now: datetime) -> None:
        if self.terms_accepted_at is not None:
            raise InvalidTransitionError("Terms already accepted", "TERMS_ALREADY_ACCEPTED")
        if self.status != BookingStatus.PENDING:
            raise InvalidTransitionError(
                f"Cannot accept terms for booking in status {self.status.value}"
            )
        self.terms_accepted_at = now
        self.updated_at = now

    def confirm(self, now: datetime) -> None:
        self.require(BookingEvent.CONFIRM)
        if self.is_expired(now):
            raise InvalidTransitionError("Booking hold has expired", "BOOKING_EXPIRED")
        if self.terms_accepted_at is None:
            raise ValidationError(
                "Terms must be accepted before confirmation", "TERMS_NOT_ACCEPTED"
            )
        if self.requires_payment:
            raise InvalidTransitionError(
                "Payment must be completed before confirmation", "PAYMENT_REQUIRED"
            )
        self.transition(BookingEvent.CONFIRM, now)
        self.confirmed_at = now
        self.expires_at = None

    def cancel(
        self,
        reason: str,
        cancelled_by: Actor,
        now: datetime,
        *,
        fee: float = 0.0,
        refund_amount: Optional[float] = None,
        is_late: bool = False,
    ) -> None:
        self.transition(BookingEvent.CANCEL, now)
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.cancelled_at = now
        self.is_late_cancellation = is_late
        self.fee_amount = fee
        self.expires_at = None
        if refund_amount is not None:
            self.refund_amount = refund_amount
            self.payment_status = PaymentStatus.REFUNDED

    def refund_late_payment(self, refund_amount: float, now: datetime) -> None:
        """Payment completed after the booking was cancelled; refund it at once."""
        if self.status != BookingStatus.CANCELLED:
            raise InvalidTransitionError(
                f"Booking is {self.status.value}, not cancelled"
            )
        self.set_payment_status(PaymentStatus.COMPLETED, now)
        self.refund_amount = refund_amount
        self.payment_status = PaymentStatus.REFUNDED

    def check_in(self, now: datetime) -> None:
        if self.status != BookingStatus.CONFIRMED:
            raise InvalidTransitionError(
                "Only confirmed bookings can be checked in", "NOT_CONFIRMED"
            )
        if self.checked_in_at is not None:
            raise InvalidTransitionError("Passenger already checked in", "ALREADY_CHECKED_IN")
        self.checked_in_at = now
        self.updated_at = now

    def record_pickup(self, now: datetime) -> None:
        if self.checked_in_at is None:
            raise InvalidTransitionError(
                "Passenger must check in before pickup", "NOT_CHECKED_IN"
            )
        if self.picked_up_at is not None:
            raise InvalidTransitionError("Passenger already picked up", "ALREADY_PICKED_UP")
        self.transition(BookingEvent.BOARD, now)
        self.picked_up_at = now

    def record_dropoff(self, now: datetime) -> None:
        if self.picked_up_at is None:
            raise InvalidTransitionError(
                "Passenger must be picked up before dropoff", "NOT_PICKED_UP"
            )
        if self.dropped_off_at is not None:
            raise InvalidTransitionError(
                "Passenger already dropped off", "ALREADY_DROPPED_OFF"
            )
        self.dropped_off_at = now
        self.updated_at = now

    def complete(self, now: datetime) -> None:
        if self.dropped_off_at is None:
            raise InvalidTransitionError(
                "Passenger must be dropped off before completing booking",
                "NOT_DROPPED_OFF",
            )
        self.transition(BookingEvent.COMPLETE, now)
        self.completed_at = now

    def mark_no_show(self, now: datetime) -> None:
        self.transition(BookingEvent.NO_SHOW, now)
        self.no_show_at = now
        self.refund_amount = None
