"""Unit tests for ride offer and booking state transitions (State Pattern)."""

from datetime import datetime, timedelta, timezone

import pytest

from src.domain.entities import Booking, Location, RideOffer, SeatInventory
from src.domain.enums import (
    Actor,
    BookingEvent,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    RideEvent,
    RideStatus,
)
from src.domain.errors import (
    ConflictError,
    InsufficientSeatsError,
    InvalidTransitionError,
    ValidationError,
)

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
DEPARTURE = NOW + timedelta(hours=5)


def make_ride(status: RideStatus = RideStatus.DRAFT, seats: int = 3) -> RideOffer:
    return RideOffer(
        driver_id="driver-1",
        vehicle_id="KWL-101-AA",
        origin=Location(8.4799, 4.6753),
        destination=Location(8.4966, 4.5421),
        departure_at=DEPARTURE,
        seats=SeatInventory.of(seats),
        price_per_seat=400.0,
        status=status,
    )


def make_booking(
    status: BookingStatus = BookingStatus.PENDING,
    payment_method: PaymentMethod = PaymentMethod.CASH,
) -> Booking:
    booking = Booking.create(
        make_ride(RideStatus.ACTIVE), "passenger-a", 2, NOW, payment_method
    )
    booking.status = status
    return booking


class TestRideStateMachine:
    def test_initial_status_is_draft(self):
        assert make_ride().status == RideStatus.DRAFT

    # ── Valid transitions ─────────────────────────────────────────

    def test_draft_to_active(self):
        ride = make_ride()
        ride.publish(NOW)
        assert ride.status == RideStatus.ACTIVE
        assert ride.published_at == NOW

    def test_active_to_full_and_back(self):
        ride = make_ride(RideStatus.ACTIVE)
        ride.transition(RideEvent.FILL, NOW)
        assert ride.status == RideStatus.FULL
        ride.transition(RideEvent.REOPEN, NOW)
        assert ride.status == RideStatus.ACTIVE

    @pytest.mark.parametrize("status", [RideStatus.ACTIVE, RideStatus.FULL])
    def test_start_from_active_or_full(self, status):
        ride = make_ride(status)
        ride.start(NOW)
        assert ride.status == RideStatus.IN_PROGRESS
        assert ride.started_at == NOW

    def test_in_progress_to_completed(self):
        ride = make_ride(RideStatus.IN_PROGRESS)
        ride.complete(NOW)
        assert ride.status == RideStatus.COMPLETED
        assert ride.is_terminal

    @pytest.mark.parametrize(
        "status", [RideStatus.DRAFT, RideStatus.ACTIVE, RideStatus.FULL]
    )
    def test_cancel_before_start(self, status):
        ride = make_ride(status)
        ride.cancel("Car broke down", NOW)
        assert ride.status == RideStatus.CANCELLED
        assert ride.cancellation_reason == "Car broke down"

    # ── Invalid transitions ───────────────────────────────────────

    def test_draft_cannot_start(self):
        with pytest.raises(InvalidTransitionError):
            make_ride().start(NOW)

    def test_in_progress_cannot_cancel(self):
        """Once on the road, a ride can only complete."""
        ride = make_ride(RideStatus.IN_PROGRESS)
        assert not ride.can(RideEvent.CANCEL)
        with pytest.raises(InvalidTransitionError):
            ride.cancel("too late", NOW)

    @pytest.mark.parametrize("status", [RideStatus.COMPLETED, RideStatus.CANCELLED])
    def test_terminal_states_accept_nothing(self, status):
        ride = make_ride(status)
        for event in RideEvent:
            assert not ride.can(event)

    def test_failed_transition_leaves_status(self):
        ride = make_ride(RideStatus.ACTIVE)
        with pytest.raises(InvalidTransitionError):
            ride.complete(NOW)
        assert ride.status == RideStatus.ACTIVE


class TestSeatInventory:
    def test_reserve_reports_last_seat(self):
        seats = SeatInventory.of(3)
        assert seats.reserve(2) is False
        assert seats.reserve(1) is True
        assert (seats.available, seats.booked) == (0, 3)

    def test_overbook_rejected_without_change(self):
        seats = SeatInventory.of(2)
        with pytest.raises(InsufficientSeatsError):
            seats.reserve(3)
        assert (seats.available, seats.booked) == (2, 0)

    def test_release_more_than_booked_rejected(self):
        seats = SeatInventory.of(3)
        seats.reserve(1)
        with pytest.raises(ConflictError) as exc_info:
            seats.release(2)
        assert exc_info.value.code == "SEAT_RELEASE_MISMATCH"

    def test_resize_keeps_booked(self):
        seats = SeatInventory.of(3)
        seats.reserve(2)
        seats.resize(5)
        assert (seats.total, seats.available, seats.booked) == (5, 3, 2)

    def test_resize_below_booked_rejected(self):
        seats = SeatInventory.of(4)
        seats.reserve(3)
        with pytest.raises(ValidationError):
            seats.resize(2)


class TestBookingStateMachine:
    def test_create_freezes_price_and_hold(self):
        booking = make_booking()
        assert booking.status == BookingStatus.PENDING
        assert booking.total_price == 800.0
        assert booking.expires_at == NOW + timedelta(minutes=10)
        assert booking.departure_at == DEPARTURE
        assert len(booking.verification_code) == 6
        assert booking.reference.startswith("BK-")

    # ── Confirmation prerequisites ────────────────────────────────

    def test_confirm_requires_terms(self):
        booking = make_booking()
        with pytest.raises(ValidationError) as exc_info:
            booking.confirm(NOW)
        assert exc_info.value.code == "TERMS_NOT_ACCEPTED"

    def test_confirm_requires_payment_for_transfer(self):
        booking = make_booking(payment_method=PaymentMethod.TRANSFER)
        booking.accept_terms(NOW)
        with pytest.raises(InvalidTransitionError) as exc_info:
            booking.confirm(NOW)
        assert exc_info.value.code == "PAYMENT_REQUIRED"

    def test_confirm_after_hold_expired(self):
        booking = make_booking()
        booking.accept_terms(NOW)
        with pytest.raises(InvalidTransitionError) as exc_info:
            booking.confirm(NOW + timedelta(minutes=10))
        assert exc_info.value.code == "BOOKING_EXPIRED"

    def test_confirm_clears_expiry(self):
        booking = make_booking()
        booking.accept_terms(NOW)
        booking.confirm(NOW + timedelta(minutes=1))
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.expires_at is None

    def test_terms_accepted_once(self):
        booking = make_booking()
        booking.accept_terms(NOW)
        with pytest.raises(InvalidTransitionError):
            booking.accept_terms(NOW)

    # ── Cancellation ──────────────────────────────────────────────

    def test_cancel_with_refund_marks_refunded(self):
        booking = make_booking(BookingStatus.CONFIRMED)
        booking.cancel("plans changed", Actor.PASSENGER, NOW, refund_amount=800.0)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.payment_status == PaymentStatus.REFUNDED
        assert booking.refund_amount == 800.0

    def test_cancel_without_refund_keeps_payment_status(self):
        booking = make_booking()
        booking.cancel("plans changed", Actor.PASSENGER, NOW)
        assert booking.payment_status == PaymentStatus.PENDING
        assert booking.refund_amount is None

    def test_second_cancel_rejected(self):
        booking = make_booking()
        booking.cancel("first", Actor.PASSENGER, NOW)
        with pytest.raises(InvalidTransitionError):
            booking.cancel("second", Actor.PASSENGER, NOW)

    # ── Trip progress ─────────────────────────────────────────────

    def test_pickup_requires_check_in(self):
        booking = make_booking(BookingStatus.CONFIRMED)
        with pytest.raises(InvalidTransitionError) as exc_info:
            booking.record_pickup(NOW)
        assert exc_info.value.code == "NOT_CHECKED_IN"

    def test_full_trip(self):
        booking = make_booking(BookingStatus.CONFIRMED)
        booking.check_in(NOW)
        booking.record_pickup(NOW)
        assert booking.status == BookingStatus.IN_PROGRESS
        booking.record_dropoff(NOW)
        booking.complete(NOW)
        assert booking.status == BookingStatus.COMPLETED
        assert not booking.is_active

    def test_complete_requires_dropoff(self):
        booking = make_booking(BookingStatus.IN_PROGRESS)
        booking.picked_up_at = NOW
        with pytest.raises(InvalidTransitionError) as exc_info:
            booking.complete(NOW)
        assert exc_info.value.code == "NOT_DROPPED_OFF"

    def test_pending_cannot_no_show(self):
        assert not make_booking().can(BookingEvent.NO_SHOW)

    # ── Payment status ────────────────────────────────────────────

    def test_payment_moves_forward(self):
        booking = make_booking()
        booking.set_payment_status(PaymentStatus.PROCESSING, NOW)
        booking.set_payment_status(PaymentStatus.COMPLETED, NOW)
        assert booking.is_paid

    def test_completed_payment_is_final(self):
        booking = make_booking()
        booking.set_payment_status(PaymentStatus.COMPLETED, NOW)
        with pytest.raises(InvalidTransitionError) as exc_info:
            booking.set_payment_status(PaymentStatus.FAILED, NOW)
        assert exc_info.value.code == "INVALID_PAYMENT_TRANSITION"

    def test_refunded_only_via_cancel(self):
        booking = make_booking()
        with pytest.raises(InvalidTransitionError):
            booking.set_payment_status(PaymentStatus.REFUNDED, NOW)
