"""
Booking Lifecycle Manager
=========================

Owns each booking's state machine::

    pending -> confirmed -> in-progress -> completed
    pending/confirmed -> cancelled
    confirmed -> no-show

Seat accounting
---------------
A booking holds its seats from ``create_booking`` until it is cancelled
(explicitly, by the expiry sweep or because its ride was cancelled) or
marked no-show.  All three release paths go through ``_cancel_locked`` /
``mark_no_show`` inside ``SeatLedger.hold`` so the booking's status
change and the seat release are saved in the same critical section.  The
booking is re-read under the ride lock and saved with a version check;
a second release for the same booking therefore fails its transition
check before any seat moves.

Completed bookings keep their seats: the ride has already run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from src.domain import fees
from src.domain.clock import Clock
from src.domain.entities import Booking
from src.domain.enums import (
    Actor,
    BookingEvent,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
)
from src.domain.errors import (
    ConflictError,
    EngineError,
    ForbiddenError,
    InvalidTransitionError,
    NotBookableError,
    NotFoundError,
    ValidationError,
)
from src.domain.ports import (
    BookingStore,
    IdentityService,
    NotificationDispatcher,
    RideStore,
)
from src.domain.time_windows import (
    REMINDER_WINDOW,
    can_cancel,
    hours_until_departure,
    is_bookable,
    is_check_in_window,
    is_no_show_eligible,
    is_reminder_window,
)
from src.domain.validation import MAX_SEATS_PER_BOOKING, validate_booking_seats
from src.services.common import notify, require_verified_user
from src.services.ledger import LedgerSession, SeatLedger

logger = logging.getLogger(__name__)

EXPIRED_REASON = "hold expired"


@dataclass
class Availability:
    ride_id: str
    seats_requested: int
    seats_available: int
    available: bool
    reasons: list[str] = field(default_factory=list)


@dataclass
class BatchResult:
    """Outcome of a per-booking follow-up run over one ride."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


class BookingLifecycleManager:
    def __init__(
        self,
        bookings: BookingStore,
        rides: RideStore,
        ledger: SeatLedger,
        identity: IdentityService,
        notifier: NotificationDispatcher,
        clock: Clock,
    ):
        self.bookings = bookings
        self.rides = rides
        self.ledger = ledger
        self.identity = identity
        self.notifier = notifier
        self.clock = clock

    # ── Creation ──────────────────────────────────────────────────

    async def create_booking(
        self,
        passenger_id: str,
        ride_id: str,
        seats: int,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        notes: Optional[str] = None,
    ) -> Booking:
        validate_booking_seats(seats)
        now = self.clock.now()
        await require_verified_user(self.identity, passenger_id)

        async with self.ledger.hold(ride_id, now) as session:
            ride = session.ride
            if ride.driver_id == passenger_id:
                raise ForbiddenError("You cannot book your own ride", "OWN_RIDE")
            if ride.status not in (RideStatus.ACTIVE, RideStatus.FULL):
                raise NotBookableError(
                    f"Ride is not accepting bookings (status {ride.status.value})"
                )
            if not is_bookable(ride.departure_at, now):
                raise NotBookableError(
                    "Bookings close 30 minutes before departure and open 7 days ahead",
                    "OUTSIDE_BOOKING_WINDOW",
                )
            if await self.bookings.find_active(passenger_id, ride_id):
                raise ConflictError(
                    "You already have an active booking for this ride",
                    "DUPLICATE_BOOKING",
                )
            session.reserve(seats)
            booking = Booking.create(ride, passenger_id, seats, now, payment_method, notes)
            await self.bookings.add(booking)

        logger.info(
            "Booking %s created: %d seats on ride %s (%d left)",
            booking.reference,
            seats,
            ride.reference,
            ride.seats.available,
        )
        await notify(
            self.notifier,
            "booking.created",
            {
                "booking_id": booking.id,
                "ride_id": ride_id,
                "passenger_id": passenger_id,
                "driver_id": booking.driver_id,
                "seats": seats,
            },
        )
        return booking

    # ── Pending -> confirmed ──────────────────────────────────────

    async def accept_terms(self, booking_id: str, passenger_id: str) -> Booking:
        now = self.clock.now()
        booking = await self._load(booking_id)
        self._require_passenger(booking, passenger_id)
        booking.accept_terms(now)
        return await self.bookings.save(booking)

    async def confirm_booking(self, booking_id: str, actor_id: str) -> Booking:
        now = self.clock.now()
        booking = await self._load(booking_id)
        self._role(booking, actor_id)
        booking.confirm(now)
        await self.bookings.save(booking)
        logger.info("Booking %s confirmed", booking.reference)
        await notify(
            self.notifier,
            "booking.confirmed",
            {"booking_id": booking.id, "passenger_id": booking.passenger_id},
        )
        return booking

    async def record_payment(
        self,
        booking_id: str,
        status: PaymentStatus,
        reference: Optional[str] = None,
    ) -> Booking:
        """Payment gateway callback.  Completing payment auto-confirms.

        A payment still in flight when its booking was cancelled may land
        afterwards; it is refunded straight away on the cancellation's terms.
        """
        now = self.clock.now()
        booking = await self._load(booking_id)
        if booking.status == BookingStatus.NO_SHOW:
            raise InvalidTransitionError(
                f"Booking is {booking.status.value}", "BOOKING_CLOSED"
            )
        if booking.status == BookingStatus.CANCELLED:
            return await self._settle_after_cancellation(booking, status, reference, now)

        booking.set_payment_status(status, now)
        if reference:
            booking.payment_reference = reference

        auto_confirm = (
            status == PaymentStatus.COMPLETED
            and booking.status == BookingStatus.PENDING
            and booking.terms_accepted_at is not None
            and not booking.is_expired(now)
        )
        if auto_confirm:
            booking.confirm(now)
        await self.bookings.save(booking)

        logger.info(
            "Booking %s payment %s%s",
            booking.reference,
            status.value,
            " (auto-confirmed)" if auto_confirm else "",
        )
        return booking

    async def _settle_after_cancellation(
        self,
        booking: Booking,
        status: PaymentStatus,
        reference: Optional[str],
        now: datetime,
    ) -> Booking:
        if status != PaymentStatus.COMPLETED:
            booking.set_payment_status(status, now)
        else:
            # Bookings cancelled with their ride were refunded in full
            ride = await self.rides.get(booking.ride_id)
            if ride is not None and ride.status == RideStatus.CANCELLED:
                amount = booking.total_price
            else:
                hours = hours_until_departure(booking.departure_at, booking.cancelled_at)
                amount = fees.refund(booking.total_price, hours)
            booking.refund_late_payment(amount, now)
        if reference:
            booking.payment_reference = reference
        await self.bookings.save(booking)

        logger.info(
            "Booking %s payment %s after cancellation%s",
            booking.reference,
            status.value,
            f" (refund {booking.refund_amount:.2f})"
            if booking.payment_status == PaymentStatus.REFUNDED
            else "",
        )
        return booking

    async def confirm_cash_payment(
        self, booking_id: str, driver_id: str, amount: Optional[float] = None
    ) -> Booking:
        now = self.clock.now()
        booking = await self._load(booking_id)
        self._require_driver(booking, driver_id)
        if booking.payment_method != PaymentMethod.CASH:
            raise ValidationError("Booking is not a cash booking", "NOT_CASH_BOOKING")
        if booking.status not in (
            BookingStatus.CONFIRMED,
            BookingStatus.IN_PROGRESS,
            BookingStatus.COMPLETED,
        ):
            raise InvalidTransitionError(
                f"Cannot take payment for booking in status {booking.status.value}"
            )
        if booking.is_paid:
            raise ConflictError("Cash payment already confirmed", "PAYMENT_ALREADY_CONFIRMED")
        if amount is not None and amount <= 0:
            raise ValidationError("Amount must be positive", "INVALID_AMOUNT")

        self._settle_cash(booking, amount, now)
        await self.bookings.save(booking)
        logger.info(
            "Cash payment of %.2f confirmed for booking %s",
            booking.amount_received,
            booking.reference,
        )
        return booking

    # ── Cancellation ──────────────────────────────────────────────

    async def cancel_booking(
        self, booking_id: str, actor_id: str, reason: str
    ) -> Booking:
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required", "REASON_REQUIRED")
        now = self.clock.now()
        booking = await self._load(booking_id)
        actor = self._role(booking, actor_id)
        booking.require(BookingEvent.CANCEL)

        async with self.ledger.hold(booking.ride_id, now) as session:
            booking = await self._load(booking_id)
            await self._cancel_locked(session, booking, reason.strip(), actor, now)

        await self._announce_cancellation(booking)
        return booking

    async def expire_booking(self, booking_id: str) -> Optional[Booking]:
        """Cancel a pending booking whose hold ran out.  No-op otherwise."""
        now = self.clock.now()
        booking = await self.bookings.get(booking_id)
        if booking is None or not booking.is_expired(now):
            return None

        async with self.ledger.hold(booking.ride_id, now) as session:
            booking = await self.bookings.get(booking_id)
            if booking is None or not booking.is_expired(now):
                return None
            await self._cancel_locked(session, booking, EXPIRED_REASON, Actor.SYSTEM, now)

        logger.info("Booking %s expired", booking.reference)
        await self._announce_cancellation(booking)
        return booking

    async def _cancel_locked(
        self,
        session: LedgerSession,
        booking: Booking,
        reason: str,
        cancelled_by: Actor,
        now: datetime,
        *,
        enforce_deadline: bool = True,
        full_refund: bool = False,
    ) -> None:
        """The single seat-release path for cancellations.  Caller holds the ride."""
        booking.require(BookingEvent.CANCEL)
        departure = session.ride.departure_at
        if enforce_deadline and not can_cancel(departure, booking.status, now):
            raise InvalidTransitionError(
                "Confirmed bookings cannot be cancelled within 1 hour of departure",
                "CANCELLATION_DEADLINE_PASSED",
            )

        hours = hours_until_departure(departure, now)
        fee = fees.cancellation_fee(booking.total_price, hours, cancelled_by)
        refund_amount = None
        if booking.is_paid:
            refund_amount = (
                booking.total_price
                if full_refund
                else fees.refund(booking.total_price, hours)
            )

        session.release(booking.seats)
        booking.cancel(
            reason,
            cancelled_by,
            now,
            fee=fee,
            refund_amount=refund_amount,
            is_late=hours <= fees.LATE_CANCELLATION_HOURS,
        )
        await self.bookings.save(booking)
        logger.info(
            "Booking %s cancelled by %s (%d seats released, fee %.2f, refund %s)",
            booking.reference,
            cancelled_by.value,
            booking.seats,
            fee,
            "none" if refund_amount is None else f"{refund_amount:.2f}",
        )

    async def _announce_cancellation(self, booking: Booking) -> None:
        await notify(
            self.notifier,
            "booking.cancelled",
            {
                "booking_id": booking.id,
                "ride_id": booking.ride_id,
                "passenger_id": booking.passenger_id,
                "driver_id": booking.driver_id,
                "cancelled_by": booking.cancelled_by.value,
                "refund_amount": booking.refund_amount,
            },
        )

    # ── Trip progress ─────────────────────────────────────────────

    async def check_in(self, booking_id: str, actor_id: str) -> Booking:
        now = self.clock.now()
        booking = await self._load(booking_id)
        self._role(booking, actor_id)
        if booking.status == BookingStatus.CONFIRMED and not is_check_in_window(
            booking.departure_at, now
        ):
            raise InvalidTransitionError(
                "Check-in runs from 30 minutes before to 15 minutes after departure",
                "OUTSIDE_CHECK_IN_WINDOW",
            )
        booking.check_in(now)
        await self.bookings.save(booking)
        logger.info("Booking %s checked in", booking.reference)
        return booking

    async def record_pickup(
        self,
        booking_id: str,
        driver_id: str,
        verification_code: Optional[str] = None,
    ) -> Booking:
        now = self.clock.now()
        booking = await self._load(booking_id)
        self._require_driver(booking, driver_id)
        if verification_code is not None:
            if (
                booking.verification_expires_at is not None
                and now > booking.verification_expires_at
            ):
                raise ValidationError(
                    "Verification code has expired", "VERIFICATION_CODE_EXPIRED"
                )
            if verification_code != booking.verification_code:
                raise ValidationError(
                    "Invalid verification code", "INVALID_VERIFICATION_CODE"
                )
        booking.record_pickup(now)
        await self.bookings.save(booking)
        logger.info("Booking %s picked up", booking.reference)
        await notify(
            self.notifier,
            "booking.picked_up",
            {"booking_id": booking.id, "passenger_id": booking.passenger_id},
        )
        return booking

    async def record_dropoff(self, booking_id: str, driver_id: str) -> Booking:
        now = self.clock.now()
        booking = await self._load(booking_id)
        self._require_driver(booking, driver_id)
        booking.record_dropoff(now)
        self._complete(booking, now)
        await self.bookings.save(booking)
        await self._announce_completion(booking)
        return booking

    async def complete_booking(
        self, booking_id: str, driver_id: str, cash_received: bool = True
    ) -> Booking:
        """Finish an in-progress booking, recording the dropoff if missing."""
        now = self.clock.now()
        booking = await self._load(booking_id)
        self._require_driver(booking, driver_id)
        if booking.status == BookingStatus.IN_PROGRESS and booking.dropped_off_at is None:
            booking.record_dropoff(now)
        self._complete(booking, now, cash_received=cash_received)
        await self.bookings.save(booking)
        await self._announce_completion(booking)
        return booking

    def _complete(self, booking: Booking, now: datetime, cash_received: bool = False) -> None:
        booking.complete(now)
        if (
            cash_received
            and booking.payment_method == PaymentMethod.CASH
            and not booking.is_paid
        ):
            self._settle_cash(booking, None, now)
        logger.info("Booking %s completed", booking.reference)

    @staticmethod
    def _settle_cash(booking: Booking, amount: Optional[float], now: datetime) -> None:
        booking.set_payment_status(PaymentStatus.COMPLETED, now)
        booking.amount_received = booking.total_price if amount is None else amount

    async def _announce_completion(self, booking: Booking) -> None:
        await notify(
            self.notifier,
            "booking.completed",
            {"booking_id": booking.id, "passenger_id": booking.passenger_id},
        )

    async def mark_no_show(self, booking_id: str, driver_id: str) -> Booking:
        now = self.clock.now()
        booking = await self._load(booking_id)
        self._require_driver(booking, driver_id)
        booking.require(BookingEvent.NO_SHOW)

        async with self.ledger.hold(booking.ride_id, now) as session:
            booking = await self._load(booking_id)
            booking.require(BookingEvent.NO_SHOW)
            if not is_no_show_eligible(session.ride.departure_at, now):
                raise InvalidTransitionError(
                    "No-show can only be recorded 15 minutes after departure",
                    "NO_SHOW_TOO_EARLY",
                )
            session.release(booking.seats)
            booking.mark_no_show(now)
            await self.bookings.save(booking)

        logger.info(
            "Booking %s marked no-show (%d seats released)",
            booking.reference,
            booking.seats,
        )
        await notify(
            self.notifier,
            "booking.no_show",
            {"booking_id": booking.id, "passenger_id": booking.passenger_id},
        )
        return booking

    # ── Queries ───────────────────────────────────────────────────

    async def check_availability(self, ride_id: str, seats: int) -> Availability:
        now = self.clock.now()
        ride = await self.rides.get(ride_id)
        if ride is None:
            raise NotFoundError(f"Ride {ride_id} not found")

        reasons: list[str] = []
        if ride.status != RideStatus.ACTIVE:
            reasons.append(f"Ride is {ride.status.value}")
        if not 1 <= seats <= MAX_SEATS_PER_BOOKING:
            reasons.append(f"Between 1 and {MAX_SEATS_PER_BOOKING} seats per booking")
        if seats > ride.seats.available:
            reasons.append(f"Only {ride.seats.available} seats available")
        if not is_bookable(ride.departure_at, now):
            reasons.append("Ride is outside the booking window")

        return Availability(
            ride_id=ride.id,
            seats_requested=seats,
            seats_available=ride.seats.available,
            available=not reasons,
            reasons=reasons,
        )

    async def get_booking(self, booking_id: str, actor_id: str) -> Booking:
        booking = await self._load(booking_id)
        self._role(booking, actor_id)
        return booking

    async def list_ride_bookings(self, ride_id: str, driver_id: str) -> list[Booking]:
        ride = await self.rides.get(ride_id)
        if ride is None:
            raise NotFoundError(f"Ride {ride_id} not found")
        if ride.driver_id != driver_id:
            raise ForbiddenError("Only the ride's driver can list its bookings")
        return await self.bookings.list_for_ride(ride_id)

    # ── Batch follow-ups ──────────────────────────────────────────

    async def cancel_for_ride(self, ride_id: str, reason: str) -> BatchResult:
        """Cancel every active booking of a cancelled ride with a full refund."""
        now = self.clock.now()
        result = BatchResult()
        for booking in await self.bookings.list_active_for_ride(ride_id):
            try:
                async with self.ledger.hold(ride_id, now) as session:
                    current = await self._load(booking.id)
                    await self._cancel_locked(
                        session,
                        current,
                        reason,
                        Actor.DRIVER,
                        now,
                        enforce_deadline=False,
                        full_refund=True,
                    )
            except EngineError as exc:
                logger.warning(
                    "Could not cancel booking %s for ride %s: %s",
                    booking.reference,
                    ride_id,
                    exc.message,
                )
                result.failed.append((booking.id, exc.message))
                continue
            result.succeeded.append(booking.id)
            await self._announce_cancellation(current)
        return result

    async def complete_for_ride(self, ride_id: str) -> BatchResult:
        """Settle bookings left open when a ride completes.

        In-progress bookings are dropped off and completed, confirmed ones
        become no-shows and pending ones are cancelled by the system.
        """
        result = BatchResult()
        for booking in await self.bookings.list_active_for_ride(ride_id):
            try:
                if booking.status == BookingStatus.IN_PROGRESS:
                    await self.complete_booking(
                        booking.id, booking.driver_id, cash_received=False
                    )
                elif booking.status == BookingStatus.CONFIRMED:
                    await self.mark_no_show(booking.id, booking.driver_id)
                else:
                    await self._system_cancel(booking, "ride completed")
            except EngineError as exc:
                logger.warning(
                    "Could not settle booking %s for ride %s: %s",
                    booking.reference,
                    ride_id,
                    exc.message,
                )
                result.failed.append((booking.id, exc.message))
                continue
            result.succeeded.append(booking.id)
        return result

    async def _system_cancel(self, booking: Booking, reason: str) -> None:
        now = self.clock.now()
        async with self.ledger.hold(booking.ride_id, now) as session:
            current = await self._load(booking.id)
            await self._cancel_locked(
                session, current, reason, Actor.SYSTEM, now, enforce_deadline=False
            )
        await self._announce_cancellation(current)

    # ── Sweeps ────────────────────────────────────────────────────

    async def expire_overdue_bookings(self, limit: int = 100) -> list[str]:
        now = self.clock.now()
        expired: list[str] = []
        for booking in await self.bookings.list_expired_pending(now, limit):
            try:
                if await self.expire_booking(booking.id) is not None:
                    expired.append(booking.id)
            except EngineError as exc:
                logger.warning("Could not expire booking %s: %s", booking.id, exc.message)
        if expired:
            logger.info("Expired %d pending bookings", len(expired))
        return expired

    async def send_due_reminders(self, limit: int = 100) -> list[str]:
        now = self.clock.now()
        sent: list[str] = []
        due = await self.bookings.list_reminder_due(now, now + REMINDER_WINDOW, limit)
        for booking in due:
            if not is_reminder_window(
                booking.departure_at, now, booking.reminder_sent_at is not None
            ):
                continue
            booking.reminder_sent_at = now
            try:
                await self.bookings.save(booking)
            except ConflictError:
                logger.debug("Booking %s changed; reminder retried next sweep", booking.id)
                continue
            sent.append(booking.id)
            await notify(
                self.notifier,
                "booking.reminder",
                {
                    "booking_id": booking.id,
                    "passenger_id": booking.passenger_id,
                    "departure_at": booking.departure_at.isoformat(),
                    "verification_code": booking.verification_code,
                },
            )
        return sent

    # ── Internals ─────────────────────────────────────────────────

    async def _load(self, booking_id: str) -> Booking:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def _role(booking: Booking, actor_id: str) -> Actor:
        if actor_id == booking.passenger_id:
            return Actor.PASSENGER
        if actor_id == booking.driver_id:
            return Actor.DRIVER
        raise ForbiddenError("Not a party to this booking", "NOT_BOOKING_PARTY")

    @staticmethod
    def _require_passenger(booking: Booking, passenger_id: str) -> None:
        if booking.passenger_id != passenger_id:
            raise ForbiddenError("Only the passenger can do this", "NOT_BOOKING_PASSENGER")

    @staticmethod
    def _require_driver(booking: Booking, driver_id: str) -> None:
        if booking.driver_id != driver_id:
            raise ForbiddenError("Only the driver can do this", "NOT_BOOKING_DRIVER")
