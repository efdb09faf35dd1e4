"""
Ride Lifecycle Manager
======================

Owns the ride offer state machine::

    draft -> active -> full -> active ...
    active/full -> in-progress -> completed
    draft/active/full -> cancelled

Any write to a published ride goes through ``SeatLedger.hold`` so it is
serialised with concurrent seat reservations.  ``sync_capacity_status`` is
registered as the ledger's capacity callback and performs the
``full``/``active`` flips inside that same critical section.

Cancelling or completing a ride never touches booking seats: the manager
returns the affected bookings and the caller drives the per-booking
transitions (see ``BookingLifecycleManager.cancel_for_ride``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from src.domain.clock import Clock
from src.domain.distance import haversine_km
from src.domain.entities import (
    VERIFICATION_CODE_VALIDITY,
    Booking,
    Location,
    Recurrence,
    RideOffer,
    SeatInventory,
)
from src.domain.enums import RideEvent, RideStatus
from src.domain.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from src.domain.ports import BookingStore, IdentityService, NotificationDispatcher, RideStore
from src.domain.recurrence import DEFAULT_HORIZON_WEEKS, expand_recurrence
from src.domain.time_windows import (
    CANCELLATION_DEADLINE,
    OVERLAP_WINDOW,
    is_start_window,
    meets_lead_time,
)
from src.domain.validation import RidePolicy, validate_ride
from src.services.common import notify, require_verified_user
from src.services.ledger import SeatLedger

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (RideStatus.DRAFT, RideStatus.ACTIVE, RideStatus.FULL)


@dataclass
class RideOutcome:
    """A ride after cancel/complete plus the bookings the caller must settle."""

    ride: RideOffer
    bookings: list[Booking] = field(default_factory=list)


class RideLifecycleManager:
    def __init__(
        self,
        rides: RideStore,
        bookings: BookingStore,
        ledger: SeatLedger,
        identity: IdentityService,
        notifier: NotificationDispatcher,
        clock: Clock,
        policy: RidePolicy,
    ):
        self.rides = rides
        self.bookings = bookings
        self.ledger = ledger
        self.identity = identity
        self.notifier = notifier
        self.clock = clock
        self.policy = policy

    # ── Creation ──────────────────────────────────────────────────

    async def create_ride(
        self,
        driver_id: str,
        vehicle_id: str,
        origin: Location,
        destination: Location,
        departure_at: datetime,
        total_seats: int,
        price_per_seat: float,
        *,
        recurrence: Optional[Recurrence] = None,
        estimated_distance_km: Optional[float] = None,
        notes: Optional[str] = None,
        publish: bool = False,
    ) -> RideOffer:
        now = self.clock.now()
        await require_verified_user(self.identity, driver_id)

        if estimated_distance_km is None:
            estimated_distance_km = round(
                haversine_km(
                    origin.latitude,
                    origin.longitude,
                    destination.latitude,
                    destination.longitude,
                ),
                2,
            )

        ride = RideOffer(
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            origin=origin,
            destination=destination,
            departure_at=departure_at,
            seats=SeatInventory.of(total_seats),
            price_per_seat=price_per_seat,
            currency=self.policy.currency,
            recurrence=recurrence,
            estimated_distance_km=estimated_distance_km,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        validate_ride(ride, now, self.policy)
        await self._check_overlap(ride)

        if publish:
            ride.publish(now)
        await self.rides.add(ride)
        logger.info(
            "Ride %s created by driver %s (%s, %d seats)",
            ride.reference,
            driver_id,
            ride.status.value,
            total_seats,
        )
        return ride

    async def publish_ride(self, ride_id: str, driver_id: str) -> RideOffer:
        now = self.clock.now()
        ride = await self._load_owned(ride_id, driver_id)
        if not ride.can(RideEvent.PUBLISH):
            raise InvalidTransitionError(
                f"Only draft rides can be published (status {ride.status.value})"
            )
        validate_ride(ride, now, self.policy)
        await self._check_overlap(ride)
        ride.publish(now)
        await self.rides.save(ride)
        logger.info("Ride %s published", ride.reference)
        await notify(
            self.notifier,
            "ride.published",
            {"ride_id": ride.id, "driver_id": ride.driver_id},
        )
        return ride

    async def schedule_recurrence(
        self, ride_id: str, driver_id: str, weeks: int = DEFAULT_HORIZON_WEEKS
    ) -> list[RideOffer]:
        """Create the missing child rides of a recurring ride.  Re-runnable.

        Any non-cancelled parent qualifies, including one already in progress
        or completed; the children are fresh drafts either way.
        """
        now = self.clock.now()
        parent = await self._load_owned(ride_id, driver_id)
        if parent.status == RideStatus.CANCELLED:
            raise InvalidTransitionError("Cannot schedule a cancelled ride", "RIDE_CANCELLED")

        existing = {c.departure_at for c in await self.rides.list_children(parent.id)}
        created: list[RideOffer] = []
        for child in expand_recurrence(parent, now, weeks):
            if child.departure_at in existing or not meets_lead_time(child.departure_at, now):
                continue
            try:
                await self._check_overlap(child)
            except ConflictError:
                logger.warning(
                    "Skipping recurrence of %s at %s: overlaps another ride",
                    parent.reference,
                    child.departure_at.isoformat(),
                )
                continue
            await self.rides.add(child)
            created.append(child)

        logger.info(
            "Scheduled %d recurring rides for %s", len(created), parent.reference
        )
        return created

    # ── Updates ───────────────────────────────────────────────────

    async def update_ride(
        self,
        ride_id: str,
        driver_id: str,
        *,
        price_per_seat: Optional[float] = None,
        departure_at: Optional[datetime] = None,
        total_seats: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> RideOffer:
        now = self.clock.now()
        async with self.ledger.hold(ride_id, now) as session:
            ride = session.ride
            self._require_owner(ride, driver_id)
            if ride.status not in EDITABLE_STATUSES or now >= ride.departure_at:
                raise InvalidTransitionError(
                    f"Ride can no longer be edited (status {ride.status.value})",
                    "RIDE_NOT_EDITABLE",
                )

            moved = departure_at is not None and departure_at != ride.departure_at
            if price_per_seat is not None:
                ride.price_per_seat = price_per_seat
            if departure_at is not None:
                ride.departure_at = departure_at
            if notes is not None:
                ride.notes = notes
            if total_seats is not None:
                session.resize(total_seats)
            validate_ride(ride, now, self.policy, check_lead_time=moved)
            if moved:
                await self._check_overlap(ride)
                await self._reschedule_bookings(ride)

            ride.updated_at = now
            session.touch()

        logger.info("Ride %s updated", ride.reference)
        await notify(self.notifier, "ride.updated", {"ride_id": ride.id})
        return session.ride

    async def _reschedule_bookings(self, ride: RideOffer) -> None:
        for booking in await self.bookings.list_active_for_ride(ride.id):
            booking.departure_at = ride.departure_at
            booking.verification_expires_at = ride.departure_at + VERIFICATION_CODE_VALIDITY
            booking.reminder_sent_at = None
            await self.bookings.save(booking)

    async def sync_capacity_status(self, ride: RideOffer, now: datetime) -> None:
        """Ledger callback: keep ``full`` in step with the seat counters."""
        if ride.status == RideStatus.ACTIVE and ride.seats.is_full:
            ride.transition(RideEvent.FILL, now)
            logger.info("Ride %s is now full", ride.reference)
        elif (
            ride.status == RideStatus.FULL
            and not ride.seats.is_full
            and now < ride.departure_at
        ):
            ride.transition(RideEvent.REOPEN, now)
            logger.info(
                "Ride %s reopened (%d seats)", ride.reference, ride.seats.available
            )

    # ── Terminal transitions ──────────────────────────────────────

    async def cancel_ride(self, ride_id: str, driver_id: str, reason: str) -> RideOutcome:
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required", "REASON_REQUIRED")
        now = self.clock.now()
        async with self.ledger.hold(ride_id, now) as session:
            ride = session.ride
            self._require_owner(ride, driver_id)
            if not ride.can(RideEvent.CANCEL):
                raise InvalidTransitionError(
                    f"Cannot cancel ride in status {ride.status.value}"
                )
            if ride.seats.booked > 0 and ride.departure_at - now <= CANCELLATION_DEADLINE:
                raise InvalidTransitionError(
                    "Rides with bookings cannot be cancelled within 1 hour of departure",
                    "RIDE_CANCELLATION_DEADLINE_PASSED",
                )
            ride.cancel(reason.strip(), now)
            session.touch()

        affected = await self.bookings.list_active_for_ride(ride_id)
        logger.info(
            "Ride %s cancelled by driver (%d bookings affected)",
            ride.reference,
            len(affected),
        )
        await notify(
            self.notifier,
            "ride.cancelled",
            {
                "ride_id": ride.id,
                "reason": ride.cancellation_reason,
                "passenger_ids": [b.passenger_id for b in affected],
            },
        )
        return RideOutcome(ride=session.ride, bookings=affected)

    async def start_ride(self, ride_id: str, driver_id: str) -> RideOffer:
        now = self.clock.now()
        async with self.ledger.hold(ride_id, now) as session:
            ride = session.ride
            self._require_owner(ride, driver_id)
            if not ride.can(RideEvent.START):
                raise InvalidTransitionError(
                    f"Cannot start ride in status {ride.status.value}"
                )
            if not is_start_window(ride.departure_at, now):
                raise InvalidTransitionError(
                    "Ride can only start within 15 minutes of departure",
                    "TOO_EARLY_TO_START",
                )
            ride.start(now)
            session.touch()

        logger.info("Ride %s started", ride.reference)
        await notify(self.notifier, "ride.started", {"ride_id": ride.id})
        return session.ride

    async def complete_ride(self, ride_id: str, driver_id: str) -> RideOutcome:
        now = self.clock.now()
        async with self.ledger.hold(ride_id, now) as session:
            ride = session.ride
            self._require_owner(ride, driver_id)
            ride.complete(now)
            session.touch()

        outstanding = await self.bookings.list_active_for_ride(ride_id)
        logger.info(
            "Ride %s completed (%d bookings outstanding)",
            ride.reference,
            len(outstanding),
        )
        await notify(self.notifier, "ride.completed", {"ride_id": ride.id})
        return RideOutcome(ride=session.ride, bookings=outstanding)

    # ── Queries ───────────────────────────────────────────────────

    async def get_ride(self, ride_id: str) -> RideOffer:
        ride = await self.rides.get(ride_id)
        if ride is None:
            raise NotFoundError(f"Ride {ride_id} not found")
        return ride

    async def list_driver_rides(self, driver_id: str) -> list[RideOffer]:
        return await self.rides.list_by_driver(driver_id)

    # ── Internals ─────────────────────────────────────────────────

    async def _load_owned(self, ride_id: str, driver_id: str) -> RideOffer:
        ride = await self.get_ride(ride_id)
        self._require_owner(ride, driver_id)
        return ride

    @staticmethod
    def _require_owner(ride: RideOffer, driver_id: str) -> None:
        if ride.driver_id != driver_id:
            raise ForbiddenError("Only the ride's driver can do this", "NOT_RIDE_DRIVER")

    async def _check_overlap(self, ride: RideOffer) -> None:
        for other in await self.rides.list_by_driver(ride.driver_id):
            if other.id == ride.id or other.is_terminal:
                continue
            if abs(other.departure_at - ride.departure_at) < OVERLAP_WINDOW:
                raise ConflictError(
                    "You already have a ride scheduled within 30 minutes of this time",
                    "OVERLAPPING_RIDE",
                    details=[{"ride_id": other.id, "reference": other.reference}],
                )

