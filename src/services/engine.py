"""
Engine wiring.

``build_engine`` assembles the ledger and both lifecycle managers over a
set of stores and registers the ride manager's capacity callback with
the ledger.  The API builds one per request (SQL stores bound to the
request's session); tests and the seed script build one over the
in-memory stores.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.config import settings
from src.domain.clock import Clock
from src.domain.ports import (
    BookingStore,
    IdentityService,
    LockManager,
    NotificationDispatcher,
    RideStore,
)
from src.domain.validation import RidePolicy
from src.services.booking_lifecycle import BookingLifecycleManager
from src.services.ledger import SeatLedger
from src.services.ride_lifecycle import RideLifecycleManager


@dataclass
class Engine:
    rides: RideLifecycleManager
    bookings: BookingLifecycleManager
    ledger: SeatLedger
    clock: Clock


def build_engine(
    ride_store: RideStore,
    booking_store: BookingStore,
    identity: IdentityService,
    locks: LockManager,
    notifier: NotificationDispatcher,
    clock: Clock,
    policy: Optional[RidePolicy] = None,
) -> Engine:
    ledger = SeatLedger(ride_store, locks)
    rides = RideLifecycleManager(
        ride_store,
        booking_store,
        ledger,
        identity,
        notifier,
        clock,
        policy or RidePolicy.from_settings(settings),
    )
    ledger.on_capacity_change(rides.sync_capacity_status)
    bookings = BookingLifecycleManager(
        booking_store, ride_store, ledger, identity, notifier, clock
    )
    return Engine(rides=rides, bookings=bookings, ledger=ledger, clock=clock)
