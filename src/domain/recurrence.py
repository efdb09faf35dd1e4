"""
Recurring ride expansion.

A parent ride with a ``Recurrence`` (set of weekdays + optional end date)
is expanded into child rides at the same local time of day, starting the
day after the parent and running until the end date or, if none was
given, ``DEFAULT_HORIZON_WEEKS`` ahead.  Expansion is capped at
``MAX_INSTANCES`` children.

Children copy the route, vehicle, price, seat count and notes of the
parent; run state (timestamps, cancellation reason, bookings) is never
copied.  The parent may already have run: a recurring ride keeps
scheduling after its first trip completes.

Complexity: O(days in horizon).
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from . import codes
from .entities import RideOffer, SeatInventory
from .enums import RideStatus
from .errors import ValidationError

DEFAULT_HORIZON_WEEKS = 8
MAX_INSTANCES = 50


def recurrence_dates(
    ride: RideOffer, weeks: int = DEFAULT_HORIZON_WEEKS
) -> list[datetime]:
    if ride.recurrence is None or not ride.recurrence.days:
        raise ValidationError("This is not a recurring ride", "NOT_RECURRING")

    wanted = {day.day_number for day in ride.recurrence.days}
    end = ride.departure_at + timedelta(weeks=weeks)
    if ride.recurrence.end_date is not None:
        end_of_day = datetime.combine(
            ride.recurrence.end_date, ride.departure_at.timetz()
        )
        end = min(end, end_of_day)

    dates: list[datetime] = []
    current = ride.departure_at + timedelta(days=1)
    while current <= end and len(dates) < MAX_INSTANCES:
        if current.weekday() in wanted:
            dates.append(current)
        current += timedelta(days=1)
    return dates


def expand_recurrence(
    ride: RideOffer, now: datetime, weeks: int = DEFAULT_HORIZON_WEEKS
) -> list[RideOffer]:
    """Build (unsaved) child rides; each starts with a fresh seat inventory."""
    children = []
    for departure in recurrence_dates(ride, weeks):
        children.append(
            replace(
                ride,
                id=codes.new_id(),
                reference=codes.ride_reference(),
                departure_at=departure,
                seats=SeatInventory.of(ride.seats.total),
                status=RideStatus.DRAFT,
                recurrence=None,
                parent_ride_id=ride.id,
                created_at=now,
                updated_at=now,
                cancellation_reason=None,
                published_at=None,
                started_at=None,
                completed_at=None,
                cancelled_at=None,
                version=0,
            )
        )
    return children
