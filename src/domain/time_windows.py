"""
Time-Window Policy
==================

Stateless predicates that classify *now* relative to a ride's departure.
Every function takes ``now`` explicitly so callers decide where time comes
from (see ``src.domain.clock``).

Windows
-------
* bookable      -- departure at least 30 min and at most 7 days ahead
* cancellable   -- a confirmed booking more than 1 h before departure
* check-in      -- from 30 min before departure until no-show eligibility
* start         -- from 15 min before departure onwards
* no-show       -- 15 min or more after departure
* reminder      -- within 2 h before departure, not yet sent
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .enums import BookingStatus

MIN_LEAD_TIME = timedelta(minutes=30)
MAX_ADVANCE = timedelta(days=7)
CANCELLATION_DEADLINE = timedelta(hours=1)
CHECK_IN_OPENS = timedelta(minutes=30)
START_WINDOW_OPENS = timedelta(minutes=15)
NO_SHOW_GRACE = timedelta(minutes=15)
REMINDER_WINDOW = timedelta(hours=2)
PENDING_HOLD = timedelta(minutes=10)
OVERLAP_WINDOW = timedelta(minutes=30)


def hours_until_departure(departure: datetime, now: datetime) -> float:
    """Signed hours from *now* to *departure* (negative once departed)."""
    return (departure - now).total_seconds() / 3600


def meets_lead_time(departure: datetime, now: datetime) -> bool:
    return departure - now >= MIN_LEAD_TIME


def is_bookable(departure: datetime, now: datetime) -> bool:
    return MIN_LEAD_TIME <= departure - now <= MAX_ADVANCE


def can_cancel(departure: datetime, status: BookingStatus, now: datetime) -> bool:
    """Only confirmed bookings are bound by the 1 h cancellation deadline."""
    if status == BookingStatus.PENDING:
        return True
    if status != BookingStatus.CONFIRMED:
        return False
    return departure - now > CANCELLATION_DEADLINE


def is_check_in_window(departure: datetime, now: datetime) -> bool:
    # Closes after departure, at the moment no-show eligibility begins
    return departure - CHECK_IN_OPENS <= now < departure + NO_SHOW_GRACE


def is_start_window(departure: datetime, now: datetime) -> bool:
    return now >= departure - START_WINDOW_OPENS


def is_no_show_eligible(departure: datetime, now: datetime) -> bool:
    return now >= departure + NO_SHOW_GRACE


def is_reminder_window(
    departure: datetime, now: datetime, reminder_sent: bool = False
) -> bool:
    if reminder_sent:
        return False
    return departure - REMINDER_WINDOW <= now < departure


def pending_expiry(created_at: datetime) -> datetime:
    return created_at + PENDING_HOLD
