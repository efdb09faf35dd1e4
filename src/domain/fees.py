"""
Fee / Refund Calculator
=======================

Refund schedule (by hours until departure)
------------------------------------------
    > 24 h   -> 100 %
    >  6 h   ->  75 %
    >  1 h   ->  50 %
    otherwise ->  0 %

Cancellation fee
----------------
A flat 50 % of the booking total when a *passenger* cancels inside the
final hour.  Drivers and the system are never charged.

The two schedules are deliberately separate functions: a refund is what
the passenger gets back, a fee is what they owe.
"""

from __future__ import annotations

from .enums import Actor

REFUND_TIERS: tuple[tuple[float, int], ...] = (
    (24.0, 100),
    (6.0, 75),
    (1.0, 50),
)

LATE_CANCELLATION_HOURS = 1.0
LATE_CANCELLATION_FEE_RATE = 0.5


def refund_percentage(hours_until_departure: float) -> int:
    for threshold, percent in REFUND_TIERS:
        if hours_until_departure > threshold:
            return percent
    return 0


def refund(total_price: float, hours_until_departure: float) -> float:
    """Amount returned to the passenger.  O(1)."""
    return round(total_price * refund_percentage(hours_until_departure) / 100, 2)


def cancellation_fee(
    total_price: float, hours_until_departure: float, actor: Actor = Actor.PASSENGER
) -> float:
    if actor != Actor.PASSENGER:
        return 0.0
    if hours_until_departure > LATE_CANCELLATION_HOURS:
        return 0.0
    return round(total_price * LATE_CANCELLATION_FEE_RATE, 2)
