"""
Ride offer validation.

Run on create, on publish and on update.  All problems are collected
and raised together as one ``ValidationError`` so a client can fix the
whole form in one round trip.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .distance import within_radius
from .entities import Location, RideOffer
from .errors import ValidationError
from .time_windows import MIN_LEAD_TIME, meets_lead_time

MIN_SEATS = 1
MAX_SEATS = 7
MAX_SEATS_PER_BOOKING = 4


@dataclass(frozen=True)
class RidePolicy:
    """Platform-level bounds, normally built from ``settings``."""

    anchor: Location
    anchor_radius_km: float
    min_price: float
    max_price: float
    currency: str = "NGN"

    @classmethod
    def from_settings(cls, settings) -> "RidePolicy":
        return cls(
            anchor=Location(settings.anchor_latitude, settings.anchor_longitude),
            anchor_radius_km=settings.anchor_radius_km,
            min_price=settings.min_price_per_seat,
            max_price=settings.max_price_per_seat,
            currency=settings.currency,
        )

    def is_anchored(self, origin: Location, destination: Location) -> bool:
        return any(
            within_radius(
                point.latitude,
                point.longitude,
                self.anchor.latitude,
                self.anchor.longitude,
                self.anchor_radius_km,
            )
            for point in (origin, destination)
        )


def _valid_coordinates(point: Location) -> bool:
    return -90 <= point.latitude <= 90 and -180 <= point.longitude <= 180


def ride_problems(
    ride: RideOffer, now: datetime, policy: RidePolicy, check_lead_time: bool = True
) -> list[dict[str, Any]]:
    problems: list[dict[str, Any]] = []

    for name, point in (("origin", ride.origin), ("destination", ride.destination)):
        if not _valid_coordinates(point):
            problems.append({"field": name, "message": "Invalid coordinates"})
    if not problems and not policy.is_anchored(ride.origin, ride.destination):
        problems.append(
            {
                "field": "route",
                "message": "Route must start or end at the platform anchor point",
            }
        )

    if not MIN_SEATS <= ride.seats.total <= MAX_SEATS:
        problems.append(
            {
                "field": "total_seats",
                "message": f"Total seats must be between {MIN_SEATS} and {MAX_SEATS}",
            }
        )

    if not policy.min_price <= ride.price_per_seat <= policy.max_price:
        problems.append(
            {
                "field": "price_per_seat",
                "message": (
                    f"Price must be between {policy.min_price:g} "
                    f"and {policy.max_price:g}"
                ),
            }
        )

    if ride.departure_at.tzinfo is None:
        problems.append(
            {"field": "departure_at", "message": "Departure must be timezone-aware"}
        )
    elif check_lead_time and not meets_lead_time(ride.departure_at, now):
        minutes = int(MIN_LEAD_TIME.total_seconds() // 60)
        problems.append(
            {
                "field": "departure_at",
                "message": f"Departure must be at least {minutes} minutes from now",
            }
        )

    return problems


def validate_ride(
    ride: RideOffer, now: datetime, policy: RidePolicy, check_lead_time: bool = True
) -> None:
    problems = ride_problems(ride, now, policy, check_lead_time)
    if problems:
        raise ValidationError("Ride validation failed", details=problems)


def validate_booking_seats(seats: int) -> None:
    if not 1 <= seats <= MAX_SEATS_PER_BOOKING:
        raise ValidationError(
            "Too many seats requested"
            if seats > MAX_SEATS_PER_BOOKING
            else "Seat count must be positive",
            "INVALID_SEATS",
            details=[
                {
                    "field": "seats",
                    "message": f"Between 1 and {MAX_SEATS_PER_BOOKING} seats per booking",
                }
            ],
        )
