"""
Ride endpoints
==============

POST  /api/v1/rides                          -- create a ride (draft or published)
GET   /api/v1/rides/{ride_id}                -- ride details and seat counts
PATCH /api/v1/rides/{ride_id}                -- edit price, time, seats or notes
POST  /api/v1/rides/{ride_id}/publish        -- draft -> active
POST  /api/v1/rides/{ride_id}/recurrence     -- create recurring child rides
POST  /api/v1/rides/{ride_id}/cancel         -- cancel ride and its bookings
POST  /api/v1/rides/{ride_id}/start          -- active/full -> in-progress
POST  /api/v1/rides/{ride_id}/complete       -- in-progress -> completed
GET   /api/v1/rides/{ride_id}/availability   -- can N seats be booked?
GET   /api/v1/rides/{ride_id}/bookings       -- driver's passenger list

The acting user is taken from the ``X-User-Id`` header.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_current_user, get_engine
from src.api.middleware import limiter
from src.api.schemas import (
    AvailabilityResponse,
    BookingResponse,
    ReasonRequest,
    RecurrenceScheduleRequest,
    RideCreateRequest,
    RideOutcomeResponse,
    RideResponse,
    RideUpdateRequest,
)
from src.domain.entities import Location, Recurrence
from src.services.engine import Engine

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Create a ride offer",
)
@limiter.limit("100/minute")
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    recurrence = None
    if body.recurrence:
        recurrence = Recurrence(
            days=frozenset(body.recurrence.days), end_date=body.recurrence.end_date
        )
    ride = await engine.rides.create_ride(
        driver_id=user_id,
        vehicle_id=body.vehicle_id,
        origin=Location(**body.origin.model_dump()),
        destination=Location(**body.destination.model_dump()),
        departure_at=body.departure_at,
        total_seats=body.total_seats,
        price_per_seat=body.price_per_seat,
        recurrence=recurrence,
        estimated_distance_km=body.estimated_distance_km,
        notes=body.notes,
        publish=body.publish,
    )
    return RideResponse.model_validate(ride)


@router.get("/{ride_id}", response_model=RideResponse, summary="Get a ride")
@limiter.limit("100/minute")
async def get_ride(
    request: Request,
    ride_id: str,
    engine: Engine = Depends(get_engine),
):
    return RideResponse.model_validate(await engine.rides.get_ride(ride_id))


@router.patch("/{ride_id}", response_model=RideResponse, summary="Edit a ride")
@limiter.limit("100/minute")
async def update_ride(
    request: Request,
    ride_id: str,
    body: RideUpdateRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    ride = await engine.rides.update_ride(
        ride_id, user_id, **body.model_dump(exclude_none=True)
    )
    return RideResponse.model_validate(ride)


@router.post("/{ride_id}/publish", response_model=RideResponse, summary="Publish a draft ride")
@limiter.limit("100/minute")
async def publish_ride(
    request: Request,
    ride_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return RideResponse.model_validate(await engine.rides.publish_ride(ride_id, user_id))


@router.post(
    "/{ride_id}/recurrence",
    status_code=201,
    response_model=list[RideResponse],
    summary="Create the upcoming instances of a recurring ride",
)
@limiter.limit("100/minute")
async def schedule_recurrence(
    request: Request,
    ride_id: str,
    body: RecurrenceScheduleRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    children = await engine.rides.schedule_recurrence(ride_id, user_id, body.weeks)
    return [RideResponse.model_validate(c) for c in children]


@router.post(
    "/{ride_id}/cancel",
    response_model=RideOutcomeResponse,
    summary="Cancel a ride",
    description=(
        "Cancels the ride, then cancels each active booking on it with a "
        "full refund.  Rides with bookings cannot be cancelled within one "
        "hour of departure."
    ),
)
@limiter.limit("100/minute")
async def cancel_ride(
    request: Request,
    ride_id: str,
    body: ReasonRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    await engine.rides.cancel_ride(ride_id, user_id, body.reason)
    batch = await engine.bookings.cancel_for_ride(ride_id, body.reason)
    ride = await engine.rides.get_ride(ride_id)
    return RideOutcomeResponse(
        ride=RideResponse.model_validate(ride),
        settled_bookings=batch.succeeded,
        failed_bookings=[booking_id for booking_id, _ in batch.failed],
    )


@router.post("/{ride_id}/start", response_model=RideResponse, summary="Start a ride")
@limiter.limit("100/minute")
async def start_ride(
    request: Request,
    ride_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return RideResponse.model_validate(await engine.rides.start_ride(ride_id, user_id))


@router.post(
    "/{ride_id}/complete",
    response_model=RideOutcomeResponse,
    summary="Complete a ride and settle its open bookings",
)
@limiter.limit("100/minute")
async def complete_ride(
    request: Request,
    ride_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    await engine.rides.complete_ride(ride_id, user_id)
    batch = await engine.bookings.complete_for_ride(ride_id)
    ride = await engine.rides.get_ride(ride_id)
    return RideOutcomeResponse(
        ride=RideResponse.model_validate(ride),
        settled_bookings=batch.succeeded,
        failed_bookings=[booking_id for booking_id, _ in batch.failed],
    )


@router.get(
    "/{ride_id}/availability",
    response_model=AvailabilityResponse,
    summary="Check whether seats can be booked",
)
@limiter.limit("100/minute")
async def check_availability(
    request: Request,
    ride_id: str,
    seats: int = Query(1, ge=1),
    engine: Engine = Depends(get_engine),
):
    availability = await engine.bookings.check_availability(ride_id, seats)
    return AvailabilityResponse.model_validate(availability)


@router.get(
    "/{ride_id}/bookings",
    response_model=list[BookingResponse],
    summary="List a ride's bookings (driver only)",
)
@limiter.limit("100/minute")
async def list_ride_bookings(
    request: Request,
    ride_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    bookings = await engine.bookings.list_ride_bookings(ride_id, user_id)
    return [BookingResponse.for_viewer(b, user_id) for b in bookings]
