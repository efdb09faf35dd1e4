"""
Booking endpoints
=================

POST /api/v1/bookings                            -- book seats (pending, 10 min hold)
GET  /api/v1/bookings/{booking_id}               -- booking details
POST /api/v1/bookings/{booking_id}/terms         -- passenger accepts terms
POST /api/v1/bookings/{booking_id}/confirm       -- pending -> confirmed
POST /api/v1/bookings/{booking_id}/cancel        -- cancel, release seats, refund
POST /api/v1/bookings/{booking_id}/check-in      -- passenger arrived
POST /api/v1/bookings/{booking_id}/pickup        -- driver picked up (code optional)
POST /api/v1/bookings/{booking_id}/dropoff       -- driver dropped off; completes
POST /api/v1/bookings/{booking_id}/complete      -- driver completes the booking
POST /api/v1/bookings/{booking_id}/no-show       -- driver marks no-show
POST /api/v1/bookings/{booking_id}/cash-payment  -- driver confirms cash
POST /api/v1/bookings/{booking_id}/payment       -- payment gateway callback (X-Gateway-Secret)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import (
    get_current_user,
    get_engine,
    require_payment_gateway,
)
from src.api.middleware import limiter
from src.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    CashPaymentRequest,
    CompleteBookingRequest,
    PaymentCallbackRequest,
    PickupRequest,
    ReasonRequest,
)
from src.services.engine import Engine

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Book seats on a ride",
)
@limiter.limit("100/minute")
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.create_booking(
        passenger_id=user_id,
        ride_id=body.ride_id,
        seats=body.seats,
        payment_method=body.payment_method,
        notes=body.notes,
    )
    return BookingResponse.for_viewer(booking, user_id)


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get a booking")
@limiter.limit("100/minute")
async def get_booking(
    request: Request,
    booking_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.get_booking(booking_id, user_id)
    return BookingResponse.for_viewer(booking, user_id)


@router.post("/{booking_id}/terms", response_model=BookingResponse, summary="Accept terms")
@limiter.limit("100/minute")
async def accept_terms(
    request: Request,
    booking_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.accept_terms(booking_id, user_id)
    return BookingResponse.for_viewer(booking, user_id)


@router.post("/{booking_id}/confirm", response_model=BookingResponse, summary="Confirm a booking")
@limiter.limit("100/minute")
async def confirm_booking(
    request: Request,
    booking_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.confirm_booking(booking_id, user_id)
    return BookingResponse.for_viewer(booking, user_id)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
    description=(
        "Releases the booking's seats.  Confirmed bookings cannot be "
        "cancelled within one hour of departure.  Paid bookings are "
        "refunded on the 100/75/50/0 % schedule."
    ),
)
@limiter.limit("100/minute")
async def cancel_booking(
    request: Request,
    booking_id: str,
    body: ReasonRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.cancel_booking(booking_id, user_id, body.reason)
    return BookingResponse.for_viewer(booking, user_id)


@router.post("/{booking_id}/check-in", response_model=BookingResponse, summary="Check in")
@limiter.limit("100/minute")
async def check_in(
    request: Request,
    booking_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.check_in(booking_id, user_id)
    return BookingResponse.for_viewer(booking, user_id)


@router.post("/{booking_id}/pickup", response_model=BookingResponse, summary="Record pickup")
@limiter.limit("100/minute")
async def record_pickup(
    request: Request,
    booking_id: str,
    body: PickupRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.record_pickup(
        booking_id, user_id, body.verification_code
    )
    return BookingResponse.for_viewer(booking, user_id)


@router.post("/{booking_id}/dropoff", response_model=BookingResponse, summary="Record dropoff")
@limiter.limit("100/minute")
async def record_dropoff(
    request: Request,
    booking_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.record_dropoff(booking_id, user_id)
    return BookingResponse.for_viewer(booking, user_id)


@router.post("/{booking_id}/complete", response_model=BookingResponse, summary="Complete a booking")
@limiter.limit("100/minute")
async def complete_booking(
    request: Request,
    booking_id: str,
    body: CompleteBookingRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.complete_booking(
        booking_id, user_id, cash_received=body.cash_received
    )
    return BookingResponse.for_viewer(booking, user_id)


@router.post("/{booking_id}/no-show", response_model=BookingResponse, summary="Mark no-show")
@limiter.limit("100/minute")
async def mark_no_show(
    request: Request,
    booking_id: str,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.mark_no_show(booking_id, user_id)
    return BookingResponse.for_viewer(booking, user_id)


@router.post(
    "/{booking_id}/cash-payment",
    response_model=BookingResponse,
    summary="Confirm cash received",
)
@limiter.limit("100/minute")
async def confirm_cash_payment(
    request: Request,
    booking_id: str,
    body: CashPaymentRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.confirm_cash_payment(booking_id, user_id, body.amount)
    return BookingResponse.for_viewer(booking, user_id)


@router.post(
    "/{booking_id}/payment",
    response_model=BookingResponse,
    summary="Payment status callback",
    dependencies=[Depends(require_payment_gateway)],
)
@limiter.limit("100/minute")
async def record_payment(
    request: Request,
    booking_id: str,
    body: PaymentCallbackRequest,
    engine: Engine = Depends(get_engine),
):
    booking = await engine.bookings.record_payment(booking_id, body.status, body.reference)
    return BookingResponse.for_viewer(booking, viewer_id="")
