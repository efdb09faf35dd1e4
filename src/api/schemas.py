"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.entities import Booking
from src.domain.enums import (
    Actor,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    Weekday,
)


# ── Requests ──────────────────────────────────────────────────────────


class LocationSchema(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    name: str = Field("", max_length=255)

    model_config = {"from_attributes": True}


class RecurrenceSchema(BaseModel):
    days: list[Weekday] = Field(..., min_length=1)
    end_date: Optional[date] = None


class RideCreateRequest(BaseModel):
    vehicle_id: str = Field(..., min_length=1, max_length=64)
    origin: LocationSchema
    destination: LocationSchema
    departure_at: datetime
    total_seats: int
    price_per_seat: float = Field(..., gt=0)
    recurrence: Optional[RecurrenceSchema] = None
    estimated_distance_km: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=500)
    publish: bool = Field(False, description="Publish immediately instead of saving a draft.")


class RideUpdateRequest(BaseModel):
    price_per_seat: Optional[float] = Field(None, gt=0)
    departure_at: Optional[datetime] = None
    total_seats: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=500)


class ReasonRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class RecurrenceScheduleRequest(BaseModel):
    weeks: int = Field(8, ge=1, le=12)


class BookingCreateRequest(BaseModel):
    ride_id: str
    seats: int = 1
    payment_method: PaymentMethod = PaymentMethod.CASH
    notes: Optional[str] = Field(None, max_length=500)


class PickupRequest(BaseModel):
    verification_code: Optional[str] = Field(None, min_length=6, max_length=6)


class CompleteBookingRequest(BaseModel):
    cash_received: bool = True


class CashPaymentRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)


class PaymentCallbackRequest(BaseModel):
    status: PaymentStatus
    reference: Optional[str] = Field(None, max_length=64)


# ── Responses ─────────────────────────────────────────────────────────


class SeatsResponse(BaseModel):
    total: int
    available: int
    booked: int

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: str
    reference: str
    driver_id: str
    vehicle_id: str
    origin: LocationSchema
    destination: LocationSchema
    departure_at: datetime
    seats: SeatsResponse
    price_per_seat: float
    currency: str
    status: RideStatus
    parent_ride_id: Optional[str] = None
    estimated_distance_km: Optional[float] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: str
    reference: str
    ride_id: str
    passenger_id: str
    driver_id: str
    seats: int
    price_per_seat: float
    total_price: float
    departure_at: datetime
    status: BookingStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    verification_code: Optional[str] = None
    fee_amount: float
    refund_amount: Optional[float] = None
    amount_received: Optional[float] = None
    expires_at: Optional[datetime] = None
    terms_accepted_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    dropped_off_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[Actor] = None
    is_late_cancellation: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @classmethod
    def for_viewer(cls, booking: Booking, viewer_id: str) -> "BookingResponse":
        """The pickup code is only shown to the passenger."""
        response = cls.model_validate(booking)
        if viewer_id != booking.passenger_id:
            response.verification_code = None
        return response


class RideOutcomeResponse(BaseModel):
    ride: RideResponse
    settled_bookings: list[str] = []
    failed_bookings: list[str] = []


class AvailabilityResponse(BaseModel):
    ride_id: str
    seats_requested: int
    seats_available: int
    available: bool
    reasons: list[str] = []

    model_config = {"from_attributes": True}


class SweepResponse(BaseModel):
    expired: list[str] = []
    reminded: list[str] = []


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None
    details: list[dict] = []
