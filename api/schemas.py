"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional

from domain.enums import ReservationStatus


# ============================================================================
# RESERVATION SCHEMAS
# ============================================================================

class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    guest_name: str = Field(min_length=1)
    phone_number: str
    room_type: str
    check_in: date
    check_out: date


class ChangeDatesRequest(BaseModel):
    """Change stay dates request DTO"""
    check_in: date
    check_out: date


class UpdateReservationRequest(BaseModel):
    """Full reservation update request DTO"""
    guest_name: str = Field(min_length=1)
    phone_number: str
    room_number: int
    room_type: str
    check_in: date
    check_out: date
    status: ReservationStatus
    total_price: Decimal = Field(ge=0)


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: int
    user_id: int
    guest_name: str
    phone_number: str
    room_number: int
    room_type: str
    check_in: date
    check_out: date
    nights: int
    status: str
    total_price: Decimal
    created_at: datetime


class BookingResponse(BaseModel):
    """Booking or date-change outcome DTO"""
    outcome: str
    message: str = ""
    reservation: Optional[ReservationResponse] = None


# ============================================================================
# AVAILABILITY SCHEMAS
# ============================================================================

class RoomTypeResponse(BaseModel):
    """Room catalog entry DTO"""
    name: str
    start_id: int
    end_id: int
    pool_size: int
    nightly_rate: Decimal


class AvailabilityResponse(BaseModel):
    """Availability for one room type DTO"""
    room_type: str
    check_in: date
    check_out: date
    available_rooms: int
    pool_size: int


class AvailabilitySummaryResponse(BaseModel):
    """Availability for every room type DTO"""
    check_in: date
    check_out: date
    available_rooms: Dict[str, int]


class PriceQuoteResponse(BaseModel):
    """Price quote DTO"""
    room_type: str
    check_in: date
    check_out: date
    nights: int
    nightly_rate: Decimal
    total_price: Decimal


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: int
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool


class MessageResponse(BaseModel):
    """Generic success message DTO"""
    success: bool
    message: str
