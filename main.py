from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse
from datetime import date
from typing import List, Optional
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Reservation
    CreateReservationRequest, ChangeDatesRequest, UpdateReservationRequest,
    ReservationResponse, BookingResponse, MessageResponse,
    # Availability
    RoomTypeResponse, AvailabilityResponse, AvailabilitySummaryResponse, PriceQuoteResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import get_current_active_user, fake_users_db, get_user
from infrastructure.security import verify_password, create_access_token
from domain.auth import User

from application.services import ReservationService, AvailabilityService, RoomTypeLocks, BookingResult
from config import get_settings, configure_logging, create_repository
from domain.enums import BookingOutcome, ReservationStatus
from domain.exceptions import RoomConflictError, StoreError
from domain.policies import nights_between
from domain.value_objects import DateRange

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(
    title="Hotel Room Reservation API",
    description="Room availability and booking assignment for front-desk staff",
    version="1.0.0"
)

# Shared state: one store, one catalog, one lock registry per process
reservation_repo = create_repository(settings)
room_catalog = settings.load_catalog()
room_locks = RoomTypeLocks()

# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(RoomConflictError)
async def room_conflict_handler(request: Request, exc: RoomConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """The reservation store is unreachable or failed mid-operation"""
    return JSONResponse(status_code=503, content={"detail": str(exc)})

# Dependency injection
def get_reservation_service() -> ReservationService:
    return ReservationService(reservation_repo, room_catalog, room_locks)

def get_availability_service() -> AvailabilityService:
    return AvailabilityService(reservation_repo, room_catalog)

# ============================================================================
# HEALTH & REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/reservation-status", tags=["Enum Reference"])
async def get_reservation_statuses():
    """Get all ReservationStatus values"""
    return {
        "values": [item.value for item in ReservationStatus],
        "description": "Reservation status values: Pending, Confirmed, Checked-In, Checked-Out, Cancelled, No-Show"
    }

@app.get("/api/room-types", response_model=List[RoomTypeResponse], tags=["Room Catalog"])
async def get_room_types(service: AvailabilityService = Depends(get_availability_service)):
    """Room types with their room-number bands and nightly rates"""
    return [
        RoomTypeResponse(
            name=r.name,
            start_id=r.start_id,
            end_id=r.end_id,
            pool_size=r.pool_size,
            nightly_rate=r.nightly_rate
        )
        for r in service.catalog
    ]

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(data={"sub": user.username})
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# AVAILABILITY ENDPOINTS
# ============================================================================

@app.get("/api/availability", response_model=AvailabilityResponse, tags=["Availability"])
async def get_availability(
    room_type: str,
    check_in: date,
    check_out: date,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Free rooms of one type for a stay"""
    try:
        date_range = DateRange(check_in=check_in, check_out=check_out)
        available = await service.available_count(room_type, date_range)
        pool_size = service.catalog.get(room_type).pool_size
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AvailabilityResponse(
        room_type=room_type,
        check_in=check_in,
        check_out=check_out,
        available_rooms=available,
        pool_size=pool_size
    )

@app.get("/api/availability/summary", response_model=AvailabilitySummaryResponse, tags=["Availability"])
async def get_availability_summary(
    check_in: date,
    check_out: date,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Free rooms of every type for a stay"""
    try:
        date_range = DateRange(check_in=check_in, check_out=check_out)
        summary = await service.availability_summary(date_range)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AvailabilitySummaryResponse(check_in=check_in, check_out=check_out, available_rooms=summary)

@app.get("/api/availability/quote", response_model=PriceQuoteResponse, tags=["Availability"])
async def get_price_quote(
    room_type: str,
    check_in: date,
    check_out: date,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Total price for a stay"""
    try:
        date_range = DateRange(check_in=check_in, check_out=check_out)
        total = service.quote_price(room_type, date_range)
        rate = service.catalog.nightly_rate(room_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PriceQuoteResponse(
        room_type=room_type,
        check_in=check_in,
        check_out=check_out,
        nights=nights_between(check_in, check_out),
        nightly_rate=rate,
        total_price=total
    )

# ============================================================================
# RESERVATION ENDPOINTS
# ============================================================================

@app.post("/api/reservations", response_model=BookingResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Book the first free room of the requested type"""
    try:
        result = await service.create_reservation(
            user_id=current_user.user_id,
            guest_name=request.guest_name,
            phone_number=request.phone_number,
            room_type=request.room_type,
            check_in=request.check_in,
            check_out=request.check_out
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _booking_to_response(result)

@app.get("/api/reservations", response_model=List[ReservationResponse], tags=["Reservations"])
async def get_all_reservations(
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get all reservations"""
    reservations = await service.get_all_reservations()
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/mine", response_model=List[ReservationResponse], tags=["Reservations"])
async def get_my_reservations(
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Reservations created by the current user"""
    reservations = await service.get_reservations_by_user(current_user.user_id)
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/search", response_model=List[ReservationResponse], tags=["Reservations"])
async def search_reservations(
    guest: Optional[str] = "",
    room: Optional[str] = "",
    day: Optional[str] = "",
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Filter reservations by guest name, room number and date text"""
    reservations = await service.search_reservations(guest=guest, room=room, day=day)
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/reports/daily/{day}", response_model=List[ReservationResponse], tags=["Reports"])
async def get_daily_report(
    day: date,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Reservations checking in on a day"""
    reservations = await service.get_daily_reservations(day)
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/reports/monthly/{year}/{month}", response_model=List[ReservationResponse], tags=["Reports"])
async def get_monthly_report(
    year: int,
    month: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Reservations checking in during a month"""
    try:
        reservations = await service.get_monthly_reservations(year, month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/reports/yearly/{year}", response_model=List[ReservationResponse], tags=["Reports"])
async def get_yearly_report(
    year: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Reservations checking in during a year"""
    reservations = await service.get_yearly_reservations(year)
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get reservation by ID"""
    reservation = await service.get_reservation(reservation_id)
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return _reservation_to_response(reservation)

@app.put("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def update_reservation(
    reservation_id: int,
    request: UpdateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Overwrite every field of a reservation"""
    try:
        reservation = await service.update_reservation(
            reservation_id=reservation_id,
            guest_name=request.guest_name,
            phone_number=request.phone_number,
            room_number=request.room_number,
            room_type=request.room_type,
            check_in=request.check_in,
            check_out=request.check_out,
            status=request.status,
            total_price=request.total_price
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return _reservation_to_response(reservation)

@app.patch("/api/reservations/{reservation_id}/dates", response_model=BookingResponse, tags=["Reservations"])
async def change_reservation_dates(
    reservation_id: int,
    request: ChangeDatesRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Move a reservation to new dates"""
    try:
        result = await service.change_dates(reservation_id, request.check_in, request.check_out)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return _booking_to_response(result)

async def _run_transition(action, reservation_id: int) -> ReservationResponse:
    try:
        reservation = await action(reservation_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return _reservation_to_response(reservation)

@app.post("/api/reservations/{reservation_id}/confirm", response_model=ReservationResponse, tags=["Reservations"])
async def confirm_reservation(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Confirm a pending reservation"""
    return await _run_transition(service.confirm_reservation, reservation_id)

@app.post("/api/reservations/{reservation_id}/check-in", response_model=ReservationResponse, tags=["Reservations"])
async def check_in_guest(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check in guest"""
    return await _run_transition(service.check_in_guest, reservation_id)

@app.post("/api/reservations/{reservation_id}/check-out", response_model=ReservationResponse, tags=["Reservations"])
async def check_out_guest(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check out guest"""
    return await _run_transition(service.check_out_guest, reservation_id)

@app.post("/api/reservations/{reservation_id}/cancel", response_model=ReservationResponse, tags=["Reservations"])
async def cancel_reservation(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel a pending or confirmed reservation"""
    return await _run_transition(service.cancel_reservation, reservation_id)

@app.post("/api/reservations/{reservation_id}/no-show", response_model=ReservationResponse, tags=["Reservations"])
async def mark_no_show(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Mark guest as no-show"""
    return await _run_transition(service.mark_no_show, reservation_id)

@app.post("/api/reservations/{reservation_id}/soft-cancel", response_model=MessageResponse, tags=["Reservations"])
async def soft_cancel_reservation(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Flip a reservation to Cancelled from any state"""
    cancelled = await service.soft_cancel_reservation(reservation_id)
    if not cancelled:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return {"success": True, "message": f"Reservation {reservation_id} cancelled"}

@app.delete("/api/reservations/{reservation_id}", response_model=MessageResponse, tags=["Reservations"])
async def delete_reservation(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Delete a reservation record"""
    deleted = await service.delete_reservation(reservation_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return {"success": True, "message": "Deleted successfully"}

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _reservation_to_response(reservation) -> ReservationResponse:
    """Convert Reservation entity to ReservationResponse"""
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        user_id=reservation.user_id,
        guest_name=reservation.guest_name,
        phone_number=reservation.phone_number,
        room_number=reservation.room_number,
        room_type=reservation.room_type,
        check_in=reservation.check_in,
        check_out=reservation.check_out,
        nights=reservation.get_nights(),
        status=reservation.status.value,
        total_price=reservation.total_price,
        created_at=reservation.created_at
    )

def _booking_to_response(result: BookingResult) -> BookingResponse:
    """Convert BookingResult to BookingResponse, raising for unsuccessful outcomes"""
    if result.outcome in (BookingOutcome.NO_AVAILABILITY, BookingOutcome.CONFLICT):
        raise HTTPException(status_code=409, detail=result.message)
    if result.outcome == BookingOutcome.STORE_FAILURE:
        raise HTTPException(status_code=503, detail=result.message)
    return BookingResponse(
        outcome=result.outcome.value,
        message=result.message,
        reservation=_reservation_to_response(result.reservation)
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
