from typing import Optional
from fastapi import APIRouter, Depends, HTTPException

from booking_engine.core.dependencies import get_reservation_coordinator
from booking_engine.core.security import CurrentUser, current_user, require_user, verify_secret_token
from booking_engine.models.api_models import (
    BookingCreatedResponse, BookingStatusResponse, CreateBookingRequest, ErrorResponse, UpdateBookingStatusRequest
)
from booking_engine.models.db_models import BookingStatus
from booking_engine.services.reservation_service import ReservationCoordinator

router = APIRouter()

ERRORS = {
    401: {"description": "No signed-in customer"},
    409: {"model": ErrorResponse, "description": "Slot no longer available"},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse, "description": "Booking store unreachable"},
}

@router.post("/bookings", status_code=201, response_model=BookingCreatedResponse, responses=ERRORS)
async def create_booking(
    req: CreateBookingRequest,
    user: CurrentUser = Depends(require_user),
    coordinator: ReservationCoordinator = Depends(get_reservation_coordinator),
):
    # customerId always comes from the session, never from the body
    result = await coordinator.reserve(req.advisorId, user.id, req.packageId, req.slotStart, req.duration)
    return BookingCreatedResponse(
        bookingId=result.booking.id,
        scheduledAt=result.booking.scheduled_at,
        status=result.booking.status,
        warnings=result.warnings,
    )

@router.patch(
    "/bookings/{booking_id}",
    response_model=BookingStatusResponse,
    responses={
        401: {"description": "Neither a signed-in customer nor a back-office caller"},
        403: {"description": "Customers may only cancel"},
        422: {"model": ErrorResponse},
    },
)
async def update_booking_status(
    booking_id: str,
    req: UpdateBookingStatusRequest,
    back_office: bool = Depends(verify_secret_token),
    user: Optional[CurrentUser] = Depends(current_user),
    coordinator: ReservationCoordinator = Depends(get_reservation_coordinator),
):
    """
    Back-office callers (X-Secret-Token) may move any booking.
    A signed-in customer may only cancel one of their own.
    """
    owner = None
    if not back_office:
        if user is None:
            raise HTTPException(status_code=401, detail="Sign in to manage a booking")
        if req.status != BookingStatus.CANCELLED:
            raise HTTPException(status_code=403, detail="Customers may only cancel their bookings")
        owner = user.id

    booking = await coordinator.transition(booking_id, req.status, customer_id=owner)
    return BookingStatusResponse(bookingId=booking.id, status=booking.status)
