from pydantic import BaseModel, Field
from typing import List, Literal
from datetime import datetime

from booking_engine.models.db_models import BookingStatus

# --- Incoming Request Models ---

class CreateBookingRequest(BaseModel):
    advisorId: str = Field(min_length=1)
    packageId: str = Field(min_length=1)
    slotStart: datetime
    duration: int

class UpdateBookingStatusRequest(BaseModel):
    status: BookingStatus

# --- Outgoing Response Models ---

class TimeSlotOut(BaseModel):
    start: datetime
    end: datetime
    available: bool

class SlotListResponse(BaseModel):
    advisorId: str
    date: str
    durationMinutes: int
    degraded: bool
    slots: List[TimeSlotOut]

class BookingCreatedResponse(BaseModel):
    bookingId: str
    scheduledAt: datetime
    status: BookingStatus
    warnings: List[str] = []

class BookingStatusResponse(BaseModel):
    bookingId: str
    status: BookingStatus

class ErrorResponse(BaseModel):
    kind: Literal["Validation", "Conflict", "External", "Internal"]
    message: str
