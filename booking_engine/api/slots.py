import datetime
from fastapi import APIRouter, Depends, Query

from booking_engine.core.dependencies import get_slot_generator
from booking_engine.models.api_models import ErrorResponse, SlotListResponse, TimeSlotOut
from booking_engine.services.slot_service import SlotGenerator

router = APIRouter()

@router.get("/advisors/{advisor_id}/slots", response_model=SlotListResponse, responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}})
async def list_slots(
    advisor_id: str,
    date: datetime.date = Query(..., description="Calendar day, YYYY-MM-DD"),
    duration: int = Query(..., description="Session length in minutes"),
    generator: SlotGenerator = Depends(get_slot_generator),
):
    result = await generator.generate(advisor_id, date, duration)
    return SlotListResponse(
        advisorId=result.advisor_id,
        date=result.date,
        durationMinutes=result.duration_minutes,
        degraded=result.degraded,
        slots=[TimeSlotOut(start=s.start, end=s.end, available=s.available) for s in result.slots],
    )
