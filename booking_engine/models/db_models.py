from typing import Optional, List
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from pydantic import BaseModel, Field, model_validator


def add_minutes(value: datetime, minutes: int) -> datetime:
    """Elapsed-time addition, exact across DST changes of the value's zone."""
    if value.tzinfo is None:
        return value + timedelta(minutes=minutes)
    return (value.astimezone(timezone.utc) + timedelta(minutes=minutes)).astimezone(value.tzinfo)


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, day) -> "Weekday":
        return list(cls)[day.weekday()]


class BookingStatus(str, Enum):
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AvailabilityRule(BaseModel):
    id: Optional[int] = Field(default=None)
    advisor_id: str
    day_of_week: Weekday
    start_time: time
    end_time: time
    active: bool = True

    @model_validator(mode="after")
    def _check_window(self):
        if self.start_time >= self.end_time:
            raise ValueError(f"start_time {self.start_time} must be before end_time {self.end_time}")
        return self


class BusyInterval(BaseModel):
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_interval(self):
        if self.start >= self.end:
            raise ValueError("busy interval must end after it starts")
        return self

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


class Booking(BaseModel):
    id: str
    advisor_id: str
    customer_id: str
    package_id: str
    scheduled_at: datetime
    duration_minutes: int = Field(gt=0)
    status: BookingStatus = BookingStatus.BOOKED
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def ends_at(self) -> datetime:
        return add_minutes(self.scheduled_at, self.duration_minutes)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Half-open intervals: back-to-back bookings do not collide
        return self.scheduled_at < end and self.ends_at > start


class TimeSlot(BaseModel):
    start: datetime
    end: datetime
    available: bool


class SlotQueryResult(BaseModel):
    advisor_id: str
    date: str
    duration_minutes: int
    slots: List[TimeSlot]
    degraded: bool = False


class ReservationResult(BaseModel):
    booking: Booking
    warnings: List[str] = Field(default_factory=list)
