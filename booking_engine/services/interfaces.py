"""
Abstract interfaces for the collaborators of the slot generator and the
reservation coordinator.

The engine only ever talks to these contracts; Supabase, Google Calendar and
the in-process stores are interchangeable implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from booking_engine.models.db_models import AvailabilityRule, Booking, BookingStatus, BusyInterval


class AvailabilityRuleStore(ABC):
    """Read access to advisors' recurring weekly availability."""

    @abstractmethod
    async def get_rules(self, advisor_id: str) -> List[AvailabilityRule]:
        """All rules of the advisor (active or not), in authored order."""
        pass


class BookingLedger(ABC):
    """Authoritative record of reservations."""

    @abstractmethod
    async def get_bookings(self, advisor_id: str, range_start: datetime, range_end: datetime) -> List[Booking]:
        """Bookings of any status whose interval overlaps [range_start, range_end)."""
        pass

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        pass

    @abstractmethod
    async def insert_booking(self, booking: Booking) -> Booking:
        """
        Persist a new booking.

        Must reject, with ConflictError, a Booked entry overlapping another
        Booked entry of the same advisor. This check is the final arbiter;
        callers holding their own lock still rely on it.
        """
        pass

    @abstractmethod
    async def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        pass


class BusyIntervalSource(ABC):
    """External calendar busy periods. Best effort."""

    @abstractmethod
    async def fetch(self, advisor_id: str, range_start: datetime, range_end: datetime) -> List[BusyInterval]:
        """Raises ExternalServiceError on network, auth or timeout failure."""
        pass


class CalendarBridge(ABC):
    """Mirrors committed bookings into an external calendar."""

    @abstractmethod
    async def publish(self, booking: Booking) -> None:
        """Raises ExternalServiceError when the provider cannot be reached or rejects the event."""
        pass
