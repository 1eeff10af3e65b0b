"""
In-process rule store and ledger.

Used when no Supabase credentials are configured and throughout the tests.
"""

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from booking_engine.core.errors import ConflictError, ValidationError
from booking_engine.core.logger import logger
from booking_engine.models.db_models import AvailabilityRule, Booking, BookingStatus
from booking_engine.services.interfaces import AvailabilityRuleStore, BookingLedger


class InMemoryRuleStore(AvailabilityRuleStore):
    def __init__(self, rules: Iterable[AvailabilityRule] = ()):
        self._rules: List[AvailabilityRule] = list(rules)

    def add_rule(self, rule: AvailabilityRule) -> AvailabilityRule:
        self._rules.append(rule)
        return rule

    async def get_rules(self, advisor_id: str) -> List[AvailabilityRule]:
        return [r for r in self._rules if r.advisor_id == advisor_id]


class InMemoryBookingLedger(BookingLedger):
    def __init__(self):
        self._bookings: Dict[str, Booking] = {}
        # Guards check-and-insert so the ledger itself rejects overlaps
        self._lock = threading.Lock()

    def _booked_overlapping(self, advisor_id: str, start: datetime, end: datetime) -> List[Booking]:
        return [
            b for b in self._bookings.values()
            if b.advisor_id == advisor_id
            and b.status == BookingStatus.BOOKED
            and b.overlaps(start, end)
        ]

    async def get_bookings(self, advisor_id: str, range_start: datetime, range_end: datetime) -> List[Booking]:
        with self._lock:
            found = [
                b for b in self._bookings.values()
                if b.advisor_id == advisor_id and b.overlaps(range_start, range_end)
            ]
        return sorted(found, key=lambda b: b.scheduled_at)

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            return self._bookings.get(booking_id)

    async def insert_booking(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.id in self._bookings:
                raise ConflictError(f"Booking {booking.id} already exists")
            if booking.status == BookingStatus.BOOKED:
                clashing = self._booked_overlapping(booking.advisor_id, booking.scheduled_at, booking.ends_at)
                if clashing:
                    logger.info(f"⛔ Ledger rejected {booking.scheduled_at.isoformat()} for {booking.advisor_id} (clashes with {clashing[0].id})")
                    raise ConflictError()
            self._bookings[booking.id] = booking
        return booking

    async def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                raise ValidationError(f"Unknown booking {booking_id}")
            updated = booking.model_copy(update={"status": status})
            self._bookings[booking_id] = updated
        return updated
