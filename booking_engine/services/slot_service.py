"""
Slot Generation Service

Builds the bookable time slots of one advisor for one day from:
- the advisor's active weekly availability rules
- Booked entries of the ledger
- busy periods of the external calendar (optional enrichment)

Read-only: never takes locks, never writes. The binding check happens in
the reservation coordinator.
"""

import asyncio
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from booking_engine.core.config import settings
from booking_engine.core.errors import ExternalServiceError, LedgerBusyError, LedgerUnavailableError, ValidationError
from booking_engine.core.logger import logger
from booking_engine.models.db_models import (
    AvailabilityRule, Booking, BookingStatus, BusyInterval, SlotQueryResult, TimeSlot, Weekday
)
from booking_engine.services.interfaces import AvailabilityRuleStore, BookingLedger, BusyIntervalSource


def validate_duration(duration_minutes: int) -> None:
    if not isinstance(duration_minutes, int) or isinstance(duration_minutes, bool):
        raise ValidationError("Duration must be a whole number of minutes")
    if duration_minutes <= 0:
        raise ValidationError("Duration must be positive")
    if duration_minutes > settings.MAX_DURATION_MINUTES:
        raise ValidationError(f"Duration may not exceed {settings.MAX_DURATION_MINUTES} minutes")


def day_bounds(day: date, tz: ZoneInfo):
    """[local midnight, next local midnight) of the given calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def active_rules_for_day(rules: List[AvailabilityRule], day: date) -> List[AvailabilityRule]:
    weekday = Weekday.from_date(day)
    return [r for r in rules if r.active and r.day_of_week == weekday]


def enumerate_rule_slots(rule: AvailabilityRule, day: date, duration_minutes: int, tz: ZoneInfo):
    """
    Slot boundaries ruleStart, ruleStart+d, ruleStart+2d, ... while start+d <= ruleEnd.

    A remainder shorter than the duration is discarded. Stepping happens in UTC
    so every slot lasts exactly the duration, DST transitions included.
    """
    step = timedelta(minutes=duration_minutes)
    window_end = datetime.combine(day, rule.end_time, tzinfo=tz).astimezone(timezone.utc)
    current = datetime.combine(day, rule.start_time, tzinfo=tz).astimezone(timezone.utc)
    while current + step <= window_end:
        yield current.astimezone(tz), (current + step).astimezone(tz)
        current += step


class SlotGenerator:
    def __init__(
        self,
        rule_store: AvailabilityRuleStore,
        ledger: BookingLedger,
        busy_source: Optional[BusyIntervalSource] = None,
        tz: Optional[ZoneInfo] = None,
        busy_timeout: Optional[float] = None,
        ledger_timeout: Optional[float] = None,
    ):
        self.rule_store = rule_store
        self.ledger = ledger
        self.busy_source = busy_source
        self.tz = tz or ZoneInfo(settings.TIMEZONE)
        self.busy_timeout = busy_timeout if busy_timeout is not None else settings.CALENDAR_TIMEOUT_SECONDS
        self.ledger_timeout = ledger_timeout if ledger_timeout is not None else settings.LEDGER_TIMEOUT_SECONDS

    async def _fetch_busy(self, advisor_id: str, range_start: datetime, range_end: datetime):
        """
        Returns (busy intervals, degraded).

        A missing source is not degradation: there is simply nothing to enrich with.
        A failing or slow source is, and its periods are treated as unknown.
        """
        if self.busy_source is None:
            return [], False
        try:
            busy = await asyncio.wait_for(
                self.busy_source.fetch(advisor_id, range_start, range_end),
                timeout=self.busy_timeout,
            )
            return list(busy), False
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Busy calendar for {advisor_id} timed out, serving ledger-only slots")
            return [], True
        except ExternalServiceError as e:
            logger.warning(f"⚠️ Busy calendar for {advisor_id} failed ({e.message}), serving ledger-only slots")
            return [], True
        except Exception as e:
            logger.opt(exception=e).warning(f"⚠️ Busy calendar for {advisor_id} crashed, serving ledger-only slots")
            return [], True

    async def _read_bookings(self, advisor_id: str, range_start: datetime, range_end: datetime):
        """
        Ledger read under the ledger timeout. Reads are never retried here:
        a slow or contended ledger is reported as unavailable, not as a conflict.
        """
        try:
            return await asyncio.wait_for(
                self.ledger.get_bookings(advisor_id, range_start, range_end),
                timeout=self.ledger_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"❌ Ledger read for {advisor_id} timed out after {self.ledger_timeout}s")
            raise LedgerUnavailableError("Booking store did not answer in time", timeout=True)
        except LedgerBusyError as e:
            logger.error(f"❌ Ledger read for {advisor_id} failed: {e.message}")
            raise LedgerUnavailableError(f"Booking store busy: {e.message}")

    async def generate(self, advisor_id: str, day: date, duration_minutes: int) -> SlotQueryResult:
        validate_duration(duration_minutes)
        if not advisor_id:
            raise ValidationError("Advisor id is required")

        rules = active_rules_for_day(await self.rule_store.get_rules(advisor_id), day)
        range_start, range_end = day_bounds(day, self.tz)

        if rules:
            bookings = await self._read_bookings(advisor_id, range_start, range_end)
            busy, degraded = await self._fetch_busy(advisor_id, range_start, range_end)
        else:
            bookings, busy, degraded = [], [], False

        booked = [b for b in bookings if b.status == BookingStatus.BOOKED]
        slots = self._build_slots(rules, day, duration_minutes, booked, busy)

        logger.info(
            f"🗓️ {advisor_id} {day.isoformat()} ({duration_minutes} min): "
            f"{sum(s.available for s in slots)}/{len(slots)} free{' [degraded]' if degraded else ''}"
        )
        return SlotQueryResult(
            advisor_id=advisor_id,
            date=day.isoformat(),
            duration_minutes=duration_minutes,
            slots=slots,
            degraded=degraded,
        )

    def _build_slots(
        self,
        rules: List[AvailabilityRule],
        day: date,
        duration_minutes: int,
        booked: List[Booking],
        busy: List[BusyInterval],
    ) -> List[TimeSlot]:
        # Overlapping rules are enumerated independently, never merged
        slots = []
        for rule in rules:
            for start, end in enumerate_rule_slots(rule, day, duration_minutes, self.tz):
                taken = any(b.overlaps(start, end) for b in booked) or any(i.overlaps(start, end) for i in busy)
                slots.append(TimeSlot(start=start, end=end, available=not taken))
        return slots
