"""
Reservation Coordinator

The only writer of new bookings. A reservation never trusts a previously
generated slot list:

1. the requested interval is validated against the advisor's active rules,
2. under the advisor's lock the ledger is re-read for overlapping Booked entries,
3. the insert is left to the ledger's own overlap constraint, which is the
   final arbiter when several processes reserve concurrently.

Once a reservation has entered the critical section it is shielded from
caller cancellation so the ledger never sees a half-finished attempt.
"""

import asyncio
import uuid
import weakref
from datetime import date, datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from booking_engine.core.config import settings
from booking_engine.core.errors import ConflictError, ExternalServiceError, LedgerBusyError, ValidationError
from booking_engine.core.logger import logger
from booking_engine.models.db_models import (
    AvailabilityRule, Booking, BookingStatus, ReservationResult, Weekday, add_minutes
)
from booking_engine.services.interfaces import AvailabilityRuleStore, BookingLedger, CalendarBridge
from booking_engine.services.slot_service import validate_duration

ALLOWED_TRANSITIONS = {
    BookingStatus.BOOKED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
}


class ReservationCoordinator:
    def __init__(
        self,
        rule_store: AvailabilityRuleStore,
        ledger: BookingLedger,
        calendar_bridge: Optional[CalendarBridge] = None,
        tz: Optional[ZoneInfo] = None,
        ledger_timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        publish_timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.rule_store = rule_store
        self.ledger = ledger
        self.calendar_bridge = calendar_bridge
        self.tz = tz or ZoneInfo(settings.TIMEZONE)
        self.ledger_timeout = ledger_timeout if ledger_timeout is not None else settings.LEDGER_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.LEDGER_MAX_RETRIES
        self.retry_backoff = retry_backoff if retry_backoff is not None else settings.LEDGER_RETRY_BACKOFF_SECONDS
        self.publish_timeout = publish_timeout if publish_timeout is not None else settings.CALENDAR_TIMEOUT_SECONDS
        self.clock = clock or (lambda: datetime.now(self.tz))
        # An advisor's lock lives only while some reservation holds or awaits it
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, advisor_id: str) -> asyncio.Lock:
        lock = self._locks.get(advisor_id)
        if lock is None:
            lock = self._locks[advisor_id] = asyncio.Lock()
        return lock

    def _localize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    async def _find_window(self, advisor_id: str, start: datetime, end: datetime) -> Optional[AvailabilityRule]:
        """Active rule whose window on the slot's local day contains the whole interval."""
        day: date = start.date()
        weekday = Weekday.from_date(day)
        for rule in await self.rule_store.get_rules(advisor_id):
            if not rule.active or rule.day_of_week != weekday:
                continue
            window_start = datetime.combine(day, rule.start_time, tzinfo=self.tz)
            window_end = datetime.combine(day, rule.end_time, tzinfo=self.tz)
            if window_start <= start and end <= window_end:
                return rule
        return None

    async def _validate(self, advisor_id: str, customer_id: str, package_id: str,
                        slot_start: datetime, duration_minutes: int) -> datetime:
        if not advisor_id or not customer_id or not package_id:
            raise ValidationError("Advisor, customer and package are required")
        validate_duration(duration_minutes)

        start = self._localize(slot_start)
        end = add_minutes(start, duration_minutes)
        if start < self.clock():
            raise ValidationError("Cannot book a slot in the past")

        rule = await self._find_window(advisor_id, start, end)
        if rule is None:
            raise ValidationError(
                f"{start.strftime('%A %Y-%m-%d %H:%M')} ({duration_minutes} min) is outside the advisor's availability"
            )
        return start

    async def _ledger_call(self, operation: str, coro_factory):
        """
        Run a ledger call under the ledger timeout, retrying contention a bounded number of times.

        Contention that outlasts the retry budget is reported as ConflictError.
        LedgerUnavailableError and ConflictError propagate untouched.
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(coro_factory(), timeout=self.ledger_timeout)
            except (asyncio.TimeoutError, LedgerBusyError) as e:
                logger.warning(f"⏳ Ledger {operation} contended (attempt {attempt}/{self.max_retries}): {e!r}")
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_backoff * attempt)
        raise ConflictError("Slot no longer available (booking store busy, please retry)")

    async def _commit(self, booking: Booking) -> Booking:
        existing = await self._ledger_call(
            "read",
            lambda: self.ledger.get_bookings(booking.advisor_id, booking.scheduled_at, booking.ends_at),
        )
        if any(b.status == BookingStatus.BOOKED for b in existing):
            logger.info(f"⛔ {booking.advisor_id} already booked at {booking.scheduled_at.isoformat()}")
            raise ConflictError()

        inserted_once = False

        async def _insert():
            nonlocal inserted_once
            # A previous attempt may have landed before its timeout fired
            if inserted_once:
                landed = await self.ledger.get_booking(booking.id)
                if landed is not None:
                    return landed
            inserted_once = True
            return await self.ledger.insert_booking(booking)

        return await self._ledger_call("insert", _insert)

    async def reserve(
        self,
        advisor_id: str,
        customer_id: str,
        package_id: str,
        slot_start: datetime,
        duration_minutes: int,
    ) -> ReservationResult:
        logger.info(f"📥 Reservation request - advisor {advisor_id}, start {slot_start}, {duration_minutes} min")
        start = await self._validate(advisor_id, customer_id, package_id, slot_start, duration_minutes)

        booking = Booking(
            id=str(uuid.uuid4()),
            advisor_id=advisor_id,
            customer_id=customer_id,
            package_id=package_id,
            scheduled_at=start,
            duration_minutes=duration_minutes,
            status=BookingStatus.BOOKED,
        )

        lock = self._lock_for(advisor_id)
        await lock.acquire()
        # The lock is released when the commit finishes, not when the caller stops waiting
        commit = asyncio.ensure_future(self._commit(booking))
        commit.add_done_callback(self._commit_finished(lock, booking))
        committed = await asyncio.shield(commit)

        logger.info(f"✅ Booking {committed.id} committed for {advisor_id} at {committed.scheduled_at.isoformat()}")
        warnings = await self._publish(committed)
        return ReservationResult(booking=committed, warnings=warnings)

    @staticmethod
    def _commit_finished(lock: asyncio.Lock, booking: Booking):
        def _done(task: asyncio.Future):
            lock.release()
            if task.cancelled():
                return
            # Retrieved here too, the caller may have stopped waiting
            exc = task.exception()
            if exc is not None:
                logger.info(f"⛔ Commit of {booking.id} for {booking.advisor_id} ended with {exc!r}")
        return _done

    async def _publish(self, booking: Booking):
        if self.calendar_bridge is None:
            return []
        try:
            await asyncio.wait_for(self.calendar_bridge.publish(booking), timeout=self.publish_timeout)
            return []
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Calendar publish of {booking.id} timed out; booking stands")
            return ["Booking confirmed, but the calendar copy timed out and may be missing."]
        except ExternalServiceError as e:
            logger.warning(f"⚠️ Calendar publish of {booking.id} failed: {e.message}; booking stands")
            return [f"Booking confirmed, but the calendar copy could not be created: {e.message}"]

    async def transition(self, booking_id: str, status: BookingStatus, customer_id: Optional[str] = None) -> Booking:
        """
        Lifecycle move of one booking. With a customer_id only that customer's
        bookings are visible, anything else reads as unknown.
        """
        booking = await self.ledger.get_booking(booking_id)
        if booking is None or (customer_id is not None and booking.customer_id != customer_id):
            raise ValidationError(f"Unknown booking {booking_id}")
        if status not in ALLOWED_TRANSITIONS.get(booking.status, set()):
            raise ValidationError(f"Cannot move booking from {booking.status.value} to {status.value}")

        updated = await self.ledger.update_status(booking_id, status)
        logger.info(f"🔁 Booking {booking_id}: {booking.status.value} -> {status.value}")
        return updated
