from supabase import create_async_client, AsyncClient
from postgrest.exceptions import APIError
import httpx
from booking_engine.core.config import settings
from booking_engine.core.errors import ConflictError, LedgerBusyError, LedgerUnavailableError, ValidationError
from booking_engine.models.db_models import AvailabilityRule, Booking, BookingStatus
from booking_engine.services.interfaces import AvailabilityRuleStore, BookingLedger
import logging
from datetime import datetime, time
from typing import List, Optional

logger = logging.getLogger("booking_engine")

# Postgres SQLSTATEs surfaced by PostgREST
CONFLICT_CODES = {"23P01", "23505"}  # exclusion_violation, unique_violation
BUSY_CODES = {"40001", "40P01", "55P03", "57014"}  # serialization, deadlock, lock_not_available, query_canceled


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _row_to_booking(row: dict) -> Booking:
    return Booking(
        id=str(row['id']),
        advisor_id=str(row['advisor_id']),
        customer_id=str(row['customer_id']),
        package_id=str(row['package_id']),
        scheduled_at=_parse_ts(row['scheduled_at']),
        duration_minutes=row['duration_minutes'],
        status=BookingStatus(row['status']),
        created_at=_parse_ts(row['created_at']) if row.get('created_at') else datetime.now(),
    )


def _row_to_rule(row: dict) -> AvailabilityRule:
    return AvailabilityRule(
        id=row.get('id'),
        advisor_id=str(row['advisor_id']),
        day_of_week=row['day_of_week'].lower(),
        start_time=time.fromisoformat(row['start_time']),
        end_time=time.fromisoformat(row['end_time']),
        active=row.get('is_active', True),
    )


class DBService(AvailabilityRuleStore, BookingLedger):
    """
    Supabase-backed rule store and booking ledger.

    The `bookings` table carries an exclusion constraint (see sql/schema.sql),
    so a concurrent overlapping insert from any process is rejected by
    Postgres and reported here as ConflictError.
    """
    _instance = None
    _client: AsyncClient = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DBService, cls).__new__(cls)
            # Async client is created on first usage
        return cls._instance

    async def get_client(self) -> AsyncClient:
        if not self._client:
            if not (settings.SUPABASE_URL and settings.SUPABASE_KEY):
                logger.warning("⚠️ Supabase credentials missing")
                raise LedgerUnavailableError("Booking store is not configured")
            try:
                self._client = await create_async_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
                logger.info("✅ Supabase Async client initialized")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Supabase Async: {e}")
                raise LedgerUnavailableError(f"Booking store unreachable: {e}")
        return self._client

    def _translate(self, exc: Exception, operation: str) -> Exception:
        if isinstance(exc, APIError):
            if exc.code in CONFLICT_CODES:
                return ConflictError()
            if exc.code in BUSY_CODES:
                logger.warning(f"⏳ Ledger contention during {operation}: {exc.code}")
                return LedgerBusyError(f"Ledger busy ({exc.code})")
            logger.error(f"❌ DB Error ({operation}): {exc.code} {exc.message}")
            return LedgerUnavailableError(f"Booking store rejected {operation}: {exc.message}")
        if isinstance(exc, httpx.TimeoutException):
            return LedgerBusyError(f"Ledger timed out during {operation}")
        logger.error(f"❌ DB Error ({operation}): {exc}")
        return LedgerUnavailableError(f"Booking store unreachable during {operation}")

    async def get_rules(self, advisor_id: str) -> List[AvailabilityRule]:
        client = await self.get_client()
        try:
            response = await client.table('advisor_availability')\
                .select("*")\
                .eq('advisor_id', advisor_id)\
                .order('id', desc=False)\
                .execute()
        except (APIError, httpx.HTTPError) as e:
            raise self._translate(e, "get_rules") from e
        return [_row_to_rule(row) for row in response.data or []]

    async def get_bookings(self, advisor_id: str, range_start: datetime, range_end: datetime) -> List[Booking]:
        client = await self.get_client()
        try:
            response = await client.table('bookings')\
                .select("*")\
                .eq('advisor_id', advisor_id)\
                .lt('scheduled_at', range_end.isoformat())\
                .gt('ends_at', range_start.isoformat())\
                .order('scheduled_at', desc=False)\
                .execute()
        except (APIError, httpx.HTTPError) as e:
            raise self._translate(e, "get_bookings") from e
        return [_row_to_booking(row) for row in response.data or []]

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        client = await self.get_client()
        try:
            response = await client.table('bookings').select("*").eq('id', booking_id).limit(1).execute()
        except (APIError, httpx.HTTPError) as e:
            raise self._translate(e, "get_booking") from e
        if response.data:
            return _row_to_booking(response.data[0])
        return None

    async def insert_booking(self, booking: Booking) -> Booking:
        client = await self.get_client()
        booking_data = {
            'id': booking.id,
            'advisor_id': booking.advisor_id,
            'customer_id': booking.customer_id,
            'package_id': booking.package_id,
            'scheduled_at': booking.scheduled_at.isoformat(),
            'ends_at': booking.ends_at.isoformat(),
            'duration_minutes': booking.duration_minutes,
            'status': booking.status.value,
        }
        try:
            response = await client.table('bookings').insert(booking_data).execute()
        except (APIError, httpx.HTTPError) as e:
            raise self._translate(e, "insert_booking") from e

        if not response.data:
            raise LedgerUnavailableError("Booking store returned no row for insert")
        logger.info(f"✅ Booking {booking.id} written to DB for advisor {booking.advisor_id}")
        return _row_to_booking(response.data[0])

    async def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        client = await self.get_client()
        try:
            response = await client.table('bookings').update({'status': status.value}).eq('id', booking_id).execute()
        except (APIError, httpx.HTTPError) as e:
            raise self._translate(e, "update_status") from e
        if not response.data:
            raise ValidationError(f"Unknown booking {booking_id}")
        return _row_to_booking(response.data[0])

db_service = DBService()
