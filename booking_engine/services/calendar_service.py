import os
import json
import asyncio
import datetime
from typing import Any, Dict, List, Optional
import logging
from zoneinfo import ZoneInfo
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from booking_engine.core.config import settings
from booking_engine.core.config_loader import get_calendar_id
from booking_engine.core.errors import ExternalServiceError
from booking_engine.models.db_models import Booking, BusyInterval
from booking_engine.services.interfaces import BusyIntervalSource, CalendarBridge

SCOPES = ['https://www.googleapis.com/auth/calendar']
UTC = ZoneInfo('UTC')

logger = logging.getLogger(__name__)

def get_calendar_service():
    """
    Authenticate and return the Google Calendar service.
    Supports loading credentials from:
    1. GOOGLE_CREDENTIALS_FILE (local development).
    2. GOOGLE_CREDENTIALS_JSON env variable (cloud deployment).
    Returns None if no credentials are configured.
    """
    if os.path.exists(settings.GOOGLE_CREDENTIALS_FILE):
        logger.info(f"🔑 Loading credentials from file: {settings.GOOGLE_CREDENTIALS_FILE}")
        creds = service_account.Credentials.from_service_account_file(
            settings.GOOGLE_CREDENTIALS_FILE, scopes=SCOPES
        )
    elif settings.GOOGLE_CREDENTIALS_JSON:
        logger.info("🔑 Loading credentials from Environment Variable")
        info = json.loads(settings.GOOGLE_CREDENTIALS_JSON)
        creds = service_account.Credentials.from_service_account_info(
            info, scopes=SCOPES
        )
    else:
        logger.warning("⚠️ No Google credentials found (file or env). Calendar enrichment disabled.")
        return None

    logger.info(f'🤖 Service Account Email: {creds.service_account_email}')
    return build('calendar', 'v3', credentials=creds, cache_discovery=False)


def _rfc3339(value: datetime.datetime) -> str:
    return value.astimezone(UTC).isoformat().replace('+00:00', 'Z')


class _GoogleCalendarClient:
    """Shared plumbing: lazy service, per-advisor calendar ids, bounded blocking calls."""

    def __init__(self, advisor_config: Optional[Dict[str, Any]] = None, service=None, timeout: float = None):
        self._advisor_config = advisor_config or {}
        self._service = service
        self.timeout = timeout if timeout is not None else settings.CALENDAR_TIMEOUT_SECONDS

    @property
    def service(self):
        if self._service is None:
            self._service = get_calendar_service()
            if self._service is None:
                raise ExternalServiceError("Google Calendar is not configured")
        return self._service

    def calendar_id(self, advisor_id: str) -> str:
        return get_calendar_id(self._advisor_config, advisor_id)

    async def _run(self, fn, operation: str):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Google Calendar {operation} timed out after {self.timeout}s")
            raise ExternalServiceError(f"Google Calendar {operation} timed out", timeout=True)
        except ExternalServiceError:
            raise
        except HttpError as error:
            logger.error(f'❌ Google API Error ({operation}): {error.status_code} {error.reason}')
            raise ExternalServiceError(f"Google API Error: {error.reason}")
        except Exception as e:
            logger.error(f"❌ Error calling Google Calendar ({operation}): {e}")
            raise ExternalServiceError(f"Google Calendar {operation} failed: {e}")


class GoogleBusyIntervalSource(_GoogleCalendarClient, BusyIntervalSource):
    """Busy periods from the advisor's Google calendar via freebusy.query."""

    async def fetch(self, advisor_id: str, range_start: datetime.datetime, range_end: datetime.datetime) -> List[BusyInterval]:
        calendar_id = self.calendar_id(advisor_id)

        def _query():
            body = {
                "timeMin": _rfc3339(range_start),
                "timeMax": _rfc3339(range_end),
                "items": [{"id": calendar_id}],
            }
            logger.debug(f'🔍 freebusy query on {calendar_id}: {body["timeMin"]} -> {body["timeMax"]}')
            return self.service.freebusy().query(body=body).execute()

        result = await self._run(_query, "freebusy")

        calendar = result.get("calendars", {}).get(calendar_id)
        if calendar is None:
            raise ExternalServiceError(f"Calendar {calendar_id} missing from freebusy response")
        if calendar.get("errors"):
            reasons = ", ".join(e.get("reason", "unknown") for e in calendar["errors"])
            raise ExternalServiceError(f"Calendar {calendar_id} unavailable: {reasons}")

        busy = []
        for block in calendar.get("busy", []):
            try:
                start = datetime.datetime.fromisoformat(block["start"].replace("Z", "+00:00"))
                end = datetime.datetime.fromisoformat(block["end"].replace("Z", "+00:00"))
            except (KeyError, ValueError):
                continue
            if start < end:
                busy.append(BusyInterval(start=start, end=end))
        logger.info(f"📅 {len(busy)} busy blocks for {advisor_id} on {calendar_id}")
        return busy


class GoogleCalendarBridge(_GoogleCalendarClient, CalendarBridge):
    """Mirrors a committed booking into the advisor's Google calendar."""

    async def publish(self, booking: Booking) -> None:
        calendar_id = self.calendar_id(booking.advisor_id)
        event_body = {
            'summary': f"Advisor booking: {booking.package_id}",
            'description': f"Booking {booking.id}\nCustomer: {booking.customer_id}\nDuration: {booking.duration_minutes} minutes",
            'start': {
                'dateTime': _rfc3339(booking.scheduled_at),
                'timeZone': 'UTC',
            },
            'end': {
                'dateTime': _rfc3339(booking.ends_at),
                'timeZone': 'UTC',
            },
        }

        def _create():
            logger.info(f'✏️ Writing booking {booking.id} to calendar {calendar_id}')
            return self.service.events().insert(calendarId=calendar_id, body=event_body).execute()

        event = await self._run(_create, "event insert")
        logger.info(f"📅 Event created: {event.get('htmlLink')}")
