import time
import pytest
from unittest.mock import MagicMock, patch
from googleapiclient.errors import HttpError

from booking_engine.core.config import settings
from booking_engine.core.errors import ExternalServiceError
from booking_engine.models.db_models import Booking
from booking_engine.services.calendar_service import GoogleBusyIntervalSource, GoogleCalendarBridge

from conftest import ADVISOR, at

ADVISOR_CONFIG = {"advisors": {ADVISOR: {"calendar_id": "advisor1@example.com"}}}


def freebusy_service(response):
    service = MagicMock()
    service.freebusy.return_value.query.return_value.execute.return_value = response
    return service


@pytest.mark.asyncio
async def test_fetch_returns_busy_blocks_of_advisor_calendar():
    service = freebusy_service({
        "calendars": {
            "advisor1@example.com": {
                "busy": [
                    {"start": "2024-01-01T10:00:00Z", "end": "2024-01-01T10:30:00Z"},
                    {"start": "2024-01-01T12:00:00Z", "end": "2024-01-01T12:00:00Z"},  # empty, dropped
                    {"start": "not a date", "end": "2024-01-01T13:00:00Z"},            # malformed, dropped
                ]
            }
        }
    })
    source = GoogleBusyIntervalSource(ADVISOR_CONFIG, service=service)

    busy = await source.fetch(ADVISOR, at(0), at(23))

    assert len(busy) == 1
    assert busy[0].start == at(11)  # 10:00Z is 11:00 Prague
    body = service.freebusy.return_value.query.call_args.kwargs["body"]
    assert body["items"] == [{"id": "advisor1@example.com"}]
    assert body["timeMin"] == "2023-12-31T23:00:00Z"


@pytest.mark.asyncio
async def test_unknown_advisor_uses_default_calendar():
    service = freebusy_service({"calendars": {settings.GOOGLE_CALENDAR_ID: {"busy": []}}})
    source = GoogleBusyIntervalSource(ADVISOR_CONFIG, service=service)

    assert await source.fetch("other-advisor", at(0), at(23)) == []


@pytest.mark.asyncio
async def test_calendar_level_errors_raise():
    service = freebusy_service({
        "calendars": {"advisor1@example.com": {"busy": [], "errors": [{"domain": "global", "reason": "notFound"}]}}
    })
    source = GoogleBusyIntervalSource(ADVISOR_CONFIG, service=service)

    with pytest.raises(ExternalServiceError, match="notFound"):
        await source.fetch(ADVISOR, at(0), at(23))


@pytest.mark.asyncio
async def test_http_error_raises_external_error():
    service = MagicMock()
    service.freebusy.return_value.query.return_value.execute.side_effect = HttpError(
        resp=MagicMock(status=403, reason="Forbidden"),
        content=b'{"error": {"message": "Insufficient permissions"}}',
    )
    source = GoogleBusyIntervalSource(ADVISOR_CONFIG, service=service)

    with pytest.raises(ExternalServiceError) as exc_info:
        await source.fetch(ADVISOR, at(0), at(23))
    assert exc_info.value.timeout is False


@pytest.mark.asyncio
async def test_slow_provider_times_out():
    service = MagicMock()
    service.freebusy.return_value.query.return_value.execute.side_effect = lambda: time.sleep(0.5)
    source = GoogleBusyIntervalSource(ADVISOR_CONFIG, service=service, timeout=0.05)

    with pytest.raises(ExternalServiceError) as exc_info:
        await source.fetch(ADVISOR, at(0), at(23))
    assert exc_info.value.timeout is True


@pytest.mark.asyncio
async def test_missing_credentials_raise_external_error():
    with patch("booking_engine.services.calendar_service.get_calendar_service", return_value=None):
        source = GoogleBusyIntervalSource(ADVISOR_CONFIG)
        with pytest.raises(ExternalServiceError):
            await source.fetch(ADVISOR, at(0), at(23))


@pytest.mark.asyncio
async def test_publish_inserts_event_in_utc():
    service = MagicMock()
    service.events.return_value.insert.return_value.execute.return_value = {"id": "evt-1", "htmlLink": "http://cal"}
    bridge = GoogleCalendarBridge(ADVISOR_CONFIG, service=service)
    booking = Booking(
        id="booking-1", advisor_id=ADVISOR, customer_id="customer-1",
        package_id="career-coaching", scheduled_at=at(11), duration_minutes=45,
    )

    await bridge.publish(booking)

    kwargs = service.events.return_value.insert.call_args.kwargs
    assert kwargs["calendarId"] == "advisor1@example.com"
    assert kwargs["body"]["start"]["dateTime"] == "2024-01-01T10:00:00Z"
    assert kwargs["body"]["end"]["dateTime"] == "2024-01-01T10:45:00Z"
    assert "booking-1" in kwargs["body"]["description"]


@pytest.mark.asyncio
async def test_publish_failure_raises_external_error():
    service = MagicMock()
    service.events.return_value.insert.return_value.execute.side_effect = ConnectionError("reset by peer")
    bridge = GoogleCalendarBridge(ADVISOR_CONFIG, service=service)
    booking = Booking(
        id="booking-1", advisor_id=ADVISOR, customer_id="customer-1",
        package_id="p", scheduled_at=at(11), duration_minutes=45,
    )

    with pytest.raises(ExternalServiceError):
        await bridge.publish(booking)
