import os

# Must be set before booking_engine.core.config builds its settings
os.environ.setdefault("ERROR_LOG_FILE", "")
os.environ.setdefault("SUPABASE_URL", "")
os.environ.setdefault("SUPABASE_KEY", "")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("GOOGLE_CREDENTIALS_FILE", "missing_google_credentials.json")

from datetime import datetime, time
from zoneinfo import ZoneInfo

import pytest

from booking_engine.models.db_models import AvailabilityRule, Weekday
from booking_engine.services.memory_store import InMemoryBookingLedger, InMemoryRuleStore

TZ = ZoneInfo("Europe/Prague")
ADVISOR = "advisor-1"
# 2024-01-01 is a Monday
MONDAY = datetime(2024, 1, 1).date()


def at(hour: int, minute: int = 0, day=MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=TZ)


def rule(start: str, end: str, day: Weekday = Weekday.MONDAY, advisor_id: str = ADVISOR, active: bool = True) -> AvailabilityRule:
    return AvailabilityRule(
        advisor_id=advisor_id,
        day_of_week=day,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        active=active,
    )


@pytest.fixture
def rule_store():
    # Mon 09:00-12:00, the window used by most scenarios
    return InMemoryRuleStore([rule("09:00", "12:00")])


@pytest.fixture
def ledger():
    return InMemoryBookingLedger()


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2023, 12, 31, 8, 0, tzinfo=TZ)
