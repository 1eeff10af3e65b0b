"""
Wiring of stores and adapters for the HTTP layer.

Supabase is used when configured, otherwise in-process stores seeded from the
advisor config file. Google Calendar enrichment is present only when
service-account credentials exist.
"""

import os
from functools import lru_cache
from zoneinfo import ZoneInfo

from booking_engine.core.config import settings
from booking_engine.core.config_loader import load_advisor_config, rules_from_config
from booking_engine.core.logger import logger
from booking_engine.services.calendar_service import GoogleBusyIntervalSource, GoogleCalendarBridge
from booking_engine.services.db_service import db_service
from booking_engine.services.memory_store import InMemoryBookingLedger, InMemoryRuleStore
from booking_engine.services.reservation_service import ReservationCoordinator
from booking_engine.services.slot_service import SlotGenerator


@lru_cache
def get_advisor_config() -> dict:
    if not os.path.exists(settings.ADVISOR_CONFIG_PATH):
        logger.warning(f"⚠️ No advisor config at {settings.ADVISOR_CONFIG_PATH}, using defaults")
        return {}
    return load_advisor_config(settings.ADVISOR_CONFIG_PATH)


@lru_cache
def get_stores():
    if settings.SUPABASE_URL and settings.SUPABASE_KEY:
        return db_service, db_service
    logger.warning("⚠️ Supabase not configured, running on in-process stores (development mode)")
    return InMemoryRuleStore(rules_from_config(get_advisor_config())), InMemoryBookingLedger()


def _google_configured() -> bool:
    return os.path.exists(settings.GOOGLE_CREDENTIALS_FILE) or bool(settings.GOOGLE_CREDENTIALS_JSON)


@lru_cache
def get_slot_generator() -> SlotGenerator:
    rule_store, ledger = get_stores()
    busy_source = GoogleBusyIntervalSource(get_advisor_config()) if _google_configured() else None
    return SlotGenerator(rule_store, ledger, busy_source=busy_source, tz=ZoneInfo(settings.TIMEZONE))


@lru_cache
def get_reservation_coordinator() -> ReservationCoordinator:
    rule_store, ledger = get_stores()
    bridge = GoogleCalendarBridge(get_advisor_config()) if _google_configured() else None
    return ReservationCoordinator(rule_store, ledger, calendar_bridge=bridge, tz=ZoneInfo(settings.TIMEZONE))
