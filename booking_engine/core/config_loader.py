import json
import os
import logging
from datetime import time
from typing import Dict, Any, List

from booking_engine.core.config import settings
from booking_engine.models.db_models import AvailabilityRule, Weekday

logger = logging.getLogger("booking_engine")


def load_advisor_config(path: str = None) -> Dict[str, Any]:
    """
    Loads advisor configuration (calendar ids, development availability) from JSON file.
    Raises FileNotFoundError if config is missing.
    Returns: Dict containing config.
    """
    path = path or settings.ADVISOR_CONFIG_PATH
    if not os.path.exists(path):
        logger.critical(f"❌ Advisor config '{path}' not found!")
        raise FileNotFoundError(f"Configuration file not found at {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = json.load(f)
            logger.info(f"✅ Advisor config loaded ({len(config.get('advisors', {}))} advisors)")
            return config
    except json.JSONDecodeError as e:
        logger.critical(f"❌ Invalid JSON in advisor config: {e}")
        raise ValueError(f"Invalid JSON in config file: {e}")


def get_calendar_id(config: Dict[str, Any], advisor_id: str) -> str:
    """
    Returns the Google calendar id mirroring this advisor, falling back to GOOGLE_CALENDAR_ID.
    """
    advisor = config.get("advisors", {}).get(advisor_id) or {}
    return advisor.get("calendar_id") or settings.GOOGLE_CALENDAR_ID


def rules_from_config(config: Dict[str, Any]) -> List[AvailabilityRule]:
    """
    Builds AvailabilityRule records from the 'availability' section of every advisor.

    Format per advisor:
        "availability": {"monday": [{"start": "09:00", "end": "12:00"}], "sunday": null}
    A window may carry "active": false to keep it in the file but out of the slot list.
    """
    rules = []
    for advisor_id, advisor in config.get("advisors", {}).items():
        for day_name, windows in (advisor.get("availability") or {}).items():
            for window in windows or []:
                rules.append(AvailabilityRule(
                    id=len(rules) + 1,
                    advisor_id=advisor_id,
                    day_of_week=Weekday(day_name.lower()),
                    start_time=time.fromisoformat(window["start"]),
                    end_time=time.fromisoformat(window["end"]),
                    active=window.get("active", True),
                ))
    return rules
