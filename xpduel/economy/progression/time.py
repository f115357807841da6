from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from xpduel.core.config import get_settings


def progression_local_date(now_utc: datetime, timezone_name: str | None = None) -> date:
    """Converts a UTC datetime to the calendar date used for streaks and due dates."""
    resolved = timezone_name or get_settings().progression_timezone
    return now_utc.astimezone(ZoneInfo(resolved)).date()
