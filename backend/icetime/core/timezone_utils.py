"""
Timezone utilities for the booking engine.

Sessions are scheduled in the rink's local time; comparisons against "now"
are always done on timezone-aware datetimes.
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz

from .config import settings


def get_rink_timezone() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.timezone)


def session_start(session_date: date, start_time: time) -> datetime:
    """Return the aware start datetime of a session held at the rink."""
    return get_rink_timezone().localize(datetime.combine(session_date, start_time))


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def rink_today(now: Optional[datetime] = None) -> date:
    """Today's date at the rink."""
    current = ensure_aware(now or utcnow())
    return current.astimezone(get_rink_timezone()).date()


def hours_until(start: datetime, now: datetime) -> float:
    return (ensure_aware(start) - ensure_aware(now)).total_seconds() / 3600
