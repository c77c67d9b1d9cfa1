# backend/icetime/tasks/reminder_tasks.py
"""Daily reminders: tomorrow's sessions and credits about to expire."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, Optional

from celery.utils.log import get_task_logger

from ..core.timezone_utils import rink_today
from ..database import SessionLocal
from ..services.booking_service import BookingService
from .celery_app import celery_app

logger = get_task_logger(__name__)


@celery_app.task(name="icetime.tasks.reminder_tasks.send_daily_reminders", max_retries=0)
def send_daily_reminders(as_of: Optional[str] = None) -> Dict[str, int]:
    """
    Queue reminders for the day after ``as_of`` (ISO date, rink today when
    omitted) and warnings for credits expiring soon.

    Not retried: a second run would remind parents twice.
    """
    today = date.fromisoformat(as_of) if as_of else rink_today()
    session = SessionLocal()
    try:
        bookings = BookingService(session)
        reminders = bookings.send_session_reminders(today + timedelta(days=1))
        expiring = bookings.credit_service.warn_expiring()
        stats = {"reminders_sent": reminders, "expiry_warnings_sent": len(expiring)}
        logger.info("Daily reminder stats: %s", stats)
        return stats
    finally:
        session.close()
