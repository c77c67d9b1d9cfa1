# backend/icetime/tasks/recurring_tasks.py
"""Periodic materialization of recurring schedules."""

from __future__ import annotations

from datetime import date
from typing import Dict, Optional

from celery.utils.log import get_task_logger

from ..database import SessionLocal
from ..services.recurring_schedule_service import RecurringScheduleService
from .celery_app import celery_app

logger = get_task_logger(__name__)


@celery_app.task(name="icetime.tasks.recurring_tasks.process_due_schedules", max_retries=0)
def process_due_schedules(as_of: Optional[str] = None) -> Dict[str, int]:
    """
    Run one sweep over due recurring schedules.

    ``as_of`` is an ISO date; the rink's current date when omitted. Each
    schedule commits on its own, so the task is not retried as a whole.
    """
    session = SessionLocal()
    try:
        service = RecurringScheduleService(session)
        stats = service.process_due(date.fromisoformat(as_of) if as_of else None)
        logger.info("Recurring sweep stats: %s", stats.to_dict())
        return stats.to_dict()
    finally:
        session.close()
