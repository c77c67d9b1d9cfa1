# backend/icetime/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for IceTime.

Tasks are scheduled using crontab expressions in the rink's timezone.
"""

from typing import Any, Dict

from celery.schedules import crontab

from ..core.config import settings


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    """Periodic engine tasks: recurring materialization, credit expiry, reminders."""
    return {
        # Materialize due recurring schedules into bookings
        "process-recurring-schedules": {
            "task": "icetime.tasks.recurring_tasks.process_due_schedules",
            "schedule": crontab(hour=settings.recurring_sweep_crontab_hour, minute=0),
            "options": {"queue": "scheduling", "priority": 7},
        },
        # Close credit batches past their expiry
        "expire-credit-batches": {
            "task": "icetime.tasks.credit_tasks.expire_credit_batches",
            "schedule": crontab(hour=settings.credit_expiry_crontab_hour, minute=15),
            "options": {"queue": "scheduling", "priority": 5},
        },
        # Remind parents of tomorrow's sessions and expiring credits
        "send-daily-reminders": {
            "task": "icetime.tasks.reminder_tasks.send_daily_reminders",
            "schedule": crontab(hour=settings.reminder_crontab_hour, minute=0),
            "options": {"queue": "notifications", "priority": 5},
        },
    }
