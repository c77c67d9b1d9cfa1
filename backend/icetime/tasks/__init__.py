# backend/icetime/tasks/__init__.py
"""
Celery tasks package for IceTime.

Run a worker with: celery -A icetime.tasks worker -B
"""

from .celery_app import BaseTask, celery_app
from .credit_tasks import expire_credit_batches
from .notification_tasks import deliver_engine_event
from .recurring_tasks import process_due_schedules
from .reminder_tasks import send_daily_reminders

__all__ = [
    "celery_app",
    "BaseTask",
    "deliver_engine_event",
    "expire_credit_batches",
    "process_due_schedules",
    "send_daily_reminders",
]
