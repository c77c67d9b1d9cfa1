# backend/icetime/tasks/notification_tasks.py
"""
Notification hand-off for engine events.

The booking engine only decides *that* a parent should hear about an event;
rendering and delivery belong to the notification collaborator consuming
this queue.
"""

from __future__ import annotations

from typing import Any, Dict

from celery.utils.log import get_task_logger

from .celery_app import celery_app

logger = get_task_logger(__name__)


@celery_app.task(
    name="icetime.tasks.notification_tasks.deliver_engine_event",
    max_retries=0,
    queue="notifications",
)
def deliver_engine_event(event_type: str, payload: Dict[str, Any]) -> str:
    """Record an engine event for the notification collaborator."""
    logger.info(
        "Notification event %s account=%s",
        event_type,
        payload.get("account_id", "-"),
        extra={"event_type": event_type, "payload": payload},
    )
    return event_type
