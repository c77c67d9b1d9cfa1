"""
Default engine event listeners.

- Notifications: engine events parents care about are handed to the Celery
  notification task (fire-and-forget).
- Occupancy broadcast: ``OccupancyChanged`` is published on a Redis channel
  so booking screens update without refetching every slot.

Both are off unless enabled in settings, and neither may fail the engine
operation that produced the event.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Optional

from redis import Redis

from ..core.config import settings
from .booking_events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    CreditsExpiring,
    CreditsLow,
    EngineEvent,
    InsufficientCredits,
    OccupancyChanged,
    PairingDissolved,
    PairingFound,
    RecurringBookingSkipped,
    RecurringSchedulePaused,
    ScheduleChangeApplied,
    SessionReminder,
    register_listener,
)

logger = logging.getLogger(__name__)

NOTIFIABLE_EVENTS = (
    BookingCreated,
    BookingConfirmed,
    BookingCancelled,
    CreditsLow,
    CreditsExpiring,
    InsufficientCredits,
    PairingFound,
    PairingDissolved,
    RecurringBookingSkipped,
    RecurringSchedulePaused,
    ScheduleChangeApplied,
    SessionReminder,
)

NOTIFICATION_TASK = "icetime.tasks.notification_tasks.deliver_engine_event"

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
            client.ping()
        except Exception as exc:
            logger.warning("occupancy_broadcast_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def reset_redis_client() -> None:
    global _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        _SYNC_REDIS = None


def publish_occupancy(event: EngineEvent) -> None:
    """Publish slot occupancy changes to the configured Redis channel."""
    if not isinstance(event, OccupancyChanged) or not settings.occupancy_broadcast_enabled:
        return
    client = _get_sync_redis()
    if client is None:
        return
    message = json.dumps(event.model_dump(mode="json"))
    try:
        client.publish(settings.occupancy_channel, message)
    except Exception as exc:
        logger.warning(
            "occupancy_broadcast_failed",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )


def forward_notification(event: EngineEvent) -> None:
    """Queue a notification delivery for events parents are told about."""
    if not isinstance(event, NOTIFIABLE_EVENTS) or not settings.notifications_enabled:
        return
    from ..tasks.celery_app import celery_app

    celery_app.send_task(
        NOTIFICATION_TASK,
        args=(event.event_type, event.model_dump(mode="json")),
        queue="notifications",
    )


def register_default_listeners() -> None:
    """Attach the notification and occupancy listeners (idempotent)."""
    register_listener(forward_notification)
    register_listener(publish_occupancy)
