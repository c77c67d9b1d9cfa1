from __future__ import annotations

from datetime import date
import json
from unittest.mock import MagicMock

import pytest

from icetime.core.config import settings
from icetime.events import listeners
from icetime.events.booking_events import (
    BookingCreated,
    CreditsLow,
    EngineEvents,
    OccupancyChanged,
    SessionReminder,
    emit,
)


def _occupancy() -> OccupancyChanged:
    return OccupancyChanged(
        pool="group",
        day_of_week="tuesday",
        start_time="16:30",
        session_date=date(2026, 3, 3),
        booked=4,
        capacity=6,
    )


@pytest.fixture(autouse=True)
def _reset_redis():
    listeners.reset_redis_client()
    yield
    listeners.reset_redis_client()


class TestDispatch:
    def test_failing_listener_does_not_break_dispatch(self) -> None:
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        EngineEvents.register(broken)
        EngineEvents.register(seen.append)

        event = emit(CreditsLow(account_id="parent-1", balance=2, threshold=3))

        assert seen == [event]
        assert event.event_type == "CreditsLow"

    def test_register_is_idempotent(self) -> None:
        listeners.register_default_listeners()
        listeners.register_default_listeners()

        assert len(EngineEvents.listeners()) == 2


class TestOccupancyBroadcast:
    def test_publishes_json_when_enabled(self, monkeypatch) -> None:
        client = MagicMock()
        monkeypatch.setattr(settings, "occupancy_broadcast_enabled", True)
        monkeypatch.setattr(listeners, "_get_sync_redis", lambda: client)

        listeners.publish_occupancy(_occupancy())

        channel, message = client.publish.call_args[0]
        assert channel == settings.occupancy_channel
        assert json.loads(message) == {
            "pool": "group",
            "day_of_week": "tuesday",
            "start_time": "16:30",
            "session_date": "2026-03-03",
            "booked": 4,
            "capacity": 6,
        }

    def test_disabled_by_default(self, monkeypatch) -> None:
        client = MagicMock()
        monkeypatch.setattr(listeners, "_get_sync_redis", lambda: client)

        listeners.publish_occupancy(_occupancy())

        client.publish.assert_not_called()

    def test_publish_errors_are_contained(self, monkeypatch) -> None:
        client = MagicMock()
        client.publish.side_effect = ConnectionError("redis down")
        monkeypatch.setattr(settings, "occupancy_broadcast_enabled", True)
        monkeypatch.setattr(listeners, "_get_sync_redis", lambda: client)

        listeners.publish_occupancy(_occupancy())

    def test_unreachable_redis_is_skipped(self, monkeypatch) -> None:
        redis_cls = MagicMock()
        redis_cls.from_url.return_value.ping.side_effect = ConnectionError("refused")
        monkeypatch.setattr(listeners, "Redis", redis_cls)

        assert listeners._get_sync_redis() is None


class TestNotificationForwarding:
    def test_sends_notifiable_events(self, monkeypatch) -> None:
        from icetime.tasks.celery_app import celery_app

        send_task = MagicMock()
        monkeypatch.setattr(settings, "notifications_enabled", True)
        monkeypatch.setattr(celery_app, "send_task", send_task)
        event = BookingCreated(
            booking_id="b1",
            player_id="p1",
            account_id="parent-1",
            program_type="group",
            session_date=date(2026, 3, 3),
            start_time="16:30",
            status="booked",
        )

        listeners.forward_notification(event)

        send_task.assert_called_once()
        name = send_task.call_args[0][0]
        kwargs = send_task.call_args[1]
        assert name == listeners.NOTIFICATION_TASK
        assert kwargs["queue"] == "notifications"
        assert kwargs["args"][0] == "BookingCreated"
        assert kwargs["args"][1]["account_id"] == "parent-1"

    def test_session_reminder_is_forwarded(self, monkeypatch) -> None:
        from icetime.tasks.celery_app import celery_app

        send_task = MagicMock()
        monkeypatch.setattr(settings, "notifications_enabled", True)
        monkeypatch.setattr(celery_app, "send_task", send_task)
        event = SessionReminder(
            booking_id="b1",
            player_id="p1",
            account_id="parent-1",
            program_type="private",
            session_date=date(2026, 3, 4),
            start_time="15:00",
        )

        listeners.forward_notification(event)

        send_task.assert_called_once()
        assert send_task.call_args[1]["args"][0] == "SessionReminder"

    def test_occupancy_is_not_a_notification(self, monkeypatch) -> None:
        from icetime.tasks.celery_app import celery_app

        send_task = MagicMock()
        monkeypatch.setattr(settings, "notifications_enabled", True)
        monkeypatch.setattr(celery_app, "send_task", send_task)

        listeners.forward_notification(_occupancy())

        send_task.assert_not_called()
