from __future__ import annotations

from datetime import date, timedelta
from typing import Iterator

from fastapi.testclient import TestClient
import pytest

from icetime.core.enums import DayOfWeek
from icetime.core.timezone_utils import rink_today
from icetime.database import get_db
from icetime.main import app
from icetime.services.recurring_schedule_service import next_occurrence


def _upcoming(day: DayOfWeek) -> date:
    """A date of ``day`` far enough ahead to be outside the refund window."""
    return next_occurrence(day, rink_today() + timedelta(days=14))


@pytest.fixture
def client(db) -> Iterator[TestClient]:
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _buy(client: TestClient, account_id: str, package: str = "10_pack") -> None:
    response = client.post(f"/api/v1/credits/{account_id}/purchase", json={"package_type": package})
    assert response.status_code == 201, response.text


class TestHealthAndMetrics:
    def test_health(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics_endpoint(self, client) -> None:
        client.get("/health")

        response = client.get("/metrics/prometheus")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]


class TestBookingRoutes:
    def test_reserve_and_read_back(self, client, make_player) -> None:
        player = make_player()
        _buy(client, player.account_id)
        tuesday = _upcoming(DayOfWeek.TUESDAY)

        created = client.post(
            "/api/v1/bookings",
            json={
                "player_id": player.id,
                "program_type": "group",
                "session_date": tuesday.isoformat(),
                "start_time": "16:30",
            },
        )

        assert created.status_code == 201, created.text
        body = created.json()
        assert body["status"] == "booked"
        assert body["credit_cost"] == 1

        fetched = client.get(f"/api/v1/bookings/{body['id']}")
        assert fetched.json()["id"] == body["id"]
        listed = client.get("/api/v1/bookings", params={"account_id": player.account_id})
        assert [b["id"] for b in listed.json()] == [body["id"]]
        balance = client.get(f"/api/v1/credits/{player.account_id}").json()["balance"]
        assert balance == 9

    def test_insufficient_credits_is_402(self, client, make_player) -> None:
        player = make_player()

        response = client.post(
            "/api/v1/bookings",
            json={
                "player_id": player.id,
                "program_type": "group",
                "session_date": _upcoming(DayOfWeek.FRIDAY).isoformat(),
                "start_time": "16:30",
            },
        )

        assert response.status_code == 402
        assert response.json()["detail"]["code"] == "INSUFFICIENT_CREDITS"

    def test_taken_shared_slot_is_409(self, client, make_player) -> None:
        first = make_player()
        second = make_player(account_id="parent-2")
        payload = {
            "program_type": "private",
            "session_date": _upcoming(DayOfWeek.MONDAY).isoformat(),
            "start_time": "15:00",
        }

        assert client.post("/api/v1/bookings", json={**payload, "player_id": first.id}).status_code == 201
        response = client.post("/api/v1/bookings", json={**payload, "player_id": second.id})

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "SLOT_FULL"

    def test_slot_not_offered_is_400(self, client, make_player) -> None:
        player = make_player()

        response = client.post(
            "/api/v1/bookings",
            json={
                "player_id": player.id,
                "program_type": "group",
                "session_date": _upcoming(DayOfWeek.MONDAY).isoformat(),
                "start_time": "16:30",
            },
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_SLOT_FOR_PROGRAM"

    def test_unknown_booking_is_404(self, client) -> None:
        assert client.get("/api/v1/bookings/does-not-exist").status_code == 404

    def test_unknown_fields_are_rejected(self, client, make_player) -> None:
        player = make_player()

        response = client.post(
            "/api/v1/bookings",
            json={
                "player_id": player.id,
                "program_type": "group",
                "session_date": _upcoming(DayOfWeek.TUESDAY).isoformat(),
                "start_time": "16:30",
                "price": 0,
            },
        )

        assert response.status_code == 422

    def test_cancel_with_notice_refunds(self, client, make_player) -> None:
        player = make_player()
        _buy(client, player.account_id, "single")
        booking = client.post(
            "/api/v1/bookings",
            json={
                "player_id": player.id,
                "program_type": "group",
                "session_date": _upcoming(DayOfWeek.TUESDAY).isoformat(),
                "start_time": "17:45",
            },
        ).json()

        response = client.post(f"/api/v1/bookings/{booking['id']}/cancel", json={"reason": "sick"})

        assert response.status_code == 200
        body = response.json()
        assert body["refund_eligible"] is True
        assert body["credits_refunded"] == 1
        assert body["booking"]["status"] == "cancelled"

    def test_private_payment_flow(self, client, make_player) -> None:
        player = make_player()
        booking = client.post(
            "/api/v1/bookings",
            json={
                "player_id": player.id,
                "program_type": "private",
                "session_date": _upcoming(DayOfWeek.THURSDAY).isoformat(),
                "start_time": "17:30",
                "duration_hours": 2,
            },
        ).json()
        assert booking["status"] == "provisional"
        assert booking["price_cents"] == 2 * 8999

        confirmed = client.post(
            f"/api/v1/bookings/{booking['id']}/confirm-payment",
            json={"payment_reference": "pi_42"},
        )
        assert confirmed.json()["status"] == "booked"

        again = client.post(f"/api/v1/bookings/{booking['id']}/confirm-payment", json={})
        assert again.status_code == 422


class TestAvailabilityRoutes:
    def test_group_day(self, client, make_player) -> None:
        player = make_player()
        _buy(client, player.account_id)
        tuesday = _upcoming(DayOfWeek.TUESDAY)
        client.post(
            "/api/v1/bookings",
            json={
                "player_id": player.id,
                "program_type": "group",
                "session_date": tuesday.isoformat(),
                "start_time": "19:00",
            },
        )

        response = client.get(f"/api/v1/availability/group/{tuesday.isoformat()}")

        assert response.status_code == 200
        body = response.json()
        assert body["day_of_week"] == "tuesday"
        remaining = {slot["start_time"]: slot["remaining"] for slot in body["slots"]}
        assert remaining == {"16:30:00": 6, "17:45:00": 6, "19:00:00": 5, "20:15:00": 6}

    def test_day_without_sessions(self, client) -> None:
        monday = _upcoming(DayOfWeek.MONDAY)

        response = client.get(f"/api/v1/availability/group/{monday.isoformat()}")

        assert response.json()["slots"] == []

    def test_roster_names_the_players(self, client, make_player) -> None:
        player = make_player(full_name="Sam Rivera")
        _buy(client, player.account_id)
        tuesday = _upcoming(DayOfWeek.TUESDAY)
        created = client.post(
            "/api/v1/bookings",
            json={
                "player_id": player.id,
                "program_type": "group",
                "session_date": tuesday.isoformat(),
                "start_time": "16:30",
            },
        )
        assert created.status_code == 201, created.text

        response = client.get(f"/api/v1/availability/group/{tuesday.isoformat()}/roster")

        assert response.status_code == 200
        slots = {slot["start_time"]: slot for slot in response.json()["slots"]}
        assert len(slots) == 4
        entries = slots["16:30:00"]["players"]
        assert [e["player_name"] for e in entries] == ["Sam Rivera"]
        assert entries[0]["status"] == "booked"
        assert entries[0]["program_type"] == "group"
        assert slots["19:00:00"]["players"] == []


class TestCreditRoutes:
    def test_purchase_adjust_and_history(self, client) -> None:
        _buy(client, "parent-9", "20_pack")

        adjusted = client.post(
            "/api/v1/credits/parent-9/adjust", json={"delta": -2, "actor": "admin", "note": "fix"}
        )
        account = client.get("/api/v1/credits/parent-9").json()
        history = client.get("/api/v1/credits/parent-9/history").json()

        assert adjusted.json() == {"account_id": "parent-9", "balance": 18}
        assert account["balance"] == 18
        assert account["purchased"] == 20
        assert len(account["batches"]) == 1
        assert {entry["entry_type"] for entry in history} >= {"purchase", "adjustment"}

    def test_purchase_needs_package_or_quantity(self, client) -> None:
        response = client.post("/api/v1/credits/parent-9/purchase", json={"quantity": 3})

        assert response.status_code == 422


class TestPairingAndScheduleRoutes:
    def test_pairing_flow(self, client, make_player) -> None:
        alex = make_player(account_id="parent-a")
        blake = make_player(account_id="parent-b")
        for player, days in ((alex, ["monday", "wednesday"]), (blake, ["wednesday", "thursday"])):
            registered = client.post(
                "/api/v1/pairing/unpaired",
                json={"player_id": player.id, "preferred_days": days, "preferred_times": ["3-4pm"]},
            )
            assert registered.status_code == 201, registered.text

        opportunities = client.get("/api/v1/pairing/opportunities", params={"category": "M11"}).json()
        assert opportunities[0]["common_days"] == ["wednesday"]
        assert opportunities[0]["common_time_labels"] == ["3-4pm"]
        assert opportunities[0]["score"] == 70

        committed = client.post(
            "/api/v1/pairing/commit",
            json={
                "player_1_id": alex.id,
                "player_2_id": blake.id,
                "day_of_week": "wednesday",
                "start_time": "15:00",
            },
        )
        assert committed.status_code == 201, committed.text
        pairing_id = committed.json()["id"]

        dissolved = client.post(f"/api/v1/pairing/{pairing_id}/dissolve", json={"reason": "moved"})
        assert dissolved.json()["status"] == "dissolved"

    def test_recurring_lifecycle(self, client, make_player) -> None:
        player = make_player()

        created = client.post(
            "/api/v1/recurring",
            json={
                "player_id": player.id,
                "program_type": "group",
                "day_of_week": "friday",
                "start_time": "17:45",
            },
        )
        assert created.status_code == 201, created.text
        schedule_id = created.json()["id"]

        paused = client.post(f"/api/v1/recurring/{schedule_id}/pause")
        assert paused.json()["is_active"] is False
        resumed = client.post(f"/api/v1/recurring/{schedule_id}/resume")
        assert resumed.json()["is_active"] is True

        listed = client.get("/api/v1/recurring", params={"account_id": player.account_id}).json()
        assert [s["id"] for s in listed] == [schedule_id]
        assert client.delete(f"/api/v1/recurring/{schedule_id}").status_code == 204

    def test_skip_request_is_applied(self, client, make_player) -> None:
        player = make_player()
        _buy(client, player.account_id)
        tuesday = _upcoming(DayOfWeek.TUESDAY)
        booking = client.post(
            "/api/v1/bookings",
            json={
                "player_id": player.id,
                "program_type": "group",
                "session_date": tuesday.isoformat(),
                "start_time": "16:30",
            },
        ).json()

        change = client.post(
            "/api/v1/schedule-changes",
            json={
                "player_id": player.id,
                "program_type": "group",
                "change_type": "one_time",
                "original_day": "tuesday",
                "original_time": "16:30",
                "one_time_kind": "skip",
                "specific_date": tuesday.isoformat(),
            },
        ).json()
        assert change["status"] == "pending"

        approved = client.post(f"/api/v1/schedule-changes/{change['id']}/approve", json={})
        assert approved.json()["status"] == "approved"
        applied = client.post(f"/api/v1/schedule-changes/{change['id']}/apply", json={})

        assert applied.status_code == 200, applied.text
        fetched = client.get(f"/api/v1/bookings/{booking['id']}").json()
        assert fetched["status"] == "cancelled"
