from __future__ import annotations

from datetime import time, timedelta

import pytest
from sqlalchemy.orm import Session

from icetime.core.enums import DayOfWeek, PoolName, ProgramType
from icetime.core.exceptions import (
    CategoryMismatchException,
    InvalidSlotForProgramException,
    InvalidStateTransitionException,
    SlotFullException,
    StaleOpportunityException,
    ValidationException,
)
from icetime.events.booking_events import PairingDissolved, PairingFound
from icetime.models.booking import BookingStatus
from icetime.models.pairing import PairingStatus, UnpairedStatus
from icetime.services.booking_service import BookingService
from icetime.services.pairing_service import PairingService
from tests.conftest import NOW, SHARED_TIME, WEDNESDAY


@pytest.fixture
def pairing(db: Session) -> PairingService:
    return PairingService(db)


@pytest.fixture
def bookings(db: Session) -> BookingService:
    return BookingService(db)


@pytest.fixture
def waiting_pair(pairing, make_player):
    """
    Two M11 players: Alex free Mon/Wed 3-4pm, Blake free Wed/Thu 3-4pm and
    4-5pm. Their only common preference is Wednesday 3-4pm.
    """
    alex = make_player(account_id="parent-a", full_name="Alex")
    blake = make_player(account_id="parent-b", full_name="Blake")
    pairing.register_unpaired(alex.id, ["monday", "wednesday"], ["3-4pm"], now=NOW)
    pairing.register_unpaired(
        blake.id, ["Wed", "Thu"], ["3-4pm", "4-5pm"], now=NOW + timedelta(minutes=5)
    )
    return alex, blake


def _shared_occupancy(pairing: PairingService):
    return pairing.pool_service.occupancy(
        PoolName.SHARED, DayOfWeek.WEDNESDAY, SHARED_TIME, WEDNESDAY
    )


class TestRegistry:
    def test_preferences_are_normalized(self, pairing, make_player) -> None:
        player = make_player()

        entry = pairing.register_unpaired(
            player.id, ["THU", "monday", "thu"], ["4:15-5:15pm", "15:00"], now=NOW
        )

        assert entry.preferred_days == ["monday", "thursday"]
        assert entry.preferred_times == ["15:00", "16:15"]
        assert entry.status == UnpairedStatus.WAITING.value

    @pytest.mark.parametrize(
        "days, times, code",
        [
            (["tuesday"], ["15:00"], "INVALID_DAY"),
            (["someday"], ["15:00"], "INVALID_DAY"),
            (["monday"], ["noon-ish"], "INVALID_TIME"),
        ],
    )
    def test_invalid_preferences(self, pairing, make_player, days, times, code) -> None:
        player = make_player()

        with pytest.raises(ValidationException) as exc_info:
            pairing.register_unpaired(player.id, days, times, now=NOW)
        assert exc_info.value.code == code

    def test_windows_outside_the_catalog_are_kept(self, pairing, make_player) -> None:
        player = make_player()

        entry = pairing.register_unpaired(player.id, ["wednesday"], ["4-5pm", "3-4pm"], now=NOW)

        assert entry.preferred_times == ["15:00", "16:00"]

    def test_updating_preferences_keeps_queue_position(self, pairing, make_player) -> None:
        player = make_player()
        first = pairing.register_unpaired(player.id, ["monday"], ["15:00"], now=NOW)
        waiting_since = first.waiting_since

        updated = pairing.register_unpaired(
            player.id, ["thursday"], ["17:30"], now=NOW + timedelta(days=2)
        )

        assert updated.id == first.id
        assert updated.waiting_since == waiting_since
        assert updated.preferred_days == ["thursday"]

    def test_withdraw_leaves_the_pool(self, pairing, make_player) -> None:
        player = make_player()
        pairing.register_unpaired(player.id, ["monday"], ["15:00"], now=NOW)

        pairing.withdraw_unpaired(player.id)

        assert pairing.list_waiting() == []


class TestOpportunities:
    def test_common_wednesday_at_three(self, pairing, waiting_pair) -> None:
        alex, blake = waiting_pair

        opportunities = pairing.find_opportunities()

        assert len(opportunities) == 1
        found = opportunities[0]
        assert set(found.player_ids) == {alex.id, blake.id}
        assert found.common_days == ("wednesday",)
        assert found.common_times == ("15:00",)
        assert found.common_time_labels == ("3-4pm",)
        assert found.score == 70
        assert found.age_category == "M11"

    def test_no_overlap_no_opportunity(self, pairing, make_player) -> None:
        first = make_player()
        second = make_player(account_id="parent-2")
        pairing.register_unpaired(first.id, ["monday"], ["15:00"], now=NOW)
        pairing.register_unpaired(second.id, ["monday"], ["16:15"], now=NOW)

        assert pairing.find_opportunities() == []

    def test_categories_are_never_mixed(self, pairing, make_player) -> None:
        first = make_player(age_category="M11")
        second = make_player(account_id="parent-2", age_category="M13")
        pairing.register_unpaired(first.id, ["monday"], ["15:00"], now=NOW)
        pairing.register_unpaired(second.id, ["monday"], ["15:00"], now=NOW)

        assert pairing.find_opportunities() == []
        with pytest.raises(CategoryMismatchException):
            pairing.commit(first.id, second.id, "monday", "15:00", now=NOW)

    def test_higher_overlap_ranks_first(self, pairing, make_player) -> None:
        a = make_player(account_id="a")
        b = make_player(account_id="b")
        c = make_player(account_id="c")
        pairing.register_unpaired(a.id, ["monday", "thursday"], ["15:00", "16:15"], now=NOW)
        pairing.register_unpaired(b.id, ["monday", "thursday"], ["15:00", "16:15"], now=NOW)
        pairing.register_unpaired(c.id, ["monday"], ["15:00"], now=NOW)

        scores = [(set(o.player_ids), o.score) for o in pairing.find_opportunities()]

        assert scores[0] == ({a.id, b.id}, 110)
        assert [score for _, score in scores[1:]] == [70, 70]

    def test_suggested_times_follow_demand(self, pairing, waiting_pair) -> None:
        suggestions = pairing.suggest_times("M11", now=NOW)

        assert suggestions[0] == {
            "day_of_week": "wednesday",
            "start_time": "15:00",
            "label": "3-4pm",
            "wanted_by": 2,
        }
        assert {s["day_of_week"] for s in suggestions} == {"monday", "wednesday", "thursday"}


class TestCommit:
    def test_commit_holds_one_weekly_seat(
        self, pairing, waiting_pair, captured_events
    ) -> None:
        alex, blake = waiting_pair

        created = pairing.commit(alex.id, blake.id, "wednesday", "3-4pm", actor="admin", now=NOW)

        assert created.status == PairingStatus.ACTIVE.value
        assert created.start_time == time(15, 0)
        assert pairing.list_waiting() == []
        occupancy = _shared_occupancy(pairing)
        assert occupancy.booked == 1
        assert occupancy.pairing_held is True
        assert any(isinstance(e, PairingFound) for e in captured_events)

    def test_time_must_be_common(self, pairing, waiting_pair) -> None:
        alex, blake = waiting_pair

        with pytest.raises(ValidationException) as exc_info:
            pairing.commit(alex.id, blake.id, "monday", "15:00", now=NOW)
        assert exc_info.value.code == "NOT_A_COMMON_PREFERENCE"

    def test_common_window_must_be_a_shared_slot(self, pairing, make_player) -> None:
        first = make_player()
        second = make_player(account_id="parent-2")
        pairing.register_unpaired(first.id, ["wednesday"], ["4-5pm"], now=NOW)
        pairing.register_unpaired(second.id, ["wednesday"], ["16:00"], now=NOW)
        assert [o.common_times for o in pairing.find_opportunities()] == [("16:00",)]

        with pytest.raises(InvalidSlotForProgramException):
            pairing.commit(first.id, second.id, "wednesday", "4-5pm", now=NOW)
        assert len(pairing.list_waiting()) == 2

    def test_paired_player_cannot_reregister(self, pairing, waiting_pair) -> None:
        alex, blake = waiting_pair
        pairing.commit(alex.id, blake.id, "wednesday", "15:00", now=NOW)

        with pytest.raises(ValidationException) as exc_info:
            pairing.register_unpaired(alex.id, ["monday"], ["15:00"], now=NOW)
        assert exc_info.value.code == "ALREADY_PAIRED"

    def test_slot_taken_since_discovery(self, pairing, bookings, waiting_pair, make_player) -> None:
        alex, blake = waiting_pair
        assert pairing.find_opportunities()
        private = make_player(account_id="private-parent")
        bookings.reserve(
            private.id, ProgramType.PRIVATE, WEDNESDAY + timedelta(days=14), SHARED_TIME, now=NOW
        )

        with pytest.raises(StaleOpportunityException):
            pairing.commit(alex.id, blake.id, "wednesday", "15:00", now=NOW)
        assert len(pairing.list_waiting()) == 2

    def test_player_taken_since_discovery(self, pairing, waiting_pair, make_player) -> None:
        alex, blake = waiting_pair
        third = make_player(account_id="parent-c")
        pairing.register_unpaired(third.id, ["wednesday"], ["15:00"], now=NOW)
        pairing.commit(alex.id, third.id, "wednesday", "15:00", now=NOW)

        with pytest.raises(StaleOpportunityException):
            pairing.commit(alex.id, blake.id, "wednesday", "15:00", now=NOW)


class TestRidersAndDissolve:
    def _ride(self, pairing, bookings, waiting_pair):
        alex, blake = waiting_pair
        created = pairing.commit(alex.id, blake.id, "wednesday", "15:00", now=NOW)
        first = bookings.reserve(
            alex.id, ProgramType.SEMI_PRIVATE, WEDNESDAY, SHARED_TIME, now=NOW
        )
        second = bookings.reserve(
            blake.id,
            ProgramType.SEMI_PRIVATE,
            WEDNESDAY,
            SHARED_TIME,
            now=NOW + timedelta(minutes=1),
        )
        return created, first, second

    def test_riders_share_the_pairing_seat(
        self, pairing, bookings, waiting_pair, make_player
    ) -> None:
        _, first, second = self._ride(pairing, bookings, waiting_pair)

        assert first.pairing_id == second.pairing_id
        assert first.holds_seat is False and second.holds_seat is False
        assert _shared_occupancy(pairing).booked == 1

        outsider = make_player(account_id="outsider")
        with pytest.raises(SlotFullException):
            bookings.reserve(outsider.id, ProgramType.PRIVATE, WEDNESDAY, SHARED_TIME, now=NOW)

    def test_dissolve_keeps_upcoming_bookings(
        self, pairing, bookings, waiting_pair, captured_events
    ) -> None:
        created, first, second = self._ride(pairing, bookings, waiting_pair)

        dissolved = pairing.dissolve(created.id, reason="family request", actor="admin", now=NOW)

        assert dissolved.status == PairingStatus.DISSOLVED.value
        assert first.holds_seat is True
        assert second.holds_seat is False
        occupancy = _shared_occupancy(pairing)
        assert occupancy.booked == 1
        assert occupancy.pairing_held is False
        assert len(pairing.list_waiting()) == 2
        assert any(isinstance(e, PairingDissolved) for e in captured_events)

        # Seat passes to the partner, then is freed when both have left
        bookings.cancel(first.id, now=NOW)
        assert second.holds_seat is True
        assert _shared_occupancy(pairing).booked == 1
        bookings.cancel(second.id, now=NOW)
        assert _shared_occupancy(pairing).booked == 0

    def test_dissolve_excluding_a_player(self, pairing, waiting_pair) -> None:
        alex, blake = waiting_pair
        created = pairing.commit(alex.id, blake.id, "wednesday", "15:00", now=NOW)

        pairing.dissolve(created.id, reason="schedule change", exclude_player_id=alex.id, now=NOW)

        assert [entry.player_id for entry in pairing.list_waiting()] == [blake.id]
        assert pairing.get_active_for_player(alex.id) is None

    def test_dissolve_twice(self, pairing, waiting_pair) -> None:
        alex, blake = waiting_pair
        created = pairing.commit(alex.id, blake.id, "wednesday", "15:00", now=NOW)
        pairing.dissolve(created.id, reason="done", now=NOW)

        with pytest.raises(InvalidStateTransitionException):
            pairing.dissolve(created.id, reason="again", now=NOW)

    def test_cancelled_rider_frees_nothing(self, pairing, bookings, waiting_pair) -> None:
        _, first, _ = self._ride(pairing, bookings, waiting_pair)

        outcome = bookings.cancel(first.id, now=NOW)

        assert outcome.booking.status == BookingStatus.CANCELLED.value
        assert _shared_occupancy(pairing).booked == 1
