from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from icetime.core.enums import DayOfWeek, PoolName, ProgramType
from icetime.core.exceptions import (
    DuplicateBookingException,
    InsufficientCreditsException,
    InvalidSlotForProgramException,
    InvalidStateTransitionException,
    SlotFullException,
    ValidationException,
)
from icetime.events.booking_events import (
    BookingCancelled,
    BookingCreated,
    OccupancyChanged,
    SessionReminder,
)
from icetime.models.booking import BookingStatus, GroupBooking, PrivateBooking
from icetime.models.credit import CreditConsumption
from icetime.services.booking_service import BookingService
from tests.conftest import FRIDAY, GROUP_TIME, NOW, TUESDAY, WEDNESDAY

# Tuesday 3 March 2026 16:30 EST
GROUP_START_UTC = datetime(2026, 3, 3, 21, 30, tzinfo=timezone.utc)


@pytest.fixture
def service(db: Session) -> BookingService:
    return BookingService(db)


def _group_occupancy(service: BookingService, session_date: date = TUESDAY) -> int:
    return service.pool_service.occupancy(
        PoolName.GROUP, DayOfWeek.from_date(session_date), GROUP_TIME, session_date
    ).booked


class TestReserveGroup:
    def test_reserve_debits_one_credit(self, service, make_player, give_credits) -> None:
        player = make_player()
        give_credits(player.account_id, 3)

        booking = service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

        assert isinstance(booking, GroupBooking)
        assert booking.status == BookingStatus.BOOKED.value
        assert booking.credit_cost == 1
        assert booking.holds_seat is True
        assert service.credit_service.balance(player.account_id, now=NOW) == 2
        assert _group_occupancy(service) == 1

    def test_slot_is_full_at_six(self, service, make_player, give_credits) -> None:
        players = [make_player(account_id=f"parent-{i}") for i in range(7)]
        for player in players:
            give_credits(player.account_id, 1)

        for player in players[:6]:
            service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

        with pytest.raises(SlotFullException) as exc_info:
            service.reserve(players[6].id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

        assert exc_info.value.details["booked"] == 6
        assert _group_occupancy(service) == 6
        assert service.credit_service.balance(players[6].account_id, now=NOW) == 1

    def test_second_child_on_one_credit_is_refused(self, service, make_player, give_credits) -> None:
        first = make_player(account_id="family")
        second = make_player(account_id="family")
        give_credits("family", 1)

        service.reserve(first.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)
        with pytest.raises(InsufficientCreditsException) as exc_info:
            service.reserve(second.id, ProgramType.GROUP, FRIDAY, GROUP_TIME, now=NOW)

        assert exc_info.value.details == {"credits_required": 1, "credits_available": 0}
        assert _group_occupancy(service, FRIDAY) == 0
        assert service.list_for_player(second.id) == []

    def test_failed_debit_rolls_back_seat_and_events(
        self, service, make_player, captured_events
    ) -> None:
        player = make_player()

        with pytest.raises(InsufficientCreditsException):
            service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

        assert _group_occupancy(service) == 0
        assert not [e for e in captured_events if isinstance(e, (BookingCreated, OccupancyChanged))]

    def test_duplicate_booking_is_refused(self, service, make_player, give_credits) -> None:
        player = make_player()
        give_credits(player.account_id, 2)
        service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

        with pytest.raises(DuplicateBookingException):
            service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)
        assert service.credit_service.balance(player.account_id, now=NOW) == 1

    def test_wrong_day_for_program(self, service, make_player, give_credits) -> None:
        player = make_player()
        give_credits(player.account_id, 1)

        with pytest.raises(InvalidSlotForProgramException):
            service.reserve(player.id, ProgramType.GROUP, WEDNESDAY, GROUP_TIME, now=NOW)

    def test_session_already_started(self, service, make_player, give_credits) -> None:
        player = make_player()
        give_credits(player.account_id, 1)

        with pytest.raises(ValidationException) as exc_info:
            service.reserve(
                player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=GROUP_START_UTC
            )
        assert exc_info.value.code == "SESSION_IN_PAST"

    def test_created_event_published_after_commit(
        self, service, make_player, give_credits, captured_events
    ) -> None:
        player = make_player()
        give_credits(player.account_id, 1)

        booking = service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

        created = [e for e in captured_events if isinstance(e, BookingCreated)]
        assert [e.booking_id for e in created] == [booking.id]


class TestCancel:
    def _booked(self, service, make_player, give_credits):
        player = make_player()
        give_credits(player.account_id, 1)
        return service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

    def test_exactly_24_hours_before_is_refunded(self, service, make_player, give_credits) -> None:
        booking = self._booked(service, make_player, give_credits)

        outcome = service.cancel(booking.id, now=GROUP_START_UTC - timedelta(hours=24))

        assert outcome.refund_eligible is True
        assert outcome.credits_refunded == 1
        assert outcome.booking.status == BookingStatus.CANCELLED.value
        assert service.credit_service.balance(booking.account_id, now=NOW) == 1
        assert _group_occupancy(service) == 0

    def test_23h59m_before_forfeits_credit(self, service, make_player, give_credits) -> None:
        booking = self._booked(service, make_player, give_credits)

        outcome = service.cancel(
            booking.id, now=GROUP_START_UTC - timedelta(hours=23, minutes=59)
        )

        assert outcome.refund_eligible is False
        assert outcome.credits_refunded == 0
        assert service.credit_service.balance(booking.account_id, now=NOW) == 0
        assert _group_occupancy(service) == 0

    def test_cannot_cancel_twice(self, service, make_player, give_credits, captured_events) -> None:
        booking = self._booked(service, make_player, give_credits)
        service.cancel(booking.id, now=NOW)

        with pytest.raises(InvalidStateTransitionException):
            service.cancel(booking.id, now=NOW)

        cancelled = [e for e in captured_events if isinstance(e, BookingCancelled)]
        assert len(cancelled) == 1
        assert cancelled[0].refund_eligible is True


class TestPaidPrograms:
    def test_private_is_provisional_until_paid(self, service, make_player) -> None:
        player = make_player()

        booking = service.reserve(player.id, ProgramType.PRIVATE, WEDNESDAY, time(15, 0), now=NOW)

        assert isinstance(booking, PrivateBooking)
        assert booking.status == BookingStatus.PROVISIONAL.value
        assert booking.credit_cost == 0
        assert booking.price_cents == 8999

        confirmed = service.confirm_payment(booking.id, payment_reference="pi_123", now=NOW)
        assert confirmed.status == BookingStatus.BOOKED.value
        assert confirmed.payment_reference == "pi_123"

        with pytest.raises(InvalidStateTransitionException):
            service.confirm_payment(booking.id, now=NOW)

    def test_payment_failure_releases_seat(self, service, make_player) -> None:
        first = make_player()
        second = make_player(account_id="parent-2")
        booking = service.reserve(first.id, ProgramType.PRIVATE, WEDNESDAY, time(15, 0), now=NOW)

        with pytest.raises(SlotFullException):
            service.reserve(second.id, ProgramType.SEMI_PRIVATE, WEDNESDAY, time(15, 0), now=NOW)

        failed = service.payment_failed(booking.id, reason="card_declined", now=NOW)
        assert failed.status == BookingStatus.CANCELLED.value
        assert failed.cancellation_reason == "card_declined"

        retry = service.reserve(second.id, ProgramType.SEMI_PRIVATE, WEDNESDAY, time(15, 0), now=NOW)
        assert retry.status == BookingStatus.PROVISIONAL.value

    def test_two_hour_private_holds_both_slots(self, service, make_player) -> None:
        player = make_player()
        other = make_player(account_id="parent-2")

        booking = service.reserve(
            player.id, ProgramType.PRIVATE, WEDNESDAY, time(15, 0), duration_hours=2, now=NOW
        )

        assert booking.secondary_time_slot_id is not None
        assert booking.price_cents == 2 * 8999
        with pytest.raises(SlotFullException):
            service.reserve(other.id, ProgramType.PRIVATE, WEDNESDAY, time(16, 15), now=NOW)

        service.cancel(booking.id, now=NOW)
        assert service.reserve(other.id, ProgramType.PRIVATE, WEDNESDAY, time(16, 15), now=NOW)

    def test_sunday_ice_is_limited_by_category(self, service, make_player) -> None:
        player = make_player(age_category="M15")

        with pytest.raises(InvalidSlotForProgramException):
            service.reserve(player.id, ProgramType.SUNDAY, date(2026, 3, 15), time(7, 30), now=NOW)
        booking = service.reserve(
            player.id, ProgramType.SUNDAY, date(2026, 3, 15), time(8, 30), now=NOW
        )
        assert booking.price_cents == 5000


class TestMoveAndAttendance:
    def test_move_keeps_the_credit(self, db, service, make_player, give_credits) -> None:
        player = make_player()
        give_credits(player.account_id, 1)
        booking = service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

        moved = service.move_booking(booking.id, FRIDAY, time(17, 45), actor="parent", now=NOW)

        assert booking.status == BookingStatus.CANCELLED.value
        assert booking.cancellation_reason == "rescheduled"
        assert moved.rescheduled_from_booking_id == booking.id
        assert moved.status == BookingStatus.BOOKED.value
        assert service.credit_service.balance(player.account_id, now=NOW) == 0
        assert _group_occupancy(service) == 0
        consumption = db.query(CreditConsumption).one()
        assert consumption.booking_id == moved.id

        # The credit follows the booking: cancelling the replacement refunds it
        outcome = service.cancel(moved.id, now=NOW)
        assert outcome.credits_refunded == 1

    def test_move_to_full_slot_changes_nothing(self, service, make_player, give_credits) -> None:
        movers = make_player(account_id="movers")
        give_credits("movers", 1)
        booking = service.reserve(movers.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)
        for i in range(6):
            other = make_player(account_id=f"friday-{i}")
            give_credits(other.account_id, 1)
            service.reserve(other.id, ProgramType.GROUP, FRIDAY, GROUP_TIME, now=NOW)

        with pytest.raises(SlotFullException):
            service.move_booking(booking.id, FRIDAY, GROUP_TIME, now=NOW)

        assert service.get_booking(booking.id).status == BookingStatus.BOOKED.value
        assert _group_occupancy(service) == 1

    def test_attendance(self, service, make_player, give_credits) -> None:
        player = make_player()
        give_credits(player.account_id, 1)
        booking = service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

        with pytest.raises(ValidationException):
            service.mark_attendance(booking.id, BookingStatus.CANCELLED)
        done = service.mark_attendance(booking.id, BookingStatus.COMPLETED)
        assert done.status == BookingStatus.COMPLETED.value
        with pytest.raises(InvalidStateTransitionException):
            service.mark_attendance(booking.id, BookingStatus.NO_SHOW)


class TestRosterAndReminders:
    def test_roster_lists_active_players_per_slot(self, service, make_player, give_credits) -> None:
        players = [make_player(account_id=f"parent-{i}") for i in range(3)]
        for player in players:
            give_credits(player.account_id, 1)
        bookings = [
            service.reserve(p.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW) for p in players
        ]
        service.cancel(bookings[2].id, now=NOW)

        rosters = service.slot_roster(PoolName.GROUP, TUESDAY)

        assert [r.slot.start_time for r in rosters] == [
            time(16, 30), time(17, 45), time(19, 0), time(20, 15)
        ]
        assert {p.id for p in rosters[0].players} == {players[0].id, players[1].id}
        assert all(not r.bookings for r in rosters[1:])

    def test_two_hour_private_is_on_both_rosters(self, service, make_player) -> None:
        player = make_player()
        service.reserve(
            player.id, ProgramType.PRIVATE, WEDNESDAY, time(15, 0), duration_hours=2, now=NOW
        )

        by_time = {
            r.slot.start_time: r for r in service.slot_roster(PoolName.SHARED, WEDNESDAY)
        }

        assert [p.id for p in by_time[time(15, 0)].players] == [player.id]
        assert [p.id for p in by_time[time(16, 15)].players] == [player.id]
        assert not by_time[time(17, 30)].players

    def test_reminders_go_to_confirmed_bookings_only(
        self, service, make_player, captured_events
    ) -> None:
        paid = make_player()
        unpaid = make_player(account_id="parent-2")
        booking = service.reserve(paid.id, ProgramType.PRIVATE, WEDNESDAY, time(15, 0), now=NOW)
        service.confirm_payment(booking.id, now=NOW)
        service.reserve(unpaid.id, ProgramType.PRIVATE, WEDNESDAY, time(17, 30), now=NOW)

        assert service.send_session_reminders(WEDNESDAY) == 1

        reminders = [e for e in captured_events if isinstance(e, SessionReminder)]
        assert len(reminders) == 1
        assert reminders[0].booking_id == booking.id
        assert reminders[0].start_time == "15:00"
        assert reminders[0].program_type == ProgramType.PRIVATE.value
        assert service.send_session_reminders(FRIDAY) == 0
