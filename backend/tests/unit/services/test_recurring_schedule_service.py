from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from icetime.core.enums import DayOfWeek, ProgramType
from icetime.core.exceptions import ConflictException, InvalidSlotForProgramException
from icetime.events.booking_events import (
    InsufficientCredits,
    RecurringBookingSkipped,
    RecurringSchedulePaused,
)
from icetime.models.booking import BookingStatus
from icetime.models.recurring_schedule import PauseReason
from icetime.models.schedule_change import OneTimeKind, ScheduleChangeType
from icetime.services.booking_service import BookingService
from icetime.services.recurring_schedule_service import (
    RecurringScheduleService,
    next_occurrence,
)
from icetime.services.schedule_change_service import ScheduleChangeService
from tests.conftest import GROUP_TIME, NOW, TUESDAY

NEXT_TUESDAY = TUESDAY + timedelta(days=7)


@pytest.fixture
def recurring(db: Session) -> RecurringScheduleService:
    return RecurringScheduleService(db)


@pytest.fixture
def weekly_group(recurring, make_player, give_credits):
    player = make_player()
    give_credits(player.account_id, 5)
    schedule = recurring.create_schedule(
        player.id, ProgramType.GROUP, DayOfWeek.TUESDAY, GROUP_TIME, now=NOW
    )
    return player, schedule


class TestNextOccurrence:
    @pytest.mark.parametrize(
        "day, from_date, expected",
        [
            (DayOfWeek.TUESDAY, date(2026, 3, 2), date(2026, 3, 3)),
            (DayOfWeek.TUESDAY, date(2026, 3, 3), date(2026, 3, 3)),
            (DayOfWeek.MONDAY, date(2026, 3, 3), date(2026, 3, 9)),
            (DayOfWeek.SUNDAY, date(2026, 3, 2), date(2026, 3, 8)),
        ],
    )
    def test_first_matching_weekday(self, day, from_date, expected) -> None:
        assert next_occurrence(day, from_date) == expected


class TestManagement:
    def test_first_date_is_next_matching_weekday(self, weekly_group) -> None:
        _, schedule = weekly_group

        assert schedule.is_active is True
        assert schedule.next_booking_date == TUESDAY
        assert schedule.last_booked_date is None

    def test_duplicate_schedule(self, recurring, weekly_group) -> None:
        player, _ = weekly_group

        with pytest.raises(ConflictException) as exc_info:
            recurring.create_schedule(
                player.id, ProgramType.GROUP, DayOfWeek.TUESDAY, GROUP_TIME, now=NOW
            )
        assert exc_info.value.code == "DUPLICATE_SCHEDULE"

    def test_slot_must_exist_for_program(self, recurring, make_player) -> None:
        player = make_player()

        with pytest.raises(InvalidSlotForProgramException):
            recurring.create_schedule(
                player.id, ProgramType.GROUP, DayOfWeek.MONDAY, GROUP_TIME, now=NOW
            )

    def test_resume_does_not_back_fill(self, recurring, weekly_group) -> None:
        _, schedule = weekly_group
        recurring.pause(schedule.id)
        assert schedule.paused_reason == PauseReason.USER_PAUSED.value

        # Wednesday 1 April: four Tuesdays were missed
        resumed = recurring.resume(
            schedule.id, now=datetime(2026, 4, 1, 15, 0, tzinfo=timezone.utc)
        )

        assert resumed.is_active is True
        assert resumed.paused_reason is None
        assert resumed.next_booking_date == date(2026, 4, 7)

    def test_delete_keeps_bookings(self, db, recurring, weekly_group) -> None:
        player, schedule = weekly_group
        recurring.process_due(TUESDAY, now=NOW)

        recurring.delete_schedule(schedule.id)

        assert recurring.list_for_player(player.id) == []
        booking = BookingService(db).list_for_player(player.id)[0]
        assert booking.status == BookingStatus.BOOKED.value
        assert booking.recurring_schedule_id is None


class TestProcessDue:
    def test_nothing_due_before_the_date(self, recurring, weekly_group) -> None:
        stats = recurring.process_due(date(2026, 3, 2), now=NOW)

        assert stats.processed == 0

    def test_due_schedule_is_booked_and_advanced(self, recurring, weekly_group) -> None:
        player, schedule = weekly_group

        stats = recurring.process_due(TUESDAY, now=NOW)

        assert stats.booked == 1
        assert schedule.next_booking_date == NEXT_TUESDAY
        assert schedule.last_booked_date == TUESDAY
        booking = recurring.booking_service.list_for_player(player.id)[0]
        assert booking.recurring_schedule_id == schedule.id
        assert booking.session_date == TUESDAY
        assert recurring.booking_service.credit_service.balance(player.account_id, now=NOW) == 4

        # A second sweep on the same day has nothing left to do
        assert recurring.process_due(TUESDAY, now=NOW).processed == 0

    def test_insufficient_credits_pauses(self, recurring, make_player, captured_events) -> None:
        player = make_player()
        schedule = recurring.create_schedule(
            player.id, ProgramType.GROUP, DayOfWeek.TUESDAY, GROUP_TIME, now=NOW
        )

        stats = recurring.process_due(TUESDAY, now=NOW)

        assert stats.paused == 1
        assert schedule.is_active is False
        assert schedule.paused_reason == PauseReason.INSUFFICIENT_CREDITS.value
        assert schedule.next_booking_date == TUESDAY
        assert recurring.booking_service.list_for_player(player.id) == []
        shortfall = [e for e in captured_events if isinstance(e, InsufficientCredits)]
        assert shortfall[0].recurring_schedule_id == schedule.id
        assert any(isinstance(e, RecurringSchedulePaused) for e in captured_events)

    def test_full_slot_skips_one_week(
        self, recurring, weekly_group, make_player, give_credits, captured_events
    ) -> None:
        player, schedule = weekly_group
        for i in range(6):
            other = make_player(account_id=f"other-{i}")
            give_credits(other.account_id, 1)
            recurring.booking_service.reserve(
                other.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW
            )

        stats = recurring.process_due(TUESDAY, now=NOW)

        assert stats.skipped == 1
        assert schedule.is_active is True
        assert schedule.next_booking_date == NEXT_TUESDAY
        assert recurring.booking_service.credit_service.balance(player.account_id, now=NOW) == 5
        skipped = [e for e in captured_events if isinstance(e, RecurringBookingSkipped)]
        assert skipped[0].reason == "slot_full"

    def test_manual_booking_counts_as_booked(self, recurring, weekly_group) -> None:
        player, schedule = weekly_group
        recurring.booking_service.reserve(player.id, ProgramType.GROUP, TUESDAY, GROUP_TIME, now=NOW)

        stats = recurring.process_due(TUESDAY, now=NOW)

        assert stats.already_booked == 1
        assert schedule.last_booked_date == TUESDAY
        assert len(recurring.booking_service.list_for_player(player.id)) == 1

    def test_applied_skip_is_honoured(self, db, recurring, weekly_group) -> None:
        player, schedule = weekly_group
        changes = ScheduleChangeService(db)
        change = changes.request_change(
            player.id,
            ProgramType.GROUP,
            ScheduleChangeType.ONE_TIME,
            DayOfWeek.TUESDAY,
            GROUP_TIME,
            one_time_kind=OneTimeKind.SKIP,
            specific_date=TUESDAY,
            auto_approve=True,
            now=NOW,
        )
        changes.apply(change.id, now=NOW)

        stats = recurring.process_due(TUESDAY, now=NOW)

        assert stats.exception_skipped == 1
        assert schedule.next_booking_date == NEXT_TUESDAY
        assert recurring.booking_service.list_for_player(player.id) == []

        # The following week is booked as usual
        assert recurring.process_due(NEXT_TUESDAY, now=NOW).booked == 1

    def test_started_session_is_skipped(self, recurring, weekly_group) -> None:
        _, schedule = weekly_group

        stats = recurring.process_due(
            TUESDAY, now=datetime(2026, 3, 3, 22, 0, tzinfo=timezone.utc)
        )

        assert stats.skipped == 1
        assert schedule.next_booking_date == NEXT_TUESDAY

    def test_one_failure_does_not_stop_the_sweep(
        self, recurring, make_player, give_credits
    ) -> None:
        broke = make_player(account_id="broke")
        funded = make_player(account_id="funded")
        give_credits("funded", 1)
        for player in (broke, funded):
            recurring.create_schedule(
                player.id, ProgramType.GROUP, DayOfWeek.TUESDAY, time(17, 45), now=NOW
            )

        stats = recurring.process_due(TUESDAY, now=NOW)

        assert stats.processed == 2
        assert stats.paused == 1
        assert stats.booked == 1
