# backend/icetime/services/recurring_schedule_service.py
"""
Recurring Schedule Service for the IceTime booking engine.

A recurring schedule is a standing weekly booking intent. The periodic sweep
(``process_due``) turns each due schedule into a concrete booking through the
same reservation path a parent uses, then moves ``next_booking_date`` one
interval forward.

Each schedule is processed in its own transaction so one failing schedule
never aborts the sweep:

- booked                -> advance, remember the booked date
- insufficient credits  -> pause (insufficient_credits), date unchanged
- slot full             -> skip this occurrence, advance
- slot no longer valid  -> pause (slot_unavailable)
- already booked / skipped by an approved exception -> advance, no booking
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import DayOfWeek, ProgramType
from ..core.exceptions import (
    ConflictException,
    DuplicateBookingException,
    InsufficientCreditsException,
    InvalidSlotForProgramException,
    NotFoundException,
    SlotFullException,
    ValidationException,
)
from ..core.timezone_utils import rink_today, utcnow
from ..events.booking_events import (
    emit_insufficient_credits,
    emit_recurring_booking_skipped,
    emit_recurring_schedule_paused,
)
from ..models.recurring_schedule import PauseReason, RecurringSchedule
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .booking_service import BookingService

logger = logging.getLogger(__name__)


def next_occurrence(day: DayOfWeek, from_date: date) -> date:
    """First date on or after ``from_date`` that falls on ``day``."""
    return from_date + timedelta(days=(day.index - from_date.weekday()) % 7)


@dataclass
class RecurringSweepStats:
    """Outcome counts for one sweep."""

    processed: int = 0
    booked: int = 0
    already_booked: int = 0
    exception_skipped: int = 0
    skipped: int = 0
    paused: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class RecurringScheduleService(BaseService):
    """Standing weekly bookings: management and materialization."""

    def __init__(self, db: Session, booking_service: Optional[BookingService] = None):
        super().__init__(db)
        self.booking_service = booking_service or BookingService(db)
        self.schedule_repository = RepositoryFactory.create_recurring_schedule_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.schedule_change_repository = RepositoryFactory.create_schedule_change_repository(db)
        self.player_repository = RepositoryFactory.create_player_repository(db)

    # Management

    @BaseService.measure_operation("create_schedule")
    def create_schedule(
        self,
        player_id: str,
        program_type: ProgramType,
        day_of_week: DayOfWeek,
        start_time: time,
        *,
        duration_hours: int = 1,
        start_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> RecurringSchedule:
        """
        Create a standing weekly booking.

        The day/time is validated against the program's pool up front; the
        first occurrence is the first matching weekday on or after
        ``start_date`` (today by default).
        """
        program_type = ProgramType(program_type)
        day_of_week = DayOfWeek(day_of_week)
        player = self.player_repository.get_by_id(player_id)
        if player is None:
            raise NotFoundException(f"Player {player_id} not found")

        self.booking_service.pool_service.resolve_slots(
            program_type,
            day_of_week,
            start_time,
            duration_hours=duration_hours,
            age_category=player.age_category,
        )

        first_date = next_occurrence(day_of_week, start_date or rink_today(now))

        with self.transaction():
            existing = self.schedule_repository.get_for_player(
                player.id,
                program_type=program_type.value,
                day_of_week=day_of_week.value,
                start_time=start_time,
            )
            if existing:
                raise ConflictException(
                    "This child already has a recurring booking at that time",
                    code="DUPLICATE_SCHEDULE",
                    details={"recurring_schedule_id": existing[0].id},
                )
            schedule = self.schedule_repository.create(
                player_id=player.id,
                account_id=player.account_id,
                program_type=program_type.value,
                day_of_week=day_of_week.value,
                start_time=start_time,
                duration_hours=duration_hours,
                is_active=True,
                next_booking_date=first_date,
            )

        self.logger.info(
            "Recurring schedule created",
            extra={"recurring_schedule_id": schedule.id, "first_date": first_date.isoformat()},
        )
        return schedule

    def pause(self, schedule_id: str) -> RecurringSchedule:
        """User-requested pause."""
        schedule = self.get_schedule(schedule_id)
        with self.transaction():
            schedule.pause(PauseReason.USER_PAUSED)
            self.schedule_repository.flush()
        return schedule

    def resume(self, schedule_id: str, *, now: Optional[datetime] = None) -> RecurringSchedule:
        """
        Clear a pause. Missed occurrences are not back-filled: the next
        booking date moves forward to the first occurrence from today.
        """
        schedule = self.get_schedule(schedule_id)
        today = rink_today(now)
        with self.transaction():
            schedule.resume()
            if schedule.next_booking_date < today:
                schedule.next_booking_date = next_occurrence(
                    DayOfWeek(schedule.day_of_week), today
                )
            self.schedule_repository.flush()
        return schedule

    def delete_schedule(self, schedule_id: str) -> None:
        """Remove the standing intent. Bookings it created stay as they are."""
        schedule = self.get_schedule(schedule_id)
        with self.transaction():
            for booking in self.booking_repository.get_for_schedule(schedule.id):
                booking.recurring_schedule_id = None
            self.booking_repository.flush()
            self.schedule_repository.delete(schedule.id)

    def get_schedule(self, schedule_id: str) -> RecurringSchedule:
        schedule = self.schedule_repository.get_by_id(schedule_id)
        if schedule is None:
            raise NotFoundException(f"Recurring schedule {schedule_id} not found")
        return schedule

    def list_for_player(self, player_id: str) -> List[RecurringSchedule]:
        return self.schedule_repository.get_for_player(player_id)

    def list_for_account(self, account_id: str) -> List[RecurringSchedule]:
        return self.schedule_repository.get_for_account(account_id)

    # Materialization

    @BaseService.measure_operation("process_due")
    def process_due(
        self,
        as_of: Optional[date] = None,
        *,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> RecurringSweepStats:
        """Materialize every active schedule whose next booking date has arrived."""
        now = now or utcnow()
        as_of = as_of or rink_today(now)
        stats = RecurringSweepStats()

        for schedule in self.schedule_repository.get_due(as_of, limit=limit):
            stats.processed += 1
            try:
                outcome = self._process_one(schedule, now)
            except Exception:
                self.logger.exception(
                    "Recurring schedule processing failed",
                    extra={"recurring_schedule_id": schedule.id},
                )
                if not self.in_transaction:
                    self.db.rollback()
                outcome = "errors"
            setattr(stats, outcome, getattr(stats, outcome) + 1)
            prometheus_metrics.inc_recurring_occurrence(outcome)

        self.logger.info("Recurring sweep finished", extra=stats.to_dict())
        return stats

    def _process_one(self, schedule: RecurringSchedule, now: datetime) -> str:
        session_date = schedule.next_booking_date
        schedule_id = schedule.id
        player_id = schedule.player_id

        if self.schedule_change_repository.get_applied_skip(
            player_id, schedule.program_type, session_date, schedule.start_time
        ):
            self._advance(schedule)
            return "exception_skipped"

        if self.booking_repository.get_active_for_player_occurrence(
            player_id, schedule.program_type, session_date, schedule.start_time
        ):
            self._advance(schedule, booked_on=session_date)
            return "already_booked"

        try:
            with self.transaction():
                self.booking_service.reserve(
                    player_id,
                    ProgramType(schedule.program_type),
                    session_date,
                    schedule.start_time,
                    duration_hours=schedule.duration_hours,
                    recurring_schedule_id=schedule_id,
                    now=now,
                )
                schedule.advance(settings.recurring_interval_days, booked_on=session_date)
                self.schedule_repository.flush()
            return "booked"
        except InsufficientCreditsException as exc:
            self._pause(schedule, PauseReason.INSUFFICIENT_CREDITS)
            emit_insufficient_credits(
                account_id=schedule.account_id,
                player_id=player_id,
                credits_required=exc.details.get("credits_required", 0),
                credits_available=exc.details.get("credits_available", 0),
                recurring_schedule_id=schedule_id,
            )
            return "paused"
        except InvalidSlotForProgramException:
            self._pause(schedule, PauseReason.SLOT_UNAVAILABLE)
            return "paused"
        except SlotFullException:
            self._advance(schedule)
            emit_recurring_booking_skipped(
                recurring_schedule_id=schedule_id,
                player_id=player_id,
                session_date=session_date,
                reason="slot_full",
            )
            return "skipped"
        except DuplicateBookingException:
            self._advance(schedule, booked_on=session_date)
            return "already_booked"
        except ValidationException as exc:
            if exc.code != "SESSION_IN_PAST":
                raise
            self._advance(schedule)
            emit_recurring_booking_skipped(
                recurring_schedule_id=schedule_id,
                player_id=player_id,
                session_date=session_date,
                reason="session_started",
            )
            return "skipped"

    def _advance(self, schedule: RecurringSchedule, booked_on: Optional[date] = None) -> None:
        with self.transaction():
            schedule.advance(settings.recurring_interval_days, booked_on=booked_on)
            self.schedule_repository.flush()

    def _pause(self, schedule: RecurringSchedule, reason: PauseReason) -> None:
        with self.transaction():
            schedule.pause(reason)
            self.schedule_repository.flush()
        self.logger.warning(
            "Recurring schedule paused",
            extra={"recurring_schedule_id": schedule.id, "reason": reason.value},
        )
        emit_recurring_schedule_paused(
            recurring_schedule_id=schedule.id, player_id=schedule.player_id, reason=reason.value
        )
