# backend/icetime/services/schedule_change_service.py
"""
Schedule Change Service for the IceTime booking engine.

Handles reschedule requests through their lifecycle:

    pending -> approved -> applied
    pending -> rejected
    pending | approved -> cancelled

One-time changes touch a single occurrence (skip it or swap it to another
date/time) and leave the standing schedule alone. Permanent changes move the
player's recurring schedules from an effective date; bookings already made
are left as they are. A permanent move of a semi-private player off the
pairing's slot dissolves the pairing and puts the player back in the
matching pool with the new preferences.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import DayOfWeek, ProgramType
from ..core.exceptions import (
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import utcnow
from ..events.booking_events import ScheduleChangeApplied
from ..models.booking import Booking
from ..models.player import Player
from ..models.schedule_change import (
    OneTimeKind,
    ScheduleChange,
    ScheduleChangeStatus,
    ScheduleChangeType,
)
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .booking_service import BookingService
from .pairing_service import PairingOpportunity, PairingService
from .recurring_schedule_service import next_occurrence

logger = logging.getLogger(__name__)


@dataclass
class ScheduleChangeOutcome:
    """What applying a change did."""

    change: ScheduleChange
    cancelled_booking: Optional[Booking] = None
    new_booking: Optional[Booking] = None
    schedules_updated: int = 0
    dissolved_pairing_id: Optional[str] = None
    opportunities: List[PairingOpportunity] = field(default_factory=list)


def _format_time(value: time) -> str:
    return value.strftime("%H:%M")


class ScheduleChangeService(BaseService):
    """One-time exceptions and permanent schedule moves."""

    def __init__(
        self,
        db: Session,
        booking_service: Optional[BookingService] = None,
        pairing_service: Optional[PairingService] = None,
    ):
        super().__init__(db)
        self.booking_service = booking_service or BookingService(db)
        self.pairing_service = pairing_service or PairingService(
            db, pool_service=self.booking_service.pool_service
        )
        self.change_repository = RepositoryFactory.create_schedule_change_repository(db)
        self.schedule_repository = RepositoryFactory.create_recurring_schedule_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.player_repository = RepositoryFactory.create_player_repository(db)

    # Requests

    @BaseService.measure_operation("request_change")
    def request_change(
        self,
        player_id: str,
        program_type: ProgramType,
        change_type: ScheduleChangeType,
        original_day: DayOfWeek,
        original_time: time,
        *,
        one_time_kind: Optional[OneTimeKind] = None,
        specific_date: Optional[date] = None,
        replacement_date: Optional[date] = None,
        new_day: Optional[DayOfWeek] = None,
        new_time: Optional[time] = None,
        effective_date: Optional[date] = None,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
        auto_approve: bool = False,
        now: Optional[datetime] = None,
    ) -> ScheduleChange:
        """
        Record a change request after validating it against the catalog.

        Raises:
            ValidationException: missing or inconsistent fields
            InvalidSlotForProgramException: the new day/time is not offered
        """
        now = now or utcnow()
        program_type = ProgramType(program_type)
        change_type = ScheduleChangeType(change_type)
        original_day = DayOfWeek(original_day)
        player = self._get_player(player_id)

        fields = dict(
            player_id=player.id,
            account_id=player.account_id,
            program_type=program_type.value,
            change_type=change_type.value,
            original_day=original_day.value,
            original_time=original_time,
            reason=reason,
            created_by=actor,
            created_at=now,
            status=ScheduleChangeStatus.PENDING.value,
        )

        if change_type == ScheduleChangeType.ONE_TIME:
            fields.update(
                self._validate_one_time(
                    player,
                    program_type,
                    original_day,
                    original_time,
                    one_time_kind,
                    specific_date,
                    replacement_date,
                    new_time,
                )
            )
        else:
            fields.update(
                self._validate_permanent(
                    player,
                    program_type,
                    original_day,
                    original_time,
                    new_day,
                    new_time,
                    effective_date,
                )
            )

        with self.transaction():
            change = self.change_repository.create(**fields)
            if auto_approve:
                change.transition_to(ScheduleChangeStatus.APPROVED, now)
                change.approved_by = actor
                self.change_repository.flush()

        self.logger.info(
            "Schedule change requested",
            extra={
                "schedule_change_id": change.id,
                "change_type": change.change_type,
                "status": change.status,
            },
        )
        return change

    def _validate_one_time(
        self,
        player: Player,
        program_type: ProgramType,
        original_day: DayOfWeek,
        original_time: time,
        kind: Optional[OneTimeKind],
        specific_date: Optional[date],
        replacement_date: Optional[date],
        new_time: Optional[time],
    ) -> dict:
        if kind is None:
            raise ValidationException("A one-time change must be a skip or a swap")
        kind = OneTimeKind(kind)
        if specific_date is None:
            raise ValidationException("A one-time change needs the date it applies to")
        if DayOfWeek.from_date(specific_date) != original_day:
            raise ValidationException(
                f"{specific_date.isoformat()} is not a {original_day.value}",
                details={"specific_date": specific_date.isoformat()},
            )

        booking = self.booking_repository.get_active_for_player_occurrence(
            player.id, program_type.value, specific_date, original_time
        )
        values = {
            "one_time_kind": kind.value,
            "specific_date": specific_date,
            "original_booking_id": booking.id if booking else None,
        }
        if kind == OneTimeKind.SWAP:
            if replacement_date is None or new_time is None:
                raise ValidationException("A swap needs a replacement date and time")
            target_day = DayOfWeek.from_date(replacement_date)
            self.booking_service.pool_service.resolve_slots(
                program_type,
                target_day,
                new_time,
                duration_hours=booking.duration_hours if booking else 1,
                age_category=player.age_category,
            )
            values.update(
                replacement_date=replacement_date, new_day=target_day.value, new_time=new_time
            )
        return values

    def _validate_permanent(
        self,
        player: Player,
        program_type: ProgramType,
        original_day: DayOfWeek,
        original_time: time,
        new_day: Optional[DayOfWeek],
        new_time: Optional[time],
        effective_date: Optional[date],
    ) -> dict:
        if new_day is None or new_time is None or effective_date is None:
            raise ValidationException(
                "A permanent change needs the new day, new time and effective date"
            )
        new_day = DayOfWeek(new_day)
        if (new_day, new_time) == (original_day, original_time):
            raise ValidationException("The new schedule is the same as the current one")
        self.booking_service.pool_service.resolve_slots(
            program_type, new_day, new_time, age_category=player.age_category
        )

        schedules = self.schedule_repository.get_for_player(
            player.id,
            program_type=program_type.value,
            day_of_week=original_day.value,
            start_time=original_time,
        )
        pairing = None
        if program_type == ProgramType.SEMI_PRIVATE:
            pairing = self.pairing_service.get_active_for_player(player.id)
            if pairing is not None and (
                pairing.day_of_week != original_day.value or pairing.start_time != original_time
            ):
                pairing = None
        if not schedules and pairing is None:
            raise ValidationException(
                f"No standing {program_type.value} schedule on {original_day.value} "
                f"at {_format_time(original_time)}",
                code="NO_STANDING_SCHEDULE",
            )
        return {"new_day": new_day.value, "new_time": new_time, "effective_date": effective_date}

    # Lifecycle

    def approve(
        self,
        change_id: str,
        *,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ScheduleChange:
        change = self.get_change(change_id)
        with self.transaction():
            change.transition_to(ScheduleChangeStatus.APPROVED, now or utcnow())
            change.approved_by = actor
            if notes:
                change.admin_notes = notes
            self.change_repository.flush()
        return change

    def reject(
        self,
        change_id: str,
        *,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ScheduleChange:
        change = self.get_change(change_id)
        with self.transaction():
            change.transition_to(ScheduleChangeStatus.REJECTED, now or utcnow())
            change.approved_by = actor
            if notes:
                change.admin_notes = notes
            self.change_repository.flush()
        return change

    def cancel(self, change_id: str, *, now: Optional[datetime] = None) -> ScheduleChange:
        change = self.get_change(change_id)
        with self.transaction():
            change.transition_to(ScheduleChangeStatus.CANCELLED, now or utcnow())
            self.change_repository.flush()
        return change

    @BaseService.measure_operation("apply_change")
    def apply(
        self,
        change_id: str,
        *,
        actor: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ScheduleChangeOutcome:
        """
        Carry out an approved change as one unit of work.

        A skip cancels the occurrence's booking under the normal refund rule,
        or, when the sweep has not booked it yet, stands as a record the sweep
        honours. A swap moves the booking. A permanent change rewrites the
        matching recurring schedules.
        """
        now = now or utcnow()
        change = self.get_change(change_id)
        outcome = ScheduleChangeOutcome(change=change)

        with self.transaction():
            self.change_repository.refresh(change)
            if not change.can_transition_to(ScheduleChangeStatus.APPLIED):
                raise InvalidStateTransitionException(
                    "schedule change", change.status, ScheduleChangeStatus.APPLIED.value
                )

            if change.is_one_time:
                self._apply_one_time(change, outcome, actor, now)
            else:
                self._apply_permanent(change, outcome, actor, now)

            change.transition_to(ScheduleChangeStatus.APPLIED, now)
            self.change_repository.flush()
            self.emit_event(
                ScheduleChangeApplied(
                    schedule_change_id=change.id,
                    player_id=change.player_id,
                    change_type=change.change_type,
                )
            )

        if not change.is_one_time and change.program_type == ProgramType.SEMI_PRIVATE.value:
            player = self._get_player(change.player_id)
            outcome.opportunities = [
                o
                for o in self.pairing_service.find_opportunities(age_category=player.age_category)
                if change.player_id in o.player_ids
            ]

        self.logger.info(
            "Schedule change applied",
            extra={"schedule_change_id": change.id, "change_type": change.change_type},
        )
        return outcome

    def _find_booking(self, change: ScheduleChange) -> Optional[Booking]:
        if change.original_booking_id:
            booking = self.booking_repository.get_by_id(change.original_booking_id)
            if booking is not None and booking.is_active:
                return booking
        return self.booking_repository.get_active_for_player_occurrence(
            change.player_id, change.program_type, change.specific_date, change.original_time
        )

    def _apply_one_time(
        self,
        change: ScheduleChange,
        outcome: ScheduleChangeOutcome,
        actor: Optional[str],
        now: datetime,
    ) -> None:
        booking = self._find_booking(change)
        if change.is_skip:
            if booking is not None:
                result = self.booking_service.cancel(
                    booking.id, actor=actor, reason="schedule_exception", now=now
                )
                outcome.cancelled_booking = result.booking
                change.original_booking_id = booking.id
            return

        if booking is None:
            raise ValidationException(
                "There is no booking on that date to move",
                code="NO_BOOKING_TO_MOVE",
                details={"specific_date": change.specific_date.isoformat()},
            )
        replacement = self.booking_service.move_booking(
            booking.id, change.replacement_date, change.new_time, actor=actor, now=now
        )
        change.original_booking_id = booking.id
        change.new_booking_id = replacement.id
        outcome.cancelled_booking = booking
        outcome.new_booking = replacement

    def _apply_permanent(
        self,
        change: ScheduleChange,
        outcome: ScheduleChangeOutcome,
        actor: Optional[str],
        now: datetime,
    ) -> None:
        new_day = DayOfWeek(change.new_day)
        for schedule in self.schedule_repository.get_for_player(
            change.player_id,
            program_type=change.program_type,
            day_of_week=change.original_day,
            start_time=change.original_time,
        ):
            schedule.day_of_week = new_day.value
            schedule.start_time = change.new_time
            schedule.next_booking_date = next_occurrence(new_day, change.effective_date)
            outcome.schedules_updated += 1
        self.schedule_repository.flush()

        if change.program_type != ProgramType.SEMI_PRIVATE.value:
            return

        pairing = self.pairing_service.get_active_for_player(change.player_id)
        if pairing is not None and (
            pairing.day_of_week != new_day.value or pairing.start_time != change.new_time
        ):
            self.pairing_service.dissolve(
                pairing.id,
                reason="schedule_change",
                actor=actor,
                exclude_player_id=change.player_id,
                now=now,
            )
            outcome.dissolved_pairing_id = pairing.id

        if self.pairing_service.get_active_for_player(change.player_id) is None:
            self.pairing_service.register_unpaired(
                change.player_id, [new_day.value], [_format_time(change.new_time)], now=now
            )

    # Reads

    def get_change(self, change_id: str) -> ScheduleChange:
        change = self.change_repository.get_by_id(change_id)
        if change is None:
            raise NotFoundException(f"Schedule change {change_id} not found")
        return change

    def list_for_player(
        self, player_id: str, *, status: Optional[str] = None
    ) -> List[ScheduleChange]:
        return self.change_repository.get_for_player(player_id, status=status)

    def _get_player(self, player_id: str) -> Player:
        player = self.player_repository.get_by_id(player_id)
        if player is None:
            raise NotFoundException(f"Player {player_id} not found")
        return player
