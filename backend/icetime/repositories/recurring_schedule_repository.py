# backend/icetime/repositories/recurring_schedule_repository.py
"""Recurring schedule queries."""

from datetime import date, time
import logging
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..models.recurring_schedule import RecurringSchedule
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class RecurringScheduleRepository(BaseRepository[RecurringSchedule]):
    def __init__(self, db: Session):
        super().__init__(db, RecurringSchedule)

    def get_due(self, as_of: date, limit: Optional[int] = None) -> List[RecurringSchedule]:
        """Active schedules whose next materialization date has arrived."""
        query = (
            self._build_query()
            .filter(
                and_(
                    RecurringSchedule.is_active.is_(True),
                    RecurringSchedule.next_booking_date <= as_of,
                )
            )
            .order_by(RecurringSchedule.next_booking_date.asc(), RecurringSchedule.id.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        return self._execute_query(query)

    def get_for_player(
        self,
        player_id: str,
        *,
        program_type: Optional[str] = None,
        day_of_week: Optional[str] = None,
        start_time: Optional[time] = None,
    ) -> List[RecurringSchedule]:
        query = self._build_query().filter(RecurringSchedule.player_id == player_id)
        if program_type:
            query = query.filter(RecurringSchedule.program_type == program_type)
        if day_of_week:
            query = query.filter(RecurringSchedule.day_of_week == day_of_week)
        if start_time is not None:
            query = query.filter(RecurringSchedule.start_time == start_time)
        return self._execute_query(query.order_by(RecurringSchedule.created_at.asc()))

    def get_for_account(self, account_id: str) -> List[RecurringSchedule]:
        return self._execute_query(
            self._build_query()
            .filter(RecurringSchedule.account_id == account_id)
            .order_by(RecurringSchedule.created_at.asc())
        )
