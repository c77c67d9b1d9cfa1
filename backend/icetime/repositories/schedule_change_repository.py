# backend/icetime/repositories/schedule_change_repository.py
"""Schedule change request queries."""

from datetime import date, time
import logging
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..models.schedule_change import (
    OneTimeKind,
    ScheduleChange,
    ScheduleChangeStatus,
    ScheduleChangeType,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ScheduleChangeRepository(BaseRepository[ScheduleChange]):
    def __init__(self, db: Session):
        super().__init__(db, ScheduleChange)

    def get_for_player(
        self, player_id: str, *, status: Optional[str] = None
    ) -> List[ScheduleChange]:
        query = self._build_query().filter(ScheduleChange.player_id == player_id)
        if status:
            query = query.filter(ScheduleChange.status == status)
        return self._execute_query(query.order_by(ScheduleChange.created_at.desc()))

    def get_applied_skip(
        self,
        player_id: str,
        program_type: str,
        specific_date: date,
        original_time: time,
    ) -> Optional[ScheduleChange]:
        """Applied one-time skip covering an occurrence, if any."""
        return self._execute_first(
            self._build_query().filter(
                and_(
                    ScheduleChange.player_id == player_id,
                    ScheduleChange.program_type == program_type,
                    ScheduleChange.change_type == ScheduleChangeType.ONE_TIME.value,
                    ScheduleChange.one_time_kind == OneTimeKind.SKIP.value,
                    ScheduleChange.status == ScheduleChangeStatus.APPLIED.value,
                    ScheduleChange.specific_date == specific_date,
                    ScheduleChange.original_time == original_time,
                )
            )
        )
