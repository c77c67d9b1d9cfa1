# backend/icetime/repositories/time_slot_repository.py
"""
Time slot and occupancy data access.

Occupancy counters are only read for decisions after the slot lock is held;
``populate_existing`` makes sure a session never decides on a stale cached
counter.
"""

from datetime import date, time
import logging
from typing import Dict, List, Optional, Sequence, cast

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.time_slot import SlotOccupancy, TimeSlot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TimeSlotRepository(BaseRepository[TimeSlot]):
    def __init__(self, db: Session):
        super().__init__(db, TimeSlot)

    def get_by_key(self, pool: str, day_of_week: str, start_time: time) -> Optional[TimeSlot]:
        return self._execute_first(
            self._build_query().filter(
                and_(
                    TimeSlot.pool == pool,
                    TimeSlot.day_of_week == day_of_week,
                    TimeSlot.start_time == start_time,
                )
            )
        )

    def get_by_position(self, pool: str, day_of_week: str, position: int) -> Optional[TimeSlot]:
        return self._execute_first(
            self._build_query().filter(
                and_(
                    TimeSlot.pool == pool,
                    TimeSlot.day_of_week == day_of_week,
                    TimeSlot.position == position,
                )
            )
        )

    def list_for_day(self, pool: str, day_of_week: str) -> List[TimeSlot]:
        return self._execute_query(
            self._build_query()
            .filter(and_(TimeSlot.pool == pool, TimeSlot.day_of_week == day_of_week))
            .order_by(TimeSlot.position.asc())
        )

    def list_for_pool(self, pool: str) -> List[TimeSlot]:
        return self._execute_query(
            self._build_query()
            .filter(TimeSlot.pool == pool)
            .order_by(TimeSlot.day_of_week.asc(), TimeSlot.position.asc())
        )

    def list_all(self) -> List[TimeSlot]:
        return self._execute_query(
            self._build_query().order_by(
                TimeSlot.pool.asc(), TimeSlot.day_of_week.asc(), TimeSlot.position.asc()
            )
        )

    def lock_slots(self, slot_ids: Sequence[str]) -> int:
        """Lock slot rows in catalog order; callers pass ids already ordered."""
        return self._lock_rows(slot_ids)

    # Occupancy

    def get_occupancy(self, time_slot_id: str, session_date: date) -> Optional[SlotOccupancy]:
        try:
            return cast(
                Optional[SlotOccupancy],
                self.db.query(SlotOccupancy)
                .filter(
                    and_(
                        SlotOccupancy.time_slot_id == time_slot_id,
                        SlotOccupancy.session_date == session_date,
                    )
                )
                .populate_existing()
                .first(),
            )
        except Exception as exc:
            self.logger.error(
                "Failed to read occupancy for %s on %s: %s", time_slot_id, session_date, exc
            )
            raise RepositoryException("Failed to read slot occupancy") from exc

    def get_or_create_occupancy(self, time_slot_id: str, session_date: date) -> SlotOccupancy:
        """Must be called with the slot lock held."""
        occupancy = self.get_occupancy(time_slot_id, session_date)
        if occupancy is None:
            occupancy = SlotOccupancy(
                time_slot_id=time_slot_id, session_date=session_date, booked_count=0
            )
            self.db.add(occupancy)
            self.flush()
        return occupancy

    def get_booked_counts(self, slot_ids: Sequence[str], session_date: date) -> Dict[str, int]:
        if not slot_ids:
            return {}
        try:
            rows = (
                self.db.query(SlotOccupancy.time_slot_id, SlotOccupancy.booked_count)
                .filter(
                    and_(
                        SlotOccupancy.time_slot_id.in_(list(slot_ids)),
                        SlotOccupancy.session_date == session_date,
                    )
                )
                .all()
            )
            return {slot_id: int(count) for slot_id, count in rows}
        except Exception as exc:
            self.logger.error("Failed to read booked counts on %s: %s", session_date, exc)
            raise RepositoryException("Failed to read slot occupancy") from exc
