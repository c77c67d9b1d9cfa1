# backend/icetime/repositories/booking_repository.py
"""
Booking Repository for the IceTime booking engine.

This repository handles:
- Booking CRUD operations (polymorphic variants share one table)
- Duplicate-booking checks per player, slot and date
- Seat-holding queries used by pairing commits
- Account/player listings and per-slot rosters for reporting
"""

from datetime import date, time
import logging
from typing import List, Optional, Sequence

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from ..models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def get_active_for_player_slot(
        self, player_id: str, slot_ids: Sequence[str], session_date: date
    ) -> Optional[Booking]:
        """Active booking of the player covering any of ``slot_ids`` on the date."""
        ids = list(slot_ids)
        return self._execute_first(
            self._build_query().filter(
                and_(
                    Booking.player_id == player_id,
                    Booking.session_date == session_date,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    or_(
                        Booking.time_slot_id.in_(ids),
                        Booking.secondary_time_slot_id.in_(ids),
                    ),
                )
            )
        )

    def get_active_for_player_occurrence(
        self,
        player_id: str,
        program_type: str,
        session_date: date,
        start_time: time,
    ) -> Optional[Booking]:
        return self._execute_first(
            self._build_query().filter(
                and_(
                    Booking.player_id == player_id,
                    Booking.program_type == program_type,
                    Booking.session_date == session_date,
                    Booking.start_time == start_time,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                )
            )
        )

    def get_active_on_slot(self, slot_id: str, session_date: date) -> List[Booking]:
        return self._execute_query(
            self._build_query()
            .filter(
                and_(
                    Booking.session_date == session_date,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    or_(
                        Booking.time_slot_id == slot_id,
                        Booking.secondary_time_slot_id == slot_id,
                    ),
                )
            )
            .order_by(Booking.created_at.asc())
        )

    def get_upcoming_seat_holders(self, slot_id: str, from_date: date) -> List[Booking]:
        """Active seat-holding bookings on a weekly slot from ``from_date`` on."""
        return self._execute_query(
            self._build_query()
            .filter(
                and_(
                    Booking.session_date >= from_date,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    Booking.holds_seat.is_(True),
                    or_(
                        Booking.time_slot_id == slot_id,
                        Booking.secondary_time_slot_id == slot_id,
                    ),
                )
            )
            .order_by(Booking.session_date.asc())
        )

    def get_pairing_riders(self, pairing_id: str, from_date: date) -> List[Booking]:
        """Upcoming active bookings riding on a pairing's seat."""
        return self._execute_query(
            self._build_query()
            .filter(
                and_(
                    Booking.pairing_id == pairing_id,
                    Booking.session_date >= from_date,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    Booking.holds_seat.is_(False),
                )
            )
            .order_by(Booking.session_date.asc())
        )

    def get_for_account(
        self,
        account_id: str,
        *,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Booking]:
        query = self._build_query().filter(Booking.account_id == account_id)
        if status:
            query = query.filter(Booking.status == status)
        return self._execute_query(
            query.order_by(Booking.session_date.desc(), Booking.start_time.desc()).limit(limit)
        )

    def get_for_player(
        self,
        player_id: str,
        *,
        from_date: Optional[date] = None,
        active_only: bool = False,
    ) -> List[Booking]:
        query = self._build_query().filter(Booking.player_id == player_id)
        if from_date is not None:
            query = query.filter(Booking.session_date >= from_date)
        if active_only:
            query = query.filter(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        return self._execute_query(
            query.order_by(Booking.session_date.asc(), Booking.start_time.asc())
        )

    def get_roster(self, slot_ids: Sequence[str], session_date: date) -> List[Booking]:
        """Every non-cancelled booking on the slots for a date, players loaded."""
        if not slot_ids:
            return []
        return self._execute_query(
            self._build_query()
            .options(joinedload(Booking.player))
            .filter(
                and_(
                    Booking.session_date == session_date,
                    Booking.status != BookingStatus.CANCELLED.value,
                    or_(
                        Booking.time_slot_id.in_(list(slot_ids)),
                        Booking.secondary_time_slot_id.in_(list(slot_ids)),
                    ),
                )
            )
            .order_by(Booking.start_time.asc(), Booking.created_at.asc())
        )

    def get_booked_on_date(self, session_date: date) -> List[Booking]:
        """Confirmed bookings for a date; provisional seats are not reminded."""
        return self._execute_query(
            self._build_query()
            .filter(
                and_(
                    Booking.session_date == session_date,
                    Booking.status == BookingStatus.BOOKED.value,
                )
            )
            .order_by(Booking.account_id.asc(), Booking.start_time.asc())
        )

    def get_for_schedule(self, recurring_schedule_id: str) -> List[Booking]:
        return self._execute_query(
            self._build_query()
            .filter(Booking.recurring_schedule_id == recurring_schedule_id)
            .order_by(Booking.session_date.asc())
        )
