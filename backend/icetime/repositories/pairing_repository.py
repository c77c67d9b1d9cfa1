# backend/icetime/repositories/pairing_repository.py
"""Unpaired player and pairing queries."""

import logging
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..models.pairing import Pairing, PairingStatus, UnpairedPlayer, UnpairedStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PairingRepository(BaseRepository[Pairing]):
    def __init__(self, db: Session):
        super().__init__(db, Pairing)

    def get_active_on_slot(self, time_slot_id: str) -> Optional[Pairing]:
        return self._execute_first(
            self._build_query().filter(
                and_(
                    Pairing.time_slot_id == time_slot_id,
                    Pairing.status == PairingStatus.ACTIVE.value,
                )
            )
        )

    def get_active_on_slots(self, time_slot_ids: List[str]) -> List[Pairing]:
        if not time_slot_ids:
            return []
        return self._execute_query(
            self._build_query().filter(
                and_(
                    Pairing.time_slot_id.in_(time_slot_ids),
                    Pairing.status == PairingStatus.ACTIVE.value,
                )
            )
        )

    def get_active_for_player(self, player_id: str) -> Optional[Pairing]:
        return self._execute_first(
            self._build_query().filter(
                and_(
                    Pairing.status == PairingStatus.ACTIVE.value,
                    or_(Pairing.player_1_id == player_id, Pairing.player_2_id == player_id),
                )
            )
        )

    def list_pairings(self, *, status: Optional[str] = None) -> List[Pairing]:
        query = self._build_query()
        if status:
            query = query.filter(Pairing.status == status)
        return self._execute_query(query.order_by(Pairing.paired_at.desc()))


class UnpairedPlayerRepository(BaseRepository[UnpairedPlayer]):
    def __init__(self, db: Session):
        super().__init__(db, UnpairedPlayer)

    def get_for_player(self, player_id: str) -> Optional[UnpairedPlayer]:
        return self.find_one_by(player_id=player_id)

    def get_waiting(self, age_category: Optional[str] = None) -> List[UnpairedPlayer]:
        query = self._build_query().filter(UnpairedPlayer.status == UnpairedStatus.WAITING.value)
        if age_category:
            query = query.filter(UnpairedPlayer.age_category == age_category)
        return self._execute_query(
            query.order_by(UnpairedPlayer.waiting_since.asc(), UnpairedPlayer.player_id.asc())
        )
