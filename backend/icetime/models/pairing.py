# backend/icetime/models/pairing.py
"""
Semi-private pairing models.

An ``UnpairedPlayer`` row is a player's standing request to be matched; a
``Pairing`` is the committed match holding one seat in the shared pool on a
weekly (day, time).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, String, Text, Time
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import StringArrayType, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnpairedStatus(str, Enum):
    WAITING = "waiting"
    PAIRED = "paired"
    INACTIVE = "inactive"


class PairingStatus(str, Enum):
    ACTIVE = "active"
    DISSOLVED = "dissolved"


class UnpairedPlayer(Base):
    __tablename__ = "unpaired_players"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    player_id = Column(String(26), ForeignKey("players.id"), nullable=False, unique=True)
    age_category = Column(String(20), nullable=False)
    preferred_days = Column(StringArrayType, nullable=False)
    preferred_times = Column(StringArrayType, nullable=False, comment="HH:MM slot starts")
    status = Column(String(20), nullable=False, default=UnpairedStatus.WAITING.value)
    waiting_since = Column(UTCDateTime, nullable=False, default=_utcnow)
    notes = Column(Text, nullable=True)

    player = relationship("Player")

    __table_args__ = (
        CheckConstraint(
            "status IN ('waiting', 'paired', 'inactive')", name="ck_unpaired_players_status"
        ),
        Index("ix_unpaired_players_status_category", "status", "age_category"),
    )

    @property
    def is_waiting(self) -> bool:
        return self.status == UnpairedStatus.WAITING.value

    def __repr__(self) -> str:
        return f"<UnpairedPlayer {self.player_id} {self.age_category} {self.status}>"


class Pairing(Base):
    __tablename__ = "pairings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    player_1_id = Column(String(26), ForeignKey("players.id"), nullable=False)
    player_2_id = Column(String(26), ForeignKey("players.id"), nullable=False)
    age_category = Column(String(20), nullable=False)
    day_of_week = Column(String(10), nullable=False)
    start_time = Column(Time, nullable=False)
    time_slot_id = Column(String(26), ForeignKey("time_slots.id"), nullable=False)
    status = Column(String(20), nullable=False, default=PairingStatus.ACTIVE.value)
    paired_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    paired_by = Column(String(64), nullable=True)
    dissolved_at = Column(UTCDateTime, nullable=True)
    dissolved_by = Column(String(64), nullable=True)
    dissolution_reason = Column(Text, nullable=True)

    time_slot = relationship("TimeSlot")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'dissolved')", name="ck_pairings_status"),
        CheckConstraint("player_1_id <> player_2_id", name="ck_pairings_distinct_players"),
        Index("ix_pairings_slot_status", "time_slot_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == PairingStatus.ACTIVE.value

    @property
    def player_ids(self) -> tuple[str, str]:
        return (self.player_1_id, self.player_2_id)

    def involves(self, player_id: str) -> bool:
        return player_id in self.player_ids

    def partner_of(self, player_id: str) -> Optional[str]:
        if player_id == self.player_1_id:
            return self.player_2_id
        if player_id == self.player_2_id:
            return self.player_1_id
        return None

    def dissolve(self, *, reason: str, actor: Optional[str], at: datetime) -> None:
        self.status = PairingStatus.DISSOLVED.value
        self.dissolution_reason = reason
        self.dissolved_by = actor
        self.dissolved_at = at

    def __repr__(self) -> str:
        return (
            f"<Pairing {self.id}: {self.player_1_id}+{self.player_2_id} "
            f"{self.day_of_week} {self.start_time} {self.status}>"
        )
