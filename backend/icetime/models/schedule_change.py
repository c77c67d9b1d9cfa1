# backend/icetime/models/schedule_change.py
"""
Schedule change requests.

A one-time change affects a single occurrence (skip it or swap it to another
date/time); a permanent change moves the player's standing weekly schedule
from an effective date onward. Both follow the same request lifecycle.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Index, String, Text, Time
from sqlalchemy.orm import relationship
import ulid

from ..core.exceptions import InvalidStateTransitionException
from ..database import Base
from .types import UTCDateTime


class ScheduleChangeType(str, Enum):
    ONE_TIME = "one_time"
    PERMANENT = "permanent"


class OneTimeKind(str, Enum):
    SKIP = "skip"
    SWAP = "swap"


class ScheduleChangeStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    APPLIED = "applied"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    ScheduleChangeStatus.PENDING.value: frozenset(
        {
            ScheduleChangeStatus.APPROVED.value,
            ScheduleChangeStatus.REJECTED.value,
            ScheduleChangeStatus.CANCELLED.value,
        }
    ),
    ScheduleChangeStatus.APPROVED.value: frozenset(
        {ScheduleChangeStatus.APPLIED.value, ScheduleChangeStatus.CANCELLED.value}
    ),
    ScheduleChangeStatus.APPLIED.value: frozenset(),
    ScheduleChangeStatus.CANCELLED.value: frozenset(),
    ScheduleChangeStatus.REJECTED.value: frozenset(),
}

_TIMESTAMP_FIELDS = {
    ScheduleChangeStatus.APPROVED.value: "approved_at",
    ScheduleChangeStatus.APPLIED.value: "applied_at",
    ScheduleChangeStatus.CANCELLED.value: "cancelled_at",
    ScheduleChangeStatus.REJECTED.value: "rejected_at",
}


class ScheduleChange(Base):
    __tablename__ = "schedule_changes"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    player_id = Column(String(26), ForeignKey("players.id"), nullable=False, index=True)
    account_id = Column(String(64), nullable=False, index=True)
    program_type = Column(String(20), nullable=False)
    change_type = Column(String(20), nullable=False)
    one_time_kind = Column(String(10), nullable=True)

    original_day = Column(String(10), nullable=False)
    original_time = Column(Time, nullable=False)
    new_day = Column(String(10), nullable=True)
    new_time = Column(Time, nullable=True)
    specific_date = Column(Date, nullable=True, comment="Occurrence affected by a one-time change")
    replacement_date = Column(Date, nullable=True, comment="Target date of a one-time swap")
    effective_date = Column(Date, nullable=True, comment="First date of a permanent change")

    status = Column(String(20), nullable=False, default=ScheduleChangeStatus.PENDING.value)
    reason = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    original_booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=True)
    new_booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=True)

    created_by = Column(String(64), nullable=True)
    approved_by = Column(String(64), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    approved_at = Column(UTCDateTime, nullable=True)
    applied_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    rejected_at = Column(UTCDateTime, nullable=True)

    player = relationship("Player")

    __table_args__ = (
        CheckConstraint(
            "change_type IN ('one_time', 'permanent')", name="ck_schedule_changes_type"
        ),
        CheckConstraint(
            "one_time_kind IS NULL OR one_time_kind IN ('skip', 'swap')",
            name="ck_schedule_changes_one_time_kind",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'applied', 'cancelled', 'rejected')",
            name="ck_schedule_changes_status",
        ),
        Index("ix_schedule_changes_player_status", "player_id", "status"),
    )

    @property
    def is_one_time(self) -> bool:
        return self.change_type == ScheduleChangeType.ONE_TIME.value

    @property
    def is_skip(self) -> bool:
        return self.is_one_time and self.one_time_kind == OneTimeKind.SKIP.value

    def can_transition_to(self, target: ScheduleChangeStatus) -> bool:
        return target.value in ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def transition_to(self, target: ScheduleChangeStatus, at: datetime) -> None:
        """Move to ``target`` or raise if the lifecycle forbids it."""
        if not self.can_transition_to(target):
            raise InvalidStateTransitionException("schedule change", self.status, target.value)
        self.status = target.value
        setattr(self, _TIMESTAMP_FIELDS[target.value], at)

    def __repr__(self) -> str:
        return (
            f"<ScheduleChange {self.id}: {self.change_type}/{self.one_time_kind} "
            f"{self.original_day} {self.original_time} -> {self.new_day} {self.new_time} "
            f"{self.status}>"
        )
