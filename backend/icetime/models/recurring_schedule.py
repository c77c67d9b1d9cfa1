# backend/icetime/models/recurring_schedule.py
"""Standing weekly booking intents."""

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, Date, ForeignKey, Index, Integer, String, Time
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime


class PauseReason(str, Enum):
    INSUFFICIENT_CREDITS = "insufficient_credits"
    USER_PAUSED = "user_paused"
    SLOT_UNAVAILABLE = "slot_unavailable"


class RecurringSchedule(Base):
    """
    A player's standing weekly booking for one program at one day/time.

    ``next_booking_date`` is the next concrete date the processor will try to
    materialize. It only moves forward.
    """

    __tablename__ = "recurring_schedules"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    player_id = Column(String(26), ForeignKey("players.id"), nullable=False)
    account_id = Column(String(64), nullable=False, index=True)
    program_type = Column(String(20), nullable=False)
    day_of_week = Column(String(10), nullable=False)
    start_time = Column(Time, nullable=False)
    duration_hours = Column(Integer, nullable=False, default=1)

    is_active = Column(Boolean, nullable=False, default=True)
    paused_reason = Column(String(32), nullable=True)
    next_booking_date = Column(Date, nullable=False)
    last_booked_date = Column(Date, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(UTCDateTime, nullable=True, onupdate=lambda: datetime.now(timezone.utc))

    player = relationship("Player")

    __table_args__ = (
        CheckConstraint(
            "paused_reason IS NULL OR paused_reason IN "
            "('insufficient_credits', 'user_paused', 'slot_unavailable')",
            name="ck_recurring_schedules_paused_reason",
        ),
        Index("ix_recurring_schedules_due", "is_active", "next_booking_date"),
        Index("ix_recurring_schedules_player", "player_id", "program_type"),
    )

    def pause(self, reason: PauseReason) -> None:
        self.is_active = False
        self.paused_reason = reason.value

    def resume(self) -> None:
        self.is_active = True
        self.paused_reason = None

    def advance(self, interval_days: int, booked_on: Optional[date] = None) -> None:
        if booked_on is not None:
            self.last_booked_date = booked_on
        self.next_booking_date = self.next_booking_date + timedelta(days=interval_days)

    def __repr__(self) -> str:
        return (
            f"<RecurringSchedule {self.id}: {self.program_type} {self.day_of_week} "
            f"{self.start_time} next={self.next_booking_date} active={self.is_active}>"
        )
