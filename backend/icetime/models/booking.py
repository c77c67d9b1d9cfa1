# backend/icetime/models/booking.py
"""
Booking model for the IceTime booking engine.

A booking is one occupation of a slot by one player for one program on one
concrete date. Program-specific variants share a single table through
SQLAlchemy single-table inheritance keyed on ``program_type``, so each
variant carries only the behaviour that applies to it.
"""

from datetime import date, datetime, timezone
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import ProgramType
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PROVISIONAL = "provisional"  # Seat held, awaiting external payment confirmation
    BOOKED = "booked"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PROVISIONAL.value, BookingStatus.BOOKED.value)


class Booking(Base):
    """
    Common booking record.

    ``holds_seat`` is False only for semi-private bookings that ride on an
    active pairing's seat; those never touch the occupancy counter.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    player_id = Column(String(26), ForeignKey("players.id"), nullable=False)
    account_id = Column(String(64), nullable=False, index=True)
    program_type = Column(String(20), nullable=False)

    session_date = Column(Date, nullable=False, index=True)
    time_slot_id = Column(String(26), ForeignKey("time_slots.id"), nullable=False)
    secondary_time_slot_id = Column(String(26), ForeignKey("time_slots.id"), nullable=True)
    start_time = Column(Time, nullable=False)
    duration_hours = Column(Integer, nullable=False, default=1)
    holds_seat = Column(Boolean, nullable=False, default=True)

    credit_cost = Column(Integer, nullable=False, default=0)
    price_cents = Column(Integer, nullable=True)
    payment_reference = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.BOOKED.value, index=True)
    created_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    confirmed_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancelled_by = Column(String(64), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    recurring_schedule_id = Column(
        String(26), ForeignKey("recurring_schedules.id"), nullable=True, index=True
    )
    pairing_id = Column(String(26), ForeignKey("pairings.id"), nullable=True)
    rescheduled_from_booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=True)

    player = relationship("Player")
    time_slot = relationship("TimeSlot", foreign_keys=[time_slot_id])
    secondary_time_slot = relationship("TimeSlot", foreign_keys=[secondary_time_slot_id])
    rescheduled_from = relationship("Booking", remote_side=[id], uselist=False, post_update=True)

    __mapper_args__ = {"polymorphic_on": program_type}

    __table_args__ = (
        CheckConstraint(
            "status IN ('provisional', 'booked', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "program_type IN ('group', 'private', 'semi_private', 'sunday')",
            name="ck_bookings_program_type",
        ),
        CheckConstraint("duration_hours IN (1, 2)", name="ck_bookings_duration"),
        CheckConstraint("credit_cost >= 0", name="ck_bookings_credit_cost_non_negative"),
        Index("ix_bookings_slot_date_status", "time_slot_id", "session_date", "status"),
        Index("ix_bookings_player_date", "player_id", "session_date"),
    )

    credit_funded = False

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} {self.id}: player={self.player_id}, "
            f"date={self.session_date}, time={self.start_time}, status={self.status}>"
        )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def is_cancellable(self) -> bool:
        return self.is_active

    @property
    def slot_ids(self) -> list[str]:
        ids = [self.time_slot_id]
        if self.secondary_time_slot_id:
            ids.append(self.secondary_time_slot_id)
        return ids

    def cancel(self, *, cancelled_by: Optional[str], reason: Optional[str], at: datetime) -> None:
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = at
        self.cancelled_by = cancelled_by
        self.cancellation_reason = reason
        logger.info("Booking %s cancelled by %s", self.id, cancelled_by)

    def complete(self, at: Optional[datetime] = None) -> None:
        self.status = BookingStatus.COMPLETED.value
        self.completed_at = at or datetime.now(timezone.utc)

    def mark_no_show(self) -> None:
        self.status = BookingStatus.NO_SHOW.value

    def is_upcoming(self, today: date) -> bool:
        return self.session_date >= today and self.is_active

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "account_id": self.account_id,
            "program_type": self.program_type,
            "session_date": self.session_date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "duration_hours": self.duration_hours,
            "credit_cost": self.credit_cost,
            "price_cents": self.price_cents,
            "status": self.status,
            "pairing_id": self.pairing_id,
            "recurring_schedule_id": self.recurring_schedule_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }


class GroupBooking(Booking):
    """Group training, paid with one credit per session."""

    __mapper_args__ = {"polymorphic_identity": ProgramType.GROUP.value}

    credit_funded = True


class PrivateBooking(Booking):
    """One-on-one training; may span two consecutive shared-pool slots."""

    __mapper_args__ = {"polymorphic_identity": ProgramType.PRIVATE.value}


class SemiPrivateBooking(Booking):
    """Two-player training; rides on the pairing's seat when one is active."""

    __mapper_args__ = {"polymorphic_identity": ProgramType.SEMI_PRIVATE.value}


class SundayBooking(Booking):
    """Sunday ice practice, paid per session and limited by age category."""

    __mapper_args__ = {"polymorphic_identity": ProgramType.SUNDAY.value}


BOOKING_VARIANTS = {
    ProgramType.GROUP: GroupBooking,
    ProgramType.PRIVATE: PrivateBooking,
    ProgramType.SEMI_PRIVATE: SemiPrivateBooking,
    ProgramType.SUNDAY: SundayBooking,
}
