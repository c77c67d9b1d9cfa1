# backend/icetime/models/time_slot.py
"""
Time slot catalog rows and per-date occupancy counters.

``TimeSlot`` rows are materialized from the static catalog and double as the
lock target for a (pool, day, time) key. ``SlotOccupancy`` is the explicit
counter of active bookings for one slot on one concrete date; it is only
written while the slot lock is held.
"""

from datetime import date, datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import DayOfWeek, PoolName
from ..database import Base
from .types import StringArrayType, UTCDateTime


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    pool = Column(String(20), nullable=False)
    day_of_week = Column(String(10), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=True)
    position = Column(Integer, nullable=False, comment="Order within (pool, day)")
    capacity = Column(Integer, nullable=False)
    eligible_categories = Column(StringArrayType, nullable=True)
    lock_version = Column(Integer, nullable=False, default=0)

    occupancies = relationship("SlotOccupancy", back_populates="time_slot")

    __table_args__ = (
        UniqueConstraint("pool", "day_of_week", "start_time", name="uq_time_slots_key"),
        UniqueConstraint("pool", "day_of_week", "position", name="uq_time_slots_position"),
        CheckConstraint("capacity > 0", name="ck_time_slots_capacity_positive"),
        CheckConstraint("pool IN ('group', 'shared', 'sunday')", name="ck_time_slots_pool"),
    )

    @property
    def pool_name(self) -> PoolName:
        return PoolName(self.pool)

    @property
    def day(self) -> DayOfWeek:
        return DayOfWeek(self.day_of_week)

    @property
    def label(self) -> str:
        return f"{self.pool}:{self.day_of_week}:{self.start_time.strftime('%H:%M')}"

    def accepts_category(self, age_category: str) -> bool:
        if not self.eligible_categories:
            return True
        return age_category in self.eligible_categories

    def __repr__(self) -> str:
        return f"<TimeSlot {self.label} cap={self.capacity}>"


class SlotOccupancy(Base):
    __tablename__ = "slot_occupancy"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    time_slot_id = Column(String(26), ForeignKey("time_slots.id"), nullable=False)
    session_date = Column(Date, nullable=False)
    booked_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    time_slot = relationship("TimeSlot", back_populates="occupancies")

    __table_args__ = (
        UniqueConstraint("time_slot_id", "session_date", name="uq_slot_occupancy_slot_date"),
        CheckConstraint("booked_count >= 0", name="ck_slot_occupancy_non_negative"),
    )

    def __repr__(self) -> str:
        session_date: date = self.session_date
        return f"<SlotOccupancy {self.time_slot_id} {session_date}: {self.booked_count}>"
