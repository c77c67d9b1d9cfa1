# backend/icetime/services/capacity_pool_service.py
"""
Capacity pool registry.

Owns the slot catalog and answers how many seats of a (pool, day, time) are
taken on a given date. Three pools exist: ``group`` and ``sunday`` are
fixed-capacity and isolated; ``shared`` is the single exclusive pool that
private and semi-private sessions compete for, first writer wins.

Seat counts are kept in ``SlotOccupancy`` rows and only change while the
slot row lock is held. An active pairing holds its weekly slot on every date
and is counted once on top of the dated counter.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.enums import PROGRAM_POOLS, DayOfWeek, PoolName, ProgramType
from ..core.exceptions import InvalidSlotForProgramException, SlotFullException
from ..core.slot_catalog import build_catalog
from ..events.booking_events import OccupancyChanged
from ..models.time_slot import TimeSlot
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Occupancy:
    booked: int
    capacity: int
    pairing_held: bool = False

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.booked, 0)

    @property
    def is_full(self) -> bool:
        return self.booked >= self.capacity


@dataclass(frozen=True)
class SlotAvailability:
    time_slot_id: str
    pool: str
    day_of_week: str
    start_time: time
    position: int
    capacity: int
    booked: int
    eligible_categories: List[str]

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.booked, 0)


def _format_time(value: time) -> str:
    return value.strftime("%H:%M")


def catalog_order(slot: TimeSlot) -> tuple:
    """Stable lock order: pool, weekday, position."""
    return (slot.pool, DayOfWeek(slot.day_of_week).index, slot.position)


class CapacityPoolService(BaseService):
    """Slot catalog, occupancy and per-slot locking."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.time_slot_repository = RepositoryFactory.create_time_slot_repository(db)
        self.pairing_repository = RepositoryFactory.create_pairing_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    # Catalog

    @BaseService.measure_operation("sync_catalog")
    def sync_catalog(self) -> int:
        """
        Materialize the static catalog into ``time_slots``.

        Existing rows are updated in place (capacity, eligibility) so bookings
        keep pointing at the same slot ids. Returns the number of new rows.
        """
        created = 0
        with self.transaction():
            for definition in build_catalog():
                slot = self.time_slot_repository.get_by_key(
                    definition.pool.value, definition.day_of_week.value, definition.start_time
                )
                eligible = (
                    sorted(definition.eligible_categories)
                    if definition.eligible_categories
                    else None
                )
                if slot is None:
                    self.time_slot_repository.create(
                        pool=definition.pool.value,
                        day_of_week=definition.day_of_week.value,
                        start_time=definition.start_time,
                        end_time=definition.end_time,
                        position=definition.position,
                        capacity=definition.capacity,
                        eligible_categories=eligible,
                        lock_version=0,
                    )
                    created += 1
                    continue
                slot.end_time = definition.end_time
                slot.position = definition.position
                slot.capacity = definition.capacity
                slot.eligible_categories = eligible
        if created:
            self.logger.info("Slot catalog synchronized", extra={"created": created})
        return created

    def get_slot(self, pool: PoolName, day: DayOfWeek, start_time: time) -> Optional[TimeSlot]:
        return self.time_slot_repository.get_by_key(pool.value, day.value, start_time)

    def list_day_slots(self, pool: PoolName, day: DayOfWeek) -> List[TimeSlot]:
        return self.time_slot_repository.list_for_day(pool.value, day.value)

    def successor(self, slot: TimeSlot) -> Optional[TimeSlot]:
        """Next slot of the same (pool, day) in catalog order, if any."""
        return self.time_slot_repository.get_by_position(
            slot.pool, slot.day_of_week, slot.position + 1
        )

    def resolve_slots(
        self,
        program_type: ProgramType,
        day: DayOfWeek,
        start_time: time,
        *,
        duration_hours: int = 1,
        age_category: Optional[str] = None,
    ) -> List[TimeSlot]:
        """
        Validate a program/day/time request against the catalog.

        Returns the slots the session occupies (two for a 2-hour session).

        Raises:
            InvalidSlotForProgramException: the day/time is not offered for
                the program, the duration is not allowed, or the player's age
                category is not eligible.
        """
        pool = PROGRAM_POOLS[program_type]
        label = _format_time(start_time)

        def _reject(reason: Optional[str] = None) -> InvalidSlotForProgramException:
            return InvalidSlotForProgramException(program_type.value, day.value, label, reason)

        if duration_hours not in (1, 2):
            raise _reject("Sessions last one or two hours")
        if duration_hours == 2 and program_type != ProgramType.PRIVATE:
            raise _reject("Only private sessions can be booked for two hours")

        slot = self.get_slot(pool, day, start_time)
        if slot is None:
            raise _reject()
        if age_category is not None and not slot.accepts_category(age_category):
            raise _reject(f"{label} on {day.value} is not open to {age_category} players")

        slots = [slot]
        if duration_hours == 2:
            following = self.successor(slot)
            if following is None:
                raise _reject("A two-hour session cannot start at the last slot of the day")
            slots.append(following)
        return slots

    # Occupancy

    def slot_occupancy(self, slot: TimeSlot, session_date: Optional[date]) -> Occupancy:
        """
        Seats taken on ``slot`` for ``session_date``.

        With ``session_date=None`` only the weekly pairing hold is counted.
        """
        booked = 0
        if session_date is not None:
            counter = self.time_slot_repository.get_occupancy(slot.id, session_date)
            booked = int(counter.booked_count) if counter else 0
        pairing_held = False
        if slot.pool == PoolName.SHARED.value:
            pairing_held = self.pairing_repository.get_active_on_slot(slot.id) is not None
        return Occupancy(
            booked=booked + (1 if pairing_held else 0),
            capacity=int(slot.capacity),
            pairing_held=pairing_held,
        )

    def occupancy(
        self, pool: PoolName, day: DayOfWeek, start_time: time, session_date: date
    ) -> Occupancy:
        slot = self.get_slot(pool, day, start_time)
        if slot is None:
            raise InvalidSlotForProgramException(pool.value, day.value, _format_time(start_time))
        return self.slot_occupancy(slot, session_date)

    def is_available(
        self,
        pool: PoolName,
        day: DayOfWeek,
        start_time: time,
        duration_hours: int,
        session_date: date,
    ) -> bool:
        """
        True when every slot the session would occupy has a free seat.

        Unknown slots and a 2-hour span past the end of the day are simply
        unavailable.
        """
        slot = self.get_slot(pool, day, start_time)
        if slot is None:
            return False
        slots = [slot]
        if duration_hours == 2:
            following = self.successor(slot)
            if following is None:
                return False
            slots.append(following)
        return all(not self.slot_occupancy(s, session_date).is_full for s in slots)

    def day_availability(self, pool: PoolName, session_date: date) -> List[SlotAvailability]:
        """All slots of ``pool`` on the weekday of ``session_date`` with their seats."""
        day = DayOfWeek.from_date(session_date)
        slots = self.list_day_slots(pool, day)
        counts = self.time_slot_repository.get_booked_counts([s.id for s in slots], session_date)
        held: Dict[str, bool] = {}
        if pool == PoolName.SHARED:
            held = {
                p.time_slot_id: True
                for p in self.pairing_repository.get_active_on_slots([s.id for s in slots])
            }
        return [
            SlotAvailability(
                time_slot_id=slot.id,
                pool=slot.pool,
                day_of_week=slot.day_of_week,
                start_time=slot.start_time,
                position=slot.position,
                capacity=slot.capacity,
                booked=counts.get(slot.id, 0) + (1 if held.get(slot.id) else 0),
                eligible_categories=list(slot.eligible_categories or []),
            )
            for slot in slots
        ]

    def is_weekly_slot_free(self, slot: TimeSlot, from_date: date) -> bool:
        """
        A weekly hold (pairing) needs the slot free on every upcoming date:
        no active pairing and no seat-holding booking from ``from_date`` on.
        """
        if self.pairing_repository.get_active_on_slot(slot.id) is not None:
            return False
        return not self.booking_repository.get_upcoming_seat_holders(slot.id, from_date)

    # Locking and seat accounting (caller holds the transaction)

    def lock_slots(self, slots: Iterable[TimeSlot]) -> List[TimeSlot]:
        """Take the row lock on each slot in catalog order."""
        ordered = sorted({s.id: s for s in slots}.values(), key=catalog_order)
        self.time_slot_repository.lock_slots([s.id for s in ordered])
        return ordered

    def claim_seats(self, slots: Sequence[TimeSlot], session_date: date) -> List[Occupancy]:
        """
        Take one seat on every slot, or none.

        Must run inside a transaction with the slots locked.

        Raises:
            SlotFullException: any slot in the span has no free seat.
        """
        for slot in slots:
            current = self.slot_occupancy(slot, session_date)
            if current.is_full:
                raise SlotFullException(
                    slot.pool,
                    session_date.isoformat(),
                    _format_time(slot.start_time),
                    current.booked,
                    current.capacity,
                )

        for slot in slots:
            counter = self.time_slot_repository.get_or_create_occupancy(slot.id, session_date)
            counter.booked_count += 1
        # Counters are re-read with populate_existing, so they must hit the database first.
        self.time_slot_repository.flush()
        return [self._changed(slot, session_date) for slot in slots]

    def release_seats(self, slots: Sequence[TimeSlot], session_date: date) -> None:
        """Give back one seat on every slot. Must run with the slots locked."""
        for slot in slots:
            counter = self.time_slot_repository.get_occupancy(slot.id, session_date)
            if counter is None or counter.booked_count <= 0:
                self.logger.error(
                    "Occupancy underflow prevented",
                    extra={"time_slot_id": slot.id, "session_date": session_date.isoformat()},
                )
                continue
            counter.booked_count -= 1
        self.time_slot_repository.flush()
        for slot in slots:
            self._changed(slot, session_date)

    def announce_weekly_change(self, slot: TimeSlot) -> None:
        """Publish the new state of a weekly slot after a pairing change."""
        self._changed(slot, None)

    def _changed(self, slot: TimeSlot, session_date: Optional[date]) -> Occupancy:
        current = self.slot_occupancy(slot, session_date)
        self.emit_event(
            OccupancyChanged(
                pool=slot.pool,
                day_of_week=slot.day_of_week,
                start_time=_format_time(slot.start_time),
                session_date=session_date,
                booked=current.booked,
                capacity=current.capacity,
            )
        )
        return current
