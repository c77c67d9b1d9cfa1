# backend/icetime/services/booking_service.py
"""
Booking Service for the IceTime booking engine.

Handles all booking-related business logic including:
- Reserving a seat and debiting credits as one unit of work
- Cancellation with the 24-hour refund rule
- Payment confirmation hooks for per-session paid programs
- Moving a booking to another date/time (one-time swaps)
- Attendance marking
- Per-slot rosters and next-day session reminders

Every reservation takes the slot row locks first, re-checks occupancy under
the lock, then debits the account. Any failure rolls the whole unit back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import CREDITS_PER_SESSION, SESSION_PRICE_CENTS
from ..core.enums import DayOfWeek, PoolName, ProgramType
from ..core.exceptions import (
    DomainException,
    DuplicateBookingException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import hours_until, session_start, utcnow
from ..events.booking_events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    SessionReminder,
)
from ..models.booking import BOOKING_VARIANTS, Booking, BookingStatus
from ..models.player import Player
from ..models.time_slot import TimeSlot
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .capacity_pool_service import CapacityPoolService
from .credit_ledger_service import CreditLedgerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CancellationOutcome:
    booking: Booking
    refund_eligible: bool
    credits_refunded: int
    hours_before_start: float


@dataclass(frozen=True)
class SlotRoster:
    slot: TimeSlot
    bookings: List[Booking]

    @property
    def players(self) -> List[Player]:
        return [booking.player for booking in self.bookings]


class BookingService(BaseService):
    """Reservation, cancellation and lifecycle of bookings."""

    def __init__(
        self,
        db: Session,
        credit_service: Optional[CreditLedgerService] = None,
        pool_service: Optional[CapacityPoolService] = None,
    ):
        super().__init__(db)
        self.credit_service = credit_service or CreditLedgerService(db)
        self.pool_service = pool_service or CapacityPoolService(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.player_repository = RepositoryFactory.create_player_repository(db)
        self.time_slot_repository = RepositoryFactory.create_time_slot_repository(db)
        self.pairing_repository = RepositoryFactory.create_pairing_repository(db)

    # Reservation

    @BaseService.measure_operation("reserve")
    def reserve(
        self,
        player_id: str,
        program_type: ProgramType,
        session_date: date,
        start_time: time,
        *,
        duration_hours: int = 1,
        recurring_schedule_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Reserve a seat for a player and pay for it.

        Group sessions debit one credit in the same transaction and are
        booked immediately. Paid programs (private, semi-private, Sunday ice)
        hold the seat as ``provisional`` until ``confirm_payment``.

        Raises:
            InvalidSlotForProgramException: day/time not offered for the program
            SlotFullException: no seat left on a slot of the span
            InsufficientCreditsException: the account cannot cover the cost
            DuplicateBookingException: the player already holds this session
        """
        program_type = ProgramType(program_type)
        now = now or utcnow()
        try:
            booking = self._reserve(
                player_id,
                program_type,
                session_date,
                start_time,
                duration_hours=duration_hours,
                recurring_schedule_id=recurring_schedule_id,
                now=now,
            )
        except DomainException as exc:
            prometheus_metrics.inc_reservation(program_type.value, exc.code.lower())
            raise
        prometheus_metrics.inc_reservation(program_type.value, booking.status)
        return booking

    def _reserve(
        self,
        player_id: str,
        program_type: ProgramType,
        session_date: date,
        start_time: time,
        *,
        duration_hours: int,
        recurring_schedule_id: Optional[str],
        now: datetime,
    ) -> Booking:
        player = self._get_player(player_id)
        self._ensure_future(session_date, start_time, now)
        slots = self.pool_service.resolve_slots(
            program_type,
            DayOfWeek.from_date(session_date),
            start_time,
            duration_hours=duration_hours,
            age_category=player.age_category,
        )

        with self.transaction():
            self.pool_service.lock_slots(slots)
            self._ensure_not_duplicate(player.id, slots, session_date, start_time)

            pairing_id = self._riding_pairing_id(player.id, program_type, slots)
            if pairing_id is None:
                self.pool_service.claim_seats(slots, session_date)

            booking = self._build_booking(
                player,
                program_type,
                session_date,
                slots,
                duration_hours=duration_hours,
                holds_seat=pairing_id is None,
                pairing_id=pairing_id,
                recurring_schedule_id=recurring_schedule_id,
                now=now,
            )
            self.booking_repository.add(booking)

            if booking.credit_cost:
                self.credit_service.consume(
                    player.account_id, booking.credit_cost, booking.id, now=now
                )

            self.emit_event(self._created_event(booking))

        self.logger.info(
            "Booking reserved",
            extra={
                "booking_id": booking.id,
                "player_id": player.id,
                "program_type": program_type.value,
                "session_date": session_date.isoformat(),
                "status": booking.status,
            },
        )
        return booking

    # Cancellation

    @BaseService.measure_operation("cancel")
    def cancel(
        self,
        booking_id: str,
        *,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CancellationOutcome:
        """
        Cancel an active booking and free its seat.

        At least ``cancellation_window_hours`` before the start the credit
        cost is refunded; inside the window it is forfeited.
        """
        now = now or utcnow()
        booking = self.get_booking(booking_id)
        hours = hours_until(session_start(booking.session_date, booking.start_time), now)
        refund_eligible = hours >= settings.cancellation_window_hours
        credits_refunded = 0

        with self.transaction():
            slots = self._lock_booking(booking)
            if not booking.is_cancellable:
                raise InvalidStateTransitionException(
                    "booking", booking.status, BookingStatus.CANCELLED.value
                )
            self._release(booking, slots)
            booking.cancel(cancelled_by=actor, reason=reason, at=now)
            if refund_eligible and booking.credit_cost:
                result = self.credit_service.refund(
                    booking.account_id, booking.credit_cost, booking.id, now=now
                )
                credits_refunded = result.quantity
            self.booking_repository.flush()
            self.emit_event(
                BookingCancelled(
                    booking_id=booking.id,
                    player_id=booking.player_id,
                    account_id=booking.account_id,
                    program_type=booking.program_type,
                    session_date=booking.session_date,
                    refund_eligible=refund_eligible,
                    credits_refunded=credits_refunded,
                    reason=reason,
                )
            )

        return CancellationOutcome(
            booking=booking,
            refund_eligible=refund_eligible,
            credits_refunded=credits_refunded,
            hours_before_start=hours,
        )

    # Payment hooks

    @BaseService.measure_operation("confirm_payment")
    def confirm_payment(
        self,
        booking_id: str,
        *,
        payment_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Promote a provisional booking once the payment provider confirms."""
        booking = self.get_booking(booking_id)
        with self.transaction():
            self._lock_booking(booking)
            if booking.status != BookingStatus.PROVISIONAL.value:
                raise InvalidStateTransitionException(
                    "booking", booking.status, BookingStatus.BOOKED.value
                )
            booking.status = BookingStatus.BOOKED.value
            booking.confirmed_at = now or utcnow()
            if payment_reference:
                booking.payment_reference = payment_reference
            self.booking_repository.flush()
            self.emit_event(
                BookingConfirmed(
                    booking_id=booking.id,
                    account_id=booking.account_id,
                    payment_reference=booking.payment_reference,
                )
            )
        return booking

    @BaseService.measure_operation("payment_failed")
    def payment_failed(
        self,
        booking_id: str,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Release the seat held by a provisional booking whose payment failed."""
        booking = self.get_booking(booking_id)
        with self.transaction():
            slots = self._lock_booking(booking)
            if booking.status != BookingStatus.PROVISIONAL.value:
                raise InvalidStateTransitionException(
                    "booking", booking.status, BookingStatus.CANCELLED.value
                )
            self._release(booking, slots)
            booking.cancel(
                cancelled_by="payment_provider", reason=reason or "payment_failed", at=now or utcnow()
            )
            self.booking_repository.flush()
            self.emit_event(
                BookingCancelled(
                    booking_id=booking.id,
                    player_id=booking.player_id,
                    account_id=booking.account_id,
                    program_type=booking.program_type,
                    session_date=booking.session_date,
                    refund_eligible=False,
                    credits_refunded=0,
                    reason=booking.cancellation_reason,
                )
            )
        return booking

    # Rescheduling

    @BaseService.measure_operation("move_booking")
    def move_booking(
        self,
        booking_id: str,
        new_date: date,
        new_start_time: time,
        *,
        actor: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Move an active booking to another date/time of the same program.

        The replacement seat is claimed and the old one released in one
        transaction; credits already consumed move to the new booking, so no
        refund or second debit happens.
        """
        now = now or utcnow()
        old = self.get_booking(booking_id)
        program_type = ProgramType(old.program_type)
        player = self._get_player(old.player_id)
        self._ensure_future(new_date, new_start_time, now)
        new_slots = self.pool_service.resolve_slots(
            program_type,
            DayOfWeek.from_date(new_date),
            new_start_time,
            duration_hours=old.duration_hours,
            age_category=player.age_category,
        )
        old_slots = self._slots_for(old)

        with self.transaction():
            self.pool_service.lock_slots(list(old_slots) + list(new_slots))
            self.booking_repository.refresh(old)
            if not old.is_active:
                raise InvalidStateTransitionException("booking", old.status, "rescheduled")
            self._ensure_not_duplicate(player.id, new_slots, new_date, new_start_time)

            pairing_id = self._riding_pairing_id(player.id, program_type, new_slots)
            if pairing_id is None:
                self.pool_service.claim_seats(new_slots, new_date)

            replacement = self._build_booking(
                player,
                program_type,
                new_date,
                new_slots,
                duration_hours=old.duration_hours,
                holds_seat=pairing_id is None,
                pairing_id=pairing_id,
                recurring_schedule_id=old.recurring_schedule_id,
                now=now,
            )
            replacement.status = old.status
            replacement.credit_cost = old.credit_cost
            replacement.price_cents = old.price_cents
            replacement.payment_reference = old.payment_reference
            replacement.confirmed_at = old.confirmed_at
            replacement.rescheduled_from_booking_id = old.id
            self.booking_repository.add(replacement)

            self._release(old, old_slots)
            old.cancel(cancelled_by=actor, reason="rescheduled", at=now)
            if old.credit_cost:
                self.credit_service.reassign_consumption(old.id, replacement.id)
            self.booking_repository.flush()

            self.emit_event(
                BookingCancelled(
                    booking_id=old.id,
                    player_id=old.player_id,
                    account_id=old.account_id,
                    program_type=old.program_type,
                    session_date=old.session_date,
                    refund_eligible=False,
                    credits_refunded=0,
                    reason="rescheduled",
                )
            )
            self.emit_event(self._created_event(replacement))

        self.logger.info(
            "Booking moved",
            extra={"from_booking_id": old.id, "to_booking_id": replacement.id},
        )
        return replacement

    # Attendance

    @BaseService.measure_operation("mark_attendance")
    def mark_attendance(
        self, booking_id: str, status: BookingStatus, *, now: Optional[datetime] = None
    ) -> Booking:
        """Record that a booked session was attended (completed) or missed."""
        booking = self.get_booking(booking_id)
        if status not in (BookingStatus.COMPLETED, BookingStatus.NO_SHOW):
            raise ValidationException(
                f"Attendance status must be completed or no_show, not {status.value}"
            )
        if booking.status != BookingStatus.BOOKED.value:
            raise InvalidStateTransitionException("booking", booking.status, status.value)
        with self.transaction():
            if status == BookingStatus.COMPLETED:
                booking.complete(now or utcnow())
            else:
                booking.mark_no_show()
            self.booking_repository.flush()
        return booking

    # Reads

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking {booking_id} not found")
        return booking

    def list_for_account(
        self, account_id: str, *, status: Optional[str] = None, limit: int = 100
    ) -> List[Booking]:
        return self.booking_repository.get_for_account(account_id, status=status, limit=limit)

    def list_for_player(
        self, player_id: str, *, from_date: Optional[date] = None, active_only: bool = False
    ) -> List[Booking]:
        return self.booking_repository.get_for_player(
            player_id, from_date=from_date, active_only=active_only
        )

    def slot_roster(self, pool: PoolName, session_date: date) -> List[SlotRoster]:
        """Who is on the ice in each slot of ``pool`` on ``session_date``."""
        slots = self.pool_service.list_day_slots(pool, DayOfWeek.from_date(session_date))
        bookings = self.booking_repository.get_roster([s.id for s in slots], session_date)
        by_slot: Dict[str, List[Booking]] = {slot.id: [] for slot in slots}
        for booking in bookings:
            for slot_id in (booking.time_slot_id, booking.secondary_time_slot_id):
                if slot_id in by_slot:
                    by_slot[slot_id].append(booking)
        return [SlotRoster(slot=slot, bookings=by_slot[slot.id]) for slot in slots]

    @BaseService.measure_operation("send_session_reminders")
    def send_session_reminders(self, session_date: date) -> int:
        """Emit a ``SessionReminder`` for every confirmed booking on ``session_date``."""
        bookings = self.booking_repository.get_booked_on_date(session_date)
        for booking in bookings:
            self.emit_event(
                SessionReminder(
                    booking_id=booking.id,
                    player_id=booking.player_id,
                    account_id=booking.account_id,
                    program_type=booking.program_type,
                    session_date=booking.session_date,
                    start_time=booking.start_time.strftime("%H:%M"),
                )
            )
        self.logger.info(
            "Session reminders queued",
            extra={"session_date": session_date.isoformat(), "count": len(bookings)},
        )
        return len(bookings)

    # Helpers

    def _get_player(self, player_id: str) -> Player:
        player = self.player_repository.get_by_id(player_id)
        if player is None:
            raise NotFoundException(f"Player {player_id} not found")
        return player

    def _ensure_future(self, session_date: date, start_time: time, now: datetime) -> None:
        if session_start(session_date, start_time) <= now:
            raise ValidationException(
                "Sessions can only be booked before they start",
                code="SESSION_IN_PAST",
                details={
                    "session_date": session_date.isoformat(),
                    "start_time": start_time.strftime("%H:%M"),
                },
            )

    def _ensure_not_duplicate(
        self,
        player_id: str,
        slots: Sequence[TimeSlot],
        session_date: date,
        start_time: time,
    ) -> None:
        existing = self.booking_repository.get_active_for_player_slot(
            player_id, [s.id for s in slots], session_date
        )
        if existing is not None:
            raise DuplicateBookingException(
                player_id, session_date.isoformat(), start_time.strftime("%H:%M")
            )

    def _riding_pairing_id(
        self, player_id: str, program_type: ProgramType, slots: Sequence[TimeSlot]
    ) -> Optional[str]:
        """Pairing whose seat a semi-private booking uses instead of a new one."""
        if program_type != ProgramType.SEMI_PRIVATE or len(slots) != 1:
            return None
        pairing = self.pairing_repository.get_active_for_player(player_id)
        if pairing is not None and pairing.time_slot_id == slots[0].id:
            return pairing.id
        return None

    def _build_booking(
        self,
        player: Player,
        program_type: ProgramType,
        session_date: date,
        slots: Sequence[TimeSlot],
        *,
        duration_hours: int,
        holds_seat: bool,
        pairing_id: Optional[str],
        recurring_schedule_id: Optional[str],
        now: datetime,
    ) -> Booking:
        variant = BOOKING_VARIANTS[program_type]
        credit_cost = CREDITS_PER_SESSION.get(program_type.value, 0)
        price = SESSION_PRICE_CENTS.get(program_type.value)
        return variant(
            player_id=player.id,
            account_id=player.account_id,
            session_date=session_date,
            time_slot_id=slots[0].id,
            secondary_time_slot_id=slots[1].id if len(slots) > 1 else None,
            start_time=slots[0].start_time,
            duration_hours=duration_hours,
            holds_seat=holds_seat,
            credit_cost=credit_cost,
            price_cents=price * duration_hours if price is not None else None,
            status=(
                BookingStatus.BOOKED.value
                if variant.credit_funded
                else BookingStatus.PROVISIONAL.value
            ),
            pairing_id=pairing_id,
            recurring_schedule_id=recurring_schedule_id,
            created_at=now,
            confirmed_at=now if variant.credit_funded else None,
        )

    def _slots_for(self, booking: Booking) -> List[TimeSlot]:
        slots = []
        for slot_id in booking.slot_ids:
            slot = self.time_slot_repository.get_by_id(slot_id)
            if slot is None:
                raise NotFoundException(f"Time slot {slot_id} not found")
            slots.append(slot)
        return slots

    def _lock_booking(self, booking: Booking) -> List[TimeSlot]:
        """Lock the booking's slots and re-read it so status checks see the latest write."""
        slots = self.pool_service.lock_slots(self._slots_for(booking))
        self.booking_repository.refresh(booking)
        return slots

    def _release(self, booking: Booking, slots: Sequence[TimeSlot]) -> None:
        """
        Free the booking's seat. Caller holds the slot locks.

        Riders on an active pairing hold no seat of their own. After a pairing
        is dissolved one booking of the pair per date holds the seat for both;
        when it leaves, the seat passes to the remaining partner booking.
        """
        if not booking.holds_seat:
            return
        if booking.pairing_id:
            for other in self.booking_repository.get_active_on_slot(
                booking.time_slot_id, booking.session_date
            ):
                if (
                    other.id != booking.id
                    and other.pairing_id == booking.pairing_id
                    and not other.holds_seat
                ):
                    other.holds_seat = True
                    booking.holds_seat = False
                    return
        self.pool_service.release_seats(slots, booking.session_date)

    @staticmethod
    def _created_event(booking: Booking) -> BookingCreated:
        return BookingCreated(
            booking_id=booking.id,
            player_id=booking.player_id,
            account_id=booking.account_id,
            program_type=booking.program_type,
            session_date=booking.session_date,
            start_time=booking.start_time.strftime("%H:%M"),
            status=booking.status,
            recurring_schedule_id=booking.recurring_schedule_id,
        )
