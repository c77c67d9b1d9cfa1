"""Typed booking engine events and dispatcher helpers."""

from __future__ import annotations

from datetime import date, datetime
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger("icetime.events.booking")


class EngineEvent(BaseModel):
    """Base class for booking engine domain events."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def event_type(self) -> str:
        return self.__class__.__name__


EngineEventListener = Callable[[EngineEvent], None]


class EngineEvents:
    """Registry for booking engine event listeners."""

    _listeners: List[EngineEventListener] = []

    @classmethod
    def register(cls, listener: EngineEventListener) -> None:
        if listener not in cls._listeners:
            cls._listeners.append(listener)

    @classmethod
    def unregister(cls, listener: EngineEventListener) -> None:
        cls._listeners = [existing for existing in cls._listeners if existing is not listener]

    @classmethod
    def clear(cls) -> None:
        cls._listeners = []

    @classmethod
    def listeners(cls) -> Sequence[EngineEventListener]:
        return tuple(cls._listeners)

    @classmethod
    def dispatch(cls, event: EngineEvent) -> None:
        for listener in list(cls._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Engine event listener error: %s", listener)
        logger.info("engine_event=%s payload=%s", event.event_type, event.model_dump(mode="json"))


class OccupancyChanged(EngineEvent):
    pool: str
    day_of_week: str
    start_time: str
    session_date: Optional[date] = None
    booked: int
    capacity: int


class BookingCreated(EngineEvent):
    booking_id: str
    player_id: str
    account_id: str
    program_type: str
    session_date: date
    start_time: str
    status: str
    recurring_schedule_id: Optional[str] = None


class BookingConfirmed(EngineEvent):
    booking_id: str
    account_id: str
    payment_reference: Optional[str] = None


class BookingCancelled(EngineEvent):
    booking_id: str
    player_id: str
    account_id: str
    program_type: str
    session_date: date
    refund_eligible: bool
    credits_refunded: int
    reason: Optional[str] = None


class CreditsLow(EngineEvent):
    account_id: str
    balance: int
    threshold: int


class CreditsExpiring(EngineEvent):
    account_id: str
    credits: int
    expires_at: datetime
    balance: int


class InsufficientCredits(EngineEvent):
    account_id: str
    player_id: str
    credits_required: int
    credits_available: int
    recurring_schedule_id: Optional[str] = None


class PairingFound(EngineEvent):
    pairing_id: str
    player_ids: Tuple[str, str]
    age_category: str
    day_of_week: str
    start_time: str


class PairingDissolved(EngineEvent):
    pairing_id: str
    player_ids: Tuple[str, str]
    reason: str
    actor: Optional[str] = None


class RecurringBookingSkipped(EngineEvent):
    recurring_schedule_id: str
    player_id: str
    session_date: date
    reason: str


class RecurringSchedulePaused(EngineEvent):
    recurring_schedule_id: str
    player_id: str
    reason: str


class SessionReminder(EngineEvent):
    booking_id: str
    player_id: str
    account_id: str
    program_type: str
    session_date: date
    start_time: str


class ScheduleChangeApplied(EngineEvent):
    schedule_change_id: str
    player_id: str
    change_type: str


def register_listener(listener: EngineEventListener) -> None:
    """Register an in-process listener for engine events."""

    EngineEvents.register(listener)


def unregister_listener(listener: EngineEventListener) -> None:
    """Remove a previously registered listener."""

    EngineEvents.unregister(listener)


def emit(event: EngineEvent) -> EngineEvent:
    EngineEvents.dispatch(event)
    return event


def emit_insufficient_credits(
    *,
    account_id: str,
    player_id: str,
    credits_required: int,
    credits_available: int,
    recurring_schedule_id: Optional[str] = None,
) -> InsufficientCredits:
    event = InsufficientCredits(
        account_id=account_id,
        player_id=player_id,
        credits_required=credits_required,
        credits_available=credits_available,
        recurring_schedule_id=recurring_schedule_id,
    )
    EngineEvents.dispatch(event)
    return event


def emit_recurring_booking_skipped(
    *, recurring_schedule_id: str, player_id: str, session_date: date, reason: str
) -> RecurringBookingSkipped:
    event = RecurringBookingSkipped(
        recurring_schedule_id=recurring_schedule_id,
        player_id=player_id,
        session_date=session_date,
        reason=reason,
    )
    EngineEvents.dispatch(event)
    return event


def emit_recurring_schedule_paused(
    *, recurring_schedule_id: str, player_id: str, reason: str
) -> RecurringSchedulePaused:
    event = RecurringSchedulePaused(
        recurring_schedule_id=recurring_schedule_id, player_id=player_id, reason=reason
    )
    EngineEvents.dispatch(event)
    return event


__all__ = [
    "EngineEvent",
    "EngineEventListener",
    "EngineEvents",
    "OccupancyChanged",
    "BookingCreated",
    "BookingConfirmed",
    "BookingCancelled",
    "CreditsLow",
    "CreditsExpiring",
    "InsufficientCredits",
    "PairingFound",
    "PairingDissolved",
    "RecurringBookingSkipped",
    "RecurringSchedulePaused",
    "SessionReminder",
    "ScheduleChangeApplied",
    "register_listener",
    "unregister_listener",
    "emit",
    "emit_insufficient_credits",
    "emit_recurring_booking_skipped",
    "emit_recurring_schedule_paused",
]
