"""Booking engine domain events and listener registry."""

from .booking_events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    CreditsLow,
    EngineEvent,
    EngineEventListener,
    EngineEvents,
    InsufficientCredits,
    OccupancyChanged,
    PairingDissolved,
    PairingFound,
    RecurringBookingSkipped,
    RecurringSchedulePaused,
    ScheduleChangeApplied,
    emit,
    register_listener,
    unregister_listener,
)

__all__ = [
    "EngineEvent",
    "EngineEventListener",
    "EngineEvents",
    "OccupancyChanged",
    "BookingCreated",
    "BookingConfirmed",
    "BookingCancelled",
    "CreditsLow",
    "InsufficientCredits",
    "PairingFound",
    "PairingDissolved",
    "RecurringBookingSkipped",
    "RecurringSchedulePaused",
    "ScheduleChangeApplied",
    "emit",
    "register_listener",
    "unregister_listener",
]
