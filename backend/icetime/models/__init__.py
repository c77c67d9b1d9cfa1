"""
Database models for the IceTime booking engine.

The models are organized by functionality:
- Player reference data
- Credit ledger (accounts, batches, consumptions, ledger entries)
- Slot catalog and per-date occupancy
- Bookings (single-table variants per program)
- Recurring schedules, pairings and schedule change requests
"""

from .booking import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_VARIANTS,
    Booking,
    BookingStatus,
    GroupBooking,
    PrivateBooking,
    SemiPrivateBooking,
    SundayBooking,
)
from .credit import (
    CreditAccount,
    CreditBatch,
    CreditBatchSource,
    CreditBatchStatus,
    CreditConsumption,
    CreditLedgerEntry,
    LedgerEntryType,
)
from .pairing import Pairing, PairingStatus, UnpairedPlayer, UnpairedStatus
from .player import Player
from .recurring_schedule import PauseReason, RecurringSchedule
from .schedule_change import (
    OneTimeKind,
    ScheduleChange,
    ScheduleChangeStatus,
    ScheduleChangeType,
)
from .time_slot import SlotOccupancy, TimeSlot

__all__ = [
    "ACTIVE_BOOKING_STATUSES",
    "BOOKING_VARIANTS",
    "Booking",
    "BookingStatus",
    "CreditAccount",
    "CreditBatch",
    "CreditBatchSource",
    "CreditBatchStatus",
    "CreditConsumption",
    "CreditLedgerEntry",
    "GroupBooking",
    "LedgerEntryType",
    "OneTimeKind",
    "Pairing",
    "PairingStatus",
    "PauseReason",
    "Player",
    "PrivateBooking",
    "RecurringSchedule",
    "ScheduleChange",
    "ScheduleChangeStatus",
    "ScheduleChangeType",
    "SemiPrivateBooking",
    "SlotOccupancy",
    "SundayBooking",
    "TimeSlot",
    "UnpairedPlayer",
    "UnpairedStatus",
]
