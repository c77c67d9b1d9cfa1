"""
Repository layer for the IceTime booking engine.

Repositories own every query; services never touch the session's query API
directly. Use RepositoryFactory to build them.
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .credit_repository import CreditRepository
from .factory import RepositoryFactory
from .pairing_repository import PairingRepository, UnpairedPlayerRepository
from .recurring_schedule_repository import RecurringScheduleRepository
from .schedule_change_repository import ScheduleChangeRepository
from .time_slot_repository import TimeSlotRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "CreditRepository",
    "PairingRepository",
    "RecurringScheduleRepository",
    "RepositoryFactory",
    "ScheduleChangeRepository",
    "TimeSlotRepository",
    "UnpairedPlayerRepository",
]
