# backend/icetime/repositories/factory.py
"""
Repository Factory for the IceTime booking engine.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .credit_repository import CreditRepository
    from .pairing_repository import PairingRepository, UnpairedPlayerRepository
    from .recurring_schedule_repository import RecurringScheduleRepository
    from .schedule_change_repository import ScheduleChangeRepository
    from .time_slot_repository import TimeSlotRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_base_repository(db: Session, model: Any) -> BaseRepository:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_player_repository(db: Session) -> BaseRepository:
        """Players are read-only reference data; the generic repository suffices."""
        from ..models.player import Player

        return BaseRepository(db, Player)

    @staticmethod
    def create_credit_repository(db: Session) -> "CreditRepository":
        from .credit_repository import CreditRepository

        return CreditRepository(db)

    @staticmethod
    def create_time_slot_repository(db: Session) -> "TimeSlotRepository":
        from .time_slot_repository import TimeSlotRepository

        return TimeSlotRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_recurring_schedule_repository(db: Session) -> "RecurringScheduleRepository":
        from .recurring_schedule_repository import RecurringScheduleRepository

        return RecurringScheduleRepository(db)

    @staticmethod
    def create_pairing_repository(db: Session) -> "PairingRepository":
        from .pairing_repository import PairingRepository

        return PairingRepository(db)

    @staticmethod
    def create_unpaired_player_repository(db: Session) -> "UnpairedPlayerRepository":
        from .pairing_repository import UnpairedPlayerRepository

        return UnpairedPlayerRepository(db)

    @staticmethod
    def create_schedule_change_repository(db: Session) -> "ScheduleChangeRepository":
        from .schedule_change_repository import ScheduleChangeRepository

        return ScheduleChangeRepository(db)
