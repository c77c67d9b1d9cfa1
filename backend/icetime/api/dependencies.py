# backend/icetime/api/dependencies.py
"""
Service layer dependencies for dependency injection.

Each request gets one database session; the services built on it share it,
so nested engine operations stay in one unit of work.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.booking_service import BookingService
from ..services.capacity_pool_service import CapacityPoolService
from ..services.credit_ledger_service import CreditLedgerService
from ..services.pairing_service import PairingService
from ..services.recurring_schedule_service import RecurringScheduleService
from ..services.schedule_change_service import ScheduleChangeService


def get_credit_service(db: Session = Depends(get_db)) -> CreditLedgerService:
    return CreditLedgerService(db)


def get_pool_service(db: Session = Depends(get_db)) -> CapacityPoolService:
    return CapacityPoolService(db)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_pairing_service(db: Session = Depends(get_db)) -> PairingService:
    return PairingService(db)


def get_recurring_service(db: Session = Depends(get_db)) -> RecurringScheduleService:
    return RecurringScheduleService(db)


def get_schedule_change_service(db: Session = Depends(get_db)) -> ScheduleChangeService:
    return ScheduleChangeService(db)


__all__ = [
    "get_db",
    "get_booking_service",
    "get_credit_service",
    "get_pairing_service",
    "get_pool_service",
    "get_recurring_service",
    "get_schedule_change_service",
]
