# backend/tests/conftest.py
"""
Pytest configuration for the IceTime booking engine.

Tests run against an in-memory SQLite database (one shared connection via
StaticPool). Every test gets fresh tables with the slot catalog seeded.
"""

import os

# Set testing mode BEFORE any icetime imports so the engine is built on the test URL
os.environ["is_testing"] = "true"
os.environ.setdefault("CI", "true")

from datetime import date, datetime, time, timezone
from typing import Callable, Iterator, List

import pytest
from sqlalchemy.orm import Session

from icetime.core.config import settings
from icetime.database import Base, SessionLocal, engine
from icetime.events.booking_events import EngineEvent, EngineEvents
import icetime.models  # noqa: F401  (register tables on Base.metadata)
from icetime.models.player import Player
from icetime.services.capacity_pool_service import CapacityPoolService
from icetime.services.credit_ledger_service import CreditLedgerService

settings.is_testing = True

# Monday 2 March 2026, 07:00 at the rink (EST)
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
TUESDAY = date(2026, 3, 3)
WEDNESDAY = date(2026, 3, 4)
THURSDAY = date(2026, 3, 5)
FRIDAY = date(2026, 3, 6)
SUNDAY = date(2026, 3, 15)

GROUP_TIME = time(16, 30)
SHARED_TIME = time(15, 0)


@pytest.fixture(autouse=True)
def _isolate_event_listeners() -> Iterator[None]:
    EngineEvents.clear()
    yield
    EngineEvents.clear()


@pytest.fixture
def db() -> Iterator[Session]:
    """Fresh schema and catalog for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    CapacityPoolService(session).sync_catalog()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_player(db: Session) -> Callable[..., Player]:
    counter = {"n": 0}

    def _make(
        account_id: str = "parent-1", age_category: str = "M11", full_name: str = ""
    ) -> Player:
        counter["n"] += 1
        player = Player(
            account_id=account_id,
            age_category=age_category,
            full_name=full_name or f"Player {counter['n']}",
        )
        db.add(player)
        db.commit()
        return player

    return _make


@pytest.fixture
def give_credits(db: Session) -> Callable[..., None]:
    def _give(account_id: str, quantity: int, *, validity_days: int = 365) -> None:
        CreditLedgerService(db).purchase(
            account_id,
            quantity,
            quantity * 4500,
            validity_days=validity_days,
            now=NOW,
        )

    return _give


@pytest.fixture
def captured_events() -> List[EngineEvent]:
    events: List[EngineEvent] = []
    EngineEvents.register(events.append)
    return events
