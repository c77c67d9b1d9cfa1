"""
Concurrent reservations against a file-backed SQLite database.

Every thread uses its own session. Reservations serialize on the slot row
lock, so the winners are timing dependent but their number is not: a slot
takes exactly as many bookings as it has seats and every other contender
gets SlotFullException.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date, time
from typing import Iterator, List, Union

import pytest
from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from icetime.core.enums import DayOfWeek, PoolName, ProgramType
from icetime.core.exceptions import SlotFullException
from icetime.database import Base, create_db_engine
from icetime.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from icetime.models.player import Player
from icetime.services.booking_service import BookingService
from icetime.services.capacity_pool_service import CapacityPoolService
from icetime.services.credit_ledger_service import CreditLedgerService
from tests.conftest import GROUP_TIME, NOW, SHARED_TIME, TUESDAY, WEDNESDAY

CONTENDERS = 10


@pytest.fixture
def session_factory(tmp_path) -> Iterator[sessionmaker]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    session = factory()
    try:
        CapacityPoolService(session).sync_catalog()
    finally:
        session.close()
    yield factory
    engine.dispose()


def _seed_players(factory: sessionmaker, *, credits_each: int) -> List[str]:
    session = factory()
    try:
        credits = CreditLedgerService(session)
        player_ids = []
        for i in range(CONTENDERS):
            player = Player(account_id=f"parent-{i}", age_category="M11", full_name=f"Player {i}")
            session.add(player)
            session.commit()
            if credits_each:
                credits.purchase(player.account_id, credits_each, 4500, now=NOW)
            player_ids.append(player.id)
        return player_ids
    finally:
        session.close()


def _race(
    factory: sessionmaker,
    player_ids: List[str],
    program_type: ProgramType,
    session_date: date,
    start_time: time,
) -> List[Union[str, SlotFullException]]:
    def attempt(player_id: str) -> Union[str, SlotFullException]:
        session = factory()
        try:
            return BookingService(session).reserve(
                player_id, program_type, session_date, start_time, now=NOW
            ).id
        except SlotFullException as exc:
            return exc
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=CONTENDERS) as pool:
        return list(pool.map(attempt, player_ids))


def _active_bookings(factory: sessionmaker) -> int:
    session = factory()
    try:
        return int(
            session.query(func.count(Booking.id))
            .filter(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .scalar()
        )
    finally:
        session.close()


def test_shared_slot_goes_to_exactly_one_contender(session_factory) -> None:
    player_ids = _seed_players(session_factory, credits_each=0)

    outcomes = _race(session_factory, player_ids, ProgramType.PRIVATE, WEDNESDAY, SHARED_TIME)

    booked = [o for o in outcomes if isinstance(o, str)]
    refused = [o for o in outcomes if isinstance(o, SlotFullException)]
    assert len(booked) == 1
    assert len(refused) == CONTENDERS - 1
    assert all(exc.details["capacity"] == 1 for exc in refused)

    assert _active_bookings(session_factory) == 1
    session = session_factory()
    try:
        occupancy = CapacityPoolService(session).occupancy(
            PoolName.SHARED, DayOfWeek.WEDNESDAY, SHARED_TIME, WEDNESDAY
        )
        assert occupancy.booked == 1
    finally:
        session.close()


def test_group_slot_never_oversold(session_factory) -> None:
    player_ids = _seed_players(session_factory, credits_each=1)

    outcomes = _race(session_factory, player_ids, ProgramType.GROUP, TUESDAY, GROUP_TIME)

    booked = [o for o in outcomes if isinstance(o, str)]
    assert len(booked) == 6
    assert sum(isinstance(o, SlotFullException) for o in outcomes) == CONTENDERS - 6
    assert _active_bookings(session_factory) == 6

    session = session_factory()
    try:
        occupancy = CapacityPoolService(session).occupancy(
            PoolName.GROUP, DayOfWeek.TUESDAY, GROUP_TIME, TUESDAY
        )
        assert occupancy.booked == 6

        credits = CreditLedgerService(session)
        spent = sum(
            1 for i in range(CONTENDERS) if credits.balance(f"parent-{i}", now=NOW) == 0
        )
        assert spent == 6
    finally:
        session.close()
