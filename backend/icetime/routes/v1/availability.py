# backend/icetime/routes/v1/availability.py
"""
Availability routes - API v1

    GET /{pool}/{session_date}        - Slots of a pool on a date with remaining seats
    GET /{pool}/{session_date}/roster - Players booked into each slot (coach view)
"""

import asyncio
from datetime import date

from fastapi import APIRouter, Depends

from ...api.dependencies import get_booking_service, get_pool_service
from ...core.enums import DayOfWeek, PoolName
from ...schemas.booking import (
    DayAvailabilityResponse,
    DayRosterResponse,
    RosterEntryResponse,
    SlotAvailabilityResponse,
    SlotRosterResponse,
)
from ...services.booking_service import BookingService
from ...services.capacity_pool_service import CapacityPoolService

router = APIRouter(tags=["availability-v1"])


@router.get("/{pool}/{session_date}", response_model=DayAvailabilityResponse)
async def get_day_availability(
    pool: PoolName,
    session_date: date,
    pool_service: CapacityPoolService = Depends(get_pool_service),
) -> DayAvailabilityResponse:
    slots = await asyncio.to_thread(pool_service.day_availability, pool, session_date)
    return DayAvailabilityResponse(
        pool=pool,
        session_date=session_date,
        day_of_week=DayOfWeek.from_date(session_date).value,
        slots=[SlotAvailabilityResponse.model_validate(slot) for slot in slots],
    )


@router.get("/{pool}/{session_date}/roster", response_model=DayRosterResponse)
async def get_day_roster(
    pool: PoolName,
    session_date: date,
    booking_service: BookingService = Depends(get_booking_service),
) -> DayRosterResponse:
    rosters = await asyncio.to_thread(booking_service.slot_roster, pool, session_date)
    return DayRosterResponse(
        pool=pool,
        session_date=session_date,
        day_of_week=DayOfWeek.from_date(session_date).value,
        slots=[
            SlotRosterResponse(
                time_slot_id=roster.slot.id,
                start_time=roster.slot.start_time,
                capacity=roster.slot.capacity,
                players=[
                    RosterEntryResponse(
                        booking_id=booking.id,
                        player_id=booking.player_id,
                        player_name=booking.player.full_name,
                        age_category=booking.player.age_category,
                        account_id=booking.account_id,
                        program_type=booking.program_type,
                        status=booking.status,
                    )
                    for booking in roster.bookings
                ],
            )
            for roster in rosters
        ],
    )
