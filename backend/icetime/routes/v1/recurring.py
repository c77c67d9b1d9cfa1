# backend/icetime/routes/v1/recurring.py
"""
Recurring schedule routes - API v1

Endpoints:
    POST / - Create a standing weekly booking
    GET / - List schedules of an account
    POST /{schedule_id}/pause - Pause
    POST /{schedule_id}/resume - Resume without back-filling
    DELETE /{schedule_id} - Delete (bookings are kept)
"""

import asyncio
from typing import List

from fastapi import APIRouter, Depends, Query, Response, status

from ...api.dependencies import get_recurring_service
from ...core.exceptions import DomainException
from ...schemas.recurring import RecurringScheduleCreate, RecurringScheduleResponse
from ...services.recurring_schedule_service import RecurringScheduleService
from .common import handle_domain_exception

router = APIRouter(tags=["recurring-v1"])


@router.post("", response_model=RecurringScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_recurring_schedule(
    payload: RecurringScheduleCreate,
    recurring_service: RecurringScheduleService = Depends(get_recurring_service),
) -> RecurringScheduleResponse:
    try:
        schedule = await asyncio.to_thread(
            recurring_service.create_schedule,
            payload.player_id,
            payload.program_type,
            payload.day_of_week,
            payload.start_time,
            duration_hours=payload.duration_hours,
            start_date=payload.start_date,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return RecurringScheduleResponse.model_validate(schedule)


@router.get("", response_model=List[RecurringScheduleResponse])
async def list_recurring_schedules(
    account_id: str = Query(...),
    recurring_service: RecurringScheduleService = Depends(get_recurring_service),
) -> List[RecurringScheduleResponse]:
    schedules = await asyncio.to_thread(recurring_service.list_for_account, account_id)
    return [RecurringScheduleResponse.model_validate(s) for s in schedules]


@router.post("/{schedule_id}/pause", response_model=RecurringScheduleResponse)
async def pause_recurring_schedule(
    schedule_id: str,
    recurring_service: RecurringScheduleService = Depends(get_recurring_service),
) -> RecurringScheduleResponse:
    try:
        schedule = await asyncio.to_thread(recurring_service.pause, schedule_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return RecurringScheduleResponse.model_validate(schedule)


@router.post("/{schedule_id}/resume", response_model=RecurringScheduleResponse)
async def resume_recurring_schedule(
    schedule_id: str,
    recurring_service: RecurringScheduleService = Depends(get_recurring_service),
) -> RecurringScheduleResponse:
    try:
        schedule = await asyncio.to_thread(recurring_service.resume, schedule_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return RecurringScheduleResponse.model_validate(schedule)


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recurring_schedule(
    schedule_id: str,
    recurring_service: RecurringScheduleService = Depends(get_recurring_service),
) -> Response:
    try:
        await asyncio.to_thread(recurring_service.delete_schedule, schedule_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
