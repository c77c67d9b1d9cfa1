# backend/icetime/routes/v1/schedule_changes.py
"""
Schedule change routes - API v1

Endpoints:
    POST / - Request a one-time or permanent change
    GET / - List a player's requests
    POST /{change_id}/approve
    POST /{change_id}/reject
    POST /{change_id}/cancel
    POST /{change_id}/apply
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import get_schedule_change_service
from ...core.exceptions import DomainException
from ...schemas.schedule_change import (
    ScheduleChangeApplyResponse,
    ScheduleChangeCreate,
    ScheduleChangeResponse,
    ScheduleChangeReview,
)
from ...services.schedule_change_service import ScheduleChangeService
from .common import handle_domain_exception

router = APIRouter(tags=["schedule-changes-v1"])


@router.post("", response_model=ScheduleChangeResponse, status_code=status.HTTP_201_CREATED)
async def request_schedule_change(
    payload: ScheduleChangeCreate,
    change_service: ScheduleChangeService = Depends(get_schedule_change_service),
) -> ScheduleChangeResponse:
    try:
        change = await asyncio.to_thread(
            change_service.request_change,
            payload.player_id,
            payload.program_type,
            payload.change_type,
            payload.original_day,
            payload.original_time,
            one_time_kind=payload.one_time_kind,
            specific_date=payload.specific_date,
            replacement_date=payload.replacement_date,
            new_day=payload.new_day,
            new_time=payload.new_time,
            effective_date=payload.effective_date,
            reason=payload.reason,
            actor=payload.actor,
            auto_approve=payload.auto_approve,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return ScheduleChangeResponse.model_validate(change)


@router.get("", response_model=List[ScheduleChangeResponse])
async def list_schedule_changes(
    player_id: str = Query(...),
    status_filter: Optional[str] = Query(None, alias="status"),
    change_service: ScheduleChangeService = Depends(get_schedule_change_service),
) -> List[ScheduleChangeResponse]:
    changes = await asyncio.to_thread(
        change_service.list_for_player, player_id, status=status_filter
    )
    return [ScheduleChangeResponse.model_validate(c) for c in changes]


@router.post("/{change_id}/approve", response_model=ScheduleChangeResponse)
async def approve_schedule_change(
    change_id: str,
    payload: ScheduleChangeReview,
    change_service: ScheduleChangeService = Depends(get_schedule_change_service),
) -> ScheduleChangeResponse:
    try:
        change = await asyncio.to_thread(
            change_service.approve, change_id, actor=payload.actor, notes=payload.notes
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return ScheduleChangeResponse.model_validate(change)


@router.post("/{change_id}/reject", response_model=ScheduleChangeResponse)
async def reject_schedule_change(
    change_id: str,
    payload: ScheduleChangeReview,
    change_service: ScheduleChangeService = Depends(get_schedule_change_service),
) -> ScheduleChangeResponse:
    try:
        change = await asyncio.to_thread(
            change_service.reject, change_id, actor=payload.actor, notes=payload.notes
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return ScheduleChangeResponse.model_validate(change)


@router.post("/{change_id}/cancel", response_model=ScheduleChangeResponse)
async def cancel_schedule_change(
    change_id: str,
    change_service: ScheduleChangeService = Depends(get_schedule_change_service),
) -> ScheduleChangeResponse:
    try:
        change = await asyncio.to_thread(change_service.cancel, change_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return ScheduleChangeResponse.model_validate(change)


@router.post("/{change_id}/apply", response_model=ScheduleChangeApplyResponse)
async def apply_schedule_change(
    change_id: str,
    payload: ScheduleChangeReview,
    change_service: ScheduleChangeService = Depends(get_schedule_change_service),
) -> ScheduleChangeApplyResponse:
    try:
        outcome = await asyncio.to_thread(change_service.apply, change_id, actor=payload.actor)
    except DomainException as exc:
        handle_domain_exception(exc)
    return ScheduleChangeApplyResponse.model_validate(outcome)
