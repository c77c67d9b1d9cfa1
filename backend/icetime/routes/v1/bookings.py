# backend/icetime/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService.

Endpoints:
    POST / - Reserve a seat (group sessions debit a credit)
    GET / - List bookings of an account
    GET /{booking_id} - Booking details
    POST /{booking_id}/cancel - Cancel with the 24-hour refund rule
    POST /{booking_id}/confirm-payment - Payment provider confirmed
    POST /{booking_id}/payment-failed - Payment provider declined
    POST /{booking_id}/attendance - Mark completed or no-show
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import get_booking_service
from ...core.constants import DEFAULT_QUERY_LIMIT
from ...core.exceptions import DomainException
from ...schemas.booking import (
    BookingAttendance,
    BookingCancel,
    BookingConfirmPayment,
    BookingCreate,
    BookingPaymentFailed,
    BookingResponse,
    CancellationResponse,
)
from ...services.booking_service import BookingService
from .common import handle_domain_exception

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Reserve a seat for a player."""
    try:
        booking = await asyncio.to_thread(
            booking_service.reserve,
            payload.player_id,
            payload.program_type,
            payload.session_date,
            payload.start_time,
            duration_hours=payload.duration_hours,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return BookingResponse.model_validate(booking)


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    account_id: str = Query(..., description="Parent account"),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=500),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    bookings = await asyncio.to_thread(
        booking_service.list_for_account, account_id, status=status_filter, limit=limit
    )
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.get_booking, booking_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=CancellationResponse)
async def cancel_booking(
    booking_id: str,
    payload: BookingCancel,
    booking_service: BookingService = Depends(get_booking_service),
) -> CancellationResponse:
    """Cancel a booking; refunded only with enough notice."""
    try:
        outcome = await asyncio.to_thread(
            booking_service.cancel, booking_id, actor=payload.actor, reason=payload.reason
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return CancellationResponse.model_validate(outcome)


@router.post("/{booking_id}/confirm-payment", response_model=BookingResponse)
async def confirm_payment(
    booking_id: str,
    payload: BookingConfirmPayment,
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.confirm_payment,
            booking_id,
            payment_reference=payload.payment_reference,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/payment-failed", response_model=BookingResponse)
async def payment_failed(
    booking_id: str,
    payload: BookingPaymentFailed,
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.payment_failed, booking_id, reason=payload.reason
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/attendance", response_model=BookingResponse)
async def mark_attendance(
    booking_id: str,
    payload: BookingAttendance,
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.mark_attendance, booking_id, payload.status
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return BookingResponse.model_validate(booking)
