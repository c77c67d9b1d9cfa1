"""Booking and availability schemas."""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field

from ..core.constants import MAX_BOOKING_DURATION_HOURS, MAX_REASON_LENGTH
from ..core.enums import PoolName, ProgramType
from ..models.booking import BookingStatus
from .base import StandardizedModel, StrictModel


class BookingCreate(StrictModel):
    player_id: str = Field(..., description="Player to book")
    program_type: ProgramType
    session_date: date
    start_time: time = Field(..., description="Slot start in rink local time")
    duration_hours: int = Field(1, ge=1, le=MAX_BOOKING_DURATION_HOURS)


class BookingCancel(StrictModel):
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)
    actor: Optional[str] = Field(None, max_length=64)


class BookingConfirmPayment(StrictModel):
    payment_reference: Optional[str] = Field(None, max_length=255)


class BookingPaymentFailed(StrictModel):
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class BookingAttendance(StrictModel):
    status: BookingStatus


class BookingResponse(StandardizedModel):
    id: str
    player_id: str
    account_id: str
    program_type: str
    session_date: date
    start_time: time
    duration_hours: int
    status: str
    holds_seat: bool
    credit_cost: int
    price_cents: Optional[int] = None
    payment_reference: Optional[str] = None
    pairing_id: Optional[str] = None
    recurring_schedule_id: Optional[str] = None
    rescheduled_from_booking_id: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class CancellationResponse(StandardizedModel):
    booking: BookingResponse
    refund_eligible: bool
    credits_refunded: int
    hours_before_start: float


class SlotAvailabilityResponse(StandardizedModel):
    time_slot_id: str
    start_time: time
    position: int
    capacity: int
    booked: int
    remaining: int
    eligible_categories: List[str] = Field(default_factory=list)


class DayAvailabilityResponse(StandardizedModel):
    pool: PoolName
    session_date: date
    day_of_week: str
    slots: List[SlotAvailabilityResponse]


class RosterEntryResponse(StandardizedModel):
    booking_id: str
    player_id: str
    player_name: str
    age_category: str
    account_id: str
    program_type: ProgramType
    status: BookingStatus


class SlotRosterResponse(StandardizedModel):
    time_slot_id: str
    start_time: time
    capacity: int
    players: List[RosterEntryResponse]


class DayRosterResponse(StandardizedModel):
    pool: PoolName
    session_date: date
    day_of_week: str
    slots: List[SlotRosterResponse]
