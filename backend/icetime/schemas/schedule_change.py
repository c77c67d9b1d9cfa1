"""Schedule change request schemas."""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field

from ..core.constants import MAX_REASON_LENGTH
from ..core.enums import DayOfWeek, ProgramType
from ..models.schedule_change import OneTimeKind, ScheduleChangeType
from .base import StandardizedModel, StrictModel
from .booking import BookingResponse
from .pairing import PairingOpportunityResponse


class ScheduleChangeCreate(StrictModel):
    player_id: str
    program_type: ProgramType
    change_type: ScheduleChangeType
    original_day: DayOfWeek
    original_time: time
    one_time_kind: Optional[OneTimeKind] = None
    specific_date: Optional[date] = None
    replacement_date: Optional[date] = None
    new_day: Optional[DayOfWeek] = None
    new_time: Optional[time] = None
    effective_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)
    actor: Optional[str] = Field(None, max_length=64)
    auto_approve: bool = False


class ScheduleChangeReview(StrictModel):
    actor: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = Field(None, max_length=500)


class ScheduleChangeResponse(StandardizedModel):
    id: str
    player_id: str
    program_type: str
    change_type: str
    one_time_kind: Optional[str] = None
    original_day: str
    original_time: time
    new_day: Optional[str] = None
    new_time: Optional[time] = None
    specific_date: Optional[date] = None
    replacement_date: Optional[date] = None
    effective_date: Optional[date] = None
    status: str
    reason: Optional[str] = None
    admin_notes: Optional[str] = None
    original_booking_id: Optional[str] = None
    new_booking_id: Optional[str] = None
    created_at: datetime
    approved_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None


class ScheduleChangeApplyResponse(StandardizedModel):
    change: ScheduleChangeResponse
    cancelled_booking: Optional[BookingResponse] = None
    new_booking: Optional[BookingResponse] = None
    schedules_updated: int = 0
    dissolved_pairing_id: Optional[str] = None
    opportunities: List[PairingOpportunityResponse] = Field(default_factory=list)
