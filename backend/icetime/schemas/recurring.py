"""Recurring schedule schemas."""

from datetime import date, datetime, time
from typing import Optional

from pydantic import Field

from ..core.constants import MAX_BOOKING_DURATION_HOURS
from ..core.enums import DayOfWeek, ProgramType
from .base import StandardizedModel, StrictModel


class RecurringScheduleCreate(StrictModel):
    player_id: str
    program_type: ProgramType
    day_of_week: DayOfWeek
    start_time: time
    duration_hours: int = Field(1, ge=1, le=MAX_BOOKING_DURATION_HOURS)
    start_date: Optional[date] = Field(None, description="First date considered; today by default")


class RecurringScheduleResponse(StandardizedModel):
    id: str
    player_id: str
    account_id: str
    program_type: str
    day_of_week: str
    start_time: time
    duration_hours: int
    is_active: bool
    paused_reason: Optional[str] = None
    next_booking_date: date
    last_booked_date: Optional[date] = None
    created_at: datetime
