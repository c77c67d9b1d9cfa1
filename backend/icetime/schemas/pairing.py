"""Semi-private pairing schemas."""

from datetime import datetime, time
from typing import List, Optional

from pydantic import Field

from ..core.constants import MAX_REASON_LENGTH
from .base import StandardizedModel, StrictModel


class UnpairedRegistration(StrictModel):
    player_id: str
    preferred_days: List[str] = Field(..., min_length=1, examples=[["monday", "wednesday"]])
    preferred_times: List[str] = Field(..., min_length=1, examples=[["3-4pm", "16:15"]])
    notes: Optional[str] = Field(None, max_length=500)


class UnpairedPlayerResponse(StandardizedModel):
    id: str
    player_id: str
    age_category: str
    preferred_days: List[str]
    preferred_times: List[str]
    status: str
    waiting_since: datetime


class PairingOpportunityResponse(StandardizedModel):
    player_1_id: str
    player_2_id: str
    age_category: str
    common_days: List[str]
    common_times: List[str]
    common_time_labels: List[str]
    score: int


class PairingCommitRequest(StrictModel):
    player_1_id: str
    player_2_id: str
    day_of_week: str
    start_time: str = Field(..., description='"HH:MM" or a label such as "3-4pm"')
    actor: Optional[str] = Field(None, max_length=64)


class PairingDissolveRequest(StrictModel):
    reason: str = Field(..., min_length=1, max_length=MAX_REASON_LENGTH)
    actor: Optional[str] = Field(None, max_length=64)


class PairingResponse(StandardizedModel):
    id: str
    player_1_id: str
    player_2_id: str
    age_category: str
    day_of_week: str
    start_time: time
    time_slot_id: str
    status: str
    paired_at: datetime
    dissolved_at: Optional[datetime] = None
    dissolution_reason: Optional[str] = None
