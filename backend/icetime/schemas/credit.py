"""Credit ledger schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, model_validator

from .base import StandardizedModel, StrictModel


class CreditPurchaseRequest(StrictModel):
    """Either a catalogue package or an explicit quantity and price."""

    package_type: Optional[str] = Field(None, description="single, 10_pack, 20_pack, 50_pack")
    quantity: Optional[int] = Field(None, gt=0)
    price_paid_cents: Optional[int] = Field(None, ge=0)
    validity_days: Optional[int] = Field(None, gt=0)
    payment_reference: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def _package_or_quantity(self) -> "CreditPurchaseRequest":
        if self.package_type is None and (self.quantity is None or self.price_paid_cents is None):
            raise ValueError("Provide package_type, or quantity and price_paid_cents")
        if self.package_type is not None and self.quantity is not None:
            raise ValueError("package_type and quantity are mutually exclusive")
        return self


class CreditAdjustRequest(StrictModel):
    delta: int = Field(..., description="Credits to add (positive) or remove (negative)")
    actor: str = Field(..., min_length=1, max_length=64)
    note: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def _non_zero(self) -> "CreditAdjustRequest":
        if self.delta == 0:
            raise ValueError("delta must be non-zero")
        return self


class CreditBatchResponse(StandardizedModel):
    id: str
    quantity: int
    remaining: int
    price_paid_cents: int
    source: str
    package_type: Optional[str] = None
    status: str
    purchased_at: datetime
    expires_at: datetime


class CreditAccountResponse(StandardizedModel):
    account_id: str
    balance: int
    total_credits: int
    purchased: int
    consumed: int
    refunded: int
    adjusted: int
    expired: int
    batches: List[CreditBatchResponse] = Field(default_factory=list)


class CreditAdjustResponse(StandardizedModel):
    account_id: str
    balance: int


class LedgerEntryResponse(StandardizedModel):
    id: str
    entry_type: str
    quantity: int
    balance_after: int
    batch_id: Optional[str] = None
    booking_id: Optional[str] = None
    actor: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime
