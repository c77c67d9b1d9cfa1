# backend/icetime/models/credit.py
"""
Credit ledger models.

Credits live at the parent (account) level and are shared by all children.
Each purchase is kept as its own batch so distinct expiries are preserved;
the ledger entries form the enumerable history used for reporting and for
checking that no operation created or destroyed credits.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .types import UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreditBatchStatus(str, Enum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"


class CreditBatchSource(str, Enum):
    PURCHASE = "purchase"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"


class LedgerEntryType(str, Enum):
    PURCHASE = "purchase"
    CONSUME = "consume"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"
    EXPIRE = "expire"


class CreditAccount(Base):
    """
    One credit account per parent.

    ``total_credits`` always equals the remaining quantity across active
    batches. ``lock_version`` is bumped to take the per-account row lock.
    """

    __tablename__ = "credit_accounts"

    id = Column(String(64), primary_key=True)
    total_credits = Column(Integer, nullable=False, default=0)
    lock_version = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=_utcnow)

    batches = relationship(
        "CreditBatch",
        back_populates="account",
        order_by="CreditBatch.expires_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (CheckConstraint("total_credits >= 0", name="ck_credit_accounts_non_negative"),)

    def __repr__(self) -> str:
        return f"<CreditAccount {self.id}: total={self.total_credits}>"


class CreditBatch(Base):
    """A purchased (or re-issued) lot of credits with its own expiry."""

    __tablename__ = "credit_batches"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    account_id = Column(String(64), ForeignKey("credit_accounts.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    remaining = Column(Integer, nullable=False)
    price_paid_cents = Column(Integer, nullable=False, default=0)
    source = Column(String(20), nullable=False, default=CreditBatchSource.PURCHASE.value)
    package_type = Column(String(20), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=CreditBatchStatus.ACTIVE.value)
    purchased_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    expires_at = Column(UTCDateTime, nullable=False)
    source_booking_id = Column(String(26), nullable=True)

    account = relationship("CreditAccount", back_populates="batches")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_credit_batches_quantity_positive"),
        CheckConstraint(
            "remaining >= 0 AND remaining <= quantity", name="ck_credit_batches_remaining_range"
        ),
        CheckConstraint(
            "status IN ('active', 'exhausted', 'expired')", name="ck_credit_batches_status"
        ),
        CheckConstraint(
            "source IN ('purchase', 'refund', 'adjustment')", name="ck_credit_batches_source"
        ),
        Index("ix_credit_batches_account_status_expiry", "account_id", "status", "expires_at"),
    )

    def is_expired(self, as_of: Optional[datetime] = None) -> bool:
        now = as_of or _utcnow()
        return self.status == CreditBatchStatus.EXPIRED.value or self.expires_at <= now

    def is_usable(self, as_of: Optional[datetime] = None) -> bool:
        return (
            self.status == CreditBatchStatus.ACTIVE.value
            and self.remaining > 0
            and not self.is_expired(as_of)
        )

    def __repr__(self) -> str:
        return (
            f"<CreditBatch {self.id}: {self.remaining}/{self.quantity} "
            f"expires={self.expires_at} status={self.status}>"
        )


class CreditConsumption(Base):
    """Which batch a booking drew from, for refund traceability."""

    __tablename__ = "credit_consumptions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    account_id = Column(String(64), ForeignKey("credit_accounts.id"), nullable=False, index=True)
    batch_id = Column(String(26), ForeignKey("credit_batches.id"), nullable=False)
    booking_id = Column(String(26), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    refunded_quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    batch = relationship("CreditBatch")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_credit_consumptions_quantity_positive"),
        CheckConstraint(
            "refunded_quantity >= 0 AND refunded_quantity <= quantity",
            name="ck_credit_consumptions_refund_range",
        ),
    )

    @property
    def refundable(self) -> int:
        return int(self.quantity) - int(self.refunded_quantity or 0)


class CreditLedgerEntry(Base):
    """Append-only history of every credit movement on an account."""

    __tablename__ = "credit_ledger_entries"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    account_id = Column(String(64), ForeignKey("credit_accounts.id"), nullable=False)
    entry_type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False, comment="Signed change to the usable balance")
    balance_after = Column(Integer, nullable=False)
    batch_id = Column(String(26), ForeignKey("credit_batches.id"), nullable=True)
    booking_id = Column(String(26), nullable=True, index=True)
    actor = Column(String(64), nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint(
            "entry_type IN ('purchase', 'consume', 'refund', 'adjustment', 'expire')",
            name="ck_credit_ledger_entry_type",
        ),
        Index("ix_credit_ledger_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<CreditLedgerEntry {self.entry_type} {self.quantity:+d} account={self.account_id}>"
