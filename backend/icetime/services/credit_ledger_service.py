# backend/icetime/services/credit_ledger_service.py
"""
Credit ledger service.

Credits are held per parent account as separately expiring batches.
Consumption always draws from the batch with the nearest expiry; refunds go
back to the batch they came from while it is still valid, otherwise a new
refund batch is issued. Every movement is written to the ledger so the
account total can be reconciled against its history.

All writers for one account serialize on the account row lock. When called
from a reservation the slot locks are already held (lock order: slots, then
account).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import CREDIT_PACKAGES
from ..core.exceptions import (
    InsufficientCreditsException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import utcnow
from ..events.booking_events import CreditsExpiring, CreditsLow
from ..models.credit import (
    CreditAccount,
    CreditBatch,
    CreditBatchSource,
    CreditBatchStatus,
    CreditLedgerEntry,
    LedgerEntryType,
)
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchDebit:
    batch_id: str
    quantity: int
    expires_at: datetime


@dataclass(frozen=True)
class ConsumptionResult:
    account_id: str
    booking_id: Optional[str]
    quantity: int
    debits: List[BatchDebit]
    balance_after: int


@dataclass(frozen=True)
class RefundResult:
    account_id: str
    booking_id: str
    quantity: int
    restored: List[BatchDebit] = field(default_factory=list)
    reissued_batch_id: Optional[str] = None
    balance_after: int = 0


@dataclass(frozen=True)
class CreditSummary:
    account_id: str
    balance: int
    total_credits: int
    purchased: int
    consumed: int
    refunded: int
    adjusted: int
    expired: int

    @property
    def ledger_total(self) -> int:
        return self.purchased + self.refunded + self.adjusted - self.consumed - self.expired

    @property
    def is_conserved(self) -> bool:
        """Account total matches what the ledger history says it should be."""
        return self.total_credits == self.ledger_total


class CreditLedgerService(BaseService):
    """Purchases, consumption, refunds, adjustments and expiry of credits."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.credit_repository = RepositoryFactory.create_credit_repository(db)

    # Writers

    @BaseService.measure_operation("credit_purchase")
    def purchase(
        self,
        account_id: str,
        quantity: int,
        price_paid_cents: int,
        *,
        validity_days: Optional[int] = None,
        package_type: Optional[str] = None,
        payment_reference: Optional[str] = None,
        actor: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CreditBatch:
        """Append a new batch. Batches are never merged."""
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        if price_paid_cents < 0:
            raise ValueError("price_paid_cents must not be negative")
        now = now or utcnow()
        days = validity_days or settings.credit_validity_days

        with self.transaction():
            account = self._lock_or_create_account(account_id)
            batch = self.credit_repository.add_batch(
                account_id=account_id,
                quantity=quantity,
                remaining=quantity,
                price_paid_cents=price_paid_cents,
                source=CreditBatchSource.PURCHASE.value,
                package_type=package_type,
                payment_reference=payment_reference,
                status=CreditBatchStatus.ACTIVE.value,
                purchased_at=now,
                expires_at=now + timedelta(days=days),
            )
            account.total_credits += quantity
            self._record(
                account,
                LedgerEntryType.PURCHASE,
                quantity,
                now=now,
                batch_id=batch.id,
                actor=actor,
                note=package_type,
            )

        self.logger.info(
            "Credits purchased",
            extra={"account_id": account_id, "quantity": quantity, "batch_id": batch.id},
        )
        return batch

    def purchase_package(
        self,
        account_id: str,
        package_type: str,
        *,
        payment_reference: Optional[str] = None,
        actor: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CreditBatch:
        package = CREDIT_PACKAGES.get(package_type)
        if package is None:
            raise ValidationException(
                f"Unknown credit package: {package_type}",
                code="UNKNOWN_PACKAGE",
                details={"package_type": package_type, "available": sorted(CREDIT_PACKAGES)},
            )
        return self.purchase(
            account_id,
            package["credits"],
            package["price_cents"],
            package_type=package_type,
            payment_reference=payment_reference,
            actor=actor,
            now=now,
        )

    @BaseService.measure_operation("credit_consume")
    def consume(
        self,
        account_id: str,
        quantity: int,
        booking_id: Optional[str],
        *,
        now: Optional[datetime] = None,
    ) -> ConsumptionResult:
        """
        Debit ``quantity`` credits, nearest expiry first.

        Raises:
            InsufficientCreditsException: unexpired balance is short; nothing
                is debited.
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        now = now or utcnow()

        with self.transaction():
            account = self.credit_repository.lock_account(account_id)
            if account is None:
                raise InsufficientCreditsException(quantity, 0)

            batches = self.credit_repository.get_usable_batches(account_id, now)
            available = sum(batch.remaining for batch in batches)
            if available < quantity:
                raise InsufficientCreditsException(quantity, available)

            debits = self._draw(account, batches, quantity, now=now, booking_id=booking_id)
            balance_after = available - quantity

            if balance_after < settings.low_credit_threshold:
                self.emit_event(
                    CreditsLow(
                        account_id=account_id,
                        balance=balance_after,
                        threshold=settings.low_credit_threshold,
                    )
                )

        return ConsumptionResult(
            account_id=account_id,
            booking_id=booking_id,
            quantity=quantity,
            debits=debits,
            balance_after=balance_after,
        )

    @BaseService.measure_operation("credit_refund")
    def refund(
        self,
        account_id: str,
        quantity: int,
        booking_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> RefundResult:
        """
        Return credits consumed for ``booking_id``.

        Credits go back to their source batch if it is still valid, otherwise
        into a new refund batch. The refund is capped at what the booking
        consumed and has not already had refunded.
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        now = now or utcnow()

        with self.transaction():
            account = self.credit_repository.lock_account(account_id)
            if account is None:
                raise NotFoundException(f"Credit account {account_id} not found")

            consumptions = self.credit_repository.get_consumptions_for_booking(booking_id)
            refundable = sum(c.refundable for c in consumptions)
            if quantity > refundable:
                self.logger.warning(
                    "Refund capped at consumed credits",
                    extra={
                        "booking_id": booking_id,
                        "requested": quantity,
                        "refundable": refundable,
                    },
                )
            to_refund = min(quantity, refundable)
            if to_refund == 0:
                return RefundResult(
                    account_id=account_id,
                    booking_id=booking_id,
                    quantity=0,
                    balance_after=self.credit_repository.get_usable_balance(account_id, now),
                )

            restored: List[BatchDebit] = []
            reissue = 0
            left = to_refund
            for consumption in consumptions:
                if left == 0:
                    break
                portion = min(left, consumption.refundable)
                if portion <= 0:
                    continue
                consumption.refunded_quantity += portion
                left -= portion

                batch = consumption.batch
                if batch.status != CreditBatchStatus.EXPIRED.value and batch.expires_at > now:
                    batch.remaining += portion
                    batch.status = CreditBatchStatus.ACTIVE.value
                    account.total_credits += portion
                    restored.append(BatchDebit(batch.id, portion, batch.expires_at))
                    self._record(
                        account,
                        LedgerEntryType.REFUND,
                        portion,
                        now=now,
                        batch_id=batch.id,
                        booking_id=booking_id,
                    )
                else:
                    reissue += portion

            reissued_batch_id = None
            if reissue:
                batch = self.credit_repository.add_batch(
                    account_id=account_id,
                    quantity=reissue,
                    remaining=reissue,
                    price_paid_cents=0,
                    source=CreditBatchSource.REFUND.value,
                    status=CreditBatchStatus.ACTIVE.value,
                    purchased_at=now,
                    expires_at=now + timedelta(days=settings.refund_validity_days),
                    source_booking_id=booking_id,
                )
                reissued_batch_id = batch.id
                account.total_credits += reissue
                self._record(
                    account,
                    LedgerEntryType.REFUND,
                    reissue,
                    now=now,
                    batch_id=batch.id,
                    booking_id=booking_id,
                    note="source batch expired; reissued",
                )

            self.credit_repository.flush()
            balance_after = self.credit_repository.get_usable_balance(account_id, now)

        return RefundResult(
            account_id=account_id,
            booking_id=booking_id,
            quantity=to_refund,
            restored=restored,
            reissued_batch_id=reissued_batch_id,
            balance_after=balance_after,
        )

    @BaseService.measure_operation("credit_adjust")
    def adjust(
        self,
        account_id: str,
        delta: int,
        *,
        actor: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Admin correction. Positive deltas add an adjustment batch; negative
        deltas draw down like a consumption. Returns the new balance.
        """
        if delta == 0:
            raise ValueError("delta must be non-zero")
        now = now or utcnow()

        with self.transaction():
            account = self._lock_or_create_account(account_id)
            if delta > 0:
                batch = self.credit_repository.add_batch(
                    account_id=account_id,
                    quantity=delta,
                    remaining=delta,
                    price_paid_cents=0,
                    source=CreditBatchSource.ADJUSTMENT.value,
                    status=CreditBatchStatus.ACTIVE.value,
                    purchased_at=now,
                    expires_at=now + timedelta(days=settings.credit_validity_days),
                )
                account.total_credits += delta
                self._record(
                    account,
                    LedgerEntryType.ADJUSTMENT,
                    delta,
                    now=now,
                    batch_id=batch.id,
                    actor=actor,
                    note=note,
                )
            else:
                batches = self.credit_repository.get_usable_batches(account_id, now)
                available = sum(batch.remaining for batch in batches)
                if available < -delta:
                    raise InsufficientCreditsException(-delta, available)
                self._draw(
                    account,
                    batches,
                    -delta,
                    now=now,
                    entry_type=LedgerEntryType.ADJUSTMENT,
                    actor=actor,
                    note=note,
                )
            self.credit_repository.flush()
            balance = self.credit_repository.get_usable_balance(account_id, now)

        self.logger.info(
            "Credit adjustment applied",
            extra={"account_id": account_id, "delta": delta, "actor": actor},
        )
        return balance

    @BaseService.measure_operation("credit_expire_batches")
    def expire_batches(self, as_of: Optional[datetime] = None) -> Dict[str, int]:
        """
        Close every active batch whose expiry has passed.

        Each account is handled in its own transaction. Expired batches keep
        their ``remaining`` value for audit; the account total drops by it.
        Returns credits expired per account.
        """
        as_of = as_of or utcnow()
        expired: Dict[str, int] = {}

        for account_id in self.credit_repository.get_expirable_account_ids(as_of):
            with self.transaction():
                account = self.credit_repository.lock_account(account_id)
                if account is None:
                    continue
                total = 0
                for batch in self.credit_repository.get_expired_active_batches(account_id, as_of):
                    batch.status = CreditBatchStatus.EXPIRED.value
                    if batch.remaining:
                        total += batch.remaining
                        account.total_credits -= batch.remaining
                        self._record(
                            account,
                            LedgerEntryType.EXPIRE,
                            -batch.remaining,
                            now=as_of,
                            batch_id=batch.id,
                        )
                expired[account_id] = total

        if expired:
            self.logger.info(
                "Expired credit batches",
                extra={"accounts": len(expired), "credits": sum(expired.values())},
            )
        return expired

    @BaseService.measure_operation("credit_warn_expiring")
    def warn_expiring(self, *, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Emit ``CreditsExpiring`` for every account holding credits that expire
        within ``credit_expiry_warning_days``. Returns those credits per account.
        """
        now = now or utcnow()
        until = now + timedelta(days=settings.credit_expiry_warning_days)
        expiring: Dict[str, int] = {}
        first_expiry: Dict[str, datetime] = {}
        for batch in self.credit_repository.get_expiring_batches(now, until):
            expiring[batch.account_id] = expiring.get(batch.account_id, 0) + batch.remaining
            first_expiry.setdefault(batch.account_id, batch.expires_at)

        for account_id, credits in expiring.items():
            self.emit_event(
                CreditsExpiring(
                    account_id=account_id,
                    credits=credits,
                    expires_at=first_expiry[account_id],
                    balance=self.balance(account_id, now=now),
                )
            )
        return expiring

    def reassign_consumption(self, from_booking_id: str, to_booking_id: str) -> int:
        """Point a booking's consumptions at its replacement booking."""
        with self.transaction():
            consumptions = self.credit_repository.get_consumptions_for_booking(from_booking_id)
            for consumption in consumptions:
                consumption.booking_id = to_booking_id
            self.credit_repository.flush()
        return len(consumptions)

    # Readers

    def balance(self, account_id: str, *, now: Optional[datetime] = None) -> int:
        """Credits usable right now (unexpired, active batches)."""
        return self.credit_repository.get_usable_balance(account_id, now or utcnow())

    def get_account(self, account_id: str) -> Optional[CreditAccount]:
        return self.credit_repository.get_account(account_id)

    def get_batches(self, account_id: str) -> List[CreditBatch]:
        return self.credit_repository.get_batches(account_id)

    def history(self, account_id: str, *, limit: Optional[int] = None) -> List[CreditLedgerEntry]:
        return self.credit_repository.get_ledger_entries(account_id, limit=limit)

    def summary(self, account_id: str, *, now: Optional[datetime] = None) -> CreditSummary:
        account = self.credit_repository.get_account(account_id)
        totals = self.credit_repository.get_ledger_totals(account_id)
        return CreditSummary(
            account_id=account_id,
            balance=self.balance(account_id, now=now),
            total_credits=int(account.total_credits) if account else 0,
            purchased=totals.get(LedgerEntryType.PURCHASE.value, 0),
            consumed=-totals.get(LedgerEntryType.CONSUME.value, 0),
            refunded=totals.get(LedgerEntryType.REFUND.value, 0),
            adjusted=totals.get(LedgerEntryType.ADJUSTMENT.value, 0),
            expired=-totals.get(LedgerEntryType.EXPIRE.value, 0),
        )

    # Helpers

    def _lock_or_create_account(self, account_id: str) -> CreditAccount:
        self.credit_repository.get_or_create_account(account_id)
        account = self.credit_repository.lock_account(account_id)
        if account is None:
            raise NotFoundException(f"Credit account {account_id} not found")
        return account

    def _draw(
        self,
        account: CreditAccount,
        batches: List[CreditBatch],
        quantity: int,
        *,
        now: datetime,
        booking_id: Optional[str] = None,
        entry_type: LedgerEntryType = LedgerEntryType.CONSUME,
        actor: Optional[str] = None,
        note: Optional[str] = None,
    ) -> List[BatchDebit]:
        """Take ``quantity`` from ``batches`` in order; caller checked the total."""
        debits: List[BatchDebit] = []
        left = quantity
        for batch in batches:
            if left == 0:
                break
            take = min(batch.remaining, left)
            if take <= 0:
                continue
            batch.remaining -= take
            if batch.remaining == 0:
                batch.status = CreditBatchStatus.EXHAUSTED.value
            account.total_credits -= take
            left -= take
            debits.append(BatchDebit(batch.id, take, batch.expires_at))

            if entry_type == LedgerEntryType.CONSUME:
                self.credit_repository.add_consumption(
                    account_id=account.id,
                    batch_id=batch.id,
                    booking_id=booking_id,
                    quantity=take,
                    refunded_quantity=0,
                    created_at=now,
                )
            self._record(
                account,
                entry_type,
                -take,
                now=now,
                batch_id=batch.id,
                booking_id=booking_id,
                actor=actor,
                note=note,
            )
        return debits

    def _record(
        self,
        account: CreditAccount,
        entry_type: LedgerEntryType,
        quantity: int,
        *,
        now: datetime,
        batch_id: Optional[str] = None,
        booking_id: Optional[str] = None,
        actor: Optional[str] = None,
        note: Optional[str] = None,
    ) -> CreditLedgerEntry:
        entry = self.credit_repository.add_ledger_entry(
            account_id=account.id,
            entry_type=entry_type.value,
            quantity=quantity,
            balance_after=int(account.total_credits),
            batch_id=batch_id,
            booking_id=booking_id,
            actor=actor,
            note=note,
            created_at=now,
        )
        prometheus_metrics.inc_credits(entry_type.value, quantity)
        return entry

