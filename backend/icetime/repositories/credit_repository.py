# backend/icetime/repositories/credit_repository.py
"""
Credit Repository for the IceTime booking engine.

Encapsulates the batch, consumption and ledger queries behind the credit
ledger. Batch ordering is always nearest expiry first.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Dict, List, Optional, cast

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.credit import (
    CreditAccount,
    CreditBatch,
    CreditBatchStatus,
    CreditConsumption,
    CreditLedgerEntry,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CreditRepository(BaseRepository[CreditAccount]):
    """Repository for credit accounts and everything hanging off them."""

    def __init__(self, db: Session):
        super().__init__(db, CreditAccount)
        self.logger = logging.getLogger(__name__)

    # Accounts

    def get_account(self, account_id: str) -> Optional[CreditAccount]:
        return self.get_by_id(account_id)

    def get_or_create_account(self, account_id: str) -> CreditAccount:
        account = self.get_account(account_id)
        if account is None:
            account = self.create(id=account_id, total_credits=0, lock_version=0)
        return account

    def lock_account(self, account_id: str) -> Optional[CreditAccount]:
        """
        Serialize credit writers for one account.

        Returns the account re-read after the lock so balances reflect any
        writer that committed while this one was waiting.
        """
        if self._lock_rows([account_id]) == 0:
            return None
        try:
            return cast(
                Optional[CreditAccount],
                self.db.query(CreditAccount)
                .filter(CreditAccount.id == account_id)
                .populate_existing()
                .first(),
            )
        except Exception as exc:
            self.logger.error("Failed to reload locked account %s: %s", account_id, str(exc))
            raise RepositoryException("Failed to reload credit account") from exc

    # Batches

    def add_batch(self, **kwargs) -> CreditBatch:
        batch = CreditBatch(**kwargs)
        self.db.add(batch)
        self.flush()
        return batch

    def get_batch(self, batch_id: str) -> Optional[CreditBatch]:
        return cast(Optional[CreditBatch], self.db.get(CreditBatch, batch_id))

    def get_usable_batches(self, account_id: str, as_of: datetime) -> List[CreditBatch]:
        """Active, unexpired batches with credits left, nearest expiry first."""
        try:
            query = (
                self.db.query(CreditBatch)
                .filter(
                    and_(
                        CreditBatch.account_id == account_id,
                        CreditBatch.status == CreditBatchStatus.ACTIVE.value,
                        CreditBatch.remaining > 0,
                        CreditBatch.expires_at > as_of,
                    )
                )
                .order_by(
                    CreditBatch.expires_at.asc(),
                    CreditBatch.purchased_at.asc(),
                    CreditBatch.id.asc(),
                )
                .populate_existing()
            )
            return cast(List[CreditBatch], query.all())
        except Exception as exc:
            self.logger.error("Failed to get usable batches: %s", str(exc))
            raise RepositoryException("Failed to get usable credit batches") from exc

    def get_batches(self, account_id: str) -> List[CreditBatch]:
        try:
            return cast(
                List[CreditBatch],
                self.db.query(CreditBatch)
                .filter(CreditBatch.account_id == account_id)
                .order_by(CreditBatch.expires_at.asc(), CreditBatch.id.asc())
                .all(),
            )
        except Exception as exc:
            self.logger.error("Failed to list batches for %s: %s", account_id, str(exc))
            raise RepositoryException("Failed to list credit batches") from exc

    def get_usable_balance(self, account_id: str, as_of: datetime) -> int:
        try:
            total = (
                self.db.query(func.coalesce(func.sum(CreditBatch.remaining), 0))
                .filter(
                    and_(
                        CreditBatch.account_id == account_id,
                        CreditBatch.status == CreditBatchStatus.ACTIVE.value,
                        CreditBatch.expires_at > as_of,
                    )
                )
                .scalar()
            )
            return int(total or 0)
        except Exception as exc:
            self.logger.error("Failed to compute balance for %s: %s", account_id, str(exc))
            raise RepositoryException("Failed to compute credit balance") from exc

    def get_expirable_account_ids(self, as_of: datetime) -> List[str]:
        """Accounts holding active batches whose expiry has passed."""
        try:
            rows = (
                self.db.query(CreditBatch.account_id)
                .filter(
                    and_(
                        CreditBatch.status == CreditBatchStatus.ACTIVE.value,
                        CreditBatch.expires_at <= as_of,
                    )
                )
                .distinct()
                .order_by(CreditBatch.account_id.asc())
                .all()
            )
            return [row[0] for row in rows]
        except Exception as exc:
            self.logger.error("Failed to find expirable accounts: %s", str(exc))
            raise RepositoryException("Failed to find expirable accounts") from exc

    def get_expired_active_batches(self, account_id: str, as_of: datetime) -> List[CreditBatch]:
        try:
            return cast(
                List[CreditBatch],
                self.db.query(CreditBatch)
                .filter(
                    and_(
                        CreditBatch.account_id == account_id,
                        CreditBatch.status == CreditBatchStatus.ACTIVE.value,
                        CreditBatch.expires_at <= as_of,
                    )
                )
                .order_by(CreditBatch.expires_at.asc(), CreditBatch.id.asc())
                .populate_existing()
                .all(),
            )
        except Exception as exc:
            self.logger.error("Failed to get expired batches for %s: %s", account_id, str(exc))
            raise RepositoryException("Failed to get expired credit batches") from exc

    def get_expiring_batches(self, as_of: datetime, until: datetime) -> List[CreditBatch]:
        """Active batches with credits left that expire in ``(as_of, until]``."""
        try:
            return cast(
                List[CreditBatch],
                self.db.query(CreditBatch)
                .filter(
                    and_(
                        CreditBatch.status == CreditBatchStatus.ACTIVE.value,
                        CreditBatch.remaining > 0,
                        CreditBatch.expires_at > as_of,
                        CreditBatch.expires_at <= until,
                    )
                )
                .order_by(CreditBatch.account_id.asc(), CreditBatch.expires_at.asc())
                .all(),
            )
        except Exception as exc:
            self.logger.error("Failed to get expiring batches: %s", str(exc))
            raise RepositoryException("Failed to get expiring credit batches") from exc

    # Consumptions

    def add_consumption(self, **kwargs) -> CreditConsumption:
        consumption = CreditConsumption(**kwargs)
        self.db.add(consumption)
        self.flush()
        return consumption

    def get_consumptions_for_booking(self, booking_id: str) -> List[CreditConsumption]:
        try:
            return cast(
                List[CreditConsumption],
                self.db.query(CreditConsumption)
                .filter(CreditConsumption.booking_id == booking_id)
                .order_by(CreditConsumption.created_at.asc(), CreditConsumption.id.asc())
                .populate_existing()
                .all(),
            )
        except Exception as exc:
            self.logger.error(
                "Failed to get consumptions for booking %s: %s", booking_id, str(exc)
            )
            raise RepositoryException("Failed to get credit consumptions for booking") from exc

    # Ledger

    def add_ledger_entry(self, **kwargs) -> CreditLedgerEntry:
        entry = CreditLedgerEntry(**kwargs)
        self.db.add(entry)
        self.flush()
        return entry

    def get_ledger_entries(
        self, account_id: str, *, limit: Optional[int] = None
    ) -> List[CreditLedgerEntry]:
        try:
            query = (
                self.db.query(CreditLedgerEntry)
                .filter(CreditLedgerEntry.account_id == account_id)
                .order_by(CreditLedgerEntry.created_at.asc(), CreditLedgerEntry.id.asc())
            )
            if limit is not None:
                query = query.limit(limit)
            return cast(List[CreditLedgerEntry], query.all())
        except Exception as exc:
            self.logger.error("Failed to get ledger for %s: %s", account_id, str(exc))
            raise RepositoryException("Failed to get credit ledger") from exc

    def get_ledger_totals(self, account_id: str) -> Dict[str, int]:
        """Sum of signed quantities per entry type."""
        try:
            rows = (
                self.db.query(
                    CreditLedgerEntry.entry_type,
                    func.coalesce(func.sum(CreditLedgerEntry.quantity), 0),
                )
                .filter(CreditLedgerEntry.account_id == account_id)
                .group_by(CreditLedgerEntry.entry_type)
                .all()
            )
            return {entry_type: int(total) for entry_type, total in rows}
        except Exception as exc:
            self.logger.error("Failed to total ledger for %s: %s", account_id, str(exc))
            raise RepositoryException("Failed to total credit ledger") from exc
