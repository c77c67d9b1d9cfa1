# backend/icetime/tasks/credit_tasks.py
"""Periodic credit batch expiry."""

from __future__ import annotations

from typing import Dict

from celery.utils.log import get_task_logger

from ..database import SessionLocal, with_db_retry
from ..services.credit_ledger_service import CreditLedgerService
from .celery_app import celery_app

logger = get_task_logger(__name__)


@celery_app.task(
    name="icetime.tasks.credit_tasks.expire_credit_batches",
    bind=True,
    max_retries=3,
    default_retry_delay=300,
)
def expire_credit_batches(self) -> Dict[str, int]:
    """Mark batches past their expiry as expired; returns credits expired per account."""
    session = SessionLocal()
    try:
        service = CreditLedgerService(session)
        result = with_db_retry("expire_credit_batches", service.expire_batches)
        if result:
            logger.info(
                "Expired %s credit(s) across %s account(s)", sum(result.values()), len(result)
            )
        return result
    except Exception as exc:
        logger.error("Credit expiry sweep failed: %s", exc)
        raise self.retry(exc=exc)
    finally:
        session.close()
