# backend/icetime/routes/v1/credits.py
"""
Credit routes - API v1

Endpoints:
    GET /{account_id} - Balance, ledger totals and batches
    GET /{account_id}/history - Ledger entries, newest first
    POST /{account_id}/purchase - Record a purchased package or quantity
    POST /{account_id}/adjust - Admin adjustment
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import get_credit_service
from ...core.exceptions import DomainException
from ...schemas.credit import (
    CreditAccountResponse,
    CreditAdjustRequest,
    CreditAdjustResponse,
    CreditBatchResponse,
    CreditPurchaseRequest,
    LedgerEntryResponse,
)
from ...services.credit_ledger_service import CreditLedgerService
from .common import handle_domain_exception

router = APIRouter(tags=["credits-v1"])


def _account_response(service: CreditLedgerService, account_id: str) -> CreditAccountResponse:
    summary = service.summary(account_id)
    return CreditAccountResponse(
        account_id=account_id,
        balance=summary.balance,
        total_credits=summary.total_credits,
        purchased=summary.purchased,
        consumed=summary.consumed,
        refunded=summary.refunded,
        adjusted=summary.adjusted,
        expired=summary.expired,
        batches=[CreditBatchResponse.model_validate(b) for b in service.get_batches(account_id)],
    )


@router.get("/{account_id}", response_model=CreditAccountResponse)
async def get_credit_account(
    account_id: str,
    credit_service: CreditLedgerService = Depends(get_credit_service),
) -> CreditAccountResponse:
    return await asyncio.to_thread(_account_response, credit_service, account_id)


@router.get("/{account_id}/history", response_model=List[LedgerEntryResponse])
async def get_credit_history(
    account_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    credit_service: CreditLedgerService = Depends(get_credit_service),
) -> List[LedgerEntryResponse]:
    entries = await asyncio.to_thread(credit_service.history, account_id, limit=limit)
    return [LedgerEntryResponse.model_validate(e) for e in entries]


@router.post(
    "/{account_id}/purchase",
    response_model=CreditBatchResponse,
    status_code=status.HTTP_201_CREATED,
)
async def purchase_credits(
    account_id: str,
    payload: CreditPurchaseRequest,
    credit_service: CreditLedgerService = Depends(get_credit_service),
) -> CreditBatchResponse:
    try:
        if payload.package_type:
            batch = await asyncio.to_thread(
                credit_service.purchase_package,
                account_id,
                payload.package_type,
                payment_reference=payload.payment_reference,
            )
        else:
            batch = await asyncio.to_thread(
                credit_service.purchase,
                account_id,
                payload.quantity,
                payload.price_paid_cents,
                validity_days=payload.validity_days,
                payment_reference=payload.payment_reference,
            )
    except DomainException as exc:
        handle_domain_exception(exc)
    return CreditBatchResponse.model_validate(batch)


@router.post("/{account_id}/adjust", response_model=CreditAdjustResponse)
async def adjust_credits(
    account_id: str,
    payload: CreditAdjustRequest,
    credit_service: CreditLedgerService = Depends(get_credit_service),
) -> CreditAdjustResponse:
    try:
        balance = await asyncio.to_thread(
            credit_service.adjust,
            account_id,
            payload.delta,
            actor=payload.actor,
            note=payload.note,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return CreditAdjustResponse(account_id=account_id, balance=balance)
