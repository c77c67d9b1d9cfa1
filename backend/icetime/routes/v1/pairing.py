# backend/icetime/routes/v1/pairing.py
"""
Semi-private pairing routes - API v1

Endpoints:
    POST /unpaired - Register (or update) a player waiting for a partner
    GET /opportunities - Ranked candidate pairs, optionally per category
    GET /suggestions - Open weekly slots wanted by waiting players
    POST /commit - Pair two players on a weekly slot
    GET / - List pairings
    POST /{pairing_id}/dissolve - Dissolve a pairing
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import get_pairing_service
from ...core.exceptions import DomainException
from ...schemas.pairing import (
    PairingCommitRequest,
    PairingDissolveRequest,
    PairingOpportunityResponse,
    PairingResponse,
    UnpairedPlayerResponse,
    UnpairedRegistration,
)
from ...services.pairing_service import PairingService
from .common import handle_domain_exception

router = APIRouter(tags=["pairing-v1"])


@router.post(
    "/unpaired", response_model=UnpairedPlayerResponse, status_code=status.HTTP_201_CREATED
)
async def register_unpaired(
    payload: UnpairedRegistration,
    pairing_service: PairingService = Depends(get_pairing_service),
) -> UnpairedPlayerResponse:
    try:
        entry = await asyncio.to_thread(
            pairing_service.register_unpaired,
            payload.player_id,
            payload.preferred_days,
            payload.preferred_times,
            notes=payload.notes,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return UnpairedPlayerResponse.model_validate(entry)


@router.get("/opportunities", response_model=List[PairingOpportunityResponse])
async def list_opportunities(
    category: Optional[str] = Query(None, description="Age category, e.g. M11"),
    pairing_service: PairingService = Depends(get_pairing_service),
) -> List[PairingOpportunityResponse]:
    opportunities = await asyncio.to_thread(
        pairing_service.find_opportunities, age_category=category
    )
    return [PairingOpportunityResponse.model_validate(o) for o in opportunities]


@router.get("/suggestions")
async def suggest_times(
    category: str = Query(...),
    pairing_service: PairingService = Depends(get_pairing_service),
) -> List[dict]:
    return await asyncio.to_thread(pairing_service.suggest_times, category)


@router.post("/commit", response_model=PairingResponse, status_code=status.HTTP_201_CREATED)
async def commit_pairing(
    payload: PairingCommitRequest,
    pairing_service: PairingService = Depends(get_pairing_service),
) -> PairingResponse:
    try:
        pairing = await asyncio.to_thread(
            pairing_service.commit,
            payload.player_1_id,
            payload.player_2_id,
            payload.day_of_week,
            payload.start_time,
            actor=payload.actor,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return PairingResponse.model_validate(pairing)


@router.get("", response_model=List[PairingResponse])
async def list_pairings(
    status_filter: Optional[str] = Query(None, alias="status"),
    pairing_service: PairingService = Depends(get_pairing_service),
) -> List[PairingResponse]:
    pairings = await asyncio.to_thread(pairing_service.list_pairings, status=status_filter)
    return [PairingResponse.model_validate(p) for p in pairings]


@router.post("/{pairing_id}/dissolve", response_model=PairingResponse)
async def dissolve_pairing(
    pairing_id: str,
    payload: PairingDissolveRequest,
    pairing_service: PairingService = Depends(get_pairing_service),
) -> PairingResponse:
    try:
        pairing = await asyncio.to_thread(
            pairing_service.dissolve, pairing_id, reason=payload.reason, actor=payload.actor
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return PairingResponse.model_validate(pairing)
