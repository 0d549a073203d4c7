from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from claimcoach.database import get_db
from claimcoach.claims.models import ClaimStatus
from claimcoach.claims.schemas import ClaimCreate, ClaimResponse, ClaimStatusUpdate, ClaimStepUpdate
from claimcoach.claims.service import ClaimService
from claimcoach.claims.state_machine import next_statuses
from claimcoach.exceptions import ClaimCoachError
from claimcoach.shared.http import http_error

router = APIRouter(prefix="/claims", tags=["claims"])


def _to_response(claim) -> ClaimResponse:
    response = ClaimResponse.model_validate(claim)
    response.next_statuses = next_statuses(claim.status)
    return response


@router.post("", response_model=ClaimResponse, status_code=201)
async def create_claim(
    claim: ClaimCreate,
    db: AsyncSession = Depends(get_db),
):
    service = ClaimService(db)
    return _to_response(await service.create_claim(claim))


@router.get("", response_model=List[ClaimResponse])
async def list_claims(
    status: Optional[ClaimStatus] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    service = ClaimService(db)
    return [_to_response(c) for c in await service.list_claims(status, skip, limit)]


@router.get("/{claim_id}", response_model=ClaimResponse)
async def get_claim(
    claim_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    service = ClaimService(db)
    try:
        return _to_response(await service.get_claim(claim_id))
    except ClaimCoachError as e:
        raise http_error(e)


@router.patch("/{claim_id}/status", response_model=ClaimResponse)
async def update_claim_status(
    claim_id: UUID,
    update: ClaimStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    service = ClaimService(db)
    try:
        claim = await service.update_status(
            claim_id,
            update.status,
            adjuster_name=update.adjuster_name,
            adjuster_phone=update.adjuster_phone,
            inspection_datetime=update.inspection_datetime,
        )
        return _to_response(claim)
    except ClaimCoachError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.patch("/{claim_id}/step", response_model=ClaimResponse)
async def update_claim_step(
    claim_id: UUID,
    update: ClaimStepUpdate,
    db: AsyncSession = Depends(get_db),
):
    service = ClaimService(db)
    try:
        claim = await service.update_claim_step(claim_id, update.current_step, update.steps_completed)
        return _to_response(claim)
    except ClaimCoachError as e:
        raise http_error(e)
