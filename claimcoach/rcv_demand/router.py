from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.database import get_db
from claimcoach.claims.dependencies import require_claim, require_payments_open
from claimcoach.claims.models import Claim
from claimcoach.exceptions import ClaimCoachError
from claimcoach.rcv_demand.schemas import RCVDemandCreate, RCVDemandLetterResponse, RCVDemandMarkSent
from claimcoach.rcv_demand.service import RCVDemandService
from claimcoach.shared.http import http_error

router = APIRouter(prefix="/claims/{claim_id}/rcv-demand-letters", tags=["rcv-demand"])


@router.get("", response_model=List[RCVDemandLetterResponse])
async def list_rcv_demand_letters(
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
):
    service = RCVDemandService(db)
    return await service.list_letters(claim.id)


@router.post("", response_model=RCVDemandLetterResponse, status_code=201)
async def generate_rcv_demand_letter(
    request: Optional[RCVDemandCreate] = None,
    claim: Claim = Depends(require_payments_open),
    db: AsyncSession = Depends(get_db),
):
    service = RCVDemandService(db)
    try:
        return await service.generate(claim.id, payment_id=request.payment_id if request else None)
    except ClaimCoachError as e:
        raise http_error(e)


@router.get("/{letter_id}", response_model=RCVDemandLetterResponse)
async def get_rcv_demand_letter(
    letter_id: UUID,
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
):
    service = RCVDemandService(db)
    try:
        return await service.get_letter(letter_id, claim.id)
    except ClaimCoachError as e:
        raise http_error(e)


@router.post("/{letter_id}/mark-sent", response_model=RCVDemandLetterResponse)
async def mark_rcv_demand_letter_sent(
    letter_id: UUID,
    request: RCVDemandMarkSent,
    claim: Claim = Depends(require_payments_open),
    db: AsyncSession = Depends(get_db),
):
    service = RCVDemandService(db)
    try:
        return await service.mark_sent(letter_id, request.sent_to_email, claim_id=claim.id)
    except ClaimCoachError as e:
        raise http_error(e)
