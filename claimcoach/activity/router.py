from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.database import get_db
from claimcoach.activity.schemas import ClaimActivityResponse
from claimcoach.claims.service import ClaimService
from claimcoach.exceptions import ClaimCoachError
from claimcoach.shared.http import http_error

router = APIRouter(prefix="/claims", tags=["activity"])


@router.get("/{claim_id}/activities", response_model=List[ClaimActivityResponse])
async def list_claim_activities(
    claim_id: UUID,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    service = ClaimService(db)
    try:
        return await service.list_activities(claim_id, limit)
    except ClaimCoachError as e:
        raise http_error(e)
