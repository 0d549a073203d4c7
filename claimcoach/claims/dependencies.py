from typing import Callable
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.database import get_db
from claimcoach.claims.models import Claim, ClaimStatus
from claimcoach.claims.state_machine import adjudication_available, payments_available


async def require_claim(
    claim_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Claim:
    """Resolve the claim_id path param or 404."""
    claim = await db.get(Claim, claim_id)
    if not claim:
        raise HTTPException(status_code=404, detail="Claim not found")
    return claim


class RequireClaimGate:
    """FastAPI dependency that only lets a request through when the claim's
    status satisfies ``predicate``; otherwise 409 with ``label``."""

    def __init__(self, predicate: Callable[[ClaimStatus], bool], label: str):
        self.predicate = predicate
        self.label = label

    async def __call__(self, claim: Claim = Depends(require_claim)) -> Claim:
        if not self.predicate(claim.status):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{self.label} is not available while the claim is {ClaimStatus(claim.status).value}",
            )
        return claim


require_adjudication_open = RequireClaimGate(adjudication_available, "Carrier offer adjudication")
require_payments_open = RequireClaimGate(payments_available, "Payment tracking")
