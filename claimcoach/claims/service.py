import logging
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.activity.models import ActivityType, ClaimActivity
from claimcoach.claims.models import Claim, ClaimStatus
from claimcoach.claims.schemas import ClaimCreate
from claimcoach.claims.state_machine import apply_transition
from claimcoach.core.events.bus import EventBus, EventType, event_bus
from claimcoach.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MIN_STEP = 1
MAX_STEP = 7


class ClaimService:
    def __init__(self, db: AsyncSession, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or event_bus

    async def _next_claim_number(self) -> str:
        result = await self.db.execute(select(func.count()).select_from(Claim))
        return f"CC-{result.scalar_one() + 1:04d}"

    async def create_claim(self, claim_in: ClaimCreate) -> Claim:
        claim = Claim(
            **claim_in.model_dump(),
            claim_number=await self._next_claim_number(),
            status=ClaimStatus.DRAFT,
            current_step=1,
            steps_completed=[],
        )
        self.db.add(claim)
        await self.db.flush()

        self.db.add(ClaimActivity(
            claim_id=claim.id,
            activity_type=ActivityType.CLAIM_CREATED,
            description=f"Claim {claim.claim_number} created",
        ))
        await self.db.commit()
        await self.db.refresh(claim)
        logger.info(f"Claim {claim.id} created as {claim.claim_number}")
        return claim

    async def get_claim(self, claim_id: UUID) -> Claim:
        claim = await self.db.get(Claim, claim_id)
        if not claim:
            raise NotFoundError("Claim not found", claim_id=claim_id)
        return claim

    async def list_claims(
        self, status: Optional[ClaimStatus] = None, skip: int = 0, limit: int = 100
    ) -> List[Claim]:
        query = select(Claim).order_by(Claim.created_at.desc())
        if status:
            query = query.where(Claim.status == status)
        result = await self.db.execute(query.offset(skip).limit(limit))
        return list(result.scalars().all())

    async def update_status(
        self,
        claim_id: UUID,
        new_status: ClaimStatus,
        adjuster_name: Optional[str] = None,
        adjuster_phone: Optional[str] = None,
        inspection_datetime: Optional[datetime] = None,
    ) -> Claim:
        claim = await self.get_claim(claim_id)
        previous = ClaimStatus(claim.status)

        apply_transition(claim, new_status)

        if new_status == ClaimStatus.FILED and claim.filed_at is None:
            claim.filed_at = datetime.utcnow()
        if adjuster_name is not None:
            claim.adjuster_name = adjuster_name
        if adjuster_phone is not None:
            claim.adjuster_phone = adjuster_phone
        if inspection_datetime is not None:
            claim.inspection_datetime = inspection_datetime

        self.db.add(ClaimActivity(
            claim_id=claim.id,
            activity_type=ActivityType.STATUS_CHANGE,
            description=f"Status changed from {previous.value} to {claim.status.value}",
            detail={"from": previous.value, "to": claim.status.value},
        ))
        await self.db.commit()
        await self.db.refresh(claim)
        logger.info(f"Claim {claim_id} status {previous.value} -> {claim.status.value}")

        await self.bus.emit(
            EventType.CLAIM_STATUS_CHANGED, claim.id,
            previous=previous.value, status=claim.status.value,
        )
        return claim

    async def update_claim_step(
        self, claim_id: UUID, current_step: int, steps_completed: Iterable[int]
    ) -> Claim:
        """Advance the step cursor and merge completed steps.

        Completed steps are a growing set; a caller passing fewer steps than
        are already recorded never removes any.
        """
        steps = set(steps_completed)
        out_of_range = [s for s in steps | {current_step} if not MIN_STEP <= s <= MAX_STEP]
        if out_of_range:
            raise ValidationError(f"Steps must be between {MIN_STEP} and {MAX_STEP}: {sorted(out_of_range)}")

        claim = await self.get_claim(claim_id)
        merged = sorted(set(claim.steps_completed or []) | steps)
        added = sorted(set(merged) - set(claim.steps_completed or []))

        claim.steps_completed = merged
        claim.current_step = current_step

        self.db.add(ClaimActivity(
            claim_id=claim.id,
            activity_type=ActivityType.STEP_ADVANCED,
            description=f"Moved to step {current_step}",
            detail={"current_step": current_step, "steps_completed": merged, "added": added},
        ))
        await self.db.commit()
        await self.db.refresh(claim)

        await self.bus.emit(
            EventType.CLAIM_STEP_ADVANCED, claim.id,
            current_step=current_step, steps_completed=merged,
        )
        return claim

    async def list_activities(self, claim_id: UUID, limit: int = 100) -> List[ClaimActivity]:
        """Activity trail, newest first."""
        await self.get_claim(claim_id)
        result = await self.db.execute(
            select(ClaimActivity)
            .where(ClaimActivity.claim_id == claim_id)
            .order_by(ClaimActivity.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
