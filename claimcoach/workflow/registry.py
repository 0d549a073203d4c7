import asyncio
import logging
from typing import Any, Dict, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from claimcoach.adjudication.models import AuditReport
from claimcoach.carrier_estimates.models import CarrierEstimate
from claimcoach.claims.models import Claim
from claimcoach.core.events.bus import EventBus, event_bus
from claimcoach.database import AsyncSessionLocal
from claimcoach.exceptions import ClaimCoachError, NotFoundError
from claimcoach.workflow.adapters import DatabaseCollaborators
from claimcoach.workflow.collaborators import Collaborators
from claimcoach.workflow.controller import DocumentAnalysisWorkflow
from claimcoach.workflow.phases import Phase, derive_state

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    """One live workflow per claim.

    A workflow with nothing in flight is re-derived from storage on every
    lookup, so a restart or another worker never leaves it stale. One found
    mid-parse resumes polling in the background.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        collaborators: Optional[Collaborators] = None,
        *,
        bus: Optional[EventBus] = None,
        **workflow_options: Any,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.bus = bus or event_bus
        self.collaborators = collaborators or DatabaseCollaborators(self.session_factory, bus=self.bus)
        self.workflow_options = workflow_options
        self._workflows: Dict[UUID, DocumentAnalysisWorkflow] = {}
        self._tasks: Set[asyncio.Task] = set()

    async def _load(self, claim_id: UUID):
        async with self.session_factory() as db:
            claim = await db.get(Claim, claim_id)
            if not claim:
                raise NotFoundError("Claim not found", claim_id=claim_id)

            result = await db.execute(
                select(CarrierEstimate)
                .where(
                    CarrierEstimate.claim_id == claim_id,
                    CarrierEstimate.retired_at.is_(None),
                    # an unconfirmed upload never started a cycle
                    CarrierEstimate.uploaded_at.is_not(None),
                )
                .order_by(CarrierEstimate.created_at.desc())
                .limit(1)
            )
            document = result.scalars().first()

            result = await db.execute(
                select(AuditReport)
                .where(AuditReport.claim_id == claim_id, AuditReport.superseded_at.is_(None))
                .order_by(AuditReport.created_at.desc())
                .limit(1)
            )
            report = result.scalars().first()
            return claim, document, report

    async def get(self, claim_id: UUID) -> DocumentAnalysisWorkflow:
        workflow = self._workflows.get(claim_id)
        if workflow is not None and workflow.in_flight:
            return workflow

        claim, document, report = await self._load(claim_id)
        snapshot = derive_state(claim, document, report)

        if workflow is None:
            workflow = DocumentAnalysisWorkflow(
                claim_id,
                self.collaborators,
                bus=self.bus,
                **self.workflow_options,
            )
            self._workflows[claim_id] = workflow
        workflow.restore(snapshot, steps_completed=claim.steps_completed or ())

        if workflow.phase == Phase.PARSING:
            self.resume_parse(workflow)
        return workflow

    def resume_parse(self, workflow: DocumentAnalysisWorkflow) -> None:
        """Poll a parsing document to completion without blocking the caller."""
        if workflow.phase != Phase.PARSING or workflow.in_flight:
            return

        async def run():
            try:
                await workflow.await_parse()
            except ClaimCoachError as e:
                logger.warning(f"Parse for claim {workflow.claim_id} did not complete: {e.message}")

        task = asyncio.create_task(run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def forget(self, claim_id: UUID) -> None:
        self._workflows.pop(claim_id, None)

    async def drain(self) -> None:
        """Wait for background polls and parses; used on shutdown and in tests."""
        drain = getattr(self.collaborators, "drain", None)
        if drain is not None:
            await drain()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


workflow_registry = WorkflowRegistry()


def get_workflow_registry() -> WorkflowRegistry:
    return workflow_registry
