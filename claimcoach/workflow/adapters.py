import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from claimcoach.adjudication.schemas import IndustryEstimateResult
from claimcoach.adjudication.service import AuditService
from claimcoach.adjudication.verdict import VerdictAnalysis
from claimcoach.carrier_estimates.service import CarrierEstimateService
from claimcoach.claims.models import Claim
from claimcoach.claims.service import ClaimService
from claimcoach.core.events.bus import EventBus, event_bus
from claimcoach.database import AsyncSessionLocal
from claimcoach.exceptions import ExternalCallFailure
from claimcoach.storage.service import FileStore
from claimcoach.workflow.collaborators import FileMeta, ParseResult, UploadDestination

logger = logging.getLogger(__name__)


class DatabaseCollaborators:
    """Workflow collaborators backed by the database services.

    Each call opens its own session so a controller that outlives a request
    never holds on to a closed one. Parsing runs as a background task; the
    controller learns the outcome by polling ``get_parse_status``.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        *,
        bus: Optional[EventBus] = None,
        store: Optional[FileStore] = None,
        audit_options: Optional[Dict[str, Any]] = None,
        document_options: Optional[Dict[str, Any]] = None,
        parse_in_background: bool = True,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.bus = bus or event_bus
        self.store = store or FileStore()
        self.audit_options = audit_options or {}
        self.document_options = document_options or {}
        self.parse_in_background = parse_in_background
        self._tasks: Set[asyncio.Task] = set()

    def _documents(self, db: AsyncSession) -> CarrierEstimateService:
        return CarrierEstimateService(db, store=self.store, bus=self.bus, **self.document_options)

    def _audit(self, db: AsyncSession) -> AuditService:
        return AuditService(db, bus=self.bus, **self.audit_options)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def request_upload_destination(self, claim_id: UUID, file_meta: FileMeta) -> UploadDestination:
        async with self.session_factory() as db:
            doc = await self._documents(db).request_upload_destination(
                claim_id,
                file_meta["file_name"],
                content_type=file_meta.get("content_type"),
                file_size_bytes=file_meta.get("size"),
            )
            return {"write_target": doc.file_path, "document_id": doc.id}

    async def transfer(self, write_target: str, content: bytes) -> None:
        await self.store.write(write_target, content)

    async def confirm_upload(self, document_id: UUID) -> None:
        async with self.session_factory() as db:
            await self._documents(db).confirm_upload(document_id)

    # ------------------------------------------------------------------
    # Parser
    # ------------------------------------------------------------------

    async def _parse(self, document_id: UUID) -> None:
        async with self.session_factory() as db:
            try:
                await self._documents(db).parse_document(document_id)
            except ExternalCallFailure as e:
                # recorded on the document; the poller picks it up
                logger.warning(f"Background parse of {document_id} failed: {e.message}")

    async def parse_document(self, document_id: UUID) -> None:
        if not self.parse_in_background:
            await self._parse(document_id)
            return
        task = asyncio.create_task(self._parse(document_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def get_parse_status(self, document_id: UUID) -> ParseResult:
        async with self.session_factory() as db:
            return await self._documents(db).get_parse_status(document_id)

    # ------------------------------------------------------------------
    # Estimate, analysis and artifacts
    # ------------------------------------------------------------------

    async def generate_industry_estimate(self, claim_id: UUID) -> IndustryEstimateResult:
        async with self.session_factory() as db:
            return await self._audit(db).generate_industry_estimate(claim_id)

    async def run_analysis(self, claim_id: UUID, audit_report_id: UUID) -> VerdictAnalysis:
        async with self.session_factory() as db:
            return await self._audit(db).run_analysis(claim_id, audit_report_id)

    async def generate_dispute_letter(self, claim_id: UUID, audit_report_id: UUID) -> str:
        async with self.session_factory() as db:
            return await self._audit(db).generate_dispute_letter(claim_id, audit_report_id)

    async def generate_owner_pitch(self, claim_id: UUID, audit_report_id: UUID) -> str:
        async with self.session_factory() as db:
            return await self._audit(db).generate_owner_pitch(claim_id, audit_report_id)

    async def acknowledge_owner_pitch(self, claim_id: UUID, audit_report_id: UUID) -> None:
        async with self.session_factory() as db:
            await self._audit(db).acknowledge_owner_pitch(claim_id, audit_report_id)

    async def supersede_report(self, claim_id: UUID, keep_document_id: Optional[UUID] = None) -> None:
        async with self.session_factory() as db:
            await self._audit(db).supersede(claim_id, keep_document_id=keep_document_id)

    async def update_claim_step(self, claim_id: UUID, current_step: int, steps_completed: Iterable[int]) -> Claim:
        async with self.session_factory() as db:
            return await ClaimService(db, bus=self.bus).update_claim_step(claim_id, current_step, steps_completed)

    async def drain(self) -> None:
        """Wait for background parses; used on shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
