import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.activity.models import ActivityType, ClaimActivity
from claimcoach.agents.estimate_parser.agent import estimate_parser_agent
from claimcoach.agents.state import EstimateParserState
from claimcoach.carrier_estimates.models import CarrierEstimate, ParseStatus
from claimcoach.carrier_estimates.schemas import ParsedEstimate
from claimcoach.claims.models import Claim
from claimcoach.config import settings
from claimcoach.core.events.bus import EventBus, EventType, event_bus
from claimcoach.exceptions import (
    ExternalCallFailure,
    InvalidPhaseTransition,
    NotFoundError,
    ValidationError,
)
from claimcoach.ingestion.service import IngestionService
from claimcoach.storage.service import FileStore

logger = logging.getLogger(__name__)


def validate_upload(
    file_name: Optional[str],
    content_type: Optional[str],
    size: Optional[int],
    max_bytes: Optional[int] = None,
) -> None:
    """Exactly one non-empty, named PDF. The size cap only applies when
    ``max_bytes`` is given; storage enforces it, file selection does not."""
    if not file_name:
        raise ValidationError("No filename provided")
    if size is not None and size <= 0:
        raise ValidationError("Empty file")
    if max_bytes is not None and size is not None and size > max_bytes:
        raise ValidationError(f"File exceeds the {max_bytes // (1024 * 1024)} MB upload limit")
    if not IngestionService.is_pdf(file_name, content_type):
        raise ValidationError("Carrier estimates must be PDF files")


class CarrierEstimateService:
    def __init__(
        self,
        db: AsyncSession,
        store: Optional[FileStore] = None,
        bus: Optional[EventBus] = None,
        parser=None,
    ):
        self.db = db
        self.store = store or FileStore()
        self.bus = bus or event_bus
        self.parser = parser or estimate_parser_agent
        self.ingestion = IngestionService()

    async def get_document(self, document_id: UUID, claim_id: Optional[UUID] = None) -> CarrierEstimate:
        doc = await self.db.get(CarrierEstimate, document_id)
        if not doc or (claim_id is not None and doc.claim_id != claim_id):
            raise NotFoundError("Carrier estimate not found", claim_id=claim_id)
        return doc

    async def list_documents(self, claim_id: UUID) -> List[CarrierEstimate]:
        result = await self.db.execute(
            select(CarrierEstimate)
            .where(CarrierEstimate.claim_id == claim_id)
            .order_by(CarrierEstimate.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_current_document(self, claim_id: UUID) -> Optional[CarrierEstimate]:
        """Most recent confirmed upload that still belongs to the open adjudication cycle."""
        result = await self.db.execute(
            select(CarrierEstimate)
            .where(
                CarrierEstimate.claim_id == claim_id,
                CarrierEstimate.retired_at.is_(None),
                CarrierEstimate.uploaded_at.is_not(None),
            )
            .order_by(CarrierEstimate.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def retire_documents(self, claim_id: UUID, keep_document_id: Optional[UUID] = None) -> None:
        stmt = (
            update(CarrierEstimate)
            .where(
                CarrierEstimate.claim_id == claim_id,
                CarrierEstimate.retired_at.is_(None),
            )
            .values(retired_at=datetime.utcnow())
        )
        if keep_document_id is not None:
            stmt = stmt.where(CarrierEstimate.id != keep_document_id)
        await self.db.execute(stmt)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def request_upload_destination(
        self,
        claim_id: UUID,
        file_name: str,
        content_type: Optional[str] = None,
        file_size_bytes: Optional[int] = None,
    ) -> CarrierEstimate:
        validate_upload(file_name, content_type, file_size_bytes, max_bytes=settings.MAX_UPLOAD_BYTES)
        if not await self.db.get(Claim, claim_id):
            raise NotFoundError("Claim not found", claim_id=claim_id)

        doc = CarrierEstimate(
            claim_id=claim_id,
            file_name=file_name,
            file_path=self.store.new_key(claim_id, file_name),
            content_type=content_type or "application/pdf",
            file_size_bytes=file_size_bytes,
            parse_status=ParseStatus.PENDING,
        )
        self.db.add(doc)
        await self.db.commit()
        await self.db.refresh(doc)
        return doc

    async def write_upload(self, write_target: str, content: bytes) -> None:
        if not content:
            raise ValidationError("Empty file")
        await self.store.write(write_target, content)

    async def confirm_upload(self, document_id: UUID) -> CarrierEstimate:
        doc = await self.get_document(document_id)
        if doc.uploaded_at is not None:
            return doc
        if not await self.store.exists(doc.file_path):
            raise ValidationError("Upload has not been received")

        doc.uploaded_at = datetime.utcnow()
        self.db.add(ClaimActivity(
            claim_id=doc.claim_id,
            activity_type=ActivityType.CARRIER_ESTIMATE_UPLOADED,
            description=f"Carrier estimate {doc.file_name} uploaded",
            detail={"carrier_estimate_id": str(doc.id), "file_size_bytes": doc.file_size_bytes},
        ))
        await self.db.commit()
        await self.db.refresh(doc)
        logger.info(f"Carrier estimate {doc.id} uploaded for claim {doc.claim_id}")

        await self.bus.emit(
            EventType.DOCUMENT_UPLOADED, doc.claim_id,
            document_id=str(doc.id), file_name=doc.file_name,
        )
        return doc

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    async def parse_document(self, document_id: UUID) -> CarrierEstimate:
        """Extract text and structure it into line items.

        Only a pending, confirmed upload can be parsed; completed and failed
        documents are final. Failures are recorded on the document before
        being raised.
        """
        doc = await self.get_document(document_id)
        if doc.parse_status != ParseStatus.PENDING:
            raise InvalidPhaseTransition(
                f"Carrier estimate {doc.id} is already {ParseStatus(doc.parse_status).value}"
            )
        if doc.uploaded_at is None:
            raise InvalidPhaseTransition("Upload must be confirmed before parsing")

        doc.parse_status = ParseStatus.PROCESSING
        await self.db.commit()

        try:
            content = await self.store.read(doc.file_path)
            text = self.ingestion.extract_text(content, doc.file_name)

            initial_state: EstimateParserState = {
                "document_text": text,
                "parsed_estimate": None,
                "errors": [],
            }
            final_state = await self.parser.ainvoke(initial_state)
            if final_state.get("errors"):
                raise ValueError("; ".join(final_state["errors"]))
            parsed: ParsedEstimate = final_state["parsed_estimate"]

        except Exception as e:
            doc.parse_status = ParseStatus.FAILED
            doc.parse_error = str(e)
            await self.db.commit()
            logger.error(f"Carrier estimate parsing failed for {doc.id}: {e}")
            await self.bus.emit(
                EventType.DOCUMENT_PARSE_FAILED, doc.claim_id,
                document_id=str(doc.id), error=str(e),
            )
            raise ExternalCallFailure("parse", str(e), claim_id=doc.claim_id)

        doc.parsed_data = parsed.model_dump()
        doc.parse_status = ParseStatus.COMPLETED
        doc.parse_error = None
        doc.parsed_at = datetime.utcnow()
        self.db.add(ClaimActivity(
            claim_id=doc.claim_id,
            activity_type=ActivityType.CARRIER_ESTIMATE_PARSED,
            description=f"Carrier estimate parsed: {len(parsed.line_items)} line items",
            detail={"carrier_estimate_id": str(doc.id), "total": parsed.total},
        ))
        await self.db.commit()
        await self.db.refresh(doc)
        logger.info(f"Carrier estimate {doc.id} parsed: {len(parsed.line_items)} line items")

        await self.bus.emit(
            EventType.DOCUMENT_PARSED, doc.claim_id,
            document_id=str(doc.id), line_items=len(parsed.line_items),
        )
        return doc

    async def get_parse_status(self, document_id: UUID) -> dict:
        doc = await self.get_document(document_id)
        # polled from another session; don't serve a stale identity-map copy
        await self.db.refresh(doc)
        result = {"status": ParseStatus(doc.parse_status)}
        if doc.parse_status == ParseStatus.COMPLETED and doc.parsed_data:
            result["line_items"] = doc.parsed_data.get("line_items", [])
        if doc.parse_status == ParseStatus.FAILED:
            result["error"] = doc.parse_error
        return result
