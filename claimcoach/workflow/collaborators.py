"""Interfaces the analysis workflow drives.

``adapters.DatabaseCollaborators`` implements all of them against the
services in this package; tests substitute in-memory fakes.
"""
from typing import Any, Iterable, Optional, Protocol, TypedDict
from uuid import UUID

from claimcoach.adjudication.schemas import IndustryEstimateResult
from claimcoach.adjudication.verdict import VerdictAnalysis
from claimcoach.carrier_estimates.models import ParseStatus


class FileMeta(TypedDict):
    file_name: str
    content_type: Optional[str]
    size: int


class UploadDestination(TypedDict):
    write_target: str
    document_id: UUID


class ParseResult(TypedDict, total=False):
    status: ParseStatus
    line_items: list
    error: Optional[str]


class Storage(Protocol):
    async def request_upload_destination(self, claim_id: UUID, file_meta: FileMeta) -> UploadDestination: ...

    async def transfer(self, write_target: str, content: bytes) -> None: ...

    async def confirm_upload(self, document_id: UUID) -> None: ...


class Parser(Protocol):
    async def parse_document(self, document_id: UUID) -> None:
        """Start parsing; the status changes asynchronously."""
        ...

    async def get_parse_status(self, document_id: UUID) -> ParseResult: ...


class Estimator(Protocol):
    async def generate_industry_estimate(self, claim_id: UUID) -> IndustryEstimateResult: ...


class Adjudicator(Protocol):
    async def run_analysis(self, claim_id: UUID, audit_report_id: UUID) -> VerdictAnalysis: ...


class ArtifactGenerator(Protocol):
    async def generate_dispute_letter(self, claim_id: UUID, audit_report_id: UUID) -> str: ...

    async def generate_owner_pitch(self, claim_id: UUID, audit_report_id: UUID) -> str: ...

    async def acknowledge_owner_pitch(self, claim_id: UUID, audit_report_id: UUID) -> None: ...

    async def supersede_report(self, claim_id: UUID, keep_document_id: Optional[UUID] = None) -> None: ...


class ClaimStepUpdater(Protocol):
    async def update_claim_step(self, claim_id: UUID, current_step: int, steps_completed: Iterable[int]) -> Any: ...


class Collaborators(Storage, Parser, Estimator, Adjudicator, ArtifactGenerator, ClaimStepUpdater, Protocol):
    """Everything the workflow needs, in one object."""
