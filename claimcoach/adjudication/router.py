from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.database import get_db
from claimcoach.adjudication.schemas import AdjudicationStateResponse, AuditReportResponse
from claimcoach.adjudication.service import AuditService
from claimcoach.carrier_estimates.schemas import (
    CarrierEstimateDetailResponse,
    CarrierEstimateResponse,
    ParseStatusResponse,
)
from claimcoach.carrier_estimates.service import CarrierEstimateService
from claimcoach.claims.dependencies import require_adjudication_open, require_claim
from claimcoach.claims.models import Claim
from claimcoach.exceptions import ClaimCoachError
from claimcoach.shared.http import http_error
from claimcoach.workflow.controller import DocumentAnalysisWorkflow
from claimcoach.workflow.registry import WorkflowRegistry, get_workflow_registry

router = APIRouter(prefix="/claims/{claim_id}", tags=["adjudication"])


async def _state(workflow: DocumentAnalysisWorkflow, db: AsyncSession) -> AdjudicationStateResponse:
    document = None
    if workflow.document_id is not None:
        try:
            document = await CarrierEstimateService(db).get_document(workflow.document_id)
        except ClaimCoachError:
            document = None

    return AdjudicationStateResponse(
        claim_id=workflow.claim_id,
        phase=workflow.phase.value,
        document=CarrierEstimateResponse.model_validate(document) if document else None,
        audit_report_id=workflow.audit_report_id,
        verdict=workflow.verdict,
        dispute_letter=workflow.artifacts.dispute_letter,
        owner_pitch=workflow.artifacts.owner_pitch,
        owner_pitch_acknowledged=workflow.artifacts.owner_pitch_acknowledged,
        actions=workflow.available_actions(),
        step_completion_blocker=workflow.step_completion_blocker(),
        last_error=workflow.last_error,
    )


async def _workflow(claim_id: UUID, registry: WorkflowRegistry) -> DocumentAnalysisWorkflow:
    try:
        return await registry.get(claim_id)
    except ClaimCoachError as e:
        raise http_error(e)


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

@router.get("/adjudication", response_model=AdjudicationStateResponse)
async def get_adjudication_state(
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
):
    """Current phase, verdict, artifacts and the actions offered next."""
    workflow = await _workflow(claim.id, registry)
    return await _state(workflow, db)


@router.post("/adjudication/upload", response_model=AdjudicationStateResponse, status_code=202)
async def upload_carrier_estimate(
    file: UploadFile = File(...),
    claim: Claim = Depends(require_adjudication_open),
    db: AsyncSession = Depends(get_db),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
):
    """Store the carrier's estimate and start parsing it; polling continues in the background."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")
    content = await file.read()

    workflow = await _workflow(claim.id, registry)
    try:
        await workflow.upload(file.filename, file.content_type, content)
    except ClaimCoachError as e:
        raise http_error(e)

    registry.resume_parse(workflow)
    return await _state(workflow, db)


@router.get("/adjudication/parse-status", response_model=ParseStatusResponse)
async def get_parse_status(
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
):
    service = CarrierEstimateService(db)
    document = await service.get_current_document(claim.id)
    if not document:
        raise HTTPException(status_code=404, detail="No carrier estimate uploaded")
    result = await service.get_parse_status(document.id)
    return ParseStatusResponse(document_id=document.id, **result)


@router.post("/adjudication/analyze", response_model=AdjudicationStateResponse)
async def analyze_carrier_offer(
    claim: Claim = Depends(require_adjudication_open),
    db: AsyncSession = Depends(get_db),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
):
    workflow = await _workflow(claim.id, registry)
    try:
        await workflow.analyze()
    except ClaimCoachError as e:
        raise http_error(e)
    return await _state(workflow, db)


@router.post("/adjudication/dispute-letter", response_model=AdjudicationStateResponse)
async def generate_dispute_letter(
    claim: Claim = Depends(require_adjudication_open),
    db: AsyncSession = Depends(get_db),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
):
    workflow = await _workflow(claim.id, registry)
    try:
        await workflow.generate_dispute_letter()
    except ClaimCoachError as e:
        raise http_error(e)
    return await _state(workflow, db)


@router.post("/adjudication/owner-pitch", response_model=AdjudicationStateResponse)
async def generate_owner_pitch(
    claim: Claim = Depends(require_adjudication_open),
    db: AsyncSession = Depends(get_db),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
):
    workflow = await _workflow(claim.id, registry)
    try:
        await workflow.generate_owner_pitch()
    except ClaimCoachError as e:
        raise http_error(e)
    return await _state(workflow, db)


@router.post("/adjudication/owner-pitch/acknowledge", response_model=AdjudicationStateResponse)
async def acknowledge_owner_pitch(
    claim: Claim = Depends(require_adjudication_open),
    db: AsyncSession = Depends(get_db),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
):
    workflow = await _workflow(claim.id, registry)
    try:
        await workflow.acknowledge_owner_pitch()
    except ClaimCoachError as e:
        raise http_error(e)
    return await _state(workflow, db)


@router.post("/adjudication/complete", response_model=AdjudicationStateResponse)
async def complete_adjudication_step(
    claim: Claim = Depends(require_adjudication_open),
    db: AsyncSession = Depends(get_db),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
):
    workflow = await _workflow(claim.id, registry)
    try:
        await workflow.complete_step()
    except ClaimCoachError as e:
        raise http_error(e)
    return await _state(workflow, db)


@router.post("/adjudication/reset", response_model=AdjudicationStateResponse)
async def reset_adjudication(
    claim: Claim = Depends(require_adjudication_open),
    db: AsyncSession = Depends(get_db),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
):
    workflow = await _workflow(claim.id, registry)
    try:
        await workflow.reset()
    except ClaimCoachError as e:
        raise http_error(e)
    return await _state(workflow, db)


@router.post("/adjudication/new-cycle", response_model=AdjudicationStateResponse)
async def start_new_adjudication_cycle(
    claim: Claim = Depends(require_adjudication_open),
    db: AsyncSession = Depends(get_db),
    registry: WorkflowRegistry = Depends(get_workflow_registry),
):
    workflow = await _workflow(claim.id, registry)
    try:
        await workflow.start_new_cycle()
    except ClaimCoachError as e:
        raise http_error(e)
    return await _state(workflow, db)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@router.get("/carrier-estimates", response_model=List[CarrierEstimateResponse])
async def list_carrier_estimates(
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
):
    return await CarrierEstimateService(db).list_documents(claim.id)


@router.get("/carrier-estimates/{document_id}", response_model=CarrierEstimateDetailResponse)
async def get_carrier_estimate(
    document_id: UUID,
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await CarrierEstimateService(db).get_document(document_id, claim.id)
    except ClaimCoachError as e:
        raise http_error(e)


@router.get("/audit-reports", response_model=List[AuditReportResponse])
async def list_audit_reports(
    active_only: Optional[bool] = False,
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
):
    """Every report for the claim, newest first; superseded cycles included unless ``active_only``."""
    service = AuditService(db)
    if active_only:
        report = await service.get_active_report(claim.id)
        return [report] if report else []
    return await service.list_reports(claim.id)
