from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from claimcoach.adjudication.models import AuditReportStatus
from claimcoach.adjudication.verdict import VerdictAnalysis, WorkflowAction
from claimcoach.carrier_estimates.schemas import CarrierEstimateResponse, LineItem


class IndustryEstimate(BaseModel):
    """Xactimate-style estimate priced from the contractor's scope."""
    line_items: List[LineItem]
    subtotal: float
    overhead_profit: float = Field(description="Typically 20% of subtotal")
    total: float


class Discrepancy(BaseModel):
    item: str
    industry_price: float
    carrier_price: float
    delta: float
    justification: str = Field(description="Why the industry price is correct")


class ComparisonSummary(BaseModel):
    total_industry: float
    total_carrier: float
    total_delta: float


class EstimateComparison(BaseModel):
    discrepancies: List[Discrepancy] = Field(default_factory=list)
    summary: ComparisonSummary


class IndustryEstimateResult(BaseModel):
    audit_report_id: UUID
    line_items: List[LineItem]
    subtotal: float
    overhead_profit: float
    total: float


class AuditReportResponse(BaseModel):
    id: UUID
    claim_id: UUID
    carrier_estimate_id: Optional[UUID] = None
    status: AuditReportStatus
    total_contractor_estimate: Optional[Decimal] = None
    total_carrier_estimate: Optional[Decimal] = None
    total_delta: Optional[Decimal] = None
    dispute_letter: Optional[str] = None
    owner_pitch: Optional[str] = None
    owner_pitch_acknowledged_at: Optional[datetime] = None
    error_message: Optional[str] = None
    superseded_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdjudicationStateResponse(BaseModel):
    claim_id: UUID
    phase: str
    document: Optional[CarrierEstimateResponse] = None
    audit_report_id: Optional[UUID] = None
    verdict: Optional[VerdictAnalysis] = None
    dispute_letter: Optional[str] = None
    owner_pitch: Optional[str] = None
    owner_pitch_acknowledged: bool = False
    actions: List[WorkflowAction] = []
    step_completion_blocker: Optional[str] = None
    last_error: Optional[str] = None
