import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.activity.models import ActivityType, ClaimActivity
from claimcoach.adjudication.models import AuditReport, AuditReportStatus
from claimcoach.adjudication.schemas import EstimateComparison, IndustryEstimate, IndustryEstimateResult
from claimcoach.adjudication.verdict import (
    VerdictAnalysis,
    VerdictStatus,
    parse_verdict_analysis,
    serialize_verdict_analysis,
)
from claimcoach.agents.adjudicator.agent import adjudicator_agent
from claimcoach.agents.adjudicator.nodes import format_discrepancies
from claimcoach.agents.estimator.agent import estimator_agent
from claimcoach.agents.letters import agent as letters
from claimcoach.agents.state import AdjudicatorState, EstimatorState
from claimcoach.carrier_estimates.models import CarrierEstimate, ParseStatus
from claimcoach.carrier_estimates.service import CarrierEstimateService
from claimcoach.claims.models import Claim
from claimcoach.core.events.bus import EventBus, EventType, event_bus
from claimcoach.exceptions import (
    ExternalCallFailure,
    InvalidPhaseTransition,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

LetterWriter = Callable[[Dict[str, Any]], Awaitable[str]]


def to_money(value: float | int | str | Decimal | None) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value)).quantize(CENT)


def format_money(value: float | Decimal | None) -> str:
    if value is None:
        return "unknown"
    return f"${Decimal(str(value)):,.2f}"


class AuditService:
    """Industry estimate, comparison, verdict and follow-up artifacts for a claim.

    The LangGraph agents and letter writers are injectable so tests (and
    alternative model stacks) can swap them without patching modules.
    """

    def __init__(
        self,
        db: AsyncSession,
        bus: Optional[EventBus] = None,
        estimator=None,
        adjudicator=None,
        dispute_writer: Optional[LetterWriter] = None,
        pitch_writer: Optional[LetterWriter] = None,
    ):
        self.db = db
        self.bus = bus or event_bus
        self.estimator = estimator or estimator_agent
        self.adjudicator = adjudicator or adjudicator_agent
        self.dispute_writer = dispute_writer or letters.write_dispute_letter
        self.pitch_writer = pitch_writer or letters.write_owner_pitch
        self.documents = CarrierEstimateService(db, bus=self.bus)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _get_claim(self, claim_id: UUID) -> Claim:
        claim = await self.db.get(Claim, claim_id)
        if not claim:
            raise NotFoundError("Claim not found", claim_id=claim_id)
        return claim

    async def get_active_report(self, claim_id: UUID) -> Optional[AuditReport]:
        result = await self.db.execute(
            select(AuditReport)
            .where(AuditReport.claim_id == claim_id, AuditReport.superseded_at.is_(None))
            .order_by(AuditReport.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def list_reports(self, claim_id: UUID) -> List[AuditReport]:
        result = await self.db.execute(
            select(AuditReport)
            .where(AuditReport.claim_id == claim_id)
            .order_by(AuditReport.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_report(self, audit_report_id: UUID, claim_id: Optional[UUID] = None) -> AuditReport:
        report = await self.db.get(AuditReport, audit_report_id)
        if not report or (claim_id is not None and report.claim_id != claim_id):
            raise NotFoundError("Audit report not found", claim_id=claim_id)
        return report

    async def _get_active_report(self, claim_id: UUID, audit_report_id: UUID) -> AuditReport:
        report = await self.get_report(audit_report_id, claim_id)
        if not report.is_active:
            raise InvalidPhaseTransition("Audit report has been superseded by a newer cycle", claim_id=claim_id)
        return report

    @staticmethod
    def _claim_context(claim: Claim) -> Dict[str, Any]:
        return {
            "claim_number": claim.claim_number or str(claim.id),
            "loss_type": getattr(claim.loss_type, "value", claim.loss_type),
            "incident_date": claim.incident_date.isoformat() if claim.incident_date else "unknown",
            "description": claim.description or "(none)",
            "scope_summary": claim.scope_summary or "",
            "contractor_total": format_money(claim.contractor_estimate_total),
            "adjuster_name": claim.adjuster_name or "Insurance Adjuster",
        }

    @staticmethod
    def _require_verdict(report: AuditReport) -> VerdictAnalysis:
        analysis = parse_verdict_analysis(report.verdict_analysis)
        if analysis is None:
            raise InvalidPhaseTransition("Run the analysis before generating follow-up documents")
        return analysis

    async def _fail(self, report: AuditReport, operation: str, message: str) -> ExternalCallFailure:
        report.status = AuditReportStatus.FAILED
        report.error_message = message
        await self.db.commit()
        logger.error(f"{operation} failed for audit report {report.id}: {message}")
        return ExternalCallFailure(operation, message, claim_id=report.claim_id)

    # ------------------------------------------------------------------
    # Cycle management
    # ------------------------------------------------------------------

    async def supersede(
        self,
        claim_id: UUID,
        retire_documents: bool = True,
        keep_document_id: Optional[UUID] = None,
    ) -> Optional[AuditReport]:
        """Close the active cycle. The report is kept for history; with
        ``retire_documents`` its carrier estimates are also dropped from resume,
        except ``keep_document_id`` when a new upload is opening the next cycle."""
        report = await self.get_active_report(claim_id)
        if report:
            report.superseded_at = datetime.utcnow()
            self.db.add(ClaimActivity(
                claim_id=claim_id,
                activity_type=ActivityType.AUDIT_REPORT_SUPERSEDED,
                description="Adjudication cycle closed; starting over",
                detail={"audit_report_id": str(report.id)},
            ))
        if retire_documents:
            await self.documents.retire_documents(claim_id, keep_document_id=keep_document_id)
        await self.db.commit()
        if report:
            logger.info(f"Audit report {report.id} superseded on claim {claim_id}")
        return report

    # ------------------------------------------------------------------
    # Estimate + analysis
    # ------------------------------------------------------------------

    async def generate_industry_estimate(self, claim_id: UUID) -> IndustryEstimateResult:
        claim = await self._get_claim(claim_id)
        if not (claim.scope_summary or claim.description):
            raise ValidationError("Add the contractor scope of work before running an analysis", claim_id=claim_id)

        doc = await self.documents.get_current_document(claim_id)
        if not doc or doc.parse_status != ParseStatus.COMPLETED:
            raise InvalidPhaseTransition("A parsed carrier estimate is required", claim_id=claim_id)

        # A fresh estimate starts a fresh report; the carrier document stays current
        await self.supersede(claim_id, retire_documents=False)

        report = AuditReport(
            claim_id=claim_id,
            carrier_estimate_id=doc.id,
            status=AuditReportStatus.PROCESSING,
        )
        self.db.add(report)
        await self.db.commit()
        await self.db.refresh(report)

        initial_state: EstimatorState = {
            "claim_context": self._claim_context(claim),
            "industry_estimate": None,
            "errors": [],
        }
        try:
            final_state = await self.estimator.ainvoke(initial_state)
        except Exception as e:
            raise await self._fail(report, "estimate", str(e))
        if final_state.get("errors"):
            raise await self._fail(report, "estimate", "; ".join(final_state["errors"]))

        estimate: IndustryEstimate = final_state["industry_estimate"]
        report.generated_estimate = estimate.model_dump()
        report.total_contractor_estimate = to_money(estimate.total)
        report.status = AuditReportStatus.PENDING
        self.db.add(ClaimActivity(
            claim_id=claim_id,
            activity_type=ActivityType.INDUSTRY_ESTIMATE_GENERATED,
            description=f"Industry estimate generated: {format_money(estimate.total)}",
            detail={"audit_report_id": str(report.id), "line_items": len(estimate.line_items)},
        ))
        await self.db.commit()
        await self.db.refresh(report)
        logger.info(f"Industry estimate for claim {claim_id}: {len(estimate.line_items)} items, total {estimate.total}")

        return IndustryEstimateResult(
            audit_report_id=report.id,
            line_items=estimate.line_items,
            subtotal=estimate.subtotal,
            overhead_profit=estimate.overhead_profit,
            total=estimate.total,
        )

    async def run_analysis(self, claim_id: UUID, audit_report_id: UUID) -> VerdictAnalysis:
        claim = await self._get_claim(claim_id)
        report = await self._get_active_report(claim_id, audit_report_id)
        if not report.generated_estimate:
            raise InvalidPhaseTransition("Generate the industry estimate first", claim_id=claim_id)

        doc: Optional[CarrierEstimate] = None
        if report.carrier_estimate_id:
            doc = await self.db.get(CarrierEstimate, report.carrier_estimate_id)
        if not doc or doc.parse_status != ParseStatus.COMPLETED or not doc.parsed_data:
            raise InvalidPhaseTransition("Carrier estimate has not been parsed", claim_id=claim_id)

        report.status = AuditReportStatus.PROCESSING
        await self.db.commit()

        initial_state: AdjudicatorState = {
            "claim_context": self._claim_context(claim),
            "industry_estimate": json.dumps(report.generated_estimate),
            "carrier_estimate": json.dumps(doc.parsed_data),
            "comparison": None,
            "verdict": None,
            "messages": [],
            "errors": [],
        }
        try:
            final_state = await self.adjudicator.ainvoke(initial_state)
        except Exception as e:
            raise await self._fail(report, "analysis", str(e))
        if final_state.get("errors"):
            raise await self._fail(report, "analysis", "; ".join(final_state["errors"]))

        comparison: EstimateComparison = final_state["comparison"]
        analysis: VerdictAnalysis = final_state["verdict"]

        report.comparison_data = comparison.model_dump()
        report.verdict_analysis = serialize_verdict_analysis(analysis)
        report.total_contractor_estimate = to_money(analysis.total_contractor_estimate)
        report.total_carrier_estimate = to_money(analysis.total_carrier_estimate)
        report.total_delta = to_money(analysis.total_delta)
        report.status = AuditReportStatus.COMPLETED
        report.error_message = None
        self.db.add(ClaimActivity(
            claim_id=claim_id,
            activity_type=ActivityType.ANALYSIS_COMPLETED,
            description=f"Carrier offer classified as {analysis.status.value}",
            detail={
                "audit_report_id": str(report.id),
                "status": analysis.status.value,
                "total_delta": analysis.total_delta,
            },
        ))
        await self.db.commit()
        await self.db.refresh(report)
        logger.info(f"Claim {claim_id} verdict {analysis.status.value} (delta {analysis.total_delta})")
        return analysis

    # ------------------------------------------------------------------
    # Follow-up artifacts
    # ------------------------------------------------------------------

    async def generate_dispute_letter(self, claim_id: UUID, audit_report_id: UUID) -> str:
        claim = await self._get_claim(claim_id)
        report = await self._get_active_report(claim_id, audit_report_id)
        analysis = self._require_verdict(report)
        if analysis.status != VerdictStatus.DISPUTE_OFFER:
            raise InvalidPhaseTransition(
                f"Dispute letters are only written for DISPUTE_OFFER verdicts (got {analysis.status.value})",
                claim_id=claim_id,
            )

        comparison = EstimateComparison.model_validate(report.comparison_data) if report.comparison_data else None
        variables = {
            **self._claim_context(claim),
            "total_contractor": format_money(report.total_contractor_estimate),
            "total_carrier": format_money(report.total_carrier_estimate),
            "total_delta": format_money(report.total_delta),
            "summary": analysis.plain_english_summary,
            "discrepancies": format_discrepancies(comparison.discrepancies if comparison else []),
        }
        try:
            letter = await self.dispute_writer(variables)
        except Exception as e:
            logger.error(f"Dispute letter generation failed for claim {claim_id}: {e}")
            raise ExternalCallFailure("dispute letter", str(e), claim_id=claim_id)

        report.dispute_letter = letter
        self.db.add(ClaimActivity(
            claim_id=claim_id,
            activity_type=ActivityType.DISPUTE_LETTER_GENERATED,
            description="Dispute letter generated",
            detail={"audit_report_id": str(report.id)},
        ))
        await self.db.commit()
        return letter

    async def generate_owner_pitch(self, claim_id: UUID, audit_report_id: UUID) -> str:
        claim = await self._get_claim(claim_id)
        report = await self._get_active_report(claim_id, audit_report_id)
        analysis = self._require_verdict(report)
        if analysis.status != VerdictStatus.LEGAL_REVIEW:
            raise InvalidPhaseTransition(
                f"Owner pitches are only written for LEGAL_REVIEW verdicts (got {analysis.status.value})",
                claim_id=claim_id,
            )
        if report.owner_pitch_acknowledged_at is not None:
            raise InvalidPhaseTransition("Owner pitch was already sent", claim_id=claim_id)

        variables = {
            **self._claim_context(claim),
            "total_contractor": format_money(analysis.total_contractor_estimate),
            "total_carrier": format_money(analysis.total_carrier_estimate),
            "total_delta": format_money(analysis.total_delta),
            "summary": analysis.plain_english_summary,
            "drivers": "\n".join(
                f"- {d.line_item}: {format_money(d.delta)} ({d.reason})" for d in analysis.top_delta_drivers
            ) or "(none)",
            "coverage_disputes": "\n".join(
                f"- {c.item} ({c.status}): {c.contractor_position}" for c in analysis.coverage_disputes
            ) or "(none)",
            "next_steps": "\n".join(f"- {s}" for s in analysis.required_next_steps) or "(none)",
        }
        try:
            pitch = await self.pitch_writer(variables)
        except Exception as e:
            logger.error(f"Owner pitch generation failed for claim {claim_id}: {e}")
            raise ExternalCallFailure("owner pitch", str(e), claim_id=claim_id)

        report.owner_pitch = pitch
        self.db.add(ClaimActivity(
            claim_id=claim_id,
            activity_type=ActivityType.OWNER_PITCH_GENERATED,
            description="Owner escalation pitch generated",
            detail={"audit_report_id": str(report.id)},
        ))
        await self.db.commit()
        return pitch

    async def acknowledge_owner_pitch(self, claim_id: UUID, audit_report_id: UUID) -> AuditReport:
        """Record that the owner pitch was sent. Cannot be undone."""
        report = await self._get_active_report(claim_id, audit_report_id)
        if not report.owner_pitch:
            raise InvalidPhaseTransition("Generate the owner pitch before confirming it was sent", claim_id=claim_id)
        if report.owner_pitch_acknowledged_at is not None:
            return report

        report.owner_pitch_acknowledged_at = datetime.utcnow()
        self.db.add(ClaimActivity(
            claim_id=claim_id,
            activity_type=ActivityType.OWNER_PITCH_ACKNOWLEDGED,
            description="Owner pitch confirmed as sent",
            detail={"audit_report_id": str(report.id)},
        ))
        await self.db.commit()
        await self.db.refresh(report)
        return report
