import io
import zipfile

import pytest
import pytest_asyncio
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from docx import Document as DocxDocument
from sqlalchemy import select

from claimcoach.activity.models import ActivityType, ClaimActivity
from claimcoach.adjudication.models import AuditReport, AuditReportStatus
from claimcoach.adjudication.service import AuditService
from claimcoach.adjudication.verdict import VerdictStatus, parse_verdict_analysis
from claimcoach.carrier_estimates.models import CarrierEstimate, ParseStatus
from claimcoach.carrier_estimates.service import CarrierEstimateService, validate_upload
from claimcoach.claims.models import ClaimStatus, LossType
from claimcoach.claims.schemas import ClaimCreate
from claimcoach.claims.service import ClaimService
from claimcoach.config import settings
from claimcoach.core.events.bus import EventType
from claimcoach.exceptions import (
    ExternalCallFailure,
    InvalidPhaseTransition,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from claimcoach.ingestion.service import IngestionService
from claimcoach.legal_package.service import BRIEFING_PATH, LegalPackageService
from claimcoach.payments.models import PaymentStatus, PaymentType
from claimcoach.payments.service import PaymentService
from claimcoach.rcv_demand.service import RCVDemandService
from claimcoach.workflow.phases import Phase
from claimcoach.workflow.registry import WorkflowRegistry

from conftest import FakeCollaborators, fake_agent, make_analysis, make_comparison, no_sleep

PDF = b"%PDF-1.7 carrier estimate"


async def activity_types(db, claim_id) -> list:
    result = await db.execute(
        select(ClaimActivity.activity_type)
        .where(ClaimActivity.claim_id == claim_id)
        .order_by(ClaimActivity.created_at)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------

class TestClaimService:
    @pytest.mark.asyncio
    async def test_create_numbers_claims_and_starts_in_draft(self, db_session, bus):
        service = ClaimService(db_session, bus)
        first = await service.create_claim(ClaimCreate(loss_type=LossType.WATER, incident_date=date(2026, 3, 1)))
        second = await service.create_claim(ClaimCreate(loss_type=LossType.FIRE, incident_date=date(2026, 3, 2)))

        assert first.claim_number == "CC-0001"
        assert second.claim_number == "CC-0002"
        assert first.status == ClaimStatus.DRAFT
        assert first.current_step == 1
        assert await activity_types(db_session, first.id) == [ActivityType.CLAIM_CREATED]

    @pytest.mark.asyncio
    async def test_filing_sets_filed_at_once(self, db_session, bus):
        service = ClaimService(db_session, bus)
        claim = await service.create_claim(ClaimCreate(loss_type=LossType.WATER, incident_date=date(2026, 3, 1)))

        claim = await service.update_status(claim.id, ClaimStatus.FILED)
        assert claim.filed_at is not None
        assert bus.events[-1].event_type == EventType.CLAIM_STATUS_CHANGED
        assert bus.events[-1].data == {"previous": "draft", "status": "filed"}

    @pytest.mark.asyncio
    async def test_adjuster_details_recorded_with_status(self, db_session, bus):
        service = ClaimService(db_session, bus)
        claim = await service.create_claim(ClaimCreate(loss_type=LossType.WATER, incident_date=date(2026, 3, 1)))
        await service.update_status(claim.id, ClaimStatus.FILED)

        claim = await service.update_status(
            claim.id, ClaimStatus.FIELD_SCHEDULED, adjuster_name="Dana Reyes", adjuster_phone="555-0100"
        )
        assert claim.adjuster_name == "Dana Reyes"
        assert claim.adjuster_phone == "555-0100"

    @pytest.mark.asyncio
    async def test_invalid_transition_changes_nothing(self, db_session, bus):
        service = ClaimService(db_session, bus)
        claim = await service.create_claim(ClaimCreate(loss_type=LossType.WATER, incident_date=date(2026, 3, 1)))

        with pytest.raises(InvalidTransition):
            await service.update_status(claim.id, ClaimStatus.SETTLED)

        await db_session.refresh(claim)
        assert claim.status == ClaimStatus.DRAFT
        assert bus.events == []

    @pytest.mark.asyncio
    async def test_unknown_claim(self, db_session, bus):
        with pytest.raises(NotFoundError):
            await ClaimService(db_session, bus).get_claim(uuid4())

    @pytest.mark.asyncio
    async def test_completed_steps_only_grow(self, db_session, bus, claim):
        service = ClaimService(db_session, bus)
        claim = await service.update_claim_step(claim.id, 7, [6])
        assert claim.steps_completed == [1, 2, 3, 4, 5, 6]
        assert claim.current_step == 7

        claim = await service.update_claim_step(claim.id, 7, [])
        assert claim.steps_completed == [1, 2, 3, 4, 5, 6]

    @pytest.mark.asyncio
    async def test_activity_trail_newest_first(self, db_session, bus):
        service = ClaimService(db_session, bus)
        claim = await service.create_claim(ClaimCreate(loss_type=LossType.FIRE, incident_date=date(2026, 3, 1)))
        await service.update_status(claim.id, ClaimStatus.ASSESSING)

        activities = await service.list_activities(claim.id)
        assert [a.activity_type for a in activities] == [ActivityType.STATUS_CHANGE, ActivityType.CLAIM_CREATED]
        assert activities[0].detail == {"from": "draft", "to": "assessing"}

    @pytest.mark.asyncio
    async def test_step_out_of_range(self, db_session, bus, claim):
        with pytest.raises(ValidationError):
            await ClaimService(db_session, bus).update_claim_step(claim.id, 8, [])


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class TestPaymentService:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, db_session, bus, claim):
        service = PaymentService(db_session, bus)
        payment = await service.create_expected(claim.id, PaymentType.ACV, Decimal("5000"))
        assert payment.status == PaymentStatus.EXPECTED

        payment = await service.record_received(payment.id, Decimal("5000"), date(2026, 7, 1), check_number="1042")
        assert payment.status == PaymentStatus.RECEIVED
        assert payment.check_number == "1042"

        payment = await service.reconcile(payment.id)
        assert payment.status == PaymentStatus.RECONCILED
        assert payment.reconciled_at is not None

        assert bus.types() == [
            EventType.PAYMENT_EXPECTED,
            EventType.PAYMENT_RECORDED,
            EventType.PAYMENT_RECONCILED,
        ]
        assert await activity_types(db_session, claim.id) == [
            ActivityType.PAYMENT_EXPECTED,
            ActivityType.PAYMENT_RECEIVED,
            ActivityType.PAYMENT_RECONCILED,
        ]

    @pytest.mark.asyncio
    async def test_reconcile_and_dispute_need_a_received_payment(self, db_session, bus, claim):
        service = PaymentService(db_session, bus)
        payment = await service.create_expected(claim.id, PaymentType.RCV, Decimal("2000"))

        with pytest.raises(InvalidPhaseTransition):
            await service.reconcile(payment.id)
        with pytest.raises(InvalidPhaseTransition):
            await service.dispute(payment.id, "short paid")

    @pytest.mark.asyncio
    async def test_dispute_needs_a_reason(self, db_session, bus, claim):
        service = PaymentService(db_session, bus)
        payment = await service.create_expected(claim.id, PaymentType.ACV, Decimal("5000"))
        await service.record_received(payment.id, Decimal("4000"), date(2026, 7, 1))

        with pytest.raises(ValidationError):
            await service.dispute(payment.id, "  ")
        payment = await service.dispute(payment.id, "Depreciation withheld twice")
        assert payment.status == PaymentStatus.DISPUTED
        assert payment.dispute_reason == "Depreciation withheld twice"

    @pytest.mark.asyncio
    async def test_negative_amounts_rejected(self, db_session, bus, claim):
        with pytest.raises(ValidationError):
            await PaymentService(db_session, bus).create_expected(claim.id, PaymentType.ACV, Decimal("-1"))

    @pytest.mark.asyncio
    async def test_payment_of_another_claim_is_not_found(self, db_session, bus, claim):
        service = PaymentService(db_session, bus)
        payment = await service.create_expected(claim.id, PaymentType.ACV, Decimal("5000"))
        with pytest.raises(NotFoundError):
            await service.reconcile(payment.id, claim_id=uuid4())

    @pytest.mark.asyncio
    async def test_summary_and_closure(self, db_session, bus, claim):
        service = PaymentService(db_session, bus)
        acv = await service.create_expected(claim.id, PaymentType.ACV, Decimal("5000"))
        await service.create_expected(claim.id, PaymentType.RCV, Decimal("10000"))
        await service.record_received(acv.id, Decimal("5000"), date(2026, 7, 1))

        summary = await service.summarize(claim.id)
        assert summary.total_acv_received == Decimal("5000")
        assert summary.rcv_outstanding == Decimal("10000")
        assert summary.can_offer_demand_letter

        closure = await service.closure_status(claim.id)
        assert not closure.can_close
        assert closure.blocking_reason == "RCV payment pending"


# ---------------------------------------------------------------------------
# RCV demand letters
# ---------------------------------------------------------------------------

class TestRCVDemandService:
    @pytest_asyncio.fixture
    async def ledger_with_outstanding_rcv(self, db_session, bus, claim):
        payments = PaymentService(db_session, bus)
        acv = await payments.create_expected(claim.id, PaymentType.ACV, Decimal("5000"))
        rcv = await payments.create_expected(claim.id, PaymentType.RCV, Decimal("10000"))
        await payments.record_received(acv.id, Decimal("5000"), date(2026, 7, 1))
        await payments.record_received(rcv.id, Decimal("4000"), date(2026, 8, 1))
        return rcv

    @pytest.mark.asyncio
    async def test_generate_captures_the_ledger(self, db_session, bus, claim, ledger_with_outstanding_rcv):
        writer = AsyncMock(return_value="Please release the remaining RCV.")
        service = RCVDemandService(db_session, bus, writer=writer)

        letter = await service.generate(claim.id, payment_id=ledger_with_outstanding_rcv.id)

        assert letter.content == "Please release the remaining RCV."
        assert letter.acv_received == Decimal("5000")
        assert letter.rcv_expected == Decimal("10000")
        assert letter.rcv_outstanding == Decimal("6000")
        variables = writer.await_args.args[0]
        assert variables["rcv_outstanding"] == "$6,000.00"
        assert variables["percent_outstanding"] == "60.0%"
        assert EventType.RCV_DEMAND_GENERATED in bus.types()

    @pytest.mark.asyncio
    async def test_not_offered_without_acv(self, db_session, bus, claim):
        payments = PaymentService(db_session, bus)
        await payments.create_expected(claim.id, PaymentType.RCV, Decimal("10000"))
        writer = AsyncMock()

        with pytest.raises(InvalidPhaseTransition):
            await RCVDemandService(db_session, bus, writer=writer).generate(claim.id)
        writer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_offered_without_outstanding_rcv(self, db_session, bus, claim):
        with pytest.raises(InvalidPhaseTransition):
            await RCVDemandService(db_session, bus, writer=AsyncMock()).generate(claim.id)

    @pytest.mark.asyncio
    async def test_payment_reference_must_be_rcv(self, db_session, bus, claim, ledger_with_outstanding_rcv):
        payments = await PaymentService(db_session, bus).list_payments(claim.id)
        acv = next(p for p in payments if p.payment_type == PaymentType.ACV)
        with pytest.raises(ValidationError):
            await RCVDemandService(db_session, bus, writer=AsyncMock()).generate(claim.id, payment_id=acv.id)

    @pytest.mark.asyncio
    async def test_writer_failure(self, db_session, bus, claim, ledger_with_outstanding_rcv):
        service = RCVDemandService(db_session, bus, writer=AsyncMock(side_effect=RuntimeError("offline")))
        with pytest.raises(ExternalCallFailure):
            await service.generate(claim.id)
        assert await service.list_letters(claim.id) == []

    @pytest.mark.asyncio
    async def test_mark_sent_exactly_once(self, db_session, bus, claim, ledger_with_outstanding_rcv):
        service = RCVDemandService(db_session, bus, writer=AsyncMock(return_value="letter"))
        letter = await service.generate(claim.id)

        letter = await service.mark_sent(letter.id, "claims@carrier.example")
        assert letter.sent_at is not None
        assert letter.sent_to_email == "claims@carrier.example"

        with pytest.raises(InvalidPhaseTransition):
            await service.mark_sent(letter.id, "other@carrier.example")
        assert (await service.get_letter(letter.id)).sent_to_email == "claims@carrier.example"


# ---------------------------------------------------------------------------
# Carrier estimates
# ---------------------------------------------------------------------------

class TestCarrierEstimateService:
    async def _upload(self, service, claim):
        doc = await service.request_upload_destination(claim.id, "estimate.pdf", "application/pdf", len(PDF))
        await service.write_upload(doc.file_path, PDF)
        return await service.confirm_upload(doc.id)

    @pytest.mark.asyncio
    async def test_upload_and_parse(self, db_session, bus, store, claim, parser_agent):
        service = CarrierEstimateService(db_session, store=store, bus=bus, parser=parser_agent)
        doc = await self._upload(service, claim)
        assert doc.uploaded_at is not None
        assert doc.parse_status == ParseStatus.PENDING

        with patch.object(IngestionService, "extract_text", return_value="Remove shingles 20 SQ ..."):
            doc = await service.parse_document(doc.id)

        assert doc.parse_status == ParseStatus.COMPLETED
        assert len(doc.parsed_data["line_items"]) == 2
        status = await service.get_parse_status(doc.id)
        assert status["status"] == ParseStatus.COMPLETED
        assert len(status["line_items"]) == 2
        assert bus.types() == [EventType.DOCUMENT_UPLOADED, EventType.DOCUMENT_PARSED]

    @pytest.mark.asyncio
    async def test_confirm_requires_the_file(self, db_session, bus, store, claim):
        service = CarrierEstimateService(db_session, store=store, bus=bus)
        doc = await service.request_upload_destination(claim.id, "estimate.pdf", "application/pdf", len(PDF))
        with pytest.raises(ValidationError):
            await service.confirm_upload(doc.id)

    @pytest.mark.asyncio
    async def test_parse_needs_confirmed_upload(self, db_session, bus, store, claim):
        service = CarrierEstimateService(db_session, store=store, bus=bus)
        doc = await service.request_upload_destination(claim.id, "estimate.pdf", "application/pdf", len(PDF))
        with pytest.raises(InvalidPhaseTransition):
            await service.parse_document(doc.id)

    @pytest.mark.asyncio
    async def test_parse_failure_is_recorded(self, db_session, bus, store, claim):
        parser = fake_agent({"parsed_estimate": None, "errors": ["no line items extracted from document"]})
        service = CarrierEstimateService(db_session, store=store, bus=bus, parser=parser)
        doc = await self._upload(service, claim)

        with patch.object(IngestionService, "extract_text", return_value="blank"):
            with pytest.raises(ExternalCallFailure):
                await service.parse_document(doc.id)

        status = await service.get_parse_status(doc.id)
        assert status["status"] == ParseStatus.FAILED
        assert "no line items" in status["error"]
        assert EventType.DOCUMENT_PARSE_FAILED in bus.types()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,size", [(None, 10), ("estimate.pdf", 0), ("photo.jpg", 10)])
    async def test_upload_validation(self, db_session, bus, store, claim, name, size):
        service = CarrierEstimateService(db_session, store=store, bus=bus)
        content_type = "image/jpeg" if name == "photo.jpg" else "application/pdf"
        with pytest.raises(ValidationError):
            await service.request_upload_destination(claim.id, name, content_type, size)

    @pytest.mark.asyncio
    async def test_upload_destination_enforces_the_size_cap(self, db_session, bus, store, claim, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", len(PDF) - 1)
        service = CarrierEstimateService(db_session, store=store, bus=bus)
        with pytest.raises(ValidationError, match="upload limit"):
            await service.request_upload_destination(claim.id, "estimate.pdf", "application/pdf", len(PDF))
        assert await service.list_documents(claim.id) == []

        # selection-time validation leaves the cap to storage
        validate_upload("estimate.pdf", "application/pdf", len(PDF))


# ---------------------------------------------------------------------------
# Audit reports
# ---------------------------------------------------------------------------

class TestAuditService:
    @pytest_asyncio.fixture
    async def parsed_document(self, db_session, bus, store, claim, parser_agent):
        service = CarrierEstimateService(db_session, store=store, bus=bus, parser=parser_agent)
        doc = await service.request_upload_destination(claim.id, "estimate.pdf", "application/pdf", len(PDF))
        await service.write_upload(doc.file_path, PDF)
        await service.confirm_upload(doc.id)
        with patch.object(IngestionService, "extract_text", return_value="line items"):
            return await service.parse_document(doc.id)

    def _service(self, db_session, bus, estimator_agent, adjudicator_agent, writers):
        return AuditService(db_session, bus, estimator=estimator_agent, adjudicator=adjudicator_agent, **writers)

    @pytest.mark.asyncio
    async def test_estimate_needs_a_parsed_document(self, db_session, bus, claim, estimator_agent, adjudicator_agent, writers):
        service = self._service(db_session, bus, estimator_agent, adjudicator_agent, writers)
        with pytest.raises(InvalidPhaseTransition):
            await service.generate_industry_estimate(claim.id)
        estimator_agent.ainvoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_estimate_then_analysis(self, db_session, bus, claim, parsed_document, estimator_agent, adjudicator_agent, writers):
        service = self._service(db_session, bus, estimator_agent, adjudicator_agent, writers)

        estimate = await service.generate_industry_estimate(claim.id)
        assert estimate.total == 18500
        report = await service.get_report(estimate.audit_report_id)
        assert report.carrier_estimate_id == parsed_document.id
        assert report.status == AuditReportStatus.PENDING

        analysis = await service.run_analysis(claim.id, estimate.audit_report_id)
        assert analysis.status == VerdictStatus.DISPUTE_OFFER

        await db_session.refresh(report)
        assert report.status == AuditReportStatus.COMPLETED
        assert parse_verdict_analysis(report.verdict_analysis) == analysis
        assert report.total_delta == Decimal("6500.00")
        assert report.comparison_data == make_comparison().model_dump()

    @pytest.mark.asyncio
    async def test_analysis_failure_marks_report_failed(self, db_session, bus, claim, parsed_document, estimator_agent, writers):
        adjudicator = fake_agent({"errors": ["comparison: model returned garbage"], "messages": []})
        service = self._service(db_session, bus, estimator_agent, adjudicator, writers)
        estimate = await service.generate_industry_estimate(claim.id)

        with pytest.raises(ExternalCallFailure):
            await service.run_analysis(claim.id, estimate.audit_report_id)
        report = await service.get_report(estimate.audit_report_id)
        assert report.status == AuditReportStatus.FAILED
        assert "garbage" in report.error_message

    @pytest.mark.asyncio
    async def test_dispute_letter_for_dispute_offer(self, db_session, bus, claim, parsed_document, estimator_agent, adjudicator_agent, writers):
        service = self._service(db_session, bus, estimator_agent, adjudicator_agent, writers)
        estimate = await service.generate_industry_estimate(claim.id)
        await service.run_analysis(claim.id, estimate.audit_report_id)

        letter = await service.generate_dispute_letter(claim.id, estimate.audit_report_id)
        assert letter.startswith("Dear Adjuster")
        variables = writers["dispute_writer"].await_args.args[0]
        assert variables["claim_number"] == "CC-0001"
        assert "Roof decking" in variables["discrepancies"]

        with pytest.raises(InvalidPhaseTransition):
            await service.generate_owner_pitch(claim.id, estimate.audit_report_id)

    @pytest.mark.asyncio
    async def test_owner_pitch_and_acknowledgement(self, db_session, bus, claim, parsed_document, estimator_agent, writers):
        adjudicator = fake_agent({
            "comparison": make_comparison(),
            "verdict": make_analysis(VerdictStatus.LEGAL_REVIEW, legal_threshold_met=True),
            "messages": [],
            "errors": [],
        })
        service = self._service(db_session, bus, estimator_agent, adjudicator, writers)
        estimate = await service.generate_industry_estimate(claim.id)
        await service.run_analysis(claim.id, estimate.audit_report_id)

        with pytest.raises(InvalidPhaseTransition):
            await service.acknowledge_owner_pitch(claim.id, estimate.audit_report_id)

        await service.generate_owner_pitch(claim.id, estimate.audit_report_id)
        report = await service.acknowledge_owner_pitch(claim.id, estimate.audit_report_id)
        acknowledged_at = report.owner_pitch_acknowledged_at
        assert acknowledged_at is not None

        report = await service.acknowledge_owner_pitch(claim.id, estimate.audit_report_id)
        assert report.owner_pitch_acknowledged_at == acknowledged_at
        with pytest.raises(InvalidPhaseTransition):
            await service.generate_owner_pitch(claim.id, estimate.audit_report_id)

    @pytest.mark.asyncio
    async def test_supersede_keeps_history(self, db_session, bus, claim, parsed_document, estimator_agent, adjudicator_agent, writers):
        service = self._service(db_session, bus, estimator_agent, adjudicator_agent, writers)
        estimate = await service.generate_industry_estimate(claim.id)
        await service.run_analysis(claim.id, estimate.audit_report_id)

        await service.supersede(claim.id)

        assert await service.get_active_report(claim.id) is None
        reports = await service.list_reports(claim.id)
        assert [r.id for r in reports] == [estimate.audit_report_id]
        assert await CarrierEstimateService(db_session).get_current_document(claim.id) is None
        with pytest.raises(InvalidPhaseTransition):
            await service.generate_dispute_letter(claim.id, estimate.audit_report_id)

    @pytest.mark.asyncio
    async def test_rerunning_the_estimate_supersedes_the_previous_report(self, db_session, bus, claim, parsed_document, estimator_agent, adjudicator_agent, writers):
        service = self._service(db_session, bus, estimator_agent, adjudicator_agent, writers)
        first = await service.generate_industry_estimate(claim.id)
        second = await service.generate_industry_estimate(claim.id)

        active = await service.get_active_report(claim.id)
        assert active.id == second.audit_report_id
        result = await db_session.execute(select(AuditReport).where(AuditReport.id == first.audit_report_id))
        assert result.scalar_one().superseded_at is not None

    @pytest.mark.asyncio
    async def test_supersede_keeps_the_upload_that_opens_the_next_cycle(self, db_session, bus, store, claim, parsed_document, estimator_agent, adjudicator_agent, writers):
        service = self._service(db_session, bus, estimator_agent, adjudicator_agent, writers)
        estimate = await service.generate_industry_estimate(claim.id)
        await service.run_analysis(claim.id, estimate.audit_report_id)

        documents = CarrierEstimateService(db_session, store=store, bus=bus)
        revised = await documents.request_upload_destination(claim.id, "revised.pdf", "application/pdf", len(PDF))
        await documents.write_upload(revised.file_path, PDF)
        await documents.confirm_upload(revised.id)

        await service.supersede(claim.id, keep_document_id=revised.id)

        assert await service.get_active_report(claim.id) is None
        current = await documents.get_current_document(claim.id)
        assert current.id == revised.id
        await db_session.refresh(parsed_document)
        assert parsed_document.retired_at is not None


# ---------------------------------------------------------------------------
# Legal package
# ---------------------------------------------------------------------------

class TestLegalPackageService:
    async def _verdict(self, db_session, bus, store, claim, parser_agent, estimator_agent, writers, status):
        documents = CarrierEstimateService(db_session, store=store, bus=bus, parser=parser_agent)
        doc = await documents.request_upload_destination(claim.id, "carrier estimate.pdf", "application/pdf", len(PDF))
        await documents.write_upload(doc.file_path, PDF)
        await documents.confirm_upload(doc.id)
        with patch.object(IngestionService, "extract_text", return_value="line items"):
            await documents.parse_document(doc.id)

        adjudicator = fake_agent({
            "comparison": make_comparison(),
            "verdict": make_analysis(
                status,
                coverage_disputes=[{"item": "Gutters", "status": "denied", "contractor_position": "Hail dents"}],
            ),
            "messages": [],
            "errors": [],
        })
        audit = AuditService(db_session, bus, estimator=estimator_agent, adjudicator=adjudicator, **writers)
        estimate = await audit.generate_industry_estimate(claim.id)
        await audit.run_analysis(claim.id, estimate.audit_report_id)
        return doc

    @pytest.mark.asyncio
    async def test_package_holds_the_briefing_and_carrier_estimates(self, db_session, bus, store, claim, parser_agent, estimator_agent, writers):
        await self._verdict(db_session, bus, store, claim, parser_agent, estimator_agent, writers, VerdictStatus.LEGAL_REVIEW)

        package = await LegalPackageService(db_session, store=store, bus=bus).generate(claim.id)

        assert package.file_name.startswith("ClaimCoach-Legal-Package-CC-0001-")
        assert package.file_name.endswith(".zip")
        assert package.attachments == ["01-carrier estimate.pdf"]
        with zipfile.ZipFile(io.BytesIO(package.content)) as archive:
            assert archive.namelist() == [BRIEFING_PATH, "2-Carrier-Documents/01-carrier estimate.pdf"]
            assert archive.read("2-Carrier-Documents/01-carrier estimate.pdf") == PDF
            briefing = DocxDocument(io.BytesIO(archive.read(BRIEFING_PATH)))

        text = "\n".join(p.text for p in briefing.paragraphs)
        assert "Carrier underpaid by $6,500.00, citing discrepancies in Roof decking" in text
        assert "1 item(s) disputed or denied" in text
        assert "Gutters [DENIED]: Hail dents" in text
        assert "Claim number: CC-0001" in text

        assert ActivityType.LEGAL_PACKAGE_GENERATED in await activity_types(db_session, claim.id)
        assert bus.types()[-1] == EventType.LEGAL_PACKAGE_GENERATED

    @pytest.mark.asyncio
    async def test_unreadable_carrier_file_is_left_out(self, db_session, bus, store, claim, parser_agent, estimator_agent, writers):
        doc = await self._verdict(db_session, bus, store, claim, parser_agent, estimator_agent, writers, VerdictStatus.LEGAL_REVIEW)
        (store.root / doc.file_path).unlink()

        package = await LegalPackageService(db_session, store=store, bus=bus).generate(claim.id)

        assert package.attachments == []
        with zipfile.ZipFile(io.BytesIO(package.content)) as archive:
            assert archive.namelist() == [BRIEFING_PATH]

    @pytest.mark.asyncio
    async def test_only_for_legal_review_verdicts(self, db_session, bus, store, claim, parser_agent, estimator_agent, writers):
        service = LegalPackageService(db_session, store=store, bus=bus)
        with pytest.raises(InvalidPhaseTransition, match="audit analysis is required"):
            await service.generate(claim.id)

        await self._verdict(db_session, bus, store, claim, parser_agent, estimator_agent, writers, VerdictStatus.DISPUTE_OFFER)
        with pytest.raises(InvalidPhaseTransition, match="LEGAL_REVIEW"):
            await service.generate(claim.id)

    @pytest.mark.asyncio
    async def test_superseded_verdict_does_not_qualify(self, db_session, bus, store, claim, parser_agent, estimator_agent, writers):
        await self._verdict(db_session, bus, store, claim, parser_agent, estimator_agent, writers, VerdictStatus.LEGAL_REVIEW)
        await AuditService(db_session, bus).supersede(claim.id)

        with pytest.raises(InvalidPhaseTransition):
            await LegalPackageService(db_session, store=store, bus=bus).generate(claim.id)

    @pytest.mark.asyncio
    async def test_unknown_claim(self, db_session, bus, store):
        with pytest.raises(NotFoundError):
            await LegalPackageService(db_session, store=store, bus=bus).generate(uuid4())


# ---------------------------------------------------------------------------
# Workflow registry over the database
# ---------------------------------------------------------------------------

class TestWorkflowRegistry:
    @pytest.mark.asyncio
    async def test_cycle_survives_a_reload(self, registry, claim):
        workflow = await registry.get(claim.id)
        assert workflow.phase == Phase.IDLE

        with patch.object(IngestionService, "extract_text", return_value="line items"):
            document_id = await workflow.upload("estimate.pdf", "application/pdf", PDF)
        await workflow.await_parse()
        assert workflow.phase == Phase.READY

        analysis = await workflow.analyze()
        assert analysis.status == VerdictStatus.DISPUTE_OFFER
        await workflow.generate_dispute_letter()

        registry.forget(claim.id)
        reloaded = await registry.get(claim.id)
        assert reloaded is not workflow
        assert reloaded.phase == Phase.VERDICT
        assert reloaded.document_id == document_id
        assert reloaded.audit_report_id == workflow.audit_report_id
        assert reloaded.verdict == analysis
        assert reloaded.artifacts.has_dispute_letter

    @pytest.mark.asyncio
    async def test_failed_upload_over_a_verdict_survives_a_reload(self, registry, db_collaborators, claim):
        workflow = await registry.get(claim.id)
        with patch.object(IngestionService, "extract_text", return_value="line items"):
            document_id = await workflow.upload("estimate.pdf", "application/pdf", PDF)
        await workflow.await_parse()
        analysis = await workflow.analyze()

        with patch.object(db_collaborators, "transfer", AsyncMock(side_effect=OSError("bucket unavailable"))):
            with pytest.raises(ExternalCallFailure):
                await workflow.upload("revised.pdf", "application/pdf", PDF)
        assert workflow.phase == Phase.VERDICT

        registry.forget(claim.id)
        reloaded = await registry.get(claim.id)
        assert reloaded.phase == Phase.VERDICT
        assert reloaded.document_id == document_id
        assert reloaded.verdict == analysis

    @pytest.mark.asyncio
    async def test_complete_step_is_persisted(self, registry, claim, db_session):
        workflow = await registry.get(claim.id)
        with patch.object(IngestionService, "extract_text", return_value="line items"):
            await workflow.upload("estimate.pdf", "application/pdf", PDF)
        await workflow.await_parse()
        await workflow.analyze()
        await workflow.generate_dispute_letter()
        await workflow.complete_step()

        await db_session.refresh(claim)
        assert claim.current_step == 7
        assert 6 in claim.steps_completed
        assert (await registry.get(claim.id)).step_completed

    @pytest.mark.asyncio
    async def test_unknown_claim(self, registry):
        with pytest.raises(NotFoundError):
            await registry.get(uuid4())

    @pytest.mark.asyncio
    async def test_parsing_document_resumes_polling(self, session_factory, db_session, bus, claim):
        doc = CarrierEstimate(
            claim_id=claim.id,
            file_name="estimate.pdf",
            file_path="claims/x/estimate.pdf",
            content_type="application/pdf",
            parse_status=ParseStatus.PROCESSING,
            uploaded_at=datetime.utcnow(),
        )
        db_session.add(doc)
        await db_session.commit()

        collaborators = FakeCollaborators(parse_statuses=[ParseStatus.PROCESSING, ParseStatus.COMPLETED])
        registry = WorkflowRegistry(session_factory, collaborators, bus=bus, poll_interval=0.01, sleep_fn=no_sleep)

        workflow = await registry.get(claim.id)
        assert workflow.document_id == doc.id
        await registry.drain()

        assert workflow.phase == Phase.READY
        assert collaborators.get_parse_status.await_count == 2
