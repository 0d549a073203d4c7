"""
Attorney hand-off package for claims escalated to LEGAL_REVIEW.

The package is a ZIP holding a one-page briefing built from the persisted
verdict plus every carrier estimate received for the claim. A carrier file
that can no longer be read from storage is left out and logged; the
briefing itself is always present.
"""
import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID

from docx import Document as DocxDocument
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.activity.models import ActivityType, ClaimActivity
from claimcoach.adjudication.service import AuditService, format_money
from claimcoach.adjudication.verdict import VerdictAnalysis, VerdictStatus, parse_verdict_analysis
from claimcoach.carrier_estimates.service import CarrierEstimateService
from claimcoach.claims.models import Claim
from claimcoach.core.events.bus import EventBus, EventType, event_bus
from claimcoach.exceptions import InvalidPhaseTransition, NotFoundError
from claimcoach.storage.service import FileStore

logger = logging.getLogger(__name__)

BRIEFING_PATH = "1-Legal-Brief/Attorney-Briefing.docx"
CARRIER_FOLDER = "2-Carrier-Documents/"

_UNSAFE = re.compile(r"[\\/:]+")


def safe_file_name(name: Optional[str], fallback: str = "file") -> str:
    name = _UNSAFE.sub("-", (name or "").strip())
    return name or fallback


@dataclass
class LegalPackage:
    file_name: str
    content: bytes
    attachments: List[str] = field(default_factory=list)


class LegalPackageService:
    def __init__(
        self,
        db: AsyncSession,
        store: Optional[FileStore] = None,
        bus: Optional[EventBus] = None,
    ):
        self.db = db
        self.store = store or FileStore()
        self.bus = bus or event_bus
        self.audit = AuditService(db, bus=self.bus)
        self.documents = CarrierEstimateService(db, store=self.store, bus=self.bus)

    async def generate(self, claim_id: UUID) -> LegalPackage:
        """Build the package from the active report's LEGAL_REVIEW verdict."""
        claim = await self.db.get(Claim, claim_id)
        if not claim:
            raise NotFoundError("Claim not found", claim_id=claim_id)

        report = await self.audit.get_active_report(claim_id)
        analysis = parse_verdict_analysis(report.verdict_analysis) if report else None
        if analysis is None:
            raise InvalidPhaseTransition(
                "An audit analysis is required before generating a legal package", claim_id=claim_id
            )
        if analysis.status != VerdictStatus.LEGAL_REVIEW:
            raise InvalidPhaseTransition(
                f"Legal packages are only built for LEGAL_REVIEW verdicts (got {analysis.status.value})",
                claim_id=claim_id,
            )

        carrier_files = await self._carrier_files(claim_id)
        attachments = [name for name, _ in carrier_files]
        briefing = self.build_briefing(claim, analysis, attachments)

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            archive.writestr(BRIEFING_PATH, briefing)
            for name, content in carrier_files:
                archive.writestr(CARRIER_FOLDER + name, content)
        content = buffer.getvalue()

        claim_number = safe_file_name(claim.claim_number, fallback=str(claim.id)[:8]).replace(" ", "-")
        file_name = f"ClaimCoach-Legal-Package-{claim_number}-{date.today().isoformat()}.zip"

        self.db.add(ClaimActivity(
            claim_id=claim_id,
            activity_type=ActivityType.LEGAL_PACKAGE_GENERATED,
            description=f"Legal package generated with {len(attachments)} carrier document(s)",
            detail={"audit_report_id": str(report.id), "file_name": file_name, "attachments": attachments},
        ))
        await self.db.commit()
        logger.info(f"Legal package for claim {claim_id}: {len(content)} bytes, {len(attachments)} attachments")

        await self.bus.emit(
            EventType.LEGAL_PACKAGE_GENERATED, claim_id,
            audit_report_id=str(report.id), file_name=file_name,
        )
        return LegalPackage(file_name=file_name, content=content, attachments=attachments)

    async def _carrier_files(self, claim_id: UUID) -> List[Tuple[str, bytes]]:
        files: List[Tuple[str, bytes]] = []
        # oldest first; retired uploads from earlier cycles are part of the record
        for doc in reversed(await self.documents.list_documents(claim_id)):
            if doc.uploaded_at is None:
                continue
            try:
                content = await self.store.read(doc.file_path)
            except OSError as e:
                logger.warning(f"Carrier estimate {doc.id} left out of the legal package: {e}")
                continue
            files.append((f"{len(files) + 1:02d}-{safe_file_name(doc.file_name)}", content))
        return files

    # ------------------------------------------------------------------
    # Briefing document
    # ------------------------------------------------------------------

    def build_briefing(self, claim: Claim, analysis: VerdictAnalysis, attachments: List[str]) -> bytes:
        doc = DocxDocument()

        title = doc.add_paragraph()
        title.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = title.add_run("Legal Referral One-Pager")
        run.bold = True
        run.font.size = Pt(16)

        subtitle = doc.add_paragraph()
        subtitle.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = subtitle.add_run(f"Prepared by ClaimCoach  |  {date.today().strftime('%B %d, %Y')}")
        run.font.size = Pt(9)

        self._add_snapshot(doc, claim)

        doc.add_heading("2. Executive Summary", level=2)
        doc.add_paragraph(self.executive_summary(analysis))
        if analysis.plain_english_summary:
            doc.add_paragraph(analysis.plain_english_summary)

        doc.add_heading("3. Financial Summary", level=2)
        self._add_row(doc, "Contractor estimate", format_money(analysis.total_contractor_estimate))
        self._add_row(doc, "Carrier offer", format_money(analysis.total_carrier_estimate))
        self._add_row(doc, "Delta (underpayment)", format_money(analysis.total_delta))

        self._add_dispute_issues(doc, analysis)

        doc.add_heading("5. Requested Legal Outcome", level=2)
        doc.add_paragraph("Primary goal: recover full covered damages and resolve the claim.")
        for step in analysis.required_next_steps:
            doc.add_paragraph(step, style="List Bullet")

        doc.add_heading("6. Attachments Index", level=2)
        if attachments:
            for name in attachments:
                doc.add_paragraph(f"{CARRIER_FOLDER}{name}", style="List Bullet")
        else:
            doc.add_paragraph("No carrier documents on file.")

        footer = doc.add_paragraph()
        footer.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = footer.add_run("Confidential. Prepared for the purpose of obtaining legal advice.")
        run.italic = True
        run.font.size = Pt(8)

        buffer = io.BytesIO()
        doc.save(buffer)
        return buffer.getvalue()

    @staticmethod
    def executive_summary(analysis: VerdictAnalysis) -> str:
        summary = f"Carrier underpaid by {format_money(analysis.total_delta)}"
        drivers = [d.line_item for d in analysis.top_delta_drivers[:2]]
        if drivers:
            summary += f", citing discrepancies in {' and '.join(drivers)}"
        if analysis.coverage_disputes:
            summary += f", with {len(analysis.coverage_disputes)} item(s) disputed or denied"
        return summary + ". The property owner has authorized engagement of legal counsel to pursue recovery."

    def _add_snapshot(self, doc: DocxDocument, claim: Claim) -> None:
        doc.add_heading("1. Claim Snapshot", level=2)
        loss_type = getattr(claim.loss_type, "value", claim.loss_type) or "unknown"
        self._add_row(doc, "Claim number", claim.claim_number or str(claim.id))
        self._add_row(doc, "Loss type", str(loss_type).capitalize())
        self._add_row(doc, "Loss date", claim.incident_date.strftime("%B %d, %Y") if claim.incident_date else "unknown")
        self._add_row(doc, "Adjuster", claim.adjuster_name or "not assigned")
        if claim.description:
            self._add_row(doc, "Description", claim.description)

    def _add_dispute_issues(self, doc: DocxDocument, analysis: VerdictAnalysis) -> None:
        doc.add_heading("4. Key Dispute Issues", level=2)
        if not analysis.top_delta_drivers:
            doc.add_paragraph("No individual line-item drivers identified.")
        for i, driver in enumerate(analysis.top_delta_drivers, 1):
            p = doc.add_paragraph()
            p.add_run(f"{i}. {driver.line_item}").bold = True
            doc.add_paragraph(
                f"Dollar impact: {format_money(driver.delta)} "
                f"(carrier {format_money(driver.carrier_price)} vs. required {format_money(driver.contractor_price)})"
            )
            doc.add_paragraph(f"Issue: {driver.reason}").runs[0].italic = True

        if analysis.coverage_disputes:
            doc.add_paragraph().add_run("Coverage disputes").bold = True
            for dispute in analysis.coverage_disputes:
                doc.add_paragraph(
                    f"{dispute.item} [{dispute.status.upper()}]: {dispute.contractor_position}", style="List Bullet"
                )

    @staticmethod
    def _add_row(doc: DocxDocument, label: str, value: str) -> None:
        p = doc.add_paragraph()
        p.add_run(f"{label}: ").bold = True
        p.add_run(value)
        p.paragraph_format.space_after = Pt(2)
