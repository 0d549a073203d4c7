"""
Adjudication phases and how to rebuild them from storage.

    idle → uploading → parsing → ready → analyzing → verdict
                                                       ↕
                                               letter_generating

``derive_state`` is the only way a workflow is rebuilt after a restart or a
reload. It reads the claim, its current carrier document and its active
audit report and never calls out to a collaborator.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from claimcoach.adjudication.verdict import ArtifactState, VerdictAnalysis, parse_verdict_analysis
from claimcoach.carrier_estimates.models import ParseStatus
from claimcoach.exceptions import MalformedPersistedState

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    PARSING = "parsing"
    READY = "ready"
    ANALYZING = "analyzing"
    VERDICT = "verdict"
    LETTER_GENERATING = "letter_generating"


# Phases with a collaborator call in flight
BUSY_PHASES = frozenset({Phase.UPLOADING, Phase.PARSING, Phase.ANALYZING, Phase.LETTER_GENERATING})

# Where a failed call leaves the workflow
SAFE_PHASE_ON_FAILURE = {
    Phase.UPLOADING: Phase.IDLE,
    Phase.PARSING: Phase.IDLE,
    Phase.ANALYZING: Phase.READY,
    Phase.LETTER_GENERATING: Phase.VERDICT,
}


@dataclass
class WorkflowSnapshot:
    phase: Phase
    document_id: Optional[Any] = None
    audit_report_id: Optional[Any] = None
    verdict: Optional[VerdictAnalysis] = None
    artifacts: ArtifactState = field(default_factory=ArtifactState)


def _belongs_to(record, claim) -> bool:
    return record is not None and record.claim_id == claim.id


def derive_state(claim, document=None, audit_report=None) -> WorkflowSnapshot:
    """Reconstruct the phase (plus verdict and artifacts) from persisted records.

    Records for another claim and superseded reports are ignored. A stored
    analysis that cannot be decoded counts as no analysis; one with an
    unrecognised status raises UnknownVerdict.
    """
    if not _belongs_to(document, claim):
        document = None
    if not _belongs_to(audit_report, claim) or audit_report.superseded_at is not None:
        audit_report = None
    if (
        audit_report is not None
        and document is not None
        and audit_report.carrier_estimate_id is not None
        and audit_report.carrier_estimate_id != document.id
    ):
        # report from an earlier upload; the newer document drives the phase
        audit_report = None

    if audit_report is not None:
        try:
            analysis = parse_verdict_analysis(audit_report.verdict_analysis)
        except MalformedPersistedState as e:
            logger.warning(f"Ignoring stored analysis on audit report {audit_report.id}: {e.message}")
            analysis = None

        if analysis is not None:
            return WorkflowSnapshot(
                phase=Phase.VERDICT,
                document_id=document.id if document is not None else audit_report.carrier_estimate_id,
                audit_report_id=audit_report.id,
                verdict=analysis,
                artifacts=ArtifactState(
                    dispute_letter=audit_report.dispute_letter,
                    owner_pitch=audit_report.owner_pitch,
                    owner_pitch_acknowledged=audit_report.owner_pitch_acknowledged_at is not None,
                ),
            )

    if document is None:
        return WorkflowSnapshot(phase=Phase.IDLE)

    status = ParseStatus(document.parse_status)
    if status == ParseStatus.COMPLETED:
        return WorkflowSnapshot(phase=Phase.READY, document_id=document.id)
    if status in (ParseStatus.PENDING, ParseStatus.PROCESSING) and document.uploaded_at is not None:
        return WorkflowSnapshot(phase=Phase.PARSING, document_id=document.id)
    # failed, or an upload that was never confirmed
    return WorkflowSnapshot(phase=Phase.IDLE, document_id=document.id)


def derive_phase(claim, document=None, audit_report=None) -> Phase:
    return derive_state(claim, document, audit_report).phase
