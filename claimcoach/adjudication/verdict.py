"""
Verdict classification for a carrier settlement offer.

The adjudicator returns a ``VerdictAnalysis``; this module decides what the
owner may do next with it and what must exist before adjudication (claim
step 6) can be marked complete:

    CLOSE          accept the offer, nothing further required
    DISPUTE_OFFER  a dispute letter must be generated first
    LEGAL_REVIEW   an owner pitch must be generated, then acknowledged as sent
    NEED_DOCS      no artifact is possible; the only way forward is a reset

The four statuses are exhaustive. A persisted status outside them is an
``UnknownVerdict`` and never falls back to a default action.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Literal, Optional, Union, assert_never

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from claimcoach.exceptions import MalformedPersistedState, UnknownVerdict


class VerdictStatus(str, Enum):
    CLOSE = "CLOSE"
    DISPUTE_OFFER = "DISPUTE_OFFER"
    LEGAL_REVIEW = "LEGAL_REVIEW"
    NEED_DOCS = "NEED_DOCS"


class DeltaDriver(BaseModel):
    line_item: str
    contractor_price: float
    carrier_price: float
    delta: float
    reason: str


class CoverageDispute(BaseModel):
    item: str
    status: Literal["denied", "partial"]
    contractor_position: str


class VerdictAnalysis(BaseModel):
    status: VerdictStatus = Field(description="CLOSE, DISPUTE_OFFER, LEGAL_REVIEW or NEED_DOCS")
    plain_english_summary: str = Field(description="Two to four sentences an owner can read without an adjuster")
    total_contractor_estimate: float
    total_carrier_estimate: float
    total_delta: float
    top_delta_drivers: List[DeltaDriver] = Field(default_factory=list)
    coverage_disputes: List[CoverageDispute] = Field(default_factory=list)
    required_next_steps: List[str] = Field(default_factory=list)
    legal_threshold_met: bool = Field(
        default=False,
        description="True when the underpayment or denials justify involving counsel",
    )


class FollowUpArtifact(str, Enum):
    NONE = "none"
    DISPUTE_LETTER = "dispute_letter"
    OWNER_PITCH_ACKNOWLEDGED = "owner_pitch_acknowledged"
    NOT_POSSIBLE = "not_possible"


class WorkflowAction(str, Enum):
    UPLOAD_DOCUMENT = "upload_document"
    RUN_ANALYSIS = "run_analysis"
    GENERATE_DISPUTE_LETTER = "generate_dispute_letter"
    GENERATE_OWNER_PITCH = "generate_owner_pitch"
    ACKNOWLEDGE_OWNER_PITCH = "acknowledge_owner_pitch"
    COMPLETE_STEP = "complete_step"
    RESET = "reset"
    START_NEW_CYCLE = "start_new_cycle"


@dataclass(frozen=True)
class ArtifactState:
    dispute_letter: Optional[str] = None
    owner_pitch: Optional[str] = None
    owner_pitch_acknowledged: bool = False

    @property
    def has_dispute_letter(self) -> bool:
        return bool(self.dispute_letter)

    @property
    def has_owner_pitch(self) -> bool:
        return bool(self.owner_pitch)


# ---------------------------------------------------------------------------
# Persisted analysis
# ---------------------------------------------------------------------------

def parse_verdict_analysis(raw: Union[str, bytes, dict, None]) -> Optional[VerdictAnalysis]:
    """Decode a stored analysis.

    Returns None when nothing is stored, raises MalformedPersistedState for
    undecodable or wrongly shaped data and UnknownVerdict for a well formed
    analysis whose status is not one of the four verdicts.
    """
    if raw is None or raw == "" or raw == b"":
        return None

    data: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedPersistedState(f"Stored analysis is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise MalformedPersistedState("Stored analysis is not a JSON object")
    status = data.get("status")
    if not isinstance(status, str) or not status:
        raise MalformedPersistedState("Stored analysis has no status")
    if status not in VerdictStatus._value2member_map_:
        raise UnknownVerdict(status)

    try:
        return VerdictAnalysis.model_validate(data)
    except PydanticValidationError as e:
        raise MalformedPersistedState(f"Stored analysis has the wrong shape: {e.error_count()} errors")


def serialize_verdict_analysis(analysis: VerdictAnalysis) -> str:
    return analysis.model_dump_json()


# ---------------------------------------------------------------------------
# Classification rules
# ---------------------------------------------------------------------------

def required_artifact(status: VerdictStatus) -> FollowUpArtifact:
    match VerdictStatus(status):
        case VerdictStatus.CLOSE:
            return FollowUpArtifact.NONE
        case VerdictStatus.DISPUTE_OFFER:
            return FollowUpArtifact.DISPUTE_LETTER
        case VerdictStatus.LEGAL_REVIEW:
            return FollowUpArtifact.OWNER_PITCH_ACKNOWLEDGED
        case VerdictStatus.NEED_DOCS:
            return FollowUpArtifact.NOT_POSSIBLE
        case unreachable:
            assert_never(unreachable)


def step_completion_blocker(status: VerdictStatus, artifacts: ArtifactState) -> Optional[str]:
    """Why step 6 cannot be completed yet, or None when it can."""
    match required_artifact(status):
        case FollowUpArtifact.NONE:
            return None
        case FollowUpArtifact.DISPUTE_LETTER:
            if not artifacts.has_dispute_letter:
                return "Generate the dispute letter before completing this step"
            return None
        case FollowUpArtifact.OWNER_PITCH_ACKNOWLEDGED:
            if not artifacts.has_owner_pitch:
                return "Generate the owner pitch before completing this step"
            if not artifacts.owner_pitch_acknowledged:
                return "Confirm the owner pitch was sent before completing this step"
            return None
        case FollowUpArtifact.NOT_POSSIBLE:
            return "More documents are needed; upload a new carrier estimate"
        case unreachable:
            assert_never(unreachable)


def available_actions(
    status: VerdictStatus,
    artifacts: ArtifactState,
    step_completed: bool = False,
) -> List[WorkflowAction]:
    status = VerdictStatus(status)
    if status == VerdictStatus.NEED_DOCS:
        return [WorkflowAction.RESET]

    actions: List[WorkflowAction] = []
    if status == VerdictStatus.DISPUTE_OFFER:
        actions.append(WorkflowAction.GENERATE_DISPUTE_LETTER)
    elif status == VerdictStatus.LEGAL_REVIEW:
        if not artifacts.owner_pitch_acknowledged:
            actions.append(WorkflowAction.GENERATE_OWNER_PITCH)
        if artifacts.has_owner_pitch and not artifacts.owner_pitch_acknowledged:
            actions.append(WorkflowAction.ACKNOWLEDGE_OWNER_PITCH)

    if not step_completed:
        if step_completion_blocker(status, artifacts) is None:
            actions.append(WorkflowAction.COMPLETE_STEP)
        actions.append(WorkflowAction.START_NEW_CYCLE)
    return actions
