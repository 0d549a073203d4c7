"""
ClaimCoach exception hierarchy.

Routers map these onto HTTP status codes; services and the analysis
workflow raise them and never swallow them, with one exception:
MalformedPersistedState is absorbed into "no analysis" when a workflow is
rebuilt from storage.
"""
from typing import Any, Optional


class ClaimCoachError(Exception):
    """Base exception for all ClaimCoach errors."""
    code = "CC_INTERNAL_ERROR"

    def __init__(self, message: str, *, claim_id: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.claim_id = claim_id

    def to_dict(self) -> dict:
        result = {"code": self.code, "message": self.message}
        if self.claim_id is not None:
            result["claim_id"] = str(self.claim_id)
        return result


class ValidationError(ClaimCoachError, ValueError):
    """Malformed caller input. Nothing was mutated."""
    code = "CC_VALIDATION_ERROR"


class NotFoundError(ClaimCoachError, LookupError):
    code = "CC_NOT_FOUND"


# ---------------------------------------------------------------------------
# Transition errors
# ---------------------------------------------------------------------------

class TransitionError(ClaimCoachError):
    """Requested move is not legal from the current state."""
    code = "CC_TRANSITION_ERROR"


class InvalidTransition(TransitionError):
    """Claim status edge not present in the transition table."""
    code = "CC_INVALID_STATUS_TRANSITION"

    def __init__(self, current, target, *, claim_id=None):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(f"Invalid transition from {current_value} to {target_value}", claim_id=claim_id)
        self.current = current
        self.target = target


class InvalidPhaseTransition(TransitionError):
    """Workflow action or ledger record change out of order."""
    code = "CC_INVALID_PHASE_TRANSITION"


class AnalysisInProgress(TransitionError):
    code = "CC_ANALYSIS_IN_PROGRESS"


# ---------------------------------------------------------------------------
# Collaborator and persisted-state errors
# ---------------------------------------------------------------------------

class ExternalCallFailure(ClaimCoachError):
    """Storage, parser, estimator, adjudicator or letter writer failed or timed out."""
    code = "CC_EXTERNAL_CALL_FAILED"

    def __init__(self, operation: str, message: str, *, claim_id=None):
        super().__init__(f"{operation} failed: {message}", claim_id=claim_id)
        self.operation = operation


class MalformedPersistedState(ClaimCoachError):
    """Stored analysis JSON could not be decoded into a verdict analysis."""
    code = "CC_MALFORMED_PERSISTED_STATE"


class UnknownVerdict(ClaimCoachError):
    """Stored analysis carries a status outside the four verdicts."""
    code = "CC_UNKNOWN_VERDICT"

    def __init__(self, status, *, claim_id=None):
        super().__init__(f"Unknown verdict status: {status!r}", claim_id=claim_id)
        self.status = status
