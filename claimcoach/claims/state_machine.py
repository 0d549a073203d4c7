"""
Claim status transitions.

The table below is the whole of the lifecycle; there are no business
preconditions here. Callers that need them (the payment ledger, the
adjudication workflow) check status membership with the helpers at the
bottom of the module.
"""
from typing import Dict, FrozenSet

from claimcoach.claims.models import Claim, ClaimStatus
from claimcoach.exceptions import InvalidTransition


ALLOWED_TRANSITIONS: Dict[ClaimStatus, FrozenSet[ClaimStatus]] = {
    ClaimStatus.DRAFT: frozenset({ClaimStatus.ASSESSING, ClaimStatus.FILED}),
    ClaimStatus.ASSESSING: frozenset({ClaimStatus.FILED}),
    ClaimStatus.FILED: frozenset({ClaimStatus.FIELD_SCHEDULED, ClaimStatus.AUDIT_PENDING}),
    ClaimStatus.FIELD_SCHEDULED: frozenset({ClaimStatus.AUDIT_PENDING}),
    ClaimStatus.AUDIT_PENDING: frozenset({ClaimStatus.NEGOTIATING}),
    ClaimStatus.NEGOTIATING: frozenset({ClaimStatus.SETTLED}),
    ClaimStatus.SETTLED: frozenset({ClaimStatus.CLOSED}),
    ClaimStatus.CLOSED: frozenset(),
}

ADJUDICATION_STATUSES = frozenset({ClaimStatus.AUDIT_PENDING, ClaimStatus.NEGOTIATING})
PRE_FILING_STATUSES = frozenset({ClaimStatus.DRAFT, ClaimStatus.ASSESSING})


def can_transition(current: ClaimStatus, target: ClaimStatus) -> bool:
    return ClaimStatus(target) in ALLOWED_TRANSITIONS[ClaimStatus(current)]


def apply_transition(claim: Claim, target: ClaimStatus) -> Claim:
    """Move ``claim`` to ``target`` or raise InvalidTransition leaving it untouched."""
    current = ClaimStatus(claim.status)
    target = ClaimStatus(target)
    if not can_transition(current, target):
        raise InvalidTransition(current, target, claim_id=claim.id)
    claim.status = target
    return claim


def next_statuses(current: ClaimStatus) -> list[ClaimStatus]:
    return sorted(ALLOWED_TRANSITIONS[ClaimStatus(current)], key=lambda s: list(ClaimStatus).index(s))


def adjudication_available(status: ClaimStatus) -> bool:
    """Carrier-offer adjudication (step 6) is only reachable mid-dispute."""
    return ClaimStatus(status) in ADJUDICATION_STATUSES


def payments_available(status: ClaimStatus) -> bool:
    """Payments can be tracked once the claim has been filed."""
    return ClaimStatus(status) not in PRE_FILING_STATUSES
