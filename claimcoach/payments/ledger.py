"""
Payment ledger rules.

Everything here is pure: it takes payment records (ORM rows or anything
with the same attributes) and returns derived values. The service layer
loads records, calls these, and persists.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Protocol, assert_never

from claimcoach.exceptions import InvalidPhaseTransition, ValidationError
from claimcoach.payments.models import PaymentStatus, PaymentType

ZERO = Decimal("0")

# Record lifecycle: expected -> received -> reconciled | disputed
RECORD_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.EXPECTED: frozenset({PaymentStatus.RECEIVED}),
    PaymentStatus.RECEIVED: frozenset({PaymentStatus.RECONCILED, PaymentStatus.DISPUTED}),
    PaymentStatus.RECONCILED: frozenset(),
    PaymentStatus.DISPUTED: frozenset(),
}


class PaymentLike(Protocol):
    payment_type: PaymentType
    status: PaymentStatus
    expected_amount: Optional[Decimal]
    amount: Decimal


@dataclass(frozen=True)
class PaymentSummary:
    total_acv_received: Decimal = ZERO
    total_rcv_received: Decimal = ZERO
    expected_acv: Decimal = ZERO
    expected_rcv: Decimal = ZERO
    acv_delta: Decimal = ZERO
    rcv_delta: Decimal = ZERO
    fully_reconciled: bool = True
    has_disputes: bool = False

    @property
    def rcv_outstanding(self) -> Decimal:
        return self.expected_rcv - self.total_rcv_received

    @property
    def can_offer_demand_letter(self) -> bool:
        return can_offer_demand_letter(self)


@dataclass(frozen=True)
class ClaimClosureStatus:
    can_close: bool
    blocking_reason: Optional[str]
    acv_received: bool
    rcv_received: bool
    all_reconciled: bool
    outstanding_acv: Decimal
    outstanding_rcv: Decimal


def require_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    current = PaymentStatus(current)
    target = PaymentStatus(target)
    if target not in RECORD_TRANSITIONS[current]:
        raise InvalidPhaseTransition(
            f"Payment cannot move from {current.value} to {target.value}"
        )


def require_amount(amount: Optional[Decimal], field: str = "amount") -> Decimal:
    if amount is None:
        raise ValidationError(f"{field} is required")
    amount = Decimal(amount)
    if amount < ZERO:
        raise ValidationError(f"{field} must not be negative")
    return amount


def counts_as_received(status: PaymentStatus) -> bool:
    match PaymentStatus(status):
        case PaymentStatus.RECEIVED | PaymentStatus.RECONCILED:
            return True
        case PaymentStatus.EXPECTED | PaymentStatus.DISPUTED:
            return False
        case unreachable:
            assert_never(unreachable)


def summarize(records: Iterable[PaymentLike]) -> PaymentSummary:
    """Totals per payment type.

    Received totals count records in ``received`` or ``reconciled`` only; a
    disputed payment is money the owner does not agree with and is left out.
    """
    received = {PaymentType.ACV: ZERO, PaymentType.RCV: ZERO}
    expected = {PaymentType.ACV: ZERO, PaymentType.RCV: ZERO}
    fully_reconciled = True
    has_disputes = False

    for record in records:
        payment_type = PaymentType(record.payment_type)
        status = PaymentStatus(record.status)

        if record.expected_amount is not None:
            expected[payment_type] += Decimal(record.expected_amount)
        if counts_as_received(status):
            received[payment_type] += Decimal(record.amount or ZERO)

        if status != PaymentStatus.RECONCILED:
            fully_reconciled = False
        if status == PaymentStatus.DISPUTED:
            has_disputes = True

    return PaymentSummary(
        total_acv_received=received[PaymentType.ACV],
        total_rcv_received=received[PaymentType.RCV],
        expected_acv=expected[PaymentType.ACV],
        expected_rcv=expected[PaymentType.RCV],
        acv_delta=received[PaymentType.ACV] - expected[PaymentType.ACV],
        rcv_delta=received[PaymentType.RCV] - expected[PaymentType.RCV],
        fully_reconciled=fully_reconciled,
        has_disputes=has_disputes,
    )


def rcv_outstanding(summary: PaymentSummary) -> Decimal:
    return summary.expected_rcv - summary.total_rcv_received


def can_offer_demand_letter(summary: PaymentSummary) -> bool:
    """An RCV demand only makes sense once ACV has landed and RCV is short."""
    return rcv_outstanding(summary) > ZERO and summary.total_acv_received > ZERO


def closure_status(summary: PaymentSummary) -> ClaimClosureStatus:
    outstanding_acv = max(summary.expected_acv - summary.total_acv_received, ZERO)
    outstanding_rcv = max(rcv_outstanding(summary), ZERO)
    # an ACV that was never expected cannot have been received in full
    acv_received = summary.expected_acv > ZERO and summary.total_acv_received >= summary.expected_acv
    rcv_received = outstanding_rcv == ZERO

    blocking_reason = None
    if not acv_received:
        blocking_reason = "ACV payment not received"
    elif not rcv_received:
        blocking_reason = "RCV payment pending"
    elif summary.has_disputes:
        blocking_reason = "Payment disputes must be resolved"
    elif not summary.fully_reconciled:
        blocking_reason = "All payments must be reconciled"

    return ClaimClosureStatus(
        can_close=blocking_reason is None,
        blocking_reason=blocking_reason,
        acv_received=acv_received,
        rcv_received=rcv_received,
        all_reconciled=summary.fully_reconciled,
        outstanding_acv=outstanding_acv,
        outstanding_rcv=outstanding_rcv,
    )
