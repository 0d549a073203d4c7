from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.database import get_db
from claimcoach.claims.dependencies import require_claim, require_payments_open
from claimcoach.claims.models import Claim
from claimcoach.exceptions import ClaimCoachError
from claimcoach.payments.schemas import (
    ClaimClosureStatusResponse,
    ExpectedPaymentCreate,
    PaymentDisputeRequest,
    PaymentReceivedUpdate,
    PaymentResponse,
    PaymentSummaryResponse,
)
from claimcoach.payments.service import PaymentService
from claimcoach.shared.http import http_error

router = APIRouter(prefix="/claims/{claim_id}/payments", tags=["payments"])


@router.get("", response_model=List[PaymentResponse])
async def list_payments(
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentService(db)
    return await service.list_payments(claim.id)


@router.post("", response_model=PaymentResponse, status_code=201)
async def create_expected_payment(
    payment: ExpectedPaymentCreate,
    claim: Claim = Depends(require_payments_open),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentService(db)
    try:
        return await service.create_expected(
            claim.id, payment.payment_type, payment.expected_amount, notes=payment.notes
        )
    except ClaimCoachError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/summary", response_model=PaymentSummaryResponse)
async def get_payment_summary(
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentService(db)
    return await service.summarize(claim.id)


@router.get("/closure-status", response_model=ClaimClosureStatusResponse)
async def get_closure_status(
    claim: Claim = Depends(require_claim),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentService(db)
    return await service.closure_status(claim.id)


@router.post("/{payment_id}/received", response_model=PaymentResponse)
async def record_payment_received(
    payment_id: UUID,
    update: PaymentReceivedUpdate,
    claim: Claim = Depends(require_payments_open),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentService(db)
    try:
        return await service.record_received(
            payment_id,
            update.amount,
            update.received_date,
            check_number=update.check_number,
            notes=update.notes,
            claim_id=claim.id,
        )
    except ClaimCoachError as e:
        raise http_error(e)


@router.post("/{payment_id}/reconcile", response_model=PaymentResponse)
async def reconcile_payment(
    payment_id: UUID,
    claim: Claim = Depends(require_payments_open),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentService(db)
    try:
        return await service.reconcile(payment_id, claim_id=claim.id)
    except ClaimCoachError as e:
        raise http_error(e)


@router.post("/{payment_id}/dispute", response_model=PaymentResponse)
async def dispute_payment(
    payment_id: UUID,
    request: PaymentDisputeRequest,
    claim: Claim = Depends(require_payments_open),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentService(db)
    try:
        return await service.dispute(payment_id, request.reason, claim_id=claim.id)
    except ClaimCoachError as e:
        raise http_error(e)
