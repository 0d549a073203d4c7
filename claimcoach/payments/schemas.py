from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from claimcoach.payments.models import PaymentStatus, PaymentType


class ExpectedPaymentCreate(BaseModel):
    payment_type: PaymentType
    expected_amount: Decimal = Field(ge=0)
    notes: Optional[str] = None


class PaymentReceivedUpdate(BaseModel):
    amount: Decimal = Field(ge=0)
    received_date: date
    check_number: Optional[str] = None
    notes: Optional[str] = None


class PaymentDisputeRequest(BaseModel):
    reason: str = Field(min_length=1)


class PaymentResponse(BaseModel):
    id: UUID
    claim_id: UUID
    payment_type: PaymentType
    status: PaymentStatus
    expected_amount: Optional[Decimal] = None
    amount: Decimal
    check_number: Optional[str] = None
    received_date: Optional[date] = None
    notes: Optional[str] = None
    reconciled_at: Optional[datetime] = None
    dispute_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentSummaryResponse(BaseModel):
    total_acv_received: Decimal
    total_rcv_received: Decimal
    expected_acv: Decimal
    expected_rcv: Decimal
    acv_delta: Decimal
    rcv_delta: Decimal
    rcv_outstanding: Decimal
    fully_reconciled: bool
    has_disputes: bool
    can_offer_demand_letter: bool

    model_config = ConfigDict(from_attributes=True)


class ClaimClosureStatusResponse(BaseModel):
    can_close: bool
    blocking_reason: Optional[str] = None
    acv_received: bool
    rcv_received: bool
    all_reconciled: bool
    outstanding_acv: Decimal
    outstanding_rcv: Decimal

    model_config = ConfigDict(from_attributes=True)
