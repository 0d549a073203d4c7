import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.activity.models import ActivityType, ClaimActivity
from claimcoach.claims.models import Claim
from claimcoach.core.events.bus import EventBus, EventType, event_bus
from claimcoach.exceptions import NotFoundError, ValidationError
from claimcoach.payments import ledger
from claimcoach.payments.models import PaymentRecord, PaymentStatus, PaymentType

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(self, db: AsyncSession, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or event_bus

    async def _get_payment(self, payment_id: UUID, claim_id: Optional[UUID] = None) -> PaymentRecord:
        payment = await self.db.get(PaymentRecord, payment_id)
        if not payment or (claim_id is not None and payment.claim_id != claim_id):
            raise NotFoundError("Payment not found", claim_id=claim_id)
        return payment

    async def list_payments(self, claim_id: UUID) -> List[PaymentRecord]:
        result = await self.db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.claim_id == claim_id)
            .order_by(PaymentRecord.created_at)
        )
        return list(result.scalars().all())

    async def create_expected(
        self,
        claim_id: UUID,
        payment_type: PaymentType,
        expected_amount: Decimal,
        notes: Optional[str] = None,
    ) -> PaymentRecord:
        expected_amount = ledger.require_amount(expected_amount, "expected_amount")
        if not await self.db.get(Claim, claim_id):
            raise NotFoundError("Claim not found", claim_id=claim_id)

        payment = PaymentRecord(
            claim_id=claim_id,
            payment_type=PaymentType(payment_type),
            status=PaymentStatus.EXPECTED,
            expected_amount=expected_amount,
            amount=ledger.ZERO,
            notes=notes,
        )
        self.db.add(payment)
        await self.db.flush()
        self.db.add(ClaimActivity(
            claim_id=claim_id,
            activity_type=ActivityType.PAYMENT_EXPECTED,
            description=f"Expecting {payment.payment_type.value.upper()} payment of ${expected_amount:,.2f}",
            detail={"payment_id": str(payment.id), "expected_amount": str(expected_amount)},
        ))
        await self.db.commit()
        await self.db.refresh(payment)
        logger.info(f"Expected {payment.payment_type.value} payment {payment.id} on claim {claim_id}")

        await self.bus.emit(
            EventType.PAYMENT_EXPECTED, claim_id,
            payment_id=str(payment.id), payment_type=payment.payment_type.value,
        )
        return payment

    async def record_received(
        self,
        payment_id: UUID,
        amount: Decimal,
        received_date: date,
        check_number: Optional[str] = None,
        notes: Optional[str] = None,
        claim_id: Optional[UUID] = None,
    ) -> PaymentRecord:
        amount = ledger.require_amount(amount)
        if received_date is None:
            raise ValidationError("received_date is required")
        payment = await self._get_payment(payment_id, claim_id)
        ledger.require_transition(payment.status, PaymentStatus.RECEIVED)

        payment.status = PaymentStatus.RECEIVED
        payment.amount = amount
        payment.received_date = received_date
        if check_number is not None:
            payment.check_number = check_number
        if notes is not None:
            payment.notes = notes

        self.db.add(ClaimActivity(
            claim_id=payment.claim_id,
            activity_type=ActivityType.PAYMENT_RECEIVED,
            description=f"{payment.payment_type.value.upper()} payment of ${amount:,.2f} received",
            detail={"payment_id": str(payment.id), "amount": str(amount), "check_number": check_number},
        ))
        await self.db.commit()
        await self.db.refresh(payment)

        await self.bus.emit(
            EventType.PAYMENT_RECORDED, payment.claim_id,
            payment_id=str(payment.id), amount=str(amount),
        )
        return payment

    async def reconcile(self, payment_id: UUID, claim_id: Optional[UUID] = None) -> PaymentRecord:
        payment = await self._get_payment(payment_id, claim_id)
        ledger.require_transition(payment.status, PaymentStatus.RECONCILED)

        payment.status = PaymentStatus.RECONCILED
        payment.reconciled_at = datetime.utcnow()
        if payment.expected_amount is not None and payment.amount != payment.expected_amount:
            logger.warning(
                f"Payment {payment.id} reconciled with delta "
                f"{payment.amount - payment.expected_amount} against expected {payment.expected_amount}"
            )

        self.db.add(ClaimActivity(
            claim_id=payment.claim_id,
            activity_type=ActivityType.PAYMENT_RECONCILED,
            description=f"{payment.payment_type.value.upper()} payment reconciled",
            detail={"payment_id": str(payment.id)},
        ))
        await self.db.commit()
        await self.db.refresh(payment)

        await self.bus.emit(EventType.PAYMENT_RECONCILED, payment.claim_id, payment_id=str(payment.id))
        return payment

    async def dispute(self, payment_id: UUID, reason: str, claim_id: Optional[UUID] = None) -> PaymentRecord:
        if not reason or not reason.strip():
            raise ValidationError("A dispute reason is required")
        payment = await self._get_payment(payment_id, claim_id)
        ledger.require_transition(payment.status, PaymentStatus.DISPUTED)

        payment.status = PaymentStatus.DISPUTED
        payment.dispute_reason = reason.strip()

        self.db.add(ClaimActivity(
            claim_id=payment.claim_id,
            activity_type=ActivityType.PAYMENT_DISPUTED,
            description=f"{payment.payment_type.value.upper()} payment disputed",
            detail={"payment_id": str(payment.id), "reason": payment.dispute_reason},
        ))
        await self.db.commit()
        await self.db.refresh(payment)
        logger.info(f"Payment {payment.id} disputed on claim {payment.claim_id}")

        await self.bus.emit(
            EventType.PAYMENT_DISPUTED, payment.claim_id,
            payment_id=str(payment.id), reason=payment.dispute_reason,
        )
        return payment

    async def summarize(self, claim_id: UUID) -> ledger.PaymentSummary:
        return ledger.summarize(await self.list_payments(claim_id))

    async def closure_status(self, claim_id: UUID) -> ledger.ClaimClosureStatus:
        return ledger.closure_status(await self.summarize(claim_id))
