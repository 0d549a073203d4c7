import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.activity.models import ActivityType, ClaimActivity
from claimcoach.adjudication.service import format_money
from claimcoach.agents.letters import agent as letters
from claimcoach.claims.models import Claim
from claimcoach.core.events.bus import EventBus, EventType, event_bus
from claimcoach.exceptions import (
    ExternalCallFailure,
    InvalidPhaseTransition,
    NotFoundError,
    ValidationError,
)
from claimcoach.payments import ledger
from claimcoach.payments.models import PaymentRecord, PaymentType
from claimcoach.payments.service import PaymentService
from claimcoach.rcv_demand.models import RCVDemandLetter

logger = logging.getLogger(__name__)


class RCVDemandService:
    def __init__(
        self,
        db: AsyncSession,
        bus: Optional[EventBus] = None,
        writer: Optional[Callable[[Dict[str, Any]], Awaitable[str]]] = None,
    ):
        self.db = db
        self.bus = bus or event_bus
        self.writer = writer or letters.write_rcv_demand
        self.payments = PaymentService(db, bus=self.bus)

    async def get_letter(self, letter_id: UUID, claim_id: Optional[UUID] = None) -> RCVDemandLetter:
        letter = await self.db.get(RCVDemandLetter, letter_id)
        if not letter or (claim_id is not None and letter.claim_id != claim_id):
            raise NotFoundError("RCV demand letter not found", claim_id=claim_id)
        return letter

    async def list_letters(self, claim_id: UUID) -> List[RCVDemandLetter]:
        result = await self.db.execute(
            select(RCVDemandLetter)
            .where(RCVDemandLetter.claim_id == claim_id)
            .order_by(RCVDemandLetter.created_at.desc())
        )
        return list(result.scalars().all())

    async def generate(self, claim_id: UUID, payment_id: Optional[UUID] = None) -> RCVDemandLetter:
        """Write a demand for the RCV still owed.

        Only offered once some ACV has been paid and RCV remains outstanding;
        the ledger figures are stored with the letter as they stood when it
        was written.
        """
        claim = await self.db.get(Claim, claim_id)
        if not claim:
            raise NotFoundError("Claim not found", claim_id=claim_id)

        if payment_id is not None:
            payment = await self.db.get(PaymentRecord, payment_id)
            if not payment or payment.claim_id != claim_id:
                raise NotFoundError("Payment not found", claim_id=claim_id)
            if payment.payment_type != PaymentType.RCV:
                raise ValidationError("A demand letter can only reference an RCV payment", claim_id=claim_id)

        summary = await self.payments.summarize(claim_id)
        outstanding = summary.rcv_outstanding
        if outstanding <= ledger.ZERO:
            raise InvalidPhaseTransition("No outstanding RCV payment", claim_id=claim_id)
        if summary.total_acv_received <= ledger.ZERO:
            raise InvalidPhaseTransition("ACV must be received before demanding RCV", claim_id=claim_id)

        percent = (outstanding / summary.expected_rcv * Decimal(100)) if summary.expected_rcv else Decimal(100)
        variables = {
            "claim_number": claim.claim_number or str(claim.id),
            "loss_type": getattr(claim.loss_type, "value", claim.loss_type),
            "incident_date": claim.incident_date.isoformat() if claim.incident_date else "unknown",
            "acv_received": format_money(summary.total_acv_received),
            "rcv_expected": format_money(summary.expected_rcv),
            "rcv_outstanding": format_money(outstanding),
            "percent_outstanding": f"{percent:.1f}%",
        }
        try:
            content = await self.writer(variables)
        except Exception as e:
            logger.error(f"RCV demand generation failed for claim {claim_id}: {e}")
            raise ExternalCallFailure("rcv demand", str(e), claim_id=claim_id)

        letter = RCVDemandLetter(
            claim_id=claim_id,
            payment_id=payment_id,
            content=content,
            acv_received=summary.total_acv_received,
            rcv_expected=summary.expected_rcv,
            rcv_outstanding=outstanding,
        )
        self.db.add(letter)
        await self.db.flush()
        self.db.add(ClaimActivity(
            claim_id=claim_id,
            activity_type=ActivityType.RCV_DEMAND_GENERATED,
            description=f"RCV demand letter generated for {format_money(outstanding)}",
            detail={
                "rcv_demand_letter_id": str(letter.id),
                "rcv_outstanding": str(outstanding),
                "acv_received": str(summary.total_acv_received),
            },
        ))
        await self.db.commit()
        await self.db.refresh(letter)
        logger.info(f"RCV demand letter {letter.id} generated for claim {claim_id}")

        await self.bus.emit(
            EventType.RCV_DEMAND_GENERATED, claim_id,
            rcv_demand_letter_id=str(letter.id), rcv_outstanding=str(outstanding),
        )
        return letter

    async def mark_sent(self, letter_id: UUID, sent_to_email: str, claim_id: Optional[UUID] = None) -> RCVDemandLetter:
        if not sent_to_email or not sent_to_email.strip():
            raise ValidationError("A recipient email is required", claim_id=claim_id)
        letter = await self.get_letter(letter_id, claim_id)
        if letter.is_sent:
            raise InvalidPhaseTransition(
                f"RCV demand letter was already sent to {letter.sent_to_email}", claim_id=letter.claim_id
            )

        letter.sent_at = datetime.utcnow()
        letter.sent_to_email = sent_to_email.strip()
        self.db.add(ClaimActivity(
            claim_id=letter.claim_id,
            activity_type=ActivityType.RCV_DEMAND_SENT,
            description=f"RCV demand letter sent to {letter.sent_to_email}",
            detail={"rcv_demand_letter_id": str(letter.id), "sent_to_email": letter.sent_to_email},
        ))
        await self.db.commit()
        await self.db.refresh(letter)

        await self.bus.emit(
            EventType.RCV_DEMAND_SENT, letter.claim_id,
            rcv_demand_letter_id=str(letter.id), sent_to_email=letter.sent_to_email,
        )
        return letter
