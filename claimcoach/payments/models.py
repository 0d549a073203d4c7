from enum import Enum
from decimal import Decimal
from sqlalchemy import Column, String, Text, Date, DateTime, ForeignKey, Enum as SAEnum
from claimcoach.database import Base
from claimcoach.shared.models import AuditMixin, Money


class PaymentType(str, Enum):
    ACV = "acv"  # actual cash value, paid first
    RCV = "rcv"  # replacement cost holdback, released after repairs


class PaymentStatus(str, Enum):
    EXPECTED = "expected"
    RECEIVED = "received"
    RECONCILED = "reconciled"
    DISPUTED = "disputed"


class PaymentRecord(Base, AuditMixin):
    __tablename__ = "payments"

    claim_id = Column(ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_type = Column(SAEnum(PaymentType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    status = Column(
        SAEnum(PaymentStatus, values_callable=lambda e: [m.value for m in e]),
        default=PaymentStatus.EXPECTED,
        nullable=False,
    )
    expected_amount = Column(Money, nullable=True)
    amount = Column(Money, default=Decimal("0"), nullable=False)
    check_number = Column(String, nullable=True)
    received_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    reconciled_at = Column(DateTime, nullable=True)
    dispute_reason = Column(Text, nullable=True)
