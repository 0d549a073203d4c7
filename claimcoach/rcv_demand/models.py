from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from claimcoach.database import Base
from claimcoach.shared.models import AuditMixin, Money


class RCVDemandLetter(Base, AuditMixin):
    """Demand for the outstanding RCV holdback, with the ledger figures it was written from."""
    __tablename__ = "rcv_demand_letters"

    claim_id = Column(ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_id = Column(ForeignKey("payments.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    acv_received = Column(Money, nullable=False)
    rcv_expected = Column(Money, nullable=False)
    rcv_outstanding = Column(Money, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    sent_to_email = Column(String, nullable=True)

    @property
    def is_sent(self) -> bool:
        return self.sent_at is not None
