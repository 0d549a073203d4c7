from enum import Enum
from sqlalchemy import Column, Text, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.orm import relationship
from claimcoach.database import Base
from claimcoach.shared.models import AuditMixin, JSONType, Money


class AuditReportStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditReport(Base, AuditMixin):
    """One adjudication cycle for a claim: industry estimate, comparison
    against the carrier's offer, the verdict, and its follow-up artifacts.

    Only one report per claim is active (``superseded_at IS NULL``); earlier
    cycles are kept for history.
    """
    __tablename__ = "audit_reports"

    claim_id = Column(ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    carrier_estimate_id = Column(ForeignKey("carrier_estimates.id"), nullable=True)

    generated_estimate = Column(JSONType, nullable=True)
    comparison_data = Column(JSONType, nullable=True)
    verdict_analysis = Column(Text, nullable=True)  # serialized VerdictAnalysis

    total_contractor_estimate = Column(Money, nullable=True)
    total_carrier_estimate = Column(Money, nullable=True)
    total_delta = Column(Money, nullable=True)

    dispute_letter = Column(Text, nullable=True)
    owner_pitch = Column(Text, nullable=True)
    owner_pitch_acknowledged_at = Column(DateTime, nullable=True)

    status = Column(
        SAEnum(AuditReportStatus, values_callable=lambda e: [m.value for m in e]),
        default=AuditReportStatus.PENDING,
        nullable=False,
    )
    error_message = Column(Text, nullable=True)
    superseded_at = Column(DateTime, nullable=True)

    carrier_estimate = relationship("claimcoach.carrier_estimates.models.CarrierEstimate")

    @property
    def is_active(self) -> bool:
        return self.superseded_at is None
