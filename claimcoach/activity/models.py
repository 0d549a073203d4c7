from enum import Enum
from sqlalchemy import Column, String, ForeignKey
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from claimcoach.database import Base
from claimcoach.shared.models import AuditMixin, JSONType


class ActivityType(str, Enum):
    CLAIM_CREATED = "claim_created"
    STATUS_CHANGE = "status_change"
    STEP_ADVANCED = "step_advanced"
    CARRIER_ESTIMATE_UPLOADED = "carrier_estimate_uploaded"
    CARRIER_ESTIMATE_PARSED = "carrier_estimate_parsed"
    INDUSTRY_ESTIMATE_GENERATED = "industry_estimate_generated"
    ANALYSIS_COMPLETED = "analysis_completed"
    DISPUTE_LETTER_GENERATED = "dispute_letter_generated"
    OWNER_PITCH_GENERATED = "owner_pitch_generated"
    OWNER_PITCH_ACKNOWLEDGED = "owner_pitch_acknowledged"
    AUDIT_REPORT_SUPERSEDED = "audit_report_superseded"
    PAYMENT_EXPECTED = "payment_expected"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_RECONCILED = "payment_reconciled"
    PAYMENT_DISPUTED = "payment_disputed"
    RCV_DEMAND_GENERATED = "rcv_demand_generated"
    RCV_DEMAND_SENT = "rcv_demand_sent"
    LEGAL_PACKAGE_GENERATED = "legal_package_generated"


class ClaimActivity(Base, AuditMixin):
    """Append-only trail of everything that happened to a claim."""
    __tablename__ = "claim_activities"

    claim_id = Column(ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_type = Column(SAEnum(ActivityType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    description = Column(String, nullable=False)
    detail = Column(JSONType, nullable=True)

    claim = relationship("claimcoach.claims.models.Claim", back_populates="activities")
