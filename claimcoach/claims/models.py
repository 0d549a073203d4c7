from enum import Enum
from sqlalchemy import Column, String, Integer, Text, Date, DateTime, Enum as SAEnum
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import relationship
from claimcoach.database import Base
from claimcoach.shared.models import AuditMixin, JSONType, Money


class ClaimStatus(str, Enum):
    DRAFT = "draft"
    ASSESSING = "assessing"
    FILED = "filed"
    FIELD_SCHEDULED = "field_scheduled"
    AUDIT_PENDING = "audit_pending"
    NEGOTIATING = "negotiating"
    SETTLED = "settled"
    CLOSED = "closed"


class LossType(str, Enum):
    FIRE = "fire"
    WATER = "water"
    WEATHER = "weather"
    OTHER = "other"


class Claim(Base, AuditMixin):
    __tablename__ = "claims"

    claim_number = Column(String, nullable=True, unique=True)
    property_id = Column(String, nullable=True)  # owned by the property registry
    loss_type = Column(SAEnum(LossType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    incident_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    scope_summary = Column(Text, nullable=True)  # contractor scope of work
    contractor_estimate_total = Column(Money, nullable=True)

    status = Column(
        SAEnum(ClaimStatus, values_callable=lambda e: [m.value for m in e]),
        default=ClaimStatus.DRAFT,
        nullable=False,
    )
    filed_at = Column(DateTime, nullable=True)

    adjuster_name = Column(String, nullable=True)
    adjuster_phone = Column(String, nullable=True)
    inspection_datetime = Column(DateTime, nullable=True)

    # 7-step guided workflow; step 6 is carrier-offer adjudication
    current_step = Column(Integer, default=1, nullable=False)
    steps_completed = Column(MutableList.as_mutable(JSONType), default=list, nullable=False)

    activities = relationship(
        "claimcoach.activity.models.ClaimActivity",
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimActivity.created_at",
    )
