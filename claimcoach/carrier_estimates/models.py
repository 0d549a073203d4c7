from enum import Enum
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Enum as SAEnum
from claimcoach.database import Base
from claimcoach.shared.models import AuditMixin, JSONType


class ParseStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CarrierEstimate(Base, AuditMixin):
    """Uploaded carrier settlement offer (PDF) and its parsed line items."""
    __tablename__ = "carrier_estimates"

    claim_id = Column(ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)  # storage reference
    content_type = Column(String, nullable=False, default="application/pdf")
    file_size_bytes = Column(Integer, nullable=True)
    parse_status = Column(
        SAEnum(ParseStatus, values_callable=lambda e: [m.value for m in e]),
        default=ParseStatus.PENDING,
        nullable=False,
    )
    parse_error = Column(Text, nullable=True)
    parsed_data = Column(JSONType, nullable=True)  # {"line_items": [...], "total": ...}
    uploaded_at = Column(DateTime, nullable=True)  # set when the upload is confirmed
    parsed_at = Column(DateTime, nullable=True)
    retired_at = Column(DateTime, nullable=True)  # set when its adjudication cycle is superseded
