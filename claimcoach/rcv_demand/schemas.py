from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RCVDemandCreate(BaseModel):
    payment_id: Optional[UUID] = None


class RCVDemandMarkSent(BaseModel):
    sent_to_email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")


class RCVDemandLetterResponse(BaseModel):
    id: UUID
    claim_id: UUID
    payment_id: Optional[UUID] = None
    content: str
    acv_received: Decimal
    rcv_expected: Decimal
    rcv_outstanding: Decimal
    sent_at: Optional[datetime] = None
    sent_to_email: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
