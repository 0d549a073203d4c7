from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from claimcoach.claims.models import ClaimStatus, LossType

class ClaimBase(BaseModel):
    loss_type: LossType
    incident_date: date
    description: Optional[str] = None
    scope_summary: Optional[str] = None
    contractor_estimate_total: Optional[Decimal] = Field(default=None, ge=0)
    property_id: Optional[str] = None

class ClaimCreate(ClaimBase):
    pass

class ClaimStatusUpdate(BaseModel):
    status: ClaimStatus
    adjuster_name: Optional[str] = None
    adjuster_phone: Optional[str] = None
    inspection_datetime: Optional[datetime] = None

class ClaimStepUpdate(BaseModel):
    current_step: int = Field(ge=1, le=7)
    steps_completed: List[int] = []

class ClaimResponse(ClaimBase):
    id: UUID
    claim_number: Optional[str] = None
    status: ClaimStatus
    filed_at: Optional[datetime] = None
    adjuster_name: Optional[str] = None
    adjuster_phone: Optional[str] = None
    inspection_datetime: Optional[datetime] = None
    current_step: int
    steps_completed: List[int] = []
    next_statuses: List[ClaimStatus] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
