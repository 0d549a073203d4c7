from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from claimcoach.activity.models import ActivityType


class ClaimActivityResponse(BaseModel):
    id: UUID
    claim_id: UUID
    activity_type: ActivityType
    description: str
    detail: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
