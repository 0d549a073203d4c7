from uuid import UUID
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from claimcoach.carrier_estimates.models import ParseStatus


class LineItem(BaseModel):
    description: str = Field(description="Description of the work or item")
    quantity: float = Field(default=0, description="Numeric quantity")
    unit: str = Field(default="", description="Unit of measurement (SF, LF, EA, SQ)")
    unit_cost: float = Field(default=0, description="Cost per unit")
    total: float = Field(default=0, description="Total cost for the line item")
    category: str = Field(default="", description="Category of work, e.g. Roofing, Siding, Interior")


class ParsedEstimate(BaseModel):
    line_items: List[LineItem] = Field(description="Every line item on the estimate, not just summaries")
    total: float = Field(description="Sum of all line item totals")


class CarrierEstimateResponse(BaseModel):
    id: UUID
    claim_id: UUID
    file_name: str
    file_size_bytes: Optional[int] = None
    parse_status: ParseStatus
    parse_error: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    parsed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CarrierEstimateDetailResponse(CarrierEstimateResponse):
    parsed_data: Optional[ParsedEstimate] = None


class ParseStatusResponse(BaseModel):
    document_id: UUID
    status: ParseStatus
    line_items: Optional[List[LineItem]] = None
    error: Optional[str] = None
