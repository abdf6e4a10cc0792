"""Pydantic schemas for bids."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from legal_marketplace.domain.enums import FeeType


class CreateBidRequest(BaseModel):
    case_id: uuid.UUID
    proposed_fee: int = Field(..., gt=0, description="Fee in minor units")
    fee_type: FeeType = FeeType.FIXED
    estimated_timeline: str = Field(..., min_length=1, max_length=100)
    proposal_text: str = Field(..., min_length=10, max_length=5000)


class UpdateBidRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    proposed_fee: int | None = Field(default=None, gt=0)
    fee_type: FeeType | None = None
    estimated_timeline: str | None = Field(default=None, min_length=1, max_length=100)
    proposal_text: str | None = Field(default=None, min_length=10, max_length=5000)


class RejectBidRequest(BaseModel):
    feedback: str | None = Field(default=None, max_length=2000)


class BidResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    case_id: uuid.UUID
    lawyer_id: str
    proposed_fee: int
    fee_type: str
    estimated_timeline: str
    proposal_text: str
    rejection_feedback: str | None
    status: str
    created_at: datetime
    updated_at: datetime
