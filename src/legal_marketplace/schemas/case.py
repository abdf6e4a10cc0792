"""Pydantic schemas for cases."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from legal_marketplace.domain.enums import AreaOfLaw, CaseStatus, ServiceType, Urgency


class CreateCaseRequest(BaseModel):
    """Request body for drafting a new case."""

    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=10_000)
    area_of_law: AreaOfLaw
    service_type: ServiceType
    urgency: Urgency = Urgency.NORMAL
    budget_min: int = Field(..., gt=0, description="Lower budget bound in minor units")
    budget_max: int = Field(..., gt=0, description="Upper budget bound in minor units")
    preferred_timeline: str | None = Field(default=None, max_length=100)
    location: str | None = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def _budget_ordered(self) -> "CreateCaseRequest":
        if self.budget_min > self.budget_max:
            raise ValueError("budget_min must not exceed budget_max")
        return self


class UpdateCaseStatusRequest(BaseModel):
    """Admin override of a case's status."""

    status: CaseStatus


class CaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    case_number: str
    client_id: str
    lawyer_id: str | None
    title: str
    description: str
    area_of_law: str
    service_type: str
    urgency: str
    preferred_timeline: str | None
    location: str | None
    budget_min: int
    budget_max: int
    agreed_fee: int | None
    status: str
    created_at: datetime
    updated_at: datetime
    assigned_at: datetime | None
    completed_at: datetime | None


class CaseStatusResponse(BaseModel):
    case_id: uuid.UUID
    status: str
    allowed_events: list[str]
    accepting_bids: bool
