"""Schemas shared across routers."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok", "degraded", "down"] = "ok"
    version: str
    environment: str
    currency: str
    database: str = "unknown"
    redis: str = "unknown"


class ErrorResponse(BaseModel):
    error: str
    message: str


class EventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID
    entity_type: str
    entity_id: str
    event_type: str
    old_status: str | None
    new_status: str | None
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class StatusResponse(BaseModel):
    """Lightweight status check response."""

    id: str
    status: str
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )
