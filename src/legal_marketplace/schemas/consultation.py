"""Pydantic schemas for availability and consultations."""

import datetime as dt
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

from legal_marketplace.domain.enums import ConsultationType


class TimeWindow(BaseModel):
    start_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", examples=["09:00"])
    end_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", examples=["17:00"])


class DaySchedule(BaseModel):
    enabled: bool = True
    slots: list[TimeWindow] = Field(default_factory=list)


class SetAvailabilityRequest(BaseModel):
    """Weekly schedule keyed by weekday, "0" = Monday through "6" = Sunday."""

    weekly_schedule: dict[str, DaySchedule]
    blocked_dates: list[dt.date] = Field(default_factory=list)
    consultation_duration: int | None = Field(default=None, gt=0, le=480)
    buffer_time: int | None = Field(default=None, ge=0, le=240)

    @field_validator("weekly_schedule")
    @classmethod
    def _weekday_keys(cls, value: dict[str, DaySchedule]) -> dict[str, DaySchedule]:
        unknown = set(value) - {str(d) for d in range(7)}
        if unknown:
            raise ValueError(f"unknown weekday keys: {sorted(unknown)}")
        return value


class BlockedDateRequest(BaseModel):
    date: dt.date


class AvailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lawyer_id: str
    weekly_schedule: dict
    blocked_dates: list[str]
    consultation_duration: int
    buffer_time: int
    updated_at: dt.datetime


class TimeSlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    start_time: str
    end_time: str
    starts_at: dt.datetime
    available: bool


class BookConsultationRequest(BaseModel):
    lawyer_id: str = Field(..., min_length=1, max_length=128)
    lawyer_name: str = Field(..., min_length=1, max_length=120)
    client_name: str = Field(..., min_length=1, max_length=120)
    consultation_type: ConsultationType
    scheduled_date: dt.datetime = Field(..., description="Slot start, timezone-aware")
    fee: int = Field(..., ge=0, description="Fee in minor units")
    topic: str = Field(..., min_length=3, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    lawyer_avatar: str | None = None
    client_avatar: str | None = None


class ConfirmConsultationRequest(BaseModel):
    meeting_link: str | None = Field(default=None, max_length=500)


class CancelConsultationRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class CompleteConsultationRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=10_000)


class RescheduleConsultationRequest(BaseModel):
    new_date: dt.datetime


class ConsultationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    lawyer_id: str
    lawyer_name: str
    client_id: str
    client_name: str
    consultation_type: str
    scheduled_date: dt.datetime
    duration: int
    fee: int
    topic: str
    description: str | None
    status: str
    meeting_link: str | None
    conversation_id: str | None
    notes: str | None
    cancelled_by: str | None
    cancellation_reason: str | None
    rescheduled_from: uuid.UUID | None
    created_at: dt.datetime
    completed_at: dt.datetime | None
