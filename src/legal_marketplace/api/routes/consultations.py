"""Consultation and availability REST API routes.

Routes:
    PUT    /api/v1/availability                        — Lawyer sets their weekly schedule
    GET    /api/v1/availability/{lawyer_id}            — Get a lawyer's schedule
    POST   /api/v1/availability/blocked-dates          — Block a day
    DELETE /api/v1/availability/blocked-dates/{date}   — Unblock a day
    GET    /api/v1/availability/{lawyer_id}/slots      — Slots on a day
    POST   /api/v1/consultations                       — Client books
    GET    /api/v1/consultations                       — Caller's consultations
    GET    /api/v1/consultations/upcoming              — Caller's upcoming active consultations
    GET    /api/v1/consultations/{id}                  — Get consultation details
    POST   /api/v1/consultations/{id}/confirm          — Lawyer confirms
    POST   /api/v1/consultations/{id}/cancel           — Either party cancels
    POST   /api/v1/consultations/{id}/complete         — Lawyer completes
    POST   /api/v1/consultations/{id}/no-show          — Lawyer marks a no-show
    POST   /api/v1/consultations/{id}/reschedule       — Either party moves it
"""

import datetime as dt
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from legal_marketplace.api.deps import get_caller, get_db_session
from legal_marketplace.domain.enums import ConsultationStatus, Role
from legal_marketplace.domain.identity import Caller
from legal_marketplace.schemas.consultation import (
    AvailabilityResponse,
    BlockedDateRequest,
    BookConsultationRequest,
    CancelConsultationRequest,
    CompleteConsultationRequest,
    ConfirmConsultationRequest,
    ConsultationResponse,
    RescheduleConsultationRequest,
    SetAvailabilityRequest,
    TimeSlotResponse,
)
from legal_marketplace.services.consultation_service import ConsultationService

router = APIRouter(prefix="/api/v1", tags=["Consultations"])


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


@router.put("/availability", response_model=AvailabilityResponse, summary="Set weekly schedule")
async def set_availability(
    request: SetAvailabilityRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> AvailabilityResponse:
    availability = await ConsultationService(session).set_availability(
        caller.user_id,
        weekly_schedule=request.model_dump(mode="json")["weekly_schedule"],
        blocked_dates=request.blocked_dates,
        consultation_duration=request.consultation_duration,
        buffer_time=request.buffer_time,
    )
    return AvailabilityResponse.model_validate(availability)


@router.get(
    "/availability/{lawyer_id}",
    response_model=AvailabilityResponse,
    summary="Get a lawyer's schedule",
)
async def get_availability(
    lawyer_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> AvailabilityResponse:
    availability = await ConsultationService(session).get_availability(lawyer_id)
    return AvailabilityResponse.model_validate(availability)


@router.post(
    "/availability/blocked-dates",
    response_model=AvailabilityResponse,
    summary="Block a day",
)
async def add_blocked_date(
    request: BlockedDateRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> AvailabilityResponse:
    availability = await ConsultationService(session).add_blocked_date(
        caller.user_id, request.date
    )
    return AvailabilityResponse.model_validate(availability)


@router.delete(
    "/availability/blocked-dates/{day}",
    response_model=AvailabilityResponse,
    summary="Unblock a day",
)
async def remove_blocked_date(
    day: dt.date,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> AvailabilityResponse:
    availability = await ConsultationService(session).remove_blocked_date(caller.user_id, day)
    return AvailabilityResponse.model_validate(availability)


@router.get(
    "/availability/{lawyer_id}/slots",
    response_model=list[TimeSlotResponse],
    summary="Slots on a day",
)
async def get_available_slots(
    lawyer_id: str,
    day: dt.date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_db_session),
) -> list[TimeSlotResponse]:
    slots = await ConsultationService(session).get_available_slots(lawyer_id, day)
    return [TimeSlotResponse.model_validate(s) for s in slots]


# ---------------------------------------------------------------------------
# Consultations
# ---------------------------------------------------------------------------


@router.post(
    "/consultations",
    response_model=ConsultationResponse,
    status_code=201,
    summary="Book a consultation",
)
async def book_consultation(
    request: BookConsultationRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ConsultationResponse:
    consultation = await ConsultationService(session).book_consultation(
        lawyer_id=request.lawyer_id,
        lawyer_name=request.lawyer_name,
        client_id=caller.user_id,
        client_name=request.client_name,
        consultation_type=request.consultation_type,
        scheduled_date=request.scheduled_date,
        fee=request.fee,
        topic=request.topic,
        description=request.description,
        lawyer_avatar=request.lawyer_avatar,
        client_avatar=request.client_avatar,
    )
    return ConsultationResponse.model_validate(consultation)


@router.get(
    "/consultations",
    response_model=list[ConsultationResponse],
    summary="The caller's consultations",
)
async def list_consultations(
    status: list[ConsultationStatus] | None = Query(default=None),
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[ConsultationResponse]:
    svc = ConsultationService(session)
    if caller.role == Role.LAWYER:
        consultations = await svc.list_lawyer_consultations(caller.user_id, status)
    else:
        consultations = await svc.list_client_consultations(caller.user_id)
    return [ConsultationResponse.model_validate(c) for c in consultations]


@router.get(
    "/consultations/upcoming",
    response_model=list[ConsultationResponse],
    summary="Upcoming consultations",
)
async def list_upcoming(
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[ConsultationResponse]:
    consultations = await ConsultationService(session).list_upcoming_consultations(caller.user_id)
    return [ConsultationResponse.model_validate(c) for c in consultations]


@router.get(
    "/consultations/{consultation_id}",
    response_model=ConsultationResponse,
    summary="Get a consultation",
)
async def get_consultation(
    consultation_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> ConsultationResponse:
    consultation = await ConsultationService(session).get_consultation(consultation_id)
    return ConsultationResponse.model_validate(consultation)


@router.post(
    "/consultations/{consultation_id}/confirm",
    response_model=ConsultationResponse,
    summary="Confirm",
)
async def confirm_consultation(
    consultation_id: uuid.UUID,
    request: ConfirmConsultationRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ConsultationResponse:
    consultation = await ConsultationService(session).confirm_consultation(
        consultation_id, caller.user_id, request.meeting_link
    )
    return ConsultationResponse.model_validate(consultation)


@router.post(
    "/consultations/{consultation_id}/cancel",
    response_model=ConsultationResponse,
    summary="Cancel",
)
async def cancel_consultation(
    consultation_id: uuid.UUID,
    request: CancelConsultationRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ConsultationResponse:
    consultation = await ConsultationService(session).cancel_consultation(
        consultation_id, caller.user_id, request.reason
    )
    return ConsultationResponse.model_validate(consultation)


@router.post(
    "/consultations/{consultation_id}/complete",
    response_model=ConsultationResponse,
    summary="Complete",
)
async def complete_consultation(
    consultation_id: uuid.UUID,
    request: CompleteConsultationRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ConsultationResponse:
    consultation = await ConsultationService(session).complete_consultation(
        consultation_id, caller.user_id, request.notes
    )
    return ConsultationResponse.model_validate(consultation)


@router.post(
    "/consultations/{consultation_id}/no-show",
    response_model=ConsultationResponse,
    summary="Mark no-show",
)
async def mark_no_show(
    consultation_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ConsultationResponse:
    consultation = await ConsultationService(session).mark_no_show(consultation_id, caller.user_id)
    return ConsultationResponse.model_validate(consultation)


@router.post(
    "/consultations/{consultation_id}/reschedule",
    response_model=ConsultationResponse,
    status_code=201,
    summary="Reschedule",
)
async def reschedule_consultation(
    consultation_id: uuid.UUID,
    request: RescheduleConsultationRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ConsultationResponse:
    """Returns the new PENDING consultation."""
    consultation = await ConsultationService(session).reschedule_consultation(
        consultation_id, request.new_date, caller.user_id
    )
    return ConsultationResponse.model_validate(consultation)
