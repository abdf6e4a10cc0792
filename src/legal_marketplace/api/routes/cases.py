"""Case REST API routes.

Routes:
    POST   /api/v1/cases                 — Draft a new case
    GET    /api/v1/cases                 — List the caller's cases
    GET    /api/v1/cases/available       — Cases open for bidding
    GET    /api/v1/cases/{id}            — Get case details
    GET    /api/v1/cases/{id}/status     — Status with allowed events
    GET    /api/v1/cases/{id}/events     — Audit trail
    POST   /api/v1/cases/{id}/post       — Publish a draft
    POST   /api/v1/cases/{id}/cancel     — Client cancels before assignment
    POST   /api/v1/cases/{id}/status     — Admin status override
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from legal_marketplace.api.deps import get_caller, get_db_session
from legal_marketplace.domain.enums import AreaOfLaw, EntityType, Role
from legal_marketplace.domain.identity import Caller
from legal_marketplace.schemas.case import (
    CaseResponse,
    CaseStatusResponse,
    CreateCaseRequest,
    UpdateCaseStatusRequest,
)
from legal_marketplace.schemas.common import EventResponse
from legal_marketplace.services.case_service import CaseService

router = APIRouter(prefix="/api/v1/cases", tags=["Cases"])


@router.post("", response_model=CaseResponse, status_code=201, summary="Draft a new case")
async def create_case(
    request: CreateCaseRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> CaseResponse:
    case = await CaseService(session).create_case(
        client_id=caller.user_id,
        title=request.title,
        description=request.description,
        area_of_law=request.area_of_law,
        service_type=request.service_type,
        budget_min=request.budget_min,
        budget_max=request.budget_max,
        urgency=request.urgency,
        preferred_timeline=request.preferred_timeline,
        location=request.location,
    )
    return CaseResponse.model_validate(case)


@router.get("", response_model=list[CaseResponse], summary="List the caller's cases")
async def list_my_cases(
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[CaseResponse]:
    """Clients see the cases they posted; lawyers see the cases assigned to them."""
    svc = CaseService(session)
    if caller.role == Role.LAWYER:
        cases = await svc.list_lawyer_cases(caller.user_id)
    else:
        cases = await svc.list_client_cases(caller.user_id)
    return [CaseResponse.model_validate(c) for c in cases]


@router.get("/available", response_model=list[CaseResponse], summary="Cases open for bidding")
async def list_available_cases(
    area_of_law: AreaOfLaw | None = None,
    session: AsyncSession = Depends(get_db_session),
) -> list[CaseResponse]:
    cases = await CaseService(session).list_available_cases(area_of_law)
    return [CaseResponse.model_validate(c) for c in cases]


@router.get("/{case_id}", response_model=CaseResponse, summary="Get case details")
async def get_case(
    case_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> CaseResponse:
    return CaseResponse.model_validate(await CaseService(session).get_case(case_id))


@router.get("/{case_id}/status", response_model=CaseStatusResponse, summary="Status check")
async def get_case_status(
    case_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> CaseStatusResponse:
    return CaseStatusResponse(**await CaseService(session).get_status(case_id))


@router.get("/{case_id}/events", response_model=list[EventResponse], summary="Audit trail")
async def get_case_events(
    case_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> list[EventResponse]:
    events = await CaseService(session).get_events(EntityType.CASE, case_id)
    return [EventResponse.model_validate(e) for e in events]


@router.post("/{case_id}/post", response_model=CaseResponse, summary="Publish a draft")
async def post_case(
    case_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> CaseResponse:
    case = await CaseService(session).post_case(case_id, caller.user_id)
    return CaseResponse.model_validate(case)


@router.post("/{case_id}/cancel", response_model=CaseResponse, summary="Cancel a case")
async def cancel_case(
    case_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> CaseResponse:
    case = await CaseService(session).cancel_case(case_id, caller.user_id)
    return CaseResponse.model_validate(case)


@router.post("/{case_id}/status", response_model=CaseResponse, summary="Admin status override")
async def update_case_status(
    case_id: uuid.UUID,
    request: UpdateCaseStatusRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> CaseResponse:
    """Force a transition allowed by the case table. Admin only."""
    caller.require_admin()
    case = await CaseService(session).update_status(
        case_id, request.status, actor=caller.user_id
    )
    return CaseResponse.model_validate(case)
