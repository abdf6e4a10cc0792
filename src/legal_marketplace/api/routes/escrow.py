"""Escrow REST API routes.

Routes:
    POST   /api/v1/escrow/{case_id}                 — Open escrow for an assigned case
    GET    /api/v1/escrow                           — Caller's escrows
    GET    /api/v1/escrow/{case_id}                 — Get escrow details
    GET    /api/v1/escrow/{case_id}/status          — Lightweight status check
    GET    /api/v1/escrow/{case_id}/events          — Audit trail
    POST   /api/v1/escrow/{case_id}/fund            — Record payment capture
    POST   /api/v1/escrow/{case_id}/confirm         — Party confirms the case is clear
    POST   /api/v1/escrow/{case_id}/dispute         — Party raises a dispute
    POST   /api/v1/escrow/{case_id}/resolve         — Admin splits a dispute
    POST   /api/v1/escrow/{case_id}/refund          — Admin refunds the client
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from legal_marketplace.api.deps import get_caller, get_db_session, get_idempotency_key, idempotent
from legal_marketplace.domain.enums import Role
from legal_marketplace.domain.exceptions import AuthorizationError
from legal_marketplace.domain.identity import Caller
from legal_marketplace.schemas.common import EventResponse
from legal_marketplace.schemas.escrow import (
    CreateEscrowRequest,
    EscrowResponse,
    EscrowStatusResponse,
    FundEscrowRequest,
    RaiseDisputeRequest,
    ResolveDisputeRequest,
    escrow_view,
)
from legal_marketplace.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/escrow", tags=["Escrow"])


# ---------------------------------------------------------------------------
# Create & fund
# ---------------------------------------------------------------------------


@router.post(
    "/{case_id}",
    response_model=EscrowResponse,
    status_code=201,
    summary="Open escrow for an assigned case",
)
async def create_escrow(
    case_id: uuid.UUID,
    request: CreateEscrowRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
):
    escrow = await EscrowService(session).create_escrow(
        case_id=case_id,
        client_id=caller.user_id,
        lawyer_id=request.lawyer_id,
        total_amount=request.total_amount,
    )
    return escrow_view(escrow)


@router.post("/{case_id}/fund", response_model=EscrowResponse, summary="Record payment capture")
async def fund_escrow(
    case_id: uuid.UUID,
    request: FundEscrowRequest,
    caller: Caller = Depends(get_caller),
    idempotency_key: str | None = Depends(get_idempotency_key),
    session: AsyncSession = Depends(get_db_session),
):
    """Transitions PENDING_PAYMENT -> FUNDED and moves the case to IN_PROGRESS."""
    async with idempotent("escrow_fund", idempotency_key):
        escrow = await EscrowService(session).fund_escrow(
            case_id, request.transaction_id, actor=caller
        )
    return escrow_view(escrow)


# ---------------------------------------------------------------------------
# Confirmation & disputes
# ---------------------------------------------------------------------------


@router.post(
    "/{case_id}/confirm",
    response_model=EscrowResponse,
    summary="Confirm the case is clear",
)
async def confirm_case_clear(
    case_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
):
    """The caller's role picks which side is confirming. Release happens on the second one."""
    svc = EscrowService(session)
    if caller.role == Role.LAWYER:
        escrow = await svc.lawyer_confirm_case_clear(case_id, caller.user_id)
    elif caller.role == Role.CLIENT:
        escrow = await svc.client_confirm_case_clear(case_id, caller.user_id)
    else:
        raise AuthorizationError("Only the client or the lawyer can confirm a case")
    return escrow_view(escrow)


@router.post("/{case_id}/dispute", response_model=EscrowResponse, summary="Raise a dispute")
async def raise_dispute(
    case_id: uuid.UUID,
    request: RaiseDisputeRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
):
    escrow = await EscrowService(session).raise_dispute(case_id, caller.user_id, request.reason)
    return escrow_view(escrow)


@router.post("/{case_id}/resolve", response_model=EscrowResponse, summary="Resolve a dispute")
async def resolve_dispute(
    case_id: uuid.UUID,
    request: ResolveDisputeRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
):
    escrow = await EscrowService(session).resolve_dispute(
        case_id, request.client_percent, request.lawyer_percent, actor=caller
    )
    return escrow_view(escrow)


@router.post("/{case_id}/refund", response_model=EscrowResponse, summary="Refund the client")
async def refund_escrow(
    case_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
):
    escrow = await EscrowService(session).refund_escrow(case_id, actor=caller)
    return escrow_view(escrow)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=list[EscrowResponse], summary="The caller's escrows")
async def list_my_escrows(
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
):
    svc = EscrowService(session)
    if caller.role == Role.LAWYER:
        escrows = await svc.list_lawyer_escrows(caller.user_id)
    else:
        escrows = await svc.list_client_escrows(caller.user_id)
    return [escrow_view(e) for e in escrows]


@router.get("/{case_id}", response_model=EscrowResponse, summary="Get escrow details")
async def get_escrow(
    case_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
):
    return escrow_view(await EscrowService(session).get_escrow(case_id))


@router.get(
    "/{case_id}/status",
    response_model=EscrowStatusResponse,
    summary="Get lightweight status check",
)
async def get_status(
    case_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> EscrowStatusResponse:
    """Return the current status, confirmation flags and allowed next events."""
    return EscrowStatusResponse(**await EscrowService(session).get_status(case_id))


@router.get("/{case_id}/events", response_model=list[EventResponse], summary="Get audit trail")
async def get_events(
    case_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> list[EventResponse]:
    events = await EscrowService(session).get_escrow_events(case_id)
    return [EventResponse.model_validate(e) for e in events]
