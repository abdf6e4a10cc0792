"""Earnings, wallet and payout REST API routes.

Routes:
    GET    /api/v1/earnings                      — Caller's earnings
    GET    /api/v1/earnings/summary              — Aggregate over an optional window
    POST   /api/v1/earnings/release-due          — Admin: release every elapsed hold
    GET    /api/v1/earnings/{id}                 — Get earning details
    POST   /api/v1/earnings/{id}/release         — Admin: release one earning
    POST   /api/v1/earnings/{id}/hold            — Admin: freeze a pending earning
    POST   /api/v1/earnings/{id}/lift-hold       — Admin: unfreeze it
    GET    /api/v1/wallet                        — Caller's balances
    GET    /api/v1/wallet/{lawyer_id}/reconcile  — Admin: ledger vs stored balances
    POST   /api/v1/payouts                       — Lawyer requests a payout
    GET    /api/v1/payouts                       — Caller's payouts
    GET    /api/v1/payouts/{id}                  — Get payout details
    POST   /api/v1/payouts/{id}/cancel           — Lawyer cancels a pending payout
    POST   /api/v1/payouts/{id}/processing       — Admin: mark in flight
    POST   /api/v1/payouts/{id}/complete         — Admin: record the transfer
    POST   /api/v1/payouts/{id}/fail             — Admin: record a failed transfer
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from legal_marketplace.api.deps import get_caller, get_db_session, get_idempotency_key, idempotent
from legal_marketplace.domain.enums import EarningStatus
from legal_marketplace.domain.exceptions import AuthorizationError
from legal_marketplace.domain.identity import Caller
from legal_marketplace.schemas.earnings import (
    EarningResponse,
    EarningsSummaryResponse,
    FailPayoutRequest,
    HoldEarningRequest,
    PayoutRequestBody,
    PayoutResponse,
    ProcessPayoutRequest,
    ReleaseDueResponse,
    WalletReconciliationResponse,
    WalletResponse,
)
from legal_marketplace.services.earnings_service import EarningsService

router = APIRouter(prefix="/api/v1", tags=["Earnings"])


def _require_owner(caller: Caller, lawyer_id: str) -> None:
    if not caller.is_admin and caller.user_id != lawyer_id:
        raise AuthorizationError("You can only view your own earnings")


# ---------------------------------------------------------------------------
# Earnings
# ---------------------------------------------------------------------------


@router.get("/earnings", response_model=list[EarningResponse], summary="The caller's earnings")
async def list_earnings(
    status: EarningStatus | None = None,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[EarningResponse]:
    earnings = await EarningsService(session).list_earnings(caller.user_id, status)
    return [EarningResponse.model_validate(e) for e in earnings]


@router.get(
    "/earnings/summary",
    response_model=EarningsSummaryResponse,
    summary="Earnings summary",
)
async def get_earnings_summary(
    start: datetime | None = None,
    end: datetime | None = None,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> EarningsSummaryResponse:
    summary = await EarningsService(session).get_earnings_summary(caller.user_id, start, end)
    return EarningsSummaryResponse.model_validate(summary)


@router.post(
    "/earnings/release-due",
    response_model=ReleaseDueResponse,
    summary="Release every earning whose hold has elapsed",
)
async def release_due_earnings(
    limit: int | None = Query(default=None, gt=0, le=1000),
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ReleaseDueResponse:
    """Entry point for the external scheduler that drives hold expiry."""
    caller.require_admin()
    released = await EarningsService(session).release_due_earnings(limit)
    return ReleaseDueResponse(released=len(released), earning_ids=[e.id for e in released])


@router.get("/earnings/{earning_id}", response_model=EarningResponse, summary="Get an earning")
async def get_earning(
    earning_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> EarningResponse:
    earning = await EarningsService(session).get_earning(earning_id)
    _require_owner(caller, earning.lawyer_id)
    return EarningResponse.model_validate(earning)


@router.post(
    "/earnings/{earning_id}/release",
    response_model=EarningResponse,
    summary="Release one earning",
)
async def release_earning(
    earning_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> EarningResponse:
    caller.require_admin()
    earning = await EarningsService(session).release_pending_earnings(
        earning_id, actor=caller.user_id
    )
    return EarningResponse.model_validate(earning)


@router.post("/earnings/{earning_id}/hold", response_model=EarningResponse, summary="Hold")
async def hold_earning(
    earning_id: uuid.UUID,
    request: HoldEarningRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> EarningResponse:
    earning = await EarningsService(session).hold_earning(earning_id, caller, request.reason)
    return EarningResponse.model_validate(earning)


@router.post(
    "/earnings/{earning_id}/lift-hold",
    response_model=EarningResponse,
    summary="Lift a hold",
)
async def lift_hold(
    earning_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> EarningResponse:
    earning = await EarningsService(session).lift_hold(earning_id, caller)
    return EarningResponse.model_validate(earning)


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


@router.get("/wallet", response_model=WalletResponse, summary="The caller's balances")
async def get_wallet(
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> WalletResponse:
    return WalletResponse.model_validate(await EarningsService(session).get_wallet(caller.user_id))


@router.get(
    "/wallet/{lawyer_id}/reconcile",
    response_model=WalletReconciliationResponse,
    summary="Compare stored balances with the ledger",
)
async def reconcile_wallet(
    lawyer_id: str,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> WalletReconciliationResponse:
    caller.require_admin()
    result = await EarningsService(session).reconcile_wallet(lawyer_id)
    return WalletReconciliationResponse.model_validate(result)


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


@router.post(
    "/payouts",
    response_model=PayoutResponse,
    status_code=201,
    summary="Request a payout",
)
async def request_payout(
    request: PayoutRequestBody,
    caller: Caller = Depends(get_caller),
    idempotency_key: str | None = Depends(get_idempotency_key),
    session: AsyncSession = Depends(get_db_session),
) -> PayoutResponse:
    """Holds the amount from the available balance immediately."""
    async with idempotent(f"payout:{caller.user_id}", idempotency_key):
        payout = await EarningsService(session).request_payout(
            caller.user_id,
            request.amount,
            request.method,
            request.account_details.model_dump(exclude_none=True),
        )
    return PayoutResponse.model_validate(payout)


@router.get("/payouts", response_model=list[PayoutResponse], summary="The caller's payouts")
async def list_payouts(
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[PayoutResponse]:
    payouts = await EarningsService(session).list_payouts(caller.user_id)
    return [PayoutResponse.model_validate(p) for p in payouts]


@router.get("/payouts/{payout_id}", response_model=PayoutResponse, summary="Get a payout")
async def get_payout(
    payout_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> PayoutResponse:
    payout = await EarningsService(session).get_payout(payout_id)
    _require_owner(caller, payout.lawyer_id)
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/cancel", response_model=PayoutResponse, summary="Cancel")
async def cancel_payout(
    payout_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> PayoutResponse:
    payout = await EarningsService(session).cancel_payout_request(payout_id, caller.user_id)
    return PayoutResponse.model_validate(payout)


@router.post(
    "/payouts/{payout_id}/processing",
    response_model=PayoutResponse,
    summary="Mark a payout in flight",
)
async def start_processing_payout(
    payout_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> PayoutResponse:
    payout = await EarningsService(session).start_processing_payout(payout_id, caller)
    return PayoutResponse.model_validate(payout)


@router.post(
    "/payouts/{payout_id}/complete",
    response_model=PayoutResponse,
    summary="Record a completed transfer",
)
async def complete_payout(
    payout_id: uuid.UUID,
    request: ProcessPayoutRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> PayoutResponse:
    payout = await EarningsService(session).process_payout(
        payout_id, request.transaction_id, caller
    )
    return PayoutResponse.model_validate(payout)


@router.post(
    "/payouts/{payout_id}/fail",
    response_model=PayoutResponse,
    summary="Record a failed transfer",
)
async def fail_payout(
    payout_id: uuid.UUID,
    request: FailPayoutRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> PayoutResponse:
    payout = await EarningsService(session).fail_payout(payout_id, request.failure_reason, caller)
    return PayoutResponse.model_validate(payout)
