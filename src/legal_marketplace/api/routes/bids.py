"""Bid REST API routes.

Routes:
    POST   /api/v1/bids                  — Lawyer submits a bid
    GET    /api/v1/bids/mine             — Lawyer's own bids
    GET    /api/v1/bids/case/{case_id}   — Bids on a case, newest first
    GET    /api/v1/bids/{id}             — Get bid details
    PATCH  /api/v1/bids/{id}             — Revise a pending bid
    POST   /api/v1/bids/{id}/withdraw    — Lawyer withdraws
    POST   /api/v1/bids/{id}/accept      — Client accepts (assigns the case)
    POST   /api/v1/bids/{id}/reject      — Client rejects
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from legal_marketplace.api.deps import get_caller, get_db_session
from legal_marketplace.domain.enums import BidStatus
from legal_marketplace.domain.identity import Caller
from legal_marketplace.schemas.bid import (
    BidResponse,
    CreateBidRequest,
    RejectBidRequest,
    UpdateBidRequest,
)
from legal_marketplace.services.bid_service import BidService

router = APIRouter(prefix="/api/v1/bids", tags=["Bids"])


@router.post("", response_model=BidResponse, status_code=201, summary="Submit a bid")
async def create_bid(
    request: CreateBidRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> BidResponse:
    bid = await BidService(session).create_bid(
        lawyer_id=caller.user_id,
        case_id=request.case_id,
        proposed_fee=request.proposed_fee,
        fee_type=request.fee_type,
        estimated_timeline=request.estimated_timeline,
        proposal_text=request.proposal_text,
    )
    return BidResponse.model_validate(bid)


@router.get("/mine", response_model=list[BidResponse], summary="The caller's bids")
async def list_my_bids(
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[BidResponse]:
    bids = await BidService(session).list_bids_by_lawyer(caller.user_id)
    return [BidResponse.model_validate(b) for b in bids]


@router.get("/case/{case_id}", response_model=list[BidResponse], summary="Bids on a case")
async def list_case_bids(
    case_id: uuid.UUID,
    status: BidStatus | None = None,
    session: AsyncSession = Depends(get_db_session),
) -> list[BidResponse]:
    bids = await BidService(session).list_bids_for_case(case_id, status)
    return [BidResponse.model_validate(b) for b in bids]


@router.get("/{bid_id}", response_model=BidResponse, summary="Get bid details")
async def get_bid(
    bid_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> BidResponse:
    return BidResponse.model_validate(await BidService(session).get_bid(bid_id))


@router.patch("/{bid_id}", response_model=BidResponse, summary="Revise a pending bid")
async def update_bid(
    bid_id: uuid.UUID,
    request: UpdateBidRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> BidResponse:
    bid = await BidService(session).update_bid(
        bid_id,
        caller.user_id,
        proposed_fee=request.proposed_fee,
        fee_type=request.fee_type,
        estimated_timeline=request.estimated_timeline,
        proposal_text=request.proposal_text,
    )
    return BidResponse.model_validate(bid)


@router.post("/{bid_id}/withdraw", response_model=BidResponse, summary="Withdraw a bid")
async def withdraw_bid(
    bid_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> BidResponse:
    bid = await BidService(session).withdraw_bid(bid_id, caller.user_id)
    return BidResponse.model_validate(bid)


@router.post("/{bid_id}/accept", response_model=BidResponse, summary="Accept a bid")
async def accept_bid(
    bid_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> BidResponse:
    """Accept the bid, reject every other pending bid and assign the case."""
    bid = await BidService(session).accept_bid(bid_id, caller.user_id)
    return BidResponse.model_validate(bid)


@router.post("/{bid_id}/reject", response_model=BidResponse, summary="Reject a bid")
async def reject_bid(
    bid_id: uuid.UUID,
    request: RejectBidRequest,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> BidResponse:
    bid = await BidService(session).reject_bid(bid_id, caller.user_id, request.feedback)
    return BidResponse.model_validate(bid)
