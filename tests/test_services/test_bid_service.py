"""Tests for bid submission and acceptance."""

from __future__ import annotations

import uuid

import pytest

from conftest import CLIENT_ID, LAWYER_A, LAWYER_B
from legal_marketplace.domain.enums import BidStatus, CaseStatus, EntityType, EventType, FeeType
from legal_marketplace.domain.exceptions import (
    AuthorizationError,
    BidAlreadyAcceptedError,
    BidNotFoundError,
    DuplicateBidError,
    FeeOutsideBudgetError,
    InvalidInputError,
    InvalidStateTransitionError,
)


async def _bid(bid_service, case, lawyer_id: str, fee: int):
    return await bid_service.create_bid(
        lawyer_id, case.id, fee, FeeType.FIXED, "4 weeks", "Detailed proposal for this matter."
    )


class TestSubmission:
    async def test_first_bid_opens_bidding(self, make_posted_case, bid_service, case_service) -> None:
        case = await make_posted_case()

        bid = await _bid(bid_service, case, LAWYER_A, 45_000)

        assert bid.status == BidStatus.PENDING
        assert (await case_service.get_case(case.id)).status == CaseStatus.BIDDING
        assert await bid_service.count_pending_bids(case.id) == 1

    async def test_duplicate_pending_bid_rejected(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()
        await _bid(bid_service, case, LAWYER_A, 45_000)

        with pytest.raises(DuplicateBidError):
            await _bid(bid_service, case, LAWYER_A, 40_000)

    async def test_cannot_bid_on_own_case(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()

        with pytest.raises(AuthorizationError):
            await _bid(bid_service, case, CLIENT_ID, 45_000)

    async def test_fee_must_be_positive(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()

        with pytest.raises(InvalidInputError):
            await _bid(bid_service, case, LAWYER_A, 0)

    async def test_cannot_bid_on_assigned_case(self, make_assigned_case, bid_service) -> None:
        case = await make_assigned_case()

        with pytest.raises(InvalidStateTransitionError):
            await _bid(bid_service, case, LAWYER_B, 50_000)

    async def test_withdrawn_lawyer_can_bid_again(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()
        first = await _bid(bid_service, case, LAWYER_A, 45_000)
        await bid_service.withdraw_bid(first.id, LAWYER_A)

        second = await _bid(bid_service, case, LAWYER_A, 42_000)

        assert second.status == BidStatus.PENDING
        assert (await bid_service.get_bid(first.id)).status == BidStatus.WITHDRAWN


class TestUpdateAndWithdraw:
    async def test_update_pending_bid(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()
        bid = await _bid(bid_service, case, LAWYER_A, 45_000)

        bid = await bid_service.update_bid(bid.id, LAWYER_A, proposed_fee=41_000)

        assert bid.proposed_fee == 41_000
        events = await bid_service.get_events(EntityType.BID, bid.id)
        assert events[-1].event_type == EventType.BID_UPDATED
        assert events[-1].metadata_json == {"fields": ["proposed_fee"]}

    async def test_only_owner_can_update(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()
        bid = await _bid(bid_service, case, LAWYER_A, 45_000)

        with pytest.raises(AuthorizationError):
            await bid_service.update_bid(bid.id, LAWYER_B, proposed_fee=1)

    async def test_withdrawn_bid_is_final(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()
        bid = await _bid(bid_service, case, LAWYER_A, 45_000)
        await bid_service.withdraw_bid(bid.id, LAWYER_A)

        with pytest.raises(InvalidStateTransitionError):
            await bid_service.withdraw_bid(bid.id, LAWYER_A)
        with pytest.raises(InvalidStateTransitionError):
            await bid_service.update_bid(bid.id, LAWYER_A, proposed_fee=40_000)


class TestAcceptance:
    async def test_accept_rejects_others_and_assigns(
        self, make_posted_case, bid_service, case_service
    ) -> None:
        case = await make_posted_case()
        bid_a = await _bid(bid_service, case, LAWYER_A, 45_000)
        bid_b = await _bid(bid_service, case, LAWYER_B, 50_000)

        accepted = await bid_service.accept_bid(bid_a.id, CLIENT_ID)

        assert accepted.status == BidStatus.ACCEPTED
        assert (await bid_service.get_bid(bid_b.id)).status == BidStatus.REJECTED
        case = await case_service.get_case(case.id)
        assert case.status == CaseStatus.ASSIGNED
        assert case.lawyer_id == LAWYER_A
        assert case.agreed_fee == 45_000

        events = await case_service.get_events(EntityType.CASE, case.id)
        assert events[-1].event_type == EventType.LAWYER_ASSIGNED

    async def test_accept_is_idempotent(self, make_posted_case, bid_service, case_service) -> None:
        case = await make_posted_case()
        bid = await _bid(bid_service, case, LAWYER_A, 45_000)

        await bid_service.accept_bid(bid.id, CLIENT_ID)
        again = await bid_service.accept_bid(bid.id, CLIENT_ID)

        assert again.status == BidStatus.ACCEPTED
        assert (await case_service.get_case(case.id)).status == CaseStatus.ASSIGNED

    async def test_second_acceptance_conflicts(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()
        bid_a = await _bid(bid_service, case, LAWYER_A, 45_000)
        bid_b = await _bid(bid_service, case, LAWYER_B, 50_000)
        await bid_service.accept_bid(bid_a.id, CLIENT_ID)

        # bid_b was swept to REJECTED, so the machine refuses first.
        with pytest.raises((InvalidStateTransitionError, BidAlreadyAcceptedError)):
            await bid_service.accept_bid(bid_b.id, CLIENT_ID)

    async def test_fee_outside_budget_fails_without_side_effects(
        self, make_posted_case, bid_service, case_service
    ) -> None:
        case = await make_posted_case(budget_min=30_000, budget_max=60_000)
        bid = await _bid(bid_service, case, LAWYER_A, 75_000)

        with pytest.raises(FeeOutsideBudgetError):
            await bid_service.accept_bid(bid.id, CLIENT_ID)

        assert (await bid_service.get_bid(bid.id)).status == BidStatus.PENDING
        assert (await case_service.get_case(case.id)).status == CaseStatus.BIDDING

    async def test_only_case_owner_accepts(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()
        bid = await _bid(bid_service, case, LAWYER_A, 45_000)

        with pytest.raises(AuthorizationError):
            await bid_service.accept_bid(bid.id, LAWYER_B)

    async def test_reject_with_feedback(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()
        bid = await _bid(bid_service, case, LAWYER_A, 45_000)

        bid = await bid_service.reject_bid(bid.id, CLIENT_ID, feedback="Too slow")

        assert bid.status == BidStatus.REJECTED
        assert bid.rejection_feedback == "Too slow"

    async def test_unknown_bid(self, bid_service) -> None:
        with pytest.raises(BidNotFoundError):
            await bid_service.accept_bid(uuid.uuid4(), CLIENT_ID)


class TestListing:
    async def test_list_for_case_filters_by_status(self, make_posted_case, bid_service) -> None:
        case = await make_posted_case()
        bid_a = await _bid(bid_service, case, LAWYER_A, 45_000)
        await _bid(bid_service, case, LAWYER_B, 50_000)
        await bid_service.withdraw_bid(bid_a.id, LAWYER_A)

        pending = await bid_service.list_bids_for_case(case.id, BidStatus.PENDING)
        everything = await bid_service.list_bids_for_case(case.id)

        assert [b.lawyer_id for b in pending] == [LAWYER_B]
        assert len(everything) == 2
        assert [b.id for b in await bid_service.list_bids_by_lawyer(LAWYER_A)] == [bid_a.id]
