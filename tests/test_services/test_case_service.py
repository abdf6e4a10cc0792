"""Tests for the case lifecycle service."""

from __future__ import annotations

import uuid

import pytest

from legal_marketplace.domain.enums import (
    AreaOfLaw,
    BidStatus,
    CaseStatus,
    EntityType,
    EventType,
    FeeType,
    ServiceType,
)
from legal_marketplace.domain.exceptions import (
    AuthorizationError,
    CaseNotFoundError,
    FeeOutsideBudgetError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from conftest import CLIENT_ID, LAWYER_A, LAWYER_B


class TestCreateAndPost:
    async def test_create_case_starts_in_draft(self, case_service) -> None:
        case = await case_service.create_case(
            client_id=CLIENT_ID,
            title="Wrongful dismissal",
            description="Terminated without notice after six years of service.",
            area_of_law=AreaOfLaw.LABOR_LAW,
            service_type=ServiceType.LEGAL_OPINION,
            budget_min=10_000,
            budget_max=20_000,
        )

        assert case.status == CaseStatus.DRAFT
        assert case.case_number.startswith("CASE-2030-")
        assert case.lawyer_id is None
        assert case.agreed_fee is None

    @pytest.mark.parametrize(("budget_min", "budget_max"), [(0, 100), (500, 100), (-5, 10)])
    async def test_rejects_bad_budget(self, case_service, budget_min, budget_max) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            await case_service.create_case(
                client_id=CLIENT_ID,
                title="Bad budget",
                description="Budget bounds are inverted or non-positive.",
                area_of_law=AreaOfLaw.OTHER,
                service_type=ServiceType.LEGAL_CONSULTATION,
                budget_min=budget_min,
                budget_max=budget_max,
            )
        assert exc_info.value.code == "INVALID_BUDGET"

    async def test_post_case(self, make_posted_case, case_service) -> None:
        case = await make_posted_case()

        assert case.status == CaseStatus.POSTED
        assert case in await case_service.list_available_cases()
        assert await case_service.list_available_cases(AreaOfLaw.TAX_LAW) == []

    async def test_only_owner_can_post(self, case_service) -> None:
        case = await case_service.create_case(
            client_id=CLIENT_ID,
            title="Inheritance split",
            description="Siblings disagree over the family house.",
            area_of_law=AreaOfLaw.FAMILY_LAW,
            service_type=ServiceType.LEGAL_OPINION,
            budget_min=1_000,
            budget_max=2_000,
        )
        with pytest.raises(AuthorizationError):
            await case_service.post_case(case.id, "someone-else")

    async def test_unknown_case(self, case_service) -> None:
        with pytest.raises(CaseNotFoundError):
            await case_service.get_case(uuid.uuid4())


class TestStatusChanges:
    async def test_update_status_follows_table(self, make_posted_case, case_service) -> None:
        case = await make_posted_case()

        case = await case_service.update_status(case.id, CaseStatus.MATCHING)
        assert case.status == CaseStatus.MATCHING

        with pytest.raises(InvalidStateTransitionError):
            await case_service.update_status(case.id, CaseStatus.COMPLETED)

    async def test_status_change_records_transition(self, make_posted_case, case_service) -> None:
        case = await make_posted_case()

        await case_service.update_status(case.id, CaseStatus.MATCHING)

        events = await case_service.get_events(EntityType.CASE, case.id)
        assert events[-1].new_status == CaseStatus.MATCHING
        assert events[-1].metadata_json == {"event": "matching_started"}

    async def test_assignment_fields_only_with_assigned(self, make_posted_case, case_service) -> None:
        case = await make_posted_case()
        with pytest.raises(InvalidInputError):
            await case_service.update_status(case.id, CaseStatus.BIDDING, lawyer_id=LAWYER_A)

    async def test_assign_lawyer_stamps_assignment(self, make_posted_case, case_service) -> None:
        case = await make_posted_case()
        await case_service.update_status(case.id, CaseStatus.BIDDING)

        case = await case_service.assign_lawyer(case.id, LAWYER_A, 40_000)

        assert case.status == CaseStatus.ASSIGNED
        assert case.lawyer_id == LAWYER_A
        assert case.agreed_fee == 40_000
        assert case.assigned_at is not None

    async def test_assign_lawyer_checks_budget(self, make_posted_case, case_service) -> None:
        case = await make_posted_case()
        await case_service.update_status(case.id, CaseStatus.BIDDING)

        with pytest.raises(FeeOutsideBudgetError):
            await case_service.assign_lawyer(case.id, LAWYER_A, 90_000)

    async def test_status_lists_allowed_events(self, make_posted_case, case_service) -> None:
        case = await make_posted_case()

        status = await case_service.get_status(case.id)

        assert status["status"] == CaseStatus.POSTED
        assert status["accepting_bids"] is True
        assert "bidding_opened" in status["allowed_events"]

    async def test_events_are_recorded_in_order(self, make_posted_case, case_service) -> None:
        case = await make_posted_case()

        events = await case_service.get_events(EntityType.CASE, case.id)

        assert [e.event_type for e in events] == [
            EventType.CASE_CREATED,
            EventType.CASE_STATUS_CHANGED,
        ]
        assert events[1].old_status == CaseStatus.DRAFT
        assert events[1].new_status == CaseStatus.POSTED
        assert events[1].actor == CLIENT_ID


class TestCancel:
    async def test_cancel_rejects_pending_bids(
        self, make_posted_case, case_service, bid_service
    ) -> None:
        case = await make_posted_case()
        bid_a = await bid_service.create_bid(
            LAWYER_A, case.id, 40_000, FeeType.FIXED, "3 weeks", "Experienced in tenancy law."
        )
        bid_b = await bid_service.create_bid(
            LAWYER_B, case.id, 50_000, FeeType.FIXED, "2 weeks", "Can start immediately."
        )

        case = await case_service.cancel_case(case.id, CLIENT_ID)

        assert case.status == CaseStatus.CANCELLED
        for bid_id in (bid_a.id, bid_b.id):
            bid = await bid_service.get_bid(bid_id)
            assert bid.status == BidStatus.REJECTED

    async def test_cannot_cancel_after_assignment(self, make_assigned_case, case_service) -> None:
        case = await make_assigned_case()

        with pytest.raises(InvalidStateTransitionError):
            await case_service.cancel_case(case.id, CLIENT_ID)

    async def test_only_owner_can_cancel(self, make_posted_case, case_service) -> None:
        case = await make_posted_case()
        with pytest.raises(AuthorizationError):
            await case_service.cancel_case(case.id, LAWYER_A)
