"""Tests for the escrow lifecycle: funding, dual confirmation, disputes, refunds."""

from __future__ import annotations

import uuid

import pytest

from conftest import CLIENT_ID, LAWYER_A, LAWYER_B
from legal_marketplace.domain.enums import (
    CaseStatus,
    EarningStatus,
    EarningType,
    EscrowStatus,
    EventType,
    Role,
)
from legal_marketplace.domain.exceptions import (
    AuthorizationError,
    ConfirmationAlreadyRecordedError,
    EscrowAlreadyExistsError,
    EscrowNotFoundError,
    InvalidDisputeSplitError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from legal_marketplace.domain.identity import Caller
from legal_marketplace.infrastructure.database.repositories import StatsRepository


class TestCreateAndFund:
    async def test_escrow_holds_half_the_fee(self, make_assigned_case, escrow_service) -> None:
        case = await make_assigned_case(45_000)

        escrow = await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)

        assert escrow.status == EscrowStatus.PENDING_PAYMENT
        assert escrow.total_amount == 45_000
        assert escrow.escrow_amount == 22_500

    async def test_odd_fee_rounds_half_up(self, make_assigned_case, escrow_service) -> None:
        case = await make_assigned_case(45_001)

        escrow = await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)

        assert escrow.escrow_amount == 22_501

    async def test_one_escrow_per_case(self, make_assigned_case, escrow_service) -> None:
        case = await make_assigned_case()
        await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)

        with pytest.raises(EscrowAlreadyExistsError):
            await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)

    async def test_requires_assigned_lawyer(self, make_assigned_case, escrow_service) -> None:
        case = await make_assigned_case()

        with pytest.raises(InvalidInputError) as exc_info:
            await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_B)
        assert exc_info.value.code == "LAWYER_NOT_ASSIGNED"

    async def test_requires_assigned_case(self, make_posted_case, escrow_service) -> None:
        case = await make_posted_case()

        with pytest.raises((InvalidStateTransitionError, InvalidInputError)):
            await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)

    async def test_only_owner_creates(self, make_assigned_case, escrow_service) -> None:
        case = await make_assigned_case()

        with pytest.raises(AuthorizationError):
            await escrow_service.create_escrow(case.id, LAWYER_B, LAWYER_A)

    async def test_funding_starts_work(
        self, make_funded_escrow, escrow_service, case_service, earnings_service
    ) -> None:
        escrow = await make_funded_escrow()

        assert escrow.status == EscrowStatus.FUNDED
        assert escrow.transaction_id == "txn-1"
        assert escrow.funded_at is not None
        assert (await case_service.get_case(escrow.case_id)).status == CaseStatus.IN_PROGRESS
        assert (await earnings_service.get_wallet(LAWYER_A)).escrow_balance == 22_500

    async def test_fund_requires_transaction_id(self, make_assigned_case, escrow_service) -> None:
        case = await make_assigned_case()
        await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)

        with pytest.raises(InvalidInputError):
            await escrow_service.fund_escrow(case.id, "")

    async def test_fund_by_stranger_refused(self, make_assigned_case, escrow_service) -> None:
        case = await make_assigned_case()
        await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)

        with pytest.raises(AuthorizationError):
            await escrow_service.fund_escrow(
                case.id, "txn-9", Caller(user_id=LAWYER_B, role=Role.CLIENT)
            )

    async def test_fund_twice_refused(self, make_funded_escrow, escrow_service) -> None:
        escrow = await make_funded_escrow()

        with pytest.raises(InvalidStateTransitionError):
            await escrow_service.fund_escrow(escrow.case_id, "txn-2")

    async def test_unknown_escrow(self, escrow_service) -> None:
        with pytest.raises(EscrowNotFoundError):
            await escrow_service.get_escrow(uuid.uuid4())


class TestDualConfirmation:
    async def test_release_after_both_confirm(
        self, make_funded_escrow, escrow_service, case_service, earnings_service, session
    ) -> None:
        escrow = await make_funded_escrow()
        case_id = escrow.case_id

        await escrow_service.lawyer_confirm_case_clear(case_id, LAWYER_A)
        assert (await case_service.get_case(case_id)).status == CaseStatus.CASE_CLEAR_PENDING
        assert (await escrow_service.get_escrow(case_id)).status == EscrowStatus.FUNDED

        escrow = await escrow_service.client_confirm_case_clear(case_id, CLIENT_ID)

        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.release_amount == 22_500
        assert escrow.released_at is not None
        case = await case_service.get_case(case_id)
        assert case.status == CaseStatus.COMPLETED
        assert case.completed_at is not None

        [earning] = await earnings_service.list_earnings(LAWYER_A)
        assert earning.amount == 22_500
        assert earning.earning_type == EarningType.CASE_PAYMENT
        assert earning.status == EarningStatus.PENDING
        assert earning.case_id == case_id

        wallet = await earnings_service.get_wallet(LAWYER_A)
        assert wallet.escrow_balance == 0
        assert wallet.pending_balance == earning.net_amount
        assert await StatsRepository(session).get_completed(LAWYER_A) == 1

    async def test_client_may_confirm_first(
        self, make_funded_escrow, escrow_service, case_service
    ) -> None:
        escrow = await make_funded_escrow()

        await escrow_service.client_confirm_case_clear(escrow.case_id, CLIENT_ID)
        assert (await case_service.get_case(escrow.case_id)).status == CaseStatus.IN_PROGRESS

        escrow = await escrow_service.lawyer_confirm_case_clear(escrow.case_id, LAWYER_A)
        assert escrow.status == EscrowStatus.RELEASED
        assert (await case_service.get_case(escrow.case_id)).status == CaseStatus.COMPLETED

    async def test_double_confirmation_refused(self, make_funded_escrow, escrow_service) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.lawyer_confirm_case_clear(escrow.case_id, LAWYER_A)

        with pytest.raises(ConfirmationAlreadyRecordedError):
            await escrow_service.lawyer_confirm_case_clear(escrow.case_id, LAWYER_A)

    async def test_unfunded_confirmation_refused(self, make_assigned_case, escrow_service) -> None:
        case = await make_assigned_case()
        await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)

        with pytest.raises(InvalidStateTransitionError):
            await escrow_service.client_confirm_case_clear(case.id, CLIENT_ID)

    async def test_confirmation_after_release_refused(
        self, make_funded_escrow, escrow_service
    ) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.lawyer_confirm_case_clear(escrow.case_id, LAWYER_A)
        await escrow_service.client_confirm_case_clear(escrow.case_id, CLIENT_ID)

        with pytest.raises(InvalidStateTransitionError):
            await escrow_service.client_confirm_case_clear(escrow.case_id, CLIENT_ID)

    async def test_wrong_party_refused(self, make_funded_escrow, escrow_service) -> None:
        escrow = await make_funded_escrow()

        with pytest.raises(AuthorizationError):
            await escrow_service.lawyer_confirm_case_clear(escrow.case_id, LAWYER_B)
        with pytest.raises(AuthorizationError):
            await escrow_service.client_confirm_case_clear(escrow.case_id, LAWYER_A)

    async def test_audit_trail(self, make_funded_escrow, escrow_service) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.lawyer_confirm_case_clear(escrow.case_id, LAWYER_A)
        await escrow_service.client_confirm_case_clear(escrow.case_id, CLIENT_ID)

        events = await escrow_service.get_escrow_events(escrow.case_id)

        assert [e.event_type for e in events] == [
            EventType.ESCROW_CREATED,
            EventType.ESCROW_FUNDED,
            EventType.CASE_CLEAR_CONFIRMED,
            EventType.CASE_CLEAR_CONFIRMED,
            EventType.ESCROW_RELEASED,
        ]
        assert [e.metadata_json["party"] for e in events[2:4]] == ["LAWYER", "CLIENT"]

    async def test_status_view(self, make_funded_escrow, escrow_service) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.client_confirm_case_clear(escrow.case_id, CLIENT_ID)

        status = await escrow_service.get_status(escrow.case_id)

        assert status["status"] == EscrowStatus.FUNDED
        assert status["client_confirmed"] is True
        assert status["lawyer_confirmed"] is False
        assert set(status["allowed_events"]) == {
            "both_parties_confirmed",
            "party_disputes",
            "admin_refunds",
        }


class TestDisputes:
    async def test_dispute_freezes_escrow(
        self, make_funded_escrow, escrow_service, case_service
    ) -> None:
        escrow = await make_funded_escrow()

        escrow = await escrow_service.raise_dispute(
            escrow.case_id, CLIENT_ID, "Work was never delivered"
        )

        assert escrow.status == EscrowStatus.DISPUTED
        assert escrow.disputed_by == CLIENT_ID
        assert (await case_service.get_case(escrow.case_id)).status == CaseStatus.DISPUTED
        with pytest.raises(InvalidStateTransitionError):
            await escrow_service.lawyer_confirm_case_clear(escrow.case_id, LAWYER_A)

    async def test_outsider_cannot_dispute(self, make_funded_escrow, escrow_service) -> None:
        escrow = await make_funded_escrow()

        with pytest.raises(AuthorizationError):
            await escrow_service.raise_dispute(escrow.case_id, LAWYER_B, "Not my case at all")

    async def test_resolve_splits_escrow(
        self, make_funded_escrow, escrow_service, case_service, earnings_service, admin
    ) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.raise_dispute(escrow.case_id, LAWYER_A, "Client stopped responding")

        escrow = await escrow_service.resolve_dispute(escrow.case_id, 40, 60, admin)

        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.release_amount == 13_500
        assert escrow.refund_amount == 9_000
        assert (await case_service.get_case(escrow.case_id)).status == CaseStatus.COMPLETED
        [earning] = await earnings_service.list_earnings(LAWYER_A)
        assert earning.amount == 13_500
        assert (await earnings_service.get_wallet(LAWYER_A)).escrow_balance == 0

    async def test_full_refund_split_records_no_earning(
        self, make_funded_escrow, escrow_service, earnings_service, admin
    ) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.raise_dispute(escrow.case_id, CLIENT_ID, "Lawyer missed the hearing")

        escrow = await escrow_service.resolve_dispute(escrow.case_id, 100, 0, admin)

        assert escrow.release_amount == 0
        assert escrow.refund_amount == 22_500
        assert await earnings_service.list_earnings(LAWYER_A) == []

    @pytest.mark.parametrize(("client", "lawyer"), [(50, 40), (101, -1), (70, 70)])
    async def test_invalid_split(
        self, make_funded_escrow, escrow_service, admin, client, lawyer
    ) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.raise_dispute(escrow.case_id, CLIENT_ID, "Disagreement on scope")

        with pytest.raises(InvalidDisputeSplitError):
            await escrow_service.resolve_dispute(escrow.case_id, client, lawyer, admin)

    async def test_resolve_requires_admin(self, make_funded_escrow, escrow_service) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.raise_dispute(escrow.case_id, CLIENT_ID, "Disagreement on scope")

        with pytest.raises(AuthorizationError):
            await escrow_service.resolve_dispute(
                escrow.case_id, 50, 50, Caller(user_id=CLIENT_ID, role=Role.CLIENT)
            )

    async def test_resolve_without_dispute_refused(
        self, make_funded_escrow, escrow_service, admin
    ) -> None:
        escrow = await make_funded_escrow()

        with pytest.raises(InvalidStateTransitionError):
            await escrow_service.resolve_dispute(escrow.case_id, 50, 50, admin)


class TestRefund:
    async def test_refund_cancels_case(
        self, make_funded_escrow, escrow_service, case_service, earnings_service, admin
    ) -> None:
        escrow = await make_funded_escrow()

        escrow = await escrow_service.refund_escrow(escrow.case_id, admin)

        assert escrow.status == EscrowStatus.REFUNDED
        assert escrow.refund_amount == 22_500
        assert escrow.release_amount == 0
        assert (await case_service.get_case(escrow.case_id)).status == CaseStatus.CANCELLED
        assert (await earnings_service.get_wallet(LAWYER_A)).escrow_balance == 0
        assert await earnings_service.list_earnings(LAWYER_A) == []

    async def test_refund_from_dispute(self, make_funded_escrow, escrow_service, admin) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.raise_dispute(escrow.case_id, CLIENT_ID, "Lawyer became unreachable")

        escrow = await escrow_service.refund_escrow(escrow.case_id, admin)

        assert escrow.status == EscrowStatus.REFUNDED

    async def test_released_escrow_cannot_be_refunded(
        self, make_funded_escrow, escrow_service, admin
    ) -> None:
        escrow = await make_funded_escrow()
        await escrow_service.lawyer_confirm_case_clear(escrow.case_id, LAWYER_A)
        await escrow_service.client_confirm_case_clear(escrow.case_id, CLIENT_ID)

        with pytest.raises(InvalidStateTransitionError):
            await escrow_service.refund_escrow(escrow.case_id, admin)

    async def test_unfunded_escrow_cannot_be_refunded(
        self, make_assigned_case, escrow_service, admin
    ) -> None:
        case = await make_assigned_case()
        await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)

        with pytest.raises(InvalidStateTransitionError):
            await escrow_service.refund_escrow(case.id, admin)


class TestListing:
    async def test_lists_by_party(self, make_funded_escrow, escrow_service) -> None:
        escrow = await make_funded_escrow()

        assert [e.case_id for e in await escrow_service.list_client_escrows(CLIENT_ID)] == [
            escrow.case_id
        ]
        assert [e.case_id for e in await escrow_service.list_lawyer_escrows(LAWYER_A)] == [
            escrow.case_id
        ]
        assert await escrow_service.list_lawyer_escrows(LAWYER_B) == []
