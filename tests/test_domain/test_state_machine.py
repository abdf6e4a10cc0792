"""Tests for the lifecycle state machine guards.

These tests verify that:
    1. The documented happy paths are allowed.
    2. Illegal transitions raise TransitionNotAllowed and leave the status alone.
    3. Terminal states expose no events.
    4. The validate_transition / guard_target helpers work.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from legal_marketplace.domain.exceptions import InvalidStateTransitionError
from legal_marketplace.domain.state_machine import (
    BidStateMachine,
    CaseStateMachine,
    ConsultationStateMachine,
    EarningStateMachine,
    EscrowStateMachine,
    PayoutStateMachine,
    guard_target,
    validate_transition,
)


class TestCaseHappyPath:
    """DRAFT -> COMPLETED through bidding, assignment and clearance."""

    def test_full_lifecycle(self) -> None:
        sm = CaseStateMachine()
        assert sm.status == "DRAFT"

        sm.client_posts()
        assert sm.status == "POSTED"

        sm.bidding_opened()
        assert sm.status == "BIDDING"

        sm.lawyer_assigned()
        assert sm.status == "ASSIGNED"

        sm.escrow_funded()
        assert sm.status == "IN_PROGRESS"

        sm.clearance_requested()
        assert sm.status == "CASE_CLEAR_PENDING"

        sm.case_cleared()
        assert sm.status == "COMPLETED"
        assert sm.is_final

    def test_matching_is_optional(self) -> None:
        sm = CaseStateMachine("POSTED")
        sm.matching_started()
        sm.bidding_opened()
        assert sm.status == "BIDDING"

    def test_disputed_case_can_complete(self) -> None:
        assert validate_transition(CaseStateMachine, "DISPUTED", "case_cleared") == "COMPLETED"

    def test_posted_case_cannot_skip_to_assignment(self) -> None:
        sm = CaseStateMachine("POSTED")
        with pytest.raises(TransitionNotAllowed):
            sm.lawyer_assigned()
        assert sm.status == "POSTED"


class TestCaseEscapeHatches:
    @pytest.mark.parametrize(
        "status",
        ["DRAFT", "POSTED", "MATCHING", "BIDDING", "ASSIGNED", "IN_PROGRESS", "CASE_CLEAR_PENDING"],
    )
    def test_cancel_and_dispute_from_open_states(self, status: str) -> None:
        assert validate_transition(CaseStateMachine, status, "case_cancelled") == "CANCELLED"
        assert validate_transition(CaseStateMachine, status, "dispute_raised") == "DISPUTED"

    def test_disputed_case_can_be_cancelled_but_not_redisputed(self) -> None:
        assert validate_transition(CaseStateMachine, "DISPUTED", "case_cancelled") == "CANCELLED"
        with pytest.raises(TransitionNotAllowed):
            CaseStateMachine("DISPUTED").dispute_raised()

    @pytest.mark.parametrize("status", ["COMPLETED", "CANCELLED"])
    def test_terminal_states_have_no_events(self, status: str) -> None:
        sm = CaseStateMachine(status)
        assert sm.is_final
        assert sm.get_allowed_events() == []


class TestBidMachine:
    @pytest.mark.parametrize(
        ("event", "expected"),
        [("bid_accepted", "ACCEPTED"), ("bid_rejected", "REJECTED"), ("bid_withdrawn", "WITHDRAWN")],
    )
    def test_pending_resolves_once(self, event: str, expected: str) -> None:
        assert validate_transition(BidStateMachine, "PENDING", event) == expected
        assert BidStateMachine(expected).is_final

    def test_accepted_bid_cannot_be_rejected(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            BidStateMachine("ACCEPTED").bid_rejected()


class TestEscrowMachine:
    def test_release_path(self) -> None:
        sm = EscrowStateMachine()
        assert sm.status == "PENDING_PAYMENT"
        sm.payment_confirmed()
        sm.both_parties_confirmed()
        assert sm.status == "RELEASED"

    def test_unfunded_escrow_cannot_release(self) -> None:
        sm = EscrowStateMachine("PENDING_PAYMENT")
        with pytest.raises(TransitionNotAllowed):
            sm.both_parties_confirmed()
        assert sm.status == "PENDING_PAYMENT"

    def test_dispute_then_resolve(self) -> None:
        sm = EscrowStateMachine("FUNDED")
        sm.party_disputes()
        assert sm.status == "DISPUTED"
        sm.dispute_resolved()
        assert sm.status == "RELEASED"

    def test_refund_allowed_from_funded_and_disputed(self) -> None:
        assert validate_transition(EscrowStateMachine, "FUNDED", "admin_refunds") == "REFUNDED"
        assert validate_transition(EscrowStateMachine, "DISPUTED", "admin_refunds") == "REFUNDED"

    def test_funded_allowed_events(self) -> None:
        allowed = EscrowStateMachine("FUNDED").get_allowed_events()
        assert set(allowed) == {"both_parties_confirmed", "party_disputes", "admin_refunds"}

    @pytest.mark.parametrize("status", ["RELEASED", "REFUNDED"])
    def test_final_states(self, status: str) -> None:
        assert EscrowStateMachine(status).get_allowed_events() == []


class TestEarningAndPayoutMachines:
    def test_earning_hold_round_trip(self) -> None:
        sm = EarningStateMachine("PENDING")
        sm.hold_placed()
        sm.hold_lifted()
        sm.hold_elapsed()
        assert sm.status == "AVAILABLE"
        sm.funds_withdrawn()
        assert sm.status == "WITHDRAWN"

    def test_held_earning_cannot_be_released(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            EarningStateMachine("ON_HOLD").hold_elapsed()

    def test_only_pending_payout_can_be_cancelled(self) -> None:
        assert validate_transition(PayoutStateMachine, "PENDING", "lawyer_cancels") == "CANCELLED"
        with pytest.raises(TransitionNotAllowed):
            PayoutStateMachine("PROCESSING").lawyer_cancels()

    def test_processing_payout_completes_or_fails(self) -> None:
        assert validate_transition(PayoutStateMachine, "PROCESSING", "payout_completed") == "COMPLETED"
        assert validate_transition(PayoutStateMachine, "PROCESSING", "payout_failed") == "FAILED"


class TestConsultationMachine:
    def test_confirm_then_complete(self) -> None:
        sm = ConsultationStateMachine()
        sm.lawyer_confirms()
        sm.session_completed()
        assert sm.status == "COMPLETED"

    def test_no_show_requires_confirmation(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            ConsultationStateMachine("PENDING").client_no_show()

    @pytest.mark.parametrize("status", ["PENDING", "CONFIRMED"])
    def test_cancel_and_reschedule_from_active(self, status: str) -> None:
        assert validate_transition(ConsultationStateMachine, status, "party_cancels") == "CANCELLED"
        assert validate_transition(ConsultationStateMachine, status, "rescheduled") == "RESCHEDULED"


class TestHelpers:
    def test_validate_transition(self) -> None:
        result = validate_transition(EscrowStateMachine, "FUNDED", "party_disputes")
        assert result == "DISPUTED"

    def test_validate_transition_blocked(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            validate_transition(EscrowStateMachine, "PENDING_PAYMENT", "both_parties_confirmed")

    def test_invalid_event_name(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            validate_transition(EscrowStateMachine, "FUNDED", "nonexistent_event")

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            EscrowStateMachine("INVALID_STATUS")

    def test_guard_target_returns_event(self) -> None:
        assert guard_target(CaseStateMachine, "BIDDING", "ASSIGNED") == "lawyer_assigned"

    def test_guard_target_rejects_skip(self) -> None:
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            guard_target(CaseStateMachine, "POSTED", "IN_PROGRESS")
        assert exc_info.value.code == "INVALID_STATE_TRANSITION"
