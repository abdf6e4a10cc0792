"""Tests for domain enumerations."""

from __future__ import annotations

from legal_marketplace.domain.enums import (
    ACTIVE_CONSULTATION_STATUSES,
    NOTIFIABLE_EVENTS,
    OPEN_FOR_BIDS,
    CaseStatus,
    EscrowStatus,
    EventType,
)


class TestCaseStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {
            "DRAFT", "POSTED", "MATCHING", "BIDDING", "ASSIGNED", "IN_PROGRESS",
            "CASE_CLEAR_PENDING", "COMPLETED", "DISPUTED", "CANCELLED",
        }
        assert {s.value for s in CaseStatus} == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(CaseStatus.DRAFT, str)
        assert CaseStatus.DRAFT == "DRAFT"

    def test_open_for_bids(self) -> None:
        assert OPEN_FOR_BIDS == {CaseStatus.POSTED, CaseStatus.MATCHING, CaseStatus.BIDDING}


class TestEscrowStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {"PENDING_PAYMENT", "FUNDED", "RELEASED", "REFUNDED", "DISPUTED"}
        assert {s.value for s in EscrowStatus} == expected


class TestEventType:
    def test_event_type_is_str_enum(self) -> None:
        assert isinstance(EventType.BID_ACCEPTED, str)

    def test_notifiable_events_are_known(self) -> None:
        assert NOTIFIABLE_EVENTS <= set(EventType)
        assert EventType.PAYOUT_COMPLETED in NOTIFIABLE_EVENTS

    def test_active_consultations(self) -> None:
        assert {s.value for s in ACTIVE_CONSULTATION_STATUSES} == {"PENDING", "CONFIRMED"}
