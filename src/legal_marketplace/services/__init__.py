"""Application services — use case orchestration."""

from legal_marketplace.services.bid_service import BidService
from legal_marketplace.services.case_service import CaseService
from legal_marketplace.services.consultation_service import ConsultationService
from legal_marketplace.services.earnings_service import (
    EarningsService,
    EarningsSummary,
    WalletReconciliation,
)
from legal_marketplace.services.escrow_service import EscrowService
from legal_marketplace.services.event_service import EventService

__all__ = [
    "BidService",
    "CaseService",
    "ConsultationService",
    "EarningsService",
    "EarningsSummary",
    "EscrowService",
    "EventService",
    "WalletReconciliation",
]
