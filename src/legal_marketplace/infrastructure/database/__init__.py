"""Database infrastructure — engine, ORM models, and repositories."""

from legal_marketplace.infrastructure.database.engine import (
    build_engine,
    close_db,
    create_schema,
    get_async_session,
    init_db,
    make_session_factory,
)
from legal_marketplace.infrastructure.database.orm_models import (
    Base,
    Bid,
    Case,
    Consultation,
    Earning,
    Escrow,
    LawyerAvailability,
    LawyerStats,
    LawyerWallet,
    MarketplaceEvent,
    PayoutRequest,
)
from legal_marketplace.infrastructure.database.repositories import (
    AvailabilityRepository,
    BidRepository,
    CaseRepository,
    ConsultationRepository,
    EarningRepository,
    EscrowRepository,
    EventRepository,
    PayoutRepository,
    StatsRepository,
    WalletRepository,
)

__all__ = [
    "Base",
    "Bid",
    "Case",
    "Consultation",
    "Earning",
    "Escrow",
    "LawyerAvailability",
    "LawyerStats",
    "LawyerWallet",
    "MarketplaceEvent",
    "PayoutRequest",
    "AvailabilityRepository",
    "BidRepository",
    "CaseRepository",
    "ConsultationRepository",
    "EarningRepository",
    "EscrowRepository",
    "EventRepository",
    "PayoutRepository",
    "StatsRepository",
    "WalletRepository",
    "build_engine",
    "close_db",
    "create_schema",
    "get_async_session",
    "init_db",
    "make_session_factory",
]
