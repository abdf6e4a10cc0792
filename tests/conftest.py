"""Shared test fixtures for the legal marketplace test suite.

Provides:
    - An in-memory SQLite database with the full schema, one per test
    - A controllable clock so hold periods and booking windows are deterministic
    - Factory helpers that drive cases through the services to a given state
    - Async test support via pytest-asyncio (asyncio_mode = auto)
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from legal_marketplace.config import Settings
from legal_marketplace.domain.enums import AreaOfLaw, FeeType, Role, ServiceType
from legal_marketplace.domain.identity import Caller
from legal_marketplace.infrastructure.database.engine import (
    build_engine,
    create_schema,
    make_session_factory,
)
from legal_marketplace.infrastructure.messaging import SimulatedConversationGateway
from legal_marketplace.services import (
    BidService,
    CaseService,
    ConsultationService,
    EarningsService,
    EscrowService,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncSession

CLIENT_ID = "client-1"
LAWYER_A = "lawyer-a"
LAWYER_B = "lawyer-b"
ADMIN_ID = "admin-1"


class FakeClock:
    """Returns a fixed instant that tests move explicitly.

    Each call nudges the time forward by one millisecond so events recorded
    in one operation keep a stable order.
    """

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(milliseconds=1)
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Infrastructure Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="development",
        database_url="sqlite+aiosqlite:///:memory:",
        schedule_timezone="UTC",
    )


@pytest.fixture
def clock() -> FakeClock:
    # A Monday, so weekday "0" schedules apply on the start date.
    return FakeClock(datetime(2030, 1, 7, 8, 0, tzinfo=UTC))


@pytest.fixture
async def session() -> AsyncGenerator[AsyncSession, None]:
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_schema(engine)
    factory = make_session_factory(engine)
    async with factory() as session:
        yield session
        await session.rollback()
    await engine.dispose()


@pytest.fixture
def gateway() -> SimulatedConversationGateway:
    return SimulatedConversationGateway()


@pytest.fixture
def admin() -> Caller:
    return Caller(user_id=ADMIN_ID, role=Role.ADMIN)


# ---------------------------------------------------------------------------
# Service Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def case_service(session, clock, settings) -> CaseService:
    return CaseService(session, clock, settings)


@pytest.fixture
def bid_service(session, clock, settings) -> BidService:
    return BidService(session, clock, settings)


@pytest.fixture
def escrow_service(session, clock, settings) -> EscrowService:
    return EscrowService(session, clock, settings)


@pytest.fixture
def earnings_service(session, clock, settings) -> EarningsService:
    return EarningsService(session, clock, settings)


@pytest.fixture
def consultation_service(session, clock, settings, gateway) -> ConsultationService:
    return ConsultationService(session, clock, settings, gateway=gateway)


# ---------------------------------------------------------------------------
# Scenario Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def make_posted_case(case_service):
    async def _make(budget_min: int = 30_000, budget_max: int = 60_000, client_id: str = CLIENT_ID):
        case = await case_service.create_case(
            client_id=client_id,
            title="Tenancy dispute with landlord",
            description="Landlord is withholding the security deposit after move-out.",
            area_of_law=AreaOfLaw.PROPERTY_LAW,
            service_type=ServiceType.COURT_REPRESENTATION,
            budget_min=budget_min,
            budget_max=budget_max,
        )
        return await case_service.post_case(case.id, client_id)

    return _make


@pytest.fixture
def make_assigned_case(make_posted_case, bid_service):
    """Case with lawyer A's 45000 bid accepted."""

    async def _make(fee: int = 45_000):
        case = await make_posted_case()
        bid = await bid_service.create_bid(
            LAWYER_A, case.id, fee, FeeType.FIXED, "4 weeks", "I have handled many deposit cases."
        )
        await bid_service.accept_bid(bid.id, CLIENT_ID)
        return case

    return _make


@pytest.fixture
def make_funded_escrow(make_assigned_case, escrow_service):
    async def _make(fee: int = 45_000):
        case = await make_assigned_case(fee)
        await escrow_service.create_escrow(case.id, CLIENT_ID, LAWYER_A)
        return await escrow_service.fund_escrow(case.id, "txn-1")

    return _make
