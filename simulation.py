#!/usr/bin/env python3
"""Legal Marketplace — End-to-End Simulation.

Simulates three scenarios with ClientBot, LawyerBot and AdminBot actors:

    Scenario 1: Happy Path
        - Client posts a case, two lawyers bid, the client accepts one
        - Client opens and funds escrow, both parties confirm -> RELEASED
        - Hold period elapses, lawyer withdraws part of the earning

    Scenario 2: Dispute
        - Funded case goes wrong, the client raises a dispute
        - Admin splits the escrow 40/60 between client and lawyer

    Scenario 3: Consultations
        - Lawyer publishes a weekly schedule
        - Client books 10:00; a second client asking for 10:40 is refused
        - Lawyer confirms, the client never shows up -> partial fee credited

Usage:
    # Option A: Against the configured database (PostgreSQL):
    uv run python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from legal_marketplace.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from legal_marketplace.config import get_settings  # noqa: E402
from legal_marketplace.domain.clock import utc_now  # noqa: E402
from legal_marketplace.domain.enums import (  # noqa: E402
    AreaOfLaw,
    ConsultationType,
    EntityType,
    FeeType,
    PayoutMethod,
    Role,
    ServiceType,
)
from legal_marketplace.domain.exceptions import SlotUnavailableError  # noqa: E402
from legal_marketplace.domain.identity import Caller  # noqa: E402
from legal_marketplace.services import (  # noqa: E402
    BidService,
    CaseService,
    ConsultationService,
    EarningsService,
    EscrowService,
)

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None


class SimulationClock:
    """Wall-clock time plus an offset the scenarios can push forward."""

    def __init__(self) -> None:
        self._offset = timedelta()

    def __call__(self) -> datetime:
        return utc_now() + self._offset

    def advance(self, **kwargs: float) -> None:
        self._offset += timedelta(**kwargs)


clock = SimulationClock()


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False):
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory

    if use_sqlite:
        from legal_marketplace.infrastructure.database.engine import (
            build_engine,
            create_schema,
            make_session_factory,
        )

        _sqlite_engine = build_engine("sqlite+aiosqlite:///:memory:")
        _sqlite_session_factory = make_session_factory(_sqlite_engine)
        await create_schema(_sqlite_engine)
        logger.info("database.sqlite_initialized")
    else:
        from legal_marketplace.infrastructure.database.engine import init_db

        await init_db()


async def get_session():
    """Get a fresh database session."""
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory()

    from legal_marketplace.infrastructure.database.engine import _get_session_factory

    factory = _get_session_factory()
    return factory()


async def shutdown_database():
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        from legal_marketplace.infrastructure.database.engine import close_db

        await close_db()


# ---------------------------------------------------------------------------
# Bot Actors
# ---------------------------------------------------------------------------
@dataclass
class ClientBot:
    """Simulated client who posts cases, pays escrow and books consultations."""

    user_id: str = field(default_factory=lambda: f"client-{uuid.uuid4().hex[:6]}")
    name: str = "Bilal Ahmed"

    async def post_case(self, session: Any, budget_min: int, budget_max: int) -> uuid.UUID:
        svc = CaseService(session, clock)
        case = await svc.create_case(
            client_id=self.user_id,
            title="Security deposit withheld by landlord",
            description="Landlord refuses to return a 3-month deposit after move-out.",
            area_of_law=AreaOfLaw.PROPERTY_LAW,
            service_type=ServiceType.COURT_REPRESENTATION,
            budget_min=budget_min,
            budget_max=budget_max,
        )
        await svc.post_case(case.id, self.user_id)
        await session.commit()
        logger.info("🔵 CLIENT: Case posted", case_number=case.case_number)
        return case.id

    async def accept_bid(self, session: Any, bid_id: uuid.UUID) -> None:
        await BidService(session, clock).accept_bid(bid_id, self.user_id)
        await session.commit()
        logger.info("🔵 CLIENT: Bid accepted", bid_id=str(bid_id))

    async def open_and_fund_escrow(self, session: Any, case_id: uuid.UUID, lawyer_id: str) -> None:
        svc = EscrowService(session, clock)
        escrow = await svc.create_escrow(case_id, self.user_id, lawyer_id)
        transaction_id = f"sim_txn_{uuid.uuid4().hex[:12]}"
        await svc.fund_escrow(case_id, transaction_id, actor=self.caller)
        await session.commit()
        logger.info(
            "🔵 CLIENT: Escrow funded",
            escrow_amount=escrow.escrow_amount,
            transaction_id=transaction_id,
        )

    async def confirm_case_clear(self, session: Any, case_id: uuid.UUID) -> None:
        await EscrowService(session, clock).client_confirm_case_clear(case_id, self.user_id)
        await session.commit()
        logger.info("🔵 CLIENT: Case clear confirmed", case_id=str(case_id))

    async def raise_dispute(self, session: Any, case_id: uuid.UUID, reason: str) -> None:
        await EscrowService(session, clock).raise_dispute(case_id, self.user_id, reason)
        await session.commit()
        logger.info("🔵 CLIENT: Dispute raised", case_id=str(case_id))

    async def book(self, session: Any, lawyer: LawyerBot, starts_at: datetime, fee: int):
        consultation = await ConsultationService(session, clock).book_consultation(
            lawyer_id=lawyer.user_id,
            lawyer_name=lawyer.name,
            client_id=self.user_id,
            client_name=self.name,
            consultation_type=ConsultationType.VIDEO,
            scheduled_date=starts_at,
            fee=fee,
            topic="Deposit recovery options",
        )
        await session.commit()
        logger.info("🔵 CLIENT: Consultation booked", starts_at=starts_at.isoformat())
        return consultation

    @property
    def caller(self) -> Caller:
        return Caller(user_id=self.user_id, role=Role.CLIENT)


@dataclass
class LawyerBot:
    """Simulated lawyer who bids, confirms work and withdraws earnings."""

    user_id: str = field(default_factory=lambda: f"lawyer-{uuid.uuid4().hex[:6]}")
    name: str = "Ayesha Khan"

    async def bid(self, session: Any, case_id: uuid.UUID, fee: int) -> uuid.UUID:
        bid = await BidService(session, clock).create_bid(
            self.user_id,
            case_id,
            fee,
            FeeType.FIXED,
            "4 weeks",
            f"{self.name} has recovered deposits in similar disputes.",
        )
        await session.commit()
        logger.info("🟢 LAWYER: Bid submitted", lawyer=self.name, fee=fee)
        return bid.id

    async def confirm_case_clear(self, session: Any, case_id: uuid.UUID) -> None:
        await EscrowService(session, clock).lawyer_confirm_case_clear(case_id, self.user_id)
        await session.commit()
        logger.info("🟢 LAWYER: Case clear confirmed", case_id=str(case_id))

    async def publish_schedule(self, session: Any) -> None:
        windows = [
            {"start_time": "10:00", "end_time": "10:30"},
            {"start_time": "10:40", "end_time": "11:30"},
        ]
        await ConsultationService(session, clock).set_availability(
            self.user_id,
            {str(day): {"enabled": True, "slots": windows} for day in range(5)},
            consultation_duration=30,
            buffer_time=15,
        )
        await session.commit()
        logger.info("🟢 LAWYER: Schedule published", weekdays="Mon-Fri")

    async def request_payout(self, session: Any, amount: int):
        payout = await EarningsService(session, clock).request_payout(
            self.user_id,
            amount,
            PayoutMethod.BANK_TRANSFER,
            {"account_name": self.name, "account_number": "PK36SCBL0000001123456702"},
        )
        await session.commit()
        logger.info("🟢 LAWYER: Payout requested", amount=amount)
        return payout


@dataclass
class AdminBot:
    user_id: str = "admin-sim"

    @property
    def caller(self) -> Caller:
        return Caller(user_id=self.user_id, role=Role.ADMIN)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_wallet(session: Any, lawyer_id: str) -> None:
    wallet = await EarningsService(session, clock).get_wallet(lawyer_id)
    print(
        f"  💼 Wallet {lawyer_id}: pending={wallet.pending_balance} "
        f"available={wallet.available_balance} escrow={wallet.escrow_balance} "
        f"withdrawn={wallet.total_withdrawn}"
    )


async def print_audit_trail(session: Any, case_id: uuid.UUID) -> None:
    """Print the case and escrow audit trail."""
    svc = EscrowService(session, clock)
    events = await svc.get_events(EntityType.CASE, case_id) + await svc.get_escrow_events(case_id)
    events.sort(key=lambda e: e.created_at)
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "-"
        print(f"    {i}. [{evt.event_type}] {old} -> {evt.new_status} (by {evt.actor})")
    print()


def next_weekday_at(hour: int, minute: int) -> datetime:
    """Next Monday-to-Friday day after tomorrow, at the given schedule-local time."""
    zone = get_settings().schedule_zone
    day = (clock() + timedelta(days=2)).astimezone(zone).date()
    while day.weekday() > 4:
        day += timedelta(days=1)
    return datetime.combine(day, time(hour, minute), tzinfo=zone)


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    """Two bids, one accepted, escrow released and partly withdrawn."""
    banner("SCENARIO 1: Happy Path — Bid, Escrow, Release, Payout")

    client = ClientBot()
    lawyer_a = LawyerBot(name="Ayesha Khan")
    lawyer_b = LawyerBot(name="Usman Tariq")
    admin = AdminBot()

    session = await get_session()
    async with session:
        section("Step 1: Client posts a case, two lawyers bid")
        case_id = await client.post_case(session, budget_min=30_000, budget_max=60_000)
        bid_a = await lawyer_a.bid(session, case_id, 45_000)
        await lawyer_b.bid(session, case_id, 50_000)

        section("Step 2: Client accepts lawyer A")
        await client.accept_bid(session, bid_a)
        case = await CaseService(session, clock).get_case(case_id)
        print(f"  Case {case.case_number}: {case.status}, agreed fee {case.agreed_fee}")

        section("Step 3: Client opens and funds escrow")
        await client.open_and_fund_escrow(session, case_id, lawyer_a.user_id)
        await print_wallet(session, lawyer_a.user_id)

        section("Step 4: Both parties confirm the case is clear")
        await lawyer_a.confirm_case_clear(session, case_id)
        await client.confirm_case_clear(session, case_id)
        await print_wallet(session, lawyer_a.user_id)

        section("Step 5: Hold period elapses, lawyer withdraws")
        clock.advance(days=get_settings().payout_hold_days + 1)
        released = await EarningsService(session, clock).release_due_earnings()
        await session.commit()
        print(f"  Released {len(released)} earning(s)")
        payout = await lawyer_a.request_payout(session, 10_000)
        await EarningsService(session, clock).process_payout(
            payout.id, f"bank_{uuid.uuid4().hex[:10]}", admin.caller
        )
        await session.commit()
        await print_wallet(session, lawyer_a.user_id)

        report = await EarningsService(session, clock).reconcile_wallet(lawyer_a.user_id)
        print(f"  🧮 Wallet reconciles with ledger: {report.balanced}")

        await print_audit_trail(session, case_id)


# ===========================================================================
# Scenario 2: Dispute
# ===========================================================================
async def scenario_2_dispute() -> None:
    """Client disputes a funded case; admin splits the escrow."""
    banner("SCENARIO 2: Dispute — Admin Splits the Escrow 40/60")

    client = ClientBot()
    lawyer = LawyerBot()
    admin = AdminBot()

    session = await get_session()
    async with session:
        section("Step 1: Setup (Post -> Bid -> Accept -> Fund)")
        case_id = await client.post_case(session, budget_min=20_000, budget_max=40_000)
        bid_id = await lawyer.bid(session, case_id, 30_000)
        await client.accept_bid(session, bid_id)
        await client.open_and_fund_escrow(session, case_id, lawyer.user_id)

        section("Step 2: Client raises a dispute")
        await client.raise_dispute(session, case_id, "Hearing was missed without notice")

        section("Step 3: Admin resolves 40% client / 60% lawyer")
        escrow = await EscrowService(session, clock).resolve_dispute(
            case_id, 40, 60, admin.caller
        )
        await session.commit()
        print(f"  ⚖️  Lawyer receives {escrow.release_amount}, client refunded {escrow.refund_amount}")
        await print_wallet(session, lawyer.user_id)

        await print_audit_trail(session, case_id)


# ===========================================================================
# Scenario 3: Consultations
# ===========================================================================
async def scenario_3_consultations() -> None:
    """Buffered slots, a refused overlapping booking and a no-show."""
    banner("SCENARIO 3: Consultations — Buffer Conflict and No-Show")

    lawyer = LawyerBot()
    first = ClientBot(name="Bilal Ahmed")
    second = ClientBot(name="Sana Malik")

    session = await get_session()
    async with session:
        section("Step 1: Lawyer publishes a schedule (30 min slots, 15 min buffer)")
        await lawyer.publish_schedule(session)
        ten = next_weekday_at(10, 0)
        svc = ConsultationService(session, clock)
        for slot in await svc.get_available_slots(lawyer.user_id, ten.date()):
            print(f"  {slot.start_time}-{slot.end_time} {'free' if slot.available else 'taken'}")

        section("Step 2: First client books 10:00")
        consultation = await first.book(session, lawyer, ten, fee=5_000)
        consultation_id = consultation.id

        section("Step 3: Second client asks for 10:40")
        try:
            await second.book(session, lawyer, next_weekday_at(10, 40), fee=5_000)
        except SlotUnavailableError as exc:
            await session.rollback()
            print(f"  🚫 Refused: {exc.message}")

        section("Step 4: Lawyer confirms, client does not show up")
        svc = ConsultationService(session, clock)
        await svc.confirm_consultation(consultation_id, lawyer.user_id, "https://meet.example/abc")
        await svc.mark_no_show(consultation_id, lawyer.user_id)
        await session.commit()
        await print_wallet(session, lawyer.user_id)


# ===========================================================================
# Main
# ===========================================================================
async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "⚖️ " * 35)
        print("  LEGAL MARKETPLACE — SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "configured database"
        print(f"  Database: {db_type}")
        print(f"  Currency: {get_settings().currency} (minor units)")
        print("⚖️ " * 35 + "\n")

        await scenario_1_happy_path()
        await scenario_2_dispute()
        await scenario_3_consultations()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    scenarios = {
        1: scenario_1_happy_path,
        2: scenario_2_dispute,
        3: scenario_3_consultations,
    }

    try:
        if num not in scenarios:
            print(f"Unknown scenario {num}. Available: 1, 2, 3")
            return
        await scenarios[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Legal Marketplace Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of the configured database (no Docker needed).",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))
