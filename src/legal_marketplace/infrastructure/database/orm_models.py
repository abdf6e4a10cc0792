"""SQLAlchemy 2.0 ORM models for the legal marketplace engine.

Tables:
    1. cases                — legal work posted by a client.
    2. bids                 — lawyers' offers on a case.
    3. escrows              — custody of a case's funds, keyed by case id.
    4. earnings             — one credited financial event per row.
    5. lawyer_wallets       — running balances, changed only by atomic deltas.
    6. payout_requests      — withdrawal requests against the wallet.
    7. lawyer_availability  — weekly schedule, blocked dates, slot sizing.
    8. consultations        — scheduled lawyer/client meetings.
    9. lawyer_stats         — completed-case counters.
   10. marketplace_events   — append-only audit log / notification outbox.

Design decisions:
    - Money is BigInteger in the currency's smallest unit.
    - User references (client_id, lawyer_id) are opaque strings issued by the
      identity provider; engine-owned rows use UUID keys.
    - Mutable rows carry a ``version`` column wired as ``version_id_col``,
      so a lost update surfaces as StaleDataError on flush.
    - Partial unique indexes are the final guard for "one pending bid per
      lawyer per case", "one accepted bid per case" and "one active booking
      per lawyer per start time".
    - Datetimes are stored and returned as timezone-aware UTC.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from legal_marketplace.domain.enums import (
    BidStatus,
    CaseStatus,
    ConsultationStatus,
    EarningStatus,
    EarningType,
    EscrowStatus,
    PayoutStatus,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always comes back as UTC.

    SQLite has no timezone support and hands back naive values; those are
    stamped as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _now() -> datetime:
    return datetime.now(UTC)


def _in_clause(*values: str) -> str:
    return ", ".join(f"'{v}'" for v in values)


def _where(clause: str) -> dict[str, Any]:
    predicate = text(clause)
    return {"sqlite_where": predicate, "postgresql_where": predicate}


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. cases
# ---------------------------------------------------------------------------
class Case(Base):
    """A unit of legal work posted by a client."""

    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    # --- Parties ---
    client_id: Mapped[str] = mapped_column(String(128), nullable=False)
    lawyer_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        default=None,
        comment="Set when the case reaches ASSIGNED",
    )

    # --- Description ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    area_of_law: Mapped[str] = mapped_column(String(40), nullable=False)
    service_type: Mapped[str] = mapped_column(String(40), nullable=False)
    urgency: Mapped[str] = mapped_column(String(10), nullable=False, default="NORMAL")
    preferred_timeline: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # --- Financials ---
    budget_min: Mapped[int] = mapped_column(BigInteger, nullable=False)
    budget_max: Mapped[int] = mapped_column(BigInteger, nullable=False)
    agreed_fee: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
        default=None,
        comment="Accepted bid's fee, within [budget_min, budget_max]",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CaseStatus.DRAFT.value,
        comment="Current lifecycle state (guarded by CaseStateMachine)",
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("budget_min > 0 AND budget_min <= budget_max", name="ck_case_budget"),
        Index("idx_case_client", "client_id"),
        Index("idx_case_lawyer", "lawyer_id"),
        Index("idx_case_status", "status"),
        Index("idx_case_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Case id={self.id} number={self.case_number} status={self.status}>"


# ---------------------------------------------------------------------------
# 2. bids
# ---------------------------------------------------------------------------
class Bid(Base):
    """A lawyer's offer on a case."""

    __tablename__ = "bids"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    lawyer_id: Mapped[str] = mapped_column(String(128), nullable=False)

    proposed_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_type: Mapped[str] = mapped_column(String(10), nullable=False)
    estimated_timeline: Mapped[str] = mapped_column(String(100), nullable=False)
    proposal_text: Mapped[str] = mapped_column(Text, nullable=False)
    rejection_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BidStatus.PENDING.value
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("proposed_fee > 0", name="ck_bid_positive_fee"),
        Index(
            "uq_bid_one_pending_per_lawyer",
            "case_id",
            "lawyer_id",
            unique=True,
            **_where(f"status = '{BidStatus.PENDING}'"),
        ),
        Index(
            "uq_bid_one_accepted_per_case",
            "case_id",
            unique=True,
            **_where(f"status = '{BidStatus.ACCEPTED}'"),
        ),
        Index("idx_bid_lawyer", "lawyer_id"),
        Index("idx_bid_case_created", "case_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Bid id={self.id} case={self.case_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. escrows
# ---------------------------------------------------------------------------
class Escrow(Base):
    """Custody record for a case's funds. One per case, keyed by the case id."""

    __tablename__ = "escrows"

    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="RESTRICT"), primary_key=True
    )
    client_id: Mapped[str] = mapped_column(String(128), nullable=False)
    lawyer_id: Mapped[str] = mapped_column(String(128), nullable=False)

    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    escrow_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EscrowStatus.PENDING_PAYMENT.value,
        comment="Current custody state (guarded by EscrowStateMachine)",
    )

    # --- Funding ---
    transaction_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True, comment="External payment reference"
    )
    funded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Dual confirmation ---
    client_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    client_confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    lawyer_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lawyer_confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Outcome ---
    release_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    refund_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Dispute ---
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    disputed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    dispute_client_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    dispute_lawyer_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("total_amount > 0", name="ck_escrow_positive_total"),
        CheckConstraint(
            "status <> 'RELEASED' OR (client_confirmed AND lawyer_confirmed) "
            "OR dispute_lawyer_percent IS NOT NULL",
            name="ck_escrow_release_confirmed",
        ),
        Index("idx_escrow_client", "client_id"),
        Index("idx_escrow_lawyer", "lawyer_id"),
    )

    def __repr__(self) -> str:
        return f"<Escrow case={self.case_id} status={self.status} amount={self.escrow_amount}>"


# ---------------------------------------------------------------------------
# 4. earnings
# ---------------------------------------------------------------------------
class Earning(Base):
    """One financial event credited to a lawyer."""

    __tablename__ = "earnings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lawyer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    case_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    consultation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    earning_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(String(300), nullable=False)
    client_name: Mapped[str | None] = mapped_column(String(120), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EarningStatus.PENDING.value
    )
    hold_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    available_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, comment="created_at + hold period, never recomputed"
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("net_amount = amount - platform_fee", name="ck_earning_net"),
        Index("idx_earning_lawyer_created", "lawyer_id", "created_at"),
        Index("idx_earning_status_available", "status", "available_at"),
    )

    @property
    def signed_net(self) -> int:
        """Effect on the lawyer's balance; refund deductions count against it."""
        if self.earning_type == EarningType.REFUND_DEDUCTION:
            return -self.net_amount
        return self.net_amount

    def __repr__(self) -> str:
        return f"<Earning id={self.id} lawyer={self.lawyer_id} net={self.net_amount} {self.status}>"


# ---------------------------------------------------------------------------
# 5. lawyer_wallets
# ---------------------------------------------------------------------------
class LawyerWallet(Base):
    """Per-lawyer running balances.

    Money columns are only ever changed with ``UPDATE ... SET x = x + :delta``
    from the repository layer, never assigned from Python.
    """

    __tablename__ = "lawyer_wallets"

    lawyer_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    available_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    pending_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    escrow_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_withdrawn: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __table_args__ = (
        CheckConstraint("available_balance >= 0", name="ck_wallet_available_non_negative"),
        CheckConstraint("pending_balance >= 0", name="ck_wallet_pending_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<LawyerWallet lawyer={self.lawyer_id} available={self.available_balance} "
            f"pending={self.pending_balance}>"
        )


# ---------------------------------------------------------------------------
# 6. payout_requests
# ---------------------------------------------------------------------------
class PayoutRequest(Base):
    """A lawyer's withdrawal request. The amount is held from the wallet on creation."""

    __tablename__ = "payout_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lawyer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    account_details: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        comment='Destination, e.g. {"account_name": ..., "account_number": ..., "bank_name": ...}',
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayoutStatus.PENDING.value
    )
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payout_positive_amount"),
        Index("idx_payout_lawyer_created", "lawyer_id", "created_at"),
        Index("idx_payout_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<PayoutRequest id={self.id} lawyer={self.lawyer_id} {self.amount} {self.status}>"


# ---------------------------------------------------------------------------
# 7. lawyer_availability
# ---------------------------------------------------------------------------
class LawyerAvailability(Base):
    """Weekly recurring schedule for one lawyer.

    ``weekly_schedule`` maps weekday ("0" = Monday .. "6" = Sunday) to
    ``{"enabled": bool, "slots": [{"start_time": "HH:MM", "end_time": "HH:MM"}]}``.
    """

    __tablename__ = "lawyer_availability"

    lawyer_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    weekly_schedule: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    blocked_dates: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list, comment="ISO YYYY-MM-DD strings"
    )
    consultation_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    buffer_time: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __table_args__ = (
        CheckConstraint("consultation_duration > 0", name="ck_availability_duration"),
        CheckConstraint("buffer_time >= 0", name="ck_availability_buffer"),
    )


# ---------------------------------------------------------------------------
# 8. consultations
# ---------------------------------------------------------------------------
class Consultation(Base):
    """A scheduled meeting between a lawyer and a client."""

    __tablename__ = "consultations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    lawyer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    lawyer_name: Mapped[str] = mapped_column(String(120), nullable=False)
    lawyer_avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    client_id: Mapped[str] = mapped_column(String(128), nullable=False)
    client_name: Mapped[str] = mapped_column(String(120), nullable=False)
    client_avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)

    consultation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scheduled_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    topic: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConsultationStatus.PENDING.value
    )
    meeting_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    conversation_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(10), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rescheduled_from: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("consultations.id", ondelete="SET NULL"), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("fee >= 0", name="ck_consultation_fee"),
        Index(
            "uq_consultation_active_slot",
            "lawyer_id",
            "scheduled_date",
            unique=True,
            **_where(
                "status IN ("
                + _in_clause(ConsultationStatus.PENDING, ConsultationStatus.CONFIRMED)
                + ")"
            ),
        ),
        Index("idx_consultation_lawyer_date", "lawyer_id", "scheduled_date"),
        Index("idx_consultation_client_date", "client_id", "scheduled_date"),
    )

    def __repr__(self) -> str:
        return f"<Consultation id={self.id} lawyer={self.lawyer_id} at={self.scheduled_date}>"


# ---------------------------------------------------------------------------
# 9. lawyer_stats
# ---------------------------------------------------------------------------
class LawyerStats(Base):
    __tablename__ = "lawyer_stats"

    lawyer_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_cases_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# 10. marketplace_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class MarketplaceEvent(Base):
    """Immutable audit record of every state transition.

    This table is APPEND-ONLY. It is also the outbox the notification
    collaborator polls for transitions it should fan out.
    """

    __tablename__ = "marketplace_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    actor: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        default="SYSTEM",
        comment="User id that triggered this event, or SYSTEM",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata", JSONType, nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now)

    __table_args__ = (
        Index("idx_event_entity", "entity_type", "entity_id"),
        Index("idx_event_type", "event_type"),
        Index("idx_event_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<MarketplaceEvent {self.entity_type}:{self.entity_id} {self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )
