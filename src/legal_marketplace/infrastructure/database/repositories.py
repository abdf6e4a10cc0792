"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Locked reads (``for_update=True``) issue ``SELECT ... FOR UPDATE`` and
refresh any instance already in the identity map. SQLite ignores the lock
but serialises writers; there a lost race shows up through the version
column as ConcurrentUpdateError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm.exc import StaleDataError

from legal_marketplace.domain.enums import (
    ACTIVE_CONSULTATION_STATUSES,
    OPEN_FOR_BIDS,
    BidStatus,
    EarningStatus,
    EarningType,
    PayoutStatus,
)
from legal_marketplace.domain.exceptions import ConcurrentUpdateError
from legal_marketplace.infrastructure.database.orm_models import (
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

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from datetime import datetime

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

    from legal_marketplace.domain.enums import (
        ConsultationStatus,
        EntityType,
        EventType,
    )

_T = TypeVar("_T")


class _Repository:
    entity_name = "Entity"

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, instance: _T) -> _T:
        self._session.add(instance)
        await self.flush()
        return instance

    async def flush(self) -> None:
        """Flush pending changes, surfacing a lost version race as a domain error."""
        try:
            await self._session.flush()
        except StaleDataError as exc:
            raise ConcurrentUpdateError(self.entity_name) from exc

    def _insert(self, model: type) -> Any:
        """INSERT supporting ``on_conflict_do_nothing`` on PostgreSQL and SQLite."""
        if self._session.get_bind().dialect.name == "postgresql":
            return postgresql.insert(model)
        return sqlite.insert(model)

    async def _one(self, stmt: Select[Any], for_update: bool) -> Any:
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def _all(self, stmt: Select[Any]) -> list[Any]:
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class CaseRepository(_Repository):
    """Data access for cases."""

    entity_name = "Case"

    async def get_by_id(self, case_id: uuid.UUID, for_update: bool = False) -> Case | None:
        return await self._one(select(Case).where(Case.id == case_id), for_update)

    async def case_number_exists(self, case_number: str) -> bool:
        result = await self._session.execute(
            select(func.count()).select_from(Case).where(Case.case_number == case_number)
        )
        return result.scalar_one() > 0

    async def list_by_client(self, client_id: str) -> list[Case]:
        """All cases posted by a client, newest first."""
        return await self._all(
            select(Case).where(Case.client_id == client_id).order_by(Case.created_at.desc())
        )

    async def list_by_lawyer(self, lawyer_id: str) -> list[Case]:
        return await self._all(
            select(Case).where(Case.lawyer_id == lawyer_id).order_by(Case.created_at.desc())
        )

    async def list_open(self, area_of_law: str | None = None) -> list[Case]:
        """Cases still accepting bids, optionally filtered by area of law."""
        stmt = select(Case).where(Case.status.in_([s.value for s in OPEN_FOR_BIDS]))
        if area_of_law is not None:
            stmt = stmt.where(Case.area_of_law == area_of_law)
        return await self._all(stmt.order_by(Case.created_at.desc()))


class BidRepository(_Repository):
    """Data access for bids."""

    entity_name = "Bid"

    async def get_by_id(self, bid_id: uuid.UUID, for_update: bool = False) -> Bid | None:
        return await self._one(select(Bid).where(Bid.id == bid_id), for_update)

    async def get_pending_for_lawyer(self, case_id: uuid.UUID, lawyer_id: str) -> Bid | None:
        return await self._one(
            select(Bid).where(
                Bid.case_id == case_id,
                Bid.lawyer_id == lawyer_id,
                Bid.status == BidStatus.PENDING.value,
            ),
            for_update=False,
        )

    async def get_accepted_for_case(self, case_id: uuid.UUID) -> Bid | None:
        return await self._one(
            select(Bid).where(Bid.case_id == case_id, Bid.status == BidStatus.ACCEPTED.value),
            for_update=False,
        )

    async def list_pending_for_case(
        self,
        case_id: uuid.UUID,
        exclude_id: uuid.UUID | None = None,
    ) -> list[Bid]:
        """PENDING bids on a case, locked for the rejection sweep."""
        stmt = select(Bid).where(Bid.case_id == case_id, Bid.status == BidStatus.PENDING.value)
        if exclude_id is not None:
            stmt = stmt.where(Bid.id != exclude_id)
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self._all(stmt.order_by(Bid.created_at.asc()))

    async def list_for_case(self, case_id: uuid.UUID, status: BidStatus | None = None) -> list[Bid]:
        """Bids on a case, newest first."""
        stmt = select(Bid).where(Bid.case_id == case_id)
        if status is not None:
            stmt = stmt.where(Bid.status == status.value)
        return await self._all(stmt.order_by(Bid.created_at.desc()))

    async def list_by_lawyer(self, lawyer_id: str) -> list[Bid]:
        return await self._all(
            select(Bid).where(Bid.lawyer_id == lawyer_id).order_by(Bid.created_at.desc())
        )

    async def count_pending(self, case_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(Bid)
            .where(Bid.case_id == case_id, Bid.status == BidStatus.PENDING.value)
        )
        return result.scalar_one()


class EscrowRepository(_Repository):
    """Data access for escrow records."""

    entity_name = "Escrow"

    async def get_by_case(self, case_id: uuid.UUID, for_update: bool = False) -> Escrow | None:
        return await self._one(select(Escrow).where(Escrow.case_id == case_id), for_update)

    async def list_by_client(self, client_id: str) -> list[Escrow]:
        return await self._all(
            select(Escrow).where(Escrow.client_id == client_id).order_by(Escrow.created_at.desc())
        )

    async def list_by_lawyer(self, lawyer_id: str) -> list[Escrow]:
        return await self._all(
            select(Escrow).where(Escrow.lawyer_id == lawyer_id).order_by(Escrow.created_at.desc())
        )


class EarningRepository(_Repository):
    """Data access for the earnings ledger."""

    entity_name = "Earning"

    async def get_by_id(self, earning_id: uuid.UUID, for_update: bool = False) -> Earning | None:
        return await self._one(select(Earning).where(Earning.id == earning_id), for_update)

    async def list_by_lawyer(
        self,
        lawyer_id: str,
        status: EarningStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Earning]:
        """A lawyer's earnings, newest first, optionally windowed on created_at."""
        stmt = select(Earning).where(Earning.lawyer_id == lawyer_id)
        if status is not None:
            stmt = stmt.where(Earning.status == status.value)
        if start is not None:
            stmt = stmt.where(Earning.created_at >= start)
        if end is not None:
            stmt = stmt.where(Earning.created_at <= end)
        return await self._all(stmt.order_by(Earning.created_at.desc()))

    async def list_due(self, now: datetime, limit: int | None = None) -> list[Earning]:
        """PENDING earnings whose hold period has elapsed, oldest first."""
        stmt = (
            select(Earning)
            .where(Earning.status == EarningStatus.PENDING.value, Earning.available_at <= now)
            .order_by(Earning.available_at.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._all(stmt)

    async def list_available_oldest_first(self, lawyer_id: str) -> list[Earning]:
        """AVAILABLE credits a payout can consume; deductions are settled on entry."""
        return await self._all(
            select(Earning)
            .where(
                Earning.lawyer_id == lawyer_id,
                Earning.status == EarningStatus.AVAILABLE.value,
                Earning.earning_type != EarningType.REFUND_DEDUCTION.value,
            )
            .order_by(Earning.created_at.asc())
            .with_for_update()
        )

    async def sum_withdrawn(self, lawyer_id: str) -> int:
        result = await self._session.execute(
            select(func.coalesce(func.sum(Earning.net_amount), 0)).where(
                Earning.lawyer_id == lawyer_id,
                Earning.status == EarningStatus.WITHDRAWN.value,
            )
        )
        return int(result.scalar_one())


class WalletRepository(_Repository):
    """Data access for lawyer wallets.

    Balances are never assigned from Python: every change is a single
    ``UPDATE lawyer_wallets SET col = col + :delta`` statement.
    """

    entity_name = "Wallet"

    async def get(self, lawyer_id: str) -> LawyerWallet | None:
        """Fetch a wallet, bypassing any stale copy in the identity map."""
        result = await self._session.execute(
            select(LawyerWallet)
            .where(LawyerWallet.lawyer_id == lawyer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def ensure(self, lawyer_id: str, now: datetime) -> None:
        """Create an all-zero wallet for the lawyer unless another request already did."""
        await self._session.execute(
            self._insert(LawyerWallet)
            .values(lawyer_id=lawyer_id, created_at=now, last_updated=now)
            .on_conflict_do_nothing(index_elements=[LawyerWallet.lawyer_id])
        )

    async def apply_delta(self, lawyer_id: str, now: datetime, **deltas: int) -> None:
        """Atomically add each delta to its column, e.g. ``pending_balance=8500``."""
        values: dict[str, Any] = {
            column: getattr(LawyerWallet, column) + delta for column, delta in deltas.items()
        }
        values["last_updated"] = now
        await self._session.execute(
            update(LawyerWallet)
            .where(LawyerWallet.lawyer_id == lawyer_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )

    async def debit_available(self, lawyer_id: str, amount: int, now: datetime) -> bool:
        """Deduct ``amount`` from available_balance only if it is covered.

        Returns False (and changes nothing) when the balance is short.
        """
        result = await self._session.execute(
            update(LawyerWallet)
            .where(
                LawyerWallet.lawyer_id == lawyer_id,
                LawyerWallet.available_balance >= amount,
            )
            .values(
                available_balance=LawyerWallet.available_balance - amount,
                last_updated=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class PayoutRepository(_Repository):
    """Data access for payout requests."""

    entity_name = "PayoutRequest"

    async def get_by_id(
        self, payout_id: uuid.UUID, for_update: bool = False
    ) -> PayoutRequest | None:
        return await self._one(select(PayoutRequest).where(PayoutRequest.id == payout_id), for_update)

    async def list_by_lawyer(self, lawyer_id: str) -> list[PayoutRequest]:
        return await self._all(
            select(PayoutRequest)
            .where(PayoutRequest.lawyer_id == lawyer_id)
            .order_by(PayoutRequest.created_at.desc())
        )

    async def sum_held(self, lawyer_id: str) -> int:
        """Total of payouts still holding wallet funds (PENDING or PROCESSING)."""
        result = await self._session.execute(
            select(func.coalesce(func.sum(PayoutRequest.amount), 0)).where(
                PayoutRequest.lawyer_id == lawyer_id,
                PayoutRequest.status.in_(
                    [PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value]
                ),
            )
        )
        return int(result.scalar_one())

    async def sum_completed(self, lawyer_id: str) -> int:
        result = await self._session.execute(
            select(func.coalesce(func.sum(PayoutRequest.amount), 0)).where(
                PayoutRequest.lawyer_id == lawyer_id,
                PayoutRequest.status == PayoutStatus.COMPLETED.value,
            )
        )
        return int(result.scalar_one())


class AvailabilityRepository(_Repository):
    entity_name = "Availability"

    async def get(self, lawyer_id: str, for_update: bool = False) -> LawyerAvailability | None:
        return await self._one(
            select(LawyerAvailability).where(LawyerAvailability.lawyer_id == lawyer_id),
            for_update,
        )


class ConsultationRepository(_Repository):
    """Data access for consultations."""

    entity_name = "Consultation"

    async def get_by_id(
        self, consultation_id: uuid.UUID, for_update: bool = False
    ) -> Consultation | None:
        return await self._one(
            select(Consultation).where(Consultation.id == consultation_id), for_update
        )

    async def list_active_between(
        self,
        lawyer_id: str,
        start: datetime,
        end: datetime,
        exclude_id: uuid.UUID | None = None,
    ) -> list[Consultation]:
        """PENDING/CONFIRMED consultations for a lawyer starting in [start, end)."""
        stmt = select(Consultation).where(
            Consultation.lawyer_id == lawyer_id,
            Consultation.scheduled_date >= start,
            Consultation.scheduled_date < end,
            Consultation.status.in_([s.value for s in ACTIVE_CONSULTATION_STATUSES]),
        )
        if exclude_id is not None:
            stmt = stmt.where(Consultation.id != exclude_id)
        return await self._all(stmt.order_by(Consultation.scheduled_date.asc()))

    async def list_by_lawyer(
        self,
        lawyer_id: str,
        statuses: Iterable[ConsultationStatus] | None = None,
    ) -> list[Consultation]:
        stmt = select(Consultation).where(Consultation.lawyer_id == lawyer_id)
        if statuses is not None:
            stmt = stmt.where(Consultation.status.in_([s.value for s in statuses]))
        return await self._all(stmt.order_by(Consultation.scheduled_date.desc()))

    async def list_by_client(self, client_id: str) -> list[Consultation]:
        return await self._all(
            select(Consultation)
            .where(Consultation.client_id == client_id)
            .order_by(Consultation.scheduled_date.desc())
        )

    async def list_upcoming(self, user_id: str, now: datetime) -> list[Consultation]:
        """Active consultations in the future where the user is either party, soonest first."""
        return await self._all(
            select(Consultation)
            .where(
                (Consultation.lawyer_id == user_id) | (Consultation.client_id == user_id),
                Consultation.scheduled_date >= now,
                Consultation.status.in_([s.value for s in ACTIVE_CONSULTATION_STATUSES]),
            )
            .order_by(Consultation.scheduled_date.asc())
        )


class StatsRepository(_Repository):
    entity_name = "LawyerStats"

    async def increment_completed(self, lawyer_id: str) -> None:
        """Atomically bump a lawyer's completed-case counter, creating the row if needed."""
        await self._session.execute(
            self._insert(LawyerStats)
            .values(lawyer_id=lawyer_id, total_cases_completed=0)
            .on_conflict_do_nothing(index_elements=[LawyerStats.lawyer_id])
        )
        await self._session.execute(
            update(LawyerStats)
            .where(LawyerStats.lawyer_id == lawyer_id)
            .values(total_cases_completed=LawyerStats.total_cases_completed + 1)
            .execution_options(synchronize_session=False)
        )

    async def get_completed(self, lawyer_id: str) -> int:
        result = await self._session.execute(
            select(LawyerStats.total_cases_completed).where(LawyerStats.lawyer_id == lawyer_id)
        )
        return result.scalar_one_or_none() or 0


class EventRepository(_Repository):
    """Data access for the append-only audit event log."""

    entity_name = "MarketplaceEvent"

    async def record(
        self,
        entity_type: EntityType,
        entity_id: uuid.UUID | str,
        event_type: EventType,
        old_status: str | None,
        new_status: str | None,
        actor: str,
        at: datetime,
        metadata: dict | None = None,
    ) -> MarketplaceEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = MarketplaceEvent(
            entity_type=entity_type.value,
            entity_id=str(entity_id),
            event_type=event_type.value,
            old_status=str(old_status) if old_status is not None else None,
            new_status=str(new_status) if new_status is not None else None,
            actor=actor,
            metadata_json=metadata,
            created_at=at,
        )
        return await self.add(evt)

    async def get_by_entity(
        self, entity_type: EntityType, entity_id: uuid.UUID | str
    ) -> list[MarketplaceEvent]:
        """Fetch all events for an entity in chronological order."""
        return await self._all(
            select(MarketplaceEvent)
            .where(
                MarketplaceEvent.entity_type == entity_type.value,
                MarketplaceEvent.entity_id == str(entity_id),
            )
            .order_by(MarketplaceEvent.created_at.asc())
        )

    async def get_since(
        self,
        after: datetime,
        event_types: Iterable[EventType] | None = None,
        limit: int = 100,
    ) -> list[MarketplaceEvent]:
        """Events recorded strictly after ``after``, oldest first."""
        stmt = select(MarketplaceEvent).where(MarketplaceEvent.created_at > after)
        if event_types is not None:
            stmt = stmt.where(MarketplaceEvent.event_type.in_([e.value for e in event_types]))
        return await self._all(stmt.order_by(MarketplaceEvent.created_at.asc()).limit(limit))
