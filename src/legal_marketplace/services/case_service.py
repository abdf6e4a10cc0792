"""Case Service — lifecycle of a posted legal case.

Cases move DRAFT -> POSTED -> (MATCHING) -> BIDDING -> ASSIGNED ->
IN_PROGRESS -> CASE_CLEAR_PENDING -> COMPLETED, with DISPUTED and CANCELLED
reachable from any open state. ``apply_status`` is the single mutation
primitive: the bid and escrow services drive cases only through it, so the
transition table and the assigned_at/completed_at stamping live in one place.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Any

from legal_marketplace.domain.enums import (
    OPEN_FOR_BIDS,
    CaseStatus,
    EntityType,
    EventType,
    Urgency,
)
from legal_marketplace.domain.exceptions import (
    AuthorizationError,
    CaseNotFoundError,
    FeeOutsideBudgetError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from legal_marketplace.domain.identity import SYSTEM_ACTOR
from legal_marketplace.domain.state_machine import (
    BidStateMachine,
    CaseStateMachine,
    guard_target,
)
from legal_marketplace.infrastructure.database.orm_models import Case
from legal_marketplace.infrastructure.database.repositories import (
    BidRepository,
    CaseRepository,
)
from legal_marketplace.logging_config import get_logger
from legal_marketplace.services.base import LifecycleService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from legal_marketplace.config import Settings
    from legal_marketplace.domain.clock import Clock
    from legal_marketplace.domain.enums import AreaOfLaw, ServiceType

logger = get_logger(__name__)

_CASE_NUMBER_ATTEMPTS = 20
_ASSIGNMENT_FIELDS = frozenset({"lawyer_id", "agreed_fee"})
_CLIENT_CANCELLABLE = frozenset(
    {CaseStatus.DRAFT, CaseStatus.POSTED, CaseStatus.MATCHING, CaseStatus.BIDDING}
)


class CaseService(LifecycleService):
    """Manages the case lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(session, clock, settings)
        self._case_repo = CaseRepository(session)
        self._bid_repo = BidRepository(session)

    # ------------------------------------------------------------------
    # Creation & posting
    # ------------------------------------------------------------------

    async def create_case(
        self,
        client_id: str,
        title: str,
        description: str,
        area_of_law: AreaOfLaw,
        service_type: ServiceType,
        budget_min: int,
        budget_max: int,
        urgency: Urgency = Urgency.NORMAL,
        preferred_timeline: str | None = None,
        location: str | None = None,
    ) -> Case:
        """Create a case in DRAFT with a fresh ``CASE-<year>-<nnnn>`` number."""
        if budget_min <= 0 or budget_min > budget_max:
            raise InvalidInputError(
                f"Budget must satisfy 0 < min <= max, got [{budget_min}, {budget_max}]",
                code="INVALID_BUDGET",
            )

        now = self._now()
        case = Case(
            case_number=await self._next_case_number(now.year),
            client_id=client_id,
            title=title,
            description=description,
            area_of_law=str(area_of_law),
            service_type=str(service_type),
            urgency=str(urgency),
            preferred_timeline=preferred_timeline,
            location=location,
            budget_min=budget_min,
            budget_max=budget_max,
            status=CaseStatus.DRAFT.value,
            created_at=now,
            updated_at=now,
        )
        case = await self._case_repo.add(case)

        await self._record(
            EntityType.CASE,
            case.id,
            EventType.CASE_CREATED,
            None,
            CaseStatus.DRAFT,
            actor=client_id,
            metadata={"case_number": case.case_number},
        )
        logger.info("case.created", case_id=str(case.id), case_number=case.case_number)
        return case

    async def post_case(self, case_id: uuid.UUID, client_id: str) -> Case:
        """Publish a draft so lawyers can see it."""
        case = await self.lock_case(case_id)
        self._require_client(case, client_id)
        return await self.apply_status(case, CaseStatus.POSTED, actor=client_id)

    # ------------------------------------------------------------------
    # Status mutation
    # ------------------------------------------------------------------

    async def update_status(
        self,
        case_id: uuid.UUID,
        new_status: CaseStatus,
        actor: str = SYSTEM_ACTOR,
        **extra: Any,
    ) -> Case:
        """Move a case to ``new_status``; ``extra`` may carry lawyer_id / agreed_fee."""
        case = await self.lock_case(case_id)
        return await self.apply_status(case, new_status, actor=actor, **extra)

    async def apply_status(
        self,
        case: Case,
        new_status: CaseStatus,
        actor: str = SYSTEM_ACTOR,
        **extra: Any,
    ) -> Case:
        """Transition an already-loaded case.

        Stamps ``assigned_at`` on ASSIGNED and ``completed_at`` on COMPLETED.
        Assignment fields are only accepted together with ASSIGNED.
        """
        unknown = set(extra) - _ASSIGNMENT_FIELDS
        if unknown:
            raise InvalidInputError(f"Unsupported case fields: {sorted(unknown)}")
        if extra and new_status != CaseStatus.ASSIGNED:
            raise InvalidInputError("lawyer_id and agreed_fee can only be set on assignment")

        event_name = guard_target(CaseStateMachine, case.status, new_status)
        old_status, _ = self._fire(case, CaseStateMachine, event_name)

        for field, value in extra.items():
            setattr(case, field, value)
        if new_status == CaseStatus.ASSIGNED:
            case.assigned_at = case.updated_at
        elif new_status == CaseStatus.COMPLETED:
            case.completed_at = case.updated_at
        await self._case_repo.flush()

        event_type = (
            EventType.LAWYER_ASSIGNED
            if new_status == CaseStatus.ASSIGNED
            else EventType.CASE_STATUS_CHANGED
        )
        await self._record(
            EntityType.CASE,
            case.id,
            event_type,
            old_status,
            case.status,
            actor=actor,
            metadata={"event": event_name, **extra},
        )
        logger.info(
            "case.status_changed",
            case_id=str(case.id),
            old_status=old_status,
            new_status=case.status,
            transition=event_name,
        )
        return case

    async def assign_lawyer(
        self,
        case_id: uuid.UUID,
        lawyer_id: str,
        fee: int,
        actor: str = SYSTEM_ACTOR,
    ) -> Case:
        """Attach the winning lawyer and agreed fee, forcing ASSIGNED."""
        case = await self.lock_case(case_id)
        return await self.assign_loaded(case, lawyer_id, fee, actor)

    async def assign_loaded(self, case: Case, lawyer_id: str, fee: int, actor: str) -> Case:
        self.check_fee_within_budget(case, fee)
        case = await self.apply_status(
            case, CaseStatus.ASSIGNED, actor=actor, lawyer_id=lawyer_id, agreed_fee=fee
        )
        logger.info("case.lawyer_assigned", case_id=str(case.id), lawyer_id=lawyer_id, fee=fee)
        return case

    async def cancel_case(self, case_id: uuid.UUID, client_id: str) -> Case:
        """Client withdraws a case before a lawyer is assigned.

        Every PENDING bid on the case is rejected in the same transaction.
        """
        case = await self.lock_case(case_id)
        self._require_client(case, client_id)
        if CaseStatus(case.status) not in _CLIENT_CANCELLABLE:
            raise InvalidStateTransitionError(case.status, CaseStatus.CANCELLED)

        for bid in await self._bid_repo.list_pending_for_case(case.id):
            old_status, _ = self._fire(bid, BidStateMachine, "bid_rejected")
            bid.rejection_feedback = "Case cancelled by client"
            await self._record(
                EntityType.BID,
                bid.id,
                EventType.BID_REJECTED,
                old_status,
                bid.status,
                actor=client_id,
                metadata={"reason": "case_cancelled"},
            )
        await self._bid_repo.flush()

        return await self.apply_status(case, CaseStatus.CANCELLED, actor=client_id)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_case(self, case_id: uuid.UUID) -> Case:
        return await self._get_case_or_raise(case_id)

    async def lock_case(self, case_id: uuid.UUID) -> Case:
        """Load a case with a row lock held until the transaction ends."""
        return await self._get_case_or_raise(case_id, for_update=True)

    async def list_client_cases(self, client_id: str) -> list[Case]:
        return await self._case_repo.list_by_client(client_id)

    async def list_lawyer_cases(self, lawyer_id: str) -> list[Case]:
        return await self._case_repo.list_by_lawyer(lawyer_id)

    async def list_available_cases(self, area_of_law: AreaOfLaw | None = None) -> list[Case]:
        """Cases lawyers can still bid on (POSTED, MATCHING, BIDDING)."""
        return await self._case_repo.list_open(str(area_of_law) if area_of_law else None)

    async def get_status(self, case_id: uuid.UUID) -> dict:
        """Get case status with allowed events."""
        case = await self._get_case_or_raise(case_id)
        sm = CaseStateMachine(current_status=case.status)
        return {
            "case_id": str(case.id),
            "status": case.status,
            "allowed_events": sm.get_allowed_events(),
            "accepting_bids": CaseStatus(case.status) in OPEN_FOR_BIDS,
        }

    @staticmethod
    def check_fee_within_budget(case: Case, fee: int) -> None:
        if not case.budget_min <= fee <= case.budget_max:
            raise FeeOutsideBudgetError(fee, case.budget_min, case.budget_max)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_case_or_raise(self, case_id: uuid.UUID, for_update: bool = False) -> Case:
        case = await self._case_repo.get_by_id(case_id, for_update=for_update)
        if case is None:
            raise CaseNotFoundError(str(case_id))
        return case

    @staticmethod
    def _require_client(case: Case, client_id: str) -> None:
        if case.client_id != client_id:
            raise AuthorizationError("Only the client who posted this case can do that")

    async def _next_case_number(self, year: int) -> str:
        for _ in range(_CASE_NUMBER_ATTEMPTS):
            candidate = f"CASE-{year}-{random.randint(1000, 9999)}"
            if not await self._case_repo.case_number_exists(candidate):
                return candidate
        raise InvalidInputError(
            f"Could not allocate a case number for {year}", code="CASE_NUMBER_EXHAUSTED"
        )

