"""Bid Service — lawyers' offers and the client's single winning choice.

Acceptance is the one multi-row flow here: the case row is locked first,
every precondition is checked, and only then is the bid accepted, every
other PENDING bid rejected and the case assigned, all in the caller's
transaction. Calling ``accept_bid`` again for an already-accepted bid
finishes whatever part of that sweep is missing instead of failing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from legal_marketplace.domain.enums import (
    OPEN_FOR_BIDS,
    BidStatus,
    CaseStatus,
    EntityType,
    EventType,
    FeeType,
)
from legal_marketplace.domain.exceptions import (
    AuthorizationError,
    BidAlreadyAcceptedError,
    BidNotFoundError,
    DuplicateBidError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from legal_marketplace.domain.state_machine import BidStateMachine, CaseStateMachine, guard_target
from legal_marketplace.infrastructure.database.orm_models import Bid
from legal_marketplace.infrastructure.database.repositories import BidRepository
from legal_marketplace.logging_config import get_logger
from legal_marketplace.services.base import LifecycleService
from legal_marketplace.services.case_service import CaseService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from legal_marketplace.config import Settings
    from legal_marketplace.domain.clock import Clock
    from legal_marketplace.infrastructure.database.orm_models import Case

logger = get_logger(__name__)


class BidService(LifecycleService):
    """Manages bid submission and resolution."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(session, clock, settings)
        self._bid_repo = BidRepository(session)
        self._cases = CaseService(session, self._clock, self._settings)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def create_bid(
        self,
        lawyer_id: str,
        case_id: uuid.UUID,
        proposed_fee: int,
        fee_type: FeeType,
        estimated_timeline: str,
        proposal_text: str,
    ) -> Bid:
        """Submit a PENDING bid and move the case into BIDDING."""
        if proposed_fee <= 0:
            raise InvalidInputError("Proposed fee must be positive", code="INVALID_FEE")

        case = await self._cases.lock_case(case_id)
        if CaseStatus(case.status) not in OPEN_FOR_BIDS:
            raise InvalidStateTransitionError(case.status, "bid_submitted")
        if case.client_id == lawyer_id:
            raise AuthorizationError("You cannot bid on your own case")
        if await self._bid_repo.get_pending_for_lawyer(case.id, lawyer_id) is not None:
            raise DuplicateBidError(str(case.id))

        now = self._now()
        bid = Bid(
            case_id=case.id,
            lawyer_id=lawyer_id,
            proposed_fee=proposed_fee,
            fee_type=str(fee_type),
            estimated_timeline=estimated_timeline,
            proposal_text=proposal_text,
            status=BidStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        try:
            bid = await self._bid_repo.add(bid)
        except IntegrityError as exc:
            raise DuplicateBidError(str(case.id)) from exc

        if case.status != CaseStatus.BIDDING:
            await self._cases.apply_status(case, CaseStatus.BIDDING, actor=lawyer_id)

        await self._record(
            EntityType.BID,
            bid.id,
            EventType.BID_SUBMITTED,
            None,
            BidStatus.PENDING,
            actor=lawyer_id,
            metadata={"case_id": str(case.id), "proposed_fee": proposed_fee},
        )
        logger.info(
            "bid.submitted",
            bid_id=str(bid.id),
            case_id=str(case.id),
            lawyer_id=lawyer_id,
            proposed_fee=proposed_fee,
        )
        return bid

    async def update_bid(
        self,
        bid_id: uuid.UUID,
        lawyer_id: str,
        proposed_fee: int | None = None,
        fee_type: FeeType | None = None,
        estimated_timeline: str | None = None,
        proposal_text: str | None = None,
    ) -> Bid:
        """Let the owning lawyer revise a bid while it is still PENDING."""
        bid = await self._get_bid_or_raise(bid_id, for_update=True)
        self._require_lawyer(bid, lawyer_id)
        if bid.status != BidStatus.PENDING:
            raise InvalidStateTransitionError(bid.status, "bid_updated")
        if proposed_fee is not None and proposed_fee <= 0:
            raise InvalidInputError("Proposed fee must be positive", code="INVALID_FEE")

        changes = {
            "proposed_fee": proposed_fee,
            "fee_type": str(fee_type) if fee_type is not None else None,
            "estimated_timeline": estimated_timeline,
            "proposal_text": proposal_text,
        }
        changes = {k: v for k, v in changes.items() if v is not None}
        for field, value in changes.items():
            setattr(bid, field, value)
        bid.updated_at = self._now()
        await self._bid_repo.flush()

        await self._record(
            EntityType.BID,
            bid.id,
            EventType.BID_UPDATED,
            bid.status,
            bid.status,
            actor=lawyer_id,
            metadata={"fields": sorted(changes)},
        )
        logger.info("bid.updated", bid_id=str(bid.id), fields=sorted(changes))
        return bid

    async def withdraw_bid(self, bid_id: uuid.UUID, lawyer_id: str) -> Bid:
        bid = await self._get_bid_or_raise(bid_id, for_update=True)
        self._require_lawyer(bid, lawyer_id)

        old_status, _ = self._fire(bid, BidStateMachine, "bid_withdrawn")
        await self._bid_repo.flush()

        await self._record(
            EntityType.BID, bid.id, EventType.BID_WITHDRAWN, old_status, bid.status, actor=lawyer_id
        )
        logger.info("bid.withdrawn", bid_id=str(bid.id), case_id=str(bid.case_id))
        return bid

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def accept_bid(self, bid_id: uuid.UUID, client_id: str) -> Bid:
        """Accept one bid, reject the rest, and assign the case.

        Escrow is deliberately not created here; that is a separate step once
        the client is ready to pay.
        """
        bid = await self._get_bid_or_raise(bid_id)
        case = await self._cases.lock_case(bid.case_id)
        bid = await self._get_bid_or_raise(bid_id, for_update=True)
        if case.client_id != client_id:
            raise AuthorizationError("Only the case owner can accept bids")

        if bid.status == BidStatus.ACCEPTED:
            return await self._reconcile_acceptance(bid, case, client_id)

        # Validate everything before mutating anything.
        self._check_transition(BidStateMachine, bid.status, "bid_accepted")
        if await self._bid_repo.get_accepted_for_case(case.id) is not None:
            raise BidAlreadyAcceptedError(str(case.id))
        guard_target(CaseStateMachine, case.status, CaseStatus.ASSIGNED)
        self._cases.check_fee_within_budget(case, bid.proposed_fee)

        old_status, _ = self._fire(bid, BidStateMachine, "bid_accepted")
        try:
            await self._bid_repo.flush()
        except IntegrityError as exc:
            raise BidAlreadyAcceptedError(str(case.id)) from exc

        await self._record(
            EntityType.BID,
            bid.id,
            EventType.BID_ACCEPTED,
            old_status,
            bid.status,
            actor=client_id,
            metadata={"case_id": str(case.id), "lawyer_id": bid.lawyer_id},
        )
        rejected = await self._reject_other_pending(bid, client_id)
        await self._cases.assign_loaded(case, bid.lawyer_id, bid.proposed_fee, actor=client_id)

        logger.info(
            "bid.accepted",
            bid_id=str(bid.id),
            case_id=str(case.id),
            lawyer_id=bid.lawyer_id,
            rejected_count=rejected,
        )
        return bid

    async def reject_bid(
        self,
        bid_id: uuid.UUID,
        client_id: str,
        feedback: str | None = None,
    ) -> Bid:
        bid = await self._get_bid_or_raise(bid_id, for_update=True)
        case = await self._cases.get_case(bid.case_id)
        if case.client_id != client_id:
            raise AuthorizationError("Only the case owner can reject bids")

        old_status, _ = self._fire(bid, BidStateMachine, "bid_rejected")
        bid.rejection_feedback = feedback
        await self._bid_repo.flush()

        await self._record(
            EntityType.BID,
            bid.id,
            EventType.BID_REJECTED,
            old_status,
            bid.status,
            actor=client_id,
            metadata={"feedback": feedback} if feedback else None,
        )
        logger.info("bid.rejected", bid_id=str(bid.id), case_id=str(bid.case_id))
        return bid

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_bid(self, bid_id: uuid.UUID) -> Bid:
        return await self._get_bid_or_raise(bid_id)

    async def list_bids_for_case(
        self, case_id: uuid.UUID, status: BidStatus | None = None
    ) -> list[Bid]:
        """Bids on a case, newest first. No ranking is applied."""
        await self._cases.get_case(case_id)
        return await self._bid_repo.list_for_case(case_id, status)

    async def list_bids_by_lawyer(self, lawyer_id: str) -> list[Bid]:
        return await self._bid_repo.list_by_lawyer(lawyer_id)

    async def count_pending_bids(self, case_id: uuid.UUID) -> int:
        return await self._bid_repo.count_pending(case_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _reconcile_acceptance(self, bid: Bid, case: Case, client_id: str) -> Bid:
        """Finish an acceptance that was interrupted after the bid flipped."""
        rejected = await self._reject_other_pending(bid, client_id)
        if case.status == CaseStatus.BIDDING:
            await self._cases.assign_loaded(case, bid.lawyer_id, bid.proposed_fee, actor=client_id)
        logger.info(
            "bid.acceptance_reconciled",
            bid_id=str(bid.id),
            case_id=str(case.id),
            rejected_count=rejected,
        )
        return bid

    async def _reject_other_pending(self, accepted: Bid, actor: str) -> int:
        others = await self._bid_repo.list_pending_for_case(accepted.case_id, exclude_id=accepted.id)
        for other in others:
            old_status, _ = self._fire(other, BidStateMachine, "bid_rejected")
            await self._record(
                EntityType.BID,
                other.id,
                EventType.BID_REJECTED,
                old_status,
                other.status,
                actor=actor,
                metadata={"reason": "another_bid_accepted", "accepted_bid_id": str(accepted.id)},
            )
        await self._bid_repo.flush()
        return len(others)

    async def _get_bid_or_raise(self, bid_id: uuid.UUID, for_update: bool = False) -> Bid:
        bid = await self._bid_repo.get_by_id(bid_id, for_update=for_update)
        if bid is None:
            raise BidNotFoundError(str(bid_id))
        return bid

    @staticmethod
    def _require_lawyer(bid: Bid, lawyer_id: str) -> None:
        if bid.lawyer_id != lawyer_id:
            raise AuthorizationError("Only the lawyer who submitted this bid can do that")
