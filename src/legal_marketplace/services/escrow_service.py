"""Escrow Service — custody of a case's funds and dual-confirmation release.

This is the application layer that coordinates between:
    - Domain state machines (escrow and case transition guards)
    - Repositories (data access)
    - Earnings ledger (credited on release)
    - Event log (audit trail)

The two "case clear" confirmations are independent writers. Each call locks
the escrow row, and the version column rejects a stale write, so whichever
call observes both flags set performs the release in the same transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from legal_marketplace.domain.enums import (
    CaseStatus,
    EarningType,
    EntityType,
    EscrowStatus,
    EventType,
)
from legal_marketplace.domain.exceptions import (
    AuthorizationError,
    ConfirmationAlreadyRecordedError,
    EscrowAlreadyExistsError,
    EscrowNotFoundError,
    InvalidDisputeSplitError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from legal_marketplace.domain.identity import SYSTEM_ACTOR
from legal_marketplace.domain.money import apply_rate, percent_of
from legal_marketplace.domain.state_machine import EscrowStateMachine
from legal_marketplace.infrastructure.database.orm_models import Escrow
from legal_marketplace.infrastructure.database.repositories import (
    EscrowRepository,
    StatsRepository,
)
from legal_marketplace.logging_config import get_logger
from legal_marketplace.services.base import LifecycleService
from legal_marketplace.services.case_service import CaseService
from legal_marketplace.services.earnings_service import EarningsService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from legal_marketplace.config import Settings
    from legal_marketplace.domain.clock import Clock
    from legal_marketplace.domain.identity import Caller
    from legal_marketplace.infrastructure.database.orm_models import Case

logger = get_logger(__name__)

_LAWYER = "LAWYER"
_CLIENT = "CLIENT"


class EscrowService(LifecycleService):
    """Manages the escrow lifecycle for assigned cases."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(session, clock, settings)
        self._escrow_repo = EscrowRepository(session)
        self._stats_repo = StatsRepository(session)
        self._cases = CaseService(session, self._clock, self._settings)
        self._earnings = EarningsService(session, self._clock, self._settings)

    # ------------------------------------------------------------------
    # Creation & funding
    # ------------------------------------------------------------------

    async def create_escrow(
        self,
        case_id: uuid.UUID,
        client_id: str,
        lawyer_id: str,
        total_amount: int | None = None,
    ) -> Escrow:
        """Open an escrow in PENDING_PAYMENT for an ASSIGNED case.

        ``total_amount`` defaults to the case's agreed fee; the escrowed part
        is ``escrow_fraction`` of it.
        """
        case = await self._cases.lock_case(case_id)
        if case.client_id != client_id:
            raise AuthorizationError("Only the case owner can open its escrow")
        if case.lawyer_id != lawyer_id:
            raise InvalidInputError(
                f"Lawyer {lawyer_id} is not assigned to case {case_id}",
                code="LAWYER_NOT_ASSIGNED",
            )
        if case.status != CaseStatus.ASSIGNED:
            raise InvalidStateTransitionError(case.status, "escrow_created")
        if await self._escrow_repo.get_by_case(case.id) is not None:
            raise EscrowAlreadyExistsError(str(case.id))

        total = case.agreed_fee if total_amount is None else total_amount
        if total is None or total <= 0:
            raise InvalidInputError("Escrow total must be positive", code="INVALID_AMOUNT")

        now = self._now()
        escrow = Escrow(
            case_id=case.id,
            client_id=client_id,
            lawyer_id=lawyer_id,
            total_amount=total,
            escrow_amount=apply_rate(total, self._settings.escrow_fraction),
            status=EscrowStatus.PENDING_PAYMENT.value,
            created_at=now,
            updated_at=now,
        )
        escrow = await self._escrow_repo.add(escrow)

        await self._record(
            EntityType.ESCROW,
            escrow.case_id,
            EventType.ESCROW_CREATED,
            None,
            escrow.status,
            actor=client_id,
            metadata={"total_amount": total, "escrow_amount": escrow.escrow_amount},
        )
        logger.info(
            "escrow.created",
            case_id=str(case.id),
            total_amount=total,
            escrow_amount=escrow.escrow_amount,
        )
        return escrow

    async def fund_escrow(
        self,
        case_id: uuid.UUID,
        transaction_id: str,
        actor: Caller | None = None,
    ) -> Escrow:
        """Record the external payment and move the case into IN_PROGRESS.

        ``actor`` is None when the payment collaborator reports the capture
        itself; otherwise it must be the paying client or an admin.
        """
        if not transaction_id:
            raise InvalidInputError("A payment transaction id is required", code="MISSING_TXN")
        escrow = await self._get_escrow_or_raise(case_id, for_update=True)
        if actor is not None and not actor.is_admin and actor.user_id != escrow.client_id:
            raise AuthorizationError("Only the paying client can fund this escrow")

        old_status, _ = self._fire(escrow, EscrowStateMachine, "payment_confirmed")
        escrow.transaction_id = transaction_id
        escrow.funded_at = escrow.updated_at
        await self._escrow_repo.flush()

        actor_id = actor.user_id if actor is not None else SYSTEM_ACTOR
        case = await self._cases.lock_case(case_id)
        await self._cases.apply_status(case, CaseStatus.IN_PROGRESS, actor=actor_id)
        await self._earnings.adjust_escrow_balance(escrow.lawyer_id, escrow.escrow_amount)

        await self._record(
            EntityType.ESCROW,
            escrow.case_id,
            EventType.ESCROW_FUNDED,
            old_status,
            escrow.status,
            actor=actor_id,
            metadata={"transaction_id": transaction_id},
        )
        logger.info("escrow.funded", case_id=str(case_id), transaction_id=transaction_id)
        return escrow

    # ------------------------------------------------------------------
    # Dual confirmation
    # ------------------------------------------------------------------

    async def lawyer_confirm_case_clear(self, case_id: uuid.UUID, lawyer_id: str) -> Escrow:
        """Lawyer declares the work done; the case moves to CASE_CLEAR_PENDING."""
        escrow = await self._get_escrow_or_raise(case_id, for_update=True)
        if escrow.lawyer_id != lawyer_id:
            raise AuthorizationError("Only the assigned lawyer can confirm this case")
        self._require_funded(escrow)
        if escrow.lawyer_confirmed:
            raise ConfirmationAlreadyRecordedError(str(case_id), _LAWYER)

        escrow.lawyer_confirmed = True
        escrow.lawyer_confirmed_at = self._now()
        escrow.updated_at = escrow.lawyer_confirmed_at
        await self._escrow_repo.flush()

        case = await self._cases.lock_case(case_id)
        if case.status == CaseStatus.IN_PROGRESS:
            await self._cases.apply_status(case, CaseStatus.CASE_CLEAR_PENDING, actor=lawyer_id)

        return await self._after_confirmation(escrow, case, _LAWYER, lawyer_id)

    async def client_confirm_case_clear(self, case_id: uuid.UUID, client_id: str) -> Escrow:
        """Client accepts the work as done."""
        escrow = await self._get_escrow_or_raise(case_id, for_update=True)
        if escrow.client_id != client_id:
            raise AuthorizationError("Only the case owner can confirm this case")
        self._require_funded(escrow)
        if escrow.client_confirmed:
            raise ConfirmationAlreadyRecordedError(str(case_id), _CLIENT)

        escrow.client_confirmed = True
        escrow.client_confirmed_at = self._now()
        escrow.updated_at = escrow.client_confirmed_at
        await self._escrow_repo.flush()

        case = await self._cases.lock_case(case_id)
        return await self._after_confirmation(escrow, case, _CLIENT, client_id)

    # ------------------------------------------------------------------
    # Disputes & refunds
    # ------------------------------------------------------------------

    async def raise_dispute(self, case_id: uuid.UUID, raised_by: str, reason: str) -> Escrow:
        """Either party freezes a FUNDED escrow pending admin review."""
        escrow = await self._get_escrow_or_raise(case_id, for_update=True)
        if raised_by not in (escrow.client_id, escrow.lawyer_id):
            raise AuthorizationError("Only a party to this case can raise a dispute")

        old_status, _ = self._fire(escrow, EscrowStateMachine, "party_disputes")
        escrow.dispute_reason = reason
        escrow.disputed_by = raised_by
        escrow.disputed_at = escrow.updated_at
        await self._escrow_repo.flush()

        case = await self._cases.lock_case(case_id)
        await self._cases.apply_status(case, CaseStatus.DISPUTED, actor=raised_by)

        await self._record(
            EntityType.ESCROW,
            escrow.case_id,
            EventType.DISPUTE_RAISED,
            old_status,
            escrow.status,
            actor=raised_by,
            metadata={"reason": reason},
        )
        logger.info("escrow.dispute_raised", case_id=str(case_id), by=raised_by)
        return escrow

    async def resolve_dispute(
        self,
        case_id: uuid.UUID,
        client_percent: int,
        lawyer_percent: int,
        actor: Caller,
    ) -> Escrow:
        """Admin splits a disputed escrow between the parties.

        The lawyer's share is rounded half-up; the client receives the exact
        remainder so the two always add up to the escrowed amount.
        """
        actor.require_admin()
        if (
            not 0 <= client_percent <= 100
            or not 0 <= lawyer_percent <= 100
            or client_percent + lawyer_percent != 100
        ):
            raise InvalidDisputeSplitError(client_percent, lawyer_percent)

        escrow = await self._get_escrow_or_raise(case_id, for_update=True)
        old_status, _ = self._fire(escrow, EscrowStateMachine, "dispute_resolved")

        lawyer_share = percent_of(escrow.escrow_amount, lawyer_percent)
        client_share = escrow.escrow_amount - lawyer_share
        escrow.dispute_client_percent = client_percent
        escrow.dispute_lawyer_percent = lawyer_percent
        escrow.release_amount = lawyer_share
        escrow.refund_amount = client_share
        escrow.resolved_at = escrow.updated_at
        escrow.released_at = escrow.updated_at
        await self._escrow_repo.flush()

        case = await self._cases.lock_case(case_id)
        await self._cases.apply_status(case, CaseStatus.COMPLETED, actor=actor.user_id)
        await self._earnings.adjust_escrow_balance(escrow.lawyer_id, -escrow.escrow_amount)
        if lawyer_share > 0:
            await self._earnings.record_earning(
                escrow.lawyer_id,
                lawyer_share,
                EarningType.CASE_PAYMENT,
                description=f"Dispute settlement for case {case.case_number}",
                case_id=case.id,
                actor=actor.user_id,
            )

        await self._record(
            EntityType.ESCROW,
            escrow.case_id,
            EventType.DISPUTE_RESOLVED,
            old_status,
            escrow.status,
            actor=actor.user_id,
            metadata={
                "client_percent": client_percent,
                "lawyer_percent": lawyer_percent,
                "client_refund": client_share,
                "lawyer_payment": lawyer_share,
            },
        )
        logger.info(
            "escrow.dispute_resolved",
            case_id=str(case_id),
            lawyer_share=lawyer_share,
            client_share=client_share,
        )
        return escrow

    async def refund_escrow(self, case_id: uuid.UUID, actor: Caller) -> Escrow:
        """Admin returns the full escrowed amount to the client and cancels the case."""
        actor.require_admin()
        escrow = await self._get_escrow_or_raise(case_id, for_update=True)

        old_status, _ = self._fire(escrow, EscrowStateMachine, "admin_refunds")
        escrow.refund_amount = escrow.escrow_amount
        escrow.release_amount = 0
        escrow.refunded_at = escrow.updated_at
        await self._escrow_repo.flush()

        case = await self._cases.lock_case(case_id)
        await self._cases.apply_status(case, CaseStatus.CANCELLED, actor=actor.user_id)
        await self._earnings.adjust_escrow_balance(escrow.lawyer_id, -escrow.escrow_amount)

        await self._record(
            EntityType.ESCROW,
            escrow.case_id,
            EventType.ESCROW_REFUNDED,
            old_status,
            escrow.status,
            actor=actor.user_id,
            metadata={"refund_amount": escrow.refund_amount},
        )
        logger.info("escrow.refunded", case_id=str(case_id), amount=escrow.refund_amount)
        return escrow

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_escrow(self, case_id: uuid.UUID) -> Escrow:
        """Get an escrow or raise."""
        return await self._get_escrow_or_raise(case_id)

    async def get_status(self, case_id: uuid.UUID) -> dict:
        """Get escrow status with allowed events and confirmation flags."""
        escrow = await self._get_escrow_or_raise(case_id)
        sm = EscrowStateMachine(current_status=escrow.status)
        return {
            "case_id": str(escrow.case_id),
            "status": escrow.status,
            "client_confirmed": escrow.client_confirmed,
            "lawyer_confirmed": escrow.lawyer_confirmed,
            "allowed_events": sm.get_allowed_events(),
        }

    async def list_client_escrows(self, client_id: str) -> list[Escrow]:
        return await self._escrow_repo.list_by_client(client_id)

    async def list_lawyer_escrows(self, lawyer_id: str) -> list[Escrow]:
        return await self._escrow_repo.list_by_lawyer(lawyer_id)

    async def get_escrow_events(self, case_id: uuid.UUID) -> list:
        """Get audit trail."""
        return await self.get_events(EntityType.ESCROW, case_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _after_confirmation(
        self, escrow: Escrow, case: Case, party: str, actor: str
    ) -> Escrow:
        await self._record(
            EntityType.ESCROW,
            escrow.case_id,
            EventType.CASE_CLEAR_CONFIRMED,
            escrow.status,
            escrow.status,
            actor=actor,
            metadata={"party": party},
        )
        logger.info("escrow.case_clear_confirmed", case_id=str(escrow.case_id), party=party)

        if escrow.client_confirmed and escrow.lawyer_confirmed:
            await self._release(escrow, case, actor)
        return escrow

    async def _release(self, escrow: Escrow, case: Case, actor: str) -> None:
        """Pay out a fully confirmed escrow to the lawyer. Irreversible."""
        old_status, _ = self._fire(escrow, EscrowStateMachine, "both_parties_confirmed")
        escrow.release_amount = escrow.escrow_amount
        escrow.released_at = escrow.updated_at
        await self._escrow_repo.flush()

        await self._cases.apply_status(case, CaseStatus.COMPLETED, actor=actor)
        await self._stats_repo.increment_completed(escrow.lawyer_id)
        await self._earnings.adjust_escrow_balance(escrow.lawyer_id, -escrow.escrow_amount)
        await self._earnings.record_earning(
            escrow.lawyer_id,
            escrow.release_amount,
            EarningType.CASE_PAYMENT,
            description=f"Payment for case {case.case_number}",
            case_id=case.id,
            actor=actor,
        )

        await self._record(
            EntityType.ESCROW,
            escrow.case_id,
            EventType.ESCROW_RELEASED,
            old_status,
            escrow.status,
            actor=actor,
            metadata={"release_amount": escrow.release_amount},
        )
        logger.info(
            "escrow.released",
            case_id=str(escrow.case_id),
            lawyer_id=escrow.lawyer_id,
            release_amount=escrow.release_amount,
        )

    @staticmethod
    def _require_funded(escrow: Escrow) -> None:
        if escrow.status != EscrowStatus.FUNDED:
            raise InvalidStateTransitionError(escrow.status, "case_clear_confirmed")

    async def _get_escrow_or_raise(self, case_id: uuid.UUID, for_update: bool = False) -> Escrow:
        escrow = await self._escrow_repo.get_by_case(case_id, for_update=for_update)
        if escrow is None:
            raise EscrowNotFoundError(str(case_id))
        return escrow
