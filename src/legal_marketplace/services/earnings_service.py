"""Earnings Service — the lawyer ledger, wallet and payouts.

Money flow for one earning of gross ``A``::

    record_earning           pending_balance += net, total_earned += net
    record_earning (deduct)  available_balance -= A, total_earned -= A
    release_pending_earnings pending_balance -= net, available_balance += net
    request_payout           available_balance -= amount   (held)
    cancel / fail payout     available_balance += amount   (refunded)
    process_payout           total_withdrawn += amount

where ``platform_fee = round_half_up(A * platform_fee_rate)`` and
``net = A - platform_fee``. Wallet columns only ever change through the
repository's atomic delta updates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from legal_marketplace.domain.clock import as_utc
from legal_marketplace.domain.enums import (
    EarningStatus,
    EarningType,
    EntityType,
    EscrowStatus,
    EventType,
    PayoutMethod,
    PayoutStatus,
)
from legal_marketplace.domain.exceptions import (
    AuthorizationError,
    EarningNotFoundError,
    HoldPeriodNotElapsedError,
    InsufficientFundsError,
    InvalidInputError,
    PayoutBelowMinimumError,
    PayoutNotFoundError,
    WalletNotFoundError,
)
from legal_marketplace.domain.identity import SYSTEM_ACTOR
from legal_marketplace.domain.money import split_fee
from legal_marketplace.domain.state_machine import EarningStateMachine, PayoutStateMachine
from legal_marketplace.infrastructure.database.orm_models import (
    Earning,
    LawyerWallet,
    PayoutRequest,
)
from legal_marketplace.infrastructure.database.repositories import (
    EarningRepository,
    EscrowRepository,
    PayoutRepository,
    WalletRepository,
)
from legal_marketplace.logging_config import get_logger
from legal_marketplace.services.base import LifecycleService

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from legal_marketplace.config import Settings
    from legal_marketplace.domain.clock import Clock
    from legal_marketplace.domain.identity import Caller

logger = get_logger(__name__)

_REQUIRED_ACCOUNT_FIELDS = ("account_name", "account_number")


@dataclass(frozen=True)
class EarningsSummary:
    """Read-only aggregate over a lawyer's earnings in an optional window."""

    lawyer_id: str
    total_earnings: int
    total_platform_fees: int
    net_earnings: int
    total_deductions: int
    pending_earnings: int
    on_hold_earnings: int
    available_earnings: int
    withdrawn_amount: int
    earnings_count: int


@dataclass(frozen=True)
class WalletReconciliation:
    """Stored wallet balances next to the balances implied by the ledger."""

    lawyer_id: str
    stored: dict[str, int]
    expected: dict[str, int]
    discrepancies: dict[str, int] = field(default_factory=dict)

    @property
    def balanced(self) -> bool:
        return not self.discrepancies


class EarningsService(LifecycleService):
    """Manages earnings, wallet balances and payout requests."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(session, clock, settings)
        self._earning_repo = EarningRepository(session)
        self._wallet_repo = WalletRepository(session)
        self._payout_repo = PayoutRepository(session)
        self._escrow_repo = EscrowRepository(session)

    # ------------------------------------------------------------------
    # Earnings ledger
    # ------------------------------------------------------------------

    async def record_earning(
        self,
        lawyer_id: str,
        amount: int,
        earning_type: EarningType,
        description: str,
        case_id: uuid.UUID | None = None,
        consultation_id: uuid.UUID | None = None,
        client_name: str | None = None,
        actor: str = SYSTEM_ACTOR,
    ) -> Earning:
        """Credit a lawyer with a PENDING earning held for the configured period.

        A ``REFUND_DEDUCTION`` is the opposite entry: no platform fee, no
        hold, and its amount is debited from the available balance at once
        (InsufficientFundsError if that balance does not cover it).
        """
        if amount <= 0:
            raise InvalidInputError("Earning amount must be positive", code="INVALID_AMOUNT")

        now = self._now()
        await self._wallet_repo.ensure(lawyer_id, now)
        deduction = earning_type == EarningType.REFUND_DEDUCTION
        if deduction:
            platform_fee, net_amount = 0, amount
            if not await self._wallet_repo.debit_available(lawyer_id, amount, now):
                wallet = await self._wallet_repo.get(lawyer_id)
                raise InsufficientFundsError(amount, wallet.available_balance if wallet else 0)
            await self._wallet_repo.apply_delta(lawyer_id, now, total_earned=-amount)
        else:
            platform_fee, net_amount = split_fee(amount, self._settings.platform_fee_rate)
            await self._wallet_repo.apply_delta(
                lawyer_id, now, pending_balance=net_amount, total_earned=net_amount
            )

        earning = Earning(
            lawyer_id=lawyer_id,
            case_id=case_id,
            consultation_id=consultation_id,
            earning_type=str(earning_type),
            amount=amount,
            platform_fee=platform_fee,
            net_amount=net_amount,
            description=description,
            client_name=client_name,
            status=(EarningStatus.AVAILABLE if deduction else EarningStatus.PENDING).value,
            available_at=now if deduction else now + timedelta(days=self._settings.payout_hold_days),
            created_at=now,
            updated_at=now,
        )
        earning = await self._earning_repo.add(earning)

        await self._record(
            EntityType.EARNING,
            earning.id,
            EventType.EARNING_RECORDED,
            None,
            earning.status,
            actor=actor,
            metadata={"amount": amount, "platform_fee": platform_fee, "net_amount": net_amount},
        )
        logger.info(
            "earning.recorded",
            earning_id=str(earning.id),
            lawyer_id=lawyer_id,
            earning_type=str(earning_type),
            amount=amount,
            net_amount=net_amount,
        )
        return earning

    async def release_pending_earnings(
        self, earning_id: uuid.UUID, actor: str = SYSTEM_ACTOR
    ) -> Earning:
        """Move one earning from pending to available once its hold has elapsed.

        Meant to be driven by an external periodic trigger; see
        ``release_due_earnings`` for the batch form.
        """
        earning = await self._get_earning_or_raise(earning_id, for_update=True)
        return await self._release(earning, actor)

    async def release_due_earnings(self, limit: int | None = None) -> list[Earning]:
        """Release every PENDING earning whose ``available_at`` has passed."""
        due = await self._earning_repo.list_due(self._now(), limit)
        released = [await self._release(earning, SYSTEM_ACTOR) for earning in due]
        if released:
            logger.info("earning.batch_released", count=len(released))
        return released

    async def hold_earning(self, earning_id: uuid.UUID, actor: Caller, reason: str) -> Earning:
        """Admin freeze of a PENDING earning; it stays in pending_balance."""
        actor.require_admin()
        earning = await self._get_earning_or_raise(earning_id, for_update=True)
        old_status, _ = self._fire(earning, EarningStateMachine, "hold_placed")
        earning.hold_reason = reason
        await self._earning_repo.flush()

        await self._record(
            EntityType.EARNING,
            earning.id,
            EventType.EARNING_HELD,
            old_status,
            earning.status,
            actor=actor.user_id,
            metadata={"reason": reason},
        )
        logger.info("earning.held", earning_id=str(earning.id), reason=reason)
        return earning

    async def lift_hold(self, earning_id: uuid.UUID, actor: Caller) -> Earning:
        actor.require_admin()
        earning = await self._get_earning_or_raise(earning_id, for_update=True)
        old_status, _ = self._fire(earning, EarningStateMachine, "hold_lifted")
        earning.hold_reason = None
        await self._earning_repo.flush()

        await self._record(
            EntityType.EARNING,
            earning.id,
            EventType.EARNING_HOLD_LIFTED,
            old_status,
            earning.status,
            actor=actor.user_id,
        )
        logger.info("earning.hold_lifted", earning_id=str(earning.id))
        return earning

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    async def get_wallet(self, lawyer_id: str) -> LawyerWallet:
        """Current balances, creating an empty wallet on first access."""
        await self._wallet_repo.ensure(lawyer_id, self._now())
        wallet = await self._wallet_repo.get(lawyer_id)
        if wallet is None:
            raise WalletNotFoundError(lawyer_id)
        return wallet

    async def adjust_escrow_balance(self, lawyer_id: str, delta: int) -> None:
        """Track funds sitting in escrow for the lawyer (informational balance)."""
        now = self._now()
        await self._wallet_repo.ensure(lawyer_id, now)
        await self._wallet_repo.apply_delta(lawyer_id, now, escrow_balance=delta)

    # ------------------------------------------------------------------
    # Payouts
    # ------------------------------------------------------------------

    async def request_payout(
        self,
        lawyer_id: str,
        amount: int,
        method: PayoutMethod,
        account_details: dict,
    ) -> PayoutRequest:
        """Hold ``amount`` from the available balance and open a PENDING payout."""
        if amount < self._settings.minimum_payout:
            raise PayoutBelowMinimumError(amount, self._settings.minimum_payout)
        missing = [k for k in _REQUIRED_ACCOUNT_FIELDS if not account_details.get(k)]
        if missing:
            raise InvalidInputError(
                f"Account details missing: {', '.join(missing)}", code="INVALID_ACCOUNT"
            )

        now = self._now()
        await self._wallet_repo.ensure(lawyer_id, now)
        if not await self._wallet_repo.debit_available(lawyer_id, amount, now):
            wallet = await self._wallet_repo.get(lawyer_id)
            raise InsufficientFundsError(amount, wallet.available_balance if wallet else 0)

        payout = PayoutRequest(
            lawyer_id=lawyer_id,
            amount=amount,
            method=str(method),
            account_details=dict(account_details),
            status=PayoutStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        payout = await self._payout_repo.add(payout)

        await self._record(
            EntityType.PAYOUT,
            payout.id,
            EventType.PAYOUT_REQUESTED,
            None,
            payout.status,
            actor=lawyer_id,
            metadata={"amount": amount, "method": str(method)},
        )
        logger.info("payout.requested", payout_id=str(payout.id), lawyer_id=lawyer_id, amount=amount)
        return payout

    async def cancel_payout_request(self, payout_id: uuid.UUID, lawyer_id: str) -> PayoutRequest:
        """Owner cancels a PENDING payout; the held amount goes back to available."""
        payout = await self._get_payout_or_raise(payout_id, for_update=True)
        if payout.lawyer_id != lawyer_id:
            raise AuthorizationError("Only the requesting lawyer can cancel this payout")

        old_status, _ = self._fire(payout, PayoutStateMachine, "lawyer_cancels")
        await self._payout_repo.flush()
        await self._wallet_repo.apply_delta(
            payout.lawyer_id, self._now(), available_balance=payout.amount
        )

        await self._record(
            EntityType.PAYOUT,
            payout.id,
            EventType.PAYOUT_CANCELLED,
            old_status,
            payout.status,
            actor=lawyer_id,
        )
        logger.info("payout.cancelled", payout_id=str(payout.id), refunded=payout.amount)
        return payout

    async def start_processing_payout(self, payout_id: uuid.UUID, actor: Caller) -> PayoutRequest:
        actor.require_admin()
        payout = await self._get_payout_or_raise(payout_id, for_update=True)
        old_status, _ = self._fire(payout, PayoutStateMachine, "processing_started")
        await self._payout_repo.flush()

        await self._record(
            EntityType.PAYOUT,
            payout.id,
            EventType.PAYOUT_PROCESSING,
            old_status,
            payout.status,
            actor=actor.user_id,
        )
        logger.info("payout.processing", payout_id=str(payout.id))
        return payout

    async def process_payout(
        self,
        payout_id: uuid.UUID,
        transaction_id: str,
        actor: Caller,
    ) -> PayoutRequest:
        """Admin marks a payout as paid out by the external payment provider.

        Oldest AVAILABLE earnings fully covered by the lawyer's cumulative
        withdrawals are marked WITHDRAWN.
        """
        actor.require_admin()
        if not transaction_id:
            raise InvalidInputError("A payment transaction id is required", code="MISSING_TXN")
        payout = await self._get_payout_or_raise(payout_id, for_update=True)

        old_status, _ = self._fire(payout, PayoutStateMachine, "payout_completed")
        payout.transaction_id = transaction_id
        payout.processed_at = payout.updated_at
        await self._payout_repo.flush()
        await self._wallet_repo.apply_delta(
            payout.lawyer_id, self._now(), total_withdrawn=payout.amount
        )
        withdrawn = await self._mark_withdrawn_earnings(payout.lawyer_id, actor.user_id)

        await self._record(
            EntityType.PAYOUT,
            payout.id,
            EventType.PAYOUT_COMPLETED,
            old_status,
            payout.status,
            actor=actor.user_id,
            metadata={"transaction_id": transaction_id, "earnings_withdrawn": withdrawn},
        )
        logger.info(
            "payout.completed",
            payout_id=str(payout.id),
            lawyer_id=payout.lawyer_id,
            amount=payout.amount,
            transaction_id=transaction_id,
        )
        return payout

    async def fail_payout(
        self,
        payout_id: uuid.UUID,
        failure_reason: str,
        actor: Caller,
    ) -> PayoutRequest:
        """Admin records a failed transfer; the held amount is refunded."""
        actor.require_admin()
        payout = await self._get_payout_or_raise(payout_id, for_update=True)

        old_status, _ = self._fire(payout, PayoutStateMachine, "payout_failed")
        payout.failure_reason = failure_reason
        payout.processed_at = payout.updated_at
        await self._payout_repo.flush()
        await self._wallet_repo.apply_delta(
            payout.lawyer_id, self._now(), available_balance=payout.amount
        )

        await self._record(
            EntityType.PAYOUT,
            payout.id,
            EventType.PAYOUT_FAILED,
            old_status,
            payout.status,
            actor=actor.user_id,
            metadata={"reason": failure_reason},
        )
        logger.warning("payout.failed", payout_id=str(payout.id), reason=failure_reason)
        return payout

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    async def get_earnings_summary(
        self,
        lawyer_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> EarningsSummary:
        earnings = await self._earning_repo.list_by_lawyer(
            lawyer_id, start=as_utc(start), end=as_utc(end)
        )

        deducted = sum(
            e.amount for e in earnings if e.earning_type == EarningType.REFUND_DEDUCTION
        )

        def net_in(status: EarningStatus) -> int:
            return sum(e.signed_net for e in earnings if e.status == status)

        return EarningsSummary(
            lawyer_id=lawyer_id,
            total_earnings=sum(e.amount for e in earnings) - deducted,
            total_platform_fees=sum(e.platform_fee for e in earnings),
            net_earnings=sum(e.signed_net for e in earnings),
            total_deductions=deducted,
            pending_earnings=net_in(EarningStatus.PENDING),
            on_hold_earnings=net_in(EarningStatus.ON_HOLD),
            available_earnings=net_in(EarningStatus.AVAILABLE),
            withdrawn_amount=net_in(EarningStatus.WITHDRAWN),
            earnings_count=len(earnings),
        )

    async def reconcile_wallet(self, lawyer_id: str) -> WalletReconciliation:
        """Compare stored wallet balances against the earnings and payout ledger.

        Read-only: discrepancies are reported, never corrected here.
        """
        wallet = await self.get_wallet(lawyer_id)
        earnings = await self._earning_repo.list_by_lawyer(lawyer_id)
        escrows = await self._escrow_repo.list_by_lawyer(lawyer_id)
        completed = await self._payout_repo.sum_completed(lawyer_id)
        held = await self._payout_repo.sum_held(lawyer_id)

        released = sum(
            e.signed_net
            for e in earnings
            if e.status in (EarningStatus.AVAILABLE, EarningStatus.WITHDRAWN)
        )
        expected = {
            "total_earned": sum(e.signed_net for e in earnings),
            "pending_balance": sum(
                e.net_amount
                for e in earnings
                if e.status in (EarningStatus.PENDING, EarningStatus.ON_HOLD)
            ),
            "available_balance": released - completed - held,
            "total_withdrawn": completed,
            "escrow_balance": sum(
                e.escrow_amount
                for e in escrows
                if e.status in (EscrowStatus.FUNDED, EscrowStatus.DISPUTED)
            ),
        }
        stored = {name: getattr(wallet, name) for name in expected}
        discrepancies = {
            name: stored[name] - expected[name]
            for name in expected
            if stored[name] != expected[name]
        }
        if discrepancies:
            logger.warning(
                "wallet.reconciliation_mismatch", lawyer_id=lawyer_id, **discrepancies
            )
        return WalletReconciliation(
            lawyer_id=lawyer_id,
            stored=stored,
            expected=expected,
            discrepancies=discrepancies,
        )

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_earning(self, earning_id: uuid.UUID) -> Earning:
        return await self._get_earning_or_raise(earning_id)

    async def list_earnings(
        self, lawyer_id: str, status: EarningStatus | None = None
    ) -> list[Earning]:
        return await self._earning_repo.list_by_lawyer(lawyer_id, status=status)

    async def get_payout(self, payout_id: uuid.UUID) -> PayoutRequest:
        return await self._get_payout_or_raise(payout_id)

    async def list_payouts(self, lawyer_id: str) -> list[PayoutRequest]:
        return await self._payout_repo.list_by_lawyer(lawyer_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _release(self, earning: Earning, actor: str) -> Earning:
        if earning.status == EarningStatus.PENDING and self._now() < earning.available_at:
            raise HoldPeriodNotElapsedError(str(earning.id), earning.available_at)

        old_status, _ = self._fire(earning, EarningStateMachine, "hold_elapsed")
        await self._earning_repo.flush()
        await self._wallet_repo.apply_delta(
            earning.lawyer_id,
            self._now(),
            pending_balance=-earning.net_amount,
            available_balance=earning.net_amount,
        )

        await self._record(
            EntityType.EARNING,
            earning.id,
            EventType.EARNING_RELEASED,
            old_status,
            earning.status,
            actor=actor,
            metadata={"net_amount": earning.net_amount},
        )
        logger.info(
            "earning.released",
            earning_id=str(earning.id),
            lawyer_id=earning.lawyer_id,
            net_amount=earning.net_amount,
        )
        return earning

    async def _mark_withdrawn_earnings(self, lawyer_id: str, actor: str) -> int:
        """Flip the oldest AVAILABLE earnings to WITHDRAWN while withdrawals cover them."""
        wallet = await self._wallet_repo.get(lawyer_id)
        budget = wallet.total_withdrawn - await self._earning_repo.sum_withdrawn(lawyer_id)
        count = 0
        for earning in await self._earning_repo.list_available_oldest_first(lawyer_id):
            if earning.net_amount > budget:
                break
            old_status, _ = self._fire(earning, EarningStateMachine, "funds_withdrawn")
            budget -= earning.net_amount
            count += 1
            await self._record(
                EntityType.EARNING,
                earning.id,
                EventType.EARNING_WITHDRAWN,
                old_status,
                earning.status,
                actor=actor,
            )
        await self._earning_repo.flush()
        return count

    async def _get_earning_or_raise(
        self, earning_id: uuid.UUID, for_update: bool = False
    ) -> Earning:
        earning = await self._earning_repo.get_by_id(earning_id, for_update=for_update)
        if earning is None:
            raise EarningNotFoundError(str(earning_id))
        return earning

    async def _get_payout_or_raise(
        self, payout_id: uuid.UUID, for_update: bool = False
    ) -> PayoutRequest:
        payout = await self._payout_repo.get_by_id(payout_id, for_update=for_update)
        if payout is None:
            raise PayoutNotFoundError(str(payout_id))
        return payout
