"""Domain exceptions for the legal marketplace engine.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.

Taxonomy:
    not-found           EntityNotFoundError and its per-entity subclasses
    authorization       AuthorizationError
    invalid-state       InvalidStateTransitionError, BidAlreadyAcceptedError, ...
    validation          InvalidInputError and its subclasses
    insufficient-funds  InsufficientFundsError
    concurrency         ConcurrentUpdateError, SlotUnavailableError, DuplicateOperationError
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Not Found ---


class EntityNotFoundError(MarketplaceError):
    """Raised when a referenced entity does not exist."""

    entity = "Entity"

    def __init__(self, entity_id: str) -> None:
        super().__init__(
            message=f"{self.entity} not found: {entity_id}",
            code=f"{self.entity.upper()}_NOT_FOUND",
        )
        self.entity_id = entity_id


class CaseNotFoundError(EntityNotFoundError):
    entity = "Case"


class BidNotFoundError(EntityNotFoundError):
    entity = "Bid"


class EscrowNotFoundError(EntityNotFoundError):
    entity = "Escrow"


class EarningNotFoundError(EntityNotFoundError):
    entity = "Earning"


class PayoutNotFoundError(EntityNotFoundError):
    entity = "Payout"


class ConsultationNotFoundError(EntityNotFoundError):
    entity = "Consultation"


class AvailabilityNotFoundError(EntityNotFoundError):
    entity = "Availability"


class WalletNotFoundError(EntityNotFoundError):
    entity = "Wallet"


# --- Authorization ---


class AuthorizationError(MarketplaceError):
    """Raised when the caller does not own the entity or lacks the admin role."""

    def __init__(self, message: str = "Not authorized to perform this action") -> None:
        super().__init__(message=message, code="FORBIDDEN")


# --- State Machine Errors ---


class InvalidStateTransitionError(MarketplaceError):
    """Raised when an attempted state transition is not allowed.

    Example: PENDING_PAYMENT -> RELEASED (escrow must be FUNDED first)
    """

    def __init__(self, current_state: str, attempted_state: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {current_state} -> {attempted_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_state = attempted_state


class BidAlreadyAcceptedError(MarketplaceError):
    """Raised when a case already has an accepted bid."""

    def __init__(self, case_id: str) -> None:
        super().__init__(
            message=f"A bid has already been accepted for case: {case_id}",
            code="BID_ALREADY_ACCEPTED",
        )


class EscrowAlreadyExistsError(MarketplaceError):
    """Raised when creating a second escrow for the same case."""

    def __init__(self, case_id: str) -> None:
        super().__init__(
            message=f"Escrow already exists for case: {case_id}",
            code="ESCROW_ALREADY_EXISTS",
        )


class HoldPeriodNotElapsedError(MarketplaceError):
    """Raised when releasing an earning before its available_at timestamp."""

    def __init__(self, earning_id: str, available_at: datetime) -> None:
        super().__init__(
            message=(
                f"Earning {earning_id} is on hold until {available_at.isoformat()}"
            ),
            code="HOLD_PERIOD_NOT_ELAPSED",
        )
        self.available_at = available_at


# --- Validation Errors ---


class InvalidInputError(MarketplaceError):
    """Base exception for malformed or out-of-range input."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message=message, code=code)


class FeeOutsideBudgetError(InvalidInputError):
    def __init__(self, fee: int, budget_min: int, budget_max: int) -> None:
        super().__init__(
            message=f"Fee {fee} is outside the case budget [{budget_min}, {budget_max}]",
            code="FEE_OUTSIDE_BUDGET",
        )


class InvalidDisputeSplitError(InvalidInputError):
    def __init__(self, client_percent: int, lawyer_percent: int) -> None:
        super().__init__(
            message=(
                "Dispute split must be two percentages in [0, 100] summing to 100, "
                f"got {client_percent} + {lawyer_percent}"
            ),
            code="INVALID_DISPUTE_SPLIT",
        )


class PayoutBelowMinimumError(InvalidInputError):
    def __init__(self, amount: int, minimum: int) -> None:
        super().__init__(
            message=f"Minimum payout amount is {minimum}, requested {amount}",
            code="PAYOUT_BELOW_MINIMUM",
        )


class DuplicateBidError(InvalidInputError):
    def __init__(self, case_id: str) -> None:
        super().__init__(
            message=f"You have already submitted a bid for case: {case_id}",
            code="DUPLICATE_BID",
        )


class ConfirmationAlreadyRecordedError(InvalidInputError):
    def __init__(self, case_id: str, party: str) -> None:
        super().__init__(
            message=f"Case clear already confirmed by {party} for case: {case_id}",
            code="CONFIRMATION_ALREADY_RECORDED",
        )


# --- Funds ---


class InsufficientFundsError(MarketplaceError):
    """Raised when a payout exceeds the wallet's available balance."""

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            message=f"Insufficient funds: required {required}, available {available}",
            code="INSUFFICIENT_FUNDS",
        )
        self.required = required
        self.available = available


# --- Concurrency ---


class ConcurrentUpdateError(MarketplaceError):
    """Raised when an optimistic version check fails during flush."""

    def __init__(self, entity: str) -> None:
        super().__init__(
            message=f"{entity} was modified by another request, retry the operation",
            code="CONCURRENT_UPDATE",
        )


class SlotUnavailableError(MarketplaceError):
    """Raised when a requested consultation slot is taken or not offered."""

    def __init__(self, lawyer_id: str, start: datetime) -> None:
        super().__init__(
            message=f"Time slot {start.isoformat()} is not available for lawyer {lawyer_id}",
            code="SLOT_UNAVAILABLE",
        )


# --- Idempotency Errors ---


class DuplicateOperationError(MarketplaceError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )
