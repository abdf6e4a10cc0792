"""Domain layer — pure business logic with zero framework dependencies."""

from legal_marketplace.domain.collaborators import ConversationGateway
from legal_marketplace.domain.enums import (
    BidStatus,
    CaseStatus,
    ConsultationStatus,
    EarningStatus,
    EscrowStatus,
    EventType,
    PayoutStatus,
    Role,
)
from legal_marketplace.domain.exceptions import (
    EntityNotFoundError,
    InvalidStateTransitionError,
    MarketplaceError,
)
from legal_marketplace.domain.identity import Caller
from legal_marketplace.domain.state_machine import (
    BidStateMachine,
    CaseStateMachine,
    ConsultationStateMachine,
    EarningStateMachine,
    EscrowStateMachine,
    PayoutStateMachine,
    validate_transition,
)

__all__ = [
    "BidStatus",
    "CaseStatus",
    "ConsultationStatus",
    "EarningStatus",
    "EscrowStatus",
    "EventType",
    "PayoutStatus",
    "Role",
    "Caller",
    "ConversationGateway",
    "EntityNotFoundError",
    "InvalidStateTransitionError",
    "MarketplaceError",
    "BidStateMachine",
    "CaseStateMachine",
    "ConsultationStateMachine",
    "EarningStateMachine",
    "EscrowStateMachine",
    "PayoutStateMachine",
    "validate_transition",
]
