"""Domain enumerations for the legal marketplace engine.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class Role(enum.StrEnum):
    """Role of the authenticated caller."""

    CLIENT = "CLIENT"
    LAWYER = "LAWYER"
    ADMIN = "ADMIN"


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------


class CaseStatus(enum.StrEnum):
    """Lifecycle states of a case.

    State transitions are enforced by CaseStateMachine.
    See domain/state_machine.py for the transition table.
    """

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    MATCHING = "MATCHING"
    BIDDING = "BIDDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    CASE_CLEAR_PENDING = "CASE_CLEAR_PENDING"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"


OPEN_FOR_BIDS = frozenset({CaseStatus.POSTED, CaseStatus.MATCHING, CaseStatus.BIDDING})


class AreaOfLaw(enum.StrEnum):
    FAMILY_LAW = "FAMILY_LAW"
    CRIMINAL_LAW = "CRIMINAL_LAW"
    CIVIL_LAW = "CIVIL_LAW"
    CORPORATE_LAW = "CORPORATE_LAW"
    PROPERTY_LAW = "PROPERTY_LAW"
    LABOR_LAW = "LABOR_LAW"
    TAX_LAW = "TAX_LAW"
    CONSTITUTIONAL_LAW = "CONSTITUTIONAL_LAW"
    BANKING_LAW = "BANKING_LAW"
    CYBER_LAW = "CYBER_LAW"
    OTHER = "OTHER"


class ServiceType(enum.StrEnum):
    LEGAL_CONSULTATION = "LEGAL_CONSULTATION"
    DOCUMENT_DRAFTING = "DOCUMENT_DRAFTING"
    COURT_REPRESENTATION = "COURT_REPRESENTATION"
    LEGAL_OPINION = "LEGAL_OPINION"
    CONTRACT_REVIEW = "CONTRACT_REVIEW"
    FULL_CASE_HANDLING = "FULL_CASE_HANDLING"


class Urgency(enum.StrEnum):
    NORMAL = "NORMAL"
    URGENT = "URGENT"


# ---------------------------------------------------------------------------
# Bids
# ---------------------------------------------------------------------------


class BidStatus(enum.StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class FeeType(enum.StrEnum):
    FIXED = "FIXED"
    HOURLY = "HOURLY"


# ---------------------------------------------------------------------------
# Escrow
# ---------------------------------------------------------------------------


class EscrowStatus(enum.StrEnum):
    """Custody states of a case's escrowed funds."""

    PENDING_PAYMENT = "PENDING_PAYMENT"
    FUNDED = "FUNDED"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"
    DISPUTED = "DISPUTED"


# ---------------------------------------------------------------------------
# Earnings & payouts
# ---------------------------------------------------------------------------


class EarningType(enum.StrEnum):
    CASE_PAYMENT = "CASE_PAYMENT"
    CONSULTATION_FEE = "CONSULTATION_FEE"
    BONUS = "BONUS"
    REFUND_DEDUCTION = "REFUND_DEDUCTION"


class EarningStatus(enum.StrEnum):
    PENDING = "PENDING"
    AVAILABLE = "AVAILABLE"
    WITHDRAWN = "WITHDRAWN"
    ON_HOLD = "ON_HOLD"


class PayoutStatus(enum.StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PayoutMethod(enum.StrEnum):
    BANK_TRANSFER = "BANK_TRANSFER"
    JAZZCASH = "JAZZCASH"
    EASYPAISA = "EASYPAISA"


# ---------------------------------------------------------------------------
# Consultations
# ---------------------------------------------------------------------------


class ConsultationType(enum.StrEnum):
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    CHAT = "CHAT"
    IN_PERSON = "IN_PERSON"


class ConsultationStatus(enum.StrEnum):
    PENDING = "PENDING"  # awaiting lawyer confirmation
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"  # client didn't show up
    RESCHEDULED = "RESCHEDULED"


ACTIVE_CONSULTATION_STATUSES = frozenset(
    {ConsultationStatus.PENDING, ConsultationStatus.CONFIRMED}
)


class CancelledBy(enum.StrEnum):
    CLIENT = "CLIENT"
    LAWYER = "LAWYER"


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


class EntityType(enum.StrEnum):
    CASE = "CASE"
    BID = "BID"
    ESCROW = "ESCROW"
    EARNING = "EARNING"
    PAYOUT = "PAYOUT"
    CONSULTATION = "CONSULTATION"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the marketplace_events table.

    Every state transition MUST produce exactly one event. The table doubles
    as the outbox the notification collaborator reads from.
    """

    # Cases
    CASE_CREATED = "CASE_CREATED"
    CASE_STATUS_CHANGED = "CASE_STATUS_CHANGED"
    LAWYER_ASSIGNED = "LAWYER_ASSIGNED"

    # Bids
    BID_SUBMITTED = "BID_SUBMITTED"
    BID_UPDATED = "BID_UPDATED"
    BID_WITHDRAWN = "BID_WITHDRAWN"
    BID_ACCEPTED = "BID_ACCEPTED"
    BID_REJECTED = "BID_REJECTED"

    # Escrow
    ESCROW_CREATED = "ESCROW_CREATED"
    ESCROW_FUNDED = "ESCROW_FUNDED"
    CASE_CLEAR_CONFIRMED = "CASE_CLEAR_CONFIRMED"
    ESCROW_RELEASED = "ESCROW_RELEASED"
    DISPUTE_RAISED = "DISPUTE_RAISED"
    DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
    ESCROW_REFUNDED = "ESCROW_REFUNDED"

    # Earnings & payouts
    EARNING_RECORDED = "EARNING_RECORDED"
    EARNING_RELEASED = "EARNING_RELEASED"
    EARNING_HELD = "EARNING_HELD"
    EARNING_HOLD_LIFTED = "EARNING_HOLD_LIFTED"
    EARNING_WITHDRAWN = "EARNING_WITHDRAWN"
    PAYOUT_REQUESTED = "PAYOUT_REQUESTED"
    PAYOUT_PROCESSING = "PAYOUT_PROCESSING"
    PAYOUT_COMPLETED = "PAYOUT_COMPLETED"
    PAYOUT_FAILED = "PAYOUT_FAILED"
    PAYOUT_CANCELLED = "PAYOUT_CANCELLED"

    # Consultations
    CONSULTATION_BOOKED = "CONSULTATION_BOOKED"
    CONSULTATION_CONFIRMED = "CONSULTATION_CONFIRMED"
    CONSULTATION_CANCELLED = "CONSULTATION_CANCELLED"
    CONSULTATION_COMPLETED = "CONSULTATION_COMPLETED"
    CONSULTATION_NO_SHOW = "CONSULTATION_NO_SHOW"
    CONSULTATION_RESCHEDULED = "CONSULTATION_RESCHEDULED"


# Transitions the notification collaborator is expected to fan out.
NOTIFIABLE_EVENTS = frozenset(
    {
        EventType.BID_ACCEPTED,
        EventType.ESCROW_FUNDED,
        EventType.CONSULTATION_CONFIRMED,
        EventType.PAYOUT_COMPLETED,
    }
)
