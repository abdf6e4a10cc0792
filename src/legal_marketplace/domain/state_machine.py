"""Lifecycle State Machine Guards.

Uses python-statemachine to enforce legal state transitions at the domain
level. Whatever the API or a caller does, an illegal transition (e.g. an
escrow going PENDING_PAYMENT -> RELEASED) raises TransitionNotAllowed before
the ORM model's status is touched.

A machine is instantiated at the entity's current status, the event is fired,
and the resulting status is written back by the service.

Case:
    DRAFT              -> POSTED              (client_posts)
    POSTED             -> MATCHING            (matching_started)
    POSTED | MATCHING  -> BIDDING             (bidding_opened)
    BIDDING            -> ASSIGNED            (lawyer_assigned)
    ASSIGNED           -> IN_PROGRESS         (escrow_funded)
    IN_PROGRESS        -> CASE_CLEAR_PENDING  (clearance_requested)
    CASE_CLEAR_PENDING -> COMPLETED           (case_cleared)
    DISPUTED           -> COMPLETED           (case_cleared)
    any non-terminal   -> DISPUTED            (dispute_raised)
    any non-terminal   -> CANCELLED           (case_cancelled)

Bid:
    PENDING -> ACCEPTED | REJECTED | WITHDRAWN

Escrow:
    PENDING_PAYMENT -> FUNDED     (payment_confirmed)
    FUNDED          -> RELEASED   (both_parties_confirmed)
    FUNDED          -> DISPUTED   (party_disputes)
    DISPUTED        -> RELEASED   (dispute_resolved)
    FUNDED|DISPUTED -> REFUNDED   (admin_refunds)

Earning:
    PENDING   -> AVAILABLE (hold_elapsed)
    PENDING   -> ON_HOLD   (hold_placed)
    ON_HOLD   -> PENDING   (hold_lifted)
    AVAILABLE -> WITHDRAWN (funds_withdrawn)

Payout:
    PENDING            -> PROCESSING  (processing_started)
    PENDING|PROCESSING -> COMPLETED   (payout_completed)
    PENDING|PROCESSING -> FAILED      (payout_failed)
    PENDING            -> CANCELLED   (lawyer_cancels)

Consultation:
    PENDING           -> CONFIRMED    (lawyer_confirms)
    PENDING|CONFIRMED -> CANCELLED    (party_cancels)
    CONFIRMED         -> COMPLETED    (session_completed)
    CONFIRMED         -> NO_SHOW      (client_no_show)
    PENDING|CONFIRMED -> RESCHEDULED  (rescheduled)
"""

from __future__ import annotations

from statemachine import State, StateMachine

from legal_marketplace.domain.exceptions import InvalidStateTransitionError


class _StatusGuard:
    """Status-string helpers shared by every lifecycle machine.

    Usage:
        sm = EscrowStateMachine(current_status="FUNDED")
        sm.both_parties_confirmed()  # transitions to RELEASED
        sm.status                    # "RELEASED"
    """

    def __init__(self, current_status: str | None = None) -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current status value (e.g., "FUNDED").
                           Defaults to the machine's initial state.
        """
        valid_values = {s.value for s in self.states}
        if current_status is not None and str(current_status) not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        # start_value expects the string value, not the State object
        start = None if current_status is None else str(current_status)
        super().__init__(start_value=start)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches the status enum)."""
        return str(self.current_state.value)

    @property
    def is_final(self) -> bool:
        return bool(self.current_state.final)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


class CaseStateMachine(_StatusGuard, StateMachine):
    """Guards the case lifecycle from DRAFT to a terminal state."""

    # --- States ---
    DRAFT = State("DRAFT", initial=True)
    POSTED = State("POSTED")
    MATCHING = State("MATCHING")
    BIDDING = State("BIDDING")
    ASSIGNED = State("ASSIGNED")
    IN_PROGRESS = State("IN_PROGRESS")
    CASE_CLEAR_PENDING = State("CASE_CLEAR_PENDING")
    DISPUTED = State("DISPUTED")
    COMPLETED = State("COMPLETED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    # --- Events / Transitions ---

    # Posting & matching
    client_posts = DRAFT.to(POSTED)
    matching_started = POSTED.to(MATCHING)
    bidding_opened = POSTED.to(BIDDING) | MATCHING.to(BIDDING)

    # Assignment & work
    lawyer_assigned = BIDDING.to(ASSIGNED)
    escrow_funded = ASSIGNED.to(IN_PROGRESS)
    clearance_requested = IN_PROGRESS.to(CASE_CLEAR_PENDING)
    case_cleared = CASE_CLEAR_PENDING.to(COMPLETED) | DISPUTED.to(COMPLETED)

    # Escape hatches
    dispute_raised = (
        DRAFT.to(DISPUTED)
        | POSTED.to(DISPUTED)
        | MATCHING.to(DISPUTED)
        | BIDDING.to(DISPUTED)
        | ASSIGNED.to(DISPUTED)
        | IN_PROGRESS.to(DISPUTED)
        | CASE_CLEAR_PENDING.to(DISPUTED)
    )
    case_cancelled = (
        DRAFT.to(CANCELLED)
        | POSTED.to(CANCELLED)
        | MATCHING.to(CANCELLED)
        | BIDDING.to(CANCELLED)
        | ASSIGNED.to(CANCELLED)
        | IN_PROGRESS.to(CANCELLED)
        | CASE_CLEAR_PENDING.to(CANCELLED)
        | DISPUTED.to(CANCELLED)
    )


class BidStateMachine(_StatusGuard, StateMachine):
    """A bid is decided exactly once."""

    PENDING = State("PENDING", initial=True)
    ACCEPTED = State("ACCEPTED", final=True)
    REJECTED = State("REJECTED", final=True)
    WITHDRAWN = State("WITHDRAWN", final=True)

    bid_accepted = PENDING.to(ACCEPTED)
    bid_rejected = PENDING.to(REJECTED)
    bid_withdrawn = PENDING.to(WITHDRAWN)


class EscrowStateMachine(_StatusGuard, StateMachine):
    """Guards custody of a case's escrowed funds."""

    # --- States ---
    PENDING_PAYMENT = State("PENDING_PAYMENT", initial=True)
    FUNDED = State("FUNDED")
    DISPUTED = State("DISPUTED")
    RELEASED = State("RELEASED", final=True)
    REFUNDED = State("REFUNDED", final=True)

    # --- Events / Transitions ---

    # Funding
    payment_confirmed = PENDING_PAYMENT.to(FUNDED)

    # Settlement
    both_parties_confirmed = FUNDED.to(RELEASED)
    admin_refunds = FUNDED.to(REFUNDED) | DISPUTED.to(REFUNDED)

    # Disputes
    party_disputes = FUNDED.to(DISPUTED)
    dispute_resolved = DISPUTED.to(RELEASED)


class EarningStateMachine(_StatusGuard, StateMachine):
    PENDING = State("PENDING", initial=True)
    ON_HOLD = State("ON_HOLD")
    AVAILABLE = State("AVAILABLE")
    WITHDRAWN = State("WITHDRAWN", final=True)

    hold_elapsed = PENDING.to(AVAILABLE)
    hold_placed = PENDING.to(ON_HOLD)
    hold_lifted = ON_HOLD.to(PENDING)
    funds_withdrawn = AVAILABLE.to(WITHDRAWN)


class PayoutStateMachine(_StatusGuard, StateMachine):
    PENDING = State("PENDING", initial=True)
    PROCESSING = State("PROCESSING")
    COMPLETED = State("COMPLETED", final=True)
    FAILED = State("FAILED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    processing_started = PENDING.to(PROCESSING)
    payout_completed = PENDING.to(COMPLETED) | PROCESSING.to(COMPLETED)
    payout_failed = PENDING.to(FAILED) | PROCESSING.to(FAILED)
    lawyer_cancels = PENDING.to(CANCELLED)


class ConsultationStateMachine(_StatusGuard, StateMachine):
    PENDING = State("PENDING", initial=True)
    CONFIRMED = State("CONFIRMED")
    COMPLETED = State("COMPLETED", final=True)
    CANCELLED = State("CANCELLED", final=True)
    NO_SHOW = State("NO_SHOW", final=True)
    RESCHEDULED = State("RESCHEDULED", final=True)

    lawyer_confirms = PENDING.to(CONFIRMED)
    party_cancels = PENDING.to(CANCELLED) | CONFIRMED.to(CANCELLED)
    session_completed = CONFIRMED.to(COMPLETED)
    client_no_show = CONFIRMED.to(NO_SHOW)
    rescheduled = PENDING.to(RESCHEDULED) | CONFIRMED.to(RESCHEDULED)


def validate_transition(
    machine_cls: type[StateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a state transition and return the new status.

    This is a convenience function that creates a temporary state machine,
    fires the named event, and returns the resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = machine_cls(current_status=current_status)

    known_events = {event.id for event in sm.events}
    if event_name not in known_events:
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    getattr(sm, event_name)()
    return sm.status


def guard_target(
    machine_cls: type[StateMachine],
    current_status: str,
    target_status: str,
) -> str:
    """Return the event that moves current_status to target_status, or raise."""
    for event_name in machine_cls(current_status=current_status).get_allowed_events():
        if validate_transition(machine_cls, current_status, event_name) == str(target_status):
            return event_name
    raise InvalidStateTransitionError(str(current_status), str(target_status))
