"""Collaborator Protocols.

Interfaces for the external systems the engine hands work to. These are
Protocols (structural subtyping), so a concrete gateway only has to match
the shape.

The domain layer has ZERO imports from any chat or messaging SDK.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ConversationGateway(Protocol):
    """Creates the chat thread attached to a booked consultation.

    Concrete implementations:
        - infrastructure/messaging.py (SimulatedConversationGateway)
    """

    async def create_conversation(
        self,
        participants: list[str],
        linked_case_id: str | None,
        conversation_type: str,
        title: str,
    ) -> str:
        """Create a conversation and return its id.

        Args:
            participants: User ids of everyone in the thread (lawyer first).
            linked_case_id: Case the conversation belongs to, if any.
            conversation_type: Kind of thread, e.g. "CONSULTATION".
            title: Display title, e.g. "Consultation: Tenancy dispute".
        """
        ...
