"""Conversation gateway used when no chat subsystem is wired in.

Generates conversation ids locally and logs the request, so bookings work
end to end in development and tests without a messaging backend.
"""

from __future__ import annotations

import uuid

from legal_marketplace.logging_config import get_logger

logger = get_logger(__name__)


class SimulatedConversationGateway:
    """Satisfies ConversationGateway without talking to a chat service."""

    def __init__(self) -> None:
        self.created: list[dict] = []

    async def create_conversation(
        self,
        participants: list[str],
        linked_case_id: str | None,
        conversation_type: str,
        title: str,
    ) -> str:
        conversation_id = f"conv_{uuid.uuid4().hex}"
        self.created.append(
            {
                "id": conversation_id,
                "participants": list(participants),
                "linked_case_id": linked_case_id,
                "type": conversation_type,
                "title": title,
            }
        )
        logger.info(
            "messaging.conversation_created",
            conversation_id=conversation_id,
            conversation_type=conversation_type,
            participants=len(participants),
            simulated=True,
        )
        return conversation_id
