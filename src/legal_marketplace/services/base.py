"""Shared plumbing for the lifecycle services.

Every service runs inside the caller's AsyncSession (one request, one
transaction), reads marketplace constants from Settings, and takes its
notion of "now" from an injectable clock so hold periods and booking
windows can be tested deterministically.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from statemachine.exceptions import TransitionNotAllowed

from legal_marketplace.config import Settings, get_settings
from legal_marketplace.domain.clock import utc_now
from legal_marketplace.domain.exceptions import InvalidStateTransitionError
from legal_marketplace.domain.state_machine import validate_transition
from legal_marketplace.infrastructure.database.repositories import EventRepository

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession
    from statemachine import StateMachine

    from legal_marketplace.domain.clock import Clock
    from legal_marketplace.domain.enums import EntityType, EventType


class LifecycleService:
    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or utc_now
        self._settings = settings or get_settings()
        self._event_repo = EventRepository(session)

    def _now(self) -> datetime:
        return self._clock()

    @staticmethod
    def _check_transition(
        machine_cls: type[StateMachine], current_status: str, event_name: str
    ) -> str:
        """Return the status ``event_name`` leads to, without touching any entity."""
        try:
            return validate_transition(machine_cls, current_status, event_name)
        except TransitionNotAllowed as exc:
            raise InvalidStateTransitionError(str(current_status), event_name) from exc

    def _fire(
        self,
        entity: Any,
        machine_cls: type[StateMachine],
        event_name: str,
    ) -> tuple[str, str]:
        """Validate and apply a transition to an ORM entity's status.

        Raises InvalidStateTransitionError before the entity is touched if
        the transition is illegal. Returns ``(old_status, new_status)``.
        """
        old_status = entity.status
        new_status = self._check_transition(machine_cls, old_status, event_name)
        entity.status = new_status
        entity.updated_at = self._now()
        return old_status, new_status

    async def _record(
        self,
        entity_type: EntityType,
        entity_id: uuid.UUID | str,
        event_type: EventType,
        old_status: str | None,
        new_status: str | None,
        actor: str,
        metadata: dict | None = None,
    ) -> None:
        await self._event_repo.record(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            at=self._now(),
            metadata=metadata,
        )

    async def get_events(self, entity_type: EntityType, entity_id: uuid.UUID | str) -> list:
        """Audit trail for one entity, oldest first."""
        return await self._event_repo.get_by_entity(entity_type, entity_id)
