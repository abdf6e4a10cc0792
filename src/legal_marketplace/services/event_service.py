"""Read side of the marketplace event log.

The notification collaborator polls ``get_events_since`` with the timestamp
of the last event it handled; every service appends through
``LifecycleService._record``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from legal_marketplace.domain.clock import as_utc
from legal_marketplace.domain.enums import NOTIFIABLE_EVENTS
from legal_marketplace.services.base import LifecycleService

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from legal_marketplace.domain.enums import EventType
    from legal_marketplace.infrastructure.database.orm_models import MarketplaceEvent

MAX_BATCH = 500


class EventService(LifecycleService):
    async def get_events_since(
        self,
        after: datetime,
        event_types: Iterable[EventType] | None = None,
        limit: int = 100,
    ) -> list[MarketplaceEvent]:
        """Events recorded after ``after``, oldest first, capped at ``MAX_BATCH``.

        A naive ``after`` is taken to be UTC.
        """
        after = as_utc(after)
        return await self._event_repo.get_since(after, event_types, min(limit, MAX_BATCH))

    async def get_notifications_since(
        self, after: datetime, limit: int = 100
    ) -> list[MarketplaceEvent]:
        """Only the transitions that should trigger an outbound notification."""
        return await self.get_events_since(after, NOTIFIABLE_EVENTS, limit)
