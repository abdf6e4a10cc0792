"""Event outbox REST API routes.

Routes:
    GET    /api/v1/events                 — Admin: events after a timestamp
    GET    /api/v1/events/notifications   — Admin: notifiable events after a timestamp
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from legal_marketplace.api.deps import get_caller, get_db_session
from legal_marketplace.domain.enums import EventType
from legal_marketplace.domain.identity import Caller
from legal_marketplace.schemas.common import EventResponse
from legal_marketplace.services.event_service import MAX_BATCH, EventService

router = APIRouter(prefix="/api/v1/events", tags=["Events"])


@router.get("", response_model=list[EventResponse], summary="Events after a timestamp")
async def list_events(
    after: datetime,
    event_type: list[EventType] | None = Query(default=None),
    limit: int = Query(default=100, gt=0, le=MAX_BATCH),
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[EventResponse]:
    caller.require_admin()
    events = await EventService(session).get_events_since(after, event_type, limit)
    return [EventResponse.model_validate(e) for e in events]


@router.get(
    "/notifications",
    response_model=list[EventResponse],
    summary="Transitions that should be notified",
)
async def list_notifications(
    after: datetime,
    limit: int = Query(default=100, gt=0, le=MAX_BATCH),
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[EventResponse]:
    caller.require_admin()
    events = await EventService(session).get_notifications_since(after, limit)
    return [EventResponse.model_validate(e) for e in events]
