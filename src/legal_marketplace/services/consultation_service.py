"""Consultation Service — lawyer availability, slot search and bookings.

Slot generation itself is pure (domain/scheduling.py); this service loads
the inputs and owns the writes. A booking re-checks its slot while holding
a row lock on the lawyer's availability, so two bookings for the same
lawyer are serialized, and the partial unique index on
(lawyer_id, scheduled_date) backs that up on databases that ignore the lock.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from legal_marketplace.domain.enums import (
    CancelledBy,
    ConsultationStatus,
    EarningType,
    EntityType,
    EventType,
)
from legal_marketplace.domain.exceptions import (
    AuthorizationError,
    AvailabilityNotFoundError,
    ConsultationNotFoundError,
    InvalidInputError,
    SlotUnavailableError,
)
from legal_marketplace.domain.money import apply_rate
from legal_marketplace.domain.scheduling import (
    BookedInterval,
    TimeSlot,
    day_windows,
    generate_slots,
    validate_weekly_schedule,
)
from legal_marketplace.domain.state_machine import ConsultationStateMachine
from legal_marketplace.infrastructure.database.orm_models import (
    Consultation,
    LawyerAvailability,
)
from legal_marketplace.infrastructure.database.repositories import (
    AvailabilityRepository,
    ConsultationRepository,
)
from legal_marketplace.infrastructure.messaging import SimulatedConversationGateway
from legal_marketplace.logging_config import get_logger
from legal_marketplace.services.base import LifecycleService
from legal_marketplace.services.earnings_service import EarningsService

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from legal_marketplace.config import Settings
    from legal_marketplace.domain.clock import Clock
    from legal_marketplace.domain.collaborators import ConversationGateway
    from legal_marketplace.domain.enums import ConsultationType

logger = get_logger(__name__)

CONVERSATION_TYPE = "CONSULTATION"


class ConsultationService(LifecycleService):
    """Manages availability and the consultation lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        settings: Settings | None = None,
        gateway: ConversationGateway | None = None,
    ) -> None:
        super().__init__(session, clock, settings)
        self._availability_repo = AvailabilityRepository(session)
        self._consultation_repo = ConsultationRepository(session)
        self._earnings = EarningsService(session, self._clock, self._settings)
        self._gateway = gateway or SimulatedConversationGateway()
        self._tz = self._settings.schedule_zone

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def set_availability(
        self,
        lawyer_id: str,
        weekly_schedule: dict,
        blocked_dates: Iterable[date] = (),
        consultation_duration: int | None = None,
        buffer_time: int | None = None,
    ) -> LawyerAvailability:
        """Create or replace a lawyer's weekly schedule."""
        validate_weekly_schedule(weekly_schedule)
        duration = consultation_duration or self._settings.default_consultation_minutes
        buffer = self._settings.default_buffer_minutes if buffer_time is None else buffer_time
        if duration <= 0 or buffer < 0:
            raise InvalidInputError(
                "Duration must be positive and buffer non-negative", code="INVALID_DURATION"
            )

        availability = await self._availability_repo.get(lawyer_id, for_update=True)
        if availability is None:
            availability = LawyerAvailability(lawyer_id=lawyer_id)
            self._session.add(availability)
        availability.weekly_schedule = weekly_schedule
        availability.blocked_dates = sorted({d.isoformat() for d in blocked_dates})
        availability.consultation_duration = duration
        availability.buffer_time = buffer
        availability.updated_at = self._now()
        await self._availability_repo.flush()

        logger.info(
            "availability.updated",
            lawyer_id=lawyer_id,
            duration=duration,
            buffer=buffer,
            blocked_days=len(availability.blocked_dates),
        )
        return availability

    async def get_availability(self, lawyer_id: str) -> LawyerAvailability:
        return await self._get_availability_or_raise(lawyer_id)

    async def add_blocked_date(self, lawyer_id: str, day: date) -> LawyerAvailability:
        availability = await self._get_availability_or_raise(lawyer_id, for_update=True)
        blocked = set(availability.blocked_dates)
        blocked.add(day.isoformat())
        availability.blocked_dates = sorted(blocked)
        availability.updated_at = self._now()
        await self._availability_repo.flush()
        logger.info("availability.date_blocked", lawyer_id=lawyer_id, day=day.isoformat())
        return availability

    async def remove_blocked_date(self, lawyer_id: str, day: date) -> LawyerAvailability:
        availability = await self._get_availability_or_raise(lawyer_id, for_update=True)
        availability.blocked_dates = [d for d in availability.blocked_dates if d != day.isoformat()]
        availability.updated_at = self._now()
        await self._availability_repo.flush()
        logger.info("availability.date_unblocked", lawyer_id=lawyer_id, day=day.isoformat())
        return availability

    # ------------------------------------------------------------------
    # Slot search
    # ------------------------------------------------------------------

    async def get_available_slots(self, lawyer_id: str, day: date) -> list[TimeSlot]:
        """Every slot on ``day`` with its free/taken flag.

        Empty when the lawyer has no schedule, the day is blocked, or the
        weekday is disabled.
        """
        availability = await self._availability_repo.get(lawyer_id)
        if availability is None:
            return []
        return await self._slots_for(availability, day)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def book_consultation(
        self,
        lawyer_id: str,
        lawyer_name: str,
        client_id: str,
        client_name: str,
        consultation_type: ConsultationType,
        scheduled_date: datetime,
        fee: int,
        topic: str,
        description: str | None = None,
        lawyer_avatar: str | None = None,
        client_avatar: str | None = None,
    ) -> Consultation:
        """Book a PENDING consultation in a free slot and open its conversation."""
        if lawyer_id == client_id:
            raise AuthorizationError("You cannot book a consultation with yourself")
        if fee < 0:
            raise InvalidInputError("Consultation fee cannot be negative", code="INVALID_FEE")
        self._require_future(scheduled_date)

        availability = await self._get_availability_or_raise(lawyer_id, for_update=True)
        await self._require_free_slot(availability, scheduled_date)

        now = self._now()
        consultation = Consultation(
            lawyer_id=lawyer_id,
            lawyer_name=lawyer_name,
            lawyer_avatar=lawyer_avatar,
            client_id=client_id,
            client_name=client_name,
            client_avatar=client_avatar,
            consultation_type=str(consultation_type),
            scheduled_date=scheduled_date,
            duration=availability.consultation_duration,
            fee=fee,
            topic=topic,
            description=description,
            status=ConsultationStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        consultation = await self._insert(consultation)

        consultation.conversation_id = await self._gateway.create_conversation(
            participants=[lawyer_id, client_id],
            linked_case_id=None,
            conversation_type=CONVERSATION_TYPE,
            title=f"Consultation: {topic}",
        )
        await self._consultation_repo.flush()

        await self._record(
            EntityType.CONSULTATION,
            consultation.id,
            EventType.CONSULTATION_BOOKED,
            None,
            consultation.status,
            actor=client_id,
            metadata={
                "lawyer_id": lawyer_id,
                "scheduled_date": scheduled_date.isoformat(),
                "fee": fee,
            },
        )
        logger.info(
            "consultation.booked",
            consultation_id=str(consultation.id),
            lawyer_id=lawyer_id,
            scheduled_date=scheduled_date.isoformat(),
        )
        return consultation

    async def reschedule_consultation(
        self,
        consultation_id: uuid.UUID,
        new_date: datetime,
        user_id: str,
    ) -> Consultation:
        """Move a consultation to a new slot.

        The old record becomes RESCHEDULED and a new PENDING one points back
        to it. The consultation being moved never blocks its own new slot.
        """
        old = await self._get_consultation_or_raise(consultation_id, for_update=True)
        self._cancelling_party(old, user_id)
        self._require_future(new_date)

        availability = await self._get_availability_or_raise(old.lawyer_id, for_update=True)
        self._check_transition(ConsultationStateMachine, old.status, "rescheduled")
        await self._require_free_slot(availability, new_date, exclude_id=old.id)

        old_status, _ = self._fire(old, ConsultationStateMachine, "rescheduled")
        await self._consultation_repo.flush()

        now = self._now()
        replacement = Consultation(
            lawyer_id=old.lawyer_id,
            lawyer_name=old.lawyer_name,
            lawyer_avatar=old.lawyer_avatar,
            client_id=old.client_id,
            client_name=old.client_name,
            client_avatar=old.client_avatar,
            consultation_type=old.consultation_type,
            scheduled_date=new_date,
            duration=old.duration,
            fee=old.fee,
            topic=old.topic,
            description=old.description,
            conversation_id=old.conversation_id,
            status=ConsultationStatus.PENDING.value,
            rescheduled_from=old.id,
            created_at=now,
            updated_at=now,
        )
        replacement = await self._insert(replacement)

        await self._record(
            EntityType.CONSULTATION,
            old.id,
            EventType.CONSULTATION_RESCHEDULED,
            old_status,
            old.status,
            actor=user_id,
            metadata={"new_consultation_id": str(replacement.id)},
        )
        await self._record(
            EntityType.CONSULTATION,
            replacement.id,
            EventType.CONSULTATION_BOOKED,
            None,
            replacement.status,
            actor=user_id,
            metadata={
                "rescheduled_from": str(old.id),
                "scheduled_date": new_date.isoformat(),
            },
        )
        logger.info(
            "consultation.rescheduled",
            consultation_id=str(old.id),
            new_consultation_id=str(replacement.id),
            scheduled_date=new_date.isoformat(),
        )
        return replacement

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def confirm_consultation(
        self,
        consultation_id: uuid.UUID,
        lawyer_id: str,
        meeting_link: str | None = None,
    ) -> Consultation:
        consultation = await self._get_consultation_or_raise(consultation_id, for_update=True)
        self._require_lawyer(consultation, lawyer_id)

        old_status, _ = self._fire(consultation, ConsultationStateMachine, "lawyer_confirms")
        consultation.meeting_link = meeting_link
        await self._consultation_repo.flush()

        await self._record(
            EntityType.CONSULTATION,
            consultation.id,
            EventType.CONSULTATION_CONFIRMED,
            old_status,
            consultation.status,
            actor=lawyer_id,
        )
        logger.info("consultation.confirmed", consultation_id=str(consultation.id))
        return consultation

    async def cancel_consultation(
        self,
        consultation_id: uuid.UUID,
        user_id: str,
        reason: str | None = None,
    ) -> Consultation:
        """Either party cancels; the record keeps which side it was."""
        consultation = await self._get_consultation_or_raise(consultation_id, for_update=True)
        cancelled_by = self._cancelling_party(consultation, user_id)

        old_status, _ = self._fire(consultation, ConsultationStateMachine, "party_cancels")
        consultation.cancelled_by = cancelled_by.value
        consultation.cancellation_reason = reason
        await self._consultation_repo.flush()

        await self._record(
            EntityType.CONSULTATION,
            consultation.id,
            EventType.CONSULTATION_CANCELLED,
            old_status,
            consultation.status,
            actor=user_id,
            metadata={"cancelled_by": cancelled_by.value, "reason": reason},
        )
        logger.info(
            "consultation.cancelled",
            consultation_id=str(consultation.id),
            cancelled_by=cancelled_by.value,
        )
        return consultation

    async def complete_consultation(
        self,
        consultation_id: uuid.UUID,
        lawyer_id: str,
        notes: str | None = None,
    ) -> Consultation:
        """Close a held consultation and credit the lawyer the full fee."""
        consultation = await self._get_consultation_or_raise(consultation_id, for_update=True)
        self._require_lawyer(consultation, lawyer_id)

        old_status, _ = self._fire(consultation, ConsultationStateMachine, "session_completed")
        consultation.notes = notes
        consultation.completed_at = consultation.updated_at
        await self._consultation_repo.flush()

        await self._credit(
            consultation, consultation.fee, f"Consultation with {consultation.client_name}"
        )
        await self._record(
            EntityType.CONSULTATION,
            consultation.id,
            EventType.CONSULTATION_COMPLETED,
            old_status,
            consultation.status,
            actor=lawyer_id,
        )
        logger.info("consultation.completed", consultation_id=str(consultation.id))
        return consultation

    async def mark_no_show(self, consultation_id: uuid.UUID, lawyer_id: str) -> Consultation:
        """Client did not attend; the lawyer keeps a share of the fee."""
        consultation = await self._get_consultation_or_raise(consultation_id, for_update=True)
        self._require_lawyer(consultation, lawyer_id)

        old_status, _ = self._fire(consultation, ConsultationStateMachine, "client_no_show")
        await self._consultation_repo.flush()

        amount = apply_rate(consultation.fee, self._settings.no_show_fee_rate)
        await self._credit(
            consultation, amount, f"No-show consultation with {consultation.client_name}"
        )
        await self._record(
            EntityType.CONSULTATION,
            consultation.id,
            EventType.CONSULTATION_NO_SHOW,
            old_status,
            consultation.status,
            actor=lawyer_id,
            metadata={"earning_amount": amount},
        )
        logger.info("consultation.no_show", consultation_id=str(consultation.id), amount=amount)
        return consultation

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_consultation(self, consultation_id: uuid.UUID) -> Consultation:
        return await self._get_consultation_or_raise(consultation_id)

    async def list_lawyer_consultations(
        self,
        lawyer_id: str,
        statuses: Iterable[ConsultationStatus] | None = None,
    ) -> list[Consultation]:
        return await self._consultation_repo.list_by_lawyer(lawyer_id, statuses)

    async def list_client_consultations(self, client_id: str) -> list[Consultation]:
        return await self._consultation_repo.list_by_client(client_id)

    async def list_upcoming_consultations(self, user_id: str) -> list[Consultation]:
        return await self._consultation_repo.list_upcoming(user_id, self._now())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _slots_for(
        self,
        availability: LawyerAvailability,
        day: date,
        exclude_id: uuid.UUID | None = None,
    ) -> list[TimeSlot]:
        if day.isoformat() in availability.blocked_dates:
            return []
        windows = day_windows(availability.weekly_schedule, day)
        if not windows:
            return []

        # Widen by a day each side so bookings spilling over midnight still count.
        midnight = datetime.combine(day, time(0, 0), tzinfo=self._tz)
        active = await self._consultation_repo.list_active_between(
            availability.lawyer_id,
            midnight - timedelta(days=1),
            midnight + timedelta(days=2),
            exclude_id=exclude_id,
        )
        booked = [BookedInterval(c.scheduled_date, c.duration) for c in active]
        return generate_slots(
            day,
            windows,
            availability.consultation_duration,
            availability.buffer_time,
            booked,
            self._tz,
        )

    async def _require_free_slot(
        self,
        availability: LawyerAvailability,
        starts_at: datetime,
        exclude_id: uuid.UUID | None = None,
    ) -> None:
        local = starts_at.astimezone(self._tz)
        slots = await self._slots_for(availability, local.date(), exclude_id=exclude_id)
        if not any(s.available and s.starts_at == local for s in slots):
            raise SlotUnavailableError(availability.lawyer_id, starts_at)

    async def _insert(self, consultation: Consultation) -> Consultation:
        try:
            return await self._consultation_repo.add(consultation)
        except IntegrityError as exc:
            raise SlotUnavailableError(consultation.lawyer_id, consultation.scheduled_date) from exc

    async def _credit(self, consultation: Consultation, amount: int, description: str) -> None:
        if amount <= 0:
            return
        await self._earnings.record_earning(
            consultation.lawyer_id,
            amount,
            EarningType.CONSULTATION_FEE,
            description=description,
            consultation_id=consultation.id,
            client_name=consultation.client_name,
            actor=consultation.lawyer_id,
        )

    def _require_future(self, starts_at: datetime) -> None:
        if starts_at.tzinfo is None:
            raise InvalidInputError(
                "Consultation time must include a timezone", code="NAIVE_DATETIME"
            )
        if starts_at <= self._now():
            raise InvalidInputError("Cannot book a consultation in the past", code="PAST_DATE")

    @staticmethod
    def _require_lawyer(consultation: Consultation, lawyer_id: str) -> None:
        if consultation.lawyer_id != lawyer_id:
            raise AuthorizationError("Only the consulting lawyer can do that")

    @staticmethod
    def _cancelling_party(consultation: Consultation, user_id: str) -> CancelledBy:
        if user_id == consultation.client_id:
            return CancelledBy.CLIENT
        if user_id == consultation.lawyer_id:
            return CancelledBy.LAWYER
        raise AuthorizationError("Only a participant can change this consultation")

    async def _get_availability_or_raise(
        self, lawyer_id: str, for_update: bool = False
    ) -> LawyerAvailability:
        availability = await self._availability_repo.get(lawyer_id, for_update=for_update)
        if availability is None:
            raise AvailabilityNotFoundError(lawyer_id)
        return availability

    async def _get_consultation_or_raise(
        self, consultation_id: uuid.UUID, for_update: bool = False
    ) -> Consultation:
        consultation = await self._consultation_repo.get_by_id(
            consultation_id, for_update=for_update
        )
        if consultation is None:
            raise ConsultationNotFoundError(str(consultation_id))
        return consultation
