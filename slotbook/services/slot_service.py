import logging
import uuid
from datetime import date, datetime, time, timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from slotbook.core.config import settings
from slotbook.core.time import utcnow
from slotbook.models import AvailableSlot, Professional, SlotStatus
from slotbook.schemas.catalog import ProfessionalResponse, ProfessionalWithSlots, SlotResponse

logger = logging.getLogger(__name__)


def _parse_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def open_slot_conditions(cutoff: datetime) -> list:
    """Row filter for a slot that can still be booked."""
    return [
        AvailableSlot.status == SlotStatus.AVAILABLE.value,
        AvailableSlot.deleted_at.is_(None),
        AvailableSlot.appointment_datetime >= cutoff,
    ]


def bookable_professional_conditions() -> list:
    return [
        Professional.active.is_(True),
        Professional.user_code.is_not(None),
        func.trim(Professional.user_code) != "",
    ]


def professional_to_response(professional: Professional) -> ProfessionalResponse:
    return ProfessionalResponse(
        id=str(professional.id),
        email=professional.email,
        full_name=professional.full_name,
        user_code=professional.user_code,
        active=professional.active,
    )


def slot_to_response(slot: AvailableSlot) -> SlotResponse:
    return SlotResponse(
        id=str(slot.id),
        professional_id=str(slot.professional_id),
        appointment_datetime=slot.appointment_datetime,
    )


class SlotService:
    """
    Read-only catalog of bookable professionals and their open slots.

    Handles:
    - Listing professionals that currently have at least one open slot
    - Resolving a professional by public booking code
    - Listing open slots, optionally for a single day
    - Checking whether a single slot is still open

    A slot is open while it is AVAILABLE, not soft-deleted and at least
    MIN_RESERVATION_LEAD_MINUTES in the future.
    """

    def __init__(self, db: AsyncSession, min_lead_minutes: int | None = None):
        self.db = db
        self.min_lead_minutes = (
            settings.MIN_RESERVATION_LEAD_MINUTES if min_lead_minutes is None else min_lead_minutes
        )

    def booking_cutoff(self) -> datetime:
        """Earliest appointment time that can still be reserved."""
        return utcnow() + timedelta(minutes=self.min_lead_minutes)

    async def list_professionals_with_available_slots(self) -> list[ProfessionalWithSlots]:
        """
        Get active professionals that have a booking code and open slots.

        Professionals with zero open slots or without a code are excluded.
        """

        result = await self.db.execute(
            select(Professional, AvailableSlot)
            .join(AvailableSlot, AvailableSlot.professional_id == Professional.id)
            .where(*bookable_professional_conditions(), *open_slot_conditions(self.booking_cutoff()))
            .order_by(Professional.full_name, AvailableSlot.appointment_datetime)
        )

        grouped: dict[uuid.UUID, ProfessionalWithSlots] = {}
        for professional, slot in result.all():
            entry = grouped.get(professional.id)
            if entry is None:
                entry = ProfessionalWithSlots(
                    professional=professional_to_response(professional),
                    slots=[],
                )
                grouped[professional.id] = entry
            entry.slots.append(slot_to_response(slot))

        return list(grouped.values())

    async def get_professional_by_code(self, user_code: str) -> ProfessionalResponse | None:
        """Resolve an active professional by public booking code."""

        code = (user_code or "").strip()
        if not code:
            return None

        result = await self.db.execute(
            select(Professional).where(
                Professional.user_code == code,
                Professional.active.is_(True),
            )
        )
        professional = result.scalar_one_or_none()

        if not professional:
            return None

        return professional_to_response(professional)

    async def get_available_slots(
        self,
        professional_id: str,
        target_date: date | None = None,
    ) -> list[SlotResponse]:
        """
        Get open slots for a professional.

        Args:
            professional_id: UUID of the professional
            target_date: Restrict to this day (UTC) when given

        Returns:
            Slots ordered by appointment time
        """

        professional_uuid = _parse_uuid(professional_id)
        if professional_uuid is None:
            return []

        query = select(AvailableSlot).where(
            AvailableSlot.professional_id == professional_uuid,
            *open_slot_conditions(self.booking_cutoff()),
        )

        if target_date is not None:
            start_of_day = datetime.combine(target_date, time.min)
            end_of_day = datetime.combine(target_date, time.max)
            query = query.where(
                AvailableSlot.appointment_datetime >= start_of_day,
                AvailableSlot.appointment_datetime <= end_of_day,
            )

        result = await self.db.execute(query.order_by(AvailableSlot.appointment_datetime))
        return [slot_to_response(s) for s in result.scalars().all()]
