import logging
import uuid
from typing import Any, Mapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from slotbook.core.exceptions import AppointmentAlreadyCancelled, AppointmentNotFound, SlotUnavailableError
from slotbook.core.security import Identity
from slotbook.core.time import utcnow
from slotbook.models import Appointment, AppointmentStatus, AvailableSlot, Professional, SlotStatus
from slotbook.schemas.booking import AppointmentResponse, ClientInfo, validate_client_info
from slotbook.services.slot_service import SlotService, bookable_professional_conditions, open_slot_conditions

logger = logging.getLogger(__name__)


class BookingService:
    """
    Service for committing staged bookings into appointments.

    The commit claims the slot with a single conditional UPDATE, so two
    visitors racing for the same slot get exactly one success.
    """

    def __init__(self, db: AsyncSession, slot_service: SlotService | None = None):
        self.db = db
        self.slot_service = slot_service or SlotService(db)

    async def commit_appointment(
        self,
        slot_id: str,
        client_info: Mapping[str, Any] | ClientInfo,
        identity: Identity,
    ) -> AppointmentResponse:
        """
        Turn a staged draft into an appointment.

        Args:
            slot_id: UUID of the slot being claimed
            client_info: Contact details; re-validated here
            identity: The authenticated visitor

        Returns:
            The created appointment

        Raises:
            ClientInfoValidationError: contact details are invalid
            SlotUnavailableError: slot is gone, taken or too close to start
        """

        info = validate_client_info(client_info)

        try:
            slot_uuid = uuid.UUID(str(slot_id))
        except ValueError:
            raise SlotUnavailableError(str(slot_id), "The requested time slot does not exist.")

        now = utcnow()

        # Claim the slot: availability re-check and write in one statement
        claim = await self.db.execute(
            update(AvailableSlot)
            .where(
                AvailableSlot.id == slot_uuid,
                *open_slot_conditions(self.slot_service.booking_cutoff()),
                AvailableSlot.professional_id.in_(
                    select(Professional.id).where(*bookable_professional_conditions())
                ),
            )
            .values(
                status=SlotStatus.RESERVED.value,
                reserved_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        if claim.rowcount != 1:
            await self.db.rollback()
            logger.info(f"Slot {slot_id} could not be claimed for user {identity.user_id}")
            raise SlotUnavailableError(str(slot_id))

        result = await self.db.execute(
            select(AvailableSlot, Professional)
            .join(Professional, Professional.id == AvailableSlot.professional_id)
            .where(AvailableSlot.id == slot_uuid)
        )
        slot, professional = result.one()

        appointment = Appointment(
            slot_id=slot.id,
            professional_id=slot.professional_id,
            appointment_datetime=slot.appointment_datetime,
            status=AppointmentStatus.RESERVED.value,
            client_name=info.full_name,
            client_email=info.email,
            client_phone=info.phone,
            client_notes=info.notes,
            booked_by_user_id=identity.user_id,
            booked_by_email=identity.email,
            created_at=now,
        )
        self.db.add(appointment)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning(f"Slot {slot_id} already has an appointment")
            raise SlotUnavailableError(str(slot_id))

        await self.db.refresh(appointment)

        logger.info(f"✅ Appointment {appointment.id} booked on slot {slot_id} by {identity.user_id}")

        return self._appointment_to_response(appointment, professional.user_code)

    async def get_appointment(self, appointment_id: str, user_id: str) -> AppointmentResponse | None:
        """Get one appointment owned by the given identity."""

        try:
            appointment_uuid = uuid.UUID(str(appointment_id))
        except ValueError:
            return None

        result = await self.db.execute(
            select(Appointment, Professional.user_code)
            .join(Professional, Professional.id == Appointment.professional_id)
            .where(
                Appointment.id == appointment_uuid,
                Appointment.booked_by_user_id == user_id,
            )
        )
        row = result.one_or_none()

        if not row:
            return None

        appointment, user_code = row
        return self._appointment_to_response(appointment, user_code)

    async def cancel_appointment(self, appointment_id: str, user_id: str) -> AppointmentResponse:
        """
        Cancel an appointment and put its slot back on the catalog.

        Only the identity that booked it may cancel. The appointment and the
        slot change in the same transaction.

        Raises:
            AppointmentNotFound: unknown id, or owned by someone else
            AppointmentAlreadyCancelled: the appointment was cancelled before
        """

        try:
            appointment_uuid = uuid.UUID(str(appointment_id))
        except ValueError:
            raise AppointmentNotFound(str(appointment_id))

        result = await self.db.execute(
            select(Appointment, Professional.user_code)
            .join(Professional, Professional.id == Appointment.professional_id)
            .where(
                Appointment.id == appointment_uuid,
                Appointment.booked_by_user_id == user_id,
            )
        )
        row = result.one_or_none()

        if not row:
            raise AppointmentNotFound(str(appointment_id))

        appointment, user_code = row
        now = utcnow()

        # Conditional on the current status so two cancels cannot both succeed
        cancelled = await self.db.execute(
            update(Appointment)
            .where(
                Appointment.id == appointment_uuid,
                Appointment.status == AppointmentStatus.RESERVED.value,
            )
            .values(status=AppointmentStatus.CANCELLED.value, cancelled_at=now)
            .execution_options(synchronize_session=False)
        )

        if cancelled.rowcount != 1:
            await self.db.rollback()
            raise AppointmentAlreadyCancelled(str(appointment_id))

        await self.db.execute(
            update(AvailableSlot)
            .where(AvailableSlot.id == appointment.slot_id)
            .values(status=SlotStatus.AVAILABLE.value, reserved_at=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(appointment)

        logger.info(f"🗑️ Appointment {appointment.id} cancelled by {user_id}, slot {appointment.slot_id} released")

        return self._appointment_to_response(appointment, user_code)

    async def get_my_appointments(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> list[AppointmentResponse]:
        """Appointment history for an identity, soonest first."""

        offset = (max(page, 1) - 1) * page_size

        result = await self.db.execute(
            select(Appointment, Professional.user_code)
            .join(Professional, Professional.id == Appointment.professional_id)
            .where(Appointment.booked_by_user_id == user_id)
            .order_by(Appointment.appointment_datetime)
            .offset(offset)
            .limit(page_size)
        )

        return [self._appointment_to_response(a, code) for a, code in result.all()]

    def _appointment_to_response(self, appointment: Appointment, user_code: str | None) -> AppointmentResponse:
        return AppointmentResponse(
            id=str(appointment.id),
            slot_id=str(appointment.slot_id),
            professional_id=str(appointment.professional_id),
            professional_code=user_code,
            appointment_datetime=appointment.appointment_datetime,
            status=appointment.status,
            client_info=ClientInfo(
                full_name=appointment.client_name,
                email=appointment.client_email,
                phone=appointment.client_phone,
                notes=appointment.client_notes,
            ),
            booked_by_user_id=appointment.booked_by_user_id,
            booked_by_email=appointment.booked_by_email,
            created_at=appointment.created_at,
            cancelled_at=appointment.cancelled_at,
        )
