import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.database import get_db
from slotbook.core.exceptions import (
    AppointmentAlreadyCancelled,
    AppointmentNotFound,
    ClientInfoValidationError,
    SlotUnavailableError,
)
from slotbook.core.security import Identity, get_current_identity
from slotbook.schemas.booking import (
    AppointmentCommit,
    AppointmentResponse,
    ClientInfoErrorResponse,
    SlotUnavailableError as SlotUnavailableResponse,
)
from slotbook.services.booking_service import BookingService
from slotbook.services.notification_service import BookingNotifier, dispatch_booking_notice, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


# ==================== COMMIT ====================

@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": SlotUnavailableResponse},
        422: {"model": ClientInfoErrorResponse},
    },
)
async def commit_appointment(
    request: AppointmentCommit,
    background_tasks: BackgroundTasks,
    identity: Identity = Depends(get_current_identity),
    notifier: BookingNotifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db)
):
    """
    Commit a staged booking.

    The slot availability re-check and the write happen in one atomic
    statement. The confirmation notice is sent after the response and its
    outcome never affects the commit.

    Request body:
    - slot_id: The slot chosen in the Date step
    - client_info: full_name, email, phone, notes (optional)

    Returns:
    - 201 with the appointment
    - 409 when the slot was taken in the meantime
    - 422 with field_errors when contact details are invalid
    """
    try:
        appointment = await BookingService(db).commit_appointment(
            slot_id=request.slot_id,
            client_info=request.client_info,
            identity=identity,
        )
    except ClientInfoValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=ClientInfoErrorResponse(field_errors=e.field_errors).model_dump(),
        )
    except SlotUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SlotUnavailableResponse(message=e.message, slot_id=e.slot_id).model_dump(),
        )

    background_tasks.add_task(dispatch_booking_notice, notifier, appointment)
    return appointment


# ==================== HISTORY ====================

@router.get("/me", response_model=list[AppointmentResponse])
async def get_my_appointments(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Get the caller's appointment history."""
    return await BookingService(db).get_my_appointments(identity.user_id, page, page_size)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Get one of the caller's appointments."""
    appointment = await BookingService(db).get_appointment(appointment_id, identity.user_id)

    if not appointment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")

    return appointment


# ==================== CANCEL ====================

@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel one of the caller's appointments. The slot becomes bookable again.

    Returns:
    - 200 with the cancelled appointment
    - 404 when the appointment does not exist or belongs to someone else
    - 409 when it was already cancelled
    """
    try:
        return await BookingService(db).cancel_appointment(appointment_id, identity.user_id)
    except AppointmentNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    except AppointmentAlreadyCancelled as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
