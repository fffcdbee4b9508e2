"""
Booking confirmation notices.

Delivery (email/SMS) belongs to an external collaborator. The booking core only
hands the committed appointment over and never lets a delivery failure reach the
commit that triggered it.
"""

import logging
from typing import Protocol

from slotbook.schemas.booking import AppointmentResponse

logger = logging.getLogger(__name__)


class BookingNotifier(Protocol):
    async def send_booking_confirmation(self, appointment: AppointmentResponse) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records the notice in the log only."""

    async def send_booking_confirmation(self, appointment: AppointmentResponse) -> None:
        logger.info(
            f"📧 Booking confirmation for appointment {appointment.id} "
            f"queued to {appointment.client_info.email}"
        )


async def dispatch_booking_notice(notifier: BookingNotifier, appointment: AppointmentResponse) -> bool:
    """
    Send the confirmation notice, swallowing and logging delivery failures.

    Returns:
        True if the notifier accepted the notice
    """
    try:
        await notifier.send_booking_confirmation(appointment)
        return True
    except Exception as e:
        logger.error(f"❌ Failed to send confirmation for appointment {appointment.id}: {e}")
        return False


_notifier: BookingNotifier = LoggingNotifier()


def get_notifier() -> BookingNotifier:
    """FastAPI dependency returning the configured notifier."""
    return _notifier
