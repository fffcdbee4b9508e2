# slotbook/models/__init__.py

from slotbook.core.database import Base

from slotbook.models.professional import Professional
from slotbook.models.slot import AvailableSlot
from slotbook.models.appointment import Appointment
from slotbook.models.enums import SlotStatus, AppointmentStatus

__all__ = [
    "Base",
    "Professional",
    "AvailableSlot",
    "Appointment",
    "SlotStatus",
    "AppointmentStatus",
]
