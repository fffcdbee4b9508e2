import enum


class SlotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"


class AppointmentStatus(str, enum.Enum):
    RESERVED = "RESERVED"
    CANCELLED = "CANCELLED"
