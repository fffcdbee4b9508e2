"""
Booking error taxonomy.

Services raise these; routers turn them into HTTP responses and the wizard
handles each one at the step boundary where it occurs.
"""


class BookingError(Exception):
    """Base class for every booking-flow error."""


class SlotUnavailableError(BookingError):
    """The slot was taken (or removed) before the commit could claim it."""

    def __init__(self, slot_id: str, message: str = "The requested time slot is no longer available."):
        super().__init__(message)
        self.slot_id = slot_id
        self.message = message


class ClientInfoValidationError(BookingError):
    """Contact details failed validation. Always attributed to specific fields."""

    def __init__(self, field_errors: dict[str, str]):
        super().__init__(", ".join(f"{k}: {v}" for k, v in field_errors.items()))
        self.field_errors = field_errors


class TransientFetchFailure(BookingError):
    """A catalog, identity or commit call failed in a retryable way."""


class CorruptDraft(BookingError):
    """A staged draft could not be decoded, or is expired or stale."""


class ProfessionalNotFound(BookingError):
    def __init__(self, code: str):
        super().__init__(f"Professional not found: {code}")
        self.code = code


class AuthRequired(BookingError):
    """No identity is attached to the request."""


class AppointmentNotFound(BookingError):
    def __init__(self, appointment_id: str):
        super().__init__(f"Appointment not found: {appointment_id}")
        self.appointment_id = appointment_id


class AppointmentAlreadyCancelled(BookingError):
    """Cancelling twice is rejected."""

    def __init__(self, appointment_id: str):
        super().__init__("Appointment is already cancelled")
        self.appointment_id = appointment_id
