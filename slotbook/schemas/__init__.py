from slotbook.schemas.catalog import (
    ProfessionalResponse,
    SlotResponse,
    ProfessionalWithSlots,
)
from slotbook.schemas.booking import (
    ClientInfo,
    AppointmentCommit,
    AppointmentResponse,
    SlotUnavailableError,
    ClientInfoErrorResponse,
    format_phone,
    normalize_phone,
    validate_client_info,
)
