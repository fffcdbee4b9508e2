import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from slotbook.core.exceptions import ClientInfoValidationError

PHONE_DIGITS = 10
NAME_MIN_LENGTH = 3
NOTES_MAX_LENGTH = 500

FIELD_LABELS = {
    "full_name": "Full name",
    "email": "Email",
    "phone": "Phone number",
    "notes": "Notes",
}


def format_phone(value: str) -> str:
    """Progressively format digits as XXX-XXX-XXXX while the visitor types."""
    digits = re.sub(r"\D", "", value)
    if len(digits) <= 3:
        return digits
    if len(digits) <= 6:
        return f"{digits[:3]}-{digits[3:]}"
    return f"{digits[:3]}-{digits[3:6]}-{digits[6:10]}"


def normalize_phone(value: str) -> str:
    """Return XXX-XXX-XXXX for input holding exactly ten digits, else raise ValueError."""
    digits = re.sub(r"\D", "", value)
    if len(digits) != PHONE_DIGITS:
        raise ValueError("Phone number must have 10 digits")
    return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"


# ============== Contact Info Schema ==============

class ClientInfo(BaseModel):
    """Contact info collected from the visitor in the Info step."""
    model_config = ConfigDict(frozen=True)

    full_name: str
    email: str
    phone: str
    notes: str | None = None

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Full name is required")
        if len(value) < NAME_MIN_LENGTH:
            raise ValueError(f"Full name must be at least {NAME_MIN_LENGTH} characters")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Email is required")
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError:
            raise ValueError("Enter a valid email address")
        return value

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Phone number is required")
        return normalize_phone(value)

    @field_validator("notes")
    @classmethod
    def check_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if len(value) > NOTES_MAX_LENGTH:
            raise ValueError(f"Notes must not exceed {NOTES_MAX_LENGTH} characters")
        return value or None


def field_errors_from(exc: ValidationError) -> dict[str, str]:
    """Flatten a pydantic error into one message per ClientInfo field."""
    errors: dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "client_info"
        if field in errors:
            continue
        label = FIELD_LABELS.get(field, field)
        if err["type"] == "missing":
            errors[field] = f"{label} is required"
        elif err["type"] == "value_error" and "error" in err.get("ctx", {}):
            errors[field] = str(err["ctx"]["error"])
        else:
            errors[field] = f"{label} is invalid"
    return errors


def validate_client_info(data: Mapping[str, Any] | ClientInfo) -> ClientInfo:
    """Validate raw form data. Raises ClientInfoValidationError with field-scoped messages."""
    if isinstance(data, ClientInfo):
        data = data.model_dump()
    try:
        return ClientInfo.model_validate(dict(data))
    except ValidationError as e:
        raise ClientInfoValidationError(field_errors_from(e))


# ============== Commit Schemas ==============

class AppointmentCommit(BaseModel):
    """Commit a staged booking under the caller's identity."""
    slot_id: str = Field(..., min_length=1)
    client_info: dict[str, Any]


class AppointmentResponse(BaseModel):
    id: str
    slot_id: str
    professional_id: str
    professional_code: str | None = None
    appointment_datetime: datetime
    status: str
    client_info: ClientInfo
    booked_by_user_id: str
    booked_by_email: str
    created_at: datetime
    cancelled_at: datetime | None = None


# ============== Error Responses ==============

class SlotUnavailableError(BaseModel):
    """Returned when requested slot is no longer available."""
    error: str = "slot_unavailable"
    message: str = "The requested time slot is no longer available."
    slot_id: str | None = None


class ClientInfoErrorResponse(BaseModel):
    error: str = "invalid_client_info"
    field_errors: dict[str, str]
