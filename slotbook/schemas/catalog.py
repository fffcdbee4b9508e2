from datetime import datetime

from pydantic import BaseModel


class ProfessionalResponse(BaseModel):
    id: str
    email: str
    full_name: str | None
    user_code: str | None
    active: bool

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or (self.user_code or "")


class SlotResponse(BaseModel):
    id: str
    professional_id: str
    appointment_datetime: datetime


class ProfessionalWithSlots(BaseModel):
    professional: ProfessionalResponse
    slots: list[SlotResponse]
