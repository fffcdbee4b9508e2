"""
Staged booking draft: the one in-flight booking a visitor has not confirmed yet.

The record is tagged and versioned on the wire. Anything that does not decode
into exactly this shape, including a payload written by a newer release with
extra fields, raises CorruptDraft so the wizard can fall back to a fresh start.
"""

import json
from datetime import datetime, timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from slotbook.core.exceptions import CorruptDraft
from slotbook.core.time import to_naive_utc, utcnow
from slotbook.schemas.booking import ClientInfo

DRAFT_KIND = "staged_booking"
DRAFT_VERSION = 1


class StagedBookingDraft(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    kind: Literal["staged_booking"] = DRAFT_KIND
    version: Literal[1] = DRAFT_VERSION
    slot_id: str | None = Field(default=None, alias="slotId")
    client_info: ClientInfo = Field(alias="clientInfo")
    professional_code: str = Field(alias="professionalCode", min_length=1)
    date_time: datetime | None = Field(default=None, alias="dateTime")
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("date_time", "timestamp")
    @classmethod
    def store_naive_utc(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value) if value is not None else None

    def encode(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def decode(cls, payload: str | bytes) -> "StagedBookingDraft":
        try:
            raw = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise CorruptDraft(f"Draft is not valid JSON: {e}")

        if not isinstance(raw, dict):
            raise CorruptDraft("Draft is not an object")
        if raw.get("kind") != DRAFT_KIND:
            raise CorruptDraft(f"Unexpected draft kind: {raw.get('kind')!r}")
        if raw.get("version") != DRAFT_VERSION:
            raise CorruptDraft(f"Unsupported draft version: {raw.get('version')!r}")

        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise CorruptDraft(f"Draft failed validation: {e.error_count()} error(s)")

    def without_slot(self) -> "StagedBookingDraft":
        """Same contact details with the slot selection dropped."""
        return self.model_copy(update={"slot_id": None, "date_time": None, "timestamp": utcnow()})

    def is_expired(self, max_age_minutes: int | None, now: datetime | None = None) -> bool:
        if max_age_minutes is None:
            return False
        now = now or utcnow()
        return now - self.timestamp > timedelta(minutes=max_age_minutes)
