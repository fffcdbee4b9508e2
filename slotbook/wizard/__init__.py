from slotbook.wizard.api_client import BookingApiClient
from slotbook.wizard.draft import StagedBookingDraft
from slotbook.wizard.handoff import AuthHandoff, is_handoff_return
from slotbook.wizard.service import BookingWizard, WizardView
from slotbook.wizard.staging import (
    DRAFT_KEY,
    PENDING_KEY,
    FileStagedBookingStore,
    MemoryStagedBookingStore,
    StagedBookingStore,
)
from slotbook.wizard.state import WizardStep

__all__ = [
    "AuthHandoff",
    "BookingApiClient",
    "BookingWizard",
    "DRAFT_KEY",
    "FileStagedBookingStore",
    "MemoryStagedBookingStore",
    "PENDING_KEY",
    "StagedBookingDraft",
    "StagedBookingStore",
    "WizardStep",
    "WizardView",
    "is_handoff_return",
]
