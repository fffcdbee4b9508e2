from enum import Enum
from typing import Any, TypedDict


class WizardStep(str, Enum):
    DATE = "date"
    INFO = "info"
    CONFIRMATION = "confirmation"
    CONFIRMED = "confirmed"
    ABANDONED = "abandoned"


TERMINAL_STEPS = {WizardStep.CONFIRMED, WizardStep.ABANDONED}


class WizardState(TypedDict, total=False):
    """
    State carried through one booking wizard session.
    LangGraph passes this state to the transition node picked for each event.
    """

    # === Catalog (loaded through the API client) ===
    professional_code: str
    professional: dict | None
    slots: list[dict]

    # === Selections ===
    step: WizardStep
    selected_slot_id: str | None
    client_info: dict
    prefill_source: str | None      # 'draft', 'identity', 'blank'

    # === Identity ===
    identity: dict | None
    auth_required: bool
    auth_actions: list[str]         # 'login', 'sign_up'

    # === Outcome ===
    appointment: dict | None

    # === Feedback ===
    field_errors: dict[str, str]
    message: str | None

    # === Control flow ===
    event: str
    payload: Any
    actions: list[str]              # side effects for the wizard service to run
