from slotbook.core.exceptions import ClientInfoValidationError
from slotbook.schemas.booking import validate_client_info
from slotbook.wizard.state import TERMINAL_STEPS, WizardState, WizardStep

AUTH_ACTIONS = ["login", "sign_up"]

BLANK_CLIENT_INFO = {"full_name": "", "email": "", "phone": "", "notes": ""}

CATALOG_FAILED_MESSAGE = "We couldn't load available times. Please try again."
SLOT_GONE_MESSAGE = "The time you selected is no longer available. Please choose another one."
AUTH_MESSAGE = "Log in or create an account to confirm your booking."


def _start_transition(state: WizardState) -> WizardState:
    """Every transition starts with no pending side effects and no stale feedback."""
    state["actions"] = []
    state["field_errors"] = {}
    state["message"] = None
    return state


def _find_slot(state: WizardState, slot_id: str | None) -> dict | None:
    if not slot_id:
        return None
    for slot in state.get("slots", []):
        if slot["id"] == slot_id:
            return slot
    return None


def _has_client_info(state: WizardState) -> bool:
    return any(value for value in (state.get("client_info") or {}).values())


# ============== Router ==============

EVENT_NODES = {
    "catalog_loaded": "catalog_loaded_node",
    "catalog_failed": "catalog_failed_node",
    "select_slot": "select_slot_node",
    "continue": "continue_to_info_node",
    "submit_info": "submit_info_node",
    "back": "back_node",
    "confirm": "confirm_node",
    "commit_succeeded": "commit_succeeded_node",
    "commit_conflict": "commit_conflict_node",
    "commit_failed": "commit_failed_node",
    "commit_rejected": "commit_rejected_node",
    "auth_required": "auth_required_node",
    "resume": "resume_node",
    "preselect": "preselect_node",
    "cancel": "cancel_node",
    "abandon": "abandon_node",
}


def route_event(state: WizardState) -> str:
    """
    Conditional entry point - picks the transition node for the incoming event.
    Returns the name of the node to run.
    """
    if state.get("step") in TERMINAL_STEPS:
        return "ignore_event_node"
    return EVENT_NODES.get(state.get("event", ""), "ignore_event_node")


# ============== Catalog ==============

async def catalog_loaded_node(state: WizardState) -> WizardState:
    """Catalog arrived: replace professional and slots, drop a selection that vanished."""
    _start_transition(state)
    payload = state.get("payload") or {}

    state["professional"] = payload.get("professional")
    state["slots"] = payload.get("slots", [])

    if state.get("step") == WizardStep.DATE and not _find_slot(state, state.get("selected_slot_id")):
        state["selected_slot_id"] = None

    if state["professional"] is None:
        state["message"] = "We could not find this professional."
    elif not state["slots"]:
        state["message"] = "There are no available times with this professional right now."
    return state


async def catalog_failed_node(state: WizardState) -> WizardState:
    """Degrade to an empty slot list; the wizard stays usable for a retry."""
    _start_transition(state)
    state["slots"] = []
    state["message"] = state.get("payload") or CATALOG_FAILED_MESSAGE
    return state


# ============== Date step ==============

async def select_slot_node(state: WizardState) -> WizardState:
    _start_transition(state)
    if state.get("step") != WizardStep.DATE:
        return state

    slot_id = state.get("payload")
    if _find_slot(state, slot_id) is None:
        state["field_errors"] = {"slot_id": "Select an available time"}
        return state

    state["selected_slot_id"] = slot_id
    return state


async def continue_to_info_node(state: WizardState) -> WizardState:
    """
    Date -> Info.

    Contact details are pre-populated once per entry: details already held
    (a resumed draft or earlier input) win over the identity's profile, which
    wins over a blank form.
    """
    _start_transition(state)
    if state.get("step") != WizardStep.DATE:
        return state

    if _find_slot(state, state.get("selected_slot_id")) is None:
        state["field_errors"] = {"slot_id": "Select an available time"}
        return state

    identity = state.get("identity")
    if _has_client_info(state):
        state["client_info"] = {**BLANK_CLIENT_INFO, **state["client_info"]}
        state["prefill_source"] = state.get("prefill_source") or "draft"
    elif identity:
        state["client_info"] = {
            **BLANK_CLIENT_INFO,
            "full_name": identity.get("full_name") or "",
            "email": identity.get("email") or "",
        }
        state["prefill_source"] = "identity"
    else:
        state["client_info"] = dict(BLANK_CLIENT_INFO)
        state["prefill_source"] = "blank"

    state["step"] = WizardStep.INFO
    return state


# ============== Info step ==============

async def submit_info_node(state: WizardState) -> WizardState:
    """Info -> Confirmation once the contact details validate; the draft is staged."""
    _start_transition(state)
    if state.get("step") != WizardStep.INFO:
        return state

    form = {**BLANK_CLIENT_INFO, **(state.get("payload") or {})}
    try:
        info = validate_client_info(form)
    except ClientInfoValidationError as e:
        state["client_info"] = form
        state["field_errors"] = e.field_errors
        return state

    state["client_info"] = info.model_dump()
    state["step"] = WizardStep.CONFIRMATION
    state["actions"] = ["stage_draft"]
    return state


async def back_node(state: WizardState) -> WizardState:
    """Confirmation -> Info -> Date. Nothing entered so far is discarded."""
    _start_transition(state)
    step = state.get("step")
    if step == WizardStep.CONFIRMATION:
        state["step"] = WizardStep.INFO
        state["auth_required"] = False
        state["auth_actions"] = []
    elif step == WizardStep.INFO:
        state["step"] = WizardStep.DATE
    return state


# ============== Confirmation step ==============

async def confirm_node(state: WizardState) -> WizardState:
    """Commit when an identity is present, otherwise offer the identity flows."""
    _start_transition(state)
    if state.get("step") != WizardStep.CONFIRMATION:
        return state

    if not state.get("identity"):
        state["auth_required"] = True
        state["auth_actions"] = list(AUTH_ACTIONS)
        state["message"] = AUTH_MESSAGE
        return state

    state["auth_required"] = False
    state["auth_actions"] = []
    state["actions"] = ["commit"]
    return state


async def commit_succeeded_node(state: WizardState) -> WizardState:
    _start_transition(state)
    state["appointment"] = state.get("payload")
    state["step"] = WizardStep.CONFIRMED
    state["auth_required"] = False
    state["auth_actions"] = []
    state["message"] = "Your appointment is confirmed."
    state["actions"] = ["clear_stage"]
    return state


async def commit_conflict_node(state: WizardState) -> WizardState:
    """The slot was taken: drop it, keep the contact details, back to Date."""
    _start_transition(state)
    lost_slot_id = state.get("selected_slot_id")

    state["slots"] = [s for s in state.get("slots", []) if s["id"] != lost_slot_id]
    state["selected_slot_id"] = None
    state["prefill_source"] = "draft"
    state["step"] = WizardStep.DATE
    state["message"] = state.get("payload") or SLOT_GONE_MESSAGE
    state["actions"] = ["restage_without_slot"]
    return state


async def commit_failed_node(state: WizardState) -> WizardState:
    """Retryable failure. Selections and the staged draft stay as they are."""
    _start_transition(state)
    state["message"] = state.get("payload") or "We couldn't confirm your booking. Please try again."
    return state


async def commit_rejected_node(state: WizardState) -> WizardState:
    _start_transition(state)
    state["step"] = WizardStep.INFO
    state["field_errors"] = state.get("payload") or {}
    return state


async def auth_required_node(state: WizardState) -> WizardState:
    """The identity went away before the commit landed."""
    _start_transition(state)
    state["identity"] = None
    state["auth_required"] = True
    state["auth_actions"] = list(AUTH_ACTIONS)
    state["message"] = AUTH_MESSAGE
    return state


# ============== Entry ==============

async def resume_node(state: WizardState) -> WizardState:
    """
    Back from the identity flow: re-enter at Confirmation with the staged
    details, or at Date when the staged slot is no longer listed.
    """
    _start_transition(state)
    draft = state.get("payload") or {}

    state["client_info"] = {**BLANK_CLIENT_INFO, **(draft.get("client_info") or {})}
    state["prefill_source"] = "draft"

    if _find_slot(state, draft.get("slot_id")) is None:
        state["selected_slot_id"] = None
        state["step"] = WizardStep.DATE
        state["message"] = SLOT_GONE_MESSAGE
        state["actions"] = ["restage_without_slot"]
        return state

    state["selected_slot_id"] = draft["slot_id"]
    state["step"] = WizardStep.CONFIRMATION
    if not state.get("identity"):
        state["auth_required"] = True
        state["auth_actions"] = list(AUTH_ACTIONS)
        state["message"] = AUTH_MESSAGE
    return state


async def preselect_node(state: WizardState) -> WizardState:
    """Fresh entry with a staged draft: start at Date with its choices filled in."""
    _start_transition(state)
    draft = state.get("payload") or {}

    state["client_info"] = {**BLANK_CLIENT_INFO, **(draft.get("client_info") or {})}
    state["prefill_source"] = "draft"
    if _find_slot(state, draft.get("slot_id")) is not None:
        state["selected_slot_id"] = draft["slot_id"]
    state["step"] = WizardStep.DATE
    return state


async def cancel_node(state: WizardState) -> WizardState:
    """Explicit cancellation discards the staged draft and starts over."""
    _start_transition(state)
    state["step"] = WizardStep.DATE
    state["selected_slot_id"] = None
    state["client_info"] = {}
    state["prefill_source"] = None
    state["auth_required"] = False
    state["auth_actions"] = []
    state["actions"] = ["clear_stage"]
    return state


async def abandon_node(state: WizardState) -> WizardState:
    """The visitor left. Whatever is staged stays staged."""
    _start_transition(state)
    state["step"] = WizardStep.ABANDONED
    return state


async def ignore_event_node(state: WizardState) -> WizardState:
    state["actions"] = []
    return state
