import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from slotbook.core.exceptions import (
    AuthRequired,
    BookingError,
    ClientInfoValidationError,
    CorruptDraft,
    ProfessionalNotFound,
    SlotUnavailableError,
)
from slotbook.core.security import Identity
from slotbook.schemas.booking import AppointmentResponse, ClientInfo
from slotbook.schemas.catalog import ProfessionalResponse, SlotResponse
from slotbook.wizard.api_client import BookingApiClient
from slotbook.wizard.draft import StagedBookingDraft
from slotbook.wizard.graph import wizard_graph
from slotbook.wizard.handoff import AuthHandoff, is_handoff_return
from slotbook.wizard.staging import StagedBookingStore
from slotbook.wizard.state import WizardState, WizardStep

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Please wait for the current request to finish."


class WizardView(BaseModel):
    """Snapshot of the wizard handed to the page after every operation."""
    step: WizardStep
    professional_code: str
    professional: ProfessionalResponse | None = None
    slots: list[SlotResponse] = Field(default_factory=list)
    selected_slot: SlotResponse | None = None
    client_info: dict[str, Any] = Field(default_factory=dict)
    prefill_source: str | None = None
    field_errors: dict[str, str] = Field(default_factory=dict)
    message: str | None = None
    auth_required: bool = False
    auth_options: list[str] = Field(default_factory=list)
    appointment: AppointmentResponse | None = None
    busy: bool = False
    redirect_to: str | None = None


class BookingWizard:
    """
    Booking wizard for one professional: Date -> Info -> Confirmation.

    Transitions run through the LangGraph wizard graph. This class does the
    I/O around it: catalog and identity fetches, staging writes and the
    commit. While a call is awaited the wizard is busy and further
    submissions are rejected; responses that land after the visitor left are
    discarded.
    """

    def __init__(
        self,
        professional_code: str,
        api: BookingApiClient,
        store: StagedBookingStore,
        handoff: AuthHandoff | None = None,
    ):
        self.professional_code = professional_code
        self.api = api
        self.store = store
        self.handoff = handoff or AuthHandoff(store)

        self.busy = False
        self.redirect_to: str | None = None
        self._request_seq = 0
        self._entry_query: Mapping[str, str] | str | None = None
        self._entry_pending = False

        self.state: WizardState = {
            "professional_code": professional_code,
            "professional": None,
            "slots": [],
            "step": WizardStep.DATE,
            "selected_slot_id": None,
            "client_info": {},
            "prefill_source": None,
            "identity": None,
            "auth_required": False,
            "auth_actions": [],
            "appointment": None,
            "field_errors": {},
            "message": None,
            "actions": [],
        }

    # ============== Entry ==============

    async def start(self, query: Mapping[str, str] | str | None = None) -> WizardView:
        """
        Enter the wizard from the booking route.

        With from_appointment=true and a pending draft the wizard resumes at
        Confirmation. Otherwise it starts at Date, pre-filled from a draft
        staged earlier for the same professional.
        """
        if self.busy:
            return self._rejected()

        self._entry_query = query
        self._entry_pending = True

        self.busy = True
        seq = self._next_request()
        try:
            event, payload = await self._fetch_catalog()
            identity = await self._fetch_identity()
        finally:
            self.busy = False

        if seq != self._request_seq:
            logger.info("Discarding catalog response for a wizard that moved on")
            return self.view()

        self.state["identity"] = identity.model_dump() if identity else None
        await self._dispatch(event, payload)

        if event == "catalog_loaded":
            await self._enter_from_stage()
        return self.view()

    async def reload_catalog(self) -> WizardView:
        """Retry after a catalog failure, or refresh the slot list."""
        if self.busy:
            return self._rejected()

        self.busy = True
        seq = self._next_request()
        try:
            event, payload = await self._fetch_catalog()
        finally:
            self.busy = False

        if seq != self._request_seq:
            logger.info("Discarding catalog response for a wizard that moved on")
            return self.view()

        await self._dispatch(event, payload)
        if event == "catalog_loaded" and self._entry_pending:
            await self._enter_from_stage()
        return self.view()

    async def _enter_from_stage(self) -> None:
        """Resume or pre-select from the staged draft, once per wizard entry."""
        self._entry_pending = False
        query = self._entry_query

        if is_handoff_return(query):
            try:
                draft = self.handoff.resume(query, professional_code=self.professional_code)
            except CorruptDraft:
                draft = None
            if draft is not None:
                if self.state.get("professional") is None:
                    logger.warning(f"Dropping draft for unknown professional {draft.professional_code}")
                    self.store.clear()
                    return
                await self._dispatch("resume", self._draft_payload(draft))
                return

        # Nothing to resume: a fresh entry, pre-filled from a draft for this professional
        try:
            draft = self.store.read()
        except CorruptDraft as e:
            logger.warning(f"Discarding staged draft: {e}")
            self.store.clear()
            return

        if draft is None or draft.professional_code != self.professional_code:
            return
        if self.state.get("professional") is None:
            logger.warning(f"Dropping draft for unknown professional {draft.professional_code}")
            self.store.clear()
            return
        await self._dispatch("preselect", self._draft_payload(draft))

    # ============== Steps ==============

    async def select_slot(self, slot_id: str) -> WizardView:
        if self.busy:
            return self._rejected()
        await self._dispatch("select_slot", slot_id)
        return self.view()

    async def continue_to_info(self) -> WizardView:
        if self.busy:
            return self._rejected()
        await self._dispatch("continue")
        return self.view()

    async def submit_info(self, form: Mapping[str, Any]) -> WizardView:
        """Validate the Info form; on success the draft is staged and Confirmation shown."""
        if self.busy:
            return self._rejected()
        await self._dispatch("submit_info", dict(form))
        return self.view()

    async def back(self) -> WizardView:
        if self.busy:
            return self._rejected()
        await self._dispatch("back")
        return self.view()

    async def confirm(self) -> WizardView:
        """
        Confirm the booking.

        Without an identity this offers login / sign-up instead of committing.
        """
        if self.busy:
            return self._rejected()

        await self._dispatch("confirm")
        if "commit" not in self.state.get("actions", []):
            return self.view()

        self.busy = True
        seq = self._next_request()
        try:
            event, payload = await self._commit()
        finally:
            self.busy = False

        if seq != self._request_seq:
            if event == "commit_succeeded":
                self.store.clear()
            logger.info(f"Discarding {event} for a wizard that moved on")
            return self.view()

        await self._dispatch(event, payload)
        return self.view()

    async def login(self) -> WizardView:
        return await self._suspend("login")

    async def sign_up(self) -> WizardView:
        return await self._suspend("sign_up")

    async def cancel(self) -> WizardView:
        """Discard the booking in progress, including anything staged."""
        if self.busy:
            return self._rejected()
        self.redirect_to = None
        await self._dispatch("cancel")
        return self.view()

    async def abandon(self) -> WizardView:
        """The visitor closed the page. Staged data is left in place."""
        self._next_request()
        await self._dispatch("abandon")
        return self.view()

    def view(self) -> WizardView:
        state = self.state
        selected = next(
            (s for s in state.get("slots", []) if s["id"] == state.get("selected_slot_id")),
            None,
        )
        return WizardView(
            step=state["step"],
            professional_code=self.professional_code,
            professional=state.get("professional"),
            slots=state.get("slots", []),
            selected_slot=selected,
            client_info=state.get("client_info") or {},
            prefill_source=state.get("prefill_source"),
            field_errors=state.get("field_errors") or {},
            message=state.get("message"),
            auth_required=bool(state.get("auth_required")),
            auth_options=state.get("auth_actions") or [],
            appointment=state.get("appointment"),
            busy=self.busy,
            redirect_to=self.redirect_to,
        )

    # ============== Internals ==============

    def _next_request(self) -> int:
        self._request_seq += 1
        return self._request_seq

    def _rejected(self) -> WizardView:
        self.state["message"] = BUSY_MESSAGE
        return self.view()

    async def _dispatch(self, event: str, payload: Any = None) -> None:
        result = await wizard_graph.ainvoke({**self.state, "event": event, "payload": payload})
        self.state = result
        self._run_actions()

    def _run_actions(self) -> None:
        for action in self.state.get("actions", []):
            if action == "stage_draft":
                self.store.write(self._draft_from_state())
            elif action == "restage_without_slot":
                self.store.write(self._draft_from_state(include_slot=False))
            elif action == "clear_stage":
                self.store.clear()

    def _draft_from_state(self, include_slot: bool = True) -> StagedBookingDraft:
        slot = None
        if include_slot:
            slot = next(
                (s for s in self.state.get("slots", []) if s["id"] == self.state.get("selected_slot_id")),
                None,
            )
        return StagedBookingDraft(
            slot_id=slot["id"] if slot else None,
            client_info=ClientInfo.model_validate(self.state.get("client_info") or {}),
            professional_code=self.professional_code,
            date_time=slot["appointment_datetime"] if slot else None,
        )

    @staticmethod
    def _draft_payload(draft: StagedBookingDraft) -> dict:
        return {
            "slot_id": draft.slot_id,
            "client_info": draft.client_info.model_dump(),
            "date_time": draft.date_time,
        }

    async def _suspend(self, flow: str) -> WizardView:
        """Stage the draft and point the page at the identity flow."""
        if self.busy:
            return self._rejected()
        if self.state.get("step") != WizardStep.CONFIRMATION or not self.state.get("auth_required"):
            return self.view()

        self.redirect_to = self.handoff.suspend(self._draft_from_state(), flow)
        return self.view()

    async def _fetch_catalog(self) -> tuple[str, Any]:
        code = self.professional_code
        try:
            professional = await self.api.get_professional(code)
            slots = await self.api.get_slots(code)
        except ProfessionalNotFound:
            logger.info(f"Unknown professional code: {code}")
            return "catalog_loaded", {"professional": None, "slots": []}
        except BookingError as e:
            logger.warning(f"⚠️ Catalog fetch failed for {code}: {e}")
            return "catalog_failed", None

        return "catalog_loaded", {
            "professional": professional.model_dump(),
            "slots": [slot.model_dump() for slot in slots],
        }

    async def _fetch_identity(self) -> Identity | None:
        try:
            return await self.api.get_identity()
        except BookingError as e:
            logger.warning(f"Identity check failed, continuing without one: {e}")
            return None

    async def _commit(self) -> tuple[str, Any]:
        slot_id = self.state.get("selected_slot_id")
        try:
            appointment = await self.api.commit(slot_id, self.state.get("client_info") or {})
        except SlotUnavailableError:
            logger.info(f"Slot {slot_id} was taken before the commit")
            return "commit_conflict", None
        except ClientInfoValidationError as e:
            return "commit_rejected", e.field_errors
        except AuthRequired:
            return "auth_required", None
        except BookingError as e:
            logger.warning(f"⚠️ Commit failed for slot {slot_id}: {e}")
            return "commit_failed", None

        logger.info(f"✅ Booking confirmed: appointment {appointment.id}")
        return "commit_succeeded", appointment.model_dump()
