import logging
from datetime import date
from typing import Any, Mapping

import httpx

from slotbook.core.config import settings
from slotbook.core.exceptions import (
    AppointmentAlreadyCancelled,
    AppointmentNotFound,
    AuthRequired,
    BookingError,
    ClientInfoValidationError,
    ProfessionalNotFound,
    SlotUnavailableError,
    TransientFetchFailure,
)
from slotbook.core.security import Identity
from slotbook.schemas.booking import AppointmentResponse, ClientInfo
from slotbook.schemas.catalog import ProfessionalResponse, ProfessionalWithSlots, SlotResponse

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class BookingApiClient:
    """
    HTTP client for the booking API used by the wizard.

    Maps transport problems and 5xx responses to TransientFetchFailure and
    the API's structured errors to the booking error taxonomy.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.BOOKING_API_URL,
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "BookingApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def set_token(self, token: str | None) -> None:
        """Attach (or drop) the identity provider's bearer token."""
        self.token = token

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(
                method, f"{API_PREFIX}{path}", headers=self._headers(), **kwargs
            )
        except httpx.TransportError as e:
            logger.warning(f"Booking API {method} {path} failed: {e!r}")
            raise TransientFetchFailure(f"Could not reach the booking service: {e}") from e

        if response.status_code >= 500:
            logger.warning(f"Booking API {method} {path} returned {response.status_code}")
            raise TransientFetchFailure(f"Booking service error ({response.status_code})")
        return response

    @staticmethod
    def _unexpected(response: httpx.Response) -> BookingError:
        return BookingError(f"Unexpected response {response.status_code}: {response.text}")

    # ============== Catalog ==============

    async def list_professionals(self) -> list[ProfessionalWithSlots]:
        response = await self._request("GET", "/public/professionals")
        if response.status_code != 200:
            raise self._unexpected(response)
        return [ProfessionalWithSlots.model_validate(item) for item in response.json()]

    async def get_professional(self, code: str) -> ProfessionalResponse:
        response = await self._request("GET", f"/public/professionals/{code}")
        if response.status_code == 404:
            raise ProfessionalNotFound(code)
        if response.status_code != 200:
            raise self._unexpected(response)
        return ProfessionalResponse.model_validate(response.json())

    async def get_slots(self, code: str, target_date: date | None = None) -> list[SlotResponse]:
        params = {"date": target_date.isoformat()} if target_date else None
        response = await self._request("GET", f"/public/professionals/{code}/slots", params=params)
        if response.status_code == 404:
            raise ProfessionalNotFound(code)
        if response.status_code != 200:
            raise self._unexpected(response)
        return [SlotResponse.model_validate(item) for item in response.json()]

    # ============== Identity ==============

    async def get_identity(self) -> Identity | None:
        """Identity check. None when there is no token or the token is rejected."""
        if not self.token:
            return None
        response = await self._request("GET", "/session")
        if response.status_code == 401:
            return None
        if response.status_code != 200:
            raise self._unexpected(response)
        return Identity.model_validate(response.json())

    # ============== Commit ==============

    async def commit(
        self,
        slot_id: str,
        client_info: Mapping[str, Any] | ClientInfo,
    ) -> AppointmentResponse:
        """
        Commit a staged booking.

        Raises:
            AuthRequired: no identity attached, or it was rejected
            SlotUnavailableError: the slot was taken first
            ClientInfoValidationError: contact details were rejected
            TransientFetchFailure: network problem or server error
        """
        if isinstance(client_info, ClientInfo):
            client_info = client_info.model_dump()

        response = await self._request(
            "POST",
            "/appointments",
            json={"slot_id": slot_id, "client_info": dict(client_info)},
        )

        if response.status_code == 201:
            return AppointmentResponse.model_validate(response.json())
        if response.status_code == 401:
            raise AuthRequired("Sign in to confirm the booking")
        if response.status_code == 409:
            detail = self._detail(response)
            message = detail.get("message") if isinstance(detail, dict) else None
            if message:
                raise SlotUnavailableError(slot_id, message)
            raise SlotUnavailableError(slot_id)
        if response.status_code == 422:
            raise ClientInfoValidationError(self._field_errors(self._detail(response)))
        raise self._unexpected(response)

    async def get_my_appointments(self, page: int = 1, page_size: int = 20) -> list[AppointmentResponse]:
        response = await self._request(
            "GET", "/appointments/me", params={"page": page, "page_size": page_size}
        )
        if response.status_code == 401:
            raise AuthRequired("Sign in to see your appointments")
        if response.status_code != 200:
            raise self._unexpected(response)
        return [AppointmentResponse.model_validate(item) for item in response.json()]

    async def cancel_appointment(self, appointment_id: str) -> AppointmentResponse:
        response = await self._request("POST", f"/appointments/{appointment_id}/cancel")
        if response.status_code == 200:
            return AppointmentResponse.model_validate(response.json())
        if response.status_code == 401:
            raise AuthRequired("Sign in to cancel an appointment")
        if response.status_code == 404:
            raise AppointmentNotFound(appointment_id)
        if response.status_code == 409:
            raise AppointmentAlreadyCancelled(appointment_id)
        raise self._unexpected(response)

    # ============== Helpers ==============

    @staticmethod
    def _detail(response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("detail") if isinstance(body, dict) else None

    @staticmethod
    def _field_errors(detail: Any) -> dict[str, str]:
        if isinstance(detail, dict) and isinstance(detail.get("field_errors"), dict):
            return detail["field_errors"]

        # Request-shape errors from FastAPI come back as a list
        errors: dict[str, str] = {}
        if isinstance(detail, list):
            for err in detail:
                loc = [str(part) for part in err.get("loc", []) if part not in ("body", "client_info")]
                field = loc[-1] if loc else "client_info"
                errors.setdefault(field, err.get("msg", "Invalid value"))
        return errors or {"client_info": "Invalid contact details"}
