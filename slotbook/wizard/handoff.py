"""
Two-phase hand-off to the external identity flow.

suspend() stages the draft with the pending flag raised and returns the login
or sign-up URL. The identity flow sends the visitor back to the booking route
with from_appointment=true, where resume() hands the staged draft back exactly
once.
"""

import logging
import posixpath
from collections.abc import Mapping
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

from slotbook.core.config import settings
from slotbook.core.exceptions import CorruptDraft
from slotbook.wizard.draft import StagedBookingDraft
from slotbook.wizard.staging import StagedBookingStore

logger = logging.getLogger(__name__)

FROM_APPOINTMENT_PARAM = "from_appointment"
FLOWS = ("login", "sign_up")


def is_handoff_return(query: Mapping[str, str] | str | None) -> bool:
    """True when the entry URL or query carries from_appointment=true."""
    if not query:
        return False
    if isinstance(query, str):
        raw = urlsplit(query).query if "?" in query else query
        values = parse_qs(raw).get(FROM_APPOINTMENT_PARAM, [])
        value = values[0] if values else None
    else:
        value = query.get(FROM_APPOINTMENT_PARAM)
    return str(value).lower() == "true"


class AuthHandoff:
    def __init__(
        self,
        store: StagedBookingStore,
        route_prefix: str | None = None,
        login_route: str | None = None,
        sign_up_route: str | None = None,
    ):
        self.store = store
        self.route_prefix = (route_prefix or settings.BOOKING_ROUTE_PREFIX).rstrip("/")
        self.flow_routes = {
            "login": login_route or settings.LOGIN_ROUTE,
            "sign_up": sign_up_route or settings.SIGN_UP_ROUTE,
        }

    def return_route(self, professional_code: str) -> str:
        return f"{self.route_prefix}/{quote(professional_code, safe='')}"

    def is_safe_return_route(self, route: str | None) -> bool:
        """Only local booking routes are accepted as redirect targets."""
        if not route or not route.startswith("/") or route.startswith("//"):
            return False
        parts = urlsplit(route)
        if parts.scheme or parts.netloc:
            return False
        # Resolve dot segments before the prefix check
        path = posixpath.normpath(unquote(parts.path))
        return path.startswith(f"{self.route_prefix}/")

    def suspend(self, draft: StagedBookingDraft, flow: str = "login") -> str:
        """
        Stage the draft for resume and build the identity flow URL.

        The write completes before the URL is returned, so navigating away
        right after cannot lose the draft.

        Args:
            draft: Draft to carry across the identity flow
            flow: 'login' or 'sign_up'

        Returns:
            <flow route>?redirect=<return route>&from_appointment=true
        """
        if flow not in self.flow_routes:
            raise ValueError(f"Unknown identity flow: {flow}")

        self.store.write(draft, pending=True)

        query = urlencode(
            {
                "redirect": self.return_route(draft.professional_code),
                FROM_APPOINTMENT_PARAM: "true",
            },
            safe="/",
        )
        url = f"{self.flow_routes[flow]}?{query}"
        logger.info(f"🔐 Booking suspended for {flow}, returning to {draft.professional_code}")
        return url

    def completion_url(self, redirect: str | None) -> str:
        """Where the identity flow sends the visitor after success."""
        if not self.is_safe_return_route(redirect):
            logger.warning(f"Rejected return route: {redirect!r}")
            return "/"
        if is_handoff_return(redirect):
            return redirect
        separator = "&" if "?" in redirect else "?"
        return f"{redirect}{separator}{urlencode({FROM_APPOINTMENT_PARAM: 'true'})}"

    def resume(
        self,
        query: Mapping[str, str] | str | None,
        professional_code: str | None = None,
    ) -> StagedBookingDraft | None:
        """
        Hand back the draft staged by suspend().

        The pending flag is consumed, so a reload of the same URL is a fresh
        entry. A draft staged for another professional is left untouched.

        Raises:
            CorruptDraft: the staged draft could not be decoded (it is cleared)
        """
        if not is_handoff_return(query):
            return None

        if not self.store.has_pending():
            logger.info("Returned from identity flow with nothing pending")
            return None

        try:
            draft = self.store.read()
        except CorruptDraft as e:
            logger.warning(f"Discarding staged draft on resume: {e}")
            self.store.clear()
            raise

        if draft is None:
            self.store.clear_pending()
            return None

        if professional_code and draft.professional_code != professional_code:
            logger.info(
                f"Pending draft belongs to {draft.professional_code}, not {professional_code}; leaving it"
            )
            return None

        self.store.clear_pending()
        logger.info(f"🔓 Booking resumed for {draft.professional_code}")
        return draft

    def pending_notice(self) -> str | None:
        """Banner text for pages that only need to know a booking is waiting."""
        if self.store.has_pending():
            return "You have a booking waiting to be confirmed."
        return None
