import logging
from typing import Any, Dict, Optional

import requests

from config import BOOKING_API_URL, BOOKING_API_TIMEOUT
from errors import PersistenceError
from quote_logic import PricingSnapshot

logger = logging.getLogger(__name__)


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = {}
    if isinstance(data, dict):
        message = data.get("error") or data.get("details") or data.get("message")
        if message:
            return str(message)
    return f"Booking service returned {resp.status_code}. Please try again."


class BookingApiClient:
    """
    Thin client for the booking backend.

    Every failure (transport, HTTP error, `success: false`, non-JSON body)
    surfaces as PersistenceError with a message fit for the client.
    """

    def __init__(
        self,
        base_url: str = BOOKING_API_URL,
        session: Optional[requests.Session] = None,
        timeout: float = BOOKING_API_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Booking API %s %s failed: %s", method, url, e)
            raise PersistenceError("Could not reach the booking service. Please try again.") from e

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.error("Booking API %s %s -> %s: %s", method, url, resp.status_code, message)
            raise PersistenceError(message, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise PersistenceError("Unexpected response from the booking service.") from e

        if not isinstance(data, dict):
            raise PersistenceError("Unexpected response from the booking service.")
        return data

    # -------------------------
    # bookings
    # -------------------------
    def get_quote(self, booking_id: str) -> Dict[str, Any]:
        """GET /quote/{id}: booking record with event_date, artist, pricing..."""
        return self._request("GET", f"/quote/{booking_id}")

    def lookup_booking(self, booking_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/bookings/lookup/{booking_id}")

    def create_booking(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", "/bookings", json=booking)
        return data.get("booking") or data

    def save_quote_selections(self, booking_id: str, selections: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("PUT", f"/bookings/{booking_id}/quote-selections", json=selections)
        if not data.get("success"):
            raise PersistenceError("Failed to update booking. Please try again.")
        return data.get("booking") or {}

    def update_payment(self, booking_id: str, snapshot: PricingSnapshot) -> Dict[str, Any]:
        """Write back only the two payment fields; the quote itself is frozen."""
        body = {
            "payment_status": snapshot.payment_status.value,
            "amount_paid": float(snapshot.amount_paid),
        }
        return self._request("PUT", f"/bookings/{booking_id}/payment-status", json=body)
