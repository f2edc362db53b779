from decimal import Decimal

import pytest
import requests

from booking_api import BookingApiClient
from errors import PersistenceError
from quote_logic import PaymentStatus, PricingSnapshot

from conftest import BRIDAL_PRICING


class FakeResponse:
    def __init__(self, status_code=200, data=None, text=None):
        self.status_code = status_code
        self._data = data
        self._text = text

    def json(self):
        if self._text is not None:
            raise ValueError("No JSON object could be decoded")
        return self._data


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def make_client(response=None, error=None):
    session = FakeSession(response, error)
    return BookingApiClient("http://api.test/api/", session=session, timeout=5), session


def test_get_quote_builds_url_and_timeout():
    client, session = make_client(FakeResponse(data={"booking_id": "BK-1"}))

    assert client.get_quote("BK-1") == {"booking_id": "BK-1"}
    assert session.calls == [("GET", "http://api.test/api/quote/BK-1", {"timeout": 5})]


def test_http_error_uses_backend_message():
    client, _ = make_client(FakeResponse(404, {"error": "Booking not found"}))

    with pytest.raises(PersistenceError) as exc:
        client.lookup_booking("missing")
    assert exc.value.message == "Booking not found"
    assert exc.value.status_code == 404


def test_http_error_without_body():
    client, _ = make_client(FakeResponse(500, text="<html>"))

    with pytest.raises(PersistenceError) as exc:
        client.get_quote("BK-1")
    assert exc.value.status_code == 500
    assert "500" in exc.value.message


def test_transport_error():
    client, _ = make_client(error=requests.ConnectionError("refused"))

    with pytest.raises(PersistenceError) as exc:
        client.get_quote("BK-1")
    assert exc.value.message == "Could not reach the booking service. Please try again."


def test_non_json_body():
    client, _ = make_client(FakeResponse(200, text="ok"))
    with pytest.raises(PersistenceError):
        client.get_quote("BK-1")


def test_create_booking_unwraps_booking():
    client, session = make_client(FakeResponse(201, {"booking": {"booking_id": "BK-9"}}))

    assert client.create_booking({"name": "Sara"}) == {"booking_id": "BK-9"}
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://api.test/api/bookings")
    assert kwargs["json"] == {"name": "Sara"}


def test_save_quote_selections_requires_success():
    client, _ = make_client(FakeResponse(200, {"success": False}))

    with pytest.raises(PersistenceError) as exc:
        client.save_quote_selections("BK-1", {"agreedToTerms": True})
    assert exc.value.message == "Failed to update booking. Please try again."


def test_save_quote_selections_returns_booking():
    booking = {"booking_id": "BK-1", "pricing": BRIDAL_PRICING}
    client, session = make_client(FakeResponse(200, {"success": True, "booking": booking}))

    assert client.save_quote_selections("BK-1", {"signature": "S"}) == booking
    assert session.calls[0][0] == "PUT"
    assert session.calls[0][1] == "http://api.test/api/bookings/BK-1/quote-selections"


def test_update_payment_sends_only_payment_fields():
    client, session = make_client(FakeResponse(200, {"success": True}))
    snapshot = PricingSnapshot.from_record(
        dict(BRIDAL_PRICING, payment_status="deposit_paid", amount_paid="152.55")
    )

    client.update_payment("BK-1", snapshot)

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("PUT", "http://api.test/api/bookings/BK-1/payment-status")
    assert kwargs["json"] == {
        "payment_status": PaymentStatus.DEPOSIT_PAID.value,
        "amount_paid": float(Decimal("152.55")),
    }
