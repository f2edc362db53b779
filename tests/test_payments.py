from decimal import Decimal
from types import SimpleNamespace

import pytest
import requests

import payments
from errors import PaymentProviderError
from quote_logic import PaymentStatus


class FakeResponse:
    def __init__(self, data, status_code=200):
        self._data = data
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._data


@pytest.fixture
def stripe_calls(monkeypatch):
    calls = []

    def fake_create(**params):
        calls.append(params)
        return SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")

    monkeypatch.setattr(payments, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(payments.stripe.checkout.Session, "create", fake_create)
    return calls


def test_payment_status_for_type():
    assert payments.payment_status_for("deposit") == PaymentStatus.DEPOSIT_PAID
    assert payments.payment_status_for("remaining_balance") == PaymentStatus.FULLY_PAID
    assert payments.payment_status_for("final") == PaymentStatus.FULLY_PAID
    with pytest.raises(PaymentProviderError):
        payments.payment_status_for("tip")


def test_to_minor_units_rounds_half_up():
    assert payments.to_minor_units(Decimal("152.55")) == 15255
    assert payments.to_minor_units("152.555") == 15256


def test_checkout_session_params(stripe_calls):
    session = payments.create_checkout_session(
        booking_ref="BK-1",
        amount=Decimal("152.55"),
        payment_type="deposit",
        customer_email="sara@example.com",
    )

    assert session == {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}
    params = stripe_calls[0]
    price_data = params["line_items"][0]["price_data"]
    assert price_data["currency"] == "cad"
    assert price_data["unit_amount"] == 15255
    assert params["metadata"] == {"booking_id": "BK-1", "payment_type": "deposit"}
    assert params["client_reference_id"] == "BK-1"
    assert params["customer_email"] == "sara@example.com"


def test_checkout_without_key(monkeypatch):
    monkeypatch.setattr(payments, "STRIPE_SECRET_KEY", "")
    with pytest.raises(PaymentProviderError) as exc:
        payments.create_checkout_session(booking_ref="BK-1", amount=10, payment_type="deposit")
    assert exc.value.message == "Payment system not configured. Please contact us."


def test_checkout_rejects_zero_amount(stripe_calls):
    with pytest.raises(PaymentProviderError):
        payments.create_checkout_session(booking_ref="BK-1", amount=0, payment_type="final")
    assert stripe_calls == []


def test_checkout_provider_failure(monkeypatch):
    def boom(**params):
        raise RuntimeError("card declined")

    monkeypatch.setattr(payments, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(payments.stripe.checkout.Session, "create", boom)

    with pytest.raises(PaymentProviderError) as exc:
        payments.create_checkout_session(booking_ref="BK-1", amount=10, payment_type="deposit")
    assert exc.value.message == "Payment session creation failed: card declined"
    assert exc.value.provider == "stripe"


def test_webhook_requires_secret(monkeypatch):
    monkeypatch.setattr(payments, "STRIPE_WEBHOOK_SECRET", "")
    with pytest.raises(PaymentProviderError):
        payments.construct_webhook_event(b"{}", "sig")


def test_webhook_bad_signature(monkeypatch):
    def reject(payload, signature, secret):
        raise ValueError("bad signature")

    monkeypatch.setattr(payments, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.setattr(payments.stripe.Webhook, "construct_event", reject)

    with pytest.raises(PaymentProviderError) as exc:
        payments.construct_webhook_event(b"{}", "sig")
    assert exc.value.message == "Invalid webhook signature."


def test_paypal_order_and_capture(monkeypatch):
    calls = []
    responses = [
        FakeResponse({"id": "PAYPAL-ORDER-1"}),
        FakeResponse({"success": False, "error": "Instrument declined"}),
    ]

    def fake_request(method, url, **kwargs):
        calls.append((method, url, kwargs))
        return responses.pop(0)

    monkeypatch.setattr(payments.requests, "request", fake_request)

    assert payments.create_paypal_order({"booking_id": "BK-1"}, "deposit") == "PAYPAL-ORDER-1"
    assert calls[0][1].endswith("/paypal/create-order")
    assert calls[0][2]["json"] == {"booking": {"booking_id": "BK-1"}, "paymentType": "deposit"}

    with pytest.raises(PaymentProviderError) as exc:
        payments.capture_paypal_order("PAYPAL-ORDER-1")
    assert exc.value.message == "Instrument declined"
    assert calls[1][1].endswith("/paypal/capture-order/PAYPAL-ORDER-1")


def test_interac_auth_url(monkeypatch):
    def fake_request(method, url, **kwargs):
        assert kwargs["params"] == {"bookingId": "BK-1"}
        return FakeResponse({"authUrl": "https://interac.test/auth"})

    monkeypatch.setattr(payments.requests, "request", fake_request)
    assert payments.get_interac_auth_url("BK-1") == "https://interac.test/auth"


def test_backend_http_error_is_provider_error(monkeypatch):
    monkeypatch.setattr(
        payments.requests, "request", lambda method, url, **kw: FakeResponse({}, 503)
    )
    with pytest.raises(PaymentProviderError) as exc:
        payments.get_interac_payment_info("BK-1")
    assert exc.value.provider == "Interac"
