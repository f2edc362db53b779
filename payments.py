import logging
from typing import Any, Dict, Optional

import requests
import stripe

from config import (
    BOOKING_API_TIMEOUT,
    BOOKING_API_URL,
    CURRENCY,
    FRONTEND_URL,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
)
from errors import PaymentProviderError
from quote_logic import PaymentStatus, round_money

logger = logging.getLogger(__name__)

PAYMENT_TYPES = ("deposit", "remaining_balance", "final")

if STRIPE_SECRET_KEY:
    stripe.api_key = STRIPE_SECRET_KEY


def check_payment_type(payment_type: str) -> str:
    if payment_type not in PAYMENT_TYPES:
        raise PaymentProviderError(f"Unknown payment type: {payment_type!r}")
    return payment_type


def payment_status_for(payment_type: str) -> PaymentStatus:
    """deposit -> deposit_paid; remaining_balance / final -> fully_paid"""
    if check_payment_type(payment_type) == "deposit":
        return PaymentStatus.DEPOSIT_PAID
    return PaymentStatus.FULLY_PAID


def to_minor_units(amount: Any) -> int:
    """$123.45 -> 12345"""
    return int((round_money(amount) * 100).to_integral_value())


# =====================================================
# Stripe (card checkout)
# =====================================================
def create_checkout_session(
    *,
    booking_ref: str,
    amount: Any,
    payment_type: str,
    customer_email: Optional[str] = None,
    description: str = "",
    success_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a Stripe Checkout session for one booking payment.

    Returns {"id", "url"}; the client redirects to `url`.
    """
    check_payment_type(payment_type)

    if not STRIPE_SECRET_KEY:
        raise PaymentProviderError("Payment system not configured. Please contact us.", provider="stripe")

    amount_cents = to_minor_units(amount)
    if amount_cents <= 0:
        raise PaymentProviderError("There is nothing to pay for this booking.", provider="stripe")

    if not description:
        description = {
            "deposit": "Booking deposit",
            "remaining_balance": "Remaining balance",
            "final": "Final payment",
        }[payment_type]

    params = {
        "mode": "payment",
        "payment_method_types": ["card"],
        "line_items": [
            {
                "price_data": {
                    "currency": CURRENCY.lower(),
                    "unit_amount": amount_cents,
                    "product_data": {"name": f"{description} - {booking_ref}"},
                },
                "quantity": 1,
            }
        ],
        "client_reference_id": booking_ref,
        "metadata": {
            "booking_id": booking_ref,
            "payment_type": payment_type,
        },
        "success_url": success_url or f"{FRONTEND_URL}/payment-success?booking_id={booking_ref}",
        "cancel_url": cancel_url or f"{FRONTEND_URL}/payment-cancelled?booking_id={booking_ref}",
    }
    if customer_email:
        params["customer_email"] = customer_email

    try:
        session = stripe.checkout.Session.create(**params)
    except Exception as e:
        logger.error("Stripe checkout session failed for %s: %s", booking_ref, e)
        raise PaymentProviderError(f"Payment session creation failed: {e}", provider="stripe") from e

    return {"id": session.id, "url": session.url}


def construct_webhook_event(payload: bytes, signature: str):
    if not STRIPE_WEBHOOK_SECRET:
        raise PaymentProviderError("Webhook secret not configured.", provider="stripe")
    try:
        return stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    except Exception as e:
        logger.warning("Rejected Stripe webhook: %s", e)
        raise PaymentProviderError("Invalid webhook signature.", provider="stripe") from e


# =====================================================
# PayPal / Interac (proxied through the booking backend)
# =====================================================
def _backend_call(method: str, path: str, provider: str, **kwargs) -> Dict[str, Any]:
    url = f"{BOOKING_API_URL.rstrip('/')}/{path.lstrip('/')}"
    try:
        resp = requests.request(method, url, timeout=BOOKING_API_TIMEOUT, **kwargs)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("%s call %s %s failed: %s", provider, method, url, e)
        raise PaymentProviderError(f"{provider} request failed: {e}", provider=provider) from e
    if not isinstance(data, dict):
        raise PaymentProviderError(f"Unexpected {provider} response.", provider=provider)
    return data


def create_paypal_order(booking: Dict[str, Any], payment_type: str) -> str:
    """Returns the PayPal order id."""
    check_payment_type(payment_type)
    data = _backend_call(
        "POST",
        "/paypal/create-order",
        "PayPal",
        json={"booking": booking, "paymentType": payment_type},
    )
    order_id = data.get("id")
    if not order_id:
        raise PaymentProviderError(data.get("error") or "PayPal order could not be created.", provider="PayPal")
    return order_id


def capture_paypal_order(order_id: str) -> Dict[str, Any]:
    data = _backend_call("POST", f"/paypal/capture-order/{order_id}", "PayPal")
    if not data.get("success"):
        raise PaymentProviderError(data.get("error") or "Payment failed", provider="PayPal")
    return data


def get_interac_auth_url(booking_id: str) -> str:
    """Identity-verification redirect target for Interac."""
    data = _backend_call("GET", "/interac/auth-url", "Interac", params={"bookingId": booking_id})
    url = data.get("authUrl")
    if not url:
        raise PaymentProviderError("Failed to get Interac auth URL", provider="Interac")
    return url


def get_interac_payment_info(booking_id: str) -> Dict[str, Any]:
    return _backend_call("GET", f"/interac/payment-info/{booking_id}", "Interac")
