from typing import Optional, Dict, Any
import logging
import os

from fastapi import FastAPI, Request, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from availability import (
    is_date_allowed,
    is_valid_date_range,
    local_today,
    minimum_event_date,
    validate_date_range,
)
from booking_api import BookingApiClient
from checkout import CheckoutFlow, LogAnalytics, LogNotifier
from config import MIN_ADVANCE_DAYS
from errors import (
    InvalidDraftError,
    OutOfRangeError,
    PaymentProviderError,
    PaymentStateError,
    PersistenceError,
)
from google_calendar import schedule_appointment
from payments import (
    capture_paypal_order,
    construct_webhook_event,
    create_paypal_order,
    get_interac_auth_url,
    payment_status_for,
)
from quote_logic import (
    BookingDraft,
    PaymentStatus,
    format_cad,
    validate_address,
)

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

# =====================================================
# FastAPI app
# =====================================================
app = FastAPI(title="Looks by Anum Quote API")

_flow: Optional[CheckoutFlow] = None


def get_flow() -> CheckoutFlow:
    global _flow
    if _flow is None:
        _flow = CheckoutFlow(BookingApiClient(), LogNotifier(), LogAnalytics())
    return _flow


# =====================================================
# Error responses
# =====================================================
@app.exception_handler(InvalidDraftError)
async def invalid_draft_handler(request: Request, exc: InvalidDraftError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(OutOfRangeError)
async def out_of_range_handler(request: Request, exc: OutOfRangeError):
    return JSONResponse(status_code=422, content={"error": str(exc)})


@app.exception_handler(PaymentStateError)
async def payment_state_handler(request: Request, exc: PaymentStateError):
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_handler(request: Request, exc: PersistenceError):
    status_code = 409 if exc.status_code == 409 else 502
    return JSONResponse(status_code=status_code, content={"error": exc.message})


@app.exception_handler(PaymentProviderError)
async def payment_provider_handler(request: Request, exc: PaymentProviderError):
    return JSONResponse(status_code=400, content={"error": exc.message})


# =====================================================
# Request models
# =====================================================
class DraftRequest(BaseModel):
    service_type: Optional[str] = None
    event_date: Optional[str] = None
    region: Optional[str] = None
    artist: Optional[str] = None
    party_counts: Dict[str, Any] = Field(default_factory=dict)
    ready_time: Optional[str] = None
    booking_id: Optional[str] = None

    def to_draft(self) -> BookingDraft:
        return BookingDraft.from_dict(
            {
                "service_type": self.service_type,
                "event_date": self.event_date,
                "region": self.region,
                "artist": self.artist,
                "party_counts": self.party_counts,
                "ready_time": self.ready_time,
                "booking_id": self.booking_id,
            }
        )


class DateCheckRequest(BaseModel):
    date: str
    max_date: Optional[str] = None
    min_advance_days: int = MIN_ADVANCE_DAYS


class DateRangeRequest(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class AddressRequest(BaseModel):
    street: str = ""
    city: str = ""
    province: str = ""
    postal_code: str = ""


class QuoteSelectionsRequest(BaseModel):
    selectedDate: Optional[str] = None
    selectedArtist: Optional[str] = None
    selectedService: Optional[str] = None
    selectedTime: Optional[str] = None
    selectedAddress: Optional[str] = None
    agreedToTerms: bool = False
    signature: str = ""
    signatureDate: Optional[str] = None

    # optional local draft, used to cross-check the saved deposit
    draft: Optional[DraftRequest] = None


class DepositCheckoutRequest(BaseModel):
    booking: Dict[str, Any]


class RemainingCheckoutRequest(BaseModel):
    booking_id: str


class PaypalOrderRequest(BaseModel):
    booking: Dict[str, Any]
    payment_type: str = "deposit"


class PaypalCaptureRequest(BaseModel):
    booking_id: str
    payment_type: str = "deposit"


# =====================================================
# HEALTH
# =====================================================
@app.get("/")
def read_root():
    return {"status": "ok", "service": "Looks by Anum Quote API"}


# =====================================================
# PRICING (packages / artists / review)
# =====================================================
@app.post("/api/packages")
def api_packages(payload: DraftRequest, flow: CheckoutFlow = Depends(get_flow)):
    packages = flow.packages_for(payload.to_draft())
    return {"packages": packages, "pricing_available": bool(packages)}


@app.post("/api/artists")
def api_artists(payload: DraftRequest, flow: CheckoutFlow = Depends(get_flow)):
    return {"artists": flow.artist_options(payload.to_draft())}


@app.post("/api/quote")
def api_quote(payload: DraftRequest, flow: CheckoutFlow = Depends(get_flow)):
    quote = flow.review(payload.to_draft())
    return {
        **quote.to_dict(),
        "total_display": format_cad(quote.total),
        "deposit_display": format_cad(quote.deposit),
    }


# =====================================================
# AVAILABILITY
# =====================================================
@app.get("/api/availability/min-date")
def api_min_date(min_advance_days: int = Query(MIN_ADVANCE_DAYS, ge=0)):
    today = local_today()
    return {
        "today": today.isoformat(),
        "min_date": minimum_event_date(today, min_advance_days).isoformat(),
        "min_advance_days": min_advance_days,
    }


@app.post("/api/availability/check")
def api_check_date(payload: DateCheckRequest):
    min_date = minimum_event_date(local_today(), payload.min_advance_days)
    return {
        "date": payload.date,
        "allowed": is_date_allowed(payload.date, min_date, payload.max_date),
        "min_date": min_date.isoformat(),
    }


@app.post("/api/availability/range")
def api_check_range(payload: DateRangeRequest):
    if is_valid_date_range(payload.start_date, payload.end_date):
        return {"valid": True}
    try:
        validate_date_range(payload.start_date, payload.end_date)
    except InvalidDraftError as e:
        return JSONResponse(status_code=400, content={"valid": False, "error": str(e)})
    return JSONResponse(status_code=400, content={"valid": False, "error": "Invalid date range."})


# =====================================================
# ADDRESS
# =====================================================
@app.post("/api/address/validate")
def api_validate_address(payload: AddressRequest):
    is_valid, parsed, error = validate_address(
        payload.street,
        payload.city,
        payload.province,
        payload.postal_code,
    )
    if not is_valid:
        return JSONResponse(status_code=400, content={"valid": False, "error": error})
    return {"valid": True, "address": parsed}


# =====================================================
# CONTRACT / QUOTE SELECTIONS
# =====================================================
@app.put("/api/bookings/{booking_id}/quote-selections")
def api_quote_selections(
    booking_id: str,
    payload: QuoteSelectionsRequest,
    flow: CheckoutFlow = Depends(get_flow),
):
    selections = {
        "selectedDate": payload.selectedDate,
        "selectedArtist": payload.selectedArtist,
        "selectedService": payload.selectedService,
        "selectedTime": payload.selectedTime,
        "selectedAddress": payload.selectedAddress,
        "agreedToTerms": payload.agreedToTerms,
        "signature": payload.signature,
        "signatureDate": payload.signatureDate,
    }
    draft = payload.draft.to_draft() if payload.draft else None

    result = flow.submit_selections(booking_id, selections, draft)
    deposit = result["deposit_amount"]
    return {
        "success": True,
        "booking_id": booking_id,
        "deposit_amount": float(deposit),
        "deposit_display": format_cad(deposit),
    }


# =====================================================
# CHECKOUT (STRIPE)
# =====================================================
@app.post("/api/checkout/deposit")
def api_checkout_deposit(payload: DepositCheckoutRequest, flow: CheckoutFlow = Depends(get_flow)):
    session = flow.start_deposit_checkout(payload.booking)
    return {**session, "amount": float(session["amount"])}


@app.post("/api/checkout/remaining")
def api_checkout_remaining(payload: RemainingCheckoutRequest, flow: CheckoutFlow = Depends(get_flow)):
    session = flow.start_remaining_checkout(payload.booking_id)
    return {**session, "amount": float(session["amount"])}


def _as_dict(obj) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    return to_dict() if to_dict else dict(obj)


@app.post("/api/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    flow: CheckoutFlow = Depends(get_flow),
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")

    event = _as_dict(construct_webhook_event(payload, signature))
    event_type = event.get("type", "")
    if event_type != "checkout.session.completed":
        return {"received": True, "ignored": event_type}

    session = _as_dict(event["data"]["object"])
    metadata = session.get("metadata") or {}
    booking_id = metadata.get("booking_id") or session.get("client_reference_id")
    if not booking_id:
        logger.warning("Checkout session %s has no booking reference", session.get("id"))
        return {"received": True, "ignored": "missing booking reference"}

    status = payment_status_for(metadata.get("payment_type") or "deposit")
    # Stripe retries and reorders deliveries; only a fresh deposit books the calendar
    booking = flow.record_payment(booking_id, status, ignore_superseded=True)

    if booking["changed"] and status == PaymentStatus.DEPOSIT_PAID:
        background_tasks.add_task(schedule_appointment, booking)

    return {"received": True, "booking_id": booking_id, "payment_status": booking["payment_status"]}


# =====================================================
# PAYPAL / INTERAC
# =====================================================
@app.post("/api/paypal/orders")
def api_paypal_create(payload: PaypalOrderRequest):
    return {"id": create_paypal_order(payload.booking, payload.payment_type)}


@app.post("/api/paypal/orders/{order_id}/capture")
def api_paypal_capture(
    order_id: str,
    payload: PaypalCaptureRequest,
    flow: CheckoutFlow = Depends(get_flow),
):
    capture_paypal_order(order_id)
    status = payment_status_for(payload.payment_type)
    booking = flow.record_payment(payload.booking_id, status)
    return {"success": True, "payment_status": booking["payment_status"]}


@app.get("/api/interac/auth-url")
def api_interac_auth_url(booking_id: str = Query(...)):
    return {"authUrl": get_interac_auth_url(booking_id)}
