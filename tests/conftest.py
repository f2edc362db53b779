import copy
from datetime import date

import pytest
from fastapi.testclient import TestClient

from checkout import AnalyticsSink, CheckoutFlow, Notifier
from errors import PersistenceError
from main import app, get_flow

TODAY = date(2024, 6, 1)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages = []

    def notify(self, message, level="info"):
        self.messages.append((level, message))


class RecordingAnalytics(AnalyticsSink):
    def __init__(self):
        self.events = []

    def track(self, event_name, props=None):
        self.events.append((event_name, props or {}))


class FakeBookingApi:
    """In-memory stand-in for BookingApiClient."""

    def __init__(self, bookings=None):
        self.bookings = copy.deepcopy(bookings or {})
        self.calls = []
        self.fail_with = None
        self.on_save = None

    def _check(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail_with is not None:
            raise self.fail_with

    def _find(self, booking_id):
        if booking_id not in self.bookings:
            raise PersistenceError("Booking not found", status_code=404)
        return copy.deepcopy(self.bookings[booking_id])

    def get_quote(self, booking_id):
        self._check("get_quote", booking_id)
        return self._find(booking_id)

    def lookup_booking(self, booking_id):
        self._check("lookup_booking", booking_id)
        return self._find(booking_id)

    def create_booking(self, booking):
        self._check("create_booking", booking)
        saved = dict(booking)
        saved.setdefault("booking_id", f"BK-{len(self.bookings) + 1}")
        self.bookings[saved["booking_id"]] = saved
        return copy.deepcopy(saved)

    def save_quote_selections(self, booking_id, selections):
        self._check("save_quote_selections", booking_id, selections)
        if self.on_save is not None:
            self.on_save()
        booking = self._find(booking_id)
        booking.update(selections)
        self.bookings[booking_id] = booking
        return copy.deepcopy(booking)

    def update_payment(self, booking_id, snapshot):
        self._check("update_payment", booking_id, snapshot)
        pricing = self.bookings[booking_id].setdefault("pricing", {})
        pricing["payment_status"] = snapshot.payment_status.value
        pricing["amount_paid"] = float(snapshot.amount_paid)
        return {"success": True}


# Bridal / Toronto / Lead with no party: 450 + 58.50 HST = 508.50, 30% deposit
BRIDAL_PRICING = {
    "services": [
        "Bridal Hair & Makeup (Anum): $450.00",
        "Subtotal: $450.00",
        "HST (13%): $58.50",
        "Total: $508.50",
        "Deposit required (30%): $152.55",
    ],
    "subtotal": {"$numberDecimal": "450.00"},
    "hst_amount": {"$numberDecimal": "58.50"},
    "total_amount": {"$numberDecimal": "508.50"},
    "deposit_percentage": 30,
    "deposit_amount": {"$numberDecimal": "152.55"},
    "remaining_amount": {"$numberDecimal": "355.95"},
    "amount_paid": 0,
    "payment_status": "unpaid",
}


def make_booking(booking_id="BK-100", **pricing_changes):
    pricing = dict(BRIDAL_PRICING, **pricing_changes)
    return {
        "booking_id": booking_id,
        "name": "Sara Khan",
        "email": "sara@example.com",
        "service_type": "Bridal",
        "artist": "Lead",
        "region": "Toronto/GTA",
        "event_date": "2024-09-14T00:00:00.000Z",
        "ready_time": "14:00",
        "pricing": pricing,
    }


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def analytics():
    return RecordingAnalytics()


@pytest.fixture
def api():
    return FakeBookingApi({"BK-100": make_booking()})


@pytest.fixture
def flow(api, notifier, analytics):
    return CheckoutFlow(api, notifier, analytics, today=TODAY)


@pytest.fixture
def client(flow):
    app.dependency_overrides[get_flow] = lambda: flow
    yield TestClient(app)
    app.dependency_overrides.clear()
