"""
Orchestration between the wizard, the pricing core and the outside world.

Every screen prices through quote_logic; nothing here re-derives totals.
Toasts and analytics are injected (Notifier / AnalyticsSink) so the flow
never reaches for globals. I/O failures are reported through the notifier
and then re-raised for the HTTP layer to turn into a response.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, List, Optional

from availability import local_today, to_local_date, validate_event_date
from booking_api import BookingApiClient
from config import CURRENCY
from errors import (
    ConfigurationError,
    DuplicateSubmissionError,
    InvalidDraftError,
    PaymentProviderError,
    PaymentStateError,
    PersistenceError,
)
from payments import create_checkout_session
from quote_logic import (
    ARTIST_NAMES,
    ARTIST_TIERS,
    BookingDraft,
    PaymentStatus,
    PricingSnapshot,
    Quote,
    RateTable,
    apply_payment_event,
    calculate_booking_price,
    get_dynamic_packages,
    is_superseded,
    parse_money,
)

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """User-visible messages (toasts). level: info | success | warning | error"""

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        ...


class AnalyticsSink(ABC):
    @abstractmethod
    def track(self, event_name: str, props: Optional[Dict[str, Any]] = None) -> None:
        ...


class LogNotifier(Notifier):
    _LEVELS = {
        "error": logging.ERROR,
        "warning": logging.WARNING,
    }

    def notify(self, message: str, level: str = "info") -> None:
        logger.log(self._LEVELS.get(level, logging.INFO), "[notify:%s] %s", level, message)


class LogAnalytics(AnalyticsSink):
    def track(self, event_name: str, props: Optional[Dict[str, Any]] = None) -> None:
        logger.info("[track] %s %s", event_name, props or {})


class CheckoutFlow:
    def __init__(
        self,
        api: BookingApiClient,
        notifier: Notifier,
        analytics: AnalyticsSink,
        rates: Optional[RateTable] = None,
        today: Optional[date] = None,
    ):
        self.api = api
        self.notifier = notifier
        self.analytics = analytics
        self.rates = rates
        self._today = today
        self._in_flight = set()
        self._lock = threading.Lock()

    def today(self) -> date:
        return self._today or local_today()

    @contextmanager
    def _one_in_flight(self, booking_id: str):
        with self._lock:
            if booking_id in self._in_flight:
                raise DuplicateSubmissionError(
                    "Your booking is already being saved. Please wait.", status_code=409
                )
            self._in_flight.add(booking_id)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(booking_id)

    # -------------------------
    # pricing screens
    # -------------------------
    def _check_event_date(self, draft: BookingDraft) -> None:
        """A dated draft must clear the advance-booking floor; undated drafts still price."""
        if draft is None or draft.event_date is None:
            return
        try:
            validate_event_date(draft.event_date, today=self.today())
        except InvalidDraftError as e:
            self.notifier.notify(str(e), "error")
            raise

    def packages_for(self, draft: BookingDraft) -> List[Dict[str, Any]]:
        """Empty list (plus a toast) when pricing is unavailable."""
        self._check_event_date(draft)
        try:
            packages = get_dynamic_packages(draft, self.rates)
        except ConfigurationError as e:
            logger.warning("No packages for draft: %s", e)
            self.notifier.notify("Pricing is not available for this selection.", "warning")
            return []

        if not packages:
            self.notifier.notify(
                "Pricing for this service is prepared after a consultation.", "info"
            )
        else:
            for warning in packages[0].quote.warnings:
                self.notifier.notify(warning, "warning")
        return [package.to_dict() for package in packages]

    def artist_options(self, draft: BookingDraft) -> List[Dict[str, Any]]:
        self._check_event_date(draft)
        options = []
        for tier in ARTIST_TIERS:
            quote = calculate_booking_price(draft, tier, self.rates)
            options.append(
                {
                    "id": tier.value,
                    "name": f"Book with {ARTIST_NAMES[tier]}",
                    "price": float(quote.total),
                }
            )
        return options

    def review(self, draft: BookingDraft, artist: Any = None) -> Quote:
        self._check_event_date(draft)
        quote = calculate_booking_price(draft, artist, self.rates)
        for warning in quote.warnings:
            self.notifier.notify(warning, "warning")
        return quote

    # -------------------------
    # contract / review step
    # -------------------------
    def submit_selections(
        self,
        booking_id: str,
        selections: Dict[str, Any],
        draft: Optional[BookingDraft] = None,
    ) -> Dict[str, Any]:
        """
        Save the signed quote selections and return the server's deposit.

        When the draft is passed, the server deposit is compared with the
        local preview and a mismatch is logged (the server value wins).
        """
        if not booking_id:
            message = "Booking information is not available. Please refresh the page and try again."
            self.notifier.notify(message, "error")
            raise InvalidDraftError(message)

        if not selections.get("agreedToTerms") or not selections.get("signature"):
            message = "Please agree to the terms and sign the contract."
            self.notifier.notify(message, "error")
            raise InvalidDraftError(message)

        try:
            validate_event_date(selections.get("selectedDate"), today=self.today())
        except InvalidDraftError as e:
            self.notifier.notify(str(e), "error")
            raise

        try:
            with self._one_in_flight(booking_id):
                booking = self.api.save_quote_selections(booking_id, selections)
        except PersistenceError as e:
            self.notifier.notify(e.message, "error")
            raise

        deposit = parse_money((booking.get("pricing") or {}).get("deposit_amount"))

        if draft is not None:
            preview = calculate_booking_price(
                draft.with_changes(event_date=to_local_date(selections.get("selectedDate")) or draft.event_date),
                selections.get("selectedArtist") or draft.artist,
                self.rates,
            )
            if preview.deposit != deposit:
                logger.warning(
                    "Deposit mismatch for %s: preview %s, saved %s",
                    booking_id, preview.deposit, deposit,
                )

        self.analytics.track(
            "InitiateCheckout",
            {"value": float(deposit), "currency": CURRENCY, "content_type": "product"},
        )
        return {"booking_id": booking_id, "deposit_amount": deposit, "booking": booking}

    # -------------------------
    # payments
    # -------------------------
    def start_deposit_checkout(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        """Persist the booking first (so it has an id), then open checkout."""
        try:
            saved = self.api.create_booking(booking)
        except PersistenceError as e:
            self.notifier.notify(e.message, "error")
            raise

        booking_ref = saved.get("booking_id") or saved.get("unique_id") or saved.get("_id")
        if not booking_ref:
            message = "Failed to save booking"
            self.notifier.notify(message, "error")
            raise PersistenceError(message)

        pricing = saved.get("pricing") or {}
        if pricing.get("deposit_amount") is not None:
            deposit = parse_money(pricing.get("deposit_amount"))
        else:
            deposit = calculate_booking_price(BookingDraft.from_dict(saved), rates=self.rates).deposit

        try:
            session = create_checkout_session(
                booking_ref=str(booking_ref),
                amount=deposit,
                payment_type="deposit",
                customer_email=saved.get("email"),
            )
        except PaymentProviderError as e:
            self.notifier.notify(f"Payment failed: {e.message}", "error")
            raise

        return {**session, "booking_id": str(booking_ref), "amount": deposit}

    def start_remaining_checkout(self, booking_id: str) -> Dict[str, Any]:
        """Pays the persisted remaining balance; never reprices the booking."""
        try:
            booking = self.api.lookup_booking(booking_id)
        except PersistenceError as e:
            self.notifier.notify(e.message, "error")
            raise

        snapshot = PricingSnapshot.from_record(booking.get("pricing") or {})
        if snapshot.payment_status == PaymentStatus.FULLY_PAID:
            message = "This booking is already paid in full."
            self.notifier.notify(message, "info")
            raise PaymentStateError(message)
        if snapshot.payment_status == PaymentStatus.UNPAID:
            message = "The deposit for this booking has not been received yet."
            self.notifier.notify(message, "error")
            raise PaymentStateError(message)

        try:
            session = create_checkout_session(
                booking_ref=str(booking_id),
                amount=snapshot.balance_due,
                payment_type="remaining_balance",
                customer_email=booking.get("email"),
            )
        except PaymentProviderError as e:
            self.notifier.notify(f"Payment failed: {e.message}", "error")
            raise

        return {**session, "booking_id": str(booking_id), "amount": snapshot.balance_due}

    def record_payment(self, booking_id: str, status: Any, ignore_superseded: bool = False) -> Dict[str, Any]:
        """
        Apply a confirmed payment to the saved snapshot and write back
        amount_paid / payment_status. Replays are no-ops.

        `changed` in the result is True only when the status moved. With
        ignore_superseded, an event older than the saved status (e.g. a
        deposit webhook arriving after the final payment) is a no-op
        instead of a PaymentStateError.
        """
        booking = self.api.get_quote(booking_id)
        snapshot = PricingSnapshot.from_record(booking.get("pricing") or {})
        if ignore_superseded and is_superseded(snapshot, status):
            logger.info(
                "Booking %s already %s; ignoring late %s event",
                booking_id, snapshot.payment_status.value, PaymentStatus(status).value,
            )
            updated = snapshot
        else:
            updated = apply_payment_event(snapshot, status)

        if updated is not snapshot:
            self.api.update_payment(booking_id, updated)
            logger.info(
                "Booking %s payment %s -> %s (paid %s)",
                booking_id, snapshot.payment_status.value, updated.payment_status.value, updated.amount_paid,
            )

        return {
            **booking,
            "payment_status": updated.payment_status.value,
            "pricing": updated.to_record(),
            "changed": updated is not snapshot,
        }
