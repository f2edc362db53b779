# quote_logic.py

import re
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from availability import to_local_date
from config import (
    ADDON_LABELS,
    ADDON_RATES,
    BASE_PRICES,
    DEFAULT_REGION,
    DEPOSIT_PERCENTAGE_DEFAULT,
    DEPOSIT_PERCENTAGE_NON_BRIDAL,
    HST_RATE,
    PARTY_GROUP_MAX,
    PROVINCES,
)
from errors import (
    ConfigurationError,
    InvalidDraftError,
    OutOfRangeError,
    PaymentStateError,
)


# =========================
# ENUMS
# =========================
class ServiceType(str, Enum):
    BRIDAL = "Bridal"
    SEMI_BRIDAL = "Semi-Bridal"
    NON_BRIDAL = "Non-Bridal"
    DESTINATION = "Destination"


class ArtistTier(str, Enum):
    LEAD = "Lead"
    TEAM = "Team"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    DEPOSIT_PAID = "deposit_paid"
    FULLY_PAID = "fully_paid"


# Catalog order
ARTIST_TIERS = (ArtistTier.LEAD, ArtistTier.TEAM)

ARTIST_NAMES = {
    ArtistTier.LEAD: "Anum",
    ArtistTier.TEAM: "Team",
}

SERVICE_LABELS = {
    ServiceType.BRIDAL: "Bridal Hair & Makeup",
    ServiceType.SEMI_BRIDAL: "Semi-Bridal Hair & Makeup",
    ServiceType.NON_BRIDAL: "Non-Bridal Hair & Makeup",
    ServiceType.DESTINATION: "Destination Bridal Hair & Makeup",
}

GROUP_KEYS = ("both", "makeup", "hair")
PARTY_KEYS = GROUP_KEYS + (
    "dupatta",
    "extensions",
    "saree_draping",
    "hijab_setting",
    "airbrush",
)

_PAYMENT_ORDER = {
    PaymentStatus.UNPAID: 0,
    PaymentStatus.DEPOSIT_PAID: 1,
    PaymentStatus.FULLY_PAID: 2,
}


def _norm(value: str) -> str:
    return re.sub(r"[\s_\-]", "", value).lower()


_SERVICE_TYPE_LOOKUP = {_norm(m.value): m for m in ServiceType}
_ARTIST_LOOKUP = {_norm(m.value): m for m in ArtistTier}
_ARTIST_LOOKUP["anum"] = ArtistTier.LEAD


def parse_service_type(value: Any) -> ServiceType:
    """
    Accepts the booking backend spelling ("Non-Bridal") as well as
    "NonBridal" / "non_bridal".
    """
    if isinstance(value, ServiceType):
        return value
    text = str(value or "").strip()
    if not text:
        raise InvalidDraftError("Service type is required.")
    found = _SERVICE_TYPE_LOOKUP.get(_norm(text))
    if found is None:
        raise ConfigurationError(f"Unrecognized service type: {text!r}")
    return found


def parse_artist(value: Any) -> ArtistTier:
    if isinstance(value, ArtistTier):
        return value
    text = str(value or "").strip()
    if not text:
        raise InvalidDraftError("Please choose an artist.")
    found = _ARTIST_LOOKUP.get(_norm(text))
    if found is None:
        raise ConfigurationError(f"Unrecognized artist: {text!r}")
    return found


# =========================
# MONEY
# =========================
CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def round_money(value: Any) -> Decimal:
    """Round half-up to cents. Every derived amount goes through here."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value: Any) -> Decimal:
    """
    Read an amount from a booking record.

    The backend stores Decimal128, which serializes as
    {"$numberDecimal": "123.45"}; plain numbers and strings also work.
    """
    if isinstance(value, dict):
        value = value.get("$numberDecimal")
    return round_money(value)


def format_currency(amount: Any) -> str:
    return f"${round_money(amount):,.2f}"


def format_cad(amount: Any) -> str:
    return f"{format_currency(amount)} CAD"


def _percent_label(rate: Decimal) -> str:
    return f"{(rate * 100).normalize():f}"


# =========================
# SUMMARY ROWS
# =========================
HST_LABEL = f"HST ({_percent_label(HST_RATE)}%)"

SUMMARY_PREFIXES = (
    "Subtotal:",
    f"{HST_LABEL}:",
    "Total:",
    "Deposit required",
)


def deposit_percentage_for(service_type: Any) -> Decimal:
    """
    - Non-Bridal: 50% up front
    - everything else: 30%
    """
    if parse_service_type(service_type) == ServiceType.NON_BRIDAL:
        return DEPOSIT_PERCENTAGE_NON_BRIDAL
    return DEPOSIT_PERCENTAGE_DEFAULT


def summary_rows(
    subtotal: Decimal,
    hst: Decimal,
    total: Decimal,
    deposit_percentage: Decimal,
    deposit: Decimal,
) -> List[str]:
    return [
        f"Subtotal: {format_currency(subtotal)}",
        f"{HST_LABEL}: {format_currency(hst)}",
        f"Total: {format_currency(total)}",
        f"Deposit required ({_percent_label(deposit_percentage)}%): {format_currency(deposit)}",
    ]


def is_summary_row(row: str) -> bool:
    return row.startswith(SUMMARY_PREFIXES)


def split_services(services) -> Tuple[List[str], List[str]]:
    """
    Split a quote's service rows into (itemized, summary).

    Purely prefix based, so the amounts' formatting doesn't matter.
    Order within each group is preserved.
    """
    itemized = [row for row in services if not is_summary_row(row)]
    summary = [row for row in services if is_summary_row(row)]
    return itemized, summary


def split_summary_row(row: str) -> Tuple[str, str]:
    """'Total: $1,017.00' -> ('Total', '$1,017.00')"""
    label, _, amount = row.partition(":")
    return label.strip(), amount.strip()


# =========================
# RATE TABLE
# =========================
@dataclass(frozen=True)
class SurchargeRule:
    """
    Flat date-based surcharge.

    Matches when the event date falls on one of `weekdays` (0=Monday) and in
    one of `months`; an empty set means "any". A rule with both sets empty
    never matches.
    """
    label: str
    amount: Decimal
    weekdays: frozenset = frozenset()
    months: frozenset = frozenset()

    def applies_to(self, event_date: date) -> bool:
        if not self.weekdays and not self.months:
            return False
        if self.weekdays and event_date.weekday() not in self.weekdays:
            return False
        if self.months and event_date.month not in self.months:
            return False
        return True


@dataclass(frozen=True)
class RateTable:
    base_prices: Dict[Tuple[str, str, str], Decimal]
    addon_rates: Dict[str, Dict[str, Decimal]]
    surcharges: Tuple[SurchargeRule, ...] = ()

    @classmethod
    def from_config(cls, base_prices, addon_rates, surcharges=()) -> "RateTable":
        return cls(
            base_prices={key: round_money(v) for key, v in base_prices.items()},
            addon_rates={
                tier: {key: round_money(v) for key, v in rates.items()}
                for tier, rates in addon_rates.items()
            },
            surcharges=tuple(surcharges),
        )

    @property
    def regions(self) -> set:
        return {region for (_, region, _) in self.base_prices}

    def base_price(self, service_type: ServiceType, region: str, artist: ArtistTier) -> Optional[Decimal]:
        return self.base_prices.get((service_type.value, region, artist.value))

    def addon_rate(self, artist: ArtistTier, key: str) -> Decimal:
        try:
            return self.addon_rates[artist.value][key]
        except KeyError:
            raise ConfigurationError(f"No {artist.value} rate for add-on {key!r}")


DEFAULT_RATES = RateTable.from_config(BASE_PRICES, ADDON_RATES)


# =========================
# SERVICE ADDRESS
# =========================
POSTAL_CODE_RE = re.compile(r"^[A-Za-z]\d[A-Za-z] \d[A-Za-z]\d$")


@dataclass
class ServiceAddress:
    street: str
    city: str
    province: str
    postal_code: str

    def one_line(self) -> str:
        return f"{self.street}, {self.city}, {self.province} {self.postal_code}"


def validate_address(
    street: str,
    city: str,
    province: str,
    postal_code: str,
):
    """
    Basic Canadian address validation for separate inputs.

    Returns:
        (is_valid: bool, parsed: dict, error_message: str)
    """
    street = (street or "").strip()
    city = (city or "").strip()
    province = (province or "").strip().upper()
    postal_code = (postal_code or "").strip().upper()

    if not street:
        return False, {}, "Street address is required."
    if not city:
        return False, {}, "City is required."
    if not province:
        return False, {}, "Province is required."
    if not postal_code:
        return False, {}, "Postal code is required."

    if province not in PROVINCES:
        return False, {}, "Province should be a 2-letter code (e.g. ON, QC, BC)."

    if not POSTAL_CODE_RE.match(postal_code):
        return False, {}, "Invalid postal code format. Must be A1A 1A1"

    parsed = {
        "street": street,
        "city": city,
        "province": province,
        "postal_code": postal_code,
    }
    return True, parsed, ""


# =========================
# BOOKING DRAFT
# =========================
@dataclass
class BookingDraft:
    service_type: Optional[str] = None
    event_date: Optional[date] = None
    region: str = DEFAULT_REGION
    artist: Optional[str] = None
    party_counts: Dict[str, int] = field(default_factory=dict)
    address: Optional[ServiceAddress] = None
    ready_time: Optional[str] = None
    booking_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookingDraft":
        """
        Build a draft from a booking record or a wizard payload.

        Party counts come either as a `party_counts` mapping or as the
        wizard's flat `party_<key>_count` / `airbrush_count` fields.
        """
        data = data or {}

        counts = dict(data.get("party_counts") or {})
        for key in PARTY_KEYS:
            flat_key = "airbrush_count" if key == "airbrush" else f"party_{key}_count"
            if flat_key in data and key not in counts:
                counts[key] = data[flat_key]

        address = None
        if data.get("venue_address"):
            address = ServiceAddress(
                street=str(data.get("venue_address") or "").strip(),
                city=str(data.get("venue_city") or "").strip(),
                province=str(data.get("venue_province") or "").strip().upper(),
                postal_code=str(data.get("venue_postal") or "").strip().upper(),
            )

        return cls(
            service_type=data.get("service_type"),
            event_date=to_local_date(data.get("event_date")),
            region=data.get("region") or DEFAULT_REGION,
            artist=data.get("artist"),
            party_counts=counts,
            address=address,
            ready_time=data.get("ready_time"),
            booking_id=data.get("booking_id") or data.get("unique_id"),
        )

    def with_changes(self, **changes) -> "BookingDraft":
        return replace(self, **changes)


# =========================
# PARTY COUNTS & CAPS
# =========================
def _to_count(key: str, value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        count = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidDraftError(f"{ADDON_LABELS.get(key, key)} count must be a whole number.")
    if not count.is_finite() or count != count.to_integral_value():
        raise InvalidDraftError(f"{ADDON_LABELS.get(key, key)} count must be a whole number.")
    if count < 0:
        raise OutOfRangeError(f"{ADDON_LABELS.get(key, key)} count cannot be negative.")
    return int(count)


def party_caps(counts: Dict[str, int]) -> Dict[str, int]:
    """
    Max allowed count per add-on, given the (already capped) group counts:

    - both / makeup / hair: PARTY_GROUP_MAX each
    - dupatta, saree draping, hijab setting: total party members
    - extensions: everyone getting hair done (hair + both)
    - airbrush: everyone getting makeup done (both + makeup)
    """
    both = counts.get("both", 0)
    makeup = counts.get("makeup", 0)
    hair = counts.get("hair", 0)
    members = both + makeup + hair
    return {
        "both": PARTY_GROUP_MAX,
        "makeup": PARTY_GROUP_MAX,
        "hair": PARTY_GROUP_MAX,
        "dupatta": members,
        "extensions": hair + both,
        "saree_draping": members,
        "hijab_setting": members,
        "airbrush": both + makeup,
    }


def clamp_party_counts(raw_counts: Optional[Dict[str, Any]]):
    """
    Validate and cap party counts.

    Returns:
        (applied: dict of every add-on key -> count,
         clamped: dict of key -> (requested, applied) for capped entries)

    Raises OutOfRangeError for negatives and ConfigurationError for unknown
    add-on keys. Over-cap values are never an error.
    """
    requested = {}
    for key, value in (raw_counts or {}).items():
        if key not in PARTY_KEYS:
            raise ConfigurationError(f"Unrecognized party add-on: {key!r}")
        requested[key] = _to_count(key, value)

    applied: Dict[str, int] = {}
    clamped: Dict[str, Tuple[int, int]] = {}

    def take(key: str, cap: int) -> None:
        want = requested.get(key, 0)
        value = min(want, cap)
        if value != want:
            clamped[key] = (want, value)
        applied[key] = value

    # groups first; dependent caps read the capped groups
    for key in GROUP_KEYS:
        take(key, PARTY_GROUP_MAX)

    caps = party_caps(applied)
    for key in PARTY_KEYS[len(GROUP_KEYS):]:
        take(key, caps[key])

    return applied, clamped


# =========================
# QUOTE
# =========================
@dataclass(frozen=True)
class Quote:
    service_type: ServiceType
    artist: ArtistTier
    region: str
    services: Tuple[str, ...]
    subtotal: Decimal
    hst: Decimal
    total: Decimal
    deposit_percentage: Decimal
    deposit: Decimal
    remaining: Decimal
    party_counts: Dict[str, int] = field(default_factory=dict)
    clamped: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()

    @property
    def clamp_warning(self) -> bool:
        return bool(self.clamped)

    @property
    def deposit_percent(self) -> int:
        return int(self.deposit_percentage * 100)

    def itemized(self) -> List[str]:
        return split_services(self.services)[0]

    def summary(self) -> List[str]:
        return split_services(self.services)[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_type": self.service_type.value,
            "artist": self.artist.value,
            "artist_name": ARTIST_NAMES[self.artist],
            "region": self.region,
            "services": list(self.services),
            "itemized": self.itemized(),
            "summary": self.summary(),
            "subtotal": float(self.subtotal),
            "hst": float(self.hst),
            "total": float(self.total),
            "deposit_percentage": self.deposit_percent,
            "deposit": float(self.deposit),
            "remaining": float(self.remaining),
            "party_counts": dict(self.party_counts),
            "clamp_warning": self.clamp_warning,
            "warnings": list(self.warnings),
        }


# =========================
# MAIN PRICE CALCULATION
# =========================
def calculate_booking_price(
    draft: BookingDraft,
    artist: Any = None,
    rates: Optional[RateTable] = None,
) -> Quote:
    """
    Price a booking draft for one artist tier.

    Pure: same draft + artist + rates always gives the same Quote.

    1) bride's service from the (service type, region, artist) base table
    2) one line per non-zero party add-on at the tier's per-person rate
    3) date surcharges, only when the event date is known
    4) subtotal, 13% HST, total
    5) deposit (50% Non-Bridal, 30% otherwise) and remaining balance
    6) four trailing summary rows
    """
    if draft is None:
        raise InvalidDraftError("Booking details are required.")
    rates = rates or DEFAULT_RATES

    service_type = parse_service_type(draft.service_type)
    tier = parse_artist(artist if artist is not None else draft.artist)

    region = draft.region or DEFAULT_REGION
    if region not in rates.regions:
        raise ConfigurationError(f"Unrecognized region: {region!r}")

    base = rates.base_price(service_type, region, tier)
    if base is None:
        raise ConfigurationError(
            f"No {service_type.value} pricing for {ARTIST_NAMES[tier]} in {region}"
        )

    counts, clamped = clamp_party_counts(draft.party_counts)

    # ----------------------------
    # 1) Bride
    # ----------------------------
    amounts = [base]
    services = [
        f"{SERVICE_LABELS[service_type]} ({ARTIST_NAMES[tier]}): {format_currency(base)}"
    ]

    # ----------------------------
    # 2) Bridal party add-ons
    # ----------------------------
    for key in PARTY_KEYS:
        count = counts[key]
        if count == 0:
            continue
        amount = round_money(rates.addon_rate(tier, key) * count)
        amounts.append(amount)
        services.append(f"{ADDON_LABELS[key]} x {count}: {format_currency(amount)}")

    # ----------------------------
    # 3) Date surcharges
    # ----------------------------
    if draft.event_date is not None:
        for rule in rates.surcharges:
            if rule.applies_to(draft.event_date):
                amount = round_money(rule.amount)
                amounts.append(amount)
                services.append(f"{rule.label}: {format_currency(amount)}")

    # ----------------------------
    # 4) Subtotal + HST
    # ----------------------------
    subtotal = round_money(sum(amounts, Decimal("0")))
    hst = round_money(subtotal * HST_RATE)
    total = round_money(subtotal + hst)

    # ----------------------------
    # 5) Deposit
    # ----------------------------
    deposit_percentage = deposit_percentage_for(service_type)
    deposit = round_money(total * deposit_percentage)
    remaining = round_money(total - deposit)

    services.extend(summary_rows(subtotal, hst, total, deposit_percentage, deposit))

    warnings = tuple(
        f"{ADDON_LABELS[key]} reduced from {want} to {got}."
        for key, (want, got) in clamped.items()
    )

    return Quote(
        service_type=service_type,
        artist=tier,
        region=region,
        services=tuple(services),
        subtotal=subtotal,
        hst=hst,
        total=total,
        deposit_percentage=deposit_percentage,
        deposit=deposit,
        remaining=remaining,
        party_counts=counts,
        clamped=clamped,
        warnings=warnings,
    )


# =========================
# PACKAGE CATALOG
# =========================
PACKAGE_INFO = {
    ArtistTier.LEAD: ("anum", "Anum Package", "Hair & makeup by Anum herself."),
    ArtistTier.TEAM: ("team", "Team Package", "Hair & makeup by a senior artist from Anum's team."),
}


@dataclass(frozen=True)
class Package:
    id: str
    name: str
    description: str
    price: Decimal
    services: Tuple[str, ...]
    artist: ArtistTier
    quote: Quote

    def to_dict(self) -> Dict[str, Any]:
        itemized, summary = split_services(self.services)
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": float(self.price),
            "price_display": format_cad(self.price),
            "artist": self.artist.value,
            "services": list(self.services),
            "itemized": itemized,
            "summary": summary,
            "warnings": list(self.quote.warnings),
        }


def get_dynamic_packages(
    draft: BookingDraft,
    rates: Optional[RateTable] = None,
) -> List[Package]:
    """
    One package per artist tier, in ARTIST_TIERS order.

    A tier with no rate row for the draft's service type / region is left
    out; an empty list means pricing is unavailable (e.g. Destination,
    which is quoted after a consultation). A region missing from the rate
    table altogether is a ConfigurationError, as in the calculator.
    """
    rates = rates or DEFAULT_RATES
    if draft is None or not str(draft.service_type or "").strip():
        raise ConfigurationError("Service type is required to list packages.")

    service_type = parse_service_type(draft.service_type)
    region = draft.region or DEFAULT_REGION
    if region not in rates.regions:
        raise ConfigurationError(f"Unrecognized region: {region!r}")

    packages = []
    for tier in ARTIST_TIERS:
        if rates.base_price(service_type, region, tier) is None:
            continue
        quote = calculate_booking_price(draft, tier, rates)
        package_id, name, description = PACKAGE_INFO[tier]
        packages.append(
            Package(
                id=package_id,
                name=name,
                description=description,
                price=quote.total,
                services=quote.services,
                artist=tier,
                quote=quote,
            )
        )
    return packages


# =========================
# PRICING SNAPSHOT
# =========================
@dataclass(frozen=True)
class PricingSnapshot:
    """
    Frozen copy of a quote as persisted on the booking.

    Only amount_paid and payment_status ever change after creation.
    """
    services: Tuple[str, ...]
    subtotal: Decimal
    hst: Decimal
    total: Decimal
    deposit_percentage: Decimal
    deposit: Decimal
    remaining: Decimal
    amount_paid: Decimal = ZERO
    payment_status: PaymentStatus = PaymentStatus.UNPAID

    @property
    def balance_due(self) -> Decimal:
        if self.payment_status == PaymentStatus.FULLY_PAID:
            return ZERO
        return round_money(self.total - self.amount_paid)

    def to_record(self) -> Dict[str, Any]:
        return {
            "services": list(self.services),
            "subtotal": float(self.subtotal),
            "hst_amount": float(self.hst),
            "total_amount": float(self.total),
            "deposit_percentage": int(self.deposit_percentage * 100),
            "deposit_amount": float(self.deposit),
            "remaining_amount": float(self.remaining),
            "amount_paid": float(self.amount_paid),
            "payment_status": self.payment_status.value,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "PricingSnapshot":
        record = record or {}
        if record.get("total_amount") is None:
            raise InvalidDraftError("Booking has no saved pricing yet.")

        pct = to_decimal(record.get("deposit_percentage"), DEPOSIT_PERCENTAGE_DEFAULT * 100)
        if pct > 1:
            pct = pct / 100

        try:
            status = PaymentStatus(record.get("payment_status") or PaymentStatus.UNPAID.value)
        except ValueError:
            raise PaymentStateError(f"Unknown payment status: {record.get('payment_status')!r}")

        return cls(
            services=tuple(record.get("services") or ()),
            subtotal=parse_money(record.get("subtotal")),
            hst=parse_money(record.get("hst_amount")),
            total=parse_money(record.get("total_amount")),
            deposit_percentage=pct,
            deposit=parse_money(record.get("deposit_amount")),
            remaining=parse_money(record.get("remaining_amount")),
            amount_paid=parse_money(record.get("amount_paid")),
            payment_status=status,
        )


def build_snapshot(quote: Quote, deposit_percentage: Any = None) -> PricingSnapshot:
    """
    Freeze a quote for persistence: amount_paid = 0, status unpaid.

    `deposit_percentage` may be given as 0.3 or 30; it must agree with the
    quote's own percentage.
    """
    pct = quote.deposit_percentage
    if deposit_percentage is not None:
        given = to_decimal(deposit_percentage)
        if given > 1:
            given = given / 100
        if given != pct:
            raise InvalidDraftError(
                f"Deposit percentage {deposit_percentage} does not match the quote ({quote.deposit_percent}%)."
            )

    return PricingSnapshot(
        services=quote.services,
        subtotal=quote.subtotal,
        hst=quote.hst,
        total=quote.total,
        deposit_percentage=pct,
        deposit=quote.deposit,
        remaining=quote.remaining,
        amount_paid=ZERO,
        payment_status=PaymentStatus.UNPAID,
    )


def apply_payment_event(snapshot: PricingSnapshot, status: Any) -> PricingSnapshot:
    """
    Move a snapshot forward after a confirmed payment.

    - deposit_paid: amount_paid = deposit
    - fully_paid:   amount_paid = total
    Re-applying the current status is a no-op (webhooks retry); going
    backwards raises PaymentStateError. Quote amounts are never touched.
    """
    try:
        new_status = PaymentStatus(status)
    except ValueError:
        raise PaymentStateError(f"Unknown payment status: {status!r}")

    current = snapshot.payment_status
    if new_status == current:
        return snapshot
    if _PAYMENT_ORDER[new_status] < _PAYMENT_ORDER[current]:
        raise PaymentStateError(
            f"Cannot move payment status from {current.value} to {new_status.value}."
        )

    paid = snapshot.deposit if new_status == PaymentStatus.DEPOSIT_PAID else snapshot.total
    return replace(snapshot, amount_paid=paid, payment_status=new_status)


def is_superseded(snapshot: PricingSnapshot, status: Any) -> bool:
    """True when the snapshot is already past `status` (a late, out-of-order event)."""
    try:
        new_status = PaymentStatus(status)
    except ValueError:
        return False
    return _PAYMENT_ORDER[new_status] < _PAYMENT_ORDER[snapshot.payment_status]
