import os
from decimal import Decimal

# Studio timezone (all "today" checks use this calendar day)
TIMEZONE = "America/Toronto"

CURRENCY = "CAD"

# Ontario HST
HST_RATE = Decimal("0.13")

# Deposit share of the total, by service type
DEPOSIT_PERCENTAGE_NON_BRIDAL = Decimal("0.50")
DEPOSIT_PERCENTAGE_DEFAULT = Decimal("0.30")

# Earliest bookable event date is today + this many days
MIN_ADVANCE_DAYS = 2

# Max people per bridal-party group (both / makeup / hair)
PARTY_GROUP_MAX = 20

DEFAULT_REGION = "Toronto/GTA"

REGIONS = (
    "Toronto/GTA",
    "Outside GTA",
)

PROVINCES = {
    "AB", "BC", "MB", "NB", "NL", "NS", "NT", "NU", "ON", "PE", "QC", "SK", "YT",
}

# =====================================================
# Default tariff
# =====================================================
# Bride's own service, keyed by (service type, region, artist tier).
# Destination weddings are quoted after a consultation, so they have no rows.
BASE_PRICES = {
    ("Bridal", "Toronto/GTA", "Lead"): "450.00",
    ("Bridal", "Toronto/GTA", "Team"): "360.00",
    ("Bridal", "Outside GTA", "Lead"): "500.00",
    ("Bridal", "Outside GTA", "Team"): "400.00",
    ("Semi-Bridal", "Toronto/GTA", "Lead"): "350.00",
    ("Semi-Bridal", "Toronto/GTA", "Team"): "280.00",
    ("Semi-Bridal", "Outside GTA", "Lead"): "390.00",
    ("Semi-Bridal", "Outside GTA", "Team"): "310.00",
    ("Non-Bridal", "Toronto/GTA", "Lead"): "250.00",
    ("Non-Bridal", "Toronto/GTA", "Team"): "200.00",
    ("Non-Bridal", "Outside GTA", "Lead"): "280.00",
    ("Non-Bridal", "Outside GTA", "Team"): "225.00",
}

# Per-person party add-ons, keyed by artist tier
ADDON_RATES = {
    "Lead": {
        "both": "200.00",
        "makeup": "120.00",
        "hair": "100.00",
        "dupatta": "20.00",
        "extensions": "30.00",
        "saree_draping": "35.00",
        "hijab_setting": "25.00",
        "airbrush": "50.00",
    },
    "Team": {
        "both": "160.00",
        "makeup": "95.00",
        "hair": "80.00",
        "dupatta": "20.00",
        "extensions": "30.00",
        "saree_draping": "35.00",
        "hijab_setting": "25.00",
        "airbrush": "40.00",
    },
}

ADDON_LABELS = {
    "both": "Bridal Party Hair & Makeup",
    "makeup": "Bridal Party Makeup Only",
    "hair": "Bridal Party Hair Only",
    "dupatta": "Dupatta/Veil Setting",
    "extensions": "Hair Extensions Installation",
    "saree_draping": "Saree Draping",
    "hijab_setting": "Hijab Setting",
    "airbrush": "Airbrush Makeup",
}

# =====================================================
# Services & secrets (env)
# =====================================================
APP_ENV = (os.getenv("APP_ENV") or "prod").strip()

BOOKING_API_URL = os.getenv("BOOKING_API_URL", "http://localhost:4000/api")
BOOKING_API_TIMEOUT = 10

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")

CALENDAR_ID = os.getenv("CALENDAR_ID", "primary")

# Length of a booked appointment on the studio calendar
DEFAULT_APPOINTMENT_DURATION_MIN = 180
