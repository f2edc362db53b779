from decimal import Decimal

import pytest

from errors import ConfigurationError
from quote_logic import (
    DEFAULT_RATES,
    ArtistTier,
    BookingDraft,
    RateTable,
    get_dynamic_packages,
    is_summary_row,
    split_services,
    split_summary_row,
)


def test_one_package_per_tier_in_order():
    packages = get_dynamic_packages(BookingDraft(service_type="Bridal"))

    assert [p.id for p in packages] == ["anum", "team"]
    assert [p.artist for p in packages] == [ArtistTier.LEAD, ArtistTier.TEAM]
    assert packages[0].price == Decimal("508.50")
    assert packages[1].price == Decimal("406.80")


def test_package_price_matches_quote_total():
    draft = BookingDraft(service_type="Semi-Bridal", party_counts={"makeup": 2, "airbrush": 1})
    for package in get_dynamic_packages(draft):
        assert package.price == package.quote.total
        assert package.services == package.quote.services


def test_destination_has_no_packages():
    assert get_dynamic_packages(BookingDraft(service_type="Destination")) == []


def test_tier_without_rate_row_is_skipped():
    rates = RateTable(
        {("Bridal", "Toronto/GTA", "Team"): Decimal("360.00")},
        DEFAULT_RATES.addon_rates,
    )
    packages = get_dynamic_packages(BookingDraft(service_type="Bridal"), rates)
    assert [p.id for p in packages] == ["team"]


@pytest.mark.parametrize("service_type", [None, "", "  "])
def test_missing_service_type_is_configuration_error(service_type):
    with pytest.raises(ConfigurationError):
        get_dynamic_packages(BookingDraft(service_type=service_type))


def test_package_dict_splits_summary_rows():
    package = get_dynamic_packages(BookingDraft(service_type="Bridal"))[0]
    data = package.to_dict()

    assert data["itemized"] == ["Bridal Hair & Makeup (Anum): $450.00"]
    assert data["summary"] == [
        "Subtotal: $450.00",
        "HST (13%): $58.50",
        "Total: $508.50",
        "Deposit required (30%): $152.55",
    ]
    assert data["price_display"] == "$508.50 CAD"


def test_split_services_preserves_order():
    rows = [
        "Bridal Hair & Makeup (Anum): $450.00",
        "Subtotal: $450.00",
        "Bridal Party Hair Only x 1: $100.00",
        "Total: $508.50",
    ]
    itemized, summary = split_services(rows)

    assert itemized == [rows[0], rows[2]]
    assert summary == [rows[1], rows[3]]


def test_summary_row_detection_is_prefix_based():
    assert is_summary_row("Deposit required (50%): $141.25")
    assert is_summary_row("HST (13%): $1,017.00")
    assert not is_summary_row("Hair Extensions Installation x 5: $150.00")
    assert split_summary_row("Total: $1,017.00") == ("Total", "$1,017.00")


def test_unknown_region_is_configuration_error():
    with pytest.raises(ConfigurationError):
        get_dynamic_packages(BookingDraft(service_type="Bridal", region="Mars"))


def test_known_region_without_rows_is_empty():
    packages = get_dynamic_packages(BookingDraft(service_type="Destination", region="Outside GTA"))
    assert packages == []
