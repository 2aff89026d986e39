"""Tests for delivery zone resolution."""

from decimal import Decimal

import pytest

from orderflow.core.exceptions import AmbiguousDeliveryZone, NoZoneForPostalCode
from orderflow.services.zones import DeliveryZone, ZoneResolutionStatus, ZoneResolver, resolve_zone

ZONES = [
    DeliveryZone(id=1, name="Mitte", postal_codes=("10115", "10117"),
                 price=Decimal("2.50"), minimum_order_value=Decimal("15.00")),
    DeliveryZone(id=2, name="Kreuzberg", postal_codes=("10961", "10999"),
                 price=Decimal("3.50"), minimum_order_value=Decimal("20.00")),
    DeliveryZone(id=3, name="Neukölln", postal_codes=("10999", "12043"),
                 price=Decimal("4.00"), minimum_order_value=Decimal("25.00")),
]


class TestZoneResolver:
    """Postal code and city matching"""

    def test_single_match_resolves(self):
        resolution = resolve_zone(ZONES, "10115")
        assert resolution.status == ZoneResolutionStatus.RESOLVED
        assert resolution.zone.name == "Mitte"
        assert resolution.raise_for_status() is resolution.zone

    def test_postal_code_is_trimmed(self):
        assert resolve_zone(ZONES, " 10117 ").zone.id == 1

    def test_no_match_reports_postal_code(self):
        resolution = resolve_zone(ZONES, "80331")
        assert resolution.status == ZoneResolutionStatus.NO_ZONE
        assert resolution.zone is None
        assert resolution.error_message == "Sorry, we do not deliver to postal code 80331."
        with pytest.raises(NoZoneForPostalCode) as exc:
            resolution.raise_for_status()
        assert exc.value.postal_code == "80331"

    def test_city_disambiguates_shared_postal_code(self):
        resolution = resolve_zone(ZONES, "10999", "Kreuzberg")
        assert resolution.status == ZoneResolutionStatus.RESOLVED
        assert resolution.zone.id == 2
        assert {zone.id for zone in resolution.candidates} == {2, 3}

    def test_city_match_is_case_insensitive(self):
        assert resolve_zone(ZONES, "10999", "neukölln").zone.id == 3

    def test_match_text_is_considered(self):
        zones = [
            DeliveryZone(id=1, name="Zone A", postal_codes=("10999",), match_text="Graefekiez"),
            DeliveryZone(id=2, name="Zone B", postal_codes=("10999",)),
        ]
        assert resolve_zone(zones, "10999", "Graefekiez").zone.id == 1

    def test_shared_postal_code_without_city_requires_selection(self):
        resolution = resolve_zone(ZONES, "10999", "Berlin")
        assert resolution.status == ZoneResolutionStatus.AMBIGUOUS
        assert resolution.requires_selection
        assert not resolution.is_resolved
        assert resolution.zone is None
        assert "Kreuzberg" in resolution.error_message and "Neukölln" in resolution.error_message
        with pytest.raises(AmbiguousDeliveryZone):
            resolution.raise_for_status()

    def test_empty_city_is_ambiguous(self):
        assert resolve_zone(ZONES, "10999").status == ZoneResolutionStatus.AMBIGUOUS

    def test_missing_postal_code_is_pending(self):
        assert resolve_zone(ZONES, "").status == ZoneResolutionStatus.PENDING
        assert resolve_zone(ZONES, None).status == ZoneResolutionStatus.PENDING

    def test_no_zones_configured(self):
        assert ZoneResolver([]).resolve("10115").status == ZoneResolutionStatus.NO_ZONE


class TestZoneSelection:
    """Explicit choice among ambiguous candidates"""

    def test_select_candidate(self):
        selected = resolve_zone(ZONES, "10999").select(3)
        assert selected.is_resolved
        assert selected.zone.name == "Neukölln"
        assert selected.manually_selected
        assert selected.error_message is None

    def test_select_non_candidate_fails(self):
        with pytest.raises(ValueError):
            resolve_zone(ZONES, "10999").select(1)

    def test_to_dict(self):
        data = resolve_zone(ZONES, "10961").to_dict()
        assert data["status"] == "resolved"
        assert data["zone"]["price"] == "3.50"
        assert data["zone"]["postal_codes"] == ["10961", "10999"]


class TestDeliveryZoneRecord:

    def test_from_mapping(self):
        zone = DeliveryZone.from_record({
            "id": "4", "name": "Wedding", "postal_codes": [13347], "price": "1.5",
            "minimum_order_value": 12,
        })
        assert zone.id == 4
        assert zone.postal_codes == ("13347",)
        assert zone.price == Decimal("1.5")
        assert zone.minimum_order_value == Decimal("12")
        assert zone.serves("13347")
