"""Tests for the pricing engine."""

from decimal import Decimal

import pytest

from orderflow.core.money import format_money, round_money, to_decimal, to_minor_units
from orderflow.models import DiscountType, OrderType
from orderflow.schemas import OrderItemCreate
from orderflow.services.pricing import AppliedDiscount, calculate_totals, minimum_order_message
from orderflow.services.zones import DeliveryZone

KREUZBERG = DeliveryZone(id=2, name="Kreuzberg", postal_codes=("10961",),
                         price=Decimal("3.50"), minimum_order_value=Decimal("20.00"))


def items(*prices) -> list[OrderItemCreate]:
    return [
        OrderItemCreate(menu_item_id=index, name=f"Item {index}", quantity=1, unit_price=price)
        for index, price in enumerate(prices, start=1)
    ]


class TestMoney:

    def test_round_half_up(self):
        assert round_money("2.345") == Decimal("2.35")
        assert round_money(Decimal("2.344")) == Decimal("2.34")

    def test_float_goes_through_str(self):
        assert to_decimal(3.5) == Decimal("3.5")
        assert to_decimal(None) == Decimal("0")

    def test_not_a_number(self):
        with pytest.raises(ValueError):
            to_decimal("abc")

    def test_format_and_minor_units(self):
        assert format_money(8) == "8.00 €"
        assert to_minor_units("35.50") == 3550


class TestCalculateTotals:
    """Subtotal, discount, fee and total"""

    def test_subtotal_uses_quantity(self):
        lines = [OrderItemCreate(menu_item_id=1, name="Pizza", quantity=3, unit_price="9.50")]
        assert calculate_totals(lines, OrderType.PICKUP).subtotal == Decimal("28.50")

    def test_percentage_discount(self):
        """10% off 50.00 is 5.00"""
        discount = AppliedDiscount("ZEHN", DiscountType.PERCENTAGE, Decimal("10"))
        breakdown = calculate_totals(items("50.00"), OrderType.PICKUP, discount)
        assert breakdown.discount_amount == Decimal("5.00")
        assert breakdown.total == Decimal("45.00")

    def test_fixed_discount_is_capped_at_subtotal(self):
        """A fixed 20.00 discount on 15.00 never makes the total negative"""
        discount = AppliedDiscount("ZWANZIG", DiscountType.FIXED, Decimal("20.00"))
        breakdown = calculate_totals(items("15.00"), OrderType.PICKUP, discount)
        assert breakdown.discount_amount == Decimal("15.00")
        assert breakdown.total == Decimal("0")

    def test_discount_minimum_not_met_gives_no_discount(self):
        discount = AppliedDiscount("SOMMER20", DiscountType.PERCENTAGE, "20", minimum_order_value="10.00")
        breakdown = calculate_totals(items("8.00"), OrderType.PICKUP, discount)
        assert breakdown.discount_amount == Decimal("0")
        assert not breakdown.meets_discount_minimum

    def test_sommer20(self):
        """SOMMER20 on 25.00 takes off 5.00"""
        discount = AppliedDiscount("sommer20", DiscountType.PERCENTAGE, "20", minimum_order_value="10.00")
        breakdown = calculate_totals(items("12.50", "12.50"), OrderType.PICKUP, discount)
        assert discount.code == "SOMMER20"
        assert breakdown.discount_amount == Decimal("5.00")
        assert breakdown.total == Decimal("20.00")

    def test_delivery_fee_added(self):
        """32.00 + 3.50 delivery is 35.50"""
        breakdown = calculate_totals(items("19.00", "13.00"), OrderType.DELIVERY, zone=KREUZBERG)
        assert breakdown.delivery_fee == Decimal("3.50")
        assert breakdown.total == Decimal("35.50")
        assert not breakdown.below_zone_minimum

    def test_pickup_has_no_fee_even_with_zone(self):
        breakdown = calculate_totals(items("19.00"), OrderType.PICKUP, zone=KREUZBERG)
        assert breakdown.delivery_fee == Decimal("0")
        assert breakdown.shortfall == Decimal("0")

    def test_delivery_without_zone_is_pending(self):
        breakdown = calculate_totals(items("19.00"), OrderType.DELIVERY)
        assert breakdown.zone_pending
        assert breakdown.delivery_fee == Decimal("0")

    def test_zone_minimum_shortfall(self):
        zone = DeliveryZone(id=9, name="Altstadt", price=Decimal("3.50"), minimum_order_value=Decimal("40.00"))
        breakdown = calculate_totals(items("19.00", "13.00"), OrderType.DELIVERY, zone=zone)
        assert breakdown.below_zone_minimum
        assert breakdown.shortfall == Decimal("8.00")
        assert minimum_order_message(zone, breakdown) == (
            "The minimum order value for Altstadt is 40.00 €. Please add 8.00 € more."
        )

    def test_zone_minimum_ignores_discount(self):
        """A valid discount does not lift an order over the zone minimum"""
        zone = DeliveryZone(id=9, name="Altstadt", minimum_order_value=Decimal("40.00"))
        discount = AppliedDiscount("FUENF", DiscountType.FIXED, "5.00")
        breakdown = calculate_totals(items("32.00"), OrderType.DELIVERY, discount, zone)
        assert breakdown.discount_amount == Decimal("5.00")
        assert breakdown.shortfall == Decimal("8.00")

    def test_amounts_stay_unrounded(self):
        discount = AppliedDiscount("DRITTEL", DiscountType.PERCENTAGE, "33.333")
        breakdown = calculate_totals(items("10.00"), OrderType.PICKUP, discount)
        assert breakdown.discount_amount == Decimal("3.33330")
        assert breakdown.to_dict()["discount_amount"] == "3.33"
        assert breakdown.to_dict()["total"] == "6.67"
