"""
Checkout Pricing

Computes subtotal, discount, delivery fee and total for a cart:

    subtotal  = sum(unit_price * quantity)
    discount  = 0 if no code or the code's minimum is not met
                percentage -> subtotal * value / 100
                fixed      -> min(value, subtotal)
    fee       = 0 for pickup, zone price for delivery (0 while unresolved)
    total     = max(0, subtotal - discount + fee)

The zone's minimum order value is checked separately from the discount's
own minimum and blocks submission with the exact shortfall.

Both the terminal (live totals) and the server (authoritative recompute)
use these functions.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

from orderflow.core.money import ZERO, format_money, round_money, to_decimal
from orderflow.models import DiscountType, OrderType
from orderflow.services.zones import DeliveryZone


@dataclass(frozen=True)
class AppliedDiscount:
    """
    A discount code that passed server-side validation.

    ``code`` is normalised to upper case.
    """
    code: str
    discount_type: DiscountType
    value: Decimal
    minimum_order_value: Decimal = ZERO

    def __post_init__(self):
        object.__setattr__(self, "code", self.code.strip().upper())
        object.__setattr__(self, "discount_type", DiscountType(self.discount_type))
        object.__setattr__(self, "value", to_decimal(self.value))
        object.__setattr__(self, "minimum_order_value", to_decimal(self.minimum_order_value))


@dataclass(frozen=True)
class PriceBreakdown:
    """
    Result of a price calculation.

    Attributes:
        subtotal: Sum of all cart lines
        discount_amount: Amount taken off (0 if not eligible)
        delivery_fee: Fee of the resolved zone (0 for pickup)
        total: Amount payable, never negative
        meets_discount_minimum: Subtotal reaches the code's minimum
        zone_pending: Delivery without a resolved zone yet
        zone_minimum_order: Minimum order of the resolved zone
        shortfall: Missing amount to reach the zone minimum (0 if met)
    """
    subtotal: Decimal
    discount_amount: Decimal
    delivery_fee: Decimal
    total: Decimal
    meets_discount_minimum: bool = True
    zone_pending: bool = False
    zone_minimum_order: Decimal = ZERO
    shortfall: Decimal = ZERO

    @property
    def below_zone_minimum(self) -> bool:
        return self.shortfall > ZERO

    def to_dict(self) -> dict:
        """Rounded, display-ready amounts for JSON serialization."""
        return {
            "subtotal": str(round_money(self.subtotal)),
            "discount_amount": str(round_money(self.discount_amount)),
            "delivery_fee": str(round_money(self.delivery_fee)),
            "total": str(round_money(self.total)),
            "meets_discount_minimum": self.meets_discount_minimum,
            "zone_pending": self.zone_pending,
            "zone_minimum_order": str(round_money(self.zone_minimum_order)),
            "shortfall": str(round_money(self.shortfall)),
        }


def line_total(item: Any) -> Decimal:
    return to_decimal(item.unit_price) * int(item.quantity)


def calculate_subtotal(items: Iterable[Any]) -> Decimal:
    """Sum of ``unit_price * quantity`` for objects exposing both."""
    return sum((line_total(item) for item in items), ZERO)


def calculate_discount(subtotal: Decimal, discount: Optional[AppliedDiscount]) -> Decimal:
    if discount is None or subtotal < discount.minimum_order_value:
        return ZERO
    if discount.discount_type == DiscountType.PERCENTAGE:
        return subtotal * discount.value / Decimal(100)
    return min(discount.value, subtotal)


def calculate_totals(
    items: Iterable[Any],
    order_type: OrderType,
    discount: Optional[AppliedDiscount] = None,
    zone: Optional[DeliveryZone] = None,
) -> PriceBreakdown:
    """
    Price a cart.

    Args:
        items: Cart lines with ``unit_price`` and ``quantity``
        order_type: Pickup or delivery
        discount: Validated discount code, if any
        zone: Resolved delivery zone, if any

    Returns:
        PriceBreakdown with unrounded amounts
    """
    subtotal = calculate_subtotal(items)
    meets_minimum = discount is None or subtotal >= discount.minimum_order_value
    discount_amount = calculate_discount(subtotal, discount)

    delivery_fee = ZERO
    zone_pending = False
    zone_minimum = ZERO
    shortfall = ZERO

    if OrderType(order_type) == OrderType.DELIVERY:
        if zone is None:
            zone_pending = True
        else:
            delivery_fee = zone.price
            zone_minimum = zone.minimum_order_value
            if zone_minimum > ZERO and subtotal < zone_minimum:
                shortfall = zone_minimum - subtotal

    total = max(subtotal - discount_amount + delivery_fee, ZERO)

    return PriceBreakdown(
        subtotal=subtotal,
        discount_amount=discount_amount,
        delivery_fee=delivery_fee,
        total=total,
        meets_discount_minimum=meets_minimum,
        zone_pending=zone_pending,
        zone_minimum_order=zone_minimum,
        shortfall=shortfall,
    )


def minimum_order_message(zone: DeliveryZone, breakdown: PriceBreakdown) -> str:
    return (
        f"The minimum order value for {zone.name} is "
        f"{format_money(zone.minimum_order_value)}. "
        f"Please add {format_money(breakdown.shortfall)} more."
    )
