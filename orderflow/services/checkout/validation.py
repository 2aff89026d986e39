"""
Checkout Gates

Everything that must hold before the details step may proceed to payment
or order submission. ``evaluate_details`` returns all unmet gates in a
fixed order; the first one is what the customer sees.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from orderflow.services.checkout.draft import CheckoutDraft
from orderflow.services.pricing import PriceBreakdown, minimum_order_message
from orderflow.services.store.base import RestaurantProfile
from orderflow.services.zones import ZoneResolutionStatus


class BlockingCode(str, Enum):
    CONTACT_MISSING = "contact_missing"
    ADDRESS_MISSING = "address_missing"
    ZONE_PENDING = "zone_pending"
    NO_ZONE = "no_zone_for_postal_code"
    ZONE_AMBIGUOUS = "ambiguous_zone"
    BELOW_MINIMUM_ORDER = "below_minimum_order"
    MANUALLY_CLOSED = "restaurant_manually_closed"
    CLOSED_NO_PREORDERS = "restaurant_closed"
    NO_SLOT = "no_slot_available"
    CART_EMPTY = "cart_empty"
    NOT_READY = "not_ready"


@dataclass(frozen=True)
class BlockingReason:
    code: BlockingCode
    message: str

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}


def evaluate_details(
    draft: CheckoutDraft,
    restaurant: Optional[RestaurantProfile],
    breakdown: PriceBreakdown,
    is_open: bool,
) -> list[BlockingReason]:
    """
    Collect every unmet gate of the details step.

    Args:
        draft: Current checkout draft
        restaurant: Restaurant profile (None until loaded)
        breakdown: Live price breakdown of the cart
        is_open: Whether the restaurant is open right now

    Returns:
        Blocking reasons in display order, empty when the step may advance
    """
    reasons: list[BlockingReason] = []

    if not draft.contact.is_complete:
        reasons.append(BlockingReason(
            BlockingCode.CONTACT_MISSING,
            "Please enter your name and phone number.",
        ))

    if draft.is_delivery:
        if not draft.address.is_complete:
            reasons.append(BlockingReason(
                BlockingCode.ADDRESS_MISSING,
                "Please enter your full delivery address (street, house number, postal code, city).",
            ))

        resolution = draft.zone_resolution
        if resolution.status == ZoneResolutionStatus.NO_ZONE:
            reasons.append(BlockingReason(BlockingCode.NO_ZONE, resolution.error_message))
        elif resolution.status == ZoneResolutionStatus.AMBIGUOUS:
            reasons.append(BlockingReason(BlockingCode.ZONE_AMBIGUOUS, resolution.error_message))
        elif not resolution.is_resolved:
            reasons.append(BlockingReason(
                BlockingCode.ZONE_PENDING,
                "Please enter your postal code so we can determine the delivery zone.",
            ))

        zone = draft.zone
        if zone is not None and breakdown.below_zone_minimum:
            reasons.append(BlockingReason(
                BlockingCode.BELOW_MINIMUM_ORDER,
                minimum_order_message(zone, breakdown),
            ))

    if restaurant is None:
        reasons.append(BlockingReason(
            BlockingCode.NOT_READY,
            "Restaurant information is still loading. Please try again in a moment.",
        ))
    else:
        if restaurant.manually_closed:
            reasons.append(BlockingReason(
                BlockingCode.MANUALLY_CLOSED,
                f"{restaurant.name} is not accepting orders at the moment.",
            ))
        elif not is_open and not restaurant.accepts_preorders:
            reasons.append(BlockingReason(
                BlockingCode.CLOSED_NO_PREORDERS,
                f"{restaurant.name} is closed right now and does not accept pre-orders.",
            ))

    if draft.slots is not None and not draft.slots:
        reasons.append(BlockingReason(
            BlockingCode.NO_SLOT,
            "There is no pickup or delivery time available at the moment.",
        ))

    if not draft.cart_snapshot:
        reasons.append(BlockingReason(BlockingCode.CART_EMPTY, "Your cart is empty."))

    return reasons
