"""
Checkout Draft

Transient, mutable state of one checkout attempt. Created when the checkout
opens, reset on close and after a successful order. Nothing in here is
persisted until the server accepts the order.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from orderflow.models import OrderType, PaymentMethod
from orderflow.services.checkout.cart import CartItem
from orderflow.services.ordering.base import DeliveryTimingProfile
from orderflow.services.payment.base import PaymentResult
from orderflow.services.pricing import AppliedDiscount
from orderflow.services.scheduling import Slot
from orderflow.services.zones import DeliveryZone, ZoneResolution, ZoneResolutionStatus


@dataclass
class ContactDetails:
    name: str = ""
    phone: str = ""
    email: str = ""
    notes: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.name.strip() and self.phone.strip())

    def to_dict(self) -> dict:
        return {"name": self.name, "phone": self.phone, "email": self.email}


@dataclass
class DeliveryAddress:
    street: str = ""
    house_number: str = ""
    postal_code: str = ""
    city: str = ""

    @property
    def is_complete(self) -> bool:
        return all(
            value.strip()
            for value in (self.street, self.house_number, self.postal_code, self.city)
        )

    def to_dict(self) -> dict:
        return {
            "street": self.street,
            "house_number": self.house_number,
            "postal_code": self.postal_code,
            "city": self.city,
        }


def compose_address(address: DeliveryAddress) -> str:
    """``"{street} {number}, {postal_code} {city}"`` with whitespace trimmed."""
    line_one = f"{address.street.strip()} {address.house_number.strip()}".strip()
    line_two = f"{address.postal_code.strip()} {address.city.strip()}".strip()
    return ", ".join(part for part in (line_one, line_two) if part)


@dataclass
class CheckoutDraft:
    """
    Everything the customer has entered or the resolvers have produced.

    Attributes:
        generation: Identifies this draft; results for older drafts are dropped
        slots: None until the first slot fetch completes
        discount: Last successfully validated discount code
        payment: Confirmed external payment, if any
        error: Message shown for the last failed transition
    """
    generation: int
    restaurant_id: int
    order_type: OrderType = OrderType.PICKUP
    contact: ContactDetails = field(default_factory=ContactDetails)
    address: DeliveryAddress = field(default_factory=DeliveryAddress)
    zone_resolution: ZoneResolution = field(
        default_factory=lambda: ZoneResolution(status=ZoneResolutionStatus.PENDING)
    )
    timing: Optional[DeliveryTimingProfile] = None
    slots: Optional[list[Slot]] = None
    scheduled_time: Optional[datetime] = None
    discount: Optional[AppliedDiscount] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment: Optional[PaymentResult] = None
    cart_snapshot: tuple[CartItem, ...] = ()
    order_id: Optional[int] = None
    order_number: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_delivery(self) -> bool:
        return self.order_type == OrderType.DELIVERY

    @property
    def zone(self) -> Optional[DeliveryZone]:
        if not self.is_delivery or not self.zone_resolution.is_resolved:
            return None
        return self.zone_resolution.zone

    def composed_address(self) -> Optional[str]:
        return compose_address(self.address) if self.is_delivery else None

    def select_slot(self, instant: Optional[datetime]) -> None:
        """Choose a slot; None means "as soon as possible" (the first slot)."""
        if instant is not None and self.slots is not None:
            if all(slot.instant != instant for slot in self.slots):
                raise ValueError("The selected time is not offered")
        self.scheduled_time = instant

    def effective_scheduled_time(self) -> Optional[datetime]:
        if self.scheduled_time is not None:
            return self.scheduled_time
        if self.slots:
            return self.slots[0].instant
        return None
