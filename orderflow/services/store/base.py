"""
Order Store Abstract Base Class

Read access to the restaurant data the checkout needs (opening hours,
zones, preparation times, discount codes) and the single write the
checkout performs: committing an order.

Implementations:
    - InMemoryOrderStore: development mode and tests, seeded demo data
    - SqlOrderStore: PostgreSQL through SQLAlchemy async sessions
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from orderflow.core.money import ZERO, round_money
from orderflow.models import DiscountType, OrderStatus, OrderType, PaymentMethod
from orderflow.services.zones import DeliveryZone


@dataclass
class RestaurantProfile:
    """What the checkout knows about a restaurant."""
    id: int
    name: str
    opening_hours: dict[str, Any] = field(default_factory=dict)
    accepts_preorders: bool = False
    manually_closed: bool = False
    is_active: bool = True
    payment_available: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "opening_hours": self.opening_hours,
            "accepts_preorders": self.accepts_preorders,
            "manually_closed": self.manually_closed,
            "is_active": self.is_active,
            "payment_available": self.payment_available,
        }


@dataclass
class DiscountCodeRecord:
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    minimum_order_value: Decimal = ZERO
    is_active: bool = True
    usage_count: int = 0


@dataclass
class StoredOrderItem:
    menu_item_id: int
    item_name: str
    quantity: int
    unit_price: Decimal
    variant_name: Optional[str] = None
    toppings: list[tuple[str, Decimal]] = field(default_factory=list)
    notes: Optional[str] = None

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class StoredOrder:
    """
    An order as persisted by the store.

    ``id`` and ``order_number`` are None until ``save_order`` assigns them.
    """
    restaurant_id: int
    order_type: OrderType
    customer_name: str
    customer_phone: str
    subtotal: Decimal
    discount_amount: Decimal
    delivery_fee: Decimal
    total: Decimal
    items: list[StoredOrderItem] = field(default_factory=list)
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    customer_notes: Optional[str] = None
    delivery_zone_id: Optional[int] = None
    discount_code_used: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_intent_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    id: Optional[int] = None
    order_number: Optional[int] = None
    created_at: Optional[datetime] = None

    def with_identity(self, order_id: int, order_number: int, created_at: datetime) -> "StoredOrder":
        return replace(self, id=order_id, order_number=order_number, created_at=created_at)

    def to_export_row(self) -> dict:
        """Flat, JSON-safe row for the spreadsheet export task."""
        return {
            "order_id": self.id,
            "order_number": self.order_number,
            "restaurant_id": self.restaurant_id,
            "order_type": self.order_type.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "scheduled_time": self.scheduled_time.isoformat() if self.scheduled_time else None,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "customer_address": self.customer_address,
            "delivery_zone_id": self.delivery_zone_id,
            "items": "; ".join(
                f"{item.quantity}x {item.item_name}"
                + (f" ({item.variant_name})" if item.variant_name else "")
                for item in self.items
            ),
            "subtotal": float(round_money(self.subtotal)),
            "discount_code": self.discount_code_used,
            "discount_amount": float(round_money(self.discount_amount)),
            "delivery_fee": float(round_money(self.delivery_fee)),
            "total": float(round_money(self.total)),
            "payment_method": self.payment_method.value,
            "payment_intent_id": self.payment_intent_id,
            "status": self.status.value,
        }


class BaseOrderStore(ABC):
    """
    Abstract base class for order stores.

    All lookups are scoped by restaurant id (multi-tenant).
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the store (e.g., "memory", "postgres")."""

    @abstractmethod
    async def get_restaurant(self, restaurant_id: int) -> Optional[RestaurantProfile]:
        """Restaurant profile or None if unknown."""

    @abstractmethod
    async def list_delivery_zones(self, restaurant_id: int) -> list[DeliveryZone]:
        """Delivery zones of the restaurant in display order."""

    @abstractmethod
    async def get_preparation_minutes(
        self,
        restaurant_id: int,
        delivery_zone_id: Optional[int] = None,
    ) -> Optional[int]:
        """
        Configured preparation minutes.

        Args:
            restaurant_id: Restaurant to look up
            delivery_zone_id: Zone for delivery, None for the pickup entry

        Returns:
            Minutes, or None when nothing is configured
        """

    @abstractmethod
    async def find_discount_code(self, restaurant_id: int, code: str) -> Optional[DiscountCodeRecord]:
        """Active discount code matching ``code`` case-insensitively."""

    @abstractmethod
    async def save_order(self, order: StoredOrder) -> StoredOrder:
        """
        Persist an order.

        Assigns the id and the next per-restaurant order number and
        increments the usage count of the discount code used.

        Returns:
            The stored order with id, order_number and created_at set
        """

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[StoredOrder]:
        """Stored order or None."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the store is reachable."""
