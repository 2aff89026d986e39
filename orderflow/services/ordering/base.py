"""
Ordering Backend Abstract Base Class

The server-side contracts the checkout flow depends on:

    fetch_delivery_timing_profile(restaurant_id, order_type, zone_id?)
    validate_discount_code(restaurant_id, code)
    create_order(order)

Implementations:
    - OrderingService: in-process, authoritative, backed by an order store
    - HttpOrderingBackend: terminal-side client calling the HTTP API

Besides the three contracts, the checkout needs the restaurant profile and
its delivery zones to evaluate gates locally, so backends expose those too.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from orderflow.models import DiscountType, OrderType
from orderflow.schemas import OrderCreate
from orderflow.services.pricing import AppliedDiscount
from orderflow.services.store.base import RestaurantProfile
from orderflow.services.zones import DeliveryZone


@dataclass
class DeliveryTimingProfile:
    """
    Preparation lead time for one order type (and zone).

    Attributes:
        preparation_minutes: Minutes the kitchen needs
        is_default: True when nothing was configured and the default applies
    """
    preparation_minutes: int
    is_default: bool = False

    def to_dict(self) -> dict:
        return {
            "preparation_minutes": self.preparation_minutes,
            "is_default": self.is_default,
        }


@dataclass
class DiscountValidation:
    """
    Result of a server-side discount code check.

    Attributes:
        valid: Whether the code exists and is active
        code: Normalised (upper-case) code
        discount_type: percentage or fixed
        discount_value: Percent or amount
        minimum_order_value: Subtotal required for the code to apply
        error: Message for the customer when invalid
    """
    valid: bool
    code: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    minimum_order_value: Optional[Decimal] = None
    error: Optional[str] = None

    def to_discount(self) -> Optional[AppliedDiscount]:
        """The pricing-engine view of a valid code, None otherwise."""
        if not self.valid or self.code is None or self.discount_type is None:
            return None
        return AppliedDiscount(
            code=self.code,
            discount_type=self.discount_type,
            value=self.discount_value or Decimal("0"),
            minimum_order_value=self.minimum_order_value or Decimal("0"),
        )

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "code": self.code,
            "discount_type": self.discount_type.value if self.discount_type else None,
            "discount_value": str(self.discount_value) if self.discount_value is not None else None,
            "minimum_order_value": (
                str(self.minimum_order_value) if self.minimum_order_value is not None else None
            ),
            "error": self.error,
        }


@dataclass
class OrderCreateResult:
    """
    Outcome of the authoritative order commit.

    Attributes:
        success: Whether an order now exists
        order_id: Database id of the order
        order_number: Per-restaurant running number shown to the customer
        total: Total as recomputed by the server
        error: Message for the customer on failure
        error_code: Machine-readable reason
    """
    success: bool
    order_id: Optional[int] = None
    order_number: Optional[int] = None
    total: Optional[Decimal] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "total": str(self.total) if self.total is not None else None,
            "error": self.error,
            "error_code": self.error_code,
        }


class BaseOrderingBackend(ABC):
    """
    Abstract base class for ordering backends.

    Every method reports expected failures through its result object and
    only raises for transport-level problems the caller cannot act on.
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend name (e.g., "local", "http")."""

    @abstractmethod
    async def get_restaurant(self, restaurant_id: int) -> Optional[RestaurantProfile]:
        """Restaurant profile or None if unknown."""

    @abstractmethod
    async def list_delivery_zones(self, restaurant_id: int) -> list[DeliveryZone]:
        """Delivery zones of the restaurant."""

    @abstractmethod
    async def fetch_delivery_timing_profile(
        self,
        restaurant_id: int,
        order_type: OrderType,
        zone_id: Optional[int] = None,
    ) -> DeliveryTimingProfile:
        """
        Preparation minutes for slot generation.

        Pickup reads the restaurant-wide entry, delivery the zone's entry;
        the configured defaults apply when no entry exists.
        """

    @abstractmethod
    async def validate_discount_code(self, restaurant_id: int, code: str) -> DiscountValidation:
        """Check a discount code against the restaurant's active codes."""

    @abstractmethod
    async def create_order(self, order: OrderCreate) -> OrderCreateResult:
        """Commit an order. The single source of truth for whether it exists."""
