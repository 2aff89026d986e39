"""
In-Memory Order Store

Stands in for PostgreSQL in development mode (ENV_MODE=development) and in
tests. Holds restaurants, zones, preparation times and discount codes in
dictionaries and keeps committed orders in a list.

``InMemoryOrderStore.with_demo_data()`` seeds one demo restaurant so the
API and the simulation script work without a database.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from orderflow.models import DiscountType
from orderflow.services.store.base import (
    BaseOrderStore,
    DiscountCodeRecord,
    RestaurantProfile,
    StoredOrder,
)
from orderflow.services.zones import DeliveryZone

logger = logging.getLogger(__name__)


DEMO_OPENING_HOURS = {
    "mon": {"open": "11:00", "close": "22:00"},
    "tue": {"open": "11:00", "close": "22:00"},
    "wed": {"open": "11:00", "close": "22:00"},
    "thu": {"open": "11:00", "close": "22:00"},
    "fri": {"open": "11:00", "close": "02:00"},
    "sat": {"open": "12:00", "close": "02:00"},
    "sun": {"open": "12:00", "close": "21:00"},
}


class InMemoryOrderStore(BaseOrderStore):
    """
    Dictionary-backed order store.

    Example:
        >>> store = InMemoryOrderStore()
        >>> store.add_restaurant(
        ...     RestaurantProfile(id=1, name="Pizzeria", opening_hours=hours),
        ...     zones=[DeliveryZone(id=1, name="Mitte", postal_codes=("10117",))],
        ...     pickup_minutes=15,
        ... )
    """

    def __init__(self):
        self._restaurants: dict[int, RestaurantProfile] = {}
        self._zones: dict[int, list[DeliveryZone]] = {}
        self._preparation: dict[tuple[int, Optional[int]], int] = {}
        self._discount_codes: dict[int, list[DiscountCodeRecord]] = {}
        self._orders: list[StoredOrder] = []
        self._lock = asyncio.Lock()

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def orders(self) -> list[StoredOrder]:
        return list(self._orders)

    # =========================================================================
    # SEEDING
    # =========================================================================

    def add_restaurant(
        self,
        restaurant: RestaurantProfile,
        zones: Iterable[DeliveryZone] = (),
        pickup_minutes: Optional[int] = None,
        zone_minutes: Optional[dict[int, int]] = None,
        discount_codes: Iterable[DiscountCodeRecord] = (),
    ) -> None:
        self._restaurants[restaurant.id] = restaurant
        self._zones[restaurant.id] = list(zones)
        if pickup_minutes is not None:
            self._preparation[(restaurant.id, None)] = pickup_minutes
        for zone_id, minutes in (zone_minutes or {}).items():
            self._preparation[(restaurant.id, zone_id)] = minutes
        self._discount_codes[restaurant.id] = list(discount_codes)

    @classmethod
    def with_demo_data(cls) -> "InMemoryOrderStore":
        store = cls()
        store.add_restaurant(
            RestaurantProfile(
                id=1,
                name="Pizzeria Bella",
                opening_hours=DEMO_OPENING_HOURS,
                accepts_preorders=True,
                payment_available=True,
            ),
            zones=[
                DeliveryZone(id=1, name="Mitte", postal_codes=("10115", "10117"),
                             price=Decimal("2.50"), minimum_order_value=Decimal("15.00")),
                DeliveryZone(id=2, name="Kreuzberg", postal_codes=("10961", "10999"),
                             price=Decimal("3.50"), minimum_order_value=Decimal("20.00")),
                DeliveryZone(id=3, name="Neukölln", postal_codes=("10999", "12043"),
                             price=Decimal("4.00"), minimum_order_value=Decimal("25.00")),
            ],
            pickup_minutes=15,
            zone_minutes={1: 30, 2: 40, 3: 45},
            discount_codes=[
                DiscountCodeRecord("SOMMER20", DiscountType.PERCENTAGE, Decimal("20"), Decimal("10.00")),
                DiscountCodeRecord("WILLKOMMEN5", DiscountType.FIXED, Decimal("5.00")),
            ],
        )
        logger.info("InMemoryOrderStore seeded with demo restaurant #1")
        return store

    # =========================================================================
    # READS
    # =========================================================================

    async def get_restaurant(self, restaurant_id: int) -> Optional[RestaurantProfile]:
        return self._restaurants.get(restaurant_id)

    async def list_delivery_zones(self, restaurant_id: int) -> list[DeliveryZone]:
        return list(self._zones.get(restaurant_id, []))

    async def get_preparation_minutes(
        self,
        restaurant_id: int,
        delivery_zone_id: Optional[int] = None,
    ) -> Optional[int]:
        return self._preparation.get((restaurant_id, delivery_zone_id))

    async def find_discount_code(self, restaurant_id: int, code: str) -> Optional[DiscountCodeRecord]:
        wanted = code.strip().upper()
        for record in self._discount_codes.get(restaurant_id, []):
            if record.is_active and record.code.upper() == wanted:
                return record
        return None

    async def get_order(self, order_id: int) -> Optional[StoredOrder]:
        for order in self._orders:
            if order.id == order_id:
                return order
        return None

    # =========================================================================
    # WRITES
    # =========================================================================

    async def save_order(self, order: StoredOrder) -> StoredOrder:
        async with self._lock:
            order_number = 1 + max(
                (o.order_number for o in self._orders if o.restaurant_id == order.restaurant_id),
                default=0,
            )
            stored = order.with_identity(
                order_id=len(self._orders) + 1,
                order_number=order_number,
                created_at=datetime.now(timezone.utc),
            )
            self._orders.append(stored)

            if order.discount_code_used:
                record = await self.find_discount_code(order.restaurant_id, order.discount_code_used)
                if record is not None:
                    record.usage_count += 1

        logger.debug(f"Memory: Stored order #{stored.order_number} (id={stored.id})")
        return stored

    async def health_check(self) -> bool:
        return True
