"""Shared test data and backend doubles."""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from orderflow.models import DiscountType, OrderType, PaymentMethod
from orderflow.schemas import OrderCreate
from orderflow.services.ordering import OrderCreateResult, OrderingService
from orderflow.services.payment import MockPaymentService
from orderflow.services.store import DiscountCodeRecord, InMemoryOrderStore, RestaurantProfile
from orderflow.services.store.memory import DEMO_OPENING_HOURS
from orderflow.services.zones import DeliveryZone

BERLIN = ZoneInfo("Europe/Berlin")

# Wednesday; the demo restaurant is open 11:00-22:00
NOW = datetime(2024, 6, 12, 18, 2, tzinfo=BERLIN)
LATE = datetime(2024, 6, 12, 23, 30, tzinfo=BERLIN)


def run(coro):
    return asyncio.run(coro)


def make_store(zones: Optional[list[DeliveryZone]] = None, **profile) -> InMemoryOrderStore:
    """Restaurant #1 with a single zone (80331, fee 3.50, minimum 20.00)."""
    values = dict(
        id=1,
        name="Trattoria Test",
        opening_hours=DEMO_OPENING_HOURS,
        accepts_preorders=True,
        payment_available=True,
    )
    values.update(profile)
    if zones is None:
        zones = [
            DeliveryZone(id=10, name="Altstadt", postal_codes=("80331",),
                         price=Decimal("3.50"), minimum_order_value=Decimal("20.00")),
        ]
    store = InMemoryOrderStore()
    store.add_restaurant(
        RestaurantProfile(**values),
        zones=zones,
        pickup_minutes=15,
        zone_minutes={zone.id: 30 for zone in zones},
        discount_codes=[
            DiscountCodeRecord("SOMMER20", DiscountType.PERCENTAGE, Decimal("20"), Decimal("10.00")),
        ],
    )
    return store


def order_create(**overrides) -> OrderCreate:
    """A valid pickup order of 32.00 at the demo restaurant."""
    payload = {
        "restaurant_id": 1,
        "order_type": OrderType.PICKUP,
        "customer_name": "Anna Schmidt",
        "customer_phone": "030 1234567",
        "items": [
            {"menu_item_id": 2, "name": "Pizza Salami", "quantity": 2, "unit_price": "9.50"},
            {"menu_item_id": 5, "name": "Lasagne", "quantity": 1, "unit_price": "13.00"},
        ],
        "payment_method": PaymentMethod.CASH,
    }
    payload.update(overrides)
    return OrderCreate(**payload)


def delivery_order(**overrides) -> OrderCreate:
    values = {
        "order_type": OrderType.DELIVERY,
        "customer_address": "Bergmannstr. 5, 10961 Berlin",
        "postal_code": "10961",
        "city": "Berlin",
    }
    values.update(overrides)
    return order_create(**values)


class FlakyBackend(OrderingService):
    """Rejects the first ``failures`` orders, then behaves normally."""

    def __init__(self, *args, failures: int = 1, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = failures
        self.calls = 0

    async def create_order(self, order: OrderCreate) -> OrderCreateResult:
        self.calls += 1
        if self.calls <= self.failures:
            return OrderCreateResult(success=False, error="The kitchen is busy.", error_code="rejected")
        return await super().create_order(order)


class GatedBackend(OrderingService):
    """Holds ``create_order`` until ``release`` is set. Build inside a running loop."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def create_order(self, order: OrderCreate) -> OrderCreateResult:
        self.started.set()
        await self.release.wait()
        return await super().create_order(order)


class GatedPaymentService(MockPaymentService):
    """Holds ``confirm_payment`` until ``release`` is set. Build inside a running loop."""

    def __init__(self):
        super().__init__(failure_rate=0.0, min_latency=0, max_latency=0)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def confirm_payment(self, *args, **kwargs):
        self.started.set()
        await self.release.wait()
        return await super().confirm_payment(*args, **kwargs)


class SlowZonesBackend(OrderingService):
    """The next zone fetch waits until its event in ``pending`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.hold_next = False
        self.pending: list[asyncio.Event] = []

    async def list_delivery_zones(self, restaurant_id: int) -> list[DeliveryZone]:
        if self.hold_next:
            self.hold_next = False
            gate = asyncio.Event()
            self.pending.append(gate)
            await gate.wait()
        return await super().list_delivery_zones(restaurant_id)
