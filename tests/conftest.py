"""Pytest fixtures for the checkout engine."""

import pytest

from orderflow.core.config import Settings
from orderflow.services.checkout import Cart, CheckoutStateMachine
from orderflow.services.ordering import OrderingService
from orderflow.services.payment import MockPaymentService
from orderflow.services.store import InMemoryOrderStore
from tests.helpers import NOW


@pytest.fixture
def settings(tmp_path):
    return Settings(
        env_mode="development",
        data_directory=str(tmp_path),
        export_orders=False,
        mock_payment_failure_rate=0.0,
    )


@pytest.fixture
def store():
    return InMemoryOrderStore.with_demo_data()


@pytest.fixture
def service(store, settings):
    return OrderingService(store, settings=settings, clock=lambda: NOW)


@pytest.fixture
def payments():
    return MockPaymentService(failure_rate=0.0, min_latency=0, max_latency=0)


@pytest.fixture
def cart():
    """32.00 worth of food."""
    cart = Cart(restaurant_id=1)
    cart.add(menu_item_id=2, name="Pizza Salami", unit_price="9.50", quantity=2)
    cart.add(menu_item_id=5, name="Lasagne", unit_price="13.00")
    return cart


@pytest.fixture
def make_machine(settings, payments):
    def factory(backend, cart=None, restaurant_id=1, **kwargs):
        kwargs.setdefault("payment_service", payments)
        kwargs.setdefault("clock", lambda: NOW)
        return CheckoutStateMachine(
            restaurant_id=restaurant_id,
            cart=cart if cart is not None else Cart(restaurant_id=restaurant_id),
            backend=backend,
            settings=settings,
            **kwargs,
        )
    return factory
