"""
Order Store Factory

Usage:
    from orderflow.services.store import get_order_store

    store = get_order_store()
    restaurant = await store.get_restaurant(1)

Environment Switching:
    - ENV_MODE=development → InMemoryOrderStore (demo data, no database)
    - ENV_MODE=staging/production → SqlOrderStore (PostgreSQL)
"""

import logging
from functools import lru_cache

from orderflow.core.config import get_settings
from orderflow.services.store.base import (
    BaseOrderStore,
    DiscountCodeRecord,
    RestaurantProfile,
    StoredOrder,
    StoredOrderItem,
)
from orderflow.services.store.memory import InMemoryOrderStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_store() -> BaseOrderStore:
    """Get the configured order store instance (cached)."""
    settings = get_settings()

    if not settings.use_real_services:
        logger.info("Order Store: Using InMemoryOrderStore (development mode)")
        return InMemoryOrderStore.with_demo_data()

    # Imported lazily so development mode never builds the engine
    from orderflow.database import async_session_maker
    from orderflow.services.store.sql import SqlOrderStore

    logger.info(f"Order Store: Using SqlOrderStore ({settings.env_mode.value} mode)")
    return SqlOrderStore(async_session_maker)


def reset_order_store() -> None:
    """Clear the cached store instance."""
    get_order_store.cache_clear()
    logger.debug("Order store cache cleared")


__all__ = [
    "get_order_store",
    "reset_order_store",
    "BaseOrderStore",
    "DiscountCodeRecord",
    "RestaurantProfile",
    "StoredOrder",
    "StoredOrderItem",
    "InMemoryOrderStore",
]
