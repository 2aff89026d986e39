"""
Ordering Service Factory

Usage:
    from orderflow.services.ordering import get_ordering_service

    service = get_ordering_service()
    profile = await service.fetch_delivery_timing_profile(1, OrderType.PICKUP)

The API process owns the single OrderingService over the configured order
store. Terminals use HttpOrderingBackend instead.
"""

import logging
from functools import lru_cache

from orderflow.core.config import get_settings
from orderflow.services.ordering.base import (
    BaseOrderingBackend,
    DeliveryTimingProfile,
    DiscountValidation,
    OrderCreateResult,
)
from orderflow.services.ordering.http import HttpOrderingBackend
from orderflow.services.ordering.service import OrderingService
from orderflow.services.payment import get_payment_service
from orderflow.services.store import get_order_store

logger = logging.getLogger(__name__)


@lru_cache()
def get_ordering_service() -> OrderingService:
    """Get the process-wide ordering service (cached)."""
    settings = get_settings()
    store = get_order_store()
    logger.info(f"Ordering Service: using {store.provider_name} store")
    # The mock payment service only knows intents confirmed in this process
    payment_service = get_payment_service() if settings.use_real_services else None
    return OrderingService(store=store, settings=settings, payment_service=payment_service)


def reset_ordering_service() -> None:
    """Clear the cached service instance."""
    get_ordering_service.cache_clear()
    logger.debug("Ordering service cache cleared")


__all__ = [
    "get_ordering_service",
    "reset_ordering_service",
    "BaseOrderingBackend",
    "DeliveryTimingProfile",
    "DiscountValidation",
    "OrderCreateResult",
    "HttpOrderingBackend",
    "OrderingService",
]
