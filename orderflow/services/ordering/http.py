"""
HTTP Ordering Backend

Terminal-side implementation of the ordering contracts. Talks to the
orderflow API over ``httpx``; the server stays the single authority.

Transport failures on ``create_order`` are reported as a failed result so
the checkout returns to the details step with the draft intact. Failures on
the read contracts raise ``httpx.HTTPError`` to the caller.
"""

import logging
from typing import Optional

import httpx

from orderflow.core.config import get_settings
from orderflow.core.money import to_decimal
from orderflow.models import DiscountType, OrderType
from orderflow.schemas import OrderCreate
from orderflow.services.ordering.base import (
    BaseOrderingBackend,
    DeliveryTimingProfile,
    DiscountValidation,
    OrderCreateResult,
)
from orderflow.services.store.base import RestaurantProfile
from orderflow.services.zones import DeliveryZone

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "The order could not be sent. Please check your connection and try again."


class HttpOrderingBackend(BaseOrderingBackend):
    """
    Ordering backend over the HTTP API.

    Example:
        >>> async with HttpOrderingBackend("http://localhost:8001") as backend:
        ...     profile = await backend.fetch_delivery_timing_profile(1, OrderType.PICKUP)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.terminal_api_base_url).rstrip("/")
        self.timeout = timeout or settings.terminal_request_timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
        )

    @property
    def backend_name(self) -> str:
        return "http"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpOrderingBackend":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # =========================================================================
    # READ CONTRACTS
    # =========================================================================

    async def get_restaurant(self, restaurant_id: int) -> Optional[RestaurantProfile]:
        response = await self._client.get(f"/api/restaurants/{restaurant_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        return RestaurantProfile(
            id=data["id"],
            name=data["name"],
            opening_hours=data.get("opening_hours") or {},
            accepts_preorders=data.get("accepts_preorders", False),
            manually_closed=data.get("manually_closed", False),
            is_active=data.get("is_active", True),
            payment_available=data.get("payment_available", False),
        )

    async def list_delivery_zones(self, restaurant_id: int) -> list[DeliveryZone]:
        response = await self._client.get(f"/api/restaurants/{restaurant_id}/zones")
        response.raise_for_status()
        return [DeliveryZone.from_record(zone) for zone in response.json()]

    async def fetch_delivery_timing_profile(
        self,
        restaurant_id: int,
        order_type: OrderType,
        zone_id: Optional[int] = None,
    ) -> DeliveryTimingProfile:
        params = {"restaurantId": restaurant_id, "orderType": OrderType(order_type).value}
        if zone_id is not None:
            params["deliveryZoneId"] = zone_id

        response = await self._client.get("/api/delivery-times", params=params)
        response.raise_for_status()
        data = response.json()
        return DeliveryTimingProfile(
            preparation_minutes=int(data["preparation_minutes"]),
            is_default=bool(data.get("is_default", False)),
        )

    async def validate_discount_code(self, restaurant_id: int, code: str) -> DiscountValidation:
        response = await self._client.post(
            "/api/discounts/validate",
            json={"restaurant_id": restaurant_id, "code": code},
        )
        response.raise_for_status()
        data = response.json()

        if not data.get("valid"):
            return DiscountValidation(
                valid=False,
                code=data.get("code"),
                error=data.get("error") or "This discount code is not valid.",
            )
        return DiscountValidation(
            valid=True,
            code=data["code"],
            discount_type=DiscountType(data["discount_type"]),
            discount_value=to_decimal(data.get("discount_value")),
            minimum_order_value=to_decimal(data.get("minimum_order_value")),
        )

    # =========================================================================
    # ORDER CREATION
    # =========================================================================

    async def create_order(self, order: OrderCreate) -> OrderCreateResult:
        try:
            response = await self._client.post("/api/orders", json=order.model_dump(mode="json"))
        except httpx.HTTPError as e:
            logger.warning(f"Order submission failed in transport: {e}")
            return OrderCreateResult(success=False, error=NETWORK_ERROR_MESSAGE, error_code="network_error")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code == 200 and data.get("success"):
            return OrderCreateResult(
                success=True,
                order_id=data.get("order_id"),
                order_number=data.get("order_number"),
                total=to_decimal(data["total"]) if data.get("total") is not None else None,
            )

        message = _error_message(data) or f"The order could not be placed (HTTP {response.status_code})."
        logger.info(f"Order rejected by server: {response.status_code} - {message}")
        return OrderCreateResult(success=False, error=message, error_code=data.get("error_code") or "rejected")


def _error_message(data: dict) -> Optional[str]:
    detail = data.get("detail")
    if isinstance(detail, str):
        return detail
    if isinstance(detail, list) and detail:
        # FastAPI request validation errors
        return "; ".join(str(entry.get("msg", entry)) for entry in detail if isinstance(entry, dict))
    return data.get("message") or data.get("error")
