"""
FastAPI Application Entry Point

Orderflow Checkout - server side of the restaurant ordering terminals.
Supports both an in-memory demo store with mock payments (development) and
PostgreSQL with Stripe (staging/production).

Endpoints:
    - GET  /health: System health check
    - GET  /api/restaurants/{id}: Restaurant profile for the checkout
    - GET  /api/restaurants/{id}/zones: Delivery zones
    - GET  /api/restaurants/{id}/slots: Fulfilment slots
    - POST /api/restaurants/{id}/zones/resolve: Postal code to delivery zone
    - GET  /api/delivery-times: Preparation minutes
    - POST /api/discounts/validate: Discount code check
    - POST /api/checkout/quote: Price a cart
    - POST /api/orders: Create order (authoritative)
    - GET  /api/orders/{id}: Stored order
    - POST /api/payments/intent: Payment intent for client-side confirmation
"""

import asyncio
import sys
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

import redis
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from kombu.exceptions import OperationalError

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from orderflow.core.config import get_settings, setup_logging
from orderflow.models import OrderType
from orderflow.schemas import (
    DeliveryTimeResponse,
    DeliveryZoneResponse,
    DiscountValidateRequest,
    DiscountValidateResponse,
    ErrorResponse,
    HealthResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderItemResponse,
    OrderResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    QuoteRequest,
    QuoteResponse,
    SlotListResponse,
    SlotResponse,
    ToppingCreate,
    ZoneResolveRequest,
    ZoneResolveResponse,
)
from orderflow.services.ordering import OrderingService, get_ordering_service
from orderflow.services.payment import BasePaymentService, get_payment_service
from orderflow.services.store.base import RestaurantProfile, StoredOrder
from orderflow.tasks import queue_order_export

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

def export_new_order(order: StoredOrder) -> None:
    """Queue the Excel export; the order stands even if the broker is down."""
    try:
        queue_order_export(order)
    except (OperationalError, redis.RedisError, OSError) as e:
        logger.error(f"Could not queue export for order #{order.order_number}: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    if settings.use_real_services:
        from orderflow.database import init_db

        await init_db()
        logger.info("Database initialized")

        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    ordering_service = get_ordering_service()
    payment_service = get_payment_service()
    if settings.export_orders:
        ordering_service.on_order_created = export_new_order
    logger.info(f"Order Store: {ordering_service.store.provider_name}")
    logger.info(f"Payment Service: {payment_service.provider_name}")
    logger.info(f"Excel export: {'enabled' if settings.export_orders else 'disabled'}")

    logger.info("=" * 60)
    logger.info("Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    if settings.use_real_services:
        from orderflow.database import engine

        await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Checkout engine for multi-tenant restaurant ordering terminals: "
        "fulfilment slots, delivery zones, pricing and order creation."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

async def require_restaurant(
    restaurant_id: int,
    service: OrderingService,
) -> RestaurantProfile:
    restaurant = await service.get_restaurant(restaurant_id)
    if restaurant is None or not restaurant.is_active:
        raise HTTPException(status_code=404, detail=f"Restaurant #{restaurant_id} not found")
    return restaurant


def order_response(order: StoredOrder) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        restaurant_id=order.restaurant_id,
        order_type=order.order_type,
        scheduled_time=order.scheduled_time,
        customer_name=order.customer_name,
        customer_phone=order.customer_phone,
        customer_email=order.customer_email,
        customer_address=order.customer_address,
        customer_notes=order.customer_notes,
        delivery_zone_id=order.delivery_zone_id,
        subtotal=order.subtotal,
        discount_amount=order.discount_amount,
        discount_code_used=order.discount_code_used,
        delivery_fee=order.delivery_fee,
        total=order.total,
        payment_method=order.payment_method,
        payment_intent_id=order.payment_intent_id,
        status=order.status,
        created_at=order.created_at,
        items=[
            OrderItemResponse(
                menu_item_id=item.menu_item_id,
                item_name=item.item_name,
                variant_name=item.variant_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                toppings=[ToppingCreate(name=name, price=price) for name, price in item.toppings],
                notes=item.notes,
            )
            for item in order.items
        ],
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    service: OrderingService = Depends(get_ordering_service),
    payment_service: BasePaymentService = Depends(get_payment_service),
) -> HealthResponse:
    """Verify all system components are operational."""

    store_status = "healthy" if await service.store.health_check() else "unhealthy"
    payment_status = "healthy" if await payment_service.health_check() else "unhealthy"

    # Check Redis
    redis_status = "healthy"
    try:
        client = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        client.ping()
        client.close()
    except redis.RedisError as e:
        redis_status = f"unhealthy: {e}"
        logger.error(f"Redis health check failed: {e}")

    overall = "operational" if all(
        s == "healthy" for s in [store_status, payment_status, redis_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        order_store=store_status,
        payment_service=payment_status,
        redis=redis_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# RESTAURANT & FULFILMENT ENDPOINTS
# =============================================================================

@app.get("/api/restaurants/{restaurant_id}", tags=["Restaurants"])
async def get_restaurant(
    restaurant_id: int,
    service: OrderingService = Depends(get_ordering_service),
) -> dict[str, Any]:
    """Restaurant profile as the checkout needs it."""
    restaurant = await require_restaurant(restaurant_id, service)
    return restaurant.to_dict()


@app.get(
    "/api/restaurants/{restaurant_id}/zones",
    response_model=list[DeliveryZoneResponse],
    tags=["Restaurants"],
)
async def list_zones(
    restaurant_id: int,
    service: OrderingService = Depends(get_ordering_service),
) -> list[DeliveryZoneResponse]:
    await require_restaurant(restaurant_id, service)
    zones = await service.list_delivery_zones(restaurant_id)
    return [DeliveryZoneResponse(**zone.to_dict()) for zone in zones]


@app.get(
    "/api/delivery-times",
    response_model=DeliveryTimeResponse,
    tags=["Fulfilment"],
    summary="Preparation minutes for pickup or a delivery zone",
)
async def delivery_times(
    restaurant_id: int = Query(..., alias="restaurantId"),
    order_type: OrderType = Query(OrderType.PICKUP, alias="orderType"),
    delivery_zone_id: Optional[int] = Query(None, alias="deliveryZoneId"),
    service: OrderingService = Depends(get_ordering_service),
) -> DeliveryTimeResponse:
    profile = await service.fetch_delivery_timing_profile(restaurant_id, order_type, delivery_zone_id)
    return DeliveryTimeResponse(**profile.to_dict())


@app.get(
    "/api/restaurants/{restaurant_id}/slots",
    response_model=SlotListResponse,
    tags=["Fulfilment"],
    summary="Pickup/delivery times currently on offer",
)
async def list_slots(
    restaurant_id: int,
    order_type: OrderType = Query(OrderType.PICKUP, alias="orderType"),
    delivery_zone_id: Optional[int] = Query(None, alias="deliveryZoneId"),
    service: OrderingService = Depends(get_ordering_service),
) -> SlotListResponse:
    restaurant = await require_restaurant(restaurant_id, service)
    profile, is_open, slots = await service.available_slots(restaurant, order_type, delivery_zone_id)
    return SlotListResponse(
        restaurant_id=restaurant_id,
        order_type=order_type,
        preparation_minutes=profile.preparation_minutes,
        is_open=is_open,
        accepts_preorders=restaurant.accepts_preorders,
        slots=[
            SlotResponse(value=slot.instant, label=slot.label, is_earliest=slot.is_earliest)
            for slot in slots
        ],
    )


@app.post(
    "/api/restaurants/{restaurant_id}/zones/resolve",
    response_model=ZoneResolveResponse,
    tags=["Fulfilment"],
    summary="Resolve a postal code to a delivery zone",
)
async def resolve_zone(
    restaurant_id: int,
    request: ZoneResolveRequest,
    service: OrderingService = Depends(get_ordering_service),
) -> ZoneResolveResponse:
    await require_restaurant(restaurant_id, service)
    resolution = await service.resolve_zone(restaurant_id, request.postal_code, request.city)
    return ZoneResolveResponse(**resolution.to_dict())


# =============================================================================
# PRICING ENDPOINTS
# =============================================================================

@app.post(
    "/api/discounts/validate",
    response_model=DiscountValidateResponse,
    tags=["Pricing"],
)
async def validate_discount(
    request: DiscountValidateRequest,
    service: OrderingService = Depends(get_ordering_service),
) -> DiscountValidateResponse:
    validation = await service.validate_discount_code(request.restaurant_id, request.code)
    return DiscountValidateResponse(
        valid=validation.valid,
        code=validation.code,
        discount_type=validation.discount_type,
        discount_value=validation.discount_value,
        minimum_order_value=validation.minimum_order_value,
        error=validation.error,
    )


@app.post(
    "/api/checkout/quote",
    response_model=QuoteResponse,
    tags=["Pricing"],
    summary="Price a cart without placing an order",
)
async def quote(
    request: QuoteRequest,
    service: OrderingService = Depends(get_ordering_service),
) -> QuoteResponse:
    await require_restaurant(request.restaurant_id, service)
    breakdown, reasons = await service.quote(request)
    return QuoteResponse(**breakdown.to_dict(), blocking_reasons=reasons)


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderCreateResponse,
    responses={400: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_data: OrderCreate,
    service: OrderingService = Depends(get_ordering_service),
) -> OrderCreateResponse:
    """
    Create a new order.

    Every gate is re-checked and all amounts are recomputed on the server;
    the response carries the authoritative total.
    """
    result = await service.create_order(order_data)

    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)

    return OrderCreateResponse(
        success=True,
        message="Order placed successfully!",
        order_id=result.order_id,
        order_number=result.order_number,
        total=result.total,
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    service: OrderingService = Depends(get_ordering_service),
) -> OrderResponse:
    """Get a specific order by ID."""
    order = await service.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order #{order_id} not found")
    return order_response(order)


# =============================================================================
# PAYMENT ENDPOINTS
# =============================================================================

@app.post(
    "/api/payments/intent",
    response_model=PaymentIntentResponse,
    tags=["Payments"],
    summary="Create a payment intent for the card form",
)
async def create_payment_intent(
    request: PaymentIntentRequest,
    payment_service: BasePaymentService = Depends(get_payment_service),
) -> PaymentIntentResponse:
    metadata = {"restaurant_id": str(request.restaurant_id)} if request.restaurant_id else None
    result = await payment_service.create_payment_intent(
        amount=request.amount,
        currency=settings.currency,
        customer_email=request.customer_email,
        metadata=metadata,
    )
    if not result.success:
        logger.warning(f"Payment intent failed: {result.error_code} - {result.error_message}")
    return PaymentIntentResponse(
        success=result.success,
        payment_intent_id=result.payment_intent_id,
        client_secret=result.client_secret,
        amount=result.amount,
        currency=result.currency,
        error_message=result.error_message,
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
