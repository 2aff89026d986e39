"""
Ordering Service

Server-side authority over the checkout. The terminal computes totals and
gates for display, but nothing it sends is trusted: ``create_order``
re-checks every gate against the store and recomputes subtotal, discount,
delivery fee and total with the pricing engine before persisting.

Usage:
    from orderflow.services.ordering import get_ordering_service

    service = get_ordering_service()
    result = await service.create_order(order_create)
    if result.success:
        print(f"Order #{result.order_number}")
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from orderflow.core.config import Settings, get_settings
from orderflow.core.money import ZERO, format_money, round_money
from orderflow.models import OrderStatus, OrderType, PaymentMethod
from orderflow.schemas import OrderCreate, QuoteRequest
from orderflow.services.ordering.base import (
    BaseOrderingBackend,
    DeliveryTimingProfile,
    DiscountValidation,
    OrderCreateResult,
)
from orderflow.services.payment.base import BasePaymentService
from orderflow.services.pricing import (
    PriceBreakdown,
    calculate_totals,
    minimum_order_message,
)
from orderflow.services.scheduling import SlotGenerator, Slot, is_open_at
from orderflow.services.store.base import (
    BaseOrderStore,
    RestaurantProfile,
    StoredOrder,
    StoredOrderItem,
)
from orderflow.services.zones import DeliveryZone, ZoneResolution, ZoneResolver

logger = logging.getLogger(__name__)

OrderCreatedHook = Callable[[StoredOrder], None]


class OrderRejected(Exception):
    """Internal signal carrying the customer-facing reason."""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.message = message
        self.code = code


class OrderingService(BaseOrderingBackend):
    """
    In-process ordering backend.

    Attributes:
        store: Order store holding restaurants, zones, codes and orders
        settings: Application settings (defaults, timezone, slot bounds)
        on_order_created: Called with every stored order (e.g. export task)
        clock: Returns the current aware datetime
        payment_service: Provider used to verify card payments; None skips the check
    """

    def __init__(
        self,
        store: BaseOrderStore,
        settings: Optional[Settings] = None,
        on_order_created: Optional[OrderCreatedHook] = None,
        clock: Optional[Callable[[], datetime]] = None,
        payment_service: Optional[BasePaymentService] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.on_order_created = on_order_created
        self.clock = clock or (lambda: datetime.now(self.settings.timezone))
        self.payment_service = payment_service

    @property
    def backend_name(self) -> str:
        return "local"

    # =========================================================================
    # READ CONTRACTS
    # =========================================================================

    async def get_restaurant(self, restaurant_id: int) -> Optional[RestaurantProfile]:
        return await self.store.get_restaurant(restaurant_id)

    async def list_delivery_zones(self, restaurant_id: int) -> list[DeliveryZone]:
        return await self.store.list_delivery_zones(restaurant_id)

    async def fetch_delivery_timing_profile(
        self,
        restaurant_id: int,
        order_type: OrderType,
        zone_id: Optional[int] = None,
    ) -> DeliveryTimingProfile:
        if OrderType(order_type) == OrderType.PICKUP:
            minutes = await self.store.get_preparation_minutes(restaurant_id, None)
            default = self.settings.default_pickup_preparation_minutes
        else:
            minutes = None
            if zone_id is not None:
                minutes = await self.store.get_preparation_minutes(restaurant_id, zone_id)
            default = self.settings.default_delivery_preparation_minutes

        if minutes is None:
            return DeliveryTimingProfile(preparation_minutes=default, is_default=True)
        return DeliveryTimingProfile(preparation_minutes=minutes)

    async def validate_discount_code(self, restaurant_id: int, code: str) -> DiscountValidation:
        normalized = (code or "").strip().upper()
        if not normalized:
            return DiscountValidation(valid=False, error="Please enter a discount code.")

        record = await self.store.find_discount_code(restaurant_id, normalized)
        if record is None:
            logger.info(f"Rejected discount code {normalized!r} for restaurant #{restaurant_id}")
            return DiscountValidation(
                valid=False,
                code=normalized,
                error=f"The discount code {normalized} is not valid.",
            )

        return DiscountValidation(
            valid=True,
            code=record.code.upper(),
            discount_type=record.discount_type,
            discount_value=record.discount_value,
            minimum_order_value=record.minimum_order_value,
        )

    # =========================================================================
    # CHECKOUT HELPERS
    # =========================================================================

    async def resolve_zone(
        self,
        restaurant_id: int,
        postal_code: Optional[str],
        city: Optional[str] = None,
    ) -> ZoneResolution:
        zones = await self.store.list_delivery_zones(restaurant_id)
        return ZoneResolver(zones).resolve(postal_code, city)

    async def available_slots(
        self,
        restaurant: RestaurantProfile,
        order_type: OrderType,
        zone_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[DeliveryTimingProfile, bool, list[Slot]]:
        """
        Slots a customer may choose right now.

        Returns:
            (timing profile, currently open, slots); slots are empty when the
            restaurant is manually closed
        """
        now = now or self.clock()
        tz = self.settings.timezone
        profile = await self.fetch_delivery_timing_profile(restaurant.id, order_type, zone_id)
        is_open = is_open_at(now, restaurant.opening_hours, tz)

        if restaurant.manually_closed:
            return profile, False, []

        generator = SlotGenerator(
            now=now,
            preparation_minutes=profile.preparation_minutes,
            opening_hours=restaurant.opening_hours,
            is_open=is_open,
            accepts_preorders=restaurant.accepts_preorders,
            order_type=order_type,
            interval_minutes=self.settings.slot_interval_minutes,
            max_slots=self.settings.max_slot_count,
            scan_steps=self.settings.slot_scan_steps,
            rounding_minutes=self.settings.slot_rounding_minutes,
            tz=tz,
        )
        return profile, is_open, list(generator)

    async def quote(self, request: QuoteRequest) -> tuple[PriceBreakdown, list[str]]:
        """
        Price a cart the way ``create_order`` would.

        Returns:
            (breakdown, messages of everything that would block submission)
        """
        reasons: list[str] = []
        zone: Optional[DeliveryZone] = None

        if request.order_type == OrderType.DELIVERY:
            try:
                zone = await self._zone_for(
                    request.restaurant_id,
                    request.postal_code,
                    request.city,
                    request.delivery_zone_id,
                )
            except OrderRejected as e:
                reasons.append(e.message)

        discount = None
        if request.discount_code:
            validation = await self.validate_discount_code(request.restaurant_id, request.discount_code)
            if validation.valid:
                discount = validation.to_discount()
            else:
                reasons.append(validation.error)

        breakdown = calculate_totals(request.items, request.order_type, discount, zone)
        if discount is not None and not breakdown.meets_discount_minimum:
            reasons.append(
                f"The discount code {discount.code} requires a minimum order of "
                f"{format_money(discount.minimum_order_value)}."
            )
        if zone is not None and breakdown.below_zone_minimum:
            reasons.append(minimum_order_message(zone, breakdown))
        if not request.items:
            reasons.append("Your cart is empty.")

        return breakdown, reasons

    # =========================================================================
    # ORDER CREATION
    # =========================================================================

    async def create_order(self, order: OrderCreate) -> OrderCreateResult:
        logger.info(
            f"Creating {order.order_type.value} order for restaurant #{order.restaurant_id} "
            f"({len(order.items)} items, {order.payment_method.value})"
        )

        try:
            stored = await self._build_order(order)
        except OrderRejected as e:
            logger.warning(f"Order rejected for restaurant #{order.restaurant_id}: {e.code} - {e.message}")
            return OrderCreateResult(success=False, error=e.message, error_code=e.code)

        stored = await self.store.save_order(stored)
        logger.info(
            f"Order #{stored.order_number} created for restaurant #{stored.restaurant_id} "
            f"(total {format_money(stored.total)})"
        )

        if self.on_order_created is not None:
            try:
                self.on_order_created(stored)
            except Exception as e:
                # The order exists; a failing side effect must not undo that
                logger.exception(f"on_order_created hook failed for order #{stored.order_number}: {e}")

        return OrderCreateResult(
            success=True,
            order_id=stored.id,
            order_number=stored.order_number,
            total=round_money(stored.total),
        )

    async def get_order(self, order_id: int) -> Optional[StoredOrder]:
        return await self.store.get_order(order_id)

    async def _build_order(self, order: OrderCreate) -> StoredOrder:
        restaurant = await self.store.get_restaurant(order.restaurant_id)
        if restaurant is None or not restaurant.is_active:
            raise OrderRejected("This restaurant is not available.", "restaurant_not_found")

        if restaurant.manually_closed:
            raise OrderRejected(
                "The restaurant is currently not accepting orders.", "restaurant_closed"
            )

        tz = self.settings.timezone
        now = self.clock()
        open_now = is_open_at(now, restaurant.opening_hours, tz)
        if not open_now and not restaurant.accepts_preorders:
            raise OrderRejected(
                "The restaurant is closed and does not accept pre-orders.", "restaurant_closed"
            )

        scheduled_time = order.scheduled_time
        if scheduled_time is not None and scheduled_time.tzinfo is None:
            scheduled_time = scheduled_time.replace(tzinfo=tz)
        if scheduled_time is None and not open_now:
            raise OrderRejected(
                "The restaurant is closed right now. Please choose a time for your pre-order.",
                "slot_required",
            )

        if scheduled_time is not None and not is_open_at(
            scheduled_time, restaurant.opening_hours, tz
        ):
            raise OrderRejected(
                "The selected time is outside the opening hours. Please choose another time.",
                "slot_unavailable",
            )

        zone: Optional[DeliveryZone] = None
        if order.order_type == OrderType.DELIVERY:
            if not (order.customer_address or "").strip():
                raise OrderRejected("Please enter your delivery address.", "address_missing")
            zone = await self._zone_for(
                order.restaurant_id, order.postal_code, order.city, order.delivery_zone_id
            )

        if scheduled_time is not None:
            profile = await self.fetch_delivery_timing_profile(
                order.restaurant_id, order.order_type, zone.id if zone is not None else None
            )
            if scheduled_time < now + timedelta(minutes=profile.preparation_minutes):
                raise OrderRejected(
                    "The selected time is no longer available. Please choose another time.",
                    "slot_unavailable",
                )

        discount = None
        if order.discount_code:
            validation = await self.validate_discount_code(order.restaurant_id, order.discount_code)
            if not validation.valid:
                raise OrderRejected(validation.error, "invalid_discount")
            discount = validation.to_discount()

        breakdown = calculate_totals(order.items, order.order_type, discount, zone)
        if zone is not None and breakdown.below_zone_minimum:
            raise OrderRejected(minimum_order_message(zone, breakdown), "below_minimum_order")

        if (
            order.payment_method == PaymentMethod.CARD
            and restaurant.payment_available
            and not order.payment_intent_id
        ):
            raise OrderRejected("The card payment has not been confirmed.", "payment_missing")

        if order.payment_method == PaymentMethod.CARD and order.payment_intent_id:
            await self._verify_payment(order.payment_intent_id, breakdown)

        self._log_client_drift(order, breakdown)

        discount_used = discount.code if discount is not None and breakdown.discount_amount > ZERO else None
        paid = order.payment_method == PaymentMethod.CARD and bool(order.payment_intent_id)

        return StoredOrder(
            restaurant_id=order.restaurant_id,
            order_type=order.order_type,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            customer_email=order.customer_email,
            customer_address=order.customer_address if zone is not None else None,
            customer_notes=order.customer_notes,
            delivery_zone_id=zone.id if zone is not None else None,
            subtotal=round_money(breakdown.subtotal),
            discount_amount=round_money(breakdown.discount_amount),
            discount_code_used=discount_used,
            delivery_fee=round_money(breakdown.delivery_fee),
            total=round_money(breakdown.total),
            scheduled_time=scheduled_time,
            payment_method=order.payment_method,
            payment_intent_id=order.payment_intent_id,
            status=OrderStatus.CONFIRMED if paid else OrderStatus.PENDING,
            items=[
                StoredOrderItem(
                    menu_item_id=item.menu_item_id,
                    item_name=item.name,
                    variant_name=item.variant_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    toppings=[(topping.name, topping.price) for topping in item.toppings],
                    notes=item.notes,
                )
                for item in order.items
            ],
        )

    async def _zone_for(
        self,
        restaurant_id: int,
        postal_code: Optional[str],
        city: Optional[str],
        zone_id: Optional[int],
    ) -> DeliveryZone:
        """Resolve the delivery zone, honouring an explicit choice among candidates."""
        resolution = await self.resolve_zone(restaurant_id, postal_code, city)

        if resolution.requires_selection and zone_id is not None:
            try:
                resolution = resolution.select(zone_id)
            except ValueError:
                raise OrderRejected(
                    f"The selected delivery zone does not serve postal code {resolution.postal_code}.",
                    "zone_mismatch",
                )

        if not resolution.is_resolved:
            if not resolution.postal_code:
                raise OrderRejected("Please enter your postal code.", "postal_code_missing")
            raise OrderRejected(resolution.error_message, resolution.error_code)

        if zone_id is not None and zone_id != resolution.zone.id:
            if zone_id not in {candidate.id for candidate in resolution.candidates}:
                raise OrderRejected(
                    f"The selected delivery zone does not serve postal code {resolution.postal_code}.",
                    "zone_mismatch",
                )
            resolution = resolution.select(zone_id)

        return resolution.zone

    async def _verify_payment(self, payment_intent_id: str, breakdown: PriceBreakdown) -> None:
        """The referenced payment must have succeeded for exactly the recomputed total."""
        if self.payment_service is None:
            return

        payment = await self.payment_service.retrieve_payment(payment_intent_id)
        if not payment.success:
            logger.warning(f"Payment {payment_intent_id} not usable: {payment.error_code}")
            raise OrderRejected("The card payment could not be verified.", "payment_unverified")

        total = round_money(breakdown.total)
        if payment.amount is None or round_money(payment.amount) != total:
            logger.warning(
                f"Payment {payment_intent_id} amount {payment.amount} does not match total {total}"
            )
            raise OrderRejected(
                f"The amount paid does not match the order total of {format_money(total)}.",
                "payment_amount_mismatch",
            )

    @staticmethod
    def _log_client_drift(order: OrderCreate, breakdown: PriceBreakdown) -> None:
        client = (round_money(order.delivery_fee), round_money(order.discount_amount))
        server = (round_money(breakdown.delivery_fee), round_money(breakdown.discount_amount))
        if client != server:
            logger.warning(
                f"Client amounts differ from server recompute for restaurant #{order.restaurant_id}: "
                f"fee/discount client={client} server={server}"
            )
