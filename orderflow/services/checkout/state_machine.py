"""
Checkout State Machine

UI-agnostic driver of the checkout steps::

    open ──► upsell ──► details ──► payment ──► submitting ──► success
                │          ▲  │                     │
                └──────────┘  └──── (cash) ────────►│
                           ▲                        │
                           └──── (order failed) ◄───┘

    any step ──close()──► closed

The UI only subscribes and calls the public methods. Every asynchronous
call is guarded twice when its result arrives:

* the draft generation: results for a draft that was closed (or replaced
  by a fresh one) are dropped;
* the request generation: zone/slot refreshes are last-write-wins, an
  older refresh never overwrites a newer one.

Input edits raise ``CheckoutLocked`` while payment confirmation or order
submission is in flight; a draft that reached ``success`` cannot submit
again.

Usage:
    machine = CheckoutStateMachine(restaurant_id=1, cart=cart, backend=backend,
                                   payment_service=get_payment_service())
    await machine.open()
    await machine.set_order_type(OrderType.DELIVERY)
    await machine.update_address(street="Oranienstr.", house_number="12",
                                 postal_code="10999", city="Kreuzberg")
    machine.update_contact(name="Anna", phone="030 1234567")
    await machine.advance()
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Sequence

from orderflow.core.config import Settings, get_settings
from orderflow.core.exceptions import CheckoutLocked, InvalidTransition, SubmissionUnavailable
from orderflow.core.money import format_money, round_money
from orderflow.models import OrderType, PaymentMethod
from orderflow.services.checkout.cart import Cart
from orderflow.services.checkout.draft import CheckoutDraft
from orderflow.services.checkout.submission import OrderSubmission
from orderflow.services.checkout.validation import BlockingReason, evaluate_details
from orderflow.services.ordering.base import BaseOrderingBackend
from orderflow.services.payment.base import BasePaymentService
from orderflow.services.prefill import ContactPrefillCache
from orderflow.services.pricing import PriceBreakdown, calculate_totals
from orderflow.services.scheduling import SlotGenerator, is_open_at
from orderflow.services.store.base import RestaurantProfile
from orderflow.services.zones import DeliveryZone, ZoneResolver

logger = logging.getLogger(__name__)


class CheckoutStep(str, Enum):
    UPSELL = "upsell"
    DETAILS = "details"
    PAYMENT = "payment"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    CLOSED = "closed"


Listener = Callable[["CheckoutStateMachine"], None]

# Kinds of request that may be outstanding, at most one each
PAYMENT_REQUEST = "payment"
SUBMISSION_REQUEST = "submission"
DISCOUNT_REQUEST = "discount"


class CheckoutStateMachine:
    """
    One checkout session at a terminal.

    Attributes:
        restaurant_id: Restaurant being ordered from
        cart: Shared cart; read for pricing, cleared on success only
        backend: Ordering backend (local service or HTTP)
        payment_service: External payment; None means no card payment step
        upsell_items: Items offered before the details step
        restaurant: Profile loaded on open
        zones: Delivery zones loaded with the last refresh
        draft: Current draft, None while closed
    """

    def __init__(
        self,
        *,
        restaurant_id: int,
        cart: Cart,
        backend: BaseOrderingBackend,
        payment_service: Optional[BasePaymentService] = None,
        upsell_items: Sequence = (),
        prefill: Optional[ContactPrefillCache] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.restaurant_id = restaurant_id
        self.cart = cart
        self.backend = backend
        self.payment_service = payment_service
        self.upsell_items = list(upsell_items)
        self.prefill = prefill
        self.settings = settings or get_settings()
        self.clock = clock or (lambda: datetime.now(self.settings.timezone))

        self.submission = OrderSubmission(backend, cart, prefill)
        self.restaurant: Optional[RestaurantProfile] = None
        self.zones: list[DeliveryZone] = []
        self.draft: Optional[CheckoutDraft] = None

        self._state = CheckoutStep.CLOSED
        self._draft_generation = 0
        self._request_generation = 0
        # (draft generation, request kind)
        self._in_flight: set[tuple[int, str]] = set()
        self._listeners: list[Listener] = []

    # =========================================================================
    # OBSERVATION
    # =========================================================================

    @property
    def current_state(self) -> CheckoutStep:
        return self._state

    @property
    def has_upsell(self) -> bool:
        return bool(self.upsell_items)

    @property
    def payment_available(self) -> bool:
        return (
            self.payment_service is not None
            and self.restaurant is not None
            and self.restaurant.payment_available
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called after every change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _set_state(self, state: CheckoutStep) -> None:
        if state != self._state:
            logger.debug(f"Checkout #{self.restaurant_id}: {self._state.value} -> {state.value}")
        self._state = state
        self._notify()

    def is_open(self) -> bool:
        """Whether the restaurant is open right now."""
        if self.restaurant is None:
            return False
        return is_open_at(self.clock(), self.restaurant.opening_hours, self.settings.timezone)

    def pricing(self) -> PriceBreakdown:
        draft = self._require_draft()
        return calculate_totals(self.cart, draft.order_type, draft.discount, draft.zone)

    def blocking_reasons(self) -> list[BlockingReason]:
        draft = self._require_draft()
        draft.cart_snapshot = self.cart.snapshot()
        return evaluate_details(draft, self.restaurant, self.pricing(), self.is_open())

    def can_advance(self) -> bool:
        if self.draft is None or self._busy(PAYMENT_REQUEST, SUBMISSION_REQUEST):
            return False
        if self._state == CheckoutStep.UPSELL:
            return True
        if self._state == CheckoutStep.DETAILS:
            return not self.blocking_reasons()
        return self._state == CheckoutStep.PAYMENT

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def open(self, order_type: OrderType = OrderType.PICKUP) -> CheckoutStep:
        """
        Start a fresh checkout.

        Always begins at upsell (or details when there is nothing to
        upsell); an abandoned payment step is never resumed.
        """
        if any(kind == SUBMISSION_REQUEST for _, kind in self._in_flight):
            raise CheckoutLocked()

        self._draft_generation += 1
        generation = self._draft_generation

        draft = CheckoutDraft(
            generation=generation,
            restaurant_id=self.restaurant_id,
            order_type=OrderType(order_type),
            cart_snapshot=self.cart.snapshot(),
        )
        self._apply_prefill(draft)
        self.draft = draft
        self._set_state(CheckoutStep.UPSELL if self.has_upsell else CheckoutStep.DETAILS)

        restaurant = await self.backend.get_restaurant(self.restaurant_id)
        if not self._is_active_draft(generation):
            logger.info(f"Discarding restaurant profile for closed checkout #{self.restaurant_id}")
            return self._state
        self.restaurant = restaurant
        if restaurant is None:
            draft.error = "This restaurant is not available."
            self._notify()
            return self._state

        await self.refresh_fulfilment_options()
        return self._state

    def close(self) -> CheckoutStep:
        """Discard the draft; the cart is kept."""
        if self.draft is not None:
            logger.debug(f"Checkout #{self.restaurant_id} closed from {self._state.value}")
        self.draft = None
        self._request_generation += 1
        self._set_state(CheckoutStep.CLOSED)
        return self._state

    def _apply_prefill(self, draft: CheckoutDraft) -> None:
        if self.prefill is None:
            return
        saved = self.prefill.load(self.restaurant_id)
        if not saved:
            return
        for key, value in saved["contact"].items():
            setattr(draft.contact, key, value)
        for key, value in saved["address"].items():
            setattr(draft.address, key, value)

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def advance(self, payment_method_id: Optional[str] = None) -> CheckoutStep:
        """
        Take the next step if its gate holds.

        Args:
            payment_method_id: Token from the payment form (payment step only)

        Returns:
            The state after the attempt

        Raises:
            SubmissionUnavailable: The order was already placed or the checkout is closed
            CheckoutLocked: A submission is in flight
        """
        if self._state == CheckoutStep.SUCCESS:
            raise SubmissionUnavailable("This order has already been placed.")
        if self._state == CheckoutStep.CLOSED or self.draft is None:
            raise SubmissionUnavailable("The checkout is closed.")
        if self._state == CheckoutStep.SUBMITTING or self._busy(SUBMISSION_REQUEST):
            raise CheckoutLocked()

        if self._state == CheckoutStep.UPSELL:
            self._set_state(CheckoutStep.DETAILS)
            return self._state

        if self._state == CheckoutStep.DETAILS:
            return await self._advance_from_details()

        return await self._advance_from_payment(payment_method_id)

    def retreat(self) -> CheckoutStep:
        """payment -> details, details -> upsell (when there is an upsell)."""
        if self._state == CheckoutStep.PAYMENT:
            if self._busy(PAYMENT_REQUEST):
                raise CheckoutLocked()
            self._set_state(CheckoutStep.DETAILS)
        elif self._state == CheckoutStep.DETAILS and self.has_upsell:
            self._set_state(CheckoutStep.UPSELL)
        elif self._state in (CheckoutStep.SUBMITTING, CheckoutStep.SUCCESS, CheckoutStep.CLOSED):
            raise InvalidTransition(f"Cannot go back from {self._state.value}.")
        return self._state

    async def _advance_from_details(self) -> CheckoutStep:
        draft = self.draft
        if not self._refresh_slots(draft):
            return self._slot_expired(draft)

        reasons = self.blocking_reasons()
        if reasons:
            draft.error = reasons[0].message
            logger.info(
                f"Checkout #{self.restaurant_id} blocked at details: "
                f"{', '.join(reason.code.value for reason in reasons)}"
            )
            self._notify()
            return self._state

        draft.error = None
        if draft.payment_method == PaymentMethod.CARD and self.payment_available:
            total = round_money(self.pricing().total)
            if draft.payment is not None and draft.payment.amount == total:
                # Already charged for this amount, the earlier submission failed
                return await self._submit()
            draft.payment = None
            self._set_state(CheckoutStep.PAYMENT)
            return self._state

        return await self._submit()

    async def _advance_from_payment(self, payment_method_id: Optional[str]) -> CheckoutStep:
        if self._busy(PAYMENT_REQUEST):
            return self._state

        draft = self.draft
        if not self._refresh_slots(draft):
            self._set_state(CheckoutStep.DETAILS)
            return self._slot_expired(draft)

        generation = draft.generation
        amount = round_money(self.pricing().total)

        marker = (generation, PAYMENT_REQUEST)
        self._in_flight.add(marker)
        self._notify()
        try:
            result = await self.payment_service.confirm_payment(
                amount=amount,
                currency=self.settings.currency,
                customer_email=draft.contact.email or None,
                payment_method_id=payment_method_id,
                metadata={"restaurant_id": str(self.restaurant_id)},
            )
        finally:
            self._in_flight.discard(marker)

        if not self._is_active_draft(generation):
            logger.warning(
                f"Payment result for closed checkout #{self.restaurant_id} discarded "
                f"(success={result.success}, intent={result.payment_intent_id})"
            )
            return self._state

        if not result.success:
            draft.error = result.error_message or "The payment could not be completed."
            logger.info(f"Payment declined for checkout #{self.restaurant_id}: {result.error_code}")
            self._notify()
            return self._state

        draft.payment = result
        draft.error = None
        return await self._submit()

    async def _submit(self) -> CheckoutStep:
        draft = self.draft
        generation = draft.generation
        breakdown = self.pricing()

        marker = (generation, SUBMISSION_REQUEST)
        self._in_flight.add(marker)
        self._set_state(CheckoutStep.SUBMITTING)
        try:
            result = await self.submission.submit(draft, breakdown)
        except Exception:
            if self._is_active_draft(generation):
                draft.error = "The order could not be placed. Please try again."
                self._set_state(CheckoutStep.DETAILS)
            raise
        finally:
            self._in_flight.discard(marker)

        if not self._is_active_draft(generation):
            logger.warning(
                f"Submission result for closed checkout #{self.restaurant_id} discarded "
                f"(success={result.success}, order_number={result.order_number})"
            )
            return self._state

        self._set_state(CheckoutStep.SUCCESS if result.success else CheckoutStep.DETAILS)
        return self._state

    # =========================================================================
    # INPUT
    # =========================================================================

    def _require_draft(self) -> CheckoutDraft:
        if self.draft is None:
            raise InvalidTransition("The checkout is not open.")
        return self.draft

    def _editable_draft(self) -> CheckoutDraft:
        draft = self._require_draft()
        if (
            self._state == CheckoutStep.SUBMITTING
            or self._busy(PAYMENT_REQUEST, SUBMISSION_REQUEST)
        ):
            raise CheckoutLocked()
        if self._state == CheckoutStep.SUCCESS:
            raise SubmissionUnavailable("This order has already been placed.")
        return draft

    def _is_active_draft(self, generation: int) -> bool:
        return self.draft is not None and self.draft.generation == generation

    def _busy(self, *kinds: str) -> bool:
        """Whether a request of one of ``kinds`` is outstanding for the current draft."""
        if self.draft is None:
            return False
        return any((self.draft.generation, kind) in self._in_flight for kind in kinds)

    def update_contact(self, **fields: str) -> None:
        draft = self._editable_draft()
        for key, value in fields.items():
            if not hasattr(draft.contact, key):
                raise TypeError(f"Unknown contact field: {key}")
            setattr(draft.contact, key, value or "")
        self._notify()

    async def update_address(self, **fields: str) -> None:
        """Edit address fields; a postal code or city change re-resolves the zone."""
        draft = self._editable_draft()
        previous = (draft.address.postal_code, draft.address.city)
        for key, value in fields.items():
            if not hasattr(draft.address, key):
                raise TypeError(f"Unknown address field: {key}")
            setattr(draft.address, key, value or "")

        if (draft.address.postal_code, draft.address.city) != previous:
            await self.refresh_fulfilment_options()
        else:
            self._notify()

    async def set_order_type(self, order_type: OrderType) -> None:
        draft = self._editable_draft()
        order_type = OrderType(order_type)
        if order_type == draft.order_type:
            return
        draft.order_type = order_type
        # A zone picked for an ambiguous postal code holds while the address is unchanged
        await self.refresh_fulfilment_options(resolve_zone=not draft.zone_resolution.manually_selected)

    async def select_zone(self, zone_id: int) -> None:
        """
        Pick the delivery zone when the postal code is ambiguous.

        Raises:
            ValueError: If the zone does not serve the entered postal code
        """
        draft = self._editable_draft()
        draft.zone_resolution = draft.zone_resolution.select(zone_id)
        await self.refresh_fulfilment_options(resolve_zone=False)

    def set_payment_method(self, method: PaymentMethod) -> None:
        draft = self._editable_draft()
        draft.payment_method = PaymentMethod(method)
        self._notify()

    def select_slot(self, instant: Optional[datetime]) -> None:
        draft = self._editable_draft()
        draft.select_slot(instant)
        self._notify()

    async def apply_discount(self, code: str) -> bool:
        """
        Validate a code with the backend and apply it to the draft.

        A code whose own minimum order value is not reached is rejected
        with a message naming that minimum.

        Returns:
            True if the code is now applied
        """
        draft = self._editable_draft()
        if self._busy(DISCOUNT_REQUEST):
            return False

        generation = draft.generation
        marker = (generation, DISCOUNT_REQUEST)
        self._in_flight.add(marker)
        try:
            validation = await self.backend.validate_discount_code(self.restaurant_id, code)
        finally:
            self._in_flight.discard(marker)

        if not self._is_active_draft(generation):
            logger.info(f"Discount validation for closed checkout #{self.restaurant_id} discarded")
            return False

        discount = validation.to_discount()
        if discount is None:
            draft.error = validation.error or "This discount code is not valid."
            self._notify()
            return False

        subtotal = self.cart.subtotal
        if subtotal < discount.minimum_order_value:
            draft.error = (
                f"The discount code {discount.code} requires a minimum order of "
                f"{format_money(discount.minimum_order_value)}. "
                f"Please add {format_money(discount.minimum_order_value - subtotal)} more."
            )
            logger.info(f"Discount {discount.code} rejected for checkout #{self.restaurant_id}: minimum not met")
            self._notify()
            return False

        draft.discount = discount
        draft.error = None
        logger.info(f"Discount {discount.code} applied to checkout #{self.restaurant_id}")
        self._notify()
        return True

    def remove_discount(self) -> None:
        draft = self._editable_draft()
        draft.discount = None
        self._notify()

    # =========================================================================
    # FULFILMENT OPTIONS
    # =========================================================================

    async def refresh_fulfilment_options(self, resolve_zone: bool = True) -> bool:
        """
        Re-resolve the zone and reload timing profile and slots.

        With ``resolve_zone=False`` a manual zone choice is kept as long as
        the address is unchanged and the refetched zone still serves it.

        Superseded by any later call: only the newest refresh for the
        active draft is applied.

        Returns:
            False when the result was stale and discarded
        """
        draft = self._require_draft()
        if self.restaurant is None:
            return False

        self._request_generation += 1
        request = self._request_generation
        generation = draft.generation

        zone_id = None
        if draft.is_delivery:
            zones = await self.backend.list_delivery_zones(self.restaurant_id)
            if not self._is_current(request, generation):
                return self._discard("zones")
            self.zones = zones
            if resolve_zone or not self._selected_zone_offered(draft, zones):
                draft.zone_resolution = ZoneResolver(zones).resolve(
                    draft.address.postal_code, draft.address.city
                )
            zone = draft.zone
            zone_id = zone.id if zone is not None else None

        timing = await self.backend.fetch_delivery_timing_profile(
            self.restaurant_id, draft.order_type, zone_id
        )
        if not self._is_current(request, generation):
            return self._discard("timing profile")

        draft.timing = timing
        self._refresh_slots(draft)
        self._notify()
        return True

    def _refresh_slots(self, draft: CheckoutDraft) -> bool:
        """
        Regenerate the slots against the current clock.

        Returns:
            False when the chosen time is no longer offered (it is cleared)
        """
        if draft.timing is None:
            return True
        draft.slots = self._generate_slots(draft, draft.timing.preparation_minutes)
        if draft.scheduled_time is None or self._still_offered(draft, draft.scheduled_time):
            return True
        draft.scheduled_time = None
        return False

    def _still_offered(self, draft: CheckoutDraft, instant: datetime) -> bool:
        # The slot grid moves with the clock; any open time from the earliest slot on is kept
        if not draft.slots or instant < draft.slots[0].instant:
            return False
        return is_open_at(instant, self.restaurant.opening_hours, self.settings.timezone)

    def _slot_expired(self, draft: CheckoutDraft) -> CheckoutStep:
        draft.error = "The selected time is no longer available. Please choose another time."
        logger.info(f"Checkout #{self.restaurant_id} blocked: selected time expired")
        self._notify()
        return self._state

    @staticmethod
    def _selected_zone_offered(draft: CheckoutDraft, zones: list[DeliveryZone]) -> bool:
        """A manual zone choice survives a refresh while the address and the zone are unchanged."""
        resolution = draft.zone_resolution
        if not resolution.manually_selected or resolution.zone is None:
            return False
        address = (draft.address.postal_code.strip(), draft.address.city.strip())
        if address != (resolution.postal_code, resolution.city):
            return False
        return any(
            zone.id == resolution.zone.id and zone.serves(draft.address.postal_code)
            for zone in zones
        )

    def _generate_slots(self, draft: CheckoutDraft, preparation_minutes: int) -> list:
        restaurant = self.restaurant
        if restaurant.manually_closed:
            return []
        settings = self.settings
        return list(SlotGenerator(
            now=self.clock(),
            preparation_minutes=preparation_minutes,
            opening_hours=restaurant.opening_hours,
            is_open=self.is_open(),
            accepts_preorders=restaurant.accepts_preorders,
            order_type=draft.order_type,
            interval_minutes=settings.slot_interval_minutes,
            max_slots=settings.max_slot_count,
            scan_steps=settings.slot_scan_steps,
            rounding_minutes=settings.slot_rounding_minutes,
            tz=settings.timezone,
        ))

    def _is_current(self, request: int, generation: int) -> bool:
        return request == self._request_generation and self._is_active_draft(generation)

    def _discard(self, what: str) -> bool:
        logger.debug(f"Stale {what} for checkout #{self.restaurant_id} discarded")
        return False
