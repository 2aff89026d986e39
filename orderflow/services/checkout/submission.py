"""
Order Submission

Turns a checkout draft into the single ``OrderCreate`` request, sends it
once and applies the outcome:

    success -> order id/number on the draft, cart cleared, prefill saved
    failure -> error on the draft, draft and cart untouched
"""

import logging
from typing import Optional

from pydantic import ValidationError

from orderflow.core.money import round_money
from orderflow.schemas import OrderCreate
from orderflow.services.checkout.cart import Cart
from orderflow.services.checkout.draft import CheckoutDraft
from orderflow.services.ordering.base import BaseOrderingBackend, OrderCreateResult
from orderflow.services.prefill import ContactPrefillCache
from orderflow.services.pricing import PriceBreakdown

logger = logging.getLogger(__name__)


class OrderSubmission:
    """
    Terminal action of the checkout.

    Example:
        >>> submission = OrderSubmission(backend, cart)
        >>> result = await submission.submit(draft, breakdown)
        >>> result.order_number
        42
    """

    def __init__(
        self,
        backend: BaseOrderingBackend,
        cart: Cart,
        prefill: Optional[ContactPrefillCache] = None,
    ):
        self.backend = backend
        self.cart = cart
        self.prefill = prefill

    def build_request(self, draft: CheckoutDraft, breakdown: PriceBreakdown) -> OrderCreate:
        zone = draft.zone
        address = draft.address if draft.is_delivery else None
        contact = draft.contact

        return OrderCreate(
            restaurant_id=draft.restaurant_id,
            order_type=draft.order_type,
            customer_name=contact.name,
            customer_phone=contact.phone,
            customer_email=contact.email or None,
            customer_notes=contact.notes or None,
            customer_address=draft.composed_address(),
            postal_code=address.postal_code.strip() if address else None,
            city=address.city.strip() if address else None,
            delivery_zone_id=zone.id if zone is not None else None,
            delivery_fee=round_money(breakdown.delivery_fee),
            discount_code=draft.discount.code if draft.discount is not None else None,
            discount_amount=round_money(breakdown.discount_amount),
            scheduled_time=draft.effective_scheduled_time(),
            items=[item.to_order_item() for item in self.cart],
            payment_method=draft.payment_method,
            payment_intent_id=draft.payment.payment_intent_id if draft.payment else None,
        )

    async def submit(self, draft: CheckoutDraft, breakdown: PriceBreakdown) -> OrderCreateResult:
        """Send the order exactly once and apply the result to draft and cart."""
        try:
            request = self.build_request(draft, breakdown)
        except ValidationError as e:
            draft.error = "Please check your details: " + "; ".join(err["msg"] for err in e.errors())
            logger.info(f"Order request for restaurant #{draft.restaurant_id} failed validation: {e}")
            return OrderCreateResult(success=False, error=draft.error, error_code="invalid_request")

        result = await self.backend.create_order(request)

        if not result.success:
            draft.error = result.error or "The order could not be placed. Please try again."
            logger.info(f"Order submission failed for restaurant #{draft.restaurant_id}: {draft.error}")
            return result

        draft.order_id = result.order_id
        draft.order_number = result.order_number
        draft.error = None
        self.cart.clear()

        if self.prefill is not None:
            self.prefill.save(
                draft.restaurant_id,
                draft.contact.to_dict(),
                draft.address.to_dict() if draft.is_delivery else None,
            )

        logger.info(f"Order #{result.order_number} placed for restaurant #{draft.restaurant_id}")
        return result
