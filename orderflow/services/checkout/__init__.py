"""
Checkout flow for ordering terminals.

Usage:
    from orderflow.services.checkout import Cart, CheckoutStateMachine

    cart = Cart(restaurant_id=1)
    machine = CheckoutStateMachine(restaurant_id=1, cart=cart, backend=backend)
    await machine.open()
"""

from orderflow.services.checkout.cart import Cart, CartItem, Topping
from orderflow.services.checkout.draft import (
    CheckoutDraft,
    ContactDetails,
    DeliveryAddress,
    compose_address,
)
from orderflow.services.checkout.state_machine import CheckoutStateMachine, CheckoutStep
from orderflow.services.checkout.submission import OrderSubmission
from orderflow.services.checkout.validation import BlockingCode, BlockingReason, evaluate_details

__all__ = [
    "Cart",
    "CartItem",
    "Topping",
    "CheckoutDraft",
    "ContactDetails",
    "DeliveryAddress",
    "compose_address",
    "CheckoutStateMachine",
    "CheckoutStep",
    "OrderSubmission",
    "BlockingCode",
    "BlockingReason",
    "evaluate_details",
]
