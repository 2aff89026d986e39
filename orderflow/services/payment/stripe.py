"""
Stripe Payment Service Implementation

Production implementation using the official Stripe Python SDK.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - STRIPE_SECRET_KEY must be set in environment

Security Notes:
    - Never log full card numbers or CVCs
    - Card errors are passed to the customer using Stripe's user_message
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

import stripe

from orderflow.core.config import get_settings
from orderflow.core.money import to_decimal, to_minor_units
from orderflow.services.payment.base import BasePaymentService, PaymentResult

logger = logging.getLogger(__name__)


class StripePaymentService(BasePaymentService):
    """
    Production Stripe payment service implementation.

    ``confirm_payment`` creates and confirms a PaymentIntent in one call
    with the payment method collected by the payment form.
    ``create_payment_intent`` hands a client_secret to a browser-side
    Stripe Elements form instead.

    Example:
        >>> service = StripePaymentService()
        >>> result = await service.confirm_payment(
        ...     amount=Decimal("35.50"),
        ...     payment_method_id="pm_card_visa",
        ... )
    """

    def __init__(self):
        """
        Initialize Stripe with API key from settings.

        Raises:
            ValueError: If STRIPE_SECRET_KEY is not configured
        """
        settings = get_settings()

        if not settings.stripe_secret_key:
            raise ValueError(
                "STRIPE_SECRET_KEY is required for production mode. "
                "Set it in your .env file or environment variables."
            )

        stripe.api_key = settings.stripe_secret_key
        self._currency = settings.currency

        logger.info("StripePaymentService initialized")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "stripe"

    @staticmethod
    def _elapsed_ms(start_time: datetime) -> float:
        return (datetime.now() - start_time).total_seconds() * 1000

    async def confirm_payment(
        self,
        amount: Decimal,
        currency: str = "eur",
        customer_email: Optional[str] = None,
        payment_method_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Create and confirm a PaymentIntent.

        Anything but status ``succeeded`` counts as failure; 3-D Secure
        challenges have to be completed through the client-side flow.
        """
        start_time = datetime.now()
        amount = to_decimal(amount)

        logger.info(f"Stripe: Confirming payment of {amount:.2f} {currency.upper()}")

        if amount <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )
        if not payment_method_id:
            return PaymentResult(
                success=False,
                error_message="Please enter your card details.",
                error_code="missing_payment_method",
            )

        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency or self._currency,
                payment_method=payment_method_id,
                confirm=True,
                receipt_email=customer_email,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata={"source": "orderflow_terminal", **(metadata or {})},
            )
        except stripe.CardError as e:
            # Card was declined
            logger.warning(f"Stripe: Card declined - {e.code}")
            return PaymentResult(
                success=False,
                amount=amount,
                currency=currency,
                error_message=e.user_message,
                error_code=e.code,
                response_time_ms=self._elapsed_ms(start_time),
            )
        except stripe.AuthenticationError as e:
            logger.critical(f"Stripe: Authentication failed - {e}")
            return PaymentResult(
                success=False,
                error_message="Payment service configuration error",
                error_code="authentication_error",
            )
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe: Connection error - {e}")
            return PaymentResult(
                success=False,
                error_message="Payment service temporarily unavailable",
                error_code="connection_error",
                response_time_ms=self._elapsed_ms(start_time),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe: Error - {e}")
            return PaymentResult(
                success=False,
                error_message=e.user_message or "Payment processing error",
                error_code="stripe_error",
                response_time_ms=self._elapsed_ms(start_time),
            )

        elapsed_ms = self._elapsed_ms(start_time)
        logger.info(f"Stripe: PaymentIntent {intent.id} status={intent.status}")

        if intent.status != "succeeded":
            return PaymentResult(
                success=False,
                payment_intent_id=intent.id,
                amount=amount,
                currency=intent.currency,
                error_message="The payment could not be completed. Please try another card.",
                error_code=intent.status,
                response_time_ms=elapsed_ms,
            )

        return PaymentResult(
            success=True,
            payment_intent_id=intent.id,
            amount=Decimal(intent.amount) / 100,
            currency=intent.currency,
            response_time_ms=elapsed_ms,
        )

    async def retrieve_payment(self, payment_intent_id: str) -> PaymentResult:
        """Fetch a PaymentIntent and report it as paid only if it succeeded."""
        start_time = datetime.now()

        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe: PaymentIntent {payment_intent_id} not found - {e}")
            return PaymentResult(
                success=False,
                payment_intent_id=payment_intent_id,
                error_message="Payment not found",
                error_code="payment_not_found",
                response_time_ms=self._elapsed_ms(start_time),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe: Failed to retrieve PaymentIntent - {e}")
            return PaymentResult(
                success=False,
                payment_intent_id=payment_intent_id,
                error_message=e.user_message or "Payment processing error",
                error_code="stripe_error",
                response_time_ms=self._elapsed_ms(start_time),
            )

        return PaymentResult(
            success=intent.status == "succeeded",
            payment_intent_id=intent.id,
            amount=Decimal(intent.amount_received or intent.amount) / 100,
            currency=intent.currency,
            error_code=None if intent.status == "succeeded" else intent.status,
            response_time_ms=self._elapsed_ms(start_time),
        )

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str = "eur",
        customer_email: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Create a PaymentIntent for client-side confirmation.

        Returns a client_secret that the frontend uses with Stripe.js
        to complete the payment.
        """
        start_time = datetime.now()

        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency or self._currency,
                receipt_email=customer_email,
                metadata=metadata or {},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe: Failed to create PaymentIntent - {e}")
            return PaymentResult(
                success=False,
                error_message=e.user_message or "Payment processing error",
                error_code="stripe_error",
                response_time_ms=self._elapsed_ms(start_time),
            )

        logger.debug(f"Stripe: PaymentIntent created - {intent.id}")

        return PaymentResult(
            success=True,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount=Decimal(intent.amount) / 100,
            currency=intent.currency,
            response_time_ms=self._elapsed_ms(start_time),
        )

    async def health_check(self) -> bool:
        """
        Verify Stripe API connectivity.

        Makes a lightweight API call to verify credentials and connectivity.
        """
        try:
            stripe.Account.retrieve()
            return True
        except stripe.StripeError as e:
            logger.error(f"Stripe: Health check failed - {e}")
            return False
