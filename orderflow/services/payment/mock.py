"""
Mock Payment Service Implementation

Simulates Stripe-like payment confirmation without making real API calls.
Used in development mode (ENV_MODE=development) and in tests.

Behavior:
    - Simulates response times (configurable, 0 in tests)
    - Randomly declines a share of payments (``failure_rate``)
    - ``decline_next`` forces the next confirmation to fail with a
      given message
    - Generates Stripe-like IDs (pi_xxx)
"""

import asyncio
import random
import uuid
import logging
from decimal import Decimal
from typing import Optional

from orderflow.core.money import to_decimal
from orderflow.services.payment.base import BasePaymentService, PaymentResult

logger = logging.getLogger(__name__)


class MockPaymentService(BasePaymentService):
    """
    Mock implementation of the payment service.

    Attributes:
        failure_rate: Probability of simulated decline (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds
        confirmed: Payment intents confirmed so far (for assertions)

    Example:
        >>> service = MockPaymentService(failure_rate=0.0)
        >>> service.decline_next("Your card was declined.")
        >>> result = await service.confirm_payment(Decimal("35.50"))
        >>> result.error_message
        'Your card was declined.'
    """

    # Simulated failure reasons (mimics real Stripe decline codes)
    DECLINE_REASONS = [
        ("card_declined", "Your card was declined."),
        ("insufficient_funds", "Your card has insufficient funds."),
        ("expired_card", "Your card has expired."),
        ("incorrect_cvc", "Your card's security code is incorrect."),
        ("processing_error", "An error occurred while processing your card."),
    ]

    def __init__(
        self,
        failure_rate: float = 0.10,
        min_latency: float = 0.2,
        max_latency: float = 0.8,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.confirmed: list[PaymentResult] = []
        self._forced_declines: list[tuple[str, str]] = []

        logger.info(
            f"MockPaymentService initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    def decline_next(self, message: str, code: str = "card_declined") -> None:
        """Force the next confirmation to fail with ``message``."""
        self._forced_declines.append((code, message))

    def _generate_payment_intent_id(self) -> str:
        """Generate a Stripe-like payment intent ID."""
        return f"pi_mock_{uuid.uuid4().hex[:24]}"

    async def _simulate_latency(self) -> float:
        """
        Simulate network latency.

        Returns:
            float: Actual latency in milliseconds
        """
        if self.max_latency <= 0:
            return 0.0
        latency = random.uniform(self.min_latency, self.max_latency)
        await asyncio.sleep(latency)
        return latency * 1000

    def _next_decline(self) -> Optional[tuple[str, str]]:
        if self._forced_declines:
            return self._forced_declines.pop(0)
        if random.random() < self.failure_rate:
            return random.choice(self.DECLINE_REASONS)
        return None

    async def confirm_payment(
        self,
        amount: Decimal,
        currency: str = "eur",
        customer_email: Optional[str] = None,
        payment_method_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Simulate confirming a payment.

        Behavior:
            - Validates amount is positive
            - Simulates network latency
            - Declines forced or random payments
        """
        amount = to_decimal(amount)
        logger.debug(f"Mock: Confirming payment of {amount:.2f} {currency.upper()}")

        if amount <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )

        latency_ms = await self._simulate_latency()

        decline = self._next_decline()
        if decline:
            error_code, error_message = decline
            logger.debug(f"Mock: Payment declined - {error_code}")
            return PaymentResult(
                success=False,
                amount=amount,
                currency=currency,
                error_message=error_message,
                error_code=error_code,
                response_time_ms=latency_ms,
            )

        result = PaymentResult(
            success=True,
            payment_intent_id=self._generate_payment_intent_id(),
            amount=amount,
            currency=currency,
            response_time_ms=latency_ms,
        )
        self.confirmed.append(result)
        logger.info(f"Mock: Payment successful - {result.payment_intent_id} - {amount:.2f}")
        return result

    async def retrieve_payment(self, payment_intent_id: str) -> PaymentResult:
        """Return a payment confirmed by this instance, or a not-found failure."""
        for result in self.confirmed:
            if result.payment_intent_id == payment_intent_id:
                return result
        return PaymentResult(
            success=False,
            payment_intent_id=payment_intent_id,
            error_message="Payment not found",
            error_code="payment_not_found",
        )

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str = "eur",
        customer_email: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Simulate creating a payment intent.

        The client_secret is fake and will not work with Stripe.js.
        """
        amount = to_decimal(amount)
        latency_ms = await self._simulate_latency()

        if amount <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
                response_time_ms=latency_ms,
            )

        payment_intent_id = self._generate_payment_intent_id()
        logger.debug(f"Mock: Created payment intent {payment_intent_id}")

        return PaymentResult(
            success=True,
            payment_intent_id=payment_intent_id,
            client_secret=f"{payment_intent_id}_secret_mock",
            amount=amount,
            currency=currency,
            response_time_ms=latency_ms,
        )

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        return True
