"""
Payment Service Abstract Base Class

Defines the interface contract for external payment confirmation.
Both MockPaymentService and StripePaymentService implement these methods,
so the checkout flow treats the provider as opaque: success, or failure
with an error message shown to the customer verbatim.

Design Pattern: Strategy Pattern
    - Allows runtime switching between payment providers
    - Facilitates testing with mock implementations
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class PaymentResult:
    """
    Standardized result from a payment provider.

    Attributes:
        success: Whether the payment was confirmed
        payment_intent_id: Provider reference (Stripe format: pi_xxx)
        client_secret: Secret for client-side confirmation, if created
        amount: Amount in major units
        currency: Currency code (e.g., "eur")
        error_message: Provider message for the customer if the payment failed
        error_code: Machine-readable error code
        response_time_ms: Time taken by the provider
    """
    success: bool
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str = "eur"
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    response_time_ms: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "payment_intent_id": self.payment_intent_id,
            "client_secret": self.client_secret,
            "amount": str(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "response_time_ms": self.response_time_ms,
        }


class BasePaymentService(ABC):
    """
    Abstract base class for payment services.

    Example:
        >>> service = get_payment_service()  # Returns Mock or Stripe
        >>> result = await service.confirm_payment(
        ...     amount=Decimal("35.50"),
        ...     currency="eur",
        ...     customer_email="anna@example.com",
        ... )
        >>> if not result.success:
        ...     print(result.error_message)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the payment provider.

        Returns:
            str: Provider name (e.g., "mock", "stripe")
        """

    @abstractmethod
    async def confirm_payment(
        self,
        amount: Decimal,
        currency: str = "eur",
        customer_email: Optional[str] = None,
        payment_method_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Charge the customer and report the outcome.

        Args:
            amount: Amount in major units (e.g., 35.50)
            currency: Three-letter currency code
            customer_email: Receipt address
            payment_method_id: Provider token collected by the payment form
            metadata: Additional key-value data to attach

        Returns:
            PaymentResult: success, or failure with the provider's message
        """

    @abstractmethod
    async def retrieve_payment(self, payment_intent_id: str) -> PaymentResult:
        """
        Look up a payment by its provider reference.

        Returns:
            PaymentResult: success only if the payment went through,
            with the amount actually charged
        """

    @abstractmethod
    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str = "eur",
        customer_email: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Create a payment intent for client-side confirmation.

        Returns:
            PaymentResult: Contains the client_secret for the payment form
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the payment service.

        Returns:
            bool: True if service is reachable and operational
        """
