"""
Pydantic Schemas for Request/Response Validation

Wire format shared by the HTTP API and the ordering terminal:
- Order creation (the single authoritative commit)
- Fulfilment slots and delivery timing profiles
- Zone resolution, discount validation and price quotes
- Payment intents for client-side card confirmation

Amounts are ``Decimal`` and travel as strings in JSON.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orderflow.models import DiscountType, OrderStatus, OrderType, PaymentMethod


# =============================================================================
# ORDER ITEMS
# =============================================================================

class ToppingCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Extra cheese"])
    price: Decimal = Field(default=Decimal("0"), ge=0, examples=["1.00"])


class OrderItemCreate(BaseModel):
    """Single cart line in an order."""
    menu_item_id: int = Field(..., examples=[12])
    name: str = Field(..., min_length=1, max_length=150, examples=["Pizza Margherita"])
    variant_name: Optional[str] = Field(None, max_length=100, examples=["32 cm"])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    unit_price: Decimal = Field(..., ge=0, examples=["9.50"])
    toppings: List[ToppingCreate] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=200)

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderCreate(BaseModel):
    """
    Request schema for creating a new order.

    ``delivery_fee`` and ``discount_amount`` are what the customer saw; the
    server recomputes both and rejects the order if the gates do not hold.
    """

    restaurant_id: int = Field(..., examples=[1])
    order_type: OrderType = Field(default=OrderType.PICKUP, examples=["delivery"])

    # Customer Info
    customer_name: str = Field(..., min_length=1, max_length=100, examples=["Anna Schmidt"])
    customer_phone: str = Field(..., min_length=3, max_length=30, examples=["+49 30 1234567"])
    customer_email: Optional[str] = Field(None, examples=["anna@example.com"])
    customer_notes: Optional[str] = Field(None, max_length=500)

    # Delivery (required for delivery orders)
    customer_address: Optional[str] = Field(
        None, max_length=255, examples=["Oranienstr. 12, 10999 Berlin"]
    )
    postal_code: Optional[str] = Field(None, max_length=10, examples=["10999"])
    city: Optional[str] = Field(None, max_length=100, examples=["Kreuzberg"])
    delivery_zone_id: Optional[int] = Field(None, examples=[2])
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=0)

    # Discount
    discount_code: Optional[str] = Field(None, max_length=50, examples=["SOMMER20"])
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)

    # Fulfilment
    scheduled_time: Optional[datetime] = Field(None, examples=["2024-06-14T18:30:00+02:00"])

    # Order Items
    items: List[OrderItemCreate] = Field(..., min_length=1)

    # Payment
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH, examples=["cash", "card"])
    payment_intent_id: Optional[str] = Field(None)

    @field_validator("customer_name", "customer_phone")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field must not be blank")
        return v

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v.strip() == "":
            return None
        v = v.strip()
        # Basic email validation
        if not re.match(r"^[\w\.\+-]+@[\w\.-]+\.\w+$", v):
            raise ValueError("Invalid email format")
        return v

    @field_validator("discount_code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v.strip() == "":
            return None
        return v.strip().upper()


class ZoneResolveRequest(BaseModel):
    postal_code: str = Field(..., max_length=10, examples=["10999"])
    city: Optional[str] = Field(None, max_length=100, examples=["Kreuzberg"])


class DiscountValidateRequest(BaseModel):
    restaurant_id: int = Field(..., examples=[1])
    code: str = Field(..., min_length=1, max_length=50, examples=["SOMMER20"])


class QuoteRequest(BaseModel):
    """Price a cart without committing anything."""
    restaurant_id: int = Field(..., examples=[1])
    order_type: OrderType = Field(default=OrderType.PICKUP)
    items: List[OrderItemCreate] = Field(default_factory=list)
    postal_code: Optional[str] = Field(None, max_length=10)
    city: Optional[str] = Field(None, max_length=100)
    delivery_zone_id: Optional[int] = None
    discount_code: Optional[str] = Field(None, max_length=50)


class PaymentIntentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, examples=["35.50"])
    customer_email: Optional[str] = None
    restaurant_id: Optional[int] = None


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderCreateResponse(BaseModel):
    """Response after creating an order."""
    success: bool
    message: str
    order_id: Optional[int] = None
    order_number: Optional[int] = None
    total: Optional[Decimal] = None
    error_code: Optional[str] = None


class OrderItemResponse(BaseModel):
    menu_item_id: int
    item_name: str
    variant_name: Optional[str]
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    toppings: List[ToppingCreate]
    notes: Optional[str]


class OrderResponse(BaseModel):
    """Response schema for a single stored order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: int
    restaurant_id: int
    order_type: OrderType
    scheduled_time: Optional[datetime]
    customer_name: str
    customer_phone: str
    customer_email: Optional[str]
    customer_address: Optional[str]
    customer_notes: Optional[str]
    delivery_zone_id: Optional[int]
    subtotal: Decimal
    discount_amount: Decimal
    discount_code_used: Optional[str]
    delivery_fee: Decimal
    total: Decimal
    payment_method: PaymentMethod
    payment_intent_id: Optional[str]
    status: OrderStatus
    created_at: Optional[datetime]
    items: List[OrderItemResponse]


class DeliveryTimeResponse(BaseModel):
    preparation_minutes: int
    is_default: bool


class SlotResponse(BaseModel):
    value: datetime
    label: str
    is_earliest: bool


class SlotListResponse(BaseModel):
    restaurant_id: int
    order_type: OrderType
    preparation_minutes: int
    is_open: bool
    accepts_preorders: bool
    slots: List[SlotResponse]


class DeliveryZoneResponse(BaseModel):
    id: int
    name: str
    postal_codes: List[str]
    price: Decimal
    minimum_order_value: Decimal
    match_text: Optional[str] = None


class ZoneResolveResponse(BaseModel):
    status: str
    postal_code: str
    zone: Optional[DeliveryZoneResponse] = None
    candidates: List[DeliveryZoneResponse] = Field(default_factory=list)
    manually_selected: bool = False
    error_message: Optional[str] = None
    error_code: Optional[str] = None


class DiscountValidateResponse(BaseModel):
    valid: bool
    code: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    minimum_order_value: Optional[Decimal] = None
    error: Optional[str] = None


class QuoteResponse(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal
    delivery_fee: Decimal
    total: Decimal
    meets_discount_minimum: bool
    zone_pending: bool
    zone_minimum_order: Decimal
    shortfall: Decimal
    blocking_reasons: List[str] = Field(default_factory=list)


class PaymentIntentResponse(BaseModel):
    success: bool
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str = "eur"
    error_message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    order_store: str
    payment_service: str
    redis: str
    timestamp: datetime
