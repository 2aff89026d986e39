"""
SQLAlchemy Database Models

Persistence for the multi-tenant ordering platform:
- Restaurants with weekly opening hours and pre-order policy
- Delivery zones matched by postal code
- Preparation times per restaurant (pickup) and per zone (delivery)
- Discount codes
- Orders with their items and toppings

The enums defined here are shared by the schemas and the checkout services.
"""

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Text,
    Enum,
    Boolean,
    ForeignKey,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from orderflow.database import Base


class OrderType(str, enum.Enum):
    """Order type - Pickup or Delivery."""
    PICKUP = "pickup"
    DELIVERY = "delivery"


class PaymentMethod(str, enum.Enum):
    """How the customer settles the order."""
    CASH = "cash"
    CARD = "card"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Restaurant(Base):
    """
    A tenant of the platform.

    ``opening_hours`` maps weekday keys (mon..sun) to ``{"open", "close"}``
    wall-clock strings; a missing day means closed.
    """
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    slug = Column(String(150), nullable=False, unique=True, index=True)

    # =========================================================================
    # AVAILABILITY
    # =========================================================================
    opening_hours = Column(JSON, nullable=False, default=dict)
    accepts_preorders = Column(Boolean, nullable=False, default=False)
    manually_closed = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # =========================================================================
    # PAYMENT (Stripe Connect)
    # =========================================================================
    stripe_account_id = Column(String(100), nullable=True)
    stripe_charges_enabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    delivery_zones = relationship("DeliveryZone", back_populates="restaurant")

    def __repr__(self):
        return f"<Restaurant #{self.id} - {self.slug}>"


class DeliveryZone(Base):
    """Delivery catchment area with its own fee and minimum order value."""
    __tablename__ = "delivery_zones"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    postal_codes = Column(JSON, nullable=False, default=list)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    minimum_order_value = Column(Numeric(10, 2), nullable=False, default=0)
    match_text = Column(String(255), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)

    restaurant = relationship("Restaurant", back_populates="delivery_zones")

    def __repr__(self):
        return f"<DeliveryZone #{self.id} - {self.name}>"


class DeliveryTime(Base):
    """
    Preparation minutes.

    A row without ``delivery_zone_id`` is the restaurant's pickup entry.
    """
    __tablename__ = "delivery_times"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "delivery_zone_id", name="uq_delivery_times_zone"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    delivery_zone_id = Column(Integer, ForeignKey("delivery_zones.id"), nullable=True)
    preparation_minutes = Column(Integer, nullable=False)


class DiscountCode(Base):
    __tablename__ = "discount_codes"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "code", name="uq_discount_codes_code"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    code = Column(String(50), nullable=False)  # stored upper-case
    discount_type = Column(Enum(DiscountType), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    minimum_order_value = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_count = Column(Integer, nullable=False, default=0)


class Order(Base):
    """
    Committed customer order.

    Amounts are stored exactly as recomputed by the server at creation time.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "order_number", name="uq_orders_number"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    order_number = Column(Integer, nullable=False)

    # =========================================================================
    # ORDER TYPE
    # =========================================================================
    order_type = Column(
        Enum(OrderType),
        default=OrderType.PICKUP,
        nullable=False,
        index=True
    )
    scheduled_time = Column(DateTime(timezone=True), nullable=True)

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(30), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_address = Column(String(255), nullable=True)  # delivery only
    customer_notes = Column(Text, nullable=True)
    delivery_zone_id = Column(Integer, ForeignKey("delivery_zones.id"), nullable=True)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_code_used = Column(String(50), nullable=True)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)

    # =========================================================================
    # PAYMENT
    # =========================================================================
    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    payment_intent_id = Column(String(100), nullable=True)

    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Order #{self.order_number} - {self.order_type.value} - {self.customer_name}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, nullable=False)
    item_name = Column(String(150), nullable=False)
    variant_name = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")
    toppings = relationship("OrderItemTopping", cascade="all, delete-orphan")


class OrderItemTopping(Base):
    __tablename__ = "order_item_toppings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False, index=True)
    topping_name = Column(String(100), nullable=False)
    topping_price = Column(Numeric(10, 2), nullable=False, default=0)
