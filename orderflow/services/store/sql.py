"""
SQL Order Store Implementation

Production implementation on PostgreSQL using SQLAlchemy async sessions.
Used when ENV_MODE=production or ENV_MODE=staging.

Order numbers are assigned per restaurant as ``MAX(order_number) + 1``
inside the insert transaction; the unique constraint on
(restaurant_id, order_number) turns a concurrent duplicate into an
IntegrityError, which is retried.
"""

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from orderflow.core.money import to_decimal
from orderflow.models import (
    DeliveryTime,
    DeliveryZone as DeliveryZoneRow,
    DiscountCode,
    Order,
    OrderItem,
    OrderItemTopping,
    Restaurant,
)
from orderflow.services.store.base import (
    BaseOrderStore,
    DiscountCodeRecord,
    RestaurantProfile,
    StoredOrder,
    StoredOrderItem,
)
from orderflow.services.zones import DeliveryZone

logger = logging.getLogger(__name__)

ORDER_NUMBER_RETRIES = 3


class SqlOrderStore(BaseOrderStore):
    """
    SQLAlchemy-backed order store.

    Each call opens its own session from the given session maker.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        logger.info("SqlOrderStore initialized")

    @property
    def provider_name(self) -> str:
        return "postgres"

    # =========================================================================
    # READS
    # =========================================================================

    async def get_restaurant(self, restaurant_id: int) -> Optional[RestaurantProfile]:
        async with self._session_maker() as session:
            row = await session.get(Restaurant, restaurant_id)
            if row is None:
                return None
            return RestaurantProfile(
                id=row.id,
                name=row.name,
                opening_hours=row.opening_hours or {},
                accepts_preorders=row.accepts_preorders,
                manually_closed=row.manually_closed,
                is_active=row.is_active,
                payment_available=bool(row.stripe_account_id and row.stripe_charges_enabled),
            )

    async def list_delivery_zones(self, restaurant_id: int) -> list[DeliveryZone]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(DeliveryZoneRow)
                .where(DeliveryZoneRow.restaurant_id == restaurant_id)
                .order_by(DeliveryZoneRow.sort_order, DeliveryZoneRow.id)
            )
            return [DeliveryZone.from_record(row) for row in result.scalars().all()]

    async def get_preparation_minutes(
        self,
        restaurant_id: int,
        delivery_zone_id: Optional[int] = None,
    ) -> Optional[int]:
        query = select(DeliveryTime.preparation_minutes).where(
            DeliveryTime.restaurant_id == restaurant_id
        )
        if delivery_zone_id is None:
            query = query.where(DeliveryTime.delivery_zone_id.is_(None))
        else:
            query = query.where(DeliveryTime.delivery_zone_id == delivery_zone_id)

        async with self._session_maker() as session:
            result = await session.execute(query.limit(1))
            return result.scalar_one_or_none()

    async def find_discount_code(self, restaurant_id: int, code: str) -> Optional[DiscountCodeRecord]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(DiscountCode).where(
                    DiscountCode.restaurant_id == restaurant_id,
                    DiscountCode.code == code.strip().upper(),
                    DiscountCode.is_active.is_(True),
                ).limit(1)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return DiscountCodeRecord(
                code=row.code,
                discount_type=row.discount_type,
                discount_value=to_decimal(row.discount_value),
                minimum_order_value=to_decimal(row.minimum_order_value),
                is_active=row.is_active,
                usage_count=row.usage_count,
            )

    async def get_order(self, order_id: int) -> Optional[StoredOrder]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Order)
                .where(Order.id == order_id)
                .options(selectinload(Order.items).selectinload(OrderItem.toppings))
            )
            row = result.scalar_one_or_none()
            return self._to_stored(row) if row is not None else None

    # =========================================================================
    # WRITES
    # =========================================================================

    async def save_order(self, order: StoredOrder) -> StoredOrder:
        for attempt in range(1, ORDER_NUMBER_RETRIES + 1):
            try:
                return await self._insert_order(order)
            except IntegrityError:
                if attempt == ORDER_NUMBER_RETRIES:
                    raise
                logger.warning(
                    f"Order number collision for restaurant #{order.restaurant_id}, "
                    f"retrying ({attempt}/{ORDER_NUMBER_RETRIES})"
                )
        raise RuntimeError("unreachable")

    async def _insert_order(self, order: StoredOrder) -> StoredOrder:
        async with self._session_maker() as session:
            async with session.begin():
                max_number = await session.execute(
                    select(func.coalesce(func.max(Order.order_number), 0)).where(
                        Order.restaurant_id == order.restaurant_id
                    )
                )
                row = Order(
                    restaurant_id=order.restaurant_id,
                    order_number=max_number.scalar_one() + 1,
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
                    items=[
                        OrderItem(
                            menu_item_id=item.menu_item_id,
                            item_name=item.item_name,
                            variant_name=item.variant_name,
                            quantity=item.quantity,
                            unit_price=item.unit_price,
                            total_price=item.total_price,
                            notes=item.notes,
                            toppings=[
                                OrderItemTopping(topping_name=name, topping_price=price)
                                for name, price in item.toppings
                            ],
                        )
                        for item in order.items
                    ],
                )
                session.add(row)

                if order.discount_code_used:
                    await session.execute(
                        update(DiscountCode)
                        .where(
                            DiscountCode.restaurant_id == order.restaurant_id,
                            DiscountCode.code == order.discount_code_used.upper(),
                        )
                        .values(usage_count=DiscountCode.usage_count + 1)
                    )

            await session.refresh(row)
            logger.info(f"Order #{row.order_number} stored (id={row.id})")
            return order.with_identity(row.id, row.order_number, row.created_at)

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(select(func.now()))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    @staticmethod
    def _to_stored(row: Order) -> StoredOrder:
        return StoredOrder(
            id=row.id,
            order_number=row.order_number,
            restaurant_id=row.restaurant_id,
            order_type=row.order_type,
            customer_name=row.customer_name,
            customer_phone=row.customer_phone,
            customer_email=row.customer_email,
            customer_address=row.customer_address,
            customer_notes=row.customer_notes,
            delivery_zone_id=row.delivery_zone_id,
            subtotal=to_decimal(row.subtotal),
            discount_amount=to_decimal(row.discount_amount),
            discount_code_used=row.discount_code_used,
            delivery_fee=to_decimal(row.delivery_fee),
            total=to_decimal(row.total),
            scheduled_time=row.scheduled_time,
            payment_method=row.payment_method,
            payment_intent_id=row.payment_intent_id,
            status=row.status,
            created_at=row.created_at,
            items=[
                StoredOrderItem(
                    menu_item_id=item.menu_item_id,
                    item_name=item.item_name,
                    variant_name=item.variant_name,
                    quantity=item.quantity,
                    unit_price=to_decimal(item.unit_price),
                    notes=item.notes,
                    toppings=[(t.topping_name, to_decimal(t.topping_price)) for t in item.toppings],
                )
                for item in row.items
            ],
        )
