# order_service/domain/orders/service.py
import uuid
from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.core.errors import OrderAlreadyDeletedError, OrderNotFoundError, UserNotFoundError
from order_service.db.base import utcnow
from order_service.db.models.orders import Order, OrderStatus
from order_service.db.models.order_items import OrderItem
from order_service.db.repositories.orders import get_order_by_id, get_order_for_update, get_orders_for_user
from order_service.db.repositories.outbox import PublishEvent, publish_event
from order_service.db.repositories.users import get_user_by_id
from .events import ORDER_AGGREGATE, OrderCreatedEvent, OrderDeletedEvent, to_epoch_millis
from .schemas import OrderCreate

logger = structlog.get_logger(__name__)

DEFAULT_SHIPPING_ADDRESS = "Not provided"

_STATUS_ALIASES = {
    "pending": OrderStatus.PENDING,
    "processing": OrderStatus.PREPARING,
    "completed": OrderStatus.DELIVERED,
    "cancelled": OrderStatus.CANCELLED,
    "payment_processing": OrderStatus.PAYMENT_PROCESSING,
    "payment_confirmed": OrderStatus.PAYMENT_CONFIRMED,
    "preparing": OrderStatus.PREPARING,
    "shipped": OrderStatus.SHIPPED,
    "delivered": OrderStatus.DELIVERED,
    "refunded": OrderStatus.REFUNDED,
}


def resolve_status(raw: Optional[str]) -> OrderStatus:
    if not raw:
        return OrderStatus.PENDING
    return _STATUS_ALIASES.get(raw.lower(), OrderStatus.PENDING)


async def create_order(
    db: AsyncSession,
    data: OrderCreate,
) -> Order:
    """Insert an order, its items and an ``OrderCreated`` outbox record.

    Everything is committed in one transaction; on any failure the order, the
    items and the outbox record are rolled back together.
    """
    user = await get_user_by_id(db, data.user_id)
    if user is None:
        raise UserNotFoundError(data.user_id)

    order_id = str(uuid.uuid4())
    now = utcnow()

    try:
        order = Order(
            id=order_id,
            user_id=data.user_id,
            total_amount=data.total_amount,
            status=resolve_status(data.status),
            shipping_address=data.shipping_address or DEFAULT_SHIPPING_ADDRESS,
            created_at=now,
            updated_at=now,
        )
        db.add(order)
        await db.flush()

        if data.items:
            db.add_all([
                OrderItem(
                    order_id=order_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=item.price,
                )
                for item in data.items
            ])
            await db.flush()
            logger.info("order items saved", order_id=order_id, count=len(data.items))

        # hybrid payload: user email and items are looked up by the consumer
        event = OrderCreatedEvent(
            order_id=order_id,
            user_id=data.user_id,
            total_amount=float(data.total_amount),
            items_count=len(data.items),
            status=order.status,
            created_at=now,
        )
        await publish_event(db, PublishEvent(
            aggregate_id=order_id,
            aggregate_type=ORDER_AGGREGATE,
            event_type=event.event_type,
            payload=event.to_outbox_payload(),
        ))

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("order created", order_id=order_id, user_id=data.user_id)
    return order


async def delete_order(
    db: AsyncSession,
    order_id: str,
    admin_id: str,
) -> Order:
    """Soft delete an order and record ``OrderDeleted`` in the same transaction."""
    order = await get_order_for_update(db, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)

    if order.deleted_at is not None:
        raise OrderAlreadyDeletedError(order_id)

    now = utcnow()

    try:
        order.deleted_at = now
        await db.flush()

        event = OrderDeletedEvent(
            order_id=order_id,
            deleted_at=now,
            deleted_by=admin_id,
            version=to_epoch_millis(now),
        )
        await publish_event(db, PublishEvent(
            aggregate_id=order_id,
            aggregate_type=ORDER_AGGREGATE,
            event_type=event.event_type,
            payload=event.to_outbox_payload(),
        ))

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("order soft deleted", order_id=order_id, deleted_by=admin_id)
    return order


async def get_order(db: AsyncSession, order_id: str) -> Optional[Order]:
    return await get_order_by_id(db, order_id)


async def list_orders_for_user(db: AsyncSession, user_id: str) -> List[Order]:
    return await get_orders_for_user(db, user_id)
