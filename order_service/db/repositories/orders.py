# order_service/db/repositories/orders.py
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func, select

from order_service.db.models.orders import Order
from order_service.db.models.order_items import OrderItem


async def get_order_by_id(
    db: AsyncSession,
    order_id: str
) -> Optional[Order]:
    result = await db.execute(
        select(Order).where(Order.id == order_id)
    )
    return result.scalar_one_or_none()


async def get_order_for_update(
    db: AsyncSession,
    order_id: str
) -> Optional[Order]:
    result = await db.execute(
        select(Order).where(Order.id == order_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def get_orders_for_user(
    db: AsyncSession,
    user_id: str
) -> List[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
    )
    return list(result.scalars().all())


async def count_line_items_for_order(
    db: AsyncSession,
    order_id: str
) -> int:
    result = await db.execute(
        select(func.count(OrderItem.id)).where(OrderItem.order_id == order_id)
    )
    return int(result.scalar_one())
