# order_service/db/repositories/users.py
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import select

from order_service.db.models.users import User


async def get_user_by_id(
    db: AsyncSession,
    user_id: str
) -> Optional[User]:
    result = await db.execute(
        select(User).where(User.id == user_id)
    )
    return result.scalar_one_or_none()


async def get_user_email(
    db: AsyncSession,
    user_id: str
) -> Optional[str]:
    result = await db.execute(
        select(User.email).where(User.id == user_id)
    )
    return result.scalar_one_or_none()
