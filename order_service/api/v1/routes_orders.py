# order_service/api/v1/routes_orders.py
from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.db.session import get_db
from order_service.domain.orders.schemas import OrderCreate, OrderOut
from order_service.domain.orders.service import create_order, get_order, list_orders_for_user

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def create_order_endpoint(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
):
    logger.info("creating order", user_id=payload.user_id, total_amount=str(payload.total_amount))
    return await create_order(db, payload)


@router.get("/user/{user_id}", response_model=List[OrderOut])
async def list_user_orders_endpoint(
    user_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await list_orders_for_user(db, user_id)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order_endpoint(
    order_id: str,
    db: AsyncSession = Depends(get_db),
):
    order = await get_order(db, order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order {order_id} not found")
    return order
