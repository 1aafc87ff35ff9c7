# order_service/api/v1/routes_admin_orders.py
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.db.session import get_db
from order_service.domain.orders.service import delete_order

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/admin/orders", tags=["admin"])


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order_endpoint(
    order_id: str,
    x_admin_id: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
):
    # admin id is kept for the audit trail in the OrderDeleted event
    if not x_admin_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Admin-Id header is required")

    logger.info("admin deleting order", order_id=order_id, admin_id=x_admin_id)
    await delete_order(db, order_id, x_admin_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
