# order_service/db/models/orders.py
import enum
from sqlalchemy import Column, Enum, Index, Numeric, String, DateTime
from sqlalchemy.sql import func

from order_service.db.base import Base, utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAYMENT_PROCESSING = "PAYMENT_PROCESSING"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PREPARING = "PREPARING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class Order(Base):
    __tablename__ = "orders"

    """Order header owned by a single user.

    Orders are never physically removed: an admin delete sets ``deleted_at``
    and the same transaction writes an ``OrderDeleted`` outbox record.
    """

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False)

    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(OrderStatus, name="order_status_enum"), nullable=False, default=OrderStatus.PENDING)
    shipping_address = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_orders_user_created", "user_id", "created_at"),
    )
