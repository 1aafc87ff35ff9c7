from sqlalchemy import BigInteger, Column, Integer, Numeric, String, DateTime, ForeignKey
from sqlalchemy.sql import func

from order_service.db.base import Base, utcnow


class OrderItem(Base):
    __tablename__ = "order_items"

    """A single product line of an order, priced at the time of purchase."""

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)

    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
