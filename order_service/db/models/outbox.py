# order_service/db/models/outbox.py
from sqlalchemy import BigInteger, Boolean, Column, Index, Integer, String, DateTime, JSON, false
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from order_service.db.base import Base, utcnow


class OutboxEvent(Base):
    __tablename__ = "outbox"

    """Outbox record representing a domain event waiting to be relayed to Kafka.

    Rows are written in the same transaction as the order mutation they
    describe. The relay flips ``processed`` to true once the broker has
    acknowledged the message and never deletes or reverts a row.
    """

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    aggregate_id = Column(String(36), nullable=False)
    aggregate_type = Column(String(100), nullable=False) # "Order"
    event_type = Column(String(100), nullable=False) # "OrderCreated"

    payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)

    processed = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        Index("ix_outbox_processed_created", "processed", "created_at"),
    )
