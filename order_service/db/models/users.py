# order_service/db/models/users.py
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from order_service.db.base import Base, utcnow


class User(Base):
    __tablename__ = "users"

    """Customer account referenced by orders.

    The order service only reads this table: the analytics transformer
    resolves the e-mail address here instead of carrying it in events.
    """

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
