# order_service/domain/orders/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from order_service.db.models.orders import OrderStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderItemCreate(_CamelModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    price: Decimal = Field(gt=0)


class OrderCreate(_CamelModel):
    user_id: str = Field(min_length=1)
    total_amount: Decimal = Field(gt=0)
    shipping_address: Optional[str] = None
    status: Optional[str] = None
    items: List[OrderItemCreate] = Field(default_factory=list)


class OrderOut(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    order_id: Optional[str] = None  # alias of id kept for frontend clients
    user_id: str
    total_amount: float
    status: OrderStatus
    shipping_address: Optional[str]
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _fill_order_id(self):
        if self.order_id is None:
            self.order_id = self.id
        return self
