# order_service/domain/orders/events.py
"""Event shapes exchanged over Kafka.

Raw order events are "hybrid": they carry only the fields that change over an
order's lifetime and leave denormalized data (user e-mail, line items) for the
analytics transformer to look up. They travel with camelCase keys and are a
closed union discriminated on ``eventType``.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from order_service.db.models.orders import OrderStatus

ORDER_CREATED = "OrderCreated"
ORDER_DELETED = "OrderDeleted"
ORDER_AGGREGATE = "Order"


class _RawEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_outbox_payload(self) -> Dict[str, Any]:
        # the relay merges eventType back in from the outbox row
        return self.model_dump(mode="json", by_alias=True, exclude={"event_type"}, exclude_none=True)


class OrderCreatedEvent(_RawEvent):
    event_type: Literal["OrderCreated"] = ORDER_CREATED
    order_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    total_amount: float
    items_count: int = 0
    status: OrderStatus = OrderStatus.PENDING
    created_at: Optional[datetime] = None


class OrderDeletedEvent(_RawEvent):
    event_type: Literal["OrderDeleted"] = ORDER_DELETED
    order_id: str = Field(min_length=1)
    deleted_at: datetime
    deleted_by: Optional[str] = None
    version: int


OrderEvent = Annotated[
    Union[OrderCreatedEvent, OrderDeletedEvent],
    Field(discriminator="event_type"),
]

order_event_adapter = TypeAdapter(OrderEvent)

KNOWN_EVENT_TYPES = frozenset({ORDER_CREATED, ORDER_DELETED})


class AnalyticsEvent(BaseModel):
    """Row shape expected by the analytics sink.

    ``version`` lets the sink keep the last write per ``order_id`` when a
    created and a deleted event arrive out of order.
    """

    order_id: str
    user_id: str
    user_email: str
    order_date: int
    total_amount: float
    items_count: int
    status: str
    payment_method: str = "UNKNOWN"
    payment_status: str = "PENDING"
    version: int
    event_type: Literal["CREATED", "DELETED"]
    is_deleted: int = 0
    deleted_at: Optional[int] = None


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_epoch_seconds(value: datetime) -> int:
    return (_as_utc(value) - _EPOCH) // timedelta(seconds=1)


def to_epoch_millis(value: datetime) -> int:
    return (_as_utc(value) - _EPOCH) // timedelta(milliseconds=1)
