from decimal import Decimal

import pytest
from sqlalchemy import func, select

from order_service.core.errors import OrderAlreadyDeletedError, OrderNotFoundError, UserNotFoundError
from order_service.db.models.order_items import OrderItem
from order_service.db.models.orders import Order, OrderStatus
from order_service.db.models.outbox import OutboxEvent
from order_service.domain.orders import service
from order_service.domain.orders.schemas import OrderCreate, OrderItemCreate
from order_service.domain.orders.service import create_order, delete_order, resolve_status


def _order_data(user_id: str, items: int = 2, **overrides) -> OrderCreate:
    data = {
        "user_id": user_id,
        "total_amount": Decimal("59.97"),
        "items": [
            OrderItemCreate(product_id=f"product-{i}", quantity=1, price=Decimal("19.99"))
            for i in range(items)
        ],
    }
    data.update(overrides)
    return OrderCreate(**data)


async def _counts(session_factory):
    async with session_factory() as session:
        orders = (await session.execute(select(func.count(Order.id)))).scalar_one()
        items = (await session.execute(select(func.count(OrderItem.id)))).scalar_one()
        outbox = (await session.execute(select(func.count(OutboxEvent.id)))).scalar_one()
    return orders, items, outbox


async def _outbox_rows(session_factory, event_type=None):
    async with session_factory() as session:
        stmt = select(OutboxEvent).order_by(OutboxEvent.id)
        if event_type:
            stmt = stmt.where(OutboxEvent.event_type == event_type)
        return list((await session.execute(stmt)).scalars().all())


async def test_create_order_writes_order_items_and_outbox(db, session_factory, user):
    order = await create_order(db, _order_data(user.id, items=3))

    assert await _counts(session_factory) == (1, 3, 1)
    assert order.status == OrderStatus.PENDING
    assert order.shipping_address == "Not provided"

    [record] = await _outbox_rows(session_factory)
    assert record.aggregate_id == order.id
    assert record.aggregate_type == "Order"
    assert record.event_type == "OrderCreated"
    assert record.processed is False
    assert record.payload["orderId"] == order.id
    assert record.payload["userId"] == user.id
    assert record.payload["totalAmount"] == pytest.approx(59.97)
    assert record.payload["itemsCount"] == 3
    assert record.payload["status"] == "PENDING"
    assert "createdAt" in record.payload
    # denormalized fields are resolved by the transformer
    assert "userEmail" not in record.payload
    assert "items" not in record.payload
    assert "eventType" not in record.payload


async def test_create_order_rejects_unknown_user(db, session_factory):
    with pytest.raises(UserNotFoundError):
        await create_order(db, _order_data("missing-user"))

    assert await _counts(session_factory) == (0, 0, 0)


async def test_create_order_rolls_back_everything_when_outbox_write_fails(db, session_factory, user, monkeypatch):
    async def broken_publish(*args, **kwargs):
        raise RuntimeError("outbox unavailable")

    monkeypatch.setattr(service, "publish_event", broken_publish)

    with pytest.raises(RuntimeError):
        await create_order(db, _order_data(user.id, items=2))

    assert await _counts(session_factory) == (0, 0, 0)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, OrderStatus.PENDING),
        ("processing", OrderStatus.PREPARING),
        ("Completed", OrderStatus.DELIVERED),
        ("SHIPPED", OrderStatus.SHIPPED),
        ("payment_confirmed", OrderStatus.PAYMENT_CONFIRMED),
        ("nonsense", OrderStatus.PENDING),
    ],
)
def test_resolve_status(raw, expected):
    assert resolve_status(raw) == expected


async def test_create_order_uses_requested_status_and_address(db, user):
    order = await create_order(db, _order_data(user.id, status="shipped", shipping_address="1 Main St"))

    assert order.status == OrderStatus.SHIPPED
    assert order.shipping_address == "1 Main St"


async def test_delete_order_soft_deletes_and_records_event(db, session_factory, user):
    order = await create_order(db, _order_data(user.id))

    async with session_factory() as session:
        deleted = await delete_order(session, order.id, "admin-7")

    assert deleted.deleted_at is not None

    async with session_factory() as session:
        stored = await session.get(Order, order.id)
        assert stored.deleted_at is not None

    [record] = await _outbox_rows(session_factory, "OrderDeleted")
    assert record.aggregate_id == order.id
    assert set(record.payload) == {"orderId", "deletedAt", "deletedBy", "version"}
    assert record.payload["deletedBy"] == "admin-7"
    assert isinstance(record.payload["version"], int)


async def test_delete_order_twice_is_rejected(db, session_factory, user):
    order = await create_order(db, _order_data(user.id))

    async with session_factory() as session:
        await delete_order(session, order.id, "admin-1")

    async with session_factory() as session:
        with pytest.raises(OrderAlreadyDeletedError):
            await delete_order(session, order.id, "admin-1")

    assert len(await _outbox_rows(session_factory, "OrderDeleted")) == 1


async def test_delete_unknown_order_is_rejected(db, session_factory):
    with pytest.raises(OrderNotFoundError):
        await delete_order(db, "missing-order", "admin-1")

    assert await _outbox_rows(session_factory) == []


async def test_delete_order_rolls_back_when_outbox_write_fails(db, session_factory, user, monkeypatch):
    order = await create_order(db, _order_data(user.id))

    async def broken_publish(*args, **kwargs):
        raise RuntimeError("outbox unavailable")

    monkeypatch.setattr(service, "publish_event", broken_publish)

    async with session_factory() as session:
        with pytest.raises(RuntimeError):
            await delete_order(session, order.id, "admin-1")

    async with session_factory() as session:
        stored = await session.get(Order, order.id)
        assert stored.deleted_at is None

    assert await _outbox_rows(session_factory, "OrderDeleted") == []
