# order_service/kafka/consumer.py
"""Order event transformer.

Consumes raw hybrid events from ``order.events``, fills in the fields the
write path deliberately left out by querying the database, and republishes a
flat analytics row to ``orders_analytics``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional, Sequence

import structlog
from aiokafka import AIOKafkaConsumer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_service.core.errors import OrderNotFoundError
from order_service.db.base import utcnow
from order_service.db.repositories.orders import count_line_items_for_order, get_order_by_id
from order_service.db.repositories.users import get_user_email
from order_service.domain.orders.events import (
    KNOWN_EVENT_TYPES,
    AnalyticsEvent,
    OrderCreatedEvent,
    OrderDeletedEvent,
    order_event_adapter,
    to_epoch_millis,
    to_epoch_seconds,
)
from .producer import KafkaProducerService

UNKNOWN_EMAIL = "UNKNOWN"
DEFAULT_GROUP_ID = "order-event-transformer"


class KafkaConsumerService:
    def __init__(
        self,
        *,
        brokers: Sequence[str],
        client_id: str,
        producer: KafkaProducerService,
        session_factory: async_sessionmaker[AsyncSession],
        group_id: str = DEFAULT_GROUP_ID,
        topics: Sequence[str] = ("order.events",),
        analytics_topic: str = "orders_analytics",
        logger: Any = None,
    ) -> None:
        self.brokers = list(brokers)
        self.client_id = client_id
        self.group_id = group_id
        self.topics = tuple(topics)
        self.analytics_topic = analytics_topic
        self.producer = producer
        self.session_factory = session_factory
        self.logger = logger or structlog.get_logger(__name__)

        self._consumer: Optional[AIOKafkaConsumer] = None
        self._task: Optional[asyncio.Task[None]] = None

    async def start(self) -> None:
        if self._consumer is not None:
            return

        consumer = AIOKafkaConsumer(
            *self.topics,
            bootstrap_servers=self.brokers,
            client_id=self.client_id,
            group_id=self.group_id,
            auto_offset_reset="latest",
            session_timeout_ms=30000,
            heartbeat_interval_ms=3000,
        )
        try:
            await consumer.start()
        except Exception:
            self.logger.exception("failed to start kafka consumer", group_id=self.group_id)
            raise

        self._consumer = consumer
        self._task = asyncio.create_task(self._consume())
        self.logger.info("kafka consumer running", group_id=self.group_id, topics=list(self.topics))

    async def stop(self) -> None:
        if self._task is not None:
            task, self._task = self._task, None
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                # already logged by _consume; the client still has to be closed
                self.logger.warning("kafka consumer loop had failed before shutdown", group_id=self.group_id)

        if self._consumer is not None:
            consumer, self._consumer = self._consumer, None
            try:
                await consumer.stop()
                self.logger.info("kafka consumer disconnected", group_id=self.group_id)
            except Exception:
                self.logger.exception("error disconnecting kafka consumer", group_id=self.group_id)

    async def _consume(self) -> None:
        assert self._consumer is not None
        try:
            async for message in self._consumer:
                await self.handle_message(message.topic, message.partition, message.key, message.value)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.logger.exception("kafka consumer loop stopped unexpectedly", group_id=self.group_id)
            raise

    async def handle_message(
        self,
        topic: str,
        partition: int,
        key: Optional[bytes],
        value: Optional[bytes],
    ) -> Optional[AnalyticsEvent]:
        """Process one raw message; never raises.

        Returns the analytics event that was published, or ``None`` when the
        message was dropped.
        """
        log = self.logger.bind(
            topic=topic,
            partition=partition,
            key=key.decode("utf-8", errors="replace") if key else None,
        )
        try:
            data = json.loads(value or b"{}")
            event_type = data.get("eventType") if isinstance(data, dict) else None
            log.info("received order event", event_type=event_type)

            if event_type not in KNOWN_EVENT_TYPES:
                log.warning("unknown event type, dropping message", event_type=event_type)
                return None

            event = order_event_adapter.validate_python(data)
            if isinstance(event, OrderCreatedEvent):
                return await self.transform_order_created_event(event)
            return await self.transform_order_deleted_event(event)
        except Exception:
            # no dead-letter topic: the message is logged and skipped
            log.exception("failed to process message")
            return None

    async def _resolve_user_email(self, db: AsyncSession, user_id: Optional[str]) -> str:
        if not user_id:
            return UNKNOWN_EMAIL
        email = await get_user_email(db, user_id)
        return email or UNKNOWN_EMAIL

    async def transform_order_created_event(self, event: OrderCreatedEvent) -> AnalyticsEvent:
        async with self.session_factory() as db:
            user_email = await self._resolve_user_email(db, event.user_id)

        created_at = event.created_at or utcnow()
        analytics_event = AnalyticsEvent(
            order_id=event.order_id,
            user_id=event.user_id,
            user_email=user_email,
            order_date=to_epoch_seconds(created_at),
            total_amount=event.total_amount,
            items_count=event.items_count,
            status=event.status.value,
            version=to_epoch_millis(created_at),
            event_type="CREATED",
            is_deleted=0,
            deleted_at=None,
        )

        await self.producer.send(self.analytics_topic, analytics_event.order_id, analytics_event.model_dump())
        self.logger.info(
            "transformed OrderCreated event",
            order_id=analytics_event.order_id,
            user_email=analytics_event.user_email,
            items_count=analytics_event.items_count,
        )
        return analytics_event

    async def transform_order_deleted_event(self, event: OrderDeletedEvent) -> AnalyticsEvent:
        async with self.session_factory() as db:
            order = await get_order_by_id(db, event.order_id)
            if order is None:
                self.logger.error("order for OrderDeleted event not found", order_id=event.order_id)
                raise OrderNotFoundError(event.order_id)

            user_email = await self._resolve_user_email(db, order.user_id)
            items_count = await count_line_items_for_order(db, event.order_id)

        analytics_event = AnalyticsEvent(
            order_id=order.id,
            user_id=order.user_id,
            user_email=user_email,
            order_date=to_epoch_seconds(order.created_at),
            total_amount=float(order.total_amount),
            items_count=items_count,
            status=order.status.value,
            # producer-assigned, never regenerated here
            version=event.version,
            event_type="DELETED",
            is_deleted=1,
            deleted_at=to_epoch_seconds(event.deleted_at),
        )

        await self.producer.send(self.analytics_topic, analytics_event.order_id, analytics_event.model_dump())
        self.logger.info(
            "transformed OrderDeleted event",
            order_id=analytics_event.order_id,
            deleted_by=event.deleted_by,
            version=analytics_event.version,
        )
        return analytics_event
