# order_service/kafka/producer.py
"""Kafka producer wrapper around aiokafka.

One long-lived producer is started with the application and reused by every
publish call. Connecting is retried with exponential backoff; publish errors
are logged and re-raised so callers decide whether to retry.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence, Tuple

import structlog
from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaConnectionError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from order_service.core.errors import ProducerNotStartedError

EVENT_TIME_HEADER = "event-time"


def _serialize_value(value: Any) -> bytes:
    return json.dumps(value, default=str).encode("utf-8")


def _serialize_key(key: Optional[str]) -> Optional[bytes]:
    return key.encode("utf-8") if key else None


class KafkaProducerService:
    def __init__(
        self,
        *,
        brokers: Sequence[str],
        client_id: str,
        retries: int = 5,
        initial_retry_ms: int = 300,
        multiplier: float = 2,
        logger: Any = None,
    ) -> None:
        self.brokers = list(brokers)
        self.client_id = client_id
        self.retries = retries
        self.initial_retry_ms = initial_retry_ms
        self.multiplier = multiplier
        self.logger = logger or structlog.get_logger(__name__)
        self._producer: Optional[AIOKafkaProducer] = None

    @property
    def started(self) -> bool:
        return self._producer is not None

    def _build_producer(self) -> AIOKafkaProducer:
        return AIOKafkaProducer(
            bootstrap_servers=self.brokers,
            client_id=self.client_id,
            value_serializer=_serialize_value,
            key_serializer=_serialize_key,
            acks="all",
            enable_idempotence=True,
        )

    async def start(self) -> None:
        if self._producer is not None:
            return

        retryer = AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=self.initial_retry_ms / 1000, exp_base=self.multiplier),
            retry=retry_if_exception_type(KafkaConnectionError),
            reraise=True,
            before_sleep=lambda rs: self.logger.warning(
                "kafka producer connect failed, retrying",
                client_id=self.client_id,
                attempt=rs.attempt_number,
                error=str(rs.outcome.exception()) if rs.outcome else None,
            ),
        )

        try:
            async for attempt in retryer:
                with attempt:
                    producer = self._build_producer()
                    try:
                        await producer.start()
                    except KafkaConnectionError:
                        await producer.stop()
                        raise
        except KafkaConnectionError:
            self.logger.error("kafka producer failed to connect", client_id=self.client_id, brokers=self.brokers)
            raise

        self._producer = producer
        self.logger.info("kafka producer connected", client_id=self.client_id, brokers=self.brokers)

    async def stop(self) -> None:
        if self._producer is None:
            return
        producer, self._producer = self._producer, None
        try:
            await producer.stop()
            self.logger.info("kafka producer disconnected", client_id=self.client_id)
        except Exception:
            self.logger.exception("failed to disconnect kafka producer", client_id=self.client_id)

    def _require_producer(self) -> AIOKafkaProducer:
        if self._producer is None:
            raise ProducerNotStartedError(f"Kafka producer '{self.client_id}' is not started")
        return self._producer

    @staticmethod
    def _headers() -> list[Tuple[str, bytes]]:
        return [(EVENT_TIME_HEADER, datetime.now(timezone.utc).isoformat().encode("utf-8"))]

    async def send(self, topic: str, key: str, value: Any) -> None:
        """Send one message and wait for the broker acknowledgement."""
        producer = self._require_producer()
        try:
            metadata = await producer.send_and_wait(
                topic,
                value=value,
                key=key,
                headers=self._headers(),
            )
        except Exception:
            self.logger.exception("failed to send message", topic=topic, key=key)
            raise

        self.logger.debug(
            "message sent",
            topic=topic,
            key=key,
            partition=getattr(metadata, "partition", None),
            offset=getattr(metadata, "offset", None),
        )

    async def send_batch(self, topic: str, messages: Iterable[Tuple[str, Any]]) -> None:
        """Send ``(key, value)`` pairs to one topic and wait for all of them."""
        producer = self._require_producer()
        messages = list(messages)
        if not messages:
            return

        headers = self._headers()
        try:
            futures = [
                await producer.send(topic, value=value, key=key, headers=headers)
                for key, value in messages
            ]
            await asyncio.gather(*futures)
        except Exception:
            self.logger.exception("failed to send batch", topic=topic, size=len(messages))
            raise

        self.logger.info("batch sent", topic=topic, size=len(messages))
