# order_service/outbox/relay.py
"""Polling relay that drains the outbox table into Kafka.

Every ``interval_seconds`` a cycle fetches the oldest unprocessed records,
publishes each one and marks the successful ones processed in a single
update. Failed records stay pending and are picked up again by a later cycle,
so delivery is at-least-once.

The in-process ``_is_processing`` flag only keeps cycles of this process from
overlapping. Several service instances each run their own relay and can
publish the same row twice; downstream deduplicates by ``version``.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Set

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_service.db.models.outbox import OutboxEvent
from order_service.db.repositories.outbox import find_unprocessed_events, mark_many_as_processed


class Producer(Protocol):
    async def send(self, topic: str, key: str, value: Any) -> None: ...


@dataclass(frozen=True)
class RelayResult:
    fetched: int = 0
    published: int = 0
    failed: int = 0


def topic_for(aggregate_type: str) -> str:
    return f"{aggregate_type.lower()}.events"


def build_message(event: OutboxEvent) -> dict:
    return {"eventType": event.event_type, **(event.payload or {})}


class OutboxRelayService:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        producer: Producer,
        batch_size: int = 100,
        interval_seconds: float = 5.0,
        logger: Any = None,
    ) -> None:
        self.session_factory = session_factory
        self.producer = producer
        self.batch_size = batch_size
        self.interval_seconds = interval_seconds
        self.logger = logger or structlog.get_logger(__name__)

        self._is_processing = False
        self._ticker: Optional[asyncio.Task[None]] = None
        self._cycles: Set[asyncio.Task[RelayResult]] = set()

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    async def relay_events(self) -> RelayResult:
        """Run one relay cycle, or skip it if another one is still in flight."""
        if self._is_processing:
            self.logger.info("previous relay is still processing, skipping this cycle")
            return RelayResult()

        self._is_processing = True
        try:
            return await self._relay_batch()
        except Exception:
            self.logger.exception("outbox relay cycle failed")
            return RelayResult()
        finally:
            self._is_processing = False

    async def _relay_batch(self) -> RelayResult:
        async with self.session_factory() as db:
            events = await find_unprocessed_events(db, self.batch_size)
            if not events:
                return RelayResult()

            self.logger.info("processing outbox events", count=len(events))

            published_ids: list[int] = []
            for event in events:
                try:
                    await self.producer.send(
                        topic_for(event.aggregate_type),
                        event.aggregate_id,
                        build_message(event),
                    )
                except Exception:
                    self.logger.exception(
                        "failed to relay outbox event",
                        outbox_id=event.id,
                        event_type=event.event_type,
                    )
                    continue

                published_ids.append(event.id)
                self.logger.info(
                    "event relayed",
                    outbox_id=event.id,
                    event_type=event.event_type,
                    aggregate=f"{event.aggregate_type}:{event.aggregate_id}",
                )

            if published_ids:
                try:
                    await mark_many_as_processed(db, published_ids)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
                self.logger.info("marked outbox events as processed", count=len(published_ids))

            failed = len(events) - len(published_ids)
            if failed:
                self.logger.warning("outbox events failed to relay", count=failed)

            return RelayResult(fetched=len(events), published=len(published_ids), failed=failed)

    def _fire(self) -> None:
        task = asyncio.create_task(self.relay_events())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)

    async def _tick(self) -> None:
        while True:
            self._fire()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._ticker is not None:
            return
        self._ticker = asyncio.create_task(self._tick())
        self.logger.info(
            "outbox relay started",
            batch_size=self.batch_size,
            interval_seconds=self.interval_seconds,
        )

    async def stop(self) -> None:
        if self._ticker is None:
            return
        self._ticker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._ticker
        self._ticker = None

        # let an in-flight cycle finish its publishes and bookkeeping
        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)
        self.logger.info("outbox relay stopped")
