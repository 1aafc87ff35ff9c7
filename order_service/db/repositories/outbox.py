# order_service/db/repositories/outbox.py
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import select

from order_service.db.models.outbox import OutboxEvent

logger = structlog.get_logger(__name__)


@dataclass
class PublishEvent:
    aggregate_id: str
    aggregate_type: str
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)


async def publish_event(
    db: AsyncSession,
    event: PublishEvent,
) -> OutboxEvent:
    """Append an outbox record to the caller's transaction.

    The record is flushed so it gets its id, but nothing is committed here:
    it becomes durable together with the domain rows written in ``db``.
    """
    record = OutboxEvent(
        aggregate_id=event.aggregate_id,
        aggregate_type=event.aggregate_type,
        event_type=event.event_type,
        payload=event.payload,
        processed=False,
    )
    db.add(record)
    await db.flush()

    logger.info(
        "outbox event published",
        outbox_id=record.id,
        event_type=event.event_type,
        aggregate=f"{event.aggregate_type}:{event.aggregate_id}",
    )
    return record


async def find_unprocessed_events(
    db: AsyncSession,
    limit: int = 100,
) -> List[OutboxEvent]:
    result = await db.execute(
        select(OutboxEvent)
        .where(OutboxEvent.processed.is_(False))
        .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_many_as_processed(
    db: AsyncSession,
    event_ids: Iterable[int],
) -> None:
    # caller commits
    ids = sorted(set(event_ids))
    if not ids:
        return

    await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id.in_(ids))
        .values(processed=True)
        .execution_options(synchronize_session=False)
    )


async def mark_as_processed(db: AsyncSession, event_id: int) -> None:
    await mark_many_as_processed(db, [event_id])
