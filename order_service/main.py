# order_service/main.py
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Tuple

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from order_service.api.v1.routes_admin_orders import router as admin_orders_router
from order_service.api.v1.routes_orders import router as orders_router
from order_service.core.config import settings
from order_service.core.errors import BusinessError, DomainError, NotFoundError
from order_service.core.logging_utils import configure_logging
from order_service.db.session import AsyncSessionLocal, engine
from order_service.kafka.consumer import KafkaConsumerService
from order_service.kafka.producer import KafkaProducerService
from order_service.outbox.relay import OutboxRelayService

configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
logger = structlog.get_logger(__name__)


async def shutdown(*steps: Tuple[str, Callable[[], Awaitable[Any]]]) -> None:
    """Run every shutdown step in order; a failing step does not skip the rest."""
    for name, step in steps:
        try:
            await step()
        except Exception:
            logger.exception("shutdown step failed", component=name)
    logger.info("order service shut down")


@asynccontextmanager
async def lifespan(app: FastAPI):
    producer = KafkaProducerService(
        brokers=settings.kafka_broker_list,
        client_id=settings.KAFKA_CLIENT_ID,
        retries=settings.KAFKA_RETRIES,
        initial_retry_ms=settings.KAFKA_INITIAL_RETRY_MS,
        logger=structlog.get_logger("order_service.kafka.producer"),
    )
    consumer = KafkaConsumerService(
        brokers=settings.kafka_broker_list,
        client_id=f"{settings.KAFKA_CLIENT_ID}-transformer",
        group_id=settings.KAFKA_CONSUMER_GROUP,
        topics=(settings.ORDER_EVENTS_TOPIC,),
        analytics_topic=settings.ANALYTICS_TOPIC,
        producer=producer,
        session_factory=AsyncSessionLocal,
        logger=structlog.get_logger("order_service.kafka.consumer"),
    )
    relay = OutboxRelayService(
        session_factory=AsyncSessionLocal,
        producer=producer,
        batch_size=settings.OUTBOX_BATCH_SIZE,
        interval_seconds=settings.OUTBOX_RELAY_INTERVAL_SECONDS,
        logger=structlog.get_logger("order_service.outbox.relay"),
    )

    app.state.producer = producer
    app.state.consumer = consumer
    app.state.relay = relay
    try:
        # stopping a component that never started is a no-op
        await producer.start()
        if settings.CONSUMER_ENABLED:
            await consumer.start()
        if settings.RELAY_ENABLED:
            relay.start()
        yield
    finally:
        await shutdown(
            ("relay", relay.stop),
            ("consumer", consumer.stop),
            ("producer", producer.stop),
            ("database", engine.dispose),
        )


app = FastAPI(title="order-service", lifespan=lifespan)

app.include_router(orders_router)
app.include_router(admin_orders_router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, BusinessError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.get("/health")
async def health():
    return {"status": "ok"}
