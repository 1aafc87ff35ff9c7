"""Shared fixtures: a throwaway SQLite database per test and a fake producer."""

from typing import Any, AsyncGenerator, List, Optional, Set, Tuple

import pytest
import pytest_asyncio
from aiokafka.errors import KafkaError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from order_service.db.base import Base
from order_service.db.models import order_items, orders, outbox, users  # noqa: F401  (register tables)
from order_service.db.models.users import User


class RecordingProducer:
    """Stands in for KafkaProducerService; fails for keys listed in ``fail_keys``."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, Any]] = []
        self.fail_keys: Set[str] = set()

    async def send(self, topic: str, key: str, value: Any) -> None:
        if key in self.fail_keys:
            raise KafkaError(f"broker rejected {key}")
        self.sent.append((topic, key, value))

    def keys(self, topic: Optional[str] = None) -> List[str]:
        return [k for t, k, _ in self.sent if topic is None or t == topic]


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def user(session_factory) -> User:
    async with session_factory() as session:
        user = User(
            id="11111111-1111-1111-1111-111111111111",
            email="u@example.com",
            password_hash="x",
            name="Test User",
        )
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
def producer() -> RecordingProducer:
    return RecordingProducer()
