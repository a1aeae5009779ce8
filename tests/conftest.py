import asyncio
import sys
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from config import Settings  # noqa: E402

from api.gharse.db import init_models  # noqa: E402


class DummyRedis:
    """Minimal async Redis stand-in recording published messages."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.published: list[tuple[str, str]] = []

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1


class RecordingDispatcher:
    """Dispatcher double that records calls instead of scheduling tasks."""

    def __init__(self):
        self.calls: list[tuple] = []

    def order_finalized(self, order):
        self.calls.append(("finalized", order.id))

    def order_updated(self, order, **metadata):
        self.calls.append(("updated", order.id, metadata))

    def order_cancelled(self, order, reason):
        self.calls.append(("cancelled", order.id, reason))

    async def drain(self):
        return None


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        redis_url="redis://localhost:6379/0",
        tax_rate=0.05,
        delivery_fee=50,
        minimum_order=49,
        notification_channels=["email", "sms"],
    )


@pytest.fixture
def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", poolclass=NullPool
    )
    asyncio.run(init_models(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def sessionmaker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()
