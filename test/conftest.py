import os

# --- SETUP: Point config at SQLite before any bloodbridge module is imported ---
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from bloodbridge.database.models import Base, User
from bloodbridge.models.notification import BatchResult
from bloodbridge.services.engine import NotificationEngine


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    # A file database so concurrent sessions each get their own connection
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bloodbridge_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def mock_gateway():
    gateway = AsyncMock()
    gateway.send_to_topic.return_value = "projects/bloodbridge/messages/1"
    gateway.send_to_tokens.side_effect = lambda tokens, message: BatchResult(success_count=len(tokens))
    return gateway


@pytest_asyncio.fixture(scope="function")
async def engine(session_factory, mock_gateway) -> NotificationEngine:
    return NotificationEngine(session_factory, mock_gateway)


@pytest_asyncio.fixture(scope="function")
async def users(session_factory):
    """Requester u1 plus three potential donors; only u2 has a device token."""
    async with session_factory() as session:
        session.add_all([
            User(id="u1", name="Requester", role="requester", blood_group="O+", fcm_token="token-u1"),
            User(id="u2", name="Donor Two", role="donor", blood_group="O+", fcm_token="token-u2"),
            User(id="u3", name="Donor Three", role="donor", blood_group="A-"),
            User(id="u4", name="Donor Four", role="donor", blood_group="B+"),
        ])
        await session.commit()
    return ["u1", "u2", "u3", "u4"]
