import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import models  # noqa: F401  # таблицы регистрируются в Base.metadata
from db import Base
from realtime import change_feed
from repositories import create_profile


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'devconnect-test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
async def clean_change_feed():
    yield
    change_feed.close()


# Профили отдаём как id: после rollback в сервисах ORM-объекты сессии протухают


@pytest.fixture
async def alice_id(session) -> int:
    profile = await create_profile(session, telegram_id=1001, username="alice", name="Alice")
    return profile.id


@pytest.fixture
async def bob_id(session, alice_id) -> int:
    profile = await create_profile(session, telegram_id=1002, username="bob", name="Bob")
    return profile.id


@pytest.fixture
async def carol_id(session, bob_id) -> int:
    profile = await create_profile(session, telegram_id=1003, username="carol", name="Carol")
    return profile.id


@pytest.fixture
def eventually():
    """Ждём, пока асинхронный подписчик change feed доведёт дело до конца."""

    async def wait(check, *, timeout: float = 3.0, interval: float = 0.02):
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            result = await check()
            if result:
                return result
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition was not reached in time")
            await asyncio.sleep(interval)

    return wait
