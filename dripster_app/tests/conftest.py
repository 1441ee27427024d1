import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.get_db import Base
from models import event_listener  # noqa: F401
from models.models import ClothingItem, User
from realtime.change_feed import ChangeFeed
from services.messaging_client import MessagingClient


def _sqlite_engine(path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


@pytest.fixture
async def engine(tmp_path):
    engine = _sqlite_engine(tmp_path / "dripster.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def empty_engine(tmp_path):
    """An engine whose database has no tables at all."""
    engine = _sqlite_engine(tmp_path / "empty.db")
    yield engine
    await engine.dispose()


@pytest.fixture
def feed():
    return ChangeFeed(queue_size=100)


def _factory(engine, feed):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        info={"change_feed": feed},
    )


@pytest.fixture
def session_factory(engine, feed):
    return _factory(engine, feed)


@pytest.fixture
def empty_session_factory(empty_engine, feed):
    return _factory(empty_engine, feed)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    async def factory(name: str) -> User:
        async with session_factory() as session:
            user = User(
                email=f"{name}-{uuid.uuid4().hex[:6]}@campus.edu",
                full_name=name.title(),
            )
            session.add(user)
            await session.commit()
            return user

    return factory


@pytest.fixture
async def owner(make_user):
    return await make_user("owner")


@pytest.fixture
async def renter(make_user):
    return await make_user("renter")


@pytest.fixture
async def stranger(make_user):
    return await make_user("stranger")


@pytest.fixture
async def item(session_factory, owner):
    async with session_factory() as session:
        item = ClothingItem(
            title="Silk Lehenga",
            description="Red silk lehenga, worn once",
            category="ethnic",
            size="M",
            price_per_day=Decimal("100.00"),
            images=["items/lehenga-1.jpg"],
            owner_id=owner.id,
        )
        session.add(item)
        await session.commit()
        return item


@pytest.fixture
async def make_client(session_factory, feed):
    clients = []

    def factory(user, sessions=None) -> MessagingClient:
        client = MessagingClient(sessions or session_factory, user.id, feed=feed)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.aclose()


@pytest.fixture
def eventually():
    async def wait(predicate, timeout: float = 3.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return wait
