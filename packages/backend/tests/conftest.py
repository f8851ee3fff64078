"""Test fixtures — in-memory realtime services, fake storage, SQLite DB.

Learn: the fan-out core never needs Redis or PostgreSQL to be tested:
- FakeStorage stands in for chat membership / message / notification writes
- BrokerHub is a shared in-memory "Redis"; each RealtimeService built
  against it behaves like a separate server instance
- SQLAlchemy-backed services run against aiosqlite in-memory, one fresh
  database per test
"""

import asyncio
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from huddle.db.engine import get_db
from huddle.db.models import Base, Chat, ChatParticipant, User
from huddle.main import app
from huddle.realtime.handlers import EventHandlers
from huddle.realtime.service import RealtimeService
from huddle.schemas.notification import NotificationFields

USER_ID = "00000000-0000-0000-0000-000000000001"


# ─── Fakes ────────────────────────────────────────────────


class FakeStorage:
    """In-memory RealtimeStorage. `members` maps chat id → participant ids."""

    def __init__(self, members: Optional[dict[str, set[str]]] = None):
        self.members = members or {}
        self.messages: list[dict[str, Any]] = []
        self.notifications: list[dict[str, Any]] = []
        self.fail_writes = False

    async def is_chat_member(self, chat_id: str, user_id: str) -> bool:
        return user_id in self.members.get(chat_id, set())

    async def save_message(self, *, chat_id, sender_id, content, to=None):
        if self.fail_writes:
            raise RuntimeError("database is down")
        record = {
            "_id": f"msg-{len(self.messages) + 1}",
            "chat": chat_id,
            "sender": {"_id": sender_id, "firstName": "Ada", "lastName": "L", "email": "ada@example.com"},
            "content": content,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "readBy": [],
            "attachments": [],
        }
        self.messages.append(record)
        return record

    async def save_notification(self, user_id: str, fields: NotificationFields):
        if self.fail_writes:
            raise RuntimeError("database is down")
        now = datetime.now(timezone.utc).isoformat()
        record = {
            "id": f"ntf-{len(self.notifications) + 1}",
            "userId": user_id,
            "type": fields.type,
            "title": fields.title,
            "message": fields.message,
            "data": fields.data,
            "isRead": False,
            "link": fields.link,
            "createdAt": now,
            "updatedAt": now,
        }
        self.notifications.append(record)
        return record


class BrokerHub:
    """A shared in-memory pub/sub network."""

    def __init__(self):
        self.subscribers: dict[str, list] = defaultdict(list)
        self.published: list[tuple[str, str]] = []

    def client(self) -> "InMemoryBroker":
        return InMemoryBroker(self)


class InMemoryBroker:
    def __init__(self, hub: BrokerHub):
        self.hub = hub

    async def publish(self, channel: str, message: str) -> None:
        self.hub.published.append((channel, message))
        for callback in list(self.hub.subscribers[channel]):
            await callback(message)

    async def subscribe(self, channel: str, callback) -> None:
        self.hub.subscribers[channel].append(callback)
        try:
            await asyncio.Event().wait()
        finally:
            self.hub.subscribers[channel].remove(callback)

    async def close(self) -> None:
        pass


class FailingBroker:
    """A broker whose publish side is down."""

    def __init__(self):
        self.attempts = 0

    async def publish(self, channel: str, message: str) -> None:
        self.attempts += 1
        raise ConnectionError("Connection refused")

    async def subscribe(self, channel: str, callback) -> None:
        await asyncio.Event().wait()

    async def close(self) -> None:
        pass


def drain(conn) -> list[dict[str, Any]]:
    """Pop every frame queued for a connection."""
    frames = []
    while not conn.outbox.empty():
        frames.append(conn.outbox.get_nowait())
    return frames


async def wait_for_subscribers(hub: BrokerHub, channel: str, count: int) -> None:
    for _ in range(100):
        if len(hub.subscribers[channel]) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} subscribers on {channel}")


# ─── Realtime fixtures ────────────────────────────────────


@pytest.fixture()
def storage():
    return FakeStorage(members={"room1": {"u1", "u2"}})


@pytest.fixture()
def service():
    return RealtimeService.build(max_rooms_per_connection=5, outbox_size=16)


@pytest.fixture()
def handlers(service, storage):
    return EventHandlers(service, storage)


# ─── Database fixtures ────────────────────────────────────


@pytest_asyncio.fixture()
async def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def seeded(db_session):
    """Two users sharing one chat, plus an outsider."""
    ada = User(id=uuid.UUID(USER_ID), email="ada@example.com", first_name="Ada", last_name="Lovelace")
    bob = User(email="bob@example.com", first_name="Bob", last_name="Builder")
    eve = User(email="eve@example.com", first_name="Eve", last_name="Outsider")
    chat = Chat(name="design", type="group")
    db_session.add_all([ada, bob, eve, chat])
    await db_session.flush()
    db_session.add_all([
        ChatParticipant(chat_id=chat.id, user_id=ada.id),
        ChatParticipant(chat_id=chat.id, user_id=bob.id),
    ])
    await db_session.commit()
    return {
        "ada": str(ada.id),
        "bob": str(bob.id),
        "eve": str(eve.id),
        "chat": str(chat.id),
    }


# ─── HTTP fixtures ────────────────────────────────────────


@pytest_asyncio.fixture()
async def client(db_session):
    """HTTP client with DB and auth overridden, and a fresh realtime service.

    Learn: ASGITransport doesn't run the lifespan, so the realtime
    service is put on app.state by hand (single-instance mode).
    """
    from huddle.auth.dependencies import CurrentIdentity, get_current_user

    async def override_get_db():
        yield db_session

    def override_get_current_user():
        return CurrentIdentity(user_id=USER_ID, email="ada@example.com")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.state.realtime = RealtimeService.build()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauthenticated_client(db_session):
    """HTTP client WITHOUT the auth override — real JWT checks apply."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.realtime = RealtimeService.build()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
