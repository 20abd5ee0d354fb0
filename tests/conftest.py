"""
Shared fixtures.

Each test gets a fresh in-memory SQLite database, a recording notifier and
fresh throttle state, all wired into the app through dependency overrides.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-at-least-32-chars"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["STATE_BACKEND"] = "memory"
os.environ["MAIL_API_URL"] = ""

from typing import List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from main import app
from helpdesk.apps.auth.models import User
from helpdesk.apps.tickets.models import Ticket  # noqa: F401  (registers tables)
from helpdesk.core.dependencies import get_notifier, get_resend_throttle
from helpdesk.core.notifier import EmailNotifier
from helpdesk.core.state import InMemoryReminderLedger, InMemoryResendThrottle
from helpdesk.db.base_model import Base
from helpdesk.db.session import get_session
from helpdesk.utils.security import create_access_token, hash_password


class RecordingNotifier(EmailNotifier):
    """Captures every message instead of calling a mail API."""

    def __init__(self, fail: bool = False):
        super().__init__(api_url=None)
        self.fail = fail
        self.sent: List[dict] = []

    async def _deliver(self, recipients, subject, text, html):
        self.sent.append({"to": list(recipients), "subject": subject, "text": text})
        if self.fail:
            raise RuntimeError("mail server unavailable")
        return True

    def subjects(self) -> List[str]:
        return [message["subject"] for message in self.sent]

    def to(self, subject_prefix: str) -> List[List[str]]:
        return [m["to"] for m in self.sent if m["subject"].startswith(subject_prefix)]


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ledger():
    return InMemoryReminderLedger()


@pytest.fixture
def throttle():
    return InMemoryResendThrottle(cooldown_seconds=60, max_per_hour=5)


@pytest_asyncio.fixture
async def client(session_factory, notifier, throttle):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_resend_throttle] = lambda: throttle

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await notifier.drain()
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Insert a verified user directly. Returns the User."""
    counter = {"n": 0}

    async def _make_user(
        role: str = "employee",
        email: Optional[str] = None,
        name: Optional[str] = None,
        department: Optional[str] = None,
        password: str = "secret123",
        verified: bool = True,
    ) -> User:
        counter["n"] += 1
        async with session_factory() as session:
            return await User.create(
                db=session,
                name=name or f"{role.title()} {counter['n']}",
                email=email or f"{role}{counter['n']}@example.com",
                hashed_password=hash_password(password),
                role=role,
                department=department,
                is_verified=verified,
            )

    return _make_user


@pytest.fixture
def headers_for():
    """Bearer header for a user."""

    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id=user.id, role=user.role)}"}

    return _headers
