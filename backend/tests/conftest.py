"""Shared test fixtures: in-memory SQLite DB, async session, test client, fakes."""

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from zona_fiscal.config import settings
from zona_fiscal.core.auth import hash_password
from zona_fiscal.dependencies import get_db
from zona_fiscal.main import app
from zona_fiscal.models.base import Base, utcnow
from zona_fiscal.models.session import Session
from zona_fiscal.models.user import AdminRole, User
from zona_fiscal.services.email_service import get_email_service
from zona_fiscal.services.notification_service import get_dispatcher

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
SUPER_ADMIN_EMAIL = "admin@zonafiscal.com"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)


# Enable foreign key enforcement in SQLite (off by default).
@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


class RecordingDispatcher:
    """Stands in for NotificationDispatcher; records instead of sending."""

    def __init__(self):
        self.sent: list[tuple] = []

    def reactivation_request(self, email, token, user_name=None):
        self.sent.append(("reactivation_request", email, token, user_name))

    def deletion_confirmation(self, email, user_name=None, delete_type="permanent"):
        self.sent.append(("deletion_confirmation", email, user_name, delete_type))

    def new_user(self, user_name, user_email):
        self.sent.append(("new_user", user_name, user_email))

    def of_kind(self, kind: str) -> list[tuple]:
        return [item for item in self.sent if item[0] == kind]


class RecordingEmailService:
    """Stands in for EmailService in the deadline job."""

    def __init__(self, result: bool = True):
        self.result = result
        self.reminders: list[tuple] = []

    async def send_deadline_reminder(self, admin_email, request_type, days_remaining, request_date, admin_name=None):
        self.reminders.append((admin_email, request_type, days_remaining))
        return self.result


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Yield a test DB session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def notifications() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def email_outbox() -> RecordingEmailService:
    return RecordingEmailService()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    notifications: RecordingDispatcher,
    email_outbox: RecordingEmailService,
) -> AsyncClient:
    """Yield an httpx AsyncClient wired to the test DB and recording notifiers."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: notifications
    app.dependency_overrides[get_email_service] = lambda: email_outbox
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: insert a user and return it."""

    async def _make_user(
        email: str = "user@example.com",
        *,
        user_id: str | None = None,
        name: str | None = "Maria Silva",
        password: str = "Pass123!",
        admin_role: AdminRole = AdminRole.none,
        admin_permissions: list[str] | None = None,
        **fields,
    ) -> User:
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(password),
            admin_role=admin_role,
            admin_permissions=admin_permissions or [],
            **fields,
        )
        if user_id is not None:
            user.id = user_id
        db_session.add(user)
        await db_session.flush()
        return user

    return _make_user


@pytest.fixture
def make_token(db_session: AsyncSession):
    """Factory: open a live session for a user and return its bearer token."""
    counter = {"n": 0}

    async def _make_token(user: User) -> str:
        counter["n"] += 1
        token = f"test-token-{user.id}-{counter['n']}"
        db_session.add(
            Session(user_id=user.id, token=token, expires_at=utcnow() + timedelta(hours=1))
        )
        await db_session.flush()
        return token

    return _make_token


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return bearer


@pytest.fixture
def super_admin_email(monkeypatch) -> str:
    """Configure a single super-admin address for the test."""
    monkeypatch.setattr(settings, "super_admin_emails", SUPER_ADMIN_EMAIL)
    return SUPER_ADMIN_EMAIL


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    """Independent sessions on the test DB, for concurrent-writer scenarios."""
    return test_session_factory
