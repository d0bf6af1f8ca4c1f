import os
import sys
from pathlib import Path

# Bootstrap to ensure tests can import app modules without modifying app import paths.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Settings are read at import time, so the environment must be ready first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("JWT_SECRET", "test-access-secret-with-at-least-32-chars")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-with-at-least-32-chars")
os.environ.setdefault("PUBLIC_TOKEN_SECRET", "test-public-secret-with-at-least-32-chars")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")

import uuid
from typing import Any, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.deps import (
    get_audit_recorder,
    get_broadcaster,
    get_db_session,
    get_notifier,
)
from app.main import app
from app.models import Base, Organization, Tenant, TenantAssignment, TenantCategory
from app.models.notification import NotificationType
from app.models.user import RoleName, User
from app.services.audit import AuditRecorder
from app.services.notifications import NotificationSink
from app.services.realtime import RealtimeBroadcaster
from app.services.users import create_user, issue_tokens

PASSWORD = "correct-horse-battery"


class RecordingNotifier(NotificationSink):
    """Keeps notifications in memory instead of enqueuing Celery tasks."""

    def __init__(self):
        self.sent: list[tuple[uuid.UUID, NotificationType, dict[str, Any]]] = []

    def notify(self, user_id, kind, payload) -> None:
        self.sent.append((user_id, kind, payload))


class RecordingBroadcaster(RealtimeBroadcaster):
    def __init__(self):
        self.events: list[tuple[uuid.UUID, str, dict[str, Any]]] = []

    async def broadcast_to_user(self, user_id, event, payload) -> None:
        self.events.append((user_id, event, payload))


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """A fresh SQLite database with the full schema for each test."""
    db_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}", echo=False
    )
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def audit_recorder(session_factory) -> AuditRecorder:
    return AuditRecorder(session_factory)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, notifier, broadcaster, audit_recorder):
    """HTTP client against the app, wired to the test database and fakes."""

    async def override_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_audit_recorder] = lambda: audit_recorder

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    async def _make_user(
        email: str,
        *roles: RoleName,
        organization: Optional[Organization] = None,
        is_active: bool = True,
    ) -> User:
        return await create_user(
            db_session,
            email,
            PASSWORD,
            roles=roles or (RoleName.END_USER,),
            organization_id=organization.id if organization else None,
            is_active=is_active,
        )

    return _make_user


@pytest.fixture
def make_organization(db_session):
    async def _make_organization(slug: str) -> Organization:
        organization = Organization(name=slug.title(), slug=slug)
        db_session.add(organization)
        await db_session.commit()
        return organization

    return _make_organization


@pytest.fixture
def make_tenant(db_session):
    async def _make_tenant(
        slug: str,
        organization: Optional[Organization] = None,
        categories: tuple[str, ...] = (),
        requires_login: bool = False,
    ) -> Tenant:
        tenant = Tenant(
            name=slug.title(),
            slug=slug,
            organization_id=organization.id if organization else None,
            requires_login=requires_login,
            categories=[TenantCategory(category=c) for c in categories],
        )
        db_session.add(tenant)
        await db_session.commit()
        return tenant

    return _make_tenant


@pytest.fixture
def assign(db_session):
    async def _assign(
        tenant: Tenant, user: User, category: Optional[str] = None
    ) -> TenantAssignment:
        assignment = TenantAssignment(tenant_id=tenant.id, user_id=user.id, category=category)
        db_session.add(assignment)
        await db_session.commit()
        return assignment

    return _assign


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_tokens(user).access_token}"}

    return _auth_headers


@pytest.fixture
def password() -> str:
    return PASSWORD
