"""
Eswatini MSME Registry - Test Configuration

Pytest fixtures and configuration.

Every test gets its own SQLite file, so counter transactions (which open
their own sessions) see the same data as the test session.
"""

import os

# Required settings must exist before the app modules are imported.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite://")
os.environ.setdefault("EMAIL_PROVIDER", "mock")
os.environ.setdefault("LIFECYCLE_EVENT_DELIVERY", "sync")

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, List, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401  (register mappers)
from app.database import Base, get_async_session, get_session_factory
from app.dependencies import get_mailer
from app.models.business import BusinessCategory
from app.models.user import AdminUser
from app.services.auth_service import ROLE_ADMIN, ROLE_SUPER_ADMIN, AuthService
from app.services.business_verification_service import BusinessVerificationService
from app.services.counter_store import CounterStore
from app.services.lifecycle_events import build_event_publisher
from app.services.password_recovery_service import PasswordRecoveryService
from main import app


# ===========================================
# TEST DOUBLES
# ===========================================

class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    """Collects notifications instead of sending them."""

    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[str, Dict[str, Any], str]] = []
        self.fail = fail

    async def send(self, template_id: str, data: Dict[str, Any], to_address: str) -> bool:
        self.sent.append((template_id, dict(data), to_address))
        if self.fail:
            raise RuntimeError("mail server unavailable")
        return True

    def templates(self) -> List[str]:
        return [template_id for template_id, _, _ in self.sent]

    def last(self, template_id: str) -> Dict[str, Any]:
        for sent_id, data, _ in reversed(self.sent):
            if sent_id == template_id:
                return data
        raise AssertionError(f"No {template_id} notification was sent")


# ===========================================
# DATABASE FIXTURES
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a fresh database file for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'registry.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FrozenClock:
    # 12:00 local time in Mbabane (UTC+2)
    return FrozenClock(datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


@pytest.fixture
def counters(session_factory) -> CounterStore:
    return CounterStore(session_factory, backoff_seconds=0)


@pytest.fixture
def publisher(session_factory):
    return build_event_publisher(session_factory, delivery="sync")


@pytest.fixture
def verification_service(db_session, publisher, notifier, clock) -> BusinessVerificationService:
    return BusinessVerificationService(db_session, publisher, notifier, clock=clock)


@pytest.fixture
def recovery_service(db_session, notifier, clock) -> PasswordRecoveryService:
    return PasswordRecoveryService(db_session, notifier, clock=clock)


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def test_category(db_session: AsyncSession) -> BusinessCategory:
    category = BusinessCategory(name="Agriculture", description="Farming and agro-processing")
    db_session.add(category)
    await db_session.commit()
    await db_session.refresh(category)
    return category


@pytest_asyncio.fixture
async def other_category(db_session: AsyncSession) -> BusinessCategory:
    category = BusinessCategory(name="Manufacturing")
    db_session.add(category)
    await db_session.commit()
    await db_session.refresh(category)
    return category


@pytest.fixture
def make_registration(test_category):
    """Factory for a valid registration payload; keyword arguments override fields."""

    def _make(**overrides) -> Dict[str, Any]:
        payload = {
            "organization_name": "Lubombo Honey Co-op",
            "email_address": "info@lubombohoney.co.sz",
            "password": "HoneyBees2025",
            "contact_number": "+268 7612 3456",
            "business_category_id": str(test_category.id),
            "region": "Lubombo",
            "inkhundla": "Siteki",
            "rural_urban_classification": "Rural",
            "turnover": "E50,000 - E100,000",
            "ownership_type": "Individual",
            "owners": [{"name": "Thandi Dlamini", "gender": "Female"}],
            "directors": [{"name": "Sipho Nkosi", "nationality": "Swazi", "age": "30-39"}],
        }
        payload.update(overrides)
        return payload

    return _make


@pytest_asyncio.fixture
async def test_admin(db_session: AsyncSession) -> AdminUser:
    return await AuthService(db_session).create_admin(
        email="reviewer@msme.gov.sz",
        password="ReviewerPass123!",
        full_name="Registry Reviewer",
    )


@pytest_asyncio.fixture
async def super_admin(db_session: AsyncSession) -> AdminUser:
    return await AuthService(db_session).create_admin(
        email="root@msme.gov.sz",
        password="RootPass123!",
        full_name="Registry Owner",
        is_super_admin=True,
    )


@pytest.fixture
def admin_headers(test_admin: AdminUser) -> Dict[str, str]:
    token = AuthService.issue_token(test_admin.id, ROLE_ADMIN)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def super_admin_headers(super_admin: AdminUser) -> Dict[str, str]:
    token = AuthService.issue_token(super_admin.id, ROLE_SUPER_ADMIN)["access_token"]
    return {"Authorization": f"Bearer {token}"}


# ===========================================
# HTTP CLIENT
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def client(db_session, session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client bound to the per-test database."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_mailer] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
