"""Master test fixtures.

Environment variables are set BEFORE any application imports so that
``config.Settings()`` initialises with test-safe values and never
touches Docker secrets or a production database.
"""

import os, uuid

# ── Set test env vars before any app import ──────────────────────────
os.environ.update({
    "DATABASE_URL": "sqlite+aiosqlite://",
    "REDIS_URL": "redis://localhost:6379/0",
    "POSTGRES_PASSWORD": "testpassword",
    "APP_SECRET_KEY": "test-secret-key-for-jwt-signing",
    "PUBLIC_BASE_URL": "https://test.example.com",
    "ALLOWED_ORIGINS": "https://test.example.com,http://localhost:3000",
    "APP_ENV": "test",
    "SMTP_USERNAME": "",
    "RATE_LIMIT_BACKEND": "memory",
})

import pytest
import fakeredis
import fakeredis.aioredis as fakeredis_aio

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Now safe to import application code
from models.base import Base, get_db
from models.user import User
from models.document import Document
from auth.jwt import create_access_token
from sharing import rate_limit


_test_engine = create_async_engine("sqlite+aiosqlite://", echo=False, poolclass=StaticPool)
_TestSession = async_sessionmaker(_test_engine, class_=AsyncSession, expire_on_commit=False)

BLOB_BASE = "https://blobs.example.com/pdfs"


@pytest.fixture(autouse=True)
async def _create_tables():
    """Create and drop SQLite tables around every test."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
async def _reset_rate_limits():
    await rate_limit.view_limiter.reset()
    await rate_limit.download_limiter.reset()
    await rate_limit.notify_limiter.reset()
    yield
    await rate_limit.view_limiter.reset()
    await rate_limit.download_limiter.reset()
    await rate_limit.notify_limiter.reset()


@pytest.fixture
async def db_session():
    """Yield a test DB session with auto-rollback."""
    async with _TestSession() as session:
        yield session


@pytest.fixture
async def test_client(db_session: AsyncSession):
    """HTTPX async client wired to the FastAPI app, with DB override.

    The startup event is NOT run; tables come from ``_create_tables``.
    """
    from main import app

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def fake_redis(monkeypatch):
    """Replace otp._get_redis with a fakeredis instance."""
    server = fakeredis.FakeServer()
    fr = fakeredis_aio.FakeRedis(server=server, decode_responses=True)
    import auth.otp as otp_module
    monkeypatch.setattr(otp_module, "_get_redis", lambda: fr)
    return fr


@pytest.fixture
def outbox(monkeypatch) -> list[dict]:
    """Capture outgoing emails instead of talking to SMTP."""
    sent: list[dict] = []

    async def _fake_send(to, subject, html, retries=2):
        sent.append({"to": to, "subject": subject, "html": html})

    import auth.otp as otp_module
    import api.notifications as notifications_module
    monkeypatch.setattr(otp_module, "send_email", _fake_send)
    monkeypatch.setattr(notifications_module, "send_email", _fake_send)
    return sent


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory inserting a user and returning ``{id, email, access_token, headers}``."""
    from passlib.hash import bcrypt

    async def _make(email: str, password: str = "password123") -> dict:
        user_id = uuid.uuid4()
        db_session.add(User(id=user_id, email=email, hashed_password=bcrypt.hash(password)))
        await db_session.commit()
        token = create_access_token(user_id, email)
        return {
            "id": user_id,
            "email": email,
            "access_token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make


@pytest.fixture
async def registered_user(make_user) -> dict:
    return await make_user("test@example.com")


@pytest.fixture
def auth_headers(registered_user: dict) -> dict[str, str]:
    """Authorization header for the registered test user."""
    return registered_user["headers"]


@pytest.fixture
def make_document(db_session: AsyncSession):
    """Factory inserting a document row directly."""

    async def _make(owner: dict, name: str = "report.pdf", **fields) -> Document:
        doc = Document(
            owner_id=owner["id"],
            name=name,
            url=fields.pop("url", f"{BLOB_BASE}/{uuid.uuid4()}.pdf"),
            uploaded_by=owner["email"],
            access_users=fields.pop("access_users", []),
            **fields,
        )
        db_session.add(doc)
        await db_session.commit()
        await db_session.refresh(doc)
        return doc

    return _make
