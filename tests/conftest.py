"""
Shared fixtures for the Blogsite API tests.

Settings are read once and cached, so the environment is prepared here
before anything under ``app`` is imported.
"""

import os

os.environ["APP_ENV"] = "test"
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-access-secret-key-0123456789"
os.environ.pop("JWT_REFRESH_SECRET_KEY", None)
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "true"
os.environ["REFRESH_TOKEN_ROTATION"] = "true"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.rate_limiter import rate_limiter
from app.db import Base, get_db
from app.models.user import User, UserRole
from app.services.token_service import get_token_service
from main import app

DEFAULT_PASSWORD = "secret123"


# ============================================
# Database
# ============================================

@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def tokens():
    return get_token_service()


@pytest.fixture
def create_user(session_factory):
    """Factory that commits a user in its own session and returns it detached."""

    async def _create(
        email: str = "user@example.com",
        password: str = DEFAULT_PASSWORD,
        name: str = "Test User",
        role: UserRole = UserRole.USER,
        is_active: bool = True,
    ) -> User:
        async with session_factory() as session:
            user = User(email=email, name=name, role=role, is_active=is_active)
            user.password = password
            session.add(user)
            await session.commit()
            return user

    return _create


# ============================================
# HTTP client
# ============================================

@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clear_rate_limits():
    rate_limiter.clear()
    yield
    rate_limiter.clear()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def login(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD) -> dict:
    """Log in through the API and return the ``data`` block."""
    response = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def tamper(token: str) -> str:
    """Flip one character in the middle of the signature segment."""
    header, payload, signature = token.split(".")
    middle = len(signature) // 2
    replacement = "A" if signature[middle] != "A" else "B"
    signature = signature[:middle] + replacement + signature[middle + 1:]
    return ".".join([header, payload, signature])
