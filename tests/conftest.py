"""
Pytest configuration and shared fixtures.

This file provides common fixtures for all tests. Each test gets its own
in-memory SQLite database with the schema created from the SQLModel
metadata, plus fresh rate limiter and security logger instances.
"""

import os

# Settings are read at import time, so the test environment must be in place
# before anything from auth_service is imported.
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-with-at-least-32-bytes!"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
# Cheap Argon2 parameters keep the suite fast
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_MEMORY_COST"] = "1024"
os.environ["ARGON2_PARALLELISM"] = "1"

from collections.abc import AsyncGenerator, AsyncIterator  # noqa: E402
from contextlib import asynccontextmanager  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Registers every table on SQLModel.metadata
import auth_service.models  # noqa: E402, F401
from auth_service.api.dependencies import get_rate_limiter, get_security_logger  # noqa: E402
from auth_service.core.database import get_db  # noqa: E402
from auth_service.core.errors import StoreUnavailableError  # noqa: E402
from auth_service.core.security import get_password_hash  # noqa: E402
from auth_service.main import app as main_app  # noqa: E402
from auth_service.models.user import Users  # noqa: E402
from auth_service.services import security_log  # noqa: E402
from auth_service.services.rate_limit import InMemoryRateLimitStore, RateLimiter  # noqa: E402
from auth_service.services.security_log import RequestMetadata, SecurityLogger  # noqa: E402

TEST_PASSWORD = "TestPass123!"


@pytest.fixture(scope="function")
async def engine():
    """
    Create a private in-memory database for each test function.

    StaticPool keeps the single SQLite connection alive for the whole test,
    so every session sees the same database.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a new database session for each test."""
    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def security_logger() -> SecurityLogger:
    return SecurityLogger()


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(InMemoryRateLimitStore())


@pytest.fixture
def metadata() -> RequestMetadata:
    return RequestMetadata(ip_address="203.0.113.7", user_agent="pytest")


@pytest.fixture(scope="function")
def app(
    db_session: AsyncSession,
    security_logger: SecurityLogger,
    rate_limiter: RateLimiter,
) -> FastAPI:
    """
    Create FastAPI app with test database session.

    This overrides the database, rate limiter and audit dependencies.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    main_app.dependency_overrides[get_security_logger] = lambda: security_logger

    yield main_app

    main_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.post("/auth/login", json={...})
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
async def test_user(db_session: AsyncSession) -> Users:
    """
    Create a registered user whose password is TEST_PASSWORD.

    Usage:
        async def test_login(test_user, client):
            await client.post("/auth/login", json={"email": test_user.email, ...})
    """
    user = Users(email="fixture@example.com", password_hash=get_password_hash(TEST_PASSWORD))
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def tokens(client: AsyncClient, test_user: Users) -> dict:
    """Log test_user in and return the login response body."""
    response = await client.post(
        "/auth/login", json={"email": test_user.email, "password": TEST_PASSWORD}
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def auth_headers(tokens: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {tokens['accessToken']}"}


@pytest.fixture
def failing_audit_writes(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make every auth_logs write fail as if the database were unreachable."""

    @asynccontextmanager
    async def unavailable(timeout: float | None = None) -> AsyncIterator[None]:
        raise StoreUnavailableError("OperationalError: database is locked")
        yield

    monkeypatch.setattr(security_log, "store_call", unavailable)
