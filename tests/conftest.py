"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL; every
test gets its own in-memory database.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_tracker.common.constants import LeaveStatus
from leave_tracker.common.rate_limit import limiter
from leave_tracker.config import settings
from leave_tracker.database import Base, get_db
from leave_tracker.main import create_app

# Import all model modules so relationships resolve
import leave_tracker.leave.models  # noqa: F401
import leave_tracker.users.models  # noqa: F401

TEST_DATABASE_URL = "sqlite+aiosqlite://"

CURRENT_YEAR = datetime.now(timezone.utc).year


# ── Test database (SQLite in-memory) ────────────────────────────────

@pytest.fixture
async def engine():
    """Fresh in-memory database with all tables created."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def file_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Sessions on a file-backed database, each with its own connection.

    For tests where two sessions must interleave like concurrent requests.
    """
    file_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'leave_tracker.db'}",
        echo=False,
    )
    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
    await file_engine.dispose()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    limiter.reset()
    yield


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(session_factory):
    """Create a fresh app instance with DB dependency overridden."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct service calls in tests) ────────────

@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

async def seed_user(
    db: AsyncSession,
    principal: str,
    *,
    name: Optional[str] = None,
    email: Optional[str] = None,
    is_active: bool = True,
    is_admin: bool = False,
    available_days: Optional[float] = 21.0,
):
    """Insert a user row directly, bypassing registration rules."""
    from leave_tracker.users.models import User

    user = User(
        id=principal,
        name=name or principal.title(),
        email=email or f"{principal}@acme.io",
        is_active=is_active,
        is_admin=is_admin,
        available_days=available_days,
        created_at=datetime.now(timezone.utc),
        updated_at=None,
    )
    db.add(user)
    await db.flush()
    return user


async def seed_leave(
    db: AsyncSession,
    user_id: str,
    start_date: date,
    end_date: date,
    *,
    days: Optional[int] = None,
    status: LeaveStatus = LeaveStatus.pending,
):
    """Insert a leave row directly without touching the balance."""
    import uuid

    from leave_tracker.leave.models import Leave

    leave = Leave(
        id=uuid.uuid4(),
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        days=days if days is not None else (end_date - start_date).days,
        status=status,
        created_at=datetime.now(timezone.utc),
        updated_at=None,
    )
    db.add(leave)
    await db.flush()
    return leave


def day(month: int, day_of_month: int, *, year: int = CURRENT_YEAR) -> date:
    """A date in the current calendar year unless *year* is given."""
    return date(year, month, day_of_month)


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    principal: str,
    *,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Mint a JWT the way the upstream identity provider does."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": principal,
        "type": token_type,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(principal: str, *, expired: bool = False) -> dict[str, str]:
    """Bearer headers carrying *principal* as the token subject."""
    token = create_access_token(principal, expired=expired)
    return {"Authorization": f"Bearer {token}"}
