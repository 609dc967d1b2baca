"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leaveflow.auth.context import AuthorizationContext
from leaveflow.auth.tokens import create_access_token
from leaveflow.common.constants import UserRole
from leaveflow.database import Base, get_db
from leaveflow.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → LeaveBalance, LeaveRequest)
import leaveflow.common.audit  # noqa: F401
import leaveflow.directory.models  # noqa: F401
import leaveflow.leave.models  # noqa: F401
import leaveflow.balances.models  # noqa: F401

from leaveflow.directory.models import Branch, Employee, Team

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leaveflow.common.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture(autouse=True)
def _default_policy(monkeypatch):
    """Every test starts from the default allowances and the 'allow' policy."""
    from leaveflow.config import settings

    monkeypatch.setattr(settings, "LEAVE_BALANCE_POLICY", "allow")
    monkeypatch.setattr(
        settings,
        "LEAVE_DEFAULT_ALLOWANCES",
        '{"CASUAL": 12, "SICK": 12, "ANNUAL": 21, "MATERNITY": 180, "PATERNITY": 15}',
    )
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
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


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

async def make_branch(db: AsyncSession, *, name: str = "Head Office") -> Branch:
    branch = Branch(
        id=uuid.uuid4(),
        name=name,
        code=f"BR-{uuid.uuid4().hex[:6].upper()}",
        is_active=True,
    )
    db.add(branch)
    await db.flush()
    return branch


async def make_employee(
    db: AsyncSession,
    branch: Branch | None = None,
    *,
    first_name: str = "Test",
    last_name: str = "User",
    is_active: bool = True,
) -> Employee:
    suffix = uuid.uuid4().hex[:6]
    employee = Employee(
        id=uuid.uuid4(),
        employee_code=f"EMP-{suffix.upper()}",
        first_name=first_name,
        last_name=last_name,
        email=f"{first_name.lower()}.{suffix}@example.com",
        branch_id=branch.id if branch else None,
        is_active=is_active,
    )
    db.add(employee)
    await db.flush()
    return employee


@pytest.fixture
async def branch(db) -> Branch:
    b = await make_branch(db)
    await db.commit()
    return b


@pytest.fixture
async def other_branch(db) -> Branch:
    b = await make_branch(db, name="Remote Office")
    await db.commit()
    return b


@pytest.fixture
async def employee(db, branch) -> Employee:
    emp = await make_employee(db, branch, first_name="Asha", last_name="Rao")
    await db.commit()
    return emp


@pytest.fixture
async def team(db, branch) -> Team:
    t = Team(id=uuid.uuid4(), name="Support", branch_id=branch.id)
    db.add(t)
    await db.commit()
    return t


# ── Auth helpers ────────────────────────────────────────────────────

def ctx_for(
    caller_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    branch_id: uuid.UUID | None = None,
) -> AuthorizationContext:
    return AuthorizationContext(caller_id=caller_id, role=role, branch_id=branch_id)


def bearer(
    caller_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    branch_id: uuid.UUID | None = None,
) -> dict[str, str]:
    token = create_access_token(caller_id, role, branch_id=branch_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def employee_ctx(employee) -> AuthorizationContext:
    return ctx_for(employee.id, UserRole.employee, employee.branch_id)


@pytest.fixture
def manager_ctx(branch) -> AuthorizationContext:
    return ctx_for(uuid.uuid4(), UserRole.branch_manager, branch.id)


@pytest.fixture
def other_manager_ctx(other_branch) -> AuthorizationContext:
    return ctx_for(uuid.uuid4(), UserRole.branch_admin, other_branch.id)


@pytest.fixture
def admin_ctx() -> AuthorizationContext:
    return ctx_for(uuid.uuid4(), UserRole.super_admin)
