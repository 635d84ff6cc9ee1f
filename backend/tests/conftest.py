# tests/conftest.py
"""
Shared fixtures.

Every test gets its own SQLite database file, an HTTP client bound to the
FastAPI app with get_db pointed at that database, and one user per role.
Socket.IO emits are captured instead of sent.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["EMAIL_USER"] = ""
os.environ["EMAIL_APP_PASSWORD"] = ""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from app.auth import hash_password, token_for_user
from app.database import Base, get_db
from app.main import app
from app.models import User
from app import websocket

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh database with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client for the app, using the test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def sio_emit():
    """Capture Socket.IO pushes."""
    with patch.object(websocket.sio, "emit", new_callable=AsyncMock) as emit:
        yield emit


# ============================================================================
# USERS
# ============================================================================

def make_user(user_id, email, name, code, role, manager_id=None, is_active=True, team_name=None):
    return User(
        id=user_id,
        email=email,
        password_hash=PASSWORD_HASH,
        employee_name=name,
        employee_code=code,
        role=role,
        manager_id=manager_id,
        team_name=team_name,
        is_active=is_active,
    )


@pytest_asyncio.fixture
async def users(db):
    """
    admin:    super admin
    manager:  sales manager of `agent`
    agent:    sales agent on the manager's team
    outsider: sales agent with no manager
    inactive: deactivated agent on the manager's team
    """
    manager = make_user("manager-1", "manager@example.com", "Mina Manager", "EMP-002", "sales_manager",
                        team_name="Sales Titans")
    db.add_all([
        make_user("admin-1", "admin@example.com", "Ayesha Admin", "EMP-001", "super_admin"),
        manager,
    ])
    await db.commit()

    db.add_all([
        make_user("agent-1", "agent@example.com", "Arif Agent", "EMP-003", "sales_agent",
                  manager_id=manager.id, team_name="Sales Titans"),
        make_user("outsider-1", "outsider@example.com", "Omar Outsider", "EMP-004", "sales_agent",
                  team_name="Revenue Rangers"),
        make_user("inactive-1", "inactive@example.com", "Ishrat Inactive", "EMP-005", "sales_agent",
                  manager_id=manager.id, is_active=False),
    ])
    await db.commit()

    loaded = {}
    for key in ("admin", "manager", "agent", "outsider", "inactive"):
        loaded[key] = await db.get(User, f"{key}-1")
    return SimpleNamespace(**loaded)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for_user(user)}"}


@pytest.fixture
def auth():
    """Bearer headers for a user: `auth(users.agent)`."""
    return auth_headers


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests")
    config.addinivalue_line("markers", "integration: tests that go through the HTTP API")
