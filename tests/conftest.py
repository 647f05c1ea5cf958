"""Shared pytest fixtures for console tests."""

import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

# Configure before the console package reads its environment
_TEST_DIR = Path(tempfile.mkdtemp(prefix="console-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'console.db'}"
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ["SEED_DIRECTORY"] = "0"
os.environ.pop("SEED_ADMIN_PASSWORD", None)

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.core.database.base import Base
from admin_console.core.database.engine import AsyncSessionLocal, engine, init_db
from admin_console.features.permissions.memory import InMemoryDirectory
from admin_console.features.permissions.seed import seed_directory
from admin_console.features.session.models import SessionEntry  # noqa: F401


ACCOUNTS = {
    "admin": ("Ada Admin", "admin@example.com", "admin-pass", "super_admin"),
    "agent": ("Sam Support", "agent@example.com", "agent-pass", "support_agent"),
    "manager": ("Pat Properties", "manager@example.com", "manager-pass", "property_manager"),
    "clerk": ("Bea Billing", "clerk@example.com", "clerk-pass", "billing_clerk"),
}


@pytest.fixture()
def directory() -> InMemoryDirectory:
    """Seeded in-process directory with one staff account per default role."""

    directory = seed_directory(InMemoryDirectory())
    for name, email, password, role_name in ACCOUNTS.values():
        directory.add_staff(name, email, password, role_id=directory.find_role(role_name).id)
    return directory


@pytest_asyncio.fixture()
async def database() -> AsyncIterator[None]:
    """Recreate the session tables for every test."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db()
    yield


@pytest_asyncio.fixture()
async def db_session(database: None) -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture()
def app(directory: InMemoryDirectory, database: None) -> FastAPI:
    """The console application bound to the seeded directory."""

    from admin_console.main import app

    app.state.directory = directory
    return app


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Provide an HTTPX async client bound to the FastAPI app."""

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
def sign_in(async_client: AsyncClient):
    """Sign the test client in as one of the seeded accounts."""

    async def _sign_in(account: str = "admin"):
        _, email, password, _ = ACCOUNTS[account]
        response = await async_client.post("/session", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response

    return _sign_in
