"""
Pytest configuration and fixtures for Fiefdom tests.

This module provides:
- An isolated SQLite database, recreated for every test
- A registered player and its plaintext API key
- An httpx client bound to the FastAPI app (no server process needed)
"""

import os
import tempfile

# Point settings at a throwaway database BEFORE any fiefdom imports.
_db_dir = tempfile.mkdtemp(prefix="fiefdom-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_dir}/test.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_TO_FILE"] = "0"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from fiefdom.database import AsyncSessionLocal, Base, engine
from fiefdom.models import Player
from fiefdom.utils import metrics
from tests.helpers import create_player


@pytest.fixture(autouse=True)
async def fresh_database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    metrics.reset()
    yield
    # Pooled connections belong to this test's event loop
    await engine.dispose()


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def player_and_key():
    return await create_player()


@pytest.fixture
async def player(player_and_key, db):
    """The registered player, loaded in the test's own session."""
    result = await db.execute(select(Player).where(Player.id == player_and_key[0].id))
    return result.scalar_one()


@pytest.fixture
async def client():
    from fiefdom.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def auth_client(client, player_and_key):
    client.headers["X-API-Key"] = player_and_key[1]
    return client
