"""Shared test configuration and fixtures.

Tests run against a throwaway SQLite file; Redis-backed features (cache,
rate limiting) are switched off. Settings are read once at import, so the
environment is prepared before anything under ``app`` is imported.
"""

from __future__ import annotations

import os
import sys
import tempfile
import uuid
from pathlib import Path

# Ensure bookstore_api/ is on sys.path so `app.main` resolves
SERVICE_ROOT = Path(__file__).resolve().parent.parent / "bookstore_api"
if str(SERVICE_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICE_ROOT))

_DB_PATH = Path(tempfile.mkdtemp(prefix="bookstore-tests-")) / "test.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["ENVIRONMENT"] = "testing"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "console"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from app.database import Base, async_session, engine
from app.models import book, inventory, review, user  # noqa: F401
from app.models.user import User, UserRole


def make_book_payload(**overrides):
    payload = {
        "title": "Dune",
        "description": "Politics, prophecy and spice on a desert planet.",
        "author": "Frank Herbert",
        "price": 18.0,
        "category": "Science Fiction",
        "isbn": "9780441013593",
        "tags": ["sci-fi"],
    }
    payload.update(overrides)
    return payload


@pytest_asyncio.fixture
async def database():
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(database):
    async with async_session() as s:
        yield s


@pytest_asyncio.fixture
async def client(database):
    """Create a test client for the FastAPI app."""
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def book_payload():
    return make_book_payload


@pytest_asyncio.fixture
async def make_user(client):
    """Register a user through the API and return its auth headers.

    ``admin=True`` promotes the account directly in the database.
    """

    async def _make(name: str = "Reader", email: str | None = None,
                    password: str = "SecurePass123", admin: bool = False) -> dict:
        email = email or f"{uuid.uuid4().hex[:10]}@example.com"
        response = await client.post(
            "/auth/register",
            json={"name": name, "email": email, "password": password},
        )
        assert response.status_code == 201, response.text

        if admin:
            async with async_session() as s:
                await s.execute(
                    update(User).where(User.email == email.lower()).values(role=UserRole.ADMIN)
                )
                await s.commit()

        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _make


@pytest_asyncio.fixture
async def make_book(client, make_user):
    """Create a book through the API; returns ``(book_json, owner_headers)``."""

    async def _make(owner: dict | None = None, **overrides):
        owner = owner or await make_user(name="Owner")
        response = await client.post("/books", json=make_book_payload(**overrides), headers=owner)
        assert response.status_code == 201, response.text
        return response.json(), owner

    return _make
