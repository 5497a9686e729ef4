"""Shared test fixtures."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "SecureP@ss1"


def _ensure_test_keys() -> tuple[str, str]:
    """Generate an RSA key pair for JWT signing and point settings at it."""
    private_path = os.environ.get("HC_JWT_PRIVATE_KEY_PATH", "")
    public_path = os.environ.get("HC_JWT_PUBLIC_KEY_PATH", "")
    if not (os.path.exists(private_path) and os.path.exists(public_path)):
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        tmpdir = tempfile.mkdtemp(prefix="hc_test_keys_")
        private_path = os.path.join(tmpdir, "jwt_private.pem")
        public_path = os.path.join(tmpdir, "jwt_public.pem")
        with open(private_path, "wb") as f:
            f.write(key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ))
        with open(public_path, "wb") as f:
            f.write(key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            ))

    os.environ["HC_JWT_PRIVATE_KEY_PATH"] = private_path
    os.environ["HC_JWT_PUBLIC_KEY_PATH"] = public_path
    os.environ["HC_DATABASE_URL"] = TEST_DATABASE_URL
    os.environ["HC_LOG_FORMAT"] = "console"

    from habitcircle.auth.jwt import reset_keys
    from habitcircle.config import get_settings

    get_settings.cache_clear()
    reset_keys()
    return private_path, public_path


_ensure_test_keys()

from habitcircle.auth.session import SessionContext  # noqa: E402
from habitcircle.database import close_db, get_engine, get_session, init_db  # noqa: E402
from habitcircle.db.base import Base  # noqa: E402
from habitcircle.db.models import User  # noqa: E402
from habitcircle.main import create_app  # noqa: E402
from habitcircle.redis_client import get_redis  # noqa: E402


class FakeRedis:
    """In-process stand-in for the handful of Redis commands the app uses."""

    def __init__(self) -> None:
        self.store: dict[str, Any] = {}
        self.published: list[tuple[str, str]] = []

    async def get(self, key: str) -> Any:
        return self.store.get(key)

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def incr(self, key: str) -> int:
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        return key in self.store

    async def delete(self, *keys: str) -> int:
        return sum(1 for k in keys if self.store.pop(k, None) is not None)

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 0

    async def ping(self) -> bool:
        return True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """A fresh in-memory database with the full schema."""
    await init_db(TEST_DATABASE_URL)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service-level tests."""
    async for session in get_session():
        yield session
        break


@pytest_asyncio.fixture
async def client(database: None, fake_redis: FakeRedis) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client wired to the test database and fake Redis."""
    app = create_app()
    app.dependency_overrides[get_redis] = lambda: fake_redis
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def create_user(
    db: AsyncSession,
    username: str,
    full_name: str | None = None,
) -> SessionContext:
    """Insert a user directly and return a session context acting as them."""
    user = User(
        email=f"{username}@example.com",
        password_hash="not-a-real-hash",
        username=username,
        full_name=full_name,
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.flush()
    return SessionContext.for_user(user, session_id=f"session-{username}")


async def register(client: AsyncClient, username: str, full_name: str | None = None) -> dict:
    """Register a user over HTTP and return credentials plus tokens."""
    body: dict[str, Any] = {"email": f"{username}@example.com", "password": TEST_PASSWORD}
    if full_name is not None:
        body["full_name"] = full_name
    response = await client.post("/api/v1/auth/register", json=body)
    assert response.status_code == 201, response.text
    data = response.json()
    return {
        "email": f"{username}@example.com",
        "password": TEST_PASSWORD,
        "user_id": data["user"]["id"],
        "username": data["user"]["username"],
        "access_token": data["access_token"],
        "refresh_token": data["refresh_token"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


@pytest_asyncio.fixture
async def alice(client: AsyncClient) -> dict:
    return await register(client, "alice", full_name="Alice Liddell")


@pytest_asyncio.fixture
async def bob(client: AsyncClient) -> dict:
    return await register(client, "bob", full_name="Bob Builder")
