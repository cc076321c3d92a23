from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from cryptography.fernet import Fernet
from httpx import ASGITransport, AsyncClient

from creatorpulse.core import encryption
from creatorpulse.core.config import settings
from creatorpulse.core.deps import get_db
from creatorpulse.core.security import get_current_user
from creatorpulse.main import app
from creatorpulse.models.user import User


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client wired to the FastAPI app (no real server)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def encryption_key(monkeypatch) -> str:
    """A fresh Fernet key for token encryption tests."""
    key = Fernet.generate_key().decode()
    monkeypatch.setattr(settings, "encryption_key", key)
    encryption._fernet.cache_clear()
    yield key
    encryption._fernet.cache_clear()


@pytest.fixture
def db_session() -> AsyncMock:
    """Stand-in session handed to routes through the get_db override."""
    return AsyncMock()


@pytest.fixture
async def auth_client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Client signed in as user 7, with the DB dependency replaced."""
    user = User(email="creator@example.com")
    object.__setattr__(user, "id", 7)

    async def override_db():
        yield db_session

    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_db] = override_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()
