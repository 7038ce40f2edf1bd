import os

# Settings are read at import time
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("DATABASE_NAME", "textile_dashboard_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
import pytest_asyncio
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from textile_dashboard.core.auth.authentication import AuthService
from textile_dashboard.core.db.mongodb import DOCUMENT_MODELS


async def init_mock_database():
    client = AsyncMongoMockClient()
    await init_beanie(
        database=client[os.environ["DATABASE_NAME"]],
        document_models=DOCUMENT_MODELS,
    )
    return client


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database with Beanie bound to it."""
    client = await init_mock_database()
    yield client


@pytest.fixture
def client(monkeypatch):
    """TestClient whose lifespan binds Beanie to an in-memory database."""
    from fastapi.testclient import TestClient
    import main

    async def fake_connect():
        await init_mock_database()

    async def fake_close():
        return None

    monkeypatch.setattr(main, "connect_to_mongo", fake_connect)
    monkeypatch.setattr(main, "close_mongo_connection", fake_close)

    with TestClient(main.app) as test_client:
        yield test_client


def auth_headers(user_id="U1", company_id="ACME", role="supervisor"):
    token = AuthService.create_user_token(user_id, company_id, role=role, username=user_id.lower())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_headers():
    return auth_headers


@pytest.fixture
def acme_headers():
    return auth_headers()
