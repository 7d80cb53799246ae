"""
Pytest configuration and shared fixtures

Environment is set before any diagramsync import so cached settings,
the module-level engine and the realtime hub pick up test values.
"""

import os
import tempfile
from pathlib import Path

_TEST_DIR = Path(tempfile.mkdtemp(prefix="diagramsync-tests-"))

os.environ["DEBUG"] = "true"
os.environ["JWT_SECRET"] = "test-secret-key-with-enough-length-0123456789"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'api.db'}"
os.environ["REMOTE_STORAGE_ENABLED"] = "true"
os.environ["REALTIME_ENABLED"] = "true"
os.environ["REALTIME_USE_REDIS"] = "false"
os.environ["LOCAL_STORE_PATH"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from typing import AsyncGenerator, Generator

from diagramsync.database import build_engine, build_session_factory, create_schema
from diagramsync.schemas.diagram import DatabaseType, Diagram
from diagramsync.services.auth_service import AuthUser
from diagramsync.storage.local import LocalStorage
from diagramsync.storage.remote import RemoteStorage
from diagramsync.utils.security import create_access_token


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator:
    """
    File-backed SQLite database per test

    A file (not :memory:) lets concurrent sessions see the same data.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'remote.db'}")
    await create_schema(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def remote_storage(session_factory) -> RemoteStorage:
    return RemoteStorage(session_factory, "user-1")


@pytest.fixture
def local_storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(tmp_path / "local.json")


@pytest_asyncio.fixture(params=["remote", "local"])
async def storage(request, tmp_path: Path) -> AsyncGenerator:
    """Same contract suite runs against both backends"""
    if request.param == "remote":
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'contract.db'}")
        await create_schema(engine)
        yield RemoteStorage(build_session_factory(engine), "user-1")
        await engine.dispose()
    else:
        yield LocalStorage(tmp_path / "contract.json")


@pytest.fixture
def sample_diagram() -> Diagram:
    """
    Diagram with one or more sub-entities of every kind

    Returns:
        Diagram ready to be added to a backend
    """
    return Diagram(
        id="diagram-1",
        name="Shop",
        database_type=DatabaseType.POSTGRESQL,
        database_edition="16",
        tables=[
            {"id": "t-users", "name": "users", "cols": [{"name": "id", "type": "uuid"}]},
            {"id": "t-orders", "name": "orders", "cols": [{"name": "user_id", "type": "uuid"}]},
        ],
        relationships=[{"id": "r-1", "source": "t-orders", "target": "t-users"}],
        dependencies=[{"id": "d-1", "tableId": "t-orders", "dependentTableId": "t-users"}],
        areas=[{"id": "a-1", "name": "Sales", "x": 10, "y": 20}],
        custom_types=[{"id": "c-1", "name": "mood", "kind": "enum", "values": ["sad", "ok"]}],
    )


@pytest.fixture
def alice() -> AuthUser:
    return AuthUser(id="user-alice", email="alice@example.com", name="Alice")


@pytest.fixture
def bob() -> AuthUser:
    return AuthUser(id="user-bob", email="bob@example.com", name="Bob")


def token_for(user: AuthUser) -> str:
    return create_access_token({
        "sub": user.id,
        "email": user.email,
        "user_metadata": {"full_name": user.name, "avatar_url": user.avatar_url},
    })


@pytest.fixture(scope="session")
def client() -> Generator[TestClient, None, None]:
    """
    FastAPI test client with lifespan (schema, realtime hub)

    One client per session keeps the app's engine and hub on a single event loop.
    """
    from diagramsync.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def alice_headers(alice: AuthUser) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(alice)}"}


@pytest.fixture
def bob_headers(bob: AuthUser) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(bob)}"}


@pytest.fixture
def token_factory():
    return token_for
