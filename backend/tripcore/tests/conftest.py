"""
Shared fixtures: a throwaway SQLite database per test, a private hub and an
API client wired to them.
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="tripcore-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
import tripcore.models  # noqa: F401
from tripcore.api.dependencies import get_gateway, get_hub
from tripcore.core.locks import trip_locks
from tripcore.core.security import create_access_token
from tripcore.db.base import Base
from tripcore.db.session import engine, SessionLocal
from tripcore.main import app
from tripcore.realtime.hub import NotificationHub
from tripcore.schemas.trip import TripCreate
from tripcore.services.gateway import MutationGateway


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def hub():
    return NotificationHub(queue_size=10, idle_timeout=60)


@pytest.fixture
def gateway(hub):
    return MutationGateway(hub, trip_locks)


@pytest.fixture
def client(gateway, hub):
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_hub] = lambda: hub
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def trip(gateway, db):
    """Trip owned by alice with bob (editor), carol (viewer) and dave (admin)."""
    created = gateway.create_trip("alice", TripCreate(name="Bangkok", base_currency="THB"), db)
    gateway.assign_member(created.id, "alice", "bob", "editor", db)
    gateway.assign_member(created.id, "alice", "carol", "viewer", db)
    gateway.assign_member(created.id, "alice", "dave", "admin", db)
    return created


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}
