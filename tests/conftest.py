"""
Shared test fixtures.

Each test gets a fresh in-memory SQLite database (StaticPool so every
session and the threadpool share one connection), a fresh application with
its own telemetry buffer, and a TestClient that skips the lifespan so the
module-level engine is never touched.
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-tests")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from prothomuse import models  # noqa: E402,F401
from prothomuse.database import Base, get_db  # noqa: E402
from prothomuse.main import create_app  # noqa: E402
from prothomuse.store import EventStore  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def test_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(bind=test_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Application and client
# ---------------------------------------------------------------------------

@pytest.fixture
def app(session_factory):
    application = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_db] = override_get_db
    application.state.event_store = EventStore(session_factory)
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def test_client(app):
    return TestClient(app)


@pytest.fixture
def telemetry_buffer(app):
    return app.state.telemetry_buffer


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

ANN = {"username": "ann", "email": "a@x.com", "password": "secret1"}


@pytest.fixture
def registered_user(test_client):
    resp = test_client.post("/auth/register", json=ANN)
    assert resp.status_code == 201
    return resp.json()["data"]


@pytest.fixture
def auth_headers(test_client, registered_user):
    resp = test_client.post(
        "/auth/login", json={"email": ANN["email"], "password": ANN["password"]}
    )
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['data']['token']}"}
