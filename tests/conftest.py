import time
from datetime import timedelta
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal import config

config.set_settings(
    config.load_settings(
        {"DATABASE_URL": "sqlite://", "SECURE_COOKIES": "0", "SESSION_SECRET": "test-secret"}
    )
)

from portal import models, schemas  # noqa: E402
from portal.auth import SESSION_COOKIE, create_session_token, get_oidc_client, new_session_id  # noqa: E402
from portal.crud import Storage  # noqa: E402
from portal.db import Base, get_primary_db, get_replica_db  # noqa: E402
from portal.main import app  # noqa: E402


def memory_engine():
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(autouse=True)
def restore_settings():
    saved = config.get_settings()
    yield
    config.set_settings(saved)


@pytest.fixture(scope="function")
def db_session() -> Generator:
    engine = memory_engine()
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def storage(db_session):
    # primary and replica share one session, so writes are visible to reads at once
    return Storage(db_session, db_session)


@pytest.fixture(scope="function")
def client(db_session):
    # Override dependencies to use the same session for both pools
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_primary_db] = override_get_db
    app.dependency_overrides[get_replica_db] = override_get_db
    app.dependency_overrides[get_oidc_client] = lambda: None
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_user(storage: Storage, user_id: str, role: str = "client", first_name: str = None) -> models.User:
    user = storage.upsert_user(
        schemas.UserUpsert(id=user_id, email=f"{user_id}@example.com", first_name=first_name or user_id.title())
    )
    if role != "client":
        user = storage.update_user_role(user_id, role)
    return user


@pytest.fixture
def login_as(client, storage):
    """Create (or reuse) a user, open a session for it and put the cookie on the client."""
    def _login(user_id: str, role: str = "client", expires_in: int = 3600, refresh_token: str = None) -> str:
        make_user(storage, user_id, role)
        sid = new_session_id()
        payload = {
            "claims": {"sub": user_id},
            "access_token": f"access-{user_id}",
            "refresh_token": refresh_token,
            "expires_at": int(time.time()) + expires_in,
        }
        storage.save_session(sid, payload, models.utcnow() + timedelta(days=1))
        client.cookies.set(SESSION_COOKIE, create_session_token(sid))
        return sid
    return _login


@pytest.fixture
def create_user(storage):
    def _create(user_id: str, role: str = "client", first_name: str = None) -> models.User:
        return make_user(storage, user_id, role, first_name)
    return _create
