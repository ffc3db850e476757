import sqlite3
import json
from datetime import datetime, timedelta, timezone

import fakeredis
import fakeredis.aioredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db import Base, get_db
from app.models import User
from app.infra import redis_client

# --- Test Database Setup ---

@compiles(JSONB, 'sqlite')
def compile_jsonb(element, compiler, **kw):
    return "JSON"

# Register adapters for SQLite to handle list/dict as JSON
sqlite3.register_adapter(list, json.dumps)
sqlite3.register_adapter(dict, json.dumps)

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# check_same_thread is needed because TestClient runs the app in another thread.
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool  # one shared connection so every session sees the same in-memory DB
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def client():
    """Test client with DB override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

@pytest.fixture
def db_session():
    """Direct database session for setup and assertions."""
    session = TestingSessionLocal()
    yield session
    session.close()

@pytest.fixture
def user(db_session):
    """Basic-tier user (5 cookware slots, no custom storage areas)."""
    u = User(id="11111111-1111-1111-1111-111111111111", email="basic@example.com", subscription_tier="basic")
    db_session.add(u)
    db_session.commit()
    db_session.refresh(u)
    return u

@pytest.fixture
def pro_user(db_session):
    u = User(id="22222222-2222-2222-2222-222222222222", email="pro@example.com", subscription_tier="pro")
    db_session.add(u)
    db_session.commit()
    db_session.refresh(u)
    return u

@pytest.fixture
def headers(user):
    return {"X-User-Id": user.id}

@pytest.fixture
def pro_headers(pro_user):
    return {"X-User-Id": pro_user.id}

# Fixed clock for service-level tests
T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

@pytest.fixture
def clock():
    """Returns T0 + n seconds."""
    return lambda seconds=0: T0 + timedelta(seconds=seconds)

@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    async_redis = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)

    # Force the client into the infra module
    redis_client._redis_async = async_redis

    yield async_redis

    # Cleanup
    redis_client._redis_async = None
