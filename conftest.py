import os

# Muss vor dem Import der App gesetzt sein (config liest beim Import)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["API_RATE_LIMIT"] = "10000/minute"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["SECRET_KEY"] = "test-secret"

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from cache import RedisCache, TaskCache
from database import Base, engine, SessionLocal, init_db
from dependencies import get_cache, get_notifier, limiter
from main import app
from models import User
from notifications import NotificationDispatcher
from rate_limit import auth_limiter
from fakes import FakeRedis


@pytest.fixture(autouse=True)
def fresh_state():
    init_db()
    yield
    app.dependency_overrides.clear()
    auth_limiter.reset()
    limiter.reset()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return RedisCache(client=fake_redis, prefix="test:")


@pytest.fixture
def send_mock():
    return MagicMock()


@pytest.fixture
def client(cache, send_mock):
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_notifier] = lambda: NotificationDispatcher(send=send_mock)
    # Host-Header muss zur TrustedHostMiddleware passen
    return TestClient(app, base_url="http://localhost:8000")


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make(email=None, **fields):
        user = User(
            name=fields.pop("name", "Alice"),
            email=email or f"user{db.query(User).count() + 1}@example.com",
            hashed_password="not-used",
            preferred_language=fields.pop("preferred_language", "en"),
            timezone="UTC",
            **fields,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def task_cache(cache):
    return TaskCache(cache, list_ttl=300, stats_ttl=900)
