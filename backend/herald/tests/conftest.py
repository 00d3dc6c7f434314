"""
Pytest fixtures shared across all test modules.
Uses an in-memory SQLite database with StaticPool so all connections
share a single in-memory DB - no real Postgres or Redis required for tests.
"""

import os

# Set env vars BEFORE any herald module is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_URL"] = ""
os.environ["VAPID_PUBLIC_KEY"] = "BTestPublicKeyTestPublicKeyTestPublicKey"
os.environ["VAPID_PRIVATE_KEY"] = "test-private-key"
os.environ["VAPID_KEYS_FILE"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Import herald modules AFTER env vars are set
import herald.redis.channel as channel_mod  # noqa: E402
from herald.api.deps import get_session_factory, get_vapid_keys  # noqa: E402
from herald.database import Base  # noqa: E402
from herald.main import app  # noqa: E402
from herald.models import push_subscription  # noqa: E402, F401
from herald.services.registry import SubscriptionRegistry  # noqa: E402
from herald.services.vapid import VapidKeyProvider, VapidKeys  # noqa: E402

# Single shared in-memory SQLite engine - StaticPool ensures all
# connections share the same DB instance.
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_VAPID_KEYS = VapidKeys(
    public_key="BTestPublicKeyTestPublicKeyTestPublicKey",
    private_key="test-private-key",
    subject="mailto:test@example.com",
)


# ---------------------------------------------------------------------------
# Fake async Redis
# ---------------------------------------------------------------------------


class FakeRedis:
    """Minimal in-memory fake of the redis.asyncio list commands we use."""

    def __init__(self):
        self.lists: dict[str, list[str]] = {}

    async def ping(self):
        return True

    async def rpush(self, key: str, value: str):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def blpop(self, keys: list[str], timeout: int = 0):
        for key in keys:
            if self.lists.get(key):
                return key, self.lists[key].pop(0)
        return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def setup_db():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def registry():
    return SubscriptionRegistry(TestingSessionLocal, page_size=50)


@pytest.fixture()
def vapid_provider():
    return VapidKeyProvider(loader=lambda: TEST_VAPID_KEYS)


@pytest.fixture()
def fake_redis(monkeypatch):
    """Replace the channel's get_redis() with a FakeRedis."""
    fake = FakeRedis()
    monkeypatch.setattr(channel_mod, "get_redis", lambda: fake)
    return fake


@pytest.fixture()
def client(vapid_provider):
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_vapid_keys] = lambda: vapid_provider
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def subscribe_body(user_id="alice", endpoint="https://push.example.com/send/abc", p256dh="p256-key", auth="auth-key", device_id=None):
    body = {
        "userId": user_id,
        "subscription": {"endpoint": endpoint, "keys": {"p256dh": p256dh, "auth": auth}},
    }
    if device_id is not None:
        body["deviceId"] = device_id
    return body
