"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeClock:
    """Manually advanced clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Fake monotonic clock."""
    return FakeClock()


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from agora.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def registry(storage):
    """Create CredentialRegistry over storage."""
    from agora.credentials import CredentialRegistry

    return CredentialRegistry(storage)


@pytest.fixture
def limiter(clock):
    """Rate limiter with the default policies and a fake clock."""
    from agora.models import RateLimitPolicy
    from agora.rate_limit import RateLimiter

    return RateLimiter(
        address_policy=RateLimitPolicy("address", 100, 10),
        credential_policy=RateLimitPolicy("credential", 60, 1),
        clock=clock,
        wall_clock=clock,
    )


@pytest.fixture
def cache():
    """Recent-message cache."""
    from agora.feed import RecentMessageCache

    return RecentMessageCache(max_size=100)


@pytest.fixture
def service(storage, registry, limiter, cache):
    """MessageService wired to in-memory components."""
    from agora.messages import MessageService

    return MessageService(storage, registry, limiter, cache, operation_timeout=5.0)


@pytest_asyncio.fixture
async def credential(registry):
    """An active, registered credential."""
    cred, _ = await registry.register("writer@example.com")
    return cred


@pytest_asyncio.fixture
async def application():
    """Started Application on an in-memory database."""
    from agora.app import Application
    from agora.config import Settings

    app = Application(
        db_path=":memory:",
        settings=Settings(feed_retry_delay=0.01, heartbeat_seconds=0.05),
    )
    await app.start()
    yield app
    await app.stop()
