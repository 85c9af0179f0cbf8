"""Test fixtures."""

import os
from collections.abc import AsyncIterator, Iterator
from datetime import UTC, datetime
from typing import Any

# Required settings must exist before the app module is imported
os.environ.update(
    {
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "MOON_API_KEY": "test-key",
        "MOON_API_URL": "https://astronomy.test/astronomy",
        "TAROT_API_BASE": "https://tarot.test/api",
        "RETRY_BACKOFF_SECONDS": "0",
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "text",
    }
)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine  # noqa: E402

from celestial_proxy.api.dependencies import reset_singletons  # noqa: E402
from celestial_proxy.config import Settings, get_settings  # noqa: E402
from celestial_proxy.main import create_app  # noqa: E402
from celestial_proxy.services.astronomy import AstronomyClient  # noqa: E402
from celestial_proxy.services.cache import CacheService  # noqa: E402
from celestial_proxy.services.moon import MoonService  # noqa: E402
from celestial_proxy.services.tarot import TarotService, create_tarot_client  # noqa: E402
from celestial_proxy.storage.database import (  # noqa: E402
    create_engine,
    create_session_factory,
    init_database,
)
from celestial_proxy.storage.moon_store import MoonStore  # noqa: E402


class FakeClock:
    """Manually advanced clock usable for monotonic floats or datetimes."""

    def __init__(self, start: Any) -> None:
        self.now = start

    def __call__(self) -> Any:
        return self.now

    def advance(self, delta: Any) -> None:
        self.now = self.now + delta


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        moon_api_key="test-key",
        moon_api_url="https://astronomy.test/astronomy",
        tarot_api_base="https://tarot.test/api",
        moon_timeout_seconds=1.0,
        tarot_timeout_seconds=1.0,
        retry_backoff_seconds=0.0,
        cache_max_size=1000,
        log_level="DEBUG",
        log_format="text",
    )


@pytest.fixture
def clock() -> FakeClock:
    """Monotonic-style clock for the memory cache."""
    return FakeClock(1000.0)


@pytest.fixture
def wall_clock() -> FakeClock:
    """UTC wall clock for the durable store."""
    return FakeClock(datetime(2025, 8, 23, 12, 0, tzinfo=UTC))


@pytest.fixture
def cache_service(settings: Settings, clock: FakeClock) -> Iterator[CacheService]:
    """Create test cache service, emptied after each test."""
    cache = CacheService(settings, timer=clock)
    yield cache
    cache.clear()


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """In-memory database with the schema created."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def moon_store(engine: AsyncEngine, wall_clock: FakeClock) -> MoonStore:
    """Durable moon store on the in-memory database."""
    return MoonStore(create_session_factory(engine), clock=wall_clock)


@pytest.fixture
def moon_service(settings: Settings, moon_store: MoonStore) -> MoonService:
    """Moon service wired to the test store."""
    return MoonService(AstronomyClient(settings), moon_store)


@pytest.fixture
def tarot_service(settings: Settings, cache_service: CacheService) -> TarotService:
    """Tarot service wired to the test cache."""
    return TarotService(settings, cache_service, create_tarot_client(settings))


@pytest.fixture
def app():
    """Create test application."""
    # Reset singletons before each test
    reset_singletons()
    # Clear settings cache
    get_settings.cache_clear()
    return create_app()


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    """Create test client; runs the app lifespan so the schema exists."""
    with TestClient(app) as test_client:
        yield test_client
