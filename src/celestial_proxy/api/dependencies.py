"""FastAPI dependencies."""

from datetime import timedelta
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncEngine

from celestial_proxy.config import Settings, get_settings
from celestial_proxy.services.astronomy import AstronomyClient
from celestial_proxy.services.cache import CacheService
from celestial_proxy.services.moon import MoonService
from celestial_proxy.services.tarot import TarotService, create_tarot_client
from celestial_proxy.services.upstream import UpstreamClient
from celestial_proxy.storage.database import create_engine, create_session_factory
from celestial_proxy.storage.moon_store import MoonStore

# Process-wide instances, created on first use and dropped on shutdown
_cache_service: CacheService | None = None
_engine: AsyncEngine | None = None
_moon_store: MoonStore | None = None
_astronomy_client: AstronomyClient | None = None
_tarot_client: UpstreamClient | None = None


def get_cache_service(settings: Annotated[Settings, Depends(get_settings)]) -> CacheService:
    """Get cache service instance (singleton)."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService(settings)
    return _cache_service


def get_engine(settings: Annotated[Settings, Depends(get_settings)]) -> AsyncEngine:
    """Get database engine (singleton)."""
    global _engine
    if _engine is None:
        _engine = create_engine(settings.database_url)
    return _engine


def get_moon_store(
    settings: Annotated[Settings, Depends(get_settings)],
    engine: Annotated[AsyncEngine, Depends(get_engine)],
) -> MoonStore:
    """Get durable moon store (singleton)."""
    global _moon_store
    if _moon_store is None:
        _moon_store = MoonStore(
            create_session_factory(engine),
            freshness=timedelta(hours=settings.moon_freshness_hours),
        )
    return _moon_store


def get_astronomy_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AstronomyClient:
    """Get astronomy client instance (singleton)."""
    global _astronomy_client
    if _astronomy_client is None:
        _astronomy_client = AstronomyClient(settings)
    return _astronomy_client


def get_tarot_client(settings: Annotated[Settings, Depends(get_settings)]) -> UpstreamClient:
    """Get tarot upstream client instance (singleton)."""
    global _tarot_client
    if _tarot_client is None:
        _tarot_client = create_tarot_client(settings)
    return _tarot_client


def get_moon_service(
    client: Annotated[AstronomyClient, Depends(get_astronomy_client)],
    store: Annotated[MoonStore, Depends(get_moon_store)],
) -> MoonService:
    """Get moon service instance."""
    return MoonService(client, store)


def get_tarot_service(
    settings: Annotated[Settings, Depends(get_settings)],
    cache: Annotated[CacheService, Depends(get_cache_service)],
    client: Annotated[UpstreamClient, Depends(get_tarot_client)],
) -> TarotService:
    """Get tarot service instance."""
    return TarotService(settings, cache, client)


# Type aliases for dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]
CacheDep = Annotated[CacheService, Depends(get_cache_service)]
EngineDep = Annotated[AsyncEngine, Depends(get_engine)]
MoonServiceDep = Annotated[MoonService, Depends(get_moon_service)]
TarotServiceDep = Annotated[TarotService, Depends(get_tarot_service)]


async def shutdown_resources() -> None:
    """Release the database pool and drop cached data."""
    global _engine
    if _cache_service is not None:
        _cache_service.clear()
    if _engine is not None:
        await _engine.dispose()
        _engine = None
    reset_singletons()


def reset_singletons() -> None:
    """Reset singleton instances (for testing)."""
    global _cache_service, _engine, _moon_store, _astronomy_client, _tarot_client
    _cache_service = None
    _engine = None
    _moon_store = None
    _astronomy_client = None
    _tarot_client = None
