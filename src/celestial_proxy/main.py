"""Application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from celestial_proxy import __version__
from celestial_proxy.api.dependencies import get_engine, shutdown_resources
from celestial_proxy.api.routes import health_router, moon_router, tarot_router
from celestial_proxy.config import get_settings
from celestial_proxy.middleware.logging import LoggingMiddleware, configure_logging
from celestial_proxy.storage.database import init_database


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the moon table on startup, release pools and caches on shutdown."""
    settings = get_settings()
    await init_database(get_engine(settings))
    structlog.get_logger().info("Application started", version=__version__)
    try:
        yield
    finally:
        await shutdown_resources()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Raises:
        ConfigurationError: If required settings are missing
    """
    settings = get_settings()

    configure_logging(settings)

    app = FastAPI(
        title="Celestial Proxy API",
        description="Moon and tarot data for journal entries, cached in front of slow upstreams",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(LoggingMiddleware)

    app.include_router(moon_router)
    app.include_router(tarot_router)
    app.include_router(health_router)

    # Mount Prometheus metrics endpoint
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    return app


# Create app instance for ASGI servers
app = create_app()


def run() -> None:
    """Run the application with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "celestial_proxy.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
