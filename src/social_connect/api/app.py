"""FastAPI application factory for the Social Connect service."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from structlog import get_logger

from social_connect import __version__
from social_connect.api.middleware.errors import setup_error_handlers
from social_connect.api.middleware.logging import AccessLogMiddleware
from social_connect.api.middleware.request_id import RequestIDMiddleware
from social_connect.api.routes import connections_router, health_router
from social_connect.config.settings import Settings, get_settings
from social_connect.container import ServiceContainer
from social_connect.core.logging import setup_logging


logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override. If None, uses get_settings().
        container: Prebuilt service container (tests inject one with fake
            provider transports). Built from settings at startup if None.

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = container.settings if container is not None else get_settings()

    setup_logging(level=settings.server.log_level, json_logs=settings.server.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        services = container or ServiceContainer(settings)
        await services.start(with_scheduler=True)
        app.state.container = services
        logger.info(
            "server_started",
            host=settings.server.host,
            port=settings.server.port,
            provider=settings.provider.name,
        )

        yield

        logger.debug("server_stop")
        app.state.container = None
        await services.close()

    app = FastAPI(
        title="Social Connect",
        description="OAuth 2.0 PKCE account connection and token lifecycle service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = None

    setup_error_handlers(app)

    # Middleware runs in reverse order of registration
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(health_router)
    app.include_router(connections_router)

    return app


def get_app() -> FastAPI:
    """Application factory for ``uvicorn --factory``."""
    return create_app()
