"""Application entry point: the thread server over HTTP.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error reporting through structlog-sentry when a DSN is set
- **Identifier cache** warmed from disk on startup, refreshed in the background
- **Resources and tools** served by FastAPI with Prometheus metrics
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, TextIO

import structlog
import uvicorn
from fastapi import FastAPI

from slackmcp.api import router as api_router
from slackmcp.cache.store import IdentifierCache
from slackmcp.config import Settings, get_settings, validate_credentials
from slackmcp.health import register_health_routes
from slackmcp.observability.metrics import setup_metrics
from slackmcp.observability.middleware import RequestIdMiddleware
from slackmcp.observability.sentry import get_sentry_processor, init_sentry
from slackmcp.resources.catalog import ResourceCatalog
from slackmcp.slack.client import ConversationService, SlackConversationService
from slackmcp.threads.engine import ThreadEngine
from slackmcp.tools.surface import ToolSurface

logger = structlog.get_logger()


def configure_logging(
    production: bool = False,
    sentry_enabled: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry_enabled: Forward ERROR events to Sentry if ``True``.
        stream: Where log lines go.  Defaults to stdout; the CLI uses stderr.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service="slackmcp")


def initialize_services(
    settings: Settings | None = None,
    service: ConversationService | None = None,
) -> dict[str, Any]:
    """Build the shared services for the application.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.
        service: Remote conversation service.  Defaults to a
            ``SlackConversationService`` built from the bot token.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    if service is None:
        service = SlackConversationService(
            bot_token=settings.slack_bot_token.get_secret_value() or None,
            retry_attempts=settings.retry_attempts,
        )

    cache = IdentifierCache.from_settings(settings, service)
    engine = ThreadEngine.from_settings(settings, service, cache)

    services: dict[str, Any] = {
        "_settings": settings,
        "service": service,
        "cache": cache,
        "engine": engine,
        "catalog": ResourceCatalog(engine, cache),
        "tools": ToolSurface(engine, cache),
    }
    logger.info("Services initialized", cache_dir=str(settings.cache_dir))
    return services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On startup: loads cache snapshots from disk and schedules a background
    refresh for any kind that is missing or expired.
    On shutdown: cancels in-flight refreshes.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    cache: IdentifierCache = app.state.services["cache"]
    scheduled = cache.warm()
    logger.info("FastAPI application starting", refreshing=[k.value for k in scheduled])
    yield
    await cache.aclose()
    logger.info("Identifier cache refreshes cancelled")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with lifespan, routes, metrics and middleware.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Slack Thread Server", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings") or get_settings()
    fastapi_app.add_middleware(RequestIdMiddleware)
    fastapi_app.include_router(api_router)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point.

    1. Load settings, initialize Sentry and configure logging
    2. Validate credentials
    3. Initialize services and create the FastAPI app
    4. Serve with uvicorn
    """
    settings = get_settings()
    sentry_enabled = init_sentry(
        settings.sentry_dsn, "production" if settings.production else "development"
    )
    configure_logging(production=settings.production, sentry_enabled=sentry_enabled)
    logger.info("Application starting")

    validate_credentials(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host=settings.server_host,
        port=settings.server_port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
