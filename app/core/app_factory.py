"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and the
limiter lifecycle) so tests can build isolated app instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.rate_limit.base import AbstractRateLimiter
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from app.api.routes import health_router, rate_limit_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.reclaimer import PeriodicReclaimer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the reclamation sweep for as long as the app is serving."""

    reclaimer: PeriodicReclaimer = app.state.reclaimer
    reclaimer.start()
    try:
        yield
    finally:
        await reclaimer.stop()


def create_app(limiter: AbstractRateLimiter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        limiter: Limiter to use; a fresh in-memory limiter when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="AI Tools Directory Rate Limiter",
        description=(
            "In-process fixed-window rate limiting for the AI tools directory. "
            "Routes declare a named policy (expensive-generation, general-api, "
            "read-heavy, authentication, payment); every response carries "
            "X-RateLimit-* headers and denials are answered with 429."
        ),
        version="0.1.0",
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    if limiter is None:
        limiter = InMemoryFixedWindowRateLimiter(shards=settings.app.rate_limit_shards)
    app.state.rate_limiter = limiter
    app.state.reclaimer = PeriodicReclaimer(
        app.state.rate_limiter,
        interval_seconds=settings.app.rate_limit_reclaim_interval_seconds,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    logger.debug(
        "app.created",
        extra={
            "rate_limit_enabled": settings.app.rate_limit_enabled,
            "shards": settings.app.rate_limit_shards,
        },
    )
    return app
