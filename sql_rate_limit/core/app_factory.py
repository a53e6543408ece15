"""Application factory for the demo FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build isolated apps around their own limiter.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from sql_rate_limit.adapters.rate_limit.base import AbstractRateLimiter
from sql_rate_limit.adapters.rate_limit.sql import RateLimiter, create_rate_limiter
from sql_rate_limit.api.routes import health_router, hello_router
from sql_rate_limit.core.config import settings
from sql_rate_limit.core.exception_handlers import setup_exception_handlers
from sql_rate_limit.core.logging import configure_logging
from sql_rate_limit.core.middleware import request_id_middleware
from sql_rate_limit.core.openapi import apply_openapi_customizations

logger = logging.getLogger(__name__)


def create_app(limiter: AbstractRateLimiter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        limiter: Limiter to serve requests with. When omitted, one is built
            from settings at startup. The app closes the limiter on shutdown
            either way.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active = limiter or create_rate_limiter()
        if isinstance(active, RateLimiter):
            active.initialize()
        app.state.rate_limiter = active
        logger.info(
            "app.startup",
            extra={
                "rate_limit_enabled": settings.rate_limit.enabled,
                "requests": settings.rate_limit.requests,
                "window_ms": settings.rate_limit.window_ms,
            },
        )
        try:
            yield
        finally:
            active.close()
            app.state.rate_limiter = None
            logger.info("app.shutdown")

    app = FastAPI(
        title="SQL Rate Limit",
        description=(
            "Fixed-window rate limiting backed by a shared SQL counter table. "
            "Protected endpoints return X-RateLimit-Limit, X-RateLimit-Remaining "
            "and X-RateLimit-Reset headers, and 429 once the budget is spent."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(hello_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
