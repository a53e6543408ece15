"""Rate limiting dependency for FastAPI routes.

This module wires the store-backed limiter into the HTTP layer.

- The limiter instance lives on ``app.state.rate_limiter`` and is owned by
  the application lifespan; there is no module-level default instance.
- Requests are keyed by client IP (first ``X-Forwarded-For`` hop when
  present).
- Store failures propagate as ``StoreError`` and are answered with 503 by
  the exception handlers. A failing store never lets a request through.
"""

from __future__ import annotations

import logging
import time
from email.utils import formatdate
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Response, status

from sql_rate_limit.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitOptions,
    RateLimitResult,
)
from sql_rate_limit.core.config import settings
from sql_rate_limit.core.errors import ConfigurationError
from sql_rate_limit.core.logging import hash_key

logger = logging.getLogger(__name__)


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the limiter attached to the running application.

    Raises:
        ConfigurationError: If the application was started without one.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise ConfigurationError(
            code="rate_limiter_not_configured",
            message="No rate limiter is attached to the application",
            details={"hint": "Set app.state.rate_limiter during startup"},
        )
    return limiter


def build_rate_limit_key(request: Request) -> str:
    """Build the limiter key for the current request.

    Returns:
        str: Namespaced limiter key, e.g. ``ip:203.0.113.7``.
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        client = forwarded_for.split(",")[0].strip()
        if client:
            return f"ip:{client}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def rate_limit_headers(result: RateLimitResult, *, now: float | None = None) -> dict[str, str]:
    """Translate a limiter decision into ``X-RateLimit-*`` headers.

    ``X-RateLimit-Reset`` is the HTTP date at which the window ends.
    """

    current = time.time() if now is None else now
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": formatdate(current + result.reset / 1000, usegmt=True),
    }


def enforce_rate_limit(
    request: Request,
    response: Response,
    limiter: Annotated[AbstractRateLimiter, Depends(get_rate_limiter)],
) -> RateLimitResult | None:
    """FastAPI dependency enforcing rate limits.

    Declared sync so FastAPI runs the blocking store call in its threadpool.
    When enabled, consumes 1 unit from the requester's budget. If the
    requester exceeds the configured rate, raises HTTP 429.

    Raises:
        HTTPException: 429 Too Many Requests when rate limit is exceeded.
        StoreError: When the counter store is unavailable.
    """

    cfg = settings.rate_limit
    if not cfg.enabled:
        return None

    key = build_rate_limit_key(request)
    key_hash = hash_key(key)

    options: RateLimitOptions = {"key": key, "limit": cfg.requests, "window": cfg.window_ms}
    result = limiter.limit(**options)
    headers = rate_limit_headers(result) if cfg.include_headers else {}

    if result.success:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "window_ms": cfg.window_ms,
            },
        )
        response.headers.update(headers)
        return result

    retry_after = result.retry_after_seconds
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": result.limit,
            "remaining": result.remaining,
            "window_ms": cfg.window_ms,
            "retry_after_s": retry_after,
        },
    )

    if cfg.include_headers:
        headers["Retry-After"] = str(retry_after)

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
        headers=headers or None,
    )
