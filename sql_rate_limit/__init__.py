"""Fixed-window rate limiting over a shared SQL counter store."""

from sql_rate_limit.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitOptions,
    RateLimitResult,
)
from sql_rate_limit.adapters.rate_limit.sql import RateLimiter, create_rate_limiter
from sql_rate_limit.adapters.store.sqlalchemy_store import SQLAlchemyStore
from sql_rate_limit.core.errors import (
    AppError,
    ConfigurationError,
    InitializationError,
    StoreError,
    ValidationAppError,
)

__all__ = [
    "AbstractRateLimiter",
    "AppError",
    "ConfigurationError",
    "InitializationError",
    "RateLimitOptions",
    "RateLimitResult",
    "RateLimiter",
    "SQLAlchemyStore",
    "StoreError",
    "ValidationAppError",
    "create_rate_limiter",
]
