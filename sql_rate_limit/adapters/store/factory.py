"""Factory for creating counter store instances."""

from __future__ import annotations

from sql_rate_limit.adapters.store.base import AbstractStore
from sql_rate_limit.adapters.store.sqlalchemy_store import SQLAlchemyStore
from sql_rate_limit.core.config import RateLimitSettings, settings


def create_store(
    url: str | None = None,
    credential: str | None = None,
    *,
    rate_limit_settings: RateLimitSettings | None = None,
) -> AbstractStore:
    """Build a store from explicit values, falling back to settings.

    Explicit arguments win over ``RATE_LIMIT_STORE_URL`` and
    ``RATE_LIMIT_STORE_CREDENTIAL``.

    Args:
        url: Store URL; defaults to the configured store URL.
        credential: Password/token; defaults to the configured credential.
        rate_limit_settings: Settings to read defaults from (tests pass
            their own instance).

    Returns:
        AbstractStore: Ready-to-use store.

    Raises:
        ConfigurationError: If the resolved URL is missing or invalid.
    """
    cfg = rate_limit_settings or settings.rate_limit

    return SQLAlchemyStore(
        url if url is not None else cfg.store_url,
        credential=credential if credential is not None else cfg.store_credential,
        busy_timeout_seconds=cfg.busy_timeout_seconds,
    )
