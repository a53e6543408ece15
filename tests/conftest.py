"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any project import so the settings
object never picks up a developer's .env file or on-disk database.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ["RATE_LIMIT_STORE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402

from sql_rate_limit.adapters.rate_limit.sql import RateLimiter  # noqa: E402
from sql_rate_limit.adapters.store.sqlalchemy_store import SQLAlchemyStore  # noqa: E402

START_MS = 1_700_000_000_000


@pytest.fixture
def clock() -> Mock:
    """Controllable epoch-millisecond clock."""
    return Mock(return_value=START_MS)


@pytest.fixture
def limiter(clock: Mock):
    """Limiter over a private in-memory SQLite database."""
    rate_limiter = RateLimiter(SQLAlchemyStore("sqlite://"), clock=clock)
    yield rate_limiter
    rate_limiter.close()


@pytest.fixture
def db_url(tmp_path) -> str:
    """URL of a fresh SQLite file shared by several connections."""
    return f"sqlite:///{tmp_path / 'rate-limit.db'}"
