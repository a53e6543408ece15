"""Application-level exception types.

This module defines domain errors used across the limiter, the store
adapters and the HTTP layer, enabling consistent error handling, logging,
and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep the shape stable while allowing each error
    site to attach only what it knows.
    """

    hint: str
    field: str
    actual_value: Any
    dialect: str
    operation: str
    error_type: str
    table: str
    retry_after: float
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when caller input to the limiter is invalid."""


class ConfigurationError(AppError):
    """Raised when the store location or other settings are missing/invalid."""


class StoreError(AppError):
    """Raised when communicating with or committing to the store fails."""


class InitializationError(StoreError):
    """Raised when the counter schema cannot be created."""
