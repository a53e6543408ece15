"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the SQL implementation) so
it can be exercised with a stub limiter in tests.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TypedDict


class RateLimitOptions(TypedDict):
    """Keyword arguments of ``AbstractRateLimiter.limit``.

    Attributes:
        key: Rate limit subject, e.g. ``"ip:1.2.3.4"``.
        limit: Max requests per window.
        window: Window length in milliseconds.
    """

    key: str
    limit: int
    window: int


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit consume operation.

    Attributes:
        success: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset: Milliseconds until the current window ends (0 if elapsed).
    """

    success: bool
    limit: int
    remaining: int
    reset: int

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds until the window resets, rounded up."""
        return math.ceil(self.reset / 1000)


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def limit(self, *, key: str, limit: int, window: int) -> RateLimitResult:
        """Record one request for ``key`` and decide whether it is allowed.

        Args:
            key: Unique identifier (e.g., ``ip:1.2.3.4``).
            limit: Maximum number of requests per window.
            window: Window length in milliseconds.

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError
